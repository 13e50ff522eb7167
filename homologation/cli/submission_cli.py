"""
Submission CLI Subcommands

Thin wrapper over HomologationWorkflow and SubmissionIntakeService.
No business logic, just command parsing and output formatting.

Exit codes: 0 success, 1 caller-correctable failure, 2 unexpected failure.
"""

import json as json_lib
from typing import Any, Dict, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from homologation.wiring import get_services
from homologation.workflow.engine import TransitionResult
from homologation.workflow.errors import (
    AttachmentNotFoundError,
    AttachmentRejectedError,
    SubmissionLockedError,
    SubmissionNotFoundError,
    VersionConflictError,
)
from homologation.workflow.models import SYSTEM_ACTOR_ID, AttachmentKind, Submission, SubmissionStatus

# Create subcommand app
submission_app = typer.Typer(
    name="submission",
    help="Manage homologation submissions",
    no_args_is_help=True,
)

console = Console()

INTAKE_ERRORS = (
    SubmissionNotFoundError,
    SubmissionLockedError,
    AttachmentRejectedError,
    AttachmentNotFoundError,
    VersionConflictError,
    ValueError,
)

STATUS_STYLES = {
    SubmissionStatus.DRAFT: "dim",
    SubmissionStatus.PENDING_REVIEW: "yellow",
    SubmissionStatus.PAID: "cyan",
    SubmissionStatus.INCOMPLETE: "magenta",
    SubmissionStatus.APPROVED: "green",
    SubmissionStatus.REJECTED: "red",
    SubmissionStatus.COMPLETED: "bold green",
}


def _styled(status: SubmissionStatus) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status.value}[/{style}]"


def _field_changes(
    name: Optional[str],
    national_id: Optional[str],
    phone: Optional[str],
    email: Optional[str],
    vehicle_type: Optional[str],
    dimensions: Optional[str],
    axles: Optional[int],
    plate: Optional[str],
) -> Dict[str, Any]:
    candidates = {
        "owner_full_name": name,
        "owner_national_id": national_id,
        "owner_phone": phone,
        "owner_email": email,
        "vehicle_type": vehicle_type,
        "vehicle_dimensions": dimensions,
        "vehicle_axle_count": axles,
        "license_plate": plate,
    }
    return {k: v for k, v in candidates.items() if v is not None}


def _print_submission(submission: Submission) -> None:
    vehicle = submission.vehicle_type.value if submission.vehicle_type else "-"
    panel_content = f"""[bold]Submission ID:[/bold] {submission.submission_id}
[bold]Status:[/bold] {_styled(submission.status)}
[bold]Owner:[/bold] {submission.owner_full_name or "-"}
[bold]National ID:[/bold] {submission.owner_national_id or "-"}
[bold]Phone:[/bold] {submission.owner_phone or "-"}
[bold]Email:[/bold] {submission.owner_email or "-"}
[bold]Vehicle:[/bold] {vehicle}
[bold]Dimensions:[/bold] {submission.vehicle_dimensions or "-"}
[bold]Axles:[/bold] {submission.vehicle_axle_count or "-"}
[bold]Plate:[/bold] {submission.license_plate or "-"}
[bold]Version:[/bold] {submission.version}
[bold]Created:[/bold] {submission.created_at.isoformat()} by {submission.created_by}
[bold]Updated:[/bold] {submission.updated_at.isoformat()} by {submission.updated_by}"""
    console.print(Panel(panel_content, title="Submission Details", border_style="blue"))


def _report(result: TransitionResult, verb: str) -> None:
    """Print a transition result; exit non-zero on failure."""
    if result.ok:
        console.print(f"[green]✓ {verb}:[/green] {result.submission.submission_id}")
        console.print(f"  Status: {_styled(result.submission.status)}")
        if result.notification is not None and not result.notification.delivered:
            console.print(f"  [yellow]Notification {result.notification.status.value}[/yellow]")
        return

    console.print(f"[red]✗ {result.error_kind.value}:[/red] {result.message}")
    allowed = result.details.get("allowed_transitions")
    if allowed is not None:
        console.print(f"  Allowed: {', '.join(allowed) or 'none'}")
    for field_name in result.details.get("missing_fields", []):
        console.print(f"  Missing field: {field_name}")
    if result.details.get("missing_attachments"):
        console.print("  Missing: at least one attachment")
    raise typer.Exit(1 if result.error_kind.is_caller_error else 2)


# =============================================================================
# Read Commands
# =============================================================================

@submission_app.command("list")
def list_submissions(
    status: Optional[str] = typer.Option(
        None,
        "--status", "-s",
        help="Filter by status (Draft, \"Pending Review\", Paid, ...)",
    ),
    created_by: Optional[str] = typer.Option(None, "--created-by", help="Filter by creator"),
    limit: int = typer.Option(50, "--limit", "-l", help="Maximum number of submissions to show"),
    json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """List submissions, newest first."""
    services = get_services()

    status_enum = None
    if status:
        try:
            status_enum = SubmissionStatus.parse(status)
        except ValueError:
            console.print(f"[red]Invalid status: {status}[/red]")
            console.print(f"Valid: {', '.join(s.value for s in SubmissionStatus)}")
            raise typer.Exit(1)

    submissions = services.intake.list(status=status_enum, created_by=created_by)[:limit]

    if json:
        print(json_lib.dumps([s.to_dict() for s in submissions], indent=2, default=str))
        return

    if not submissions:
        console.print("[dim]No submissions found[/dim]")
        return

    table = Table(title=f"Submissions ({len(submissions)})")
    table.add_column("Submission ID", style="cyan")
    table.add_column("Status")
    table.add_column("Owner")
    table.add_column("Vehicle", style="magenta")
    table.add_column("Version", justify="right")
    table.add_column("Created")

    for s in submissions:
        table.add_row(
            s.submission_id,
            _styled(s.status),
            s.owner_full_name or "-",
            s.vehicle_type.value if s.vehicle_type else "-",
            str(s.version),
            s.created_at.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)


@submission_app.command("show")
def show_submission(
    submission_id: str = typer.Argument(..., help="Submission ID to show"),
    history: bool = typer.Option(False, "--history", "-h", help="Include audit history"),
    json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Show details of a submission."""
    services = get_services()

    try:
        submission = services.intake.get(submission_id)
    except SubmissionNotFoundError:
        console.print(f"[red]Submission not found: {submission_id}[/red]")
        raise typer.Exit(1)

    attachments = services.intake.attachments(submission_id)
    summary = services.intake.attachment_summary(submission_id)
    entries = services.intake.history(submission_id) if history else []

    if json:
        output = {
            "submission": submission.to_dict(),
            "attachments": [a.to_dict() for a in attachments],
            "attachment_counts": {"photos": summary.photos, "documents": summary.documents},
            "history": [e.to_dict() for e in entries],
        }
        print(json_lib.dumps(output, indent=2, default=str))
        return

    _print_submission(submission)

    if attachments:
        console.print(
            f"\n[bold]Attachments:[/bold] {summary.count} "
            f"({summary.photos} photos, {summary.documents} documents)"
        )
        for a in attachments:
            console.print(f"  {a.attachment_id}  {a.kind.value:<12} {a.file_name} ({a.size_bytes} bytes)")

    if history and entries:
        console.print("\n[bold]Audit History:[/bold]")
        history_table = Table()
        history_table.add_column("Time", style="dim")
        history_table.add_column("Action", style="yellow")
        history_table.add_column("Actor")
        history_table.add_column("Changes")

        for e in entries:
            history_table.add_row(
                e.created_at.strftime("%Y-%m-%d %H:%M:%S"),
                e.action,
                e.actor_id,
                json_lib.dumps(e.new_values, default=str) if e.new_values else "-",
            )

        console.print(history_table)


@submission_app.command("transitions")
def show_transitions(
    submission_id: str = typer.Argument(..., help="Submission ID"),
):
    """Show the statuses a submission can move to next."""
    services = get_services()

    try:
        submission = services.intake.get(submission_id)
    except SubmissionNotFoundError:
        console.print(f"[red]Submission not found: {submission_id}[/red]")
        raise typer.Exit(1)

    targets = services.workflow.allowed_transitions(submission.status)
    console.print(f"Current: {_styled(submission.status)}")
    console.print(f"Allowed: {', '.join(t.value for t in targets) or 'none'}")


# =============================================================================
# Intake Commands
# =============================================================================

@submission_app.command("create")
def create_submission(
    name: Optional[str] = typer.Option(None, "--name", help="Owner full name"),
    national_id: Optional[str] = typer.Option(None, "--national-id", help="Owner national ID (DNI)"),
    phone: Optional[str] = typer.Option(None, "--phone", help="Owner phone"),
    email: Optional[str] = typer.Option(None, "--email", help="Owner e-mail"),
    vehicle_type: Optional[str] = typer.Option(None, "--vehicle-type", help="Trailer, Rolling Box or Motorhome"),
    dimensions: Optional[str] = typer.Option(None, "--dimensions", help="Vehicle dimensions"),
    axles: Optional[int] = typer.Option(None, "--axles", help="Axle count"),
    plate: Optional[str] = typer.Option(None, "--plate", help="License plate"),
    by: str = typer.Option(SYSTEM_ACTOR_ID, "--by", "-b", help="Actor ID"),
    json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Create a Draft submission."""
    services = get_services()
    changes = _field_changes(name, national_id, phone, email, vehicle_type, dimensions, axles, plate)

    try:
        submission = services.intake.create(changes, actor_id=by)
    except INTAKE_ERRORS as e:
        console.print(f"[red]Create failed:[/red] {e}")
        raise typer.Exit(1)

    if json:
        print(json_lib.dumps(submission.to_dict(), indent=2, default=str))
        return
    console.print(f"[green]✓ Created:[/green] {submission.submission_id}")


@submission_app.command("update")
def update_submission(
    submission_id: str = typer.Argument(..., help="Submission ID to update"),
    name: Optional[str] = typer.Option(None, "--name", help="Owner full name"),
    national_id: Optional[str] = typer.Option(None, "--national-id", help="Owner national ID (DNI)"),
    phone: Optional[str] = typer.Option(None, "--phone", help="Owner phone"),
    email: Optional[str] = typer.Option(None, "--email", help="Owner e-mail"),
    vehicle_type: Optional[str] = typer.Option(None, "--vehicle-type", help="Trailer, Rolling Box or Motorhome"),
    dimensions: Optional[str] = typer.Option(None, "--dimensions", help="Vehicle dimensions"),
    axles: Optional[int] = typer.Option(None, "--axles", help="Axle count"),
    plate: Optional[str] = typer.Option(None, "--plate", help="License plate"),
    expected_version: Optional[int] = typer.Option(
        None,
        "--expected-version",
        help="Fail if the submission changed since this version",
    ),
    by: str = typer.Option(SYSTEM_ACTOR_ID, "--by", "-b", help="Actor ID"),
):
    """Edit a Draft or Incomplete submission."""
    services = get_services()
    changes = _field_changes(name, national_id, phone, email, vehicle_type, dimensions, axles, plate)
    if not changes:
        console.print("[yellow]Nothing to update[/yellow]")
        raise typer.Exit(1)

    try:
        submission = services.intake.update_fields(
            submission_id, changes, actor_id=by, expected_version=expected_version
        )
    except INTAKE_ERRORS as e:
        console.print(f"[red]Update failed:[/red] {e}")
        raise typer.Exit(1)

    console.print(f"[green]✓ Updated:[/green] {submission.submission_id}")
    console.print(f"  Version: {submission.version}")


@submission_app.command("attach")
def attach_file(
    submission_id: str = typer.Argument(..., help="Submission ID"),
    file_name: str = typer.Option(..., "--file", "-f", help="File name, e.g. front.jpg"),
    mime_type: str = typer.Option(..., "--mime", help="MIME type, e.g. image/jpeg"),
    size: int = typer.Option(..., "--size", help="Size in bytes"),
    kind: AttachmentKind = typer.Option(AttachmentKind.PHOTO, "--kind", help="photo, id_document or document"),
    by: str = typer.Option(SYSTEM_ACTOR_ID, "--by", "-b", help="Actor ID"),
):
    """Register an attachment's metadata."""
    services = get_services()

    try:
        attachment = services.intake.add_attachment(
            submission_id, file_name, mime_type, size, actor_id=by, kind=kind
        )
    except INTAKE_ERRORS as e:
        console.print(f"[red]Attachment rejected:[/red] {e}")
        raise typer.Exit(1)

    console.print(f"[green]✓ Attached:[/green] {attachment.attachment_id} ({attachment.file_name})")


@submission_app.command("detach")
def detach_file(
    submission_id: str = typer.Argument(..., help="Submission ID"),
    attachment_id: str = typer.Argument(..., help="Attachment ID to remove"),
    by: str = typer.Option(SYSTEM_ACTOR_ID, "--by", "-b", help="Actor ID"),
):
    """Remove an attachment from a Draft or Incomplete submission."""
    services = get_services()

    try:
        services.intake.remove_attachment(submission_id, attachment_id, actor_id=by)
    except INTAKE_ERRORS as e:
        console.print(f"[red]Detach failed:[/red] {e}")
        raise typer.Exit(1)

    console.print(f"[dim]⊘ Detached:[/dim] {attachment_id}")


@submission_app.command("delete")
def delete_submission(
    submission_id: str = typer.Argument(..., help="Submission ID to delete"),
    by: str = typer.Option(..., "--by", "-b", help="Actor ID (required)"),
):
    """Soft-delete a submission."""
    services = get_services()

    try:
        services.intake.soft_delete(submission_id, actor_id=by)
    except SubmissionNotFoundError:
        console.print(f"[red]Submission not found: {submission_id}[/red]")
        raise typer.Exit(1)

    console.print(f"[dim]⊘ Deleted:[/dim] {submission_id}")


# =============================================================================
# Transition Commands
# =============================================================================

@submission_app.command("submit")
def submit_submission(
    submission_id: str = typer.Argument(..., help="Submission ID to submit"),
    by: str = typer.Option(SYSTEM_ACTOR_ID, "--by", "-b", help="Actor ID"),
):
    """Submit a submission for review."""
    result = get_services().workflow.submit_for_review(submission_id, actor_id=by)
    _report(result, "Submitted")


@submission_app.command("pay")
def confirm_payment(
    submission_id: str = typer.Argument(..., help="Submission ID"),
    by: str = typer.Option(SYSTEM_ACTOR_ID, "--by", "-b", help="Actor ID"),
    why: Optional[str] = typer.Option(None, "--why", "-w", help="Payment reference"),
):
    """Record that the homologation fee was paid."""
    result = get_services().workflow.confirm_payment(submission_id, actor_id=by, reason=why)
    _report(result, "Payment confirmed")


@submission_app.command("approve")
def approve_submission(
    submission_id: str = typer.Argument(..., help="Submission ID to approve"),
    by: str = typer.Option(..., "--by", "-b", help="Administrator ID (required)"),
    why: Optional[str] = typer.Option(None, "--why", "-w", help="Reason"),
):
    """Approve a submission (admin)."""
    result = get_services().workflow.approve(submission_id, actor_id=by, reason=why)
    _report(result, "Approved")


@submission_app.command("reject")
def reject_submission(
    submission_id: str = typer.Argument(..., help="Submission ID to reject"),
    by: str = typer.Option(..., "--by", "-b", help="Administrator ID (required)"),
    why: Optional[str] = typer.Option(None, "--why", "-w", help="Reason shown to the owner"),
):
    """Reject a submission (admin, terminal)."""
    result = get_services().workflow.reject(submission_id, actor_id=by, reason=why)
    _report(result, "Rejected")


@submission_app.command("incomplete")
def mark_incomplete(
    submission_id: str = typer.Argument(..., help="Submission ID"),
    by: str = typer.Option(..., "--by", "-b", help="Administrator ID (required)"),
    why: Optional[str] = typer.Option(None, "--why", "-w", help="What the owner must fix"),
):
    """Send a submission back to the owner for corrections (admin)."""
    result = get_services().workflow.mark_incomplete(submission_id, actor_id=by, reason=why)
    _report(result, "Marked incomplete")


@submission_app.command("complete")
def complete_submission(
    submission_id: str = typer.Argument(..., help="Submission ID"),
    by: str = typer.Option(..., "--by", "-b", help="Administrator ID (required)"),
    why: Optional[str] = typer.Option(None, "--why", "-w", help="Reason"),
):
    """Mark an approved submission as completed (admin, terminal)."""
    result = get_services().workflow.complete(submission_id, actor_id=by, reason=why)
    _report(result, "Completed")


@submission_app.command("status")
def change_status(
    submission_id: str = typer.Argument(..., help="Submission ID"),
    target: str = typer.Argument(..., help="Target status"),
    by: str = typer.Option(..., "--by", "-b", help="Actor ID (required)"),
    why: Optional[str] = typer.Option(None, "--why", "-w", help="Reason"),
    admin: bool = typer.Option(False, "--admin", help="Act with administrator privileges"),
):
    """Request any transition through the full guard pipeline."""
    result = get_services().workflow.transition(
        submission_id, target, actor_id=by, is_elevated=admin, reason=why
    )
    _report(result, "Transitioned")
