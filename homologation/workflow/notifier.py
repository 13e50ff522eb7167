"""
Status-Change Notifications

Best-effort e-mail to the submission owner after a status transition.
Templates are in Spanish, the language of the applicants. When SMTP is not
configured the message is logged instead of sent and still counts as
delivered, so local environments behave like production.
"""

import html
import logging
import smtplib
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from email.header import Header
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from enum import Enum
from typing import Callable, Dict, List, Optional

from homologation.config import NotificationConfig, config

from .models import SubmissionStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Data Models
# =============================================================================

@dataclass(frozen=True)
class NotificationContext:
    """What the notifier needs to know about a transition."""
    owner_name: Optional[str]
    owner_email: Optional[str]
    submission_id: str
    status: SubmissionStatus
    reason: Optional[str] = None


class DeliveryStatus(str, Enum):
    SENT = "sent"
    LOGGED = "logged"  # SMTP not configured
    SKIPPED = "skipped"  # no template or no recipient
    FAILED = "failed"


@dataclass(frozen=True)
class NotificationOutcome:
    """Result of a notification attempt. Never affects the transition."""
    status: DeliveryStatus
    recipient: Optional[str] = None
    error: Optional[str] = None

    @property
    def delivered(self) -> bool:
        return self.status in (DeliveryStatus.SENT, DeliveryStatus.LOGGED)

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "status": self.status.value,
            "recipient": self.recipient,
            "error": self.error,
        }


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    body: str
    html: str


# =============================================================================
# Templates
# =============================================================================

@dataclass(frozen=True)
class _Template:
    subject: str
    intro: str
    status_label: str
    closing: List[str] = field(default_factory=list)
    header_color: str = "#1a365d"
    link_label: Optional[str] = None
    show_reason: bool = False


BRAND = "AV Homologación"

TEMPLATES: Dict[SubmissionStatus, _Template] = {
    SubmissionStatus.PENDING_REVIEW: _Template(
        subject=f"Homologación Recibida - {BRAND}",
        intro="Su solicitud de homologación ha sido recibida exitosamente y está pendiente de revisión.",
        status_label="En Revisión",
        link_label="Ver Estado de Solicitud",
    ),
    SubmissionStatus.PAID: _Template(
        subject=f"Pago Confirmado - {BRAND}",
        intro="Hemos recibido su pago para la solicitud de homologación.",
        status_label="Pagado - En proceso de aprobación",
        closing=["Su solicitud será revisada y procesada en los próximos días hábiles."],
    ),
    SubmissionStatus.INCOMPLETE: _Template(
        subject=f"Documentación Incompleta - {BRAND}",
        intro="Su solicitud de homologación requiere documentación adicional o correcciones.",
        status_label="Incompleta",
        closing=["Por favor, ingrese a su cuenta para completar la información requerida."],
        link_label="Completar Solicitud",
        show_reason=True,
    ),
    SubmissionStatus.APPROVED: _Template(
        subject=f"¡Solicitud Aprobada! - {BRAND}",
        intro="¡Felicitaciones! Su solicitud de homologación ha sido APROBADA.",
        status_label="Aprobada",
        closing=[
            "Próximos pasos:",
            "- Se procederá a generar su certificado de homologación",
            "- Recibirá instrucciones para la entrega del mismo",
            f"Gracias por confiar en {BRAND}.",
        ],
        header_color="#059669",
    ),
    SubmissionStatus.REJECTED: _Template(
        subject=f"Solicitud No Aprobada - {BRAND}",
        intro="Lamentamos informarle que su solicitud de homologación no ha sido aprobada.",
        status_label="Rechazada",
        closing=["Si tiene alguna consulta, no dude en contactarnos."],
        header_color="#dc2626",
        show_reason=True,
    ),
    SubmissionStatus.COMPLETED: _Template(
        subject=f"Proceso Completado - {BRAND}",
        intro="Su proceso de homologación ha sido completado exitosamente.",
        status_label="Completado",
        closing=[
            "Su certificado de homologación está listo.",
            "Por favor, siga las instrucciones recibidas para recogerlo.",
            f"Gracias por elegir {BRAND}.",
        ],
    ),
}


def render_email(context: NotificationContext, app_url: str) -> Optional[EmailMessage]:
    """Render the message for a status, or None if the status has no template."""
    template = TEMPLATES.get(context.status)
    if template is None or not context.owner_email:
        return None

    name = context.owner_name or "cliente"
    link = f"{app_url.rstrip('/')}/homologaciones/{context.submission_id}"

    lines = [
        f"Estimado/a {name},",
        "",
        template.intro,
        "",
        f"Número de solicitud: {context.submission_id}",
        f"Estado actual: {template.status_label}",
    ]
    if template.show_reason and context.reason:
        lines += ["", f"Motivo: {context.reason}"]
    if template.closing:
        lines += [""] + template.closing
    if template.link_label:
        lines += ["", "Puede consultar el estado de su solicitud en:", link]
    lines += ["", "Saludos cordiales,", f"Equipo {BRAND}"]

    esc = html.escape
    parts = [
        f"<p>Estimado/a <strong>{esc(name)}</strong>,</p>",
        f"<p>{esc(template.intro)}</p>",
        '<div class="status">',
        f"<p><strong>Número de solicitud:</strong> {esc(context.submission_id)}</p>",
        f"<p><strong>Estado actual:</strong> {esc(template.status_label)}</p>",
        "</div>",
    ]
    if template.show_reason and context.reason:
        parts.append(f'<div class="reason"><strong>Motivo:</strong> {esc(context.reason)}</div>')
    parts += [f"<p>{esc(line)}</p>" for line in template.closing]
    if template.link_label:
        parts.append(f'<p style="text-align: center;"><a href="{esc(link)}">{esc(template.link_label)}</a></p>')

    body_html = (
        '<!DOCTYPE html><html><head><meta charset="utf-8"></head><body>'
        f'<div style="background: {template.header_color}; color: white; padding: 20px; text-align: center;">'
        f"<h1>{esc(BRAND)}</h1></div>"
        f'<div style="padding: 20px;">{"".join(parts)}</div>'
        f"<p>Saludos cordiales,<br>Equipo {esc(BRAND)}</p>"
        "</body></html>"
    )

    return EmailMessage(
        to=context.owner_email,
        subject=template.subject,
        body="\n".join(lines),
        html=body_html,
    )


# =============================================================================
# Notifiers
# =============================================================================

class Notifier(ABC):
    """Sends a status-change message to the submission owner."""

    @abstractmethod
    def send_status_notification(self, context: NotificationContext) -> NotificationOutcome:
        pass


class EmailNotifier(Notifier):
    """
    SMTP e-mail notifier.

    Uses STARTTLS + login when SMTP is configured; otherwise logs the
    message and reports it as LOGGED.
    """

    def __init__(
        self,
        settings: Optional[NotificationConfig] = None,
        smtp_factory: Callable[[str, int], smtplib.SMTP] = smtplib.SMTP,
    ):
        self.settings = settings or config.notifications
        self._smtp_factory = smtp_factory
        if not self.settings.is_configured:
            logger.warning("SMTP not configured. Notifications will be logged but not sent.")

    def send_status_notification(self, context: NotificationContext) -> NotificationOutcome:
        message = render_email(context, self.settings.app_url)
        if message is None:
            logger.info(
                f"No notification for submission {context.submission_id} "
                f"(status={context.status.value}, email={'set' if context.owner_email else 'missing'})"
            )
            return NotificationOutcome(status=DeliveryStatus.SKIPPED, recipient=context.owner_email)
        return self.send_email(message)

    def send_email(self, message: EmailMessage) -> NotificationOutcome:
        logger.info(f"Email notification to {message.to}: {message.subject}")

        if not self.settings.is_configured:
            logger.debug(f"SMTP not configured; email body:\n{message.body}")
            return NotificationOutcome(status=DeliveryStatus.LOGGED, recipient=message.to)

        msg = MIMEMultipart("alternative")
        msg["From"] = formataddr((BRAND, self.settings.email_from))
        msg["To"] = message.to
        msg["Subject"] = Header(message.subject, "utf-8")
        msg.attach(MIMEText(message.body, "plain", "utf-8"))
        msg.attach(MIMEText(message.html, "html", "utf-8"))

        try:
            with self._smtp_factory(self.settings.smtp_host, self.settings.smtp_port) as server:
                server.ehlo()
                server.starttls()
                server.ehlo()
                server.login(self.settings.smtp_user, self.settings.smtp_password)
                server.sendmail(self.settings.email_from, [message.to], msg.as_string())
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email to {message.to}: {e}")
            return NotificationOutcome(status=DeliveryStatus.FAILED, recipient=message.to, error=str(e))

        logger.info(f"Email sent to {message.to}")
        return NotificationOutcome(status=DeliveryStatus.SENT, recipient=message.to)
