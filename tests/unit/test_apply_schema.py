import sys
from pathlib import Path

import pytest

# Add scripts directory to path to import apply_schema
sys.path.append(str(Path(__file__).parent.parent.parent / "scripts"))
import apply_schema

REPO_ROOT = Path(__file__).parent.parent.parent
BUNDLED_SCHEMA = REPO_ROOT / "homologation" / "schema" / "homologation.tql"


def test_resolve_schema_empty():
    with pytest.raises(ValueError, match="No --schema provided"):
        apply_schema.resolve_schema_files([])

    with pytest.raises(ValueError, match="Empty --schema argument is invalid"):
        apply_schema.resolve_schema_files([""])

    with pytest.raises(ValueError, match="Empty --schema argument is invalid"):
        apply_schema.resolve_schema_files(["   "])


def test_resolve_schema_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError, match="did not match any files"):
        apply_schema.resolve_schema_files([str(tmp_path / "nope.tql")])


def test_resolve_schema_glob_is_sorted_and_deduped(tmp_path):
    (tmp_path / "b.tql").write_text("define", encoding="utf-8")
    (tmp_path / "a.tql").write_text("define", encoding="utf-8")

    resolved = apply_schema.resolve_schema_files([str(tmp_path / "*.tql"), str(tmp_path / "a.tql")])

    assert [p.name for p in resolved] == ["a.tql", "b.tql"]


def test_parse_schema_caps_strips_comments():
    schema = """
    define
      # entity ghost, owns ghost-id;
      attribute submission-id, value string;
      attribute owner-email, value string;
      entity homologation-submission,
        owns submission-id @key,  # trailing comment
        owns owner-email @card(0..1);
    """

    attributes, owns_of = apply_schema.parse_schema_caps(schema)

    assert attributes == {"submission-id", "owner-email"}
    assert owns_of == {"homologation-submission": {"submission-id", "owner-email"}}


def test_undeclared_owns_detected(tmp_path):
    schema = tmp_path / "broken.tql"
    schema.write_text(
        "define\n"
        "  attribute attachment-id, value string;\n"
        "  entity attachment, owns attachment-id @key, owns file-name;\n",
        encoding="utf-8",
    )

    assert apply_schema.find_undeclared_owns([schema]) == ["attachment owns undeclared attribute file-name"]


def test_bundled_schema_is_consistent():
    assert apply_schema.find_undeclared_owns([BUNDLED_SCHEMA]) == []

    attributes, owns_of = apply_schema.parse_schema_caps(BUNDLED_SCHEMA.read_text(encoding="utf-8"))
    assert set(owns_of) == {"homologation-submission", "attachment", "audit-entry"}
    assert "record-version" in owns_of["homologation-submission"]
