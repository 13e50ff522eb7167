from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from homologation.db import typedb_client
from homologation.db.typedb_client import (
    DEFAULT_SCHEMA_PATH,
    TypeDBConnection,
    escape,
    first_value,
    parse_datetime,
    typeql_datetime,
    unwrap_document,
)


class _AttrConcept:
    def __init__(self, value):
        self._value = value

    def is_attribute(self):
        return True

    def as_attribute(self):
        return self

    def get_value(self):
        return self._value


class _Row:
    def __init__(self, data):
        self._data = data

    def column_names(self):
        return list(self._data.keys())

    def get(self, col):
        return self._data[col]


class _RowsAnswer:
    def __init__(self, rows):
        self._rows = rows

    def is_concept_rows(self):
        return True

    def as_concept_rows(self):
        return self._rows


class _Tx:
    def __init__(self):
        self.calls = []
        self.commits = 0

    def query(self, q):
        self.calls.append(q)
        return SimpleNamespace(resolve=lambda: None)

    def commit(self):
        self.commits += 1

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False


class _Databases:
    def __init__(self, names):
        self.names = set(names)

    def contains(self, name):
        return name in self.names

    def create(self, name):
        self.names.add(name)


class _Driver:
    def __init__(self, databases=()):
        self.txs = []
        self.databases = _Databases(databases)
        self.closed = False

    def transaction(self, database, tx_type):
        tx = _Tx()
        tx.tx_type = tx_type
        self.txs.append(tx)
        return tx

    def close(self):
        self.closed = True


@pytest.fixture(autouse=True)
def fake_transaction_types(monkeypatch):
    monkeypatch.setattr(
        typedb_client,
        "TransactionType",
        SimpleNamespace(READ="read", WRITE="write", SCHEMA="schema"),
    )


def _connection(driver) -> TypeDBConnection:
    connection = TypeDBConnection(address="fake:1729", database="homologation-test")
    connection._driver = driver
    return connection


class TestRowNormalization:

    def test_concept_rows_strip_dollar_prefix(self):
        answer = _RowsAnswer([_Row({"$id": _AttrConcept("sub-1"), "$v": _AttrConcept(3)})])

        assert TypeDBConnection._to_rows(answer) == [{"id": "sub-1", "v": 3}]

    def test_none_answer_is_empty(self):
        assert TypeDBConnection._to_rows(None) == []

    def test_ok_answer_is_empty(self):
        answer = SimpleNamespace(
            is_concept_rows=lambda: False,
            is_concept_documents=lambda: False,
            is_ok=lambda: True,
        )
        assert TypeDBConnection._to_rows(answer) == []

    def test_documents_pass_through(self):
        docs = [{"submission": {"submission-id": "sub-1"}}]
        answer = SimpleNamespace(
            is_concept_rows=lambda: False,
            is_concept_documents=lambda: True,
            as_concept_documents=lambda: iter(docs),
        )
        assert TypeDBConnection._to_rows(answer) == docs


class TestTransactions:

    def test_write_commits_on_success(self):
        driver = _Driver()
        connection = _connection(driver)

        connection.write(["insert $a isa attachment;", "insert $b isa attachment;"])

        assert driver.txs[0].tx_type == "write"
        assert driver.txs[0].calls == ["insert $a isa attachment;", "insert $b isa attachment;"]
        assert driver.txs[0].commits == 1

    def test_write_accepts_single_query(self):
        driver = _Driver()
        _connection(driver).write("insert $a isa attachment;")

        assert driver.txs[0].calls == ["insert $a isa attachment;"]

    def test_write_does_not_commit_on_error(self):
        driver = _Driver()
        connection = _connection(driver)

        with pytest.raises(RuntimeError):
            with connection.transaction(write=True):
                raise RuntimeError("boom")

        assert driver.txs[0].commits == 0

    def test_read_never_commits(self):
        driver = _Driver()
        _connection(driver).read("match $s isa homologation-submission; fetch { };")

        assert driver.txs[0].tx_type == "read"
        assert driver.txs[0].commits == 0


class TestSchemaManagement:

    def test_ensure_database_creates_once(self):
        driver = _Driver()
        connection = _connection(driver)

        assert connection.ensure_database() is True
        assert connection.ensure_database() is False

    def test_load_schema_uses_bundled_file(self):
        driver = _Driver()
        _connection(driver).load_schema()

        tx = driver.txs[0]
        assert tx.tx_type == "schema"
        assert tx.calls == [DEFAULT_SCHEMA_PATH.read_text(encoding="utf-8")]
        assert tx.commits == 1

    def test_close_releases_driver(self):
        driver = _Driver()
        connection = _connection(driver)

        connection.close()

        assert driver.closed
        assert connection.driver is None


class TestValueHelpers:

    def test_escape(self):
        assert escape('say "hi" \\ bye') == 'say \\"hi\\" \\\\ bye'
        assert escape(None) == ""

    def test_typeql_datetime_is_naive_millis(self):
        dt = datetime(2026, 10, 19, 8, 30, 15, 987654, tzinfo=timezone.utc)
        assert typeql_datetime(dt) == "2026-10-19T08:30:15.987"

    def test_parse_datetime_trims_nanoseconds(self):
        assert parse_datetime("2026-10-19T08:30:15.123456789") == datetime(2026, 10, 19, 8, 30, 15, 123456)
        assert parse_datetime("2026-10-19T08:30:15") == datetime(2026, 10, 19, 8, 30, 15)
        assert parse_datetime(None) is None

    def test_first_value_and_unwrap(self):
        assert first_value(["a", "b"]) == "a"
        assert first_value([]) is None
        assert first_value("x") == "x"
        assert unwrap_document({"entry": {"entry-id": "aud_1"}}, "entry") == {"entry-id": "aud_1"}
        assert unwrap_document({"entry-id": "aud_1"}, "entry") == {"entry-id": "aud_1"}
