"""
TypeDB Connection and Schema Management

Connection utilities and schema loading for the homologation database.
The driver is imported lazily so that in-memory deployments and unit tests
never touch it.
"""

import logging
import re
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from homologation.config import TypeDBConfig, config
from homologation.schema.homologation import SCHEMA_PATH

logger = logging.getLogger(__name__)

DEFAULT_SCHEMA_PATH = SCHEMA_PATH

# Server messages for commits that lost to a concurrent writer
_CONFLICT_RE = re.compile(r"isolation|conflict", re.IGNORECASE)


class CommitConflictError(Exception):
    """A write transaction was rejected at commit by a concurrent change."""


# ============================================================================
# Lazy TypeDB Import
# ============================================================================

TYPEDB_AVAILABLE = False
TypeDB = None
TransactionType = None
Credentials = None
DriverOptions = None


def _load_typedb() -> None:
    """Import the TypeDB driver on first use. Raises ImportError if missing."""
    global TYPEDB_AVAILABLE, TypeDB, TransactionType, Credentials, DriverOptions

    if TYPEDB_AVAILABLE:
        return

    from typedb.driver import Credentials as _Credentials
    from typedb.driver import DriverOptions as _DriverOptions
    from typedb.driver import TransactionType as _TransactionType
    from typedb.driver import TypeDB as _TypeDB

    TypeDB = _TypeDB
    TransactionType = _TransactionType
    Credentials = _Credentials
    DriverOptions = _DriverOptions
    TYPEDB_AVAILABLE = True
    logger.info("TypeDB driver loaded successfully")


class TypeDBConnection:
    """Manages the TypeDB driver and query execution."""

    def __init__(
        self,
        address: Optional[str] = None,
        database: Optional[str] = None,
        settings: Optional[TypeDBConfig] = None,
    ):
        self.settings = settings or config.typedb
        self.address = address or self.settings.address
        self.database = database or self.settings.database
        self._driver = None

    @property
    def driver(self):
        return self._driver

    def connect(self):
        """Establish connection to TypeDB."""
        if self._driver is None:
            _load_typedb()
            creds = Credentials(self.settings.username, self.settings.password)
            # TLS is off for a local server, on for TypeDB Cloud
            opts = DriverOptions(
                is_tls_enabled=self.settings.tls_enabled,
                tls_root_ca_path=self.settings.tls_root_ca_path,
            )
            self._driver = TypeDB.driver(self.address, creds, opts)
            logger.info(f"Connected to TypeDB at {self.address}")
        return self._driver

    def close(self):
        """Close the connection."""
        if self._driver:
            self._driver.close()
            self._driver = None

    def ensure_database(self) -> bool:
        """Create the database if it doesn't exist. Returns True if created."""
        databases = self.connect().databases
        if databases.contains(self.database):
            logger.info(f"Database already exists: {self.database}")
            return False
        databases.create(self.database)
        logger.info(f"Created database: {self.database}")
        return True

    def load_schema(self, schema_paths: Optional[List[Path]] = None) -> None:
        """
        Load TypeQL schema files into the database in a single schema transaction.

        Args:
            schema_paths: .tql files to apply, in order. Defaults to the
                bundled homologation schema.
        """
        if schema_paths is None:
            schema_paths = [DEFAULT_SCHEMA_PATH]

        schema_content = "\n\n".join(p.read_text(encoding="utf-8") for p in schema_paths)

        driver = self.connect()
        with driver.transaction(self.database, TransactionType.SCHEMA) as tx:
            tx.query(schema_content).resolve()
            tx.commit()
        logger.info(f"Schema loaded: {[p.name for p in schema_paths]}")

    # ========================================================================
    # Query Execution
    # ========================================================================

    @staticmethod
    def execute(tx, query: str):
        """Run one query inside an open transaction and resolve its answer."""
        result = tx.query(query)
        return result.resolve() if hasattr(result, "resolve") else result

    @staticmethod
    def _to_rows(answer) -> List[Dict[str, Any]]:
        """Normalize driver answers into list-of-dicts with stable keys."""
        if answer is None:
            return []

        if hasattr(answer, "is_concept_rows") and answer.is_concept_rows():
            return TypeDBConnection._concept_rows(answer)

        if hasattr(answer, "is_concept_documents") and answer.is_concept_documents():
            return list(answer.as_concept_documents())

        if hasattr(answer, "as_concept_rows"):
            return TypeDBConnection._concept_rows(answer)

        if hasattr(answer, "is_ok") and answer.is_ok():
            return []

        return list(answer)

    @staticmethod
    def _concept_rows(answer) -> List[Dict[str, Any]]:
        rows: List[Dict[str, Any]] = []
        for concept_row in answer.as_concept_rows():
            row: Dict[str, Any] = {}
            for col in concept_row.column_names():
                key = col[1:] if isinstance(col, str) and col.startswith("$") else col
                concept = concept_row.get(col)
                if concept is None:
                    continue
                if hasattr(concept, "is_attribute") and concept.is_attribute():
                    row[key] = concept.as_attribute().get_value()
                elif hasattr(concept, "is_value") and concept.is_value():
                    row[key] = concept.as_value().get()
                elif hasattr(concept, "get_iid"):
                    row[key] = concept.get_iid()
                else:
                    row[key] = str(concept)
            rows.append(row)
        return rows

    def query_rows(self, tx, query: str) -> List[Dict[str, Any]]:
        """Run a query inside an open transaction and normalize its answer."""
        return self._to_rows(self.execute(tx, query))

    @contextmanager
    def transaction(self, write: bool = False):
        """
        Context manager for a read or write transaction.

        Write transactions commit when the block exits normally; an
        exception inside the block leaves them uncommitted. A commit
        rejected because a concurrent transaction changed the same data
        raises CommitConflictError.
        """
        driver = self.connect()
        tx_type = TransactionType.WRITE if write else TransactionType.READ
        with driver.transaction(self.database, tx_type) as tx:
            yield tx
            if write:
                try:
                    tx.commit()
                except Exception as e:
                    if _CONFLICT_RE.search(str(e)):
                        raise CommitConflictError(str(e)) from e
                    raise

    def read(self, query: str) -> List[Dict[str, Any]]:
        """Execute a read query and return normalized rows or documents."""
        with self.transaction() as tx:
            return self.query_rows(tx, query)

    def write(self, queries: Iterable[str]) -> None:
        """Execute one or more write queries atomically."""
        if isinstance(queries, str):
            queries = [queries]
        with self.transaction(write=True) as tx:
            for query in queries:
                self.execute(tx, query)


def escape(value: Optional[str]) -> str:
    """Escape a string for a TypeQL string literal."""
    if value is None:
        return ""
    return value.replace("\\", "\\\\").replace('"', '\\"')


def init_database(connection: Optional[TypeDBConnection] = None) -> TypeDBConnection:
    """Create the database if needed and apply the bundled schema."""
    connection = connection or TypeDBConnection()
    connection.ensure_database()
    connection.load_schema()
    logger.info("Homologation database initialized")
    return connection


# ============================================================================
# Value Conversion
# ============================================================================

_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


def typeql_datetime(dt: datetime) -> str:
    """TypeDB `datetime` literal (timezone-naive, millisecond precision)."""
    return dt.replace(tzinfo=None).isoformat(timespec="milliseconds")


def parse_datetime(value: Any) -> Optional[datetime]:
    """Read a datetime back from a driver value or fetched document."""
    if value is None or isinstance(value, datetime):
        return value
    text = str(value).rstrip("Z")
    # fromisoformat accepts at most microseconds; TypeDB returns nanoseconds
    text = _FRACTION_RE.sub(r"\1", text)
    return datetime.fromisoformat(text)


def first_value(value: Any) -> Any:
    """Fetched attributes may come back as single values or lists."""
    if isinstance(value, list):
        return value[0] if value else None
    return value


def unwrap_document(document: Dict[str, Any], key: str) -> Dict[str, Any]:
    """Return the nested object under `key` of a fetch document."""
    inner = document.get(key, document)
    return inner if isinstance(inner, dict) else document
