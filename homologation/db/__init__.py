"""Homologation Database Connections"""

from homologation.db.typedb_client import (
    DEFAULT_SCHEMA_PATH,
    CommitConflictError,
    TypeDBConnection,
    escape,
    first_value,
    init_database,
    parse_datetime,
    typeql_datetime,
    unwrap_document,
)

__all__ = [
    "TypeDBConnection",
    "CommitConflictError",
    "DEFAULT_SCHEMA_PATH",
    "escape",
    "first_value",
    "init_database",
    "parse_datetime",
    "typeql_datetime",
    "unwrap_document",
]
