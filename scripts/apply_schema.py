#!/usr/bin/env python3
import argparse
import glob
import os
import re
import sys
import time
from pathlib import Path

from typedb.driver import Credentials, DriverOptions, TransactionType, TypeDB

DEFAULT_SCHEMA = "homologation/schema/homologation.tql"


def env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


def resolve_schema_files(schema_args: list[str]) -> list[Path]:
    """Resolve schema file arguments (paths and/or globs) deterministically."""
    if not schema_args:
        raise ValueError("No --schema provided")

    resolved: list[Path] = []
    for item in schema_args:
        if not item or not item.strip():
            raise ValueError("Empty --schema argument is invalid")

        matches = sorted(Path(p) for p in glob.glob(item, recursive=True))
        if matches:
            resolved.extend(m for m in matches if m.is_file())
            continue

        path = Path(item)
        if path.is_file():
            resolved.append(path)
            continue

        raise FileNotFoundError(f"Schema file/pattern did not match any files: {item}")

    deduped: list[Path] = []
    seen: set[Path] = set()
    for path in sorted(resolved):
        if path not in seen:
            deduped.append(path)
            seen.add(path)

    if not deduped:
        raise FileNotFoundError("No schema files resolved from provided --schema values.")

    return deduped


def strip_comments(schema: str) -> str:
    return "\n".join(line.split("#", 1)[0] for line in schema.splitlines())


def parse_schema_caps(schema: str) -> tuple[set[str], dict[str, set[str]]]:
    """
    Return (declared attributes, owns per entity) from a TypeQL define block.
    """
    text = strip_comments(schema)
    attributes = set(re.findall(r"\battribute\s+([a-zA-Z0-9_-]+)\s*,", text))

    owns_of: dict[str, set[str]] = {}
    block_re = re.compile(r"\bentity\s+([a-zA-Z0-9_-]+)(?:\s+sub\s+[a-zA-Z0-9_-]+)?\s*,(.*?);", re.S)
    for entity, body in block_re.findall(text):
        owned = re.findall(r"\bowns\s+([a-zA-Z0-9_-]+)", body)
        owns_of.setdefault(entity, set()).update(owned)

    return attributes, owns_of


def find_undeclared_owns(schema_paths: list[Path]) -> list[str]:
    """Entities that own an attribute type no resolved file declares."""
    attributes: set[str] = set()
    owns_of: dict[str, set[str]] = {}
    for path in schema_paths:
        declared, owned = parse_schema_caps(path.read_text(encoding="utf-8"))
        attributes |= declared
        for entity, names in owned.items():
            owns_of.setdefault(entity, set()).update(names)

    issues: list[str] = []
    for entity in sorted(owns_of):
        for name in sorted(owns_of[entity] - attributes):
            issues.append(f"{entity} owns undeclared attribute {name}")
    return issues


def connect_with_retries(
    address: str,
    username: str,
    password: str,
    tls: bool,
    ca_path: str | None,
    retries: int = 30,
    sleep_s: float = 2.0,
):
    creds = Credentials(username, password)
    opts = DriverOptions(is_tls_enabled=tls, tls_root_ca_path=ca_path)

    last_err = None
    for i in range(1, retries + 1):
        try:
            driver = TypeDB.driver(address, creds, opts)
            _ = [d.name for d in driver.databases.all()]
            return driver
        except Exception as e:
            last_err = e
            print(f"[apply_schema] waiting for TypeDB ({i}/{retries})... {e}")
            time.sleep(sleep_s)
    raise RuntimeError(f"TypeDB not ready after {retries} attempts. Last error: {last_err}")


def ensure_database(driver, db: str):
    existing = {d.name for d in driver.databases.all()}
    if db not in existing:
        driver.databases.create(db)
        print(f"[apply_schema] created database: {db}")
    else:
        print(f"[apply_schema] database exists: {db}")


def apply_schema(driver, db: str, schema_paths: list[Path]):
    for schema_path in schema_paths:
        schema = schema_path.read_text(encoding="utf-8")
        with driver.transaction(db, TransactionType.SCHEMA) as tx:
            tx.query(schema).resolve()
            tx.commit()
        print(f"[apply_schema] schema applied: {schema_path}")


def main():
    p = argparse.ArgumentParser(description="Apply the homologation TypeDB schema (local Core or Cloud TLS).")
    p.add_argument(
        "--schema",
        action="append",
        default=None,
        help="Schema file path or glob. May be passed multiple times.",
    )
    p.add_argument("--database", default=os.getenv("TYPEDB_DATABASE", "homologation"))
    p.add_argument("--address", default=os.getenv("TYPEDB_ADDRESS"))
    p.add_argument("--host", default=os.getenv("TYPEDB_HOST", "localhost"))
    p.add_argument("--port", default=os.getenv("TYPEDB_PORT", "1729"))
    p.add_argument("--username", default=os.getenv("TYPEDB_USERNAME", "admin"))
    p.add_argument("--password", default=os.getenv("TYPEDB_PASSWORD", "password"))
    p.add_argument("--recreate", action="store_true", help="Delete and recreate the database before applying.")
    p.add_argument("--check-only", action="store_true", help="Validate schema files without connecting.")
    args = p.parse_args()

    tls = env_bool("TYPEDB_TLS", "false")
    ca_path = os.getenv("TYPEDB_ROOT_CA_PATH") or None

    raw_schema_args = args.schema or [os.getenv("TYPEDB_SCHEMA", DEFAULT_SCHEMA)]
    schema_paths = resolve_schema_files(raw_schema_args)

    print("[apply_schema] resolved schema files:")
    for path in schema_paths:
        print(f"  - {path}")

    issues = find_undeclared_owns(schema_paths)
    if issues:
        for issue in issues:
            print(f"[apply_schema] ERROR: {issue}")
        raise ValueError("Resolved schema set owns undeclared attribute type(s).")

    if args.check_only:
        print("[apply_schema] schema check passed")
        return 0

    address = args.address if args.address else f"{args.host}:{args.port}"
    print(f"[apply_schema] connecting to {address} tls={tls} ca={ca_path}")

    driver = connect_with_retries(address, args.username, args.password, tls, ca_path)
    try:
        if args.recreate:
            if driver.databases.contains(args.database):
                driver.databases.get(args.database).delete()
                print(f"[apply_schema] database deleted: {args.database}")

        ensure_database(driver, args.database)
        apply_schema(driver, args.database, schema_paths)
    finally:
        driver.close()

    return 0


if __name__ == "__main__":
    try:
        sys.exit(main())
    except Exception as e:
        print(f"[apply_schema] ERROR: {e}")
        sys.exit(1)
