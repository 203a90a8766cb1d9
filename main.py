#!/usr/bin/env python3
"""
Auth gateway -- credential-issuing front door for a generic resource API.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 8080
  python main.py import-db db.json

Environment variables (see core/config.py for the full list):
  SECRET_KEY     Token signing key, at least 32 characters. Required unless DEBUG=true.
  DATABASE_URL   SQLAlchemy URL of the store (default: sqlite:///authgate.db).
  BCRYPT_ROUNDS  bcrypt cost factor (default: 10).
"""

import argparse
import json
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from auth.models import User
from auth.passwords import PasswordHasher
from auth.store import UserStore
from core.config import get_settings
from resources.store import RESERVED_COLLECTIONS, ResourceStore, UnknownCollection


@dataclass
class ImportSummary:
    users_imported: int = 0
    users_skipped: int = 0
    collections: Optional[dict] = None  # name -> documents written
    documents_skipped: Optional[dict] = None  # name -> documents refused
    keys_skipped: Optional[list] = None  # top-level keys that could not be imported


def _load_db_file(path: str) -> Optional[dict]:
    """Read a json-server style db.json. Returns None (after printing why) if unusable.

    Resolves symlinks and verifies the path is a regular file before reading.
    """
    file_path = Path(path).resolve()
    if not file_path.is_file():
        print(f"  [!] '{path}' is not a readable file.")
        return None
    try:
        data = json.loads(file_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        print(f"  [!] Could not read '{path}': {e}")
        return None
    if not isinstance(data, dict):
        print(f"  [!] '{path}' must contain a JSON object of collections.")
        return None
    return data


def _user_from_record(record: dict) -> Optional[User]:
    """Map a json-server user ({id, email, name, password, createdAt}) to a User."""
    if not isinstance(record, dict):
        return None
    email, password_hash = record.get("email"), record.get("password")
    if not isinstance(email, str) or not email or not isinstance(password_hash, str) or not password_hash:
        return None
    user_id = record.get("id")
    return User(
        id=user_id if isinstance(user_id, int) and not isinstance(user_id, bool) else None,
        email=email,
        name=str(record.get("name") or ""),
        password_hash=password_hash,
        created_at=record.get("createdAt"),
    )


def import_db(data: dict, user_store: UserStore, resource_store: ResourceStore) -> ImportSummary:
    """Load users into the credential store and every other list into a resource collection.

    Password hashes are copied as-is: they are bcrypt strings already. Users
    whose email (or id) is taken are skipped, never overwritten. A "users"
    value that is not a list, and lists under names the resource store
    refuses, are reported in keys_skipped. Non-list values other than
    "users" are singular json-server resources and are ignored.
    """
    summary = ImportSummary(collections={}, documents_skipped={}, keys_skipped=[])
    records = data.get("users")
    if records is None:
        records = []
    elif not isinstance(records, list):
        summary.keys_skipped.append("users")
        records = []
    for record in records:
        user = _user_from_record(record)
        if user is None:
            summary.users_skipped += 1
            continue
        if user.id is None:
            if user_store.exists(user.email):
                summary.users_skipped += 1
                continue
            user_store.append(user)
            summary.users_imported += 1
        elif user_store.import_user(user):
            summary.users_imported += 1
        else:
            summary.users_skipped += 1

    for name, documents in data.items():
        if name in RESERVED_COLLECTIONS or not isinstance(documents, list):
            continue
        try:
            written, skipped = resource_store.import_collection(name, documents)
        except UnknownCollection:
            summary.keys_skipped.append(name)
            continue
        summary.collections[name] = written
        if skipped:
            summary.documents_skipped[name] = skipped
    return summary


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    print(f"\nAuth gateway listening on http://{args.host}:{args.port}")
    print("Public routes:")
    print(f"   POST http://{args.host}:{args.port}/auth/register")
    print(f"   POST http://{args.host}:{args.port}/auth/login")
    print(f"   GET  http://{args.host}:{args.port}/auth/verify")
    print("Every other path requires 'Authorization: Bearer <token>'.\n")
    uvicorn.run("asgi:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def _import(args: argparse.Namespace) -> int:
    data = _load_db_file(args.path)
    if data is None:
        return 1
    settings = get_settings()
    user_store = UserStore(settings.database_url, PasswordHasher(rounds=settings.bcrypt_rounds))
    resource_store = ResourceStore(settings.database_url)
    try:
        summary = import_db(data, user_store, resource_store)
    finally:
        user_store.close()
        resource_store.close()

    print(f"  Users: {summary.users_imported} imported, {summary.users_skipped} skipped.")
    for name, count in sorted(summary.collections.items()):
        skipped = summary.documents_skipped.get(name, 0)
        suffix = f", {skipped} skipped" if skipped else ""
        print(f"  /{name}: {count} item(s) imported{suffix}.")
    for key in summary.keys_skipped:
        print(f"  [!] '{key}' was not imported (not a list of objects, or not a valid collection name).")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="authgate",
        description="Credential-issuing authentication gateway in front of a generic resource API.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py serve
  python main.py serve --port 8080 --reload
  DATABASE_URL=sqlite:///prod.db python main.py import-db db.json
        """,
    )
    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Run the HTTP server")
    serve.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, default=3001, help="Port (default: 3001)")
    serve.add_argument("--reload", action="store_true", help="Restart on code changes (development only)")
    serve.set_defaults(func=_serve)

    imp = sub.add_parser("import-db", help="Import users and collections from a json-server db.json")
    imp.add_argument("path", metavar="PATH", help="Path to the db.json file")
    imp.set_defaults(func=_import)

    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 0
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
