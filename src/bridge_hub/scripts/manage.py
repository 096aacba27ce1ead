# src/bridge_hub/scripts/manage.py
"""
Operator commands for seeding endpoints and API keys.

Usage:
    python -m bridge_hub.scripts.manage init-db
    python -m bridge_hub.scripts.manage create-endpoint --user USER --name NAME \\
        --alias ALIAS --target-url URL [--method POST ...] [--map src=dst ...] \\
        [--require-api-key] [--inactive]
    python -m bridge_hub.scripts.manage issue-key --user USER --name NAME \\
        [--endpoint ENDPOINT_ID ...] [--expires-at ISO8601]
"""

from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence
from datetime import datetime

from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bridge_hub.db.session import SessionLocal, create_tables
from bridge_hub.models import ApiKey, Endpoint
from bridge_hub.schemas import ApiKeyCreate, ApiKeyIssued, EndpointCreate
from bridge_hub.services.key_authorizer import generate_api_key


class CommandError(RuntimeError):
    """Raised when a command cannot complete; the message is shown to the operator."""


def parse_mapping(pairs: Sequence[str]) -> dict[str, str]:
    """Parse `source=target` pairs into a rename mapping."""
    mapping: dict[str, str] = {}
    for pair in pairs:
        source, sep, target = pair.partition("=")
        if not sep or not source or not target:
            raise CommandError(f"Invalid mapping '{pair}', expected source=target")
        mapping[source] = target
    return mapping


def create_endpoint(db: Session, user_id: str, data: EndpointCreate) -> Endpoint:
    """Insert a new endpoint owned by `user_id`.

    Raises:
        CommandError: If the alias is already taken
    """
    if db.query(Endpoint).filter(Endpoint.alias == data.alias).first() is not None:
        raise CommandError(f"Alias '{data.alias}' is already in use")

    endpoint = Endpoint(
        user_id=user_id,
        name=data.name,
        alias=data.alias,
        target_url=str(data.target_url),
        description=data.description,
        allowed_methods=list(data.allowed_methods),
        payload_mapping=dict(data.payload_mapping) or None,
        require_api_key=data.require_api_key,
        is_active=data.is_active,
    )
    db.add(endpoint)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise CommandError(f"Alias '{data.alias}' is already in use") from exc
    db.refresh(endpoint)
    return endpoint


def issue_api_key(db: Session, user_id: str, data: ApiKeyCreate) -> ApiKeyIssued:
    """Create an API key for `user_id` and return the raw secret once.

    Raises:
        CommandError: If a scoped endpoint does not belong to `user_id`
    """
    scope = list(dict.fromkeys(data.allowed_endpoint_ids or []))
    if scope:
        owned = {
            row.id
            for row in db.query(Endpoint.id)
            .filter(Endpoint.user_id == user_id, Endpoint.id.in_(scope))
            .all()
        }
        missing = [endpoint_id for endpoint_id in scope if endpoint_id not in owned]
        if missing:
            raise CommandError(f"Unknown endpoint(s) for user {user_id}: {', '.join(missing)}")

    issued = generate_api_key()
    api_key = ApiKey(
        user_id=user_id,
        name=data.name,
        key_hash=issued.key_hash,
        key_prefix=issued.key_prefix,
        allowed_endpoint_ids=scope or None,
        expires_at=data.expires_at,
    )
    db.add(api_key)
    db.commit()
    db.refresh(api_key)

    return ApiKeyIssued(
        id=api_key.id,
        name=api_key.name,
        key_prefix=api_key.key_prefix,
        api_key=issued.raw_key,
        allowed_endpoint_ids=scope or None,
        expires_at=data.expires_at,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="bridge-hub", description=__doc__.splitlines()[1])
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create all tables in the configured database")

    endpoint = sub.add_parser("create-endpoint", help="Register a new repeater endpoint")
    endpoint.add_argument("--user", required=True, help="Owner user id")
    endpoint.add_argument("--name", required=True)
    endpoint.add_argument("--alias", required=True)
    endpoint.add_argument("--target-url", required=True)
    endpoint.add_argument("--description")
    endpoint.add_argument(
        "--method",
        action="append",
        dest="methods",
        help="Allowed HTTP method (repeatable, defaults to POST)",
    )
    endpoint.add_argument(
        "--map",
        action="append",
        dest="mapping",
        default=[],
        help="Rename a payload field, as source=target (repeatable)",
    )
    endpoint.add_argument("--require-api-key", action="store_true")
    endpoint.add_argument("--inactive", action="store_true")

    key = sub.add_parser("issue-key", help="Issue an API key (printed once)")
    key.add_argument("--user", required=True, help="Owner user id")
    key.add_argument("--name", required=True)
    key.add_argument(
        "--endpoint",
        action="append",
        dest="endpoints",
        help="Restrict the key to this endpoint id (repeatable)",
    )
    key.add_argument("--expires-at", type=datetime.fromisoformat)

    return parser


def run(args: argparse.Namespace, db: Session) -> None:
    if args.command == "create-endpoint":
        data = EndpointCreate(
            name=args.name,
            alias=args.alias,
            target_url=args.target_url,
            description=args.description,
            allowed_methods=args.methods or ["POST"],
            payload_mapping=parse_mapping(args.mapping),
            require_api_key=args.require_api_key,
            is_active=not args.inactive,
        )
        endpoint = create_endpoint(db, args.user, data)
        print(f"Created endpoint {endpoint.id} at /r/{endpoint.alias} -> {endpoint.target_url}")
    elif args.command == "issue-key":
        issued = issue_api_key(
            db,
            args.user,
            ApiKeyCreate(
                name=args.name,
                allowed_endpoint_ids=args.endpoints,
                expires_at=args.expires_at,
            ),
        )
        print(f"Issued API key {issued.id} ({issued.key_prefix})")
        print(f"Secret (shown once): {issued.api_key}")


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    if args.command == "init-db":
        create_tables()
        print("Database tables created")
        return 0

    try:
        with SessionLocal() as db:
            run(args, db)
    except (CommandError, ValidationError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
