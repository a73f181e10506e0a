from __future__ import annotations

import argparse
import asyncio
import sys
from uuid import uuid4

from fleetcomply.domain.models import ApiKey, User
from fleetcomply.persistence.db import SessionLocal
from fleetcomply.services.auth.api_keys import generate_api_key, normalize_role


def _build_parser() -> argparse.ArgumentParser:
    # Keep CLI arguments explicit to avoid accidental key misuse.
    parser = argparse.ArgumentParser(description="Create an API key for a user")
    parser.add_argument(
        "--role",
        required=True,
        help="Role: platform_admin|transport_manager|standalone_user|staff|other",
    )
    parser.add_argument("--name", required=True, help="Key label")
    parser.add_argument("--user-id", default=None, help="Existing user id to attach")
    parser.add_argument("--email", default=None, help="Optional user email")
    parser.add_argument("--full-name", default=None, help="Optional display name")
    return parser


async def _create_key(args: argparse.Namespace) -> int:
    role = normalize_role(args.role)
    user_id = args.user_id or uuid4().hex
    key_id, raw_key, key_prefix, key_hash = generate_api_key()

    async with SessionLocal() as session:
        user = await session.get(User, user_id)
        if user is None:
            user = User(
                id=user_id,
                email=args.email,
                full_name=args.full_name,
                role=role,
                is_active=True,
            )
            session.add(user)
        elif user.role != role:
            # Roles are fixed at account creation; a new key never changes them.
            raise ValueError(f"User {user_id} already has role {user.role}")
        # Flush the user row before inserting API keys to satisfy FK constraints.
        await session.flush()

        session.add(
            ApiKey(
                id=key_id,
                user_id=user.id,
                key_prefix=key_prefix,
                key_hash=key_hash,
                name=args.name,
            )
        )
        await session.commit()

    print("API key created:")
    print(f"  user_id: {user_id}")
    print(f"  key_id: {key_id}")
    print(f"  key_prefix: {key_prefix}")
    print("  api_key: ")
    print(f"    {raw_key}")
    return 0


def main() -> int:
    parser = _build_parser()
    args = parser.parse_args()
    try:
        return asyncio.run(_create_key(args))
    except Exception as exc:  # noqa: BLE001 - surface provisioning failures clearly
        print(f"create_api_key failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
