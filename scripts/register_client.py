#!/usr/bin/env python3
"""Register a Frostpaw client application.

Frostpaw clients are created out-of-band; the login flows only read them.

Usage:
    # Using environment variables:
    CLIENT_ID=my-app CLIENT_NAME="My App" CLIENT_OWNER_ID=563808552288780322 python scripts/register_client.py

    # Or with command line args:
    python scripts/register_client.py --client-id my-app --name "My App" --owner-id 563808552288780322

Environment Variables:
    CLIENT_ID, CLIENT_NAME, CLIENT_OWNER_ID, CLIENT_DOMAIN, CLIENT_PRIVACY_POLICY
    DATABASE_URL: PostgreSQL connection string (required unless --dry-run)
"""
from __future__ import annotations

import argparse
import os
import re
import secrets
import sys
from pathlib import Path

# Add project root to path for imports
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

_CLIENT_ID_PATTERN = re.compile(r"^[a-z0-9][a-z0-9_-]{2,63}$")


def validate_client_id(client_id: str) -> bool:
    return bool(_CLIENT_ID_PATTERN.match(client_id))


def register_client(
    client_id: str,
    name: str,
    owner_id: int,
    *,
    domain: str | None = None,
    privacy_policy: str | None = None,
    dry_run: bool = False,
) -> dict:
    """Create the client and return its id and freshly generated secret.

    Returns:
        dict with client_id, secret and status ('created', 'exists' or 'dry_run')
    """
    # Import here to avoid loading config before env vars are set
    from sunbeam.config import get_settings
    from sunbeam.service.runtime import _build_store

    store = _build_store(get_settings())
    try:
        existing = store.get_client(client_id)
        if existing:
            print(f"Client {client_id} already exists (owner: {existing.owner_id})")
            return {"client_id": client_id, "secret": None, "status": "exists"}

        if dry_run:
            print(f"[DRY RUN] Would register client {client_id} for owner {owner_id}")
            return {"client_id": client_id, "secret": None, "status": "dry_run"}

        secret = secrets.token_urlsafe(48)
        store.create_client(
            client_id,
            name,
            secret,
            owner_id,
            domain=domain,
            privacy_policy=privacy_policy,
        )
        return {"client_id": client_id, "secret": secret, "status": "created"}
    finally:
        store.close()


def main():
    parser = argparse.ArgumentParser(
        description="Register a Frostpaw client",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--client-id", default=os.environ.get("CLIENT_ID"))
    parser.add_argument("--name", default=os.environ.get("CLIENT_NAME"))
    parser.add_argument("--owner-id", default=os.environ.get("CLIENT_OWNER_ID"))
    parser.add_argument("--domain", default=os.environ.get("CLIENT_DOMAIN"))
    parser.add_argument(
        "--privacy-policy", default=os.environ.get("CLIENT_PRIVACY_POLICY")
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be done without making changes",
    )

    args = parser.parse_args()

    if not args.client_id or not validate_client_id(args.client_id):
        print("Error: --client-id must be 3-64 chars of lowercase letters, digits, '-' or '_'")
        sys.exit(1)

    if not args.name:
        print("Error: --name or CLIENT_NAME environment variable required")
        sys.exit(1)

    try:
        owner_id = int(args.owner_id)
    except (TypeError, ValueError):
        print("Error: --owner-id must be a numeric Discord user id")
        sys.exit(1)

    if not os.environ.get("DATABASE_URL"):
        if not args.dry_run:
            print("Error: DATABASE_URL is required (use --dry-run to preview without it)")
            sys.exit(1)
        os.environ["USE_MEMORY_STORE"] = "true"

    try:
        result = register_client(
            args.client_id,
            args.name,
            owner_id,
            domain=args.domain,
            privacy_policy=args.privacy_policy,
            dry_run=args.dry_run,
        )
    except Exception as e:
        print(f"Error: {e}")
        sys.exit(1)

    if result["status"] == "created":
        print("\nFrostpaw client registered!")
        print(f"  Client ID: {result['client_id']}")
        print(f"  Secret:    {result['secret']}")
        print("  Store the secret now; it is the HMAC key for login challenges.")


if __name__ == "__main__":
    main()
