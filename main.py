#!/usr/bin/env python3
"""
Dynamic Listing identity service -- management commands.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 8000 --reload
  python main.py create-admin --name "Ada Lovelace" --email ada@example.com

create-admin bootstraps an administrator through the same invitation flow the
admin API uses: a passwordless, pre-verified account plus a 7-day set-password
link sent by email. With no mail transport configured the message (and the
link) is written to the log instead.

Environment variables (see core/config.py for the full list):
  SECRET_KEY     Required unless DEBUG=true. At least 32 characters.
  DATABASE_URL   SQLAlchemy URL. Defaults to a local SQLite file.
  FRONTEND_URL   Base URL used to build links in outbound email.
"""

import argparse
import logging
import sys

from auth.errors import AuthError
from auth.flows import CredentialFlows
from auth.google import GoogleIdentityVerifier
from auth.mail import MailDispatcher
from auth.storage import LocalBlobStorage
from auth.store import UserStore
from core.config import get_settings


def _create_admin(name: str, email: str) -> int:
    settings = get_settings()
    store = UserStore(settings.database_url)
    mailer = MailDispatcher(settings)
    flows = CredentialFlows(
        store=store,
        mailer=mailer,
        google=GoogleIdentityVerifier(settings.google_client_id),
        storage=LocalBlobStorage(settings.upload_dir, f"{settings.public_base_url.rstrip('/')}/uploads"),
        settings=settings,
    )
    try:
        user = flows.create_admin(name, email)
    except AuthError as exc:
        print(f"  [!] {exc.message}")
        return 1
    finally:
        # Wait for the invitation email before the process exits.
        mailer.close()
        store.close()

    print(f"  Admin created: {user.email} (id {user.id})")
    if not mailer.is_configured:
        print("  Email is not configured -- copy the invitation link from the log above.")
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="listing-identity",
        description="Dynamic Listing identity service management commands.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Run the API server with uvicorn")
    serve.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, default=8000, help="Port (default: 8000)")
    serve.add_argument("--reload", action="store_true", help="Reload on code changes (development)")

    admin = sub.add_parser("create-admin", help="Invite an administrator by email")
    admin.add_argument("--name", required=True, help="Display name")
    admin.add_argument("--email", required=True, help="Email address the invitation is sent to")

    args = parser.parse_args()

    if args.command == "serve":
        import uvicorn

        uvicorn.run("api.main:app", host=args.host, port=args.port, reload=args.reload)
    elif args.command == "create-admin":
        logging.basicConfig(level=logging.INFO, format="%(levelname)-5s %(name)s %(message)s")
        sys.exit(_create_admin(args.name, args.email))
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
