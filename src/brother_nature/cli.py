"""
Command-line interface for the Brother Nature core server.

Provides CLI commands for server management:
- init-db: Initialize the database schema
- create-user: Create an account (user, steward or admin)
- set-role: Change an account's role
- run: Start the API server
- purge-challenges: Delete long-expired wallet challenges
- recover-rewards: Reconcile rewards interrupted mid-submission
- sign-message: Sign a challenge message with a local seed (development aid)

Usage:
    bn-server init-db
    bn-server create-user alice --role steward
    bn-server run [--port PORT] [--host HOST]

Environment Variables:
    BN_ADMIN_USER: Username for the bootstrap admin (used by init-db if set)
    BN_ADMIN_PASSWORD: Password for the bootstrap admin
    BN_USER_PASSWORD: Password for create-user when not running interactively
    BN_SIGNER_SEED: Seed used by sign-message when not running interactively
"""

import argparse
import asyncio
import getpass
import json
import os
import sys
from datetime import timedelta

MIN_PASSWORD_LENGTH = 8
ROLES = ("user", "steward", "admin")


def _read_password(username: str) -> str | None:
    """Get a password from BN_USER_PASSWORD or an interactive prompt."""
    env_password = os.environ.get("BN_USER_PASSWORD")
    if env_password:
        return env_password
    if not sys.stdin.isatty():
        print(
            "Error: No password provided.\n"
            "Set BN_USER_PASSWORD or run interactively to be prompted.",
            file=sys.stderr,
        )
        return None

    while True:
        password = getpass.getpass(f"Password for {username}: ")
        if len(password) < MIN_PASSWORD_LENGTH:
            print(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
            continue
        if password != getpass.getpass("Confirm password: "):
            print("Passwords do not match. Try again.\n")
            continue
        return password


def cmd_init_db(args: argparse.Namespace) -> int:
    """
    Initialize the database schema.

    If BN_ADMIN_USER and BN_ADMIN_PASSWORD are set and the users table is
    empty, a bootstrap admin is created as well.

    Returns:
        0 on success, 1 on error
    """
    from brother_nature.db.schema import init_database

    try:
        init_database()
        print("Database initialized successfully.")
        return 0
    except Exception as e:
        print(f"Error initializing database: {e}", file=sys.stderr)
        return 1


def cmd_create_user(args: argparse.Namespace) -> int:
    """Create an account with the requested role."""
    from brother_nature.db import users_repo
    from brother_nature.db.schema import init_database

    init_database(skip_admin=True)

    username = args.username.strip()
    if not 2 <= len(username) <= 20:
        print("Error: Username must be 2-20 characters.", file=sys.stderr)
        return 1

    password = _read_password(username)
    if password is None:
        return 1
    if len(password) < MIN_PASSWORD_LENGTH:
        print(
            f"Error: Password must be at least {MIN_PASSWORD_LENGTH} characters.",
            file=sys.stderr,
        )
        return 1

    user_id = users_repo.create_user(username, password, role=args.role)
    if user_id is None:
        print(f"Error: User '{username}' already exists.", file=sys.stderr)
        return 1

    print(f"User '{username}' created with role '{args.role}' (id {user_id}).")
    return 0


def cmd_set_role(args: argparse.Namespace) -> int:
    from brother_nature.db import users_repo

    if not users_repo.set_user_role(args.username, args.role):
        print(f"Error: User '{args.username}' not found.", file=sys.stderr)
        return 1
    print(f"User '{args.username}' is now '{args.role}'.")
    return 0


def cmd_purge_challenges(args: argparse.Namespace) -> int:
    """Delete challenges that expired more than the retention window ago."""
    from brother_nature.config import config
    from brother_nature.wallet.challenges import ChallengeManager

    days = args.retention_days if args.retention_days is not None else config.challenge.retention_days
    manager = ChallengeManager(ttl_seconds=config.challenge.ttl_seconds)
    removed = manager.purge_expired(timedelta(days=days))
    print(f"Removed {removed} expired challenge(s).")
    return 0


def cmd_recover_rewards(args: argparse.Namespace) -> int:
    """Settle rewards left PROCESSING by an interrupted server."""
    from brother_nature.api.server import build_chain_client
    from brother_nature.config import config
    from brother_nature.rewards.ledger import RewardLedger

    async def _recover() -> int:
        chain = build_chain_client(config)
        ledger = RewardLedger.from_config(chain, config)
        try:
            settled = await ledger.recover_interrupted()
        finally:
            await chain.disconnect()
        for request in settled:
            print(f"{request.id}: {request.status.value}")
        return len(settled)

    try:
        count = asyncio.run(_recover())
    except Exception as e:
        print(f"Error recovering rewards: {e}", file=sys.stderr)
        return 1
    print(f"Reconciled {count} reward(s).")
    return 0


def cmd_sign_message(args: argparse.Namespace) -> int:
    """
    Sign a challenge message and print ``{signature, publicKey, address}``.

    For local testing against a testnet account only. The message is read
    from a file (``-`` for stdin) so it is signed byte-for-byte.
    """
    from xrpl.core.keypairs import derive_classic_address, derive_keypair, sign

    seed = os.environ.get("BN_SIGNER_SEED")
    if not seed:
        if not sys.stdin.isatty() and args.message_file == "-":
            print("Error: Set BN_SIGNER_SEED when reading the message from stdin.", file=sys.stderr)
            return 1
        seed = getpass.getpass("Seed: ")

    if args.message_file == "-":
        message = sys.stdin.read()
    else:
        with open(args.message_file, encoding="utf-8") as handle:
            message = handle.read()
    if args.strip_newline and message.endswith("\n"):
        message = message[:-1]

    try:
        public_key, private_key = derive_keypair(seed)
        signature = sign(message.encode("utf-8"), private_key)
    except Exception as e:
        print(f"Error: Signing failed: {e}", file=sys.stderr)
        return 1

    print(
        json.dumps(
            {
                "signature": signature,
                "publicKey": public_key,
                "address": derive_classic_address(public_key),
            },
            indent=2,
        )
    )
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    """
    Run the API server.

    Initializes the database if it does not exist yet, configures logging
    and starts uvicorn with the application factory.

    Returns:
        0 on clean shutdown (Ctrl+C), 1 on startup error
    """
    import uvicorn

    from brother_nature.config import config
    from brother_nature.db.connection import get_db_path
    from brother_nature.db.schema import init_database
    from brother_nature.logging_setup import configure_logging

    configure_logging(config.logging)

    if not get_db_path().exists():
        print("Database not found. Initializing...")
        init_database()

    host = args.host or config.server.host
    port = args.port or config.server.port

    try:
        uvicorn.run(
            "brother_nature.api.server:create_app",
            factory=True,
            host=host,
            port=port,
            log_config=None,
        )
        return 0
    except KeyboardInterrupt:
        print("\nServer stopped.")
        return 0
    except Exception as e:
        print(f"Error starting server: {e}", file=sys.stderr)
        return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bn-server",
        description="Brother Nature core - wallet verification and contribution rewards",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    init_parser = subparsers.add_parser(
        "init-db",
        help="Initialize the database schema",
        description=(
            "Initialize the database with required tables. "
            "If BN_ADMIN_USER and BN_ADMIN_PASSWORD are set, creates an admin."
        ),
    )
    init_parser.set_defaults(func=cmd_init_db)

    user_parser = subparsers.add_parser("create-user", help="Create an account")
    user_parser.add_argument("username")
    user_parser.add_argument("--role", choices=ROLES, default="user")
    user_parser.set_defaults(func=cmd_create_user)

    role_parser = subparsers.add_parser("set-role", help="Change an account's role")
    role_parser.add_argument("username")
    role_parser.add_argument("role", choices=ROLES)
    role_parser.set_defaults(func=cmd_set_role)

    run_parser = subparsers.add_parser("run", help="Run the API server")
    run_parser.add_argument("--port", "-p", type=int, help="API port (default: BN_PORT or 8000)")
    run_parser.add_argument("--host", type=str, help="Bind host (default: BN_HOST or 0.0.0.0)")
    run_parser.set_defaults(func=cmd_run)

    purge_parser = subparsers.add_parser(
        "purge-challenges", help="Delete wallet challenges that expired long ago"
    )
    purge_parser.add_argument(
        "--retention-days",
        type=int,
        help="Keep challenges that expired within this many days (default from config)",
    )
    purge_parser.set_defaults(func=cmd_purge_challenges)

    recover_parser = subparsers.add_parser(
        "recover-rewards", help="Reconcile rewards interrupted mid-submission"
    )
    recover_parser.set_defaults(func=cmd_recover_rewards)

    sign_parser = subparsers.add_parser(
        "sign-message", help="Sign a challenge message with a local seed (testnet only)"
    )
    sign_parser.add_argument("message_file", help="File containing the message, or - for stdin")
    sign_parser.add_argument(
        "--strip-newline",
        action="store_true",
        help="Drop one trailing newline added by editors or echo",
    )
    sign_parser.set_defaults(func=cmd_sign_message)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
