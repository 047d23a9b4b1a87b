"""Wagerbook CLI entry point."""

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError

env_file = Path(__file__).parent.parent / ".env"
load_dotenv(env_file)

from wagerbook import __version__
from wagerbook.config import get_settings
from wagerbook.database import get_db_info
from wagerbook.schemas import OperationResult
from wagerbook.services import (
    NotificationDispatcher,
    StaticIdentity,
    SystemIdentity,
    WagerLifecycleService,
    WagerQueryService,
    create_notifier,
)
from wagerbook.store import SqlAlchemyEntityStore

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

logger = logging.getLogger(__name__)


def _init_logfire(engine=None) -> None:
    """Initialize Logfire if available, without failing commands."""
    try:
        from wagerbook.observability import initialize_logfire

        initialize_logfire(get_settings(), engine=engine)
    except Exception as e:
        logger.warning(f"Failed to initialize Logfire: {e}")


async def _execute(service_cls, identity, call) -> OperationResult:
    """Run one service call against the configured store and flush notifications."""
    settings = get_settings()
    store = SqlAlchemyEntityStore.from_config(settings.database)
    _init_logfire(store.engine)
    dispatcher = NotificationDispatcher(create_notifier(settings.notifications))

    try:
        await store.create_schema()
        service = service_cls(
            store,
            identity,
            dispatcher=dispatcher,
            config=settings.lifecycle,
        )
        result = await call(service)
        await dispatcher.drain()
        return result
    finally:
        await dispatcher.notifier.close()
        await store.dispose()


def _run_command(service_cls, identity, call, label: str) -> int:
    """Execute an operation, print its value as JSON, map failure to exit code 1."""
    try:
        result = asyncio.run(_execute(service_cls, identity, call))
    except Exception as e:
        logger.error(f"{label} failed: {e}", exc_info=True)
        print(f"\n❌ {label} failed: {e}\n")
        return 1

    if not result.ok:
        print(f"\n❌ {label} failed [{result.error.code}]: {result.error.message}\n")
        return 1

    print(json.dumps(result.model_dump(mode="json")["value"], indent=2))
    return 0


def _lifecycle(args: argparse.Namespace, call, label: str) -> int:
    return _run_command(WagerLifecycleService, StaticIdentity(args.as_identity), call, label)


def _queries(args: argparse.Namespace, call, label: str) -> int:
    return _run_command(WagerQueryService, StaticIdentity(args.as_identity), call, label)


def cmd_init(args: argparse.Namespace) -> int:
    """Initialize data directory, configuration file and database tables."""
    data_dir = Path("data").resolve()

    try:
        data_dir.mkdir(exist_ok=True)
        logger.info(f"Created data directory: {data_dir}")

        config_path = data_dir / "config.yaml"
        if not config_path.exists():
            config_template = """# Wagerbook Configuration
# Operational parameters only. Secrets (LOGFIRE_TOKEN, database
# passwords) belong in .env, not here.

database:
  url: sqlite+aiosqlite:///data/wagerbook.db
  echo: false

lifecycle:
  max_transient_retries: 3
  # Auto-dispute outcome claims left unanswered this many days (null = never)
  claim_expiry_days: null
  max_description_length: 500

notifications:
  webhook_url: ""
  timeout_seconds: 10.0

api:
  host: 0.0.0.0
  port: 8000
  identity_header: X-User-Id
  allowed_origins:
    - http://localhost:3000
"""
            config_path.write_text(config_template)
            logger.info(f"Created config template: {config_path}")
        else:
            logger.info(f"Config file already exists: {config_path}")

        async def create_tables() -> None:
            store = SqlAlchemyEntityStore.from_config(get_settings().database)
            try:
                await store.create_schema()
            finally:
                await store.dispose()

        asyncio.run(create_tables())
        logger.info("Database tables created")

        print(f"\n✓ Data directory initialized at {data_dir}")
        print("\nNext steps:")
        print("1. Review and customize data/config.yaml if needed")
        print("2. Run 'python -m wagerbook config' to verify configuration")
        print("3. Run 'python -m wagerbook serve' to start the API\n")

        return 0

    except Exception as e:
        logger.error(f"Failed to initialize: {e}")
        print(f"\n❌ Initialization failed: {e}\n")
        return 1


def cmd_config(args: argparse.Namespace) -> int:
    """Display merged configuration."""
    try:
        settings = get_settings()
        db_info = get_db_info(settings.database)

        print("\n=== Wagerbook Configuration ===\n")
        print(f"Data Directory: {settings.data_dir}")
        print(f"Environment: {settings.environment}\n")

        print("Database:")
        print(f"  URL: {db_info['url']}")
        print(f"  Driver: {db_info['driver']}")
        print(f"  Echo SQL: {settings.database.echo}\n")

        print("Lifecycle:")
        print(f"  Max Transient Retries: {settings.lifecycle.max_transient_retries}")
        expiry = settings.lifecycle.claim_expiry_days
        print(f"  Claim Expiry: {f'{expiry} days' if expiry else 'never'}")
        print(f"  Max Description Length: {settings.lifecycle.max_description_length}\n")

        print("Notifications:")
        print(f"  Channel: {'webhook' if settings.notifications.webhook_url else 'log'}")
        print(f"  Timeout: {settings.notifications.timeout_seconds}s\n")

        print("API:")
        print(f"  Bind: {settings.api.host}:{settings.api.port}")
        print(f"  Identity Header: {settings.api.identity_header}")
        print(f"  Allowed Origins: {', '.join(settings.api.allowed_origins)}\n")

        print("Keys:")
        print(f"  Logfire: {'✓ Set' if settings.logfire_token else '✗ Not set'}\n")

        return 0

    except ValidationError as e:
        print("\n❌ Configuration Error:\n")
        for error in e.errors():
            print(f"  • {'.'.join(str(x) for x in error['loc'])}: {error['msg']}")
        print()
        return 1
    except Exception as e:
        logger.error(f"Failed to load config: {e}")
        print(f"\n❌ Failed to load configuration: {e}\n")
        return 1


def cmd_serve(args: argparse.Namespace) -> int:
    """Start the HTTP API."""
    import uvicorn

    from wagerbook.api import create_app

    settings = get_settings()
    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        uvicorn.run(
            create_app(settings),
            host=args.host or settings.api.host,
            port=args.port or settings.api.port,
        )
        return 0
    except KeyboardInterrupt:
        print("\n\nReceived interrupt signal. Shutting down...\n")
        return 0
    except Exception as e:
        logger.error(f"Failed to start API: {e}", exc_info=True)
        print(f"\nFailed to start: {e}\n")
        return 1


def cmd_propose(args: argparse.Namespace) -> int:
    """Propose a wager to one or more responders."""
    due_date = datetime.fromisoformat(args.due) if args.due else None
    return _lifecycle(
        args,
        lambda s: s.propose_wager(
            description=args.description,
            stake=args.stake,
            due_date=due_date,
            responder_ids=args.to,
        ),
        "Propose",
    )


def cmd_respond(args: argparse.Namespace) -> int:
    """Accept or decline an invitation."""
    return _lifecycle(
        args,
        lambda s: s.respond_to_invitation(args.participant_id, args.answer == "accept"),
        "Respond",
    )


def cmd_declare(args: argparse.Namespace) -> int:
    """Declare WON or LOST on a participant row."""
    return _lifecycle(
        args,
        lambda s: s.declare_outcome(args.participant_id, args.outcome),
        "Declare",
    )


def cmd_confirm(args: argparse.Namespace) -> int:
    """Confirm the counterparty's pending claim."""
    return _lifecycle(args, lambda s: s.confirm_outcome(args.participant_id), "Confirm")


def cmd_dispute(args: argparse.Namespace) -> int:
    """Dispute a pending claim and return the pair to ACTIVE."""
    return _lifecycle(args, lambda s: s.dispute_outcome(args.participant_id), "Dispute")


def cmd_cancel(args: argparse.Namespace) -> int:
    """Cancel a wager as its creator."""
    return _lifecycle(args, lambda s: s.cancel_wager(args.wager_id), "Cancel")


def cmd_show(args: argparse.Namespace) -> int:
    """Show a wager with its participants."""
    return _queries(args, lambda s: s.get_wager(args.wager_id), "Show")


def cmd_list(args: argparse.Namespace) -> int:
    """List wagers, or the activity feed with --activity."""
    if args.activity:
        return _queries(args, lambda s: s.list_activity(limit=args.limit), "Activity")
    return _queries(
        args,
        lambda s: s.list_wagers(status=args.status, limit=args.limit),
        "List",
    )


def cmd_expire_claims(args: argparse.Namespace) -> int:
    """Auto-dispute outcome claims older than the configured expiry."""
    if get_settings().lifecycle.claim_expiry_days is None:
        print("\nClaim expiry is disabled (lifecycle.claim_expiry_days is not set)\n")
        return 0
    return _run_command(
        WagerLifecycleService,
        SystemIdentity(),
        lambda s: s.expire_stale_claims(),
        "Expire claims",
    )


def _add_identity(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--as",
        dest="as_identity",
        required=True,
        help="Identity performing the operation",
    )


def main() -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Wagerbook: peer-to-peer wagers with mutual outcome agreement",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"Wagerbook {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    parser_init = subparsers.add_parser(
        "init",
        help="Initialize data directory, configuration and database tables",
    )
    parser_init.set_defaults(func=cmd_init)

    parser_config = subparsers.add_parser(
        "config",
        help="Display merged configuration",
    )
    parser_config.set_defaults(func=cmd_config)

    parser_serve = subparsers.add_parser(
        "serve",
        help="Start the HTTP API",
    )
    parser_serve.add_argument("--host", help="Bind address (default from config)")
    parser_serve.add_argument("--port", type=int, help="Bind port (default from config)")
    parser_serve.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser_serve.set_defaults(func=cmd_serve)

    parser_propose = subparsers.add_parser(
        "propose",
        help="Propose a wager",
    )
    _add_identity(parser_propose)
    parser_propose.add_argument("description", help="What the wager is about")
    parser_propose.add_argument("stake", help="Stake amount, e.g. 25.00")
    parser_propose.add_argument(
        "--to",
        action="append",
        required=True,
        help="Responder identity (repeatable)",
    )
    parser_propose.add_argument("--due", help="ISO 8601 due date")
    parser_propose.set_defaults(func=cmd_propose)

    parser_respond = subparsers.add_parser(
        "respond",
        help="Accept or decline an invitation",
    )
    _add_identity(parser_respond)
    parser_respond.add_argument("participant_id")
    parser_respond.add_argument("answer", choices=["accept", "decline"])
    parser_respond.set_defaults(func=cmd_respond)

    parser_declare = subparsers.add_parser(
        "declare",
        help="Declare an outcome on a participant row",
    )
    _add_identity(parser_declare)
    parser_declare.add_argument("participant_id")
    parser_declare.add_argument("outcome", choices=["won", "lost"])
    parser_declare.set_defaults(func=cmd_declare)

    parser_confirm = subparsers.add_parser(
        "confirm",
        help="Confirm a pending outcome claim",
    )
    _add_identity(parser_confirm)
    parser_confirm.add_argument("participant_id")
    parser_confirm.set_defaults(func=cmd_confirm)

    parser_dispute = subparsers.add_parser(
        "dispute",
        help="Dispute a pending outcome claim",
    )
    _add_identity(parser_dispute)
    parser_dispute.add_argument("participant_id")
    parser_dispute.set_defaults(func=cmd_dispute)

    parser_cancel = subparsers.add_parser(
        "cancel",
        help="Cancel a wager",
    )
    _add_identity(parser_cancel)
    parser_cancel.add_argument("wager_id")
    parser_cancel.set_defaults(func=cmd_cancel)

    parser_show = subparsers.add_parser(
        "show",
        help="Show a wager and its participants",
    )
    _add_identity(parser_show)
    parser_show.add_argument("wager_id")
    parser_show.set_defaults(func=cmd_show)

    parser_list = subparsers.add_parser(
        "list",
        help="List wagers or the activity feed",
    )
    _add_identity(parser_list)
    parser_list.add_argument(
        "--status",
        choices=["proposed", "active", "declined", "completed", "cancelled"],
        help="Only wagers in this status",
    )
    parser_list.add_argument(
        "--activity",
        action="store_true",
        help="Show participant-level activity instead of wagers",
    )
    parser_list.add_argument("--limit", type=int, default=50)
    parser_list.set_defaults(func=cmd_list)

    parser_expire = subparsers.add_parser(
        "expire-claims",
        help="Auto-dispute stale outcome claims",
    )
    parser_expire.set_defaults(func=cmd_expire_claims)

    args = parser.parse_args()

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
