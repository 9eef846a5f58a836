"""n8n-provision command line.

Usage:
  n8n-provision create-user            - create the instance owner
  n8n-provision import-workflows       - import (and activate) templates
  n8n-provision activate-workflows     - activate every inactive workflow
  n8n-provision store-neon             - store credentials in Neon
  n8n-provision send-supabase          - store credentials in Supabase
  n8n-provision notify                 - post the completion webhook
  n8n-provision provision              - all of the above, in order

Exit status is 1 when a primary step fails, 0 otherwise. Notification
failures never change the exit status.
"""

import argparse
import asyncio
import logging
import sys
from typing import Awaitable, Callable, Dict, List, Optional

from .activate_all import activate_all_workflows
from .config import Settings, load_settings
from .errors import ConfigurationError, ProvisioningError
from .importer import import_workflows
from .notify import send_notification
from .owner import create_owner
from .storage import send_to_supabase, store_to_neon

logger = logging.getLogger("n8n_provisioner")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Commands whose failures must not fail the job
SOFT_COMMANDS = {"notify"}


def configure_logging(level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )


async def _create_user(settings: Settings, args: argparse.Namespace) -> int:
    status = await create_owner(settings)
    logger.info(f"User creation process completed ({status.value})")
    return 0


async def _import_workflows(settings: Settings, args: argparse.Namespace) -> int:
    summary = await import_workflows(settings)
    if not summary.success:
        logger.error(f"{summary.failed} workflow template(s) failed to import")
        return 1
    return 0


async def _activate_workflows(settings: Settings, args: argparse.Namespace) -> int:
    await activate_all_workflows(settings)
    logger.info("Publish process completed")
    return 0


async def _store_neon(settings: Settings, args: argparse.Namespace) -> int:
    await store_to_neon(settings)
    return 0


async def _send_supabase(settings: Settings, args: argparse.Namespace) -> int:
    await send_to_supabase(settings)
    logger.info("Credentials sent successfully")
    return 0


async def _notify(settings: Settings, args: argparse.Namespace) -> int:
    await send_notification(settings, status=args.status, message=args.message)
    logger.info("Notification process completed")
    return 0


async def _provision(settings: Settings, args: argparse.Namespace) -> int:
    try:
        await create_owner(settings)
        summary = await import_workflows(settings)
        if not summary.success:
            raise ProvisioningError(f"{summary.failed} workflow template(s) failed to import")
        if settings.DATABASE_URL:
            await store_to_neon(settings)
        if settings.SUPABASE_URL:
            await send_to_supabase(settings)
    except Exception as e:
        await send_notification(settings, status="failure", message=str(e))
        raise

    await send_notification(settings, status="success", summary=summary.to_dict())
    return 0


COMMANDS: Dict[str, Callable[[Settings, argparse.Namespace], Awaitable[int]]] = {
    "create-user": _create_user,
    "import-workflows": _import_workflows,
    "activate-workflows": _activate_workflows,
    "store-neon": _store_neon,
    "send-supabase": _send_supabase,
    "notify": _notify,
    "provision": _provision,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="n8n-provision",
        description="Provision an n8n instance and record the result.",
    )
    parser.add_argument("--env-file", default=None, help="dotenv file to read settings from")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("create-user", help="create the n8n owner account")
    sub.add_parser("import-workflows", help="import workflow templates")
    sub.add_parser("activate-workflows", help="activate every inactive workflow")
    sub.add_parser("store-neon", help="store credentials in Neon")
    sub.add_parser("send-supabase", help="store credentials in Supabase")

    notify = sub.add_parser("notify", help="post the completion webhook")
    notify.add_argument("--status", choices=["success", "failure"], default="success")
    notify.add_argument("--message", default=None)

    sub.add_parser("provision", help="run every step in order")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    soft = args.command in SOFT_COMMANDS
    failure_code = 0 if soft else 1

    try:
        settings = load_settings(args.env_file)
    except ConfigurationError as e:
        configure_logging()
        logger.error(str(e))
        return failure_code

    configure_logging(settings.LOG_LEVEL)

    try:
        return asyncio.run(COMMANDS[args.command](settings, args))
    except ConfigurationError as e:
        logger.error(str(e))
    except ProvisioningError as e:
        logger.error(f"FATAL: {e}")
    except Exception as e:
        logger.exception(f"FATAL: {type(e).__name__}: {e}")
    return failure_code


if __name__ == "__main__":
    sys.exit(main())
