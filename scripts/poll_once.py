#!/usr/bin/env python3
"""
Run one poll (and optionally one email dispatch) without the HTTP server.

For cron hosts that cannot reach the API's trigger endpoints.

Usage:
    python scripts/poll_once.py                    # Poll every model
    python scripts/poll_once.py --models 1 3       # Poll selected models
    python scripts/poll_once.py --send-emails      # Poll, then dispatch one batch
    python scripts/poll_once.py --send-emails --batch 20
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from fastapi import FastAPI  # noqa: E402

from app.core.catalog import get_vps_models, is_valid_model  # noqa: E402
from app.core.config import settings  # noqa: E402
from app.db import create_db_and_tables, engine  # noqa: E402
from app.main import build_components  # noqa: E402


async def main(args: argparse.Namespace) -> int:
    create_db_and_tables()

    # Same wiring as the API process, held on a throwaway app object
    holder = FastAPI()
    build_components(holder, engine)

    poller = holder.state.poller
    if args.models:
        poller.models = args.models

    summary = await poller.run()
    print(json.dumps(summary.to_dict(), indent=2, default=str))

    if args.send_emails:
        dispatch = await holder.state.dispatcher.run(args.batch)
        print(json.dumps(dispatch.to_dict(), indent=2, default=str))

    return 1 if summary.failed and not summary.successful else 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Poll OVH VPS availability once")
    parser.add_argument("--models", type=int, nargs="+", help=f"Models to poll (default: {get_vps_models()})")
    parser.add_argument("--send-emails", action="store_true", help="Dispatch one email batch after polling")
    parser.add_argument("--batch", type=int, default=settings.EMAIL_BATCH_SIZE, help="Email batch size (max 100)")
    args = parser.parse_args()

    invalid = [m for m in args.models or [] if not is_valid_model(m)]
    if invalid:
        parser.error(f"Unknown models: {invalid}")

    sys.exit(asyncio.run(main(args)))
