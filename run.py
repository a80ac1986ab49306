#!/usr/bin/env python3
"""
Cache Bid Automation - main runner script

Usage:
    python run.py                        # Run the automation loop with config/config.yaml
    python run.py --duration 600         # Stop after 10 minutes
    python run.py --cycles 1             # Run a single evaluate/execute cycle
    python run.py --serve --port 8080    # Serve the HTTP API with the loop in the background
    python run.py --state state.json     # Restore from and save to a state file
"""

from __future__ import annotations

import argparse
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from cachebid.config import get_validated_config, load_config, set_config_value
from cachebid.core.service import CacheBidService
from cachebid.runner import AutomationRunner


logger = logging.getLogger("cachebid")


def save_state(service: CacheBidService, state_file: str) -> str:
    """Write the service snapshot to a JSON file."""
    with open(state_file, "w") as f:
        json.dump(service.snapshot(), f, indent=2)
    return state_file


def load_state(state_file: str) -> dict[str, Any] | None:
    """Read a snapshot written by save_state(). None if the file is missing."""
    state_path = Path(state_file)
    if not state_path.exists():
        return None
    with open(state_path) as f:
        data: dict[str, Any] = json.load(f)
    return data


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the cache bid automation agent")
    parser.add_argument(
        "--config", default="config/config.yaml", help="Path to config file"
    )
    parser.add_argument("--duration", type=float, help="Stop after this many seconds")
    parser.add_argument("--cycles", type=int, help="Stop after this many cycles")
    parser.add_argument("--interval", type=float, help="Override automation.interval_seconds")
    parser.add_argument("--serve", action="store_true", help="Serve the HTTP API")
    parser.add_argument("--host", help="API host (defaults to config value)")
    parser.add_argument("--port", type=int, help="API port (defaults to config value)")
    parser.add_argument("--state", help="JSON state file to restore from and save to")
    parser.add_argument(
        "--per-run", action="store_true", help="Write events to logs/<run_id>/ instead of one file"
    )
    args = parser.parse_args()

    load_config(args.config)
    if args.interval is not None:
        set_config_value("automation.interval_seconds", args.interval)
    config = get_validated_config()

    logging.basicConfig(
        level=getattr(logging, config.logging.level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    run_id = datetime.now().strftime("run_%Y%m%d_%H%M%S") if args.per_run else None
    service = CacheBidService.from_config(config, run_id=run_id)

    if args.state:
        state = load_state(args.state)
        if state is None:
            logger.warning("State file '%s' not found. Starting fresh.", args.state)
        else:
            service.restore(state, service.admin_id)

    runner = AutomationRunner.from_config(service, config)
    try:
        if args.serve:
            from cachebid.api.server import run_server

            run_server(
                service,
                runner=runner,
                host=args.host or config.api.host,
                port=args.port or config.api.port,
            )
        else:
            runner.run_sync(duration=args.duration, max_cycles=args.cycles)
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        if args.state:
            save_state(service, args.state)
            logger.info("State saved to %s", args.state)

    status = runner.get_status()
    logger.info(
        "Done: %d cycles, %d errors, %d owners, %d held",
        status["cycles_run"], status["errors"],
        status["state"]["total_owners"], status["state"]["total_held"],
    )


if __name__ == "__main__":
    main()
