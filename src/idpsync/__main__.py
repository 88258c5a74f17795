"""
Command-line entrypoint for manual runs and external schedulers (cron).

Usage:
    python -m idpsync sync          # run one Okta sync, print the SyncResult
    python -m idpsync status        # integration status + recent runs
    python -m idpsync history       # recent runs only
    python -m idpsync stats         # totals across runs
    uvicorn idpsync.api.main:app --host 0.0.0.0 --port 8000  # HTTP trigger

Prints JSON to stdout. `sync` exits 1 when the run did not succeed.
"""
import argparse
import asyncio
import json
import logging
import sys

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)
logger = logging.getLogger(__name__)


def _print(payload) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _run_sync(correlation_id=None) -> int:
    from idpsync.okta.actions import trigger_okta_sync

    result = asyncio.run(trigger_okta_sync(correlation_id=correlation_id))
    _print(result.to_dict())
    return 0 if result.success else 1


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="idpsync", description="Okta shadow sync")
    subcommands = parser.add_subparsers(dest="command", required=True)

    sync_parser = subcommands.add_parser("sync", help="Run one Okta sync")
    sync_parser.add_argument(
        "--correlation-id",
        default=None,
        help="Tag for every log line of this run (generated when omitted)",
    )
    subcommands.add_parser("status", help="Show integration status and recent runs")
    subcommands.add_parser("history", help="Show recent sync runs")
    subcommands.add_parser("stats", help="Show totals across sync runs")

    args = parser.parse_args(argv)

    if args.command == "sync":
        return _run_sync(args.correlation_id)

    from idpsync.okta.actions import get_okta_status, get_okta_sync_history, get_okta_sync_stats

    readers = {
        "status": get_okta_status,
        "history": get_okta_sync_history,
        "stats": get_okta_sync_stats,
    }
    _print(readers[args.command]())
    return 0


if __name__ == "__main__":
    sys.exit(main())
