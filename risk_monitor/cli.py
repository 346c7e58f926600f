"""Command-line interface for the lending risk monitor."""
from __future__ import annotations

import argparse
import asyncio
import sys

from .config import load_config
from .logging_setup import configure_logging
from .services import Monitor


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="lending-risk-monitor",
        description="Lending protocol risk monitor",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: config.yaml in project root)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    sub = parser.add_subparsers(dest="command")

    sub.add_parser("check", help="Evaluate every user once and log the results")
    sub.add_parser("report", help="Generate the daily risk report")

    monitor_parser = sub.add_parser("monitor", help="Continuous monitoring loop")
    monitor_parser.add_argument(
        "interval",
        nargs="?",
        type=int,
        default=None,
        help="Risk assessment interval in seconds (overrides config)",
    )

    alerts_parser = sub.add_parser("alerts", help="Show a user's recent alerts")
    alerts_parser.add_argument("user_id")
    alerts_parser.add_argument(
        "--limit", type=int, default=None, help="Number of alerts to show"
    )

    ask_parser = sub.add_parser("ask", help="Ask the advisor about a position")
    ask_parser.add_argument("user_id")
    ask_parser.add_argument("query")

    return parser


async def _run(args: argparse.Namespace) -> None:
    """Execute the selected command."""
    configure_logging(args.log_level)
    config = load_config(args.config)
    monitor = Monitor(config)

    if args.command == "check":
        await monitor.check_and_alert()
    elif args.command == "report":
        print(await monitor.generate_daily_report())
    elif args.command == "monitor":
        await monitor.run_continuous(args.interval)
    elif args.command == "alerts":
        # Alerts live in memory, so evaluate first to populate history.
        await monitor.evaluate(args.user_id)
        events = await monitor.list_alerts(args.user_id, args.limit)
        if not events:
            print(f"No alerts for {args.user_id}")
        for event in events:
            print(
                f"{event.created_at:%Y-%m-%d %H:%M:%S} [{event.kind.value}] "
                f"{event.title}: {event.message}"
            )
    elif args.command == "ask":
        reply = await monitor.ask(args.user_id, args.query)
        print(reply.text)
    else:
        build_parser().print_help()
        sys.exit(1)


def main() -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    asyncio.run(_run(args))
