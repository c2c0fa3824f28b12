#!/usr/bin/env python3
"""Command-line entry point: run one enrichment session and export the results.

Usage:
    # Enrich rows from a JSON file and write a JSON export
    fire-enrich --rows rows.json --fields fields.json --output results.json

    # Enrich a single email, CSV export to stdout
    fire-enrich --email jane@acme.com --fields fields.json --format csv

``rows.json`` holds a list of flat objects; ``fields.json`` a list of
``{"name", "displayName", "type"}`` objects. Ctrl-C cancels the session.
"""

import argparse
import asyncio
import contextlib
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Any

from pydantic import TypeAdapter, ValidationError

from fire_enrich.client import HttpEnrichmentApi
from fire_enrich.config import load_settings
from fire_enrich.errors import FireEnrichError
from fire_enrich.export import export_csv, export_json, export_skipped_csv
from fire_enrich.inputs import single_entry_rows
from fire_enrich.logging import PprintLogger, setup_logging
from fire_enrich.models import EnrichmentField, Row
from fire_enrich.storage.interfaces import MessageLogInterface
from fire_enrich.workspace import EnrichmentWorkspace

FIELDS_ADAPTER = TypeAdapter(list[EnrichmentField])
RAW_ROWS_ADAPTER = TypeAdapter(list[dict[str, Any]])


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="fire-enrich",
        description="Stream enrichment results for a set of email rows.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--rows", type=Path, help="JSON file with a list of row objects")
    source.add_argument("--email", help="Enrich a single email address")
    parser.add_argument("--name", help="Optional name to send with --email")
    parser.add_argument("--fields", type=Path, required=True, help="JSON file with the fields to enrich")
    parser.add_argument("--email-column", help="Column holding the email (default: first column)")
    parser.add_argument("--output", type=Path, help="Write the export here instead of stdout")
    parser.add_argument("--format", choices=("json", "csv"), default="json", help="Export format")
    parser.add_argument("--skipped", type=Path, help="Also write skipped rows as CSV to this path")
    parser.add_argument("--config", type=Path, help="Path to a fire_enrich.toml config file")
    parser.add_argument("--no-agents", action="store_true", help="Disable the agents execution mode")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def load_inputs(args: argparse.Namespace) -> tuple[list[Row], list[EnrichmentField], str | None]:
    fields = FIELDS_ADAPTER.validate_json(args.fields.read_bytes())
    if args.email is not None:
        rows, _ = single_entry_rows(args.email, args.name)
        return rows, fields, "email"
    raw_rows = RAW_ROWS_ADAPTER.validate_json(args.rows.read_bytes())
    rows: list[Row] = [{k: "" if v is None else str(v) for k, v in raw.items()} for raw in raw_rows]
    return rows, fields, args.email_column


class LogFollower:
    """Prints conversation log entries not yet printed.

    Progress is tracked by the id of the last printed entry, so it keeps
    working once the capped log starts dropping its oldest entries. If that
    entry has itself been dropped, everything still in the log is new.
    """

    def __init__(self, log: MessageLogInterface, logger: PprintLogger):
        self.log = log
        self.logger = logger
        self.last_id: str | None = None

    def drain(self) -> int:
        """Print every entry appended since the last call; return how many."""
        messages = self.log.messages()
        start = 0
        if self.last_id is not None:
            for index in range(len(messages) - 1, -1, -1):
                if messages[index].id == self.last_id:
                    start = index + 1
                    break
        for message in messages[start:]:
            self.logger.message(message)
        if messages:
            self.last_id = messages[-1].id
        return len(messages) - start

    async def follow(self, interval: float = 0.25) -> None:
        while True:
            self.drain()
            await asyncio.sleep(interval)


async def run(args: argparse.Namespace, logger: PprintLogger) -> int:
    settings = load_settings(args.config)
    if args.no_agents:
        settings = settings.model_copy(update={"use_agents": False})
    rows, fields, email_column = load_inputs(args)
    logger.info(f"Enriching {len(rows)} rows with {len(fields)} fields against {settings.base_url}")

    async with HttpEnrichmentApi(settings) as api:
        workspace = EnrichmentWorkspace(api, rows, fields, email_column=email_column, settings=settings)
        loop = asyncio.get_running_loop()
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(signal.SIGINT, lambda: asyncio.ensure_future(workspace.cancel()))
        log_follower = LogFollower(workspace.log, logger)
        follower = asyncio.create_task(log_follower.follow())
        try:
            status = await workspace.run(tick=False)
        finally:
            follower.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await follower
            log_follower.drain()
            with contextlib.suppress(NotImplementedError):
                loop.remove_signal_handler(signal.SIGINT)
            await workspace.close()

    logger.info(
        f"Session {status.value}: {workspace.store.count()} of {len(rows)} rows have results"
    )
    if args.format == "csv":
        output = export_csv(rows, fields, workspace.store, email_column)
    else:
        output = json.dumps(export_json(rows, fields, workspace.store, email_column, status=status), indent=2)
    if args.output:
        args.output.write_text(output + "\n")
    else:
        sys.stdout.write(output + "\n")
    if args.skipped:
        skipped = export_skipped_csv(rows, workspace.store)
        if skipped is not None:
            args.skipped.write_text(skipped + "\n")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_arguments(argv)
    logger = setup_logging("fire_enrich", logging.DEBUG if args.verbose else logging.INFO, stream=sys.stderr)
    try:
        return asyncio.run(run(args, logger))
    except (FireEnrichError, ValidationError, OSError, json.JSONDecodeError) as e:
        logger.error(f"fire-enrich: {e}", pprint=False)
        return 1


if __name__ == "__main__":
    sys.exit(main())
