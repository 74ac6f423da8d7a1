"""``flancer-audit``: inspect the negotiation audit trail from a shell.

Usage::

    flancer-audit --negotiation 3f2c... --oldest-first
    flancer-audit --party client-1 --last 24h --format json
    flancer-audit --summary
"""

from __future__ import annotations

import argparse
import json
import re
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

from flancer.audit.models import EventType
from flancer.audit.store import (
    TIMESTAMP_FORMAT,
    close_audit_db,
    count_events,
    init_audit_db,
    query_audit_trail,
)

_DURATION = re.compile(r"^(\d+)([dhm])$")
_UNITS = {"d": "days", "h": "hours", "m": "minutes"}

# header, row key, width
TABLE_COLUMNS = (
    ("Timestamp", "timestamp", 20),
    ("Event", "event_type", 20),
    ("Negotiation", "negotiation_id", 36),
    ("Party", "party_id", 16),
    ("Role", "role", 9),
    ("State", "negotiation_state", 11),
    ("Price", "price", 10),
)


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser for audit trail queries."""
    parser = argparse.ArgumentParser(
        prog="flancer-audit", description="Query the negotiation audit trail"
    )
    parser.add_argument("--negotiation", help="Filter by negotiation ID")
    parser.add_argument("--party", help="Filter by acting party ID")
    parser.add_argument("--from-date", help="Start timestamp (ISO 8601)")
    parser.add_argument("--to-date", help="End timestamp (ISO 8601)")
    parser.add_argument(
        "--event-type",
        choices=[e.value for e in EventType],
        help="Filter by event type",
    )
    parser.add_argument("--last", help='Relative start such as "7d", "24h" or "30m"')
    parser.add_argument(
        "--oldest-first",
        action="store_true",
        help="Print entries in the order they happened",
    )
    parser.add_argument(
        "--summary",
        action="store_true",
        help="Print a count per event type instead of entries",
    )
    parser.add_argument(
        "--format",
        choices=["table", "json"],
        default="table",
        dest="output_format",
        help="Output format (default: table)",
    )
    parser.add_argument("--limit", type=int, default=50, help="Maximum results (default: 50)")
    parser.add_argument(
        "--db",
        default="data/audit.db",
        help="Path to audit database (default: data/audit.db)",
    )
    return parser


def parse_last_duration(last: str) -> str:
    """Turn ``Nd``, ``Nh`` or ``Nm`` into the UTC timestamp that long ago.

    Raises:
        ValueError: If *last* is not one of those forms.
    """
    match = _DURATION.match(last or "")
    if match is None:
        msg = f"Unrecognized duration format: {last!r}. Use e.g. 7d, 24h or 30m."
        raise ValueError(msg)
    amount, unit = match.groups()
    start = datetime.now(tz=UTC) - timedelta(**{_UNITS[unit]: int(amount)})
    return start.strftime(TIMESTAMP_FORMAT)


def _cell(value: Any, width: int) -> str:
    text = "" if value is None else str(value)
    if len(text) > width:
        text = text[: width - 3] + "..."
    return text.ljust(width)


def format_table(results: list[dict[str, Any]]) -> str:
    """Render audit rows as fixed-width columns; long values are truncated."""
    if not results:
        return "No results found."

    header = "  ".join(_cell(title, width) for title, _, width in TABLE_COLUMNS).rstrip()
    lines = [header, "-" * len(header)]
    for row in results:
        lines.append(
            "  ".join(_cell(row.get(key), width) for _, key, width in TABLE_COLUMNS).rstrip()
        )
    return "\n".join(lines)


def format_json(results: list[dict[str, Any]] | dict[str, int]) -> str:
    return json.dumps(results, indent=2)


def format_summary(counts: dict[str, int]) -> str:
    """Render per-event-type counts, one ``event_type: count`` per line."""
    if not counts:
        return "No results found."
    width = max(len(event_type) for event_type in counts)
    return "\n".join(f"{event_type.ljust(width)}  {n}" for event_type, n in counts.items())


def main(argv: list[str] | None = None) -> None:
    """Parse arguments, query the audit database and print the result."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        from_date = parse_last_duration(args.last) if args.last else args.from_date
    except ValueError as exc:
        parser.error(str(exc))

    db_path = Path(args.db)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = init_audit_db(db_path)
    try:
        if args.summary:
            counts = count_events(conn, negotiation_id=args.negotiation)
            print(format_json(counts) if args.output_format == "json" else format_summary(counts))
            return

        results = query_audit_trail(
            conn,
            negotiation_id=args.negotiation,
            party_id=args.party,
            from_date=from_date,
            to_date=args.to_date,
            event_type=args.event_type,
            limit=args.limit,
            oldest_first=args.oldest_first,
        )
        print(format_json(results) if args.output_format == "json" else format_table(results))
    finally:
        close_audit_db(conn)


if __name__ == "__main__":
    main()
