"""Print one week of the resolved timetable from the configured store.

Standalone developer script: reads the store settings from .env, assembles
the week, applies the optional filters and prints a table or JSON.

Run with: python scripts/show_week.py
Week:     python scripts/show_week.py --date 2026-10-19
Filter:   python scripts/show_week.py --class 10A --course Math
JSON:     python scripts/show_week.py --json

Exit codes:
  0 = success
  1 = error (message on stderr)
"""

import argparse
import asyncio
import json
import os
import sys
from datetime import date

from dotenv import load_dotenv

load_dotenv()

# Add project root to path for src imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from src.timetable.assembler import ScheduleAssembler  # noqa: E402
from src.timetable.config import get_config  # noqa: E402
from src.timetable.filters import FilterEngine, FilterState  # noqa: E402
from src.timetable.layout import GridGeometry, GridLayoutEngine, PositionedEvent  # noqa: E402
from src.timetable.logging import setup_logging  # noqa: E402
from src.timetable.store import RestStore, TableNames  # noqa: E402
from src.timetable.week import format_date_label, format_day_label, format_time  # noqa: E402


def _log(msg: str) -> None:
    """Write diagnostic messages to stderr so stdout stays clean for JSON."""
    print(msg, file=sys.stderr)


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Print one week of the resolved timetable.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--date",
        type=date.fromisoformat,
        default=date.today(),
        help="Any date inside the wanted week (YYYY-MM-DD, default: today).",
    )
    parser.add_argument("--course", type=str, default=None, help="Only this course.")
    parser.add_argument(
        "--class", dest="class_name", type=str, default=None, help="Only this class."
    )
    parser.add_argument("--teacher", type=str, default=None, help="Only this teacher.")
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output positioned events as JSON instead of a table.",
    )
    return parser.parse_args()


def _format_table(week: list[date], columns: dict[int, list[PositionedEvent]]) -> str:
    lines: list[str] = []
    for index, day in enumerate(week):
        lines.append(f"{format_day_label(day)} {format_date_label(day)}")
        entries = columns.get(index, [])
        if not entries:
            lines.append("  (no lessons)")
        for placed in entries:
            e = placed.event
            span = (
                f"{format_time(e.start_hour, e.start_minute)}"
                f" - {format_time(e.end_hour, e.end_minute)}"
            )
            lines.append(
                f"  {span:<20} {e.title:<24} {e.class_name:<10} "
                f"{e.teacher_name:<22} {e.location or ''}"
            )
    return "\n".join(lines)


async def main(args: argparse.Namespace) -> None:
    config = get_config()
    setup_logging(config)

    store = RestStore.from_config(config)
    assembler = ScheduleAssembler(store, tables=TableNames.from_config(config))
    snapshot = await assembler.assemble(args.date)
    if not snapshot.ok:
        raise RuntimeError(snapshot.error)
    for warning in snapshot.warnings:
        _log(f"WARNING: {warning}")

    state = FilterState(course=args.course, class_name=args.class_name, teacher=args.teacher)
    events = FilterEngine.for_snapshot(snapshot).apply(snapshot.events, state)
    layout = GridLayoutEngine(GridGeometry.from_config(config))
    columns = layout.by_day(events, snapshot.week)

    if args.json:
        output = [
            placed.model_dump(mode="json")
            for index in sorted(columns)
            for placed in columns[index]
        ]
        print(json.dumps(output, indent=2))
    else:
        print(_format_table(snapshot.week, columns))

    _log(f"show_week: {len(events)} of {len(snapshot.events)} lessons shown")


if __name__ == "__main__":
    args = _parse_args()
    try:
        asyncio.run(main(args))
    except Exception as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)
