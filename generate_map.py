"""Generate the city rudeness map in one run."""

from __future__ import annotations

import argparse
import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from map_config import parse_theme
from quartiles import format_score
from rudeness_map import (
    DEFAULT_COORDINATES_FILE,
    DEFAULT_SOURCE,
    RenderResult,
    build_rudeness_map,
    load_coordinate_table,
)
from theme import DEFAULT_STATE_FILE, RenderSession, ThemeStore

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Render city rudeness rankings as an interactive map."
    )
    parser.add_argument(
        "--source",
        default=str(DEFAULT_SOURCE),
        help="Score CSV path or http(s) URL with rank, city_state and score columns.",
    )
    parser.add_argument(
        "--coordinates",
        type=Path,
        default=DEFAULT_COORDINATES_FILE,
        help="CSV mapping city_state to lat/lon.",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("output"),
        help="Directory where the output HTML file will be written.",
    )
    parser.add_argument(
        "--output",
        type=str,
        default="rudeness_map.html",
        help="Output HTML filename (inside output-dir).",
    )
    parser.add_argument(
        "--theme",
        default="",
        help="Start in this theme (light or dark) instead of the saved preference.",
    )
    parser.add_argument(
        "--toggle-theme",
        action="store_true",
        help="Flip the saved theme before rendering.",
    )
    parser.add_argument(
        "--state-file",
        type=Path,
        default=DEFAULT_STATE_FILE,
        help="JSON file holding the saved theme preference.",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help=f"Logging level, one of {', '.join(LOG_LEVELS)}.",
    )
    return parser.parse_args(argv)


def _validate_args(args: argparse.Namespace) -> None:
    if args.log_level.upper() not in LOG_LEVELS:
        raise SystemExit(f"--log-level must be one of {', '.join(LOG_LEVELS)}.")
    if not args.coordinates.exists():
        raise SystemExit(f"Coordinate table not found: {args.coordinates}")
    if not args.output.endswith(".html"):
        raise SystemExit("--output must be an .html filename.")


def build_session(args: argparse.Namespace) -> RenderSession:
    store = ThemeStore(args.state_file)
    try:
        theme = parse_theme(args.theme) if args.theme.strip() else None
    except ValueError as exc:
        raise SystemExit(f"Invalid theme: {exc}") from exc

    session = RenderSession(store=store, theme=theme)
    if args.toggle_theme:
        session.toggle_theme()
    return session


def _print_summary(result: RenderResult, session: RenderSession, output_path: Path) -> None:
    print("Generated map:")
    print(f"- Rudeness map: {output_path.resolve()} | theme={session.theme}")
    if result.quartiles is not None:
        q1, q2, q3 = (format_score(q) for q in result.quartiles.as_tuple())
        print(f"- Quartiles: q1={q1} q2={q2} q3={q3}")
    print("\nCounts:")
    print(f"- Markers placed: {result.markers}")
    for entry in result.legend:
        print(f"- {entry.text}")
    if result.observations:
        print("\nSkipped:")
        for observation in result.observations:
            print(f"- [{observation.kind}] {observation.message}")
    print(f"\nGenerated at: {datetime.now().isoformat(timespec='seconds')}")


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    _validate_args(args)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    try:
        coordinates = load_coordinate_table(args.coordinates)
    except ValueError as exc:
        raise SystemExit(f"Invalid coordinate table: {exc}") from exc

    session = build_session(args)
    result = build_rudeness_map(args.source, coordinates, session)

    args.output_dir.mkdir(parents=True, exist_ok=True)
    output_path = args.output_dir / args.output
    result.map_obj.save(str(output_path))
    _print_summary(result, session, output_path=output_path)

    return 1 if result.halted else 0


if __name__ == "__main__":
    raise SystemExit(main())
