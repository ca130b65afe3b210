from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from config import configure_logging
from db import db_session
from reports import REPORT_TYPES, export_report, success_message


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Export portal reports as CSV files.")
    parser.add_argument(
        "reports",
        nargs="*",
        metavar="REPORT",
        help=f"Report types to export: {', '.join(REPORT_TYPES)} (default: all)",
    )
    parser.add_argument("--output-dir", type=Path, default=Path("exports"))
    parser.add_argument("--log-level", default=None)
    args = parser.parse_args(argv)
    unknown = [report for report in args.reports if report not in REPORT_TYPES]
    if unknown:
        parser.error(f"unknown report type(s): {', '.join(unknown)} (choose from {', '.join(REPORT_TYPES)})")
    args.reports = args.reports or list(REPORT_TYPES)
    return args


def main(argv: list[str] | None = None) -> list[Path]:
    args = parse_args(argv)
    configure_logging(args.log_level)
    args.output_dir.mkdir(parents=True, exist_ok=True)

    written: list[Path] = []
    for report_type in args.reports:
        with db_session() as db:
            filename, csv_text = export_report(db, report_type)
        target = args.output_dir / filename
        target.write_text(csv_text, encoding="utf-8")
        print(f"{success_message(report_type)} -> {target}")
        written.append(target)
    return written


if __name__ == "__main__":
    main()
