"""Command-line runner for the clinic analytics pipeline.

This script wires the modules of this project into one batch run:

1. Discover CSV exports under ``--base-dir`` and map them to CSV kinds.
2. Parse every file, printing row/error/warning counts per kind.
3. Run the aggregations and print the headline numbers.
4. Optionally write the JSON dashboard payload and PNG charts.

Usage
-----
    python main.py --base-dir ./exports --month 2025-10 --output-json dashboard.json

Notes
-----
- Files named like ``reservations.csv`` or ``karte.csv`` are picked up
  directly; other names are matched by keywords (``予約``, ``カルテ``,
  ``listing`` + ``胃カメラ`` ...).
- Data before 2025-10-02 (JST) is excluded from reservation, listing and
  survey analysis.
"""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import List, Optional

from clinic_charts import render_dashboard_charts
from pipeline import PipelineConfig, build_dashboard_payload, load_directory


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Clinic CSV analytics pipeline")
    parser.add_argument(
        "--base-dir",
        type=str,
        default=".",
        help="Directory containing the clinic CSV exports.",
    )
    parser.add_argument(
        "--month",
        type=str,
        default=None,
        help="Restrict reservation, listing and survey sections to one month (yyyy-MM).",
    )
    parser.add_argument(
        "--diagnosis-start",
        type=str,
        default=None,
        help="First month (yyyy-MM) of the diagnosis range.",
    )
    parser.add_argument(
        "--diagnosis-end",
        type=str,
        default=None,
        help="Last month (yyyy-MM) of the diagnosis range; with --diagnosis-start the previous range is compared too.",
    )
    parser.add_argument(
        "--output-json",
        type=str,
        default=None,
        help="Optional path to write the dashboard JSON payload.",
    )
    parser.add_argument(
        "--plots-dir",
        type=str,
        default=None,
        help="Optional directory to write PNG charts into.",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        help="Logging level (DEBUG, INFO, WARNING, ...).",
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    base_dir = Path(args.base_dir).resolve()
    config = PipelineConfig(
        base_dir=base_dir,
        month=args.month,
        diagnosis_start_month=args.diagnosis_start,
        diagnosis_end_month=args.diagnosis_end,
    )

    print("=== Step 1: Load CSV exports ===")
    store, files = load_directory(base_dir)
    if not files:
        print(f"No CSV files found under {base_dir}")
        return 1

    for kind, path in files.items():
        status = store.status(kind)
        print(f"- {kind.value}: {path.name} rows={status.row_count} errors={status.error_count} warnings={len(status.warnings)}")
        for error in status.errors[:5]:
            print(f"    error row {error.row}: {error.message}")
        for warning in status.warnings[:5]:
            print(f"    warning row {warning.row}: {warning.message}")

    print("\n=== Step 2: Aggregate ===")
    payload = build_dashboard_payload(store, config)

    print("Available months:", ", ".join(payload["months"]) or "-")
    for row in payload["reservations"]["monthly"]:
        print(f"  {row['month']}: 初診={row['初診']} 再診={row['再診']} total={row['total']}")

    leadtime = payload["leadtime"]["summary"]
    if leadtime["total"]:
        print(
            "Lead time: n={total} avg={avg:.1f}h median={median:.1f}h same-day={rate:.0%}".format(
                total=leadtime["total"],
                avg=leadtime["average_hours"],
                median=leadtime["median_hours"],
                rate=leadtime["same_day_rate"],
            )
        )

    for row in payload["karte"]["monthly"]:
        print(
            f"  karte {row['month']}: total={row['total']} pureFirst={row['pureFirst']} "
            f"returningFirst={row['returningFirst']} revisit={row['revisit']} avg_age={row['average_age']}"
        )

    diagnosis = payload["diagnosis"]
    if diagnosis["previous"] is not None:
        previous = diagnosis["previous"]
        print(
            f"Diagnoses {diagnosis['range']['start']}..{diagnosis['range']['end']}: {diagnosis['total']} "
            f"(previous {previous['range']['start']}..{previous['range']['end']}: {previous['total']})"
        )

    best_lag = payload["incrementality"]["all"]["lag_correlations"][:1]
    if best_lag:
        print(f"Listing CV -> true first visits: strongest lag {best_lag[0]['lag']}h r={best_lag[0]['correlation']:.2f}")

    if args.plots_dir:
        print("\n=== Step 3: Charts ===")
        written = render_dashboard_charts(payload, Path(args.plots_dir).resolve())
        for name, path in written.items():
            print(f"- {name}: {path}")

    payload_json = json.dumps(payload, indent=2, ensure_ascii=False)
    if args.output_json:
        output_path = Path(args.output_json).resolve()
        output_path.write_text(payload_json, encoding="utf-8")
        print(f"\nDashboard JSON written to: {output_path}")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
