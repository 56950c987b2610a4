# main.py - Runner. Loads (or simulates) a snapshot, fits the curves, prints and saves the tables.
#
#   python -m churn_survival.main                 # synthetic snapshot
#   python -m churn_survival.main subs.csv -o out # real one

import argparse
import logging
import os
from dataclasses import replace

from tabulate import tabulate

from .config import Config
from .dataset import load_subs, starts_stops_by_year, stop_type_summary
from .engine import fit
from .generator import assemble_subs


def show(title, df, n=None):
    print(f"\n=== {title} ===")
    rows = df if n is None else df.head(n)
    print(tabulate(rows, headers="keys", tablefmt="pretty", showindex=False, floatfmt=".4f"))


def main(argv=None):
    parser = argparse.ArgumentParser(description="Life-table survival and revenue for subscribers")
    parser.add_argument("csv", nargs="?", help="subs table; omitted → synthetic snapshot")
    parser.add_argument("-o", "--out", default="outputs", help="directory for CSV outputs")
    parser.add_argument("--jobs", type=int, default=1, help="parallel workers (one per stratum)")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")

    cfg = Config(n_jobs=args.jobs)
    subs = load_subs(args.csv) if args.csv else assemble_subs(cfg)
    print(f"Rows: {len(subs):,}")

    # Quick data-quality look before anything is filtered
    show("Stop types", stop_type_summary(subs))
    show("Starts / stops by year", starts_stops_by_year(subs))

    overall = fit(subs, replace(cfg, strata=()))
    model = fit(subs, cfg)
    ex = model.exclusions
    print(f"\nEligible: {ex.kept:,} of {ex.total:,} "
          f"(bad tenure: {ex.bad_tenure:,}, before {cfg.earliest_start}: {ex.before_window:,})")
    if model.failures:
        print(f"Strata that failed: {model.failures}")

    show("Global life table (first 10 buckets)", overall.life_table(), n=10)
    show("Summary by stratum", model.market_summary())
    show("Median tenure / one-year survival", model.medians())
    show("Daily revenue", model.rate_table())
    show(f"After the {cfg.reference_tenure}-day milestone", model.milestone_table())

    reports = {h: model.revenue_report(h) for h in cfg.horizons}
    for h, report in reports.items():
        show(f"Projected revenue, next {h} days", report)

    os.makedirs(args.out, exist_ok=True)
    overall.life_table().to_csv(os.path.join(args.out, "survival.csv"), index=False)
    model.life_table().to_csv(os.path.join(args.out, "survival_by_stratum.csv"), index=False)
    model.rate_table().to_csv(os.path.join(args.out, "revenue_rates.csv"), index=False)
    for h, report in reports.items():
        report.to_csv(os.path.join(args.out, f"revenue_{h}.csv"), index=False)
    print(f"\nSaved tables to: {args.out}")


if __name__ == "__main__":
    main()
