# dataset.py
# The subscriber snapshot: input contract, eligibility filter, data-quality checks.
# Loading raw transaction logs is someone else's job; we start from a clean `subs` table.

import logging
from dataclasses import dataclass, asdict

import numpy as np
import pandas as pd

from .config import Config
from .errors import SchemaError

logger = logging.getLogger(__name__)

REQUIRED_COLS = [
    "customer_id", "start_date", "stop_date", "stop_type",
    "market", "channel", "monthly_fee", "tenure",
]
DATE_COLS = ["start_date", "stop_date"]


@dataclass(frozen=True)
class ExclusionCounts:
    """How many rows the eligibility filter dropped, and why."""
    total: int
    bad_tenure: int        # negative, missing or fractional tenure
    before_window: int     # start_date earlier than cfg.earliest_start
    kept: int

    def as_dict(self):
        return asdict(self)


# ---------------------------
# Input contract
# ---------------------------

def validate_columns(df: pd.DataFrame, extra=()) -> None:
    missing = [c for c in list(REQUIRED_COLS) + list(extra) if c not in df.columns]
    if missing:
        raise SchemaError(f"subscriber table is missing columns: {missing}")


def normalize(df: pd.DataFrame) -> pd.DataFrame:
    """Coerce dates, numbers and the stop type to the types the engine expects."""
    validate_columns(df)
    out = df.copy()
    for c in DATE_COLS:
        out[c] = pd.to_datetime(out[c], errors="coerce")
    out["tenure"] = pd.to_numeric(out["tenure"], errors="coerce")
    out["monthly_fee"] = pd.to_numeric(out["monthly_fee"], errors="coerce")
    return out


def load_subs(path) -> pd.DataFrame:
    df = pd.read_csv(path, dtype={"stop_type": "object", "market": "object", "channel": "object"})
    logger.info("loaded %d subscriber rows from %s", len(df), path)
    return normalize(df)


def is_stopped(stop_type: pd.Series) -> pd.Series:
    """True where the customer has a genuine stop: stop_type non-null AND non-empty."""
    codes = stop_type.fillna("").astype(str).str.strip()
    return stop_type.notna() & (codes != "")


# ---------------------------
# Eligibility
# ---------------------------

def eligible(df: pd.DataFrame, cfg: Config):
    """Return (eligible rows, ExclusionCounts). Exclusions are reported, never raised."""
    cutoff = pd.Timestamp(cfg.earliest_start)
    # negative, missing or fractional tenure can't be placed in a day bucket
    bad_tenure = ~(df["tenure"] >= 0) | (df["tenure"] % 1 != 0)
    too_early = ~(df["start_date"] >= cutoff)
    mask = ~bad_tenure & ~too_early

    counts = ExclusionCounts(
        total=int(len(df)),
        bad_tenure=int(bad_tenure.sum()),
        before_window=int(too_early.sum()),
        kept=int(mask.sum()),
    )
    if counts.kept < counts.total:
        logger.info(
            "excluded %d of %d rows (bad tenure: %d, started before %s: %d)",
            counts.total - counts.kept, counts.total,
            counts.bad_tenure, cfg.earliest_start, counts.before_window,
        )
    out = df.loc[mask].copy()
    out["tenure"] = out["tenure"].astype(np.int64)
    return out, counts


def censor_at(df: pd.DataFrame, cutoff) -> pd.DataFrame:
    """
    Rewind the snapshot to `cutoff` ("what did survival look like back then").
    Only customers started on or before the cutoff are kept. Anyone whose stop
    happened after the cutoff is active again, and their tenure is measured to the cutoff.
    """
    cutoff = pd.Timestamp(cutoff)
    out = df.loc[df["start_date"] <= cutoff].copy()

    stopped_by_cutoff = is_stopped(out["stop_type"]) & (out["stop_date"] <= cutoff)
    days_to_cutoff = (cutoff - out["start_date"]).dt.days

    out["tenure"] = np.where(stopped_by_cutoff, out["tenure"], days_to_cutoff)
    out["stop_type"] = out["stop_type"].where(stopped_by_cutoff, None)
    out["stop_date"] = out["stop_date"].where(stopped_by_cutoff, pd.NaT)
    return out


# ---------------------------
# Data-quality diagnostics
# ---------------------------

def stop_type_summary(df: pd.DataFrame) -> pd.DataFrame:
    """Count and customer-id range per stop type (NaN = active)."""
    return (
        df.groupby("stop_type", dropna=False)
        .agg(number=("customer_id", "size"),
             min_customer_id=("customer_id", "min"),
             max_customer_id=("customer_id", "max"))
        .reset_index()
    )


def tenure_summary(df: pd.DataFrame) -> pd.DataFrame:
    """Rows per tenure value; negative tenures show up at the top."""
    return (
        df.groupby("tenure")
        .agg(number=("customer_id", "size"), min_customer_id=("customer_id", "min"))
        .reset_index()
        .sort_values("tenure")
        .reset_index(drop=True)
    )


def starts_stops_by_year(df: pd.DataFrame) -> pd.DataFrame:
    """Starts and stops per calendar year. Stops in years with no starts hint at bad history."""
    starts = df["start_date"].dt.year.value_counts().rename("start")
    stops = df.loc[df["stop_date"].notna(), "stop_date"].dt.year.value_counts().rename("stop")
    out = pd.concat([starts, stops], axis=1).fillna(0).astype(int)
    out.index = out.index.astype(int)
    out.index.name = "year"
    return out.sort_index().reset_index()


def with_start_year(df: pd.DataFrame) -> pd.DataFrame:
    """Add a start_year column so curves can be stratified by start cohort."""
    return df.assign(start_year=df["start_date"].dt.year)
