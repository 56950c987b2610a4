# life_table.py
# Subscribers → life table. Each stage is a small function that takes a frame
# and returns a new one; nothing is updated in place.
#
#   build_buckets      one row per (stratum, tenure): population, events
#   fill_gaps          end_tenure / span_days so the buckets tile [0, tail]
#   accumulate         cumulative_population (suffix sum) and hazard
#   compute_survival   survival = exp(running sum of log(1 - hazard))

from typing import Iterator, Sequence, Tuple

import numpy as np
import pandas as pd

from .dataset import is_stopped

BUCKET_COLS = [
    "tenure", "population", "events", "cumulative_population",
    "hazard", "survival", "end_tenure", "span_days", "is_tail",
]


# ---------------------------
# Stage 1: Buckets
# ---------------------------

def build_buckets(df: pd.DataFrame, keys: Sequence[str] = ()) -> pd.DataFrame:
    """
    Aggregate eligible subscribers into one row per observed (stratum, tenure).
    population = customers whose tenure is exactly this value,
    events     = those of them with a genuine stop. Active customers are right-censored:
    they count in population only.
    """
    keys = list(keys)
    stopped = is_stopped(df["stop_type"]).astype(np.int64)
    out = (
        df.assign(_stopped=stopped)
        .groupby(keys + ["tenure"], sort=True, dropna=False)
        .agg(population=("_stopped", "size"), events=("_stopped", "sum"))
        .reset_index()
    )
    out["tenure"] = out["tenure"].astype(np.int64)
    out["population"] = out["population"].astype(np.int64)
    out["events"] = out["events"].astype(np.int64)
    return out


def split_strata(buckets: pd.DataFrame, keys: Sequence[str] = ()) -> Iterator[Tuple[tuple, pd.DataFrame]]:
    """Yield (stratum key tuple, that stratum's buckets). No keys → a single () stratum."""
    keys = list(keys)
    if not keys:
        yield (), buckets
        return
    for key, part in buckets.groupby(keys, sort=True, dropna=False):
        if not isinstance(key, tuple):
            key = (key,)
        yield key, part


# ---------------------------
# Stage 2: Gap filling
# ---------------------------

def fill_gaps(buckets: pd.DataFrame, tail_days: int = 100_000) -> pd.DataFrame:
    """
    One stratum. Every bucket runs until the day before the next observed tenure;
    the last one becomes the unbounded tail. An empty bucket is added at tenure 0
    when nobody was observed there, so the buckets always start at day 0.
    """
    if buckets.empty:
        raise ValueError("cannot fill gaps in an empty stratum")
    if tail_days < 1:
        raise ValueError("tail_days must be at least 1")

    b = buckets.sort_values("tenure").reset_index(drop=True)
    if b["tenure"].iloc[0] < 0:
        raise ValueError("negative tenure reached the life table")
    if b["tenure"].iloc[0] > 0:
        origin = b.iloc[[0]].copy()
        origin["tenure"] = 0
        origin["population"] = 0
        origin["events"] = 0
        b = pd.concat([origin, b], ignore_index=True)

    next_tenure = b["tenure"].shift(-1)
    is_tail = next_tenure.isna()
    end_tenure = np.where(is_tail, b["tenure"] + tail_days - 1, next_tenure - 1)

    out = b.assign(end_tenure=end_tenure.astype(np.int64), is_tail=is_tail.to_numpy())
    out["span_days"] = out["end_tenure"] - out["tenure"] + 1
    return out


# ---------------------------
# Stage 3: Cumulative population + hazard
# ---------------------------

def accumulate(buckets: pd.DataFrame) -> pd.DataFrame:
    """One stratum, sorted by tenure. At risk at t = everyone with tenure >= t."""
    pop = buckets["population"].to_numpy(dtype=np.int64)
    cumpop = pop[::-1].cumsum()[::-1]

    events = buckets["events"].to_numpy(dtype=float)
    # hazard is undefined (NaN), not zero, where nobody is at risk
    with np.errstate(divide="ignore", invalid="ignore"):
        hazard = np.where(cumpop > 0, events / cumpop, np.nan)

    return buckets.assign(cumulative_population=cumpop, hazard=hazard)


# ---------------------------
# Stage 4: Survival
# ---------------------------

def compute_survival(buckets: pd.DataFrame) -> pd.DataFrame:
    """
    One stratum, sorted by tenure, first bucket at tenure 0.
    survival(t) is the product of (1 - hazard) over earlier buckets, carried as a
    running log-sum. A hazard of 1 gives log(0) = -inf and every later survival is 0.
    """
    h = buckets["hazard"].to_numpy(dtype=float)
    h = np.where(np.isnan(h), 0.0, h)   # undefined hazard contributes a factor of 1
    with np.errstate(divide="ignore"):
        log_terms = np.log1p(-h)

    log_surv = np.concatenate([[0.0], np.cumsum(log_terms)[:-1]])
    survival = np.exp(log_surv)
    return buckets.assign(survival=survival)


def curve_table(buckets: pd.DataFrame, tail_days: int = 100_000) -> pd.DataFrame:
    """Run stages 2-4 for a single stratum's raw buckets."""
    out = compute_survival(accumulate(fill_gaps(buckets, tail_days)))
    extra = [c for c in out.columns if c not in BUCKET_COLS]
    return out[extra + BUCKET_COLS]


def build_life_table(df: pd.DataFrame, keys: Sequence[str] = (), tail_days: int = 100_000) -> pd.DataFrame:
    """Whole pipeline over eligible subscribers, all strata stacked (key columns first)."""
    buckets = build_buckets(df, keys)
    parts = [curve_table(part, tail_days) for _, part in split_strata(buckets, keys)]
    if not parts:
        return pd.DataFrame(columns=list(keys) + BUCKET_COLS)
    return pd.concat(parts, ignore_index=True)


# ---------------------------
# Checks and caveats
# ---------------------------

def brute_force_survival(hazards) -> np.ndarray:
    """Direct product of (1 - h) over earlier buckets. Slow; for verification only."""
    out = []
    running = 1.0
    for h in hazards:
        out.append(running)
        if not np.isnan(h):
            running *= (1.0 - h)
    return np.array(out)


def hazard_standard_error(table: pd.DataFrame) -> pd.Series:
    """sqrt(h(1-h)/n). Large for small at-risk populations; read hazards there with care."""
    h = table["hazard"]
    n = table["cumulative_population"].where(table["cumulative_population"] > 0)
    return np.sqrt(h * (1 - h) / n)


def hazard_by_date(df: pd.DataFrame, tenure: int = 365) -> pd.DataFrame:
    """
    How a single hazard moved over calendar time. Everyone still around `tenure` days after
    their start is at risk on that anniversary date; some of them stop exactly then.
    """
    at_risk = df.loc[df["tenure"] >= tenure]
    anniversary = at_risk["start_date"] + pd.Timedelta(days=tenure)
    stops = (is_stopped(at_risk["stop_type"]) & (at_risk["tenure"] == tenure)).astype(np.int64)
    out = (
        pd.DataFrame({"date": anniversary, "stops": stops})
        .groupby("date")
        .agg(population=("stops", "size"), stops=("stops", "sum"))
        .reset_index()
    )
    out["hazard"] = out["stops"] / out["population"]
    return out
