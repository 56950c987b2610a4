# revenue.py
# Survival curve x revenue rate → expected revenue.
#
# The rate is a steady stream of money per day (initial monthly fee / 30.4). Real billing
# data would be better, but the fee of recent starts is what new customers will pay.

import logging
from typing import Sequence

import numpy as np
import pandas as pd

from .config import Config
from .curve import SurvivalCurve
from .dataset import is_stopped
from .errors import InvalidQueryError

logger = logging.getLogger(__name__)

REPORT_COLS = [
    "horizon_days", "numsubs", "numactive", "revenue",
    "revenue_per_start", "revenue_per_active",
]


# ---------------------------
# Revenue rate
# ---------------------------

def revenue_rates(df: pd.DataFrame, keys: Sequence[str], cfg: Config) -> pd.DataFrame:
    """Average monthly fee of recent eligible starts per stratum, turned into a daily rate."""
    keys = list(keys)
    recent = df.loc[df["start_date"] >= pd.Timestamp(cfg.recent_start)]
    if keys:
        grouped = recent.groupby(keys, sort=True, dropna=False)
    else:
        grouped = recent.assign(_all=0).groupby("_all")

    out = grouped.agg(
        total_customers=("monthly_fee", "size"),
        monthly_fee=("monthly_fee", "mean"),
    ).reset_index()
    if not keys:
        out = out.drop(columns="_all")
    out["daily_revenue"] = out["monthly_fee"] / cfg.days_per_month
    return out


def rate_lookup(rates: pd.DataFrame, keys: Sequence[str]) -> dict:
    """{stratum tuple: daily_revenue}. Strata without recent starts are simply absent."""
    keys = list(keys)
    if not keys:
        return {(): float(rates["daily_revenue"].iloc[0])} if len(rates) else {}
    return {
        tuple(row[k] for k in keys): float(row["daily_revenue"])
        for _, row in rates.iterrows()
        if pd.notna(row["daily_revenue"])
    }


# ---------------------------
# Projection
# ---------------------------

def horizon_days(table: pd.DataFrame, horizon: int, start: int = 0) -> pd.Series:
    """
    Days of each bucket that fall inside [start, start + horizon).
    A bucket that runs past the horizon only counts the part inside it.
    """
    lo = np.maximum(table["tenure"], start)
    hi = np.minimum(table["end_tenure"], start + horizon - 1)
    return (hi - lo + 1).clip(lower=0)


def project_revenue(curve: SurvivalCurve, daily_revenue, horizon: int, reference_tenure=None):
    """
    Expected revenue per customer over the next `horizon` days.

    Without a reference tenure this is a brand-new start: sum of
    daily_revenue * survival * days-in-horizon over buckets with tenure < horizon.
    With one, the customer has already survived to t0, so survival is conditional
    (divided by survival(t0)) and the window is [t0, t0 + horizon).
    Days past the tail bucket's end_tenure earn nothing.
    Returns None when there is no rate or nobody survives to t0.
    """
    if horizon <= 0:
        raise InvalidQueryError(f"horizon must be positive, got {horizon}")
    if daily_revenue is None or pd.isna(daily_revenue):
        return None

    t0 = 0 if reference_tenure is None else reference_tenure
    s0 = curve.survival(t0)
    if s0 == 0:
        return None
    days = horizon_days(curve.table, horizon, start=t0)
    return float(daily_revenue * (curve.table["survival"] * days).sum() / s0)


def existing_customer_revenue(curve: SurvivalCurve, daily_revenue, tenures, horizon: int) -> float:
    """
    Revenue over the next `horizon` days from active customers at the given tenures,
    each projected conditionally on the tenure they have already reached.
    """
    tenures = np.asarray(tenures, dtype=np.int64)
    if len(tenures) == 0:
        return 0.0
    s0 = curve.survival(tenures)
    days = curve.survival_days(tenures, tenures + horizon)
    with np.errstate(divide="ignore", invalid="ignore"):
        per_customer = np.where(s0 > 0, days / s0, 0.0)
    return float(daily_revenue * per_customer.sum())


def revenue_report(df: pd.DataFrame, curves: dict, rates: dict, keys: Sequence[str], horizon: int) -> pd.DataFrame:
    """
    One row per stratum: starts, actives, projected revenue from the active base over
    `horizon` days, and that revenue per start / per active customer.
    Strata without a rate or without a curve report NaN revenue rather than 0.
    """
    keys = list(keys)
    active = ~is_stopped(df["stop_type"])
    frame = df.assign(_active=active)
    groups = frame.groupby(keys, sort=True, dropna=False) if keys else [((), frame)]

    rows = []
    for key, part in groups:
        if not isinstance(key, tuple):
            key = (key,)
        numsubs = int(len(part))
        numactive = int(part["_active"].sum())

        curve = curves.get(key)
        rate = rates.get(key)
        if curve is None or rate is None:
            logger.warning("no %s for stratum %r; revenue left empty",
                           "curve" if curve is None else "revenue rate", key)
            revenue = np.nan
        else:
            revenue = existing_customer_revenue(
                curve, rate, part.loc[part["_active"], "tenure"].to_numpy(), horizon
            )

        rows.append(dict(
            zip(keys, key),
            horizon_days=horizon,
            numsubs=numsubs,
            numactive=numactive,
            revenue=revenue,
            revenue_per_start=revenue / numsubs if numsubs else np.nan,
            revenue_per_active=revenue / numactive if numactive else np.nan,
        ))
    return pd.DataFrame(rows, columns=keys + REPORT_COLS)
