# engine.py
# Fit one survival curve per stratum from a subscriber snapshot and answer queries on them.

import logging
from dataclasses import dataclass, field

import pandas as pd
from joblib import Parallel, delayed

from . import revenue as rev
from .config import Config
from .curve import SurvivalCurve, survival_ratio
from .dataset import ExclusionCounts, eligible, is_stopped, normalize, validate_columns
from .errors import InvalidQueryError, UnknownStratumError
from .life_table import BUCKET_COLS, build_buckets, curve_table, split_strata

logger = logging.getLogger(__name__)


def _fit_stratum(key, buckets, tail_days):
    """Stages 2-4 for one stratum. Errors come back as values so one bad stratum can't sink the rest."""
    try:
        table = curve_table(buckets, tail_days)
        return key, SurvivalCurve(table, key), None
    except Exception as exc:
        return key, None, f"{type(exc).__name__}: {exc}"


@dataclass
class SurvivalModel:
    """Everything derived from one snapshot. Rebuild it with fit() when the snapshot changes."""
    cfg: Config
    subs: pd.DataFrame
    curves: dict
    rates: pd.DataFrame
    exclusions: ExclusionCounts
    failures: dict = field(default_factory=dict)

    def __post_init__(self):
        self._rates = rev.rate_lookup(self.rates, self.keys)

    @property
    def keys(self) -> list:
        return list(self.cfg.strata)

    # ---------------------------
    # Query surface
    # ---------------------------

    def _key(self, stratum) -> tuple:
        if stratum is None:
            stratum = ()
        elif not isinstance(stratum, tuple):
            stratum = (stratum,)
        if len(stratum) != len(self.keys):
            raise InvalidQueryError(
                f"stratum {stratum!r} does not match dimensions {tuple(self.keys)}"
            )
        return stratum

    def curve(self, stratum=()) -> SurvivalCurve:
        key = self._key(stratum)
        try:
            return self.curves[key]
        except KeyError:
            raise UnknownStratumError(key) from None

    def survival(self, stratum, tenure):
        return self.curve(stratum).survival(tenure)

    def conditional_survival(self, stratum, t0, t1):
        return self.curve(stratum).conditional_survival(t0, t1)

    def daily_revenue(self, stratum):
        return self._rates.get(self._key(stratum))

    def project_revenue(self, stratum, horizon, reference_tenure=None):
        curve = self.curve(stratum)
        rate = self.daily_revenue(stratum)
        if rate is None:
            logger.info("no revenue rate for stratum %r (no recent starts)", curve.stratum)
            return None
        return rev.project_revenue(curve, rate, horizon, reference_tenure)

    def survival_ratio(self, tenure):
        return survival_ratio(self.curves, tenure)

    # ---------------------------
    # Output tables
    # ---------------------------

    def life_table(self) -> pd.DataFrame:
        if not self.curves:
            return pd.DataFrame(columns=self.keys + BUCKET_COLS)
        parts = [self.curves[k].table for k in sorted(self.curves, key=repr)]
        return pd.concat(parts, ignore_index=True)[self.keys + BUCKET_COLS]

    def rate_table(self) -> pd.DataFrame:
        return self.rates[self.keys + ["daily_revenue"]].copy()

    def revenue_report(self, horizon=None) -> pd.DataFrame:
        horizon = self.cfg.horizons[0] if horizon is None else horizon
        if horizon <= 0:
            raise InvalidQueryError(f"horizon must be positive, got {horizon}")
        return rev.revenue_report(self.subs, self.curves, self._rates, self.keys, horizon)

    def market_summary(self) -> pd.DataFrame:
        """Total, average tenure and share still active per stratum."""
        frame = self.subs.assign(_active=~is_stopped(self.subs["stop_type"]))
        grouped = frame.groupby(self.keys, sort=True, dropna=False) if self.keys \
            else frame.assign(_all=0).groupby("_all")
        out = grouped.agg(
            total=("tenure", "size"),
            avg_tenure=("tenure", "mean"),
            active=("_active", "sum"),
        ).reset_index()
        if not self.keys:
            out = out.drop(columns="_all")
        out["active_rate"] = out["active"] / out["total"]
        return out

    def medians(self) -> pd.DataFrame:
        rows = [
            dict(zip(self.keys, key), median_tenure=c.median_tenure(),
                 survival_365=c.survival(365))
            for key, c in self.curves.items()
        ]
        return pd.DataFrame(rows, columns=self.keys + ["median_tenure", "survival_365"])

    def milestone_table(self, horizon=365) -> pd.DataFrame:
        """
        Loyalty after the renewal milestone (cfg.reference_tenure): how many starts get
        there, the hazard they face on the day itself, how many of those last another
        `horizon` days, and what one of them is worth.
        """
        ref = self.cfg.reference_tenure
        rows = []
        for key, c in self.curves.items():
            rate = self._rates.get(key)
            rows.append(dict(
                zip(self.keys, key),
                reference_tenure=ref,
                survival=c.survival(ref),
                hazard=c.hazard(ref),
                conditional_survival=c.conditional_survival(ref, ref + horizon),
                revenue=None if rate is None else rev.project_revenue(c, rate, horizon, ref),
            ))
        cols = ["reference_tenure", "survival", "hazard", "conditional_survival", "revenue"]
        return pd.DataFrame(rows, columns=self.keys + cols)


# ---------------------------
# Fit
# ---------------------------

def fit(df: pd.DataFrame, cfg: Config = None) -> SurvivalModel:
    """Snapshot → eligible subscribers → buckets → one curve per stratum, plus revenue rates."""
    cfg = cfg or Config()
    keys = list(cfg.strata)
    validate_columns(df, extra=keys)

    subs, counts = eligible(normalize(df), cfg)
    buckets = build_buckets(subs, keys)
    tasks = list(split_strata(buckets, keys))
    logger.info("fitting %d strata over %d eligible subscribers", len(tasks), counts.kept)

    if cfg.n_jobs == 1 or len(tasks) < 2:
        results = [_fit_stratum(key, part, cfg.tail_days) for key, part in tasks]
    else:
        results = Parallel(n_jobs=cfg.n_jobs)(
            delayed(_fit_stratum)(key, part, cfg.tail_days) for key, part in tasks
        )

    curves, failures = {}, {}
    for key, curve, error in results:
        if error is None:
            curves[key] = curve
        else:
            logger.warning("stratum %r failed: %s", key, error)
            failures[key] = error

    rates = rev.revenue_rates(subs, keys, cfg)
    missing = set(curves) - set(rev.rate_lookup(rates, keys))
    for key in sorted(missing, key=repr):
        logger.info("stratum %r has no starts since %s; revenue will be reported as no data",
                    key, cfg.recent_start)

    return SurvivalModel(cfg=cfg, subs=subs, curves=curves, rates=rates,
                         exclusions=counts, failures=failures)
