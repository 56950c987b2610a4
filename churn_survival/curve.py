# curve.py
# Lookups on one stratum's finished life table.

import numpy as np
import pandas as pd

from .errors import InvalidQueryError


class SurvivalCurve:
    """
    Survival curve for one stratum.

    Buckets tile [0, tail], so any integer day maps to exactly one bucket: the one
    with the largest tenure <= day. Days past the tail's end_tenure read the tail bucket,
    i.e. survival is held flat beyond the observation horizon.
    """

    def __init__(self, table: pd.DataFrame, stratum: tuple = ()):
        t = table.sort_values("tenure").reset_index(drop=True)
        if t.empty or t["tenure"].iloc[0] != 0:
            raise ValueError("survival curve must start with a bucket at tenure 0")
        self.stratum = tuple(stratum)
        self.table = t

        self._tenure = t["tenure"].to_numpy(dtype=np.int64)
        self._end = t["end_tenure"].to_numpy(dtype=np.int64)
        self._survival = t["survival"].to_numpy(dtype=float)
        self._hazard = t["hazard"].to_numpy(dtype=float)
        span = t["span_days"].to_numpy(dtype=float)
        # survival-days accumulated before each bucket starts
        self._cum_days = np.concatenate([[0.0], np.cumsum(self._survival[:-1] * span[:-1])])

    def __len__(self):
        return len(self.table)

    def __repr__(self):
        return f"SurvivalCurve(stratum={self.stratum!r}, buckets={len(self)})"

    @property
    def last_tenure(self) -> int:
        return int(self._tenure[-1])

    @property
    def tail_end(self) -> int:
        return int(self._end[-1])

    def _index(self, t):
        t = np.asarray(t)
        if np.any(t < 0):
            raise InvalidQueryError(f"tenure must be >= 0, got {t}")
        return np.searchsorted(self._tenure, t, side="right") - 1

    def survival(self, t):
        """Probability of reaching day t without stopping. Works on scalars or arrays."""
        s = self._survival[self._index(t)]
        return float(s) if np.ndim(s) == 0 else s

    def hazard(self, t):
        """Hazard of the bucket covering day t (NaN where nobody was at risk)."""
        h = self._hazard[self._index(t)]
        return float(h) if np.ndim(h) == 0 else h

    def conditional_survival(self, t0: int, t: int):
        """
        P(survive to t | survived to t0). None when survival(t0) is 0,
        since there is nobody left to condition on.
        """
        if t < t0:
            raise InvalidQueryError(f"query tenure {t} is before reference tenure {t0}")
        s0 = self.survival(t0)
        if s0 == 0:
            return None
        if t == t0:
            return 1.0
        return min(1.0, self.survival(t) / s0)

    def survival_days(self, start, stop):
        """
        Expected days survived over the integer days [start, stop), i.e. the sum of
        survival(d). Buckets are flat, so each contributes survival * overlapping days.
        Nothing accrues past the tail bucket's end_tenure.
        """
        start = np.asarray(start)
        stop = np.asarray(stop)
        if np.any(stop < start):
            raise InvalidQueryError("survival_days needs stop >= start")
        total = self._area_to(stop) - self._area_to(start)
        return float(total) if np.ndim(total) == 0 else total

    def _area_to(self, x):
        x = np.minimum(x, self.tail_end + 1)
        i = self._index(x)
        return self._cum_days[i] + self._survival[i] * (x - self._tenure[i])

    # ---------------------------
    # Summary measures
    # ---------------------------

    def median_tenure(self):
        """First tenure where survival has dropped to 50% or below; None if it never does."""
        hit = np.nonzero(self._survival <= 0.5)[0]
        return int(self._tenure[hit[0]]) if len(hit) else None

    def truncated_mean_tenure(self, horizon: int) -> float:
        """Average days survived during the first `horizon` days after a start."""
        if horizon <= 0:
            raise InvalidQueryError("horizon must be positive")
        return self.survival_days(0, horizon)


def survival_ratio(curves: dict, t: int) -> pd.DataFrame:
    """Survival at day t for every stratum, divided by the best stratum's survival."""
    rows = [(key, curve.survival(t)) for key, curve in curves.items()]
    out = pd.DataFrame(rows, columns=["stratum", "survival"])
    best = out["survival"].max() if len(out) else np.nan
    out["ratio"] = out["survival"] / best if best and best > 0 else np.nan
    return out.sort_values("survival", ascending=False).reset_index(drop=True)
