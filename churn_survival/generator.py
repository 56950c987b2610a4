# generator.py
# Synthetic `subs` snapshot for demos and tests. Small, readable stage functions,
# each one adds a few columns and hands the frame to the next.

from datetime import datetime, timedelta

import numpy as np
import pandas as pd

from .config import Config

# ---------------------------
# Helpers
# ---------------------------

def rng_from_seed(seed: int) -> np.random.Generator:
    """Single RNG so runs are reproducible."""
    return np.random.default_rng(seed)

def as_dt(s: str) -> datetime:
    return datetime.fromisoformat(s)

def rand_dates_uniform(rng: np.random.Generator, n: int, start: datetime, end: datetime) -> np.ndarray:
    """Uniform random dates in [start, end)."""
    span = (end - start).days
    offsets = rng.integers(low=0, high=span, size=n)
    return np.array([start + timedelta(days=int(d)) for d in offsets], dtype="datetime64[D]")

def rlognormal_from_median(rng: np.random.Generator, median: np.ndarray, sigma: float) -> np.ndarray:
    """Lognormal parameterized by median. median = exp(mu)."""
    mu = np.log(np.clip(median, 1e-9, None))
    return rng.lognormal(mean=mu, sigma=sigma, size=median.shape[0])

def weighted_choice(rng: np.random.Generator, weights: dict, n: int) -> np.ndarray:
    labels = np.array(list(weights.keys()))
    p = np.array(list(weights.values()), dtype=float)
    return rng.choice(labels, size=n, p=p / p.sum())

# ---------------------------
# Stage 1: Who starts, where, when
# ---------------------------

def generate_population(cfg: Config, rng: np.random.Generator) -> pd.DataFrame:
    """Market, acquisition channel, start date inside [cfg.start, cfg.snapshot)."""
    market = weighted_choice(rng, cfg.market_weights, cfg.n)
    channel = weighted_choice(rng, cfg.channel_weights, cfg.n)
    start_date = rand_dates_uniform(rng, cfg.n, as_dt(cfg.start), as_dt(cfg.snapshot))

    return pd.DataFrame({
        "customer_id": np.arange(1, cfg.n + 1),
        "start_date": pd.to_datetime(start_date),
        "market": market,
        "channel": channel,
    })

# ---------------------------
# Stage 2: Monthly fee
# ---------------------------

def generate_fees(df: pd.DataFrame, cfg: Config, rng: np.random.Generator) -> pd.DataFrame:
    """Right-skewed fee around a per-market median, rounded to cents."""
    median = np.vectorize(cfg.fee_median.get)(df["market"].values).astype(float)
    fee = rlognormal_from_median(rng, median, sigma=cfg.sigma_fee)

    df = df.copy()
    df["monthly_fee"] = np.round(fee, 2)
    return df

# ---------------------------
# Stage 3: Stops (time-to-event, censored at the snapshot)
# ---------------------------

def generate_stops(df: pd.DataFrame, cfg: Config, rng: np.random.Generator) -> pd.DataFrame:
    """Weibull time to stop; anyone whose stop falls after the snapshot is still active."""
    # Mail/Chain customers leave faster, Gotham a bit slower. Purely to make strata differ.
    channel_speed = {"Dealer": 1.0, "Store": 1.2, "Chain": 0.7, "Mail": 0.5}
    market_speed = {"Gotham": 1.15, "Metropolis": 1.0, "Smallville": 0.85}
    scale = (
        cfg.weibull_scale_days
        * np.array([channel_speed.get(c, 1.0) for c in df["channel"]])
        * np.array([market_speed.get(m, 1.0) for m in df["market"]])
    )
    t_days = (rng.weibull(cfg.weibull_k, size=df.shape[0]) * scale).astype(int)

    snapshot = pd.Timestamp(cfg.snapshot)
    days_observed = (snapshot - df["start_date"]).dt.days.values
    stopped = t_days < days_observed

    stop_type = weighted_choice(rng, cfg.stop_type_weights, df.shape[0]).astype(object)
    stop_type[~stopped] = None

    df = df.copy()
    df["tenure"] = np.where(stopped, t_days, days_observed)
    df["stop_type"] = stop_type
    df["stop_date"] = df["start_date"] + pd.to_timedelta(np.where(stopped, t_days, 0), unit="D")
    df.loc[~stopped, "stop_date"] = pd.NaT
    return df

# ---------------------------
# Stage 4: Known defects
# ---------------------------

def inject_defects(df: pd.DataFrame, cfg: Config, rng: np.random.Generator) -> pd.DataFrame:
    """
    The real snapshot has a handful of negative tenures and stops dated before anything
    could have started. Reproduce both so the eligibility filter has work to do.
    """
    df = df.copy()
    n = df.shape[0]

    early = rng.random(n) < cfg.bad_history_share
    shift = pd.to_timedelta(rng.integers(400, 1500, size=int(early.sum())), unit="D")
    df.loc[early, "start_date"] = df.loc[early, "start_date"] - shift
    df.loc[early, "stop_date"] = df.loc[early, "start_date"] + pd.Timedelta(days=30)
    df.loc[early, "stop_type"] = "V"
    df.loc[early, "tenure"] = 30

    negative = (rng.random(n) < cfg.negative_tenure_share) & ~early
    df.loc[negative, "tenure"] = -rng.integers(1, 60, size=int(negative.sum()))
    return df

# ---------------------------
# Orchestrator
# ---------------------------

def assemble_subs(cfg: Config) -> pd.DataFrame:
    """Run all stages and return the snapshot in the engine's column order."""
    rng = rng_from_seed(cfg.seed)

    df = generate_population(cfg, rng)
    df = generate_fees(df, cfg, rng)
    df = generate_stops(df, cfg, rng)
    df = inject_defects(df, cfg, rng)

    cols_order = [
        "customer_id", "start_date", "stop_date", "stop_type",
        "market", "channel", "monthly_fee", "tenure",
    ]
    return df[cols_order].reset_index(drop=True)
