# config.py
# All the knobs live here: the engine settings callers must supply,
# plus the synthetic-snapshot settings used by the generator and the demo run.

from dataclasses import dataclass

@dataclass
class Config:
    # Eligibility window. The source data has spurious stops before 2004,
    # so anything that started earlier is excluded from the curves.
    earliest_start: str = "2004-01-01"

    # Stratification dimensions; () gives a single global curve
    strata: tuple = ("market", "channel")

    # Length of the unbounded tail bucket (last observed tenure + tail_days - 1)
    tail_days: int = 100_000

    # Revenue rate: average fee of recent starts, per day
    recent_start: str = "2006-01-01"
    days_per_month: float = 30.4

    # Reporting
    horizons: tuple = (365, 730)
    reference_tenure: int = 365       # renewal milestone for conditional queries
    n_jobs: int = 1                   # joblib workers, one task per stratum

    # ---- synthetic snapshot (generator.py) ----
    n: int = 20_000
    start: str = "2004-01-01"         # first start date in the simulated window
    snapshot: str = "2006-12-28"      # analysis cutoff; everyone still active is censored here
    seed: int = 42

    market_weights: dict = None
    channel_weights: dict = None
    # Median monthly fee by market (lognormal around it)
    fee_median: dict = None
    sigma_fee: float = 0.35

    # Weibull stop timing
    weibull_k: float = 0.9             # k<1 → hazard falls as customers settle in
    weibull_scale_days: float = 365 * 2.5
    stop_type_weights: dict = None

    # Known defects injected so the eligibility filter has something to catch
    bad_history_share: float = 0.01   # starts before earliest_start
    negative_tenure_share: float = 0.002

    def __post_init__(self):
        self.strata = tuple(self.strata)
        self.horizons = tuple(self.horizons)
        if self.market_weights is None:
            self.market_weights = {
                "Gotham": 0.45,
                "Metropolis": 0.35,
                "Smallville": 0.20,
            }
        if self.channel_weights is None:
            self.channel_weights = {
                "Dealer": 0.45,
                "Store": 0.30,
                "Chain": 0.15,
                "Mail": 0.10,
            }
        if self.fee_median is None:
            self.fee_median = {
                "Gotham": 45.0,
                "Metropolis": 40.0,
                "Smallville": 35.0,
            }
        if self.stop_type_weights is None:
            # V = voluntary, I = involuntary, M = migration
            self.stop_type_weights = {
                "V": 0.60,
                "I": 0.30,
                "M": 0.10,
            }
