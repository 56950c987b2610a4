import pandas as pd
import pytest

from churn_survival.config import Config
from churn_survival.generator import assemble_subs


def make_subs(rows, start="2006-06-01"):
    """rows: (tenure, stop_type, market, channel[, monthly_fee[, start_date]])"""
    records = []
    for i, row in enumerate(rows, start=1):
        tenure, stop_type, market, channel = row[:4]
        fee = row[4] if len(row) > 4 else 30.4
        start_date = pd.Timestamp(row[5] if len(row) > 5 else start)
        stop_date = start_date + pd.Timedelta(days=tenure) if stop_type else pd.NaT
        records.append({
            "customer_id": i,
            "start_date": start_date,
            "stop_date": stop_date,
            "stop_type": stop_type,
            "market": market,
            "channel": channel,
            "monthly_fee": fee,
            "tenure": tenure,
        })
    return pd.DataFrame(records)


@pytest.fixture
def three_customers():
    """A stops at 10, B stops at 20, C still active at 30. One stratum."""
    return make_subs([
        (10, "V", "Gotham", "Dealer"),
        (20, "V", "Gotham", "Dealer"),
        (30, None, "Gotham", "Dealer"),
    ])


@pytest.fixture
def global_cfg():
    return Config(strata=())


@pytest.fixture(scope="session")
def synthetic_subs():
    return assemble_subs(Config(n=3_000, seed=7))
