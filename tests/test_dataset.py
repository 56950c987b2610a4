import pandas as pd
import pytest

from churn_survival.config import Config
from churn_survival.dataset import (
    censor_at,
    eligible,
    is_stopped,
    load_subs,
    normalize,
    starts_stops_by_year,
    stop_type_summary,
    tenure_summary,
    with_start_year,
)
from churn_survival.errors import SchemaError

from conftest import make_subs


def test_is_stopped_requires_non_null_and_non_empty():
    s = pd.Series(["V", "I", "M", None, "", "  ", float("nan")], dtype=object)
    assert is_stopped(s).tolist() == [True, True, True, False, False, False, False]


def test_eligibility_counts():
    df = make_subs([
        (10, "V", "Gotham", "Dealer", 30.0, "2005-01-01"),
        (-3, None, "Gotham", "Dealer", 30.0, "2005-01-01"),
        (10, "V", "Gotham", "Dealer", 30.0, "2003-06-01"),
        (-1, "V", "Gotham", "Dealer", 30.0, "2003-06-01"),
    ])
    subs, counts = eligible(df, Config())
    assert list(subs["customer_id"]) == [1]
    assert counts.total == 4
    assert counts.bad_tenure == 2
    assert counts.before_window == 2
    assert counts.kept == 1
    assert counts.as_dict()["kept"] == 1


def test_fractional_tenure_counts_as_bad_tenure():
    df = make_subs([
        (10, "V", "Gotham", "Dealer", 30.0, "2005-01-01"),
        (10.7, "V", "Gotham", "Dealer", 30.0, "2005-01-01"),
        (12.0, None, "Gotham", "Dealer", 30.0, "2005-01-01"),
    ])
    subs, counts = eligible(df, Config())
    assert list(subs["customer_id"]) == [1, 3]
    assert subs["tenure"].tolist() == [10, 12]
    assert counts.bad_tenure == 1
    assert counts.kept == 2


def test_earliest_start_is_configurable():
    df = make_subs([(10, "V", "Gotham", "Dealer", 30.0, "2003-06-01")])
    _, counts = eligible(df, Config(earliest_start="2003-01-01"))
    assert counts.kept == 1


def test_censor_at_rewinds_snapshot():
    df = make_subs([
        (181, "V", "Gotham", "Dealer", 30.0, "2005-01-01"),   # stops after cutoff → active
        (20, "I", "Gotham", "Dealer", 30.0, "2005-01-01"),    # stopped before cutoff
        (500, None, "Gotham", "Dealer", 30.0, "2005-02-01"),  # active
        (10, None, "Gotham", "Dealer", 30.0, "2005-06-01"),   # starts after cutoff
    ])
    out = censor_at(df, "2005-03-01").set_index("customer_id")

    assert list(out.index) == [1, 2, 3]
    assert out.loc[1, "tenure"] == 59
    assert not is_stopped(out["stop_type"]).loc[1]
    assert pd.isna(out.loc[1, "stop_date"])
    assert out.loc[2, "tenure"] == 20
    assert out.loc[2, "stop_type"] == "I"
    assert out.loc[3, "tenure"] == 28


def test_normalize_and_load(tmp_path):
    df = make_subs([(10, "V", "Gotham", "Dealer"), (5, None, "Metropolis", "Mail")])
    path = tmp_path / "subs.csv"
    df.to_csv(path, index=False)

    loaded = load_subs(path)
    assert pd.api.types.is_datetime64_any_dtype(loaded["start_date"])
    assert loaded["stop_date"].isna().tolist() == [False, True]
    assert is_stopped(loaded["stop_type"]).tolist() == [True, False]
    assert loaded["tenure"].tolist() == [10, 5]

    with pytest.raises(SchemaError):
        normalize(df.drop(columns=["tenure"]))


def test_data_quality_summaries():
    df = make_subs([
        (10, "V", "Gotham", "Dealer", 30.0, "2005-01-01"),
        (-2, None, "Gotham", "Dealer", 30.0, "2005-01-01"),
        (30, "V", "Gotham", "Dealer", 30.0, "2006-05-01"),
        (40, None, "Gotham", "Dealer", 30.0, "2006-05-01"),
    ])
    stops = stop_type_summary(df)
    assert stops["number"].sum() == 4
    assert stops.loc[stops["stop_type"] == "V", "number"].iloc[0] == 2

    tenures = tenure_summary(df)
    assert tenures["tenure"].iloc[0] == -2

    years = starts_stops_by_year(df).set_index("year")
    assert years.loc[2005, "start"] == 2
    assert years.loc[2006, "start"] == 2
    assert years.loc[2006, "stop"] == 1


def test_start_year_column_can_stratify():
    df = with_start_year(make_subs([(1, None, "Gotham", "Dealer", 30.0, "2005-07-01")]))
    assert df["start_year"].iloc[0] == 2005
