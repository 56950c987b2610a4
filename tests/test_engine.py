import numpy as np
import pytest

from churn_survival import engine
from churn_survival.config import Config
from churn_survival.engine import fit
from churn_survival.errors import InvalidQueryError, SchemaError, UnknownStratumError
from churn_survival.life_table import BUCKET_COLS

from conftest import make_subs


@pytest.fixture(scope="module")
def model(synthetic_subs):
    return fit(synthetic_subs, Config())


def test_global_curve(three_customers, global_cfg):
    m = fit(three_customers, global_cfg)
    assert m.survival((), 0) == 1.0
    assert m.survival(None, 25) == pytest.approx(2 / 3)
    assert m.survival((), 10_000) == pytest.approx(1 / 3)
    assert m.conditional_survival((), 10, 30) == pytest.approx(1 / 3)
    assert list(m.life_table().columns) == BUCKET_COLS


def test_stratified_tables(model):
    table = model.life_table()
    assert list(table.columns) == ["market", "channel"] + BUCKET_COLS
    assert table.groupby(["market", "channel"]).ngroups == len(model.curves)
    assert table["population"].sum() == model.exclusions.kept

    rates = model.rate_table()
    assert list(rates.columns) == ["market", "channel", "daily_revenue"]
    assert (rates["daily_revenue"] > 0).all()


def test_queries_by_stratum(model):
    key = next(iter(model.curves))
    assert model.survival(key, 0) == 1.0
    for t0 in (0, 90, 365):
        assert model.conditional_survival(key, t0, t0) == 1.0
    assert 0 <= model.conditional_survival(key, 365, 730) <= 1

    one_year = model.project_revenue(key, 365)
    assert one_year > 0
    assert model.project_revenue(key, 730) > one_year
    assert model.project_revenue(key, 365, reference_tenure=365) > 0


def test_unknown_and_malformed_strata(model):
    with pytest.raises(UnknownStratumError):
        model.survival(("Atlantis", "Dealer"), 10)
    with pytest.raises(KeyError):
        model.curve(("Atlantis", "Dealer"))
    with pytest.raises(InvalidQueryError):
        model.survival("Gotham", 10)


def test_revenue_report_columns(model):
    report = model.revenue_report(730)
    assert list(report.columns) == [
        "market", "channel", "horizon_days", "numsubs", "numactive",
        "revenue", "revenue_per_start", "revenue_per_active",
    ]
    assert (report["horizon_days"] == 730).all()
    assert report["numsubs"].sum() == model.exclusions.kept
    np.testing.assert_allclose(
        report["revenue_per_start"], report["revenue"] / report["numsubs"]
    )
    with pytest.raises(InvalidQueryError):
        model.revenue_report(0)


def test_missing_rate_is_no_data():
    df = make_subs([
        (10, "V", "Gotham", "Dealer", 30.4, "2006-02-01"),
        (40, None, "Gotham", "Dealer", 30.4, "2006-02-01"),
        (10, "V", "Smallville", "Mail", 30.4, "2005-02-01"),
        (400, None, "Smallville", "Mail", 30.4, "2005-02-01"),
    ])
    m = fit(df, Config())
    assert m.project_revenue(("Smallville", "Mail"), 365) is None
    assert m.project_revenue(("Gotham", "Dealer"), 365) > 0
    report = m.revenue_report(365).set_index(["market", "channel"])
    assert np.isnan(report.loc[("Smallville", "Mail"), "revenue"])


def test_failing_stratum_does_not_block_others(synthetic_subs, monkeypatch):
    real = engine.curve_table

    def flaky(buckets, tail_days):
        if (buckets["market"].iloc[0], buckets["channel"].iloc[0]) == ("Gotham", "Mail"):
            raise RuntimeError("boom")
        return real(buckets, tail_days)

    monkeypatch.setattr(engine, "curve_table", flaky)
    m = fit(synthetic_subs, Config())

    assert ("Gotham", "Mail") in m.failures
    assert "boom" in m.failures[("Gotham", "Mail")]
    assert ("Gotham", "Dealer") in m.curves
    with pytest.raises(UnknownStratumError):
        m.survival(("Gotham", "Mail"), 10)
    assert np.isnan(
        m.revenue_report(365).set_index(["market", "channel"]).loc[("Gotham", "Mail"), "revenue"]
    )


def test_parallel_matches_sequential(synthetic_subs):
    cfg = Config(strata=("market",))
    seq = fit(synthetic_subs, cfg)
    par = fit(synthetic_subs, Config(strata=("market",), n_jobs=2))
    assert set(seq.curves) == set(par.curves)
    for key in seq.curves:
        np.testing.assert_allclose(
            seq.curves[key].table["survival"], par.curves[key].table["survival"]
        )


def test_exclusions_reported(synthetic_subs, model):
    ex = model.exclusions
    assert ex.total == len(synthetic_subs)
    assert ex.bad_tenure > 0
    assert ex.before_window > 0
    assert ex.kept < ex.total


def test_summary_tables(model):
    summary = model.market_summary()
    assert summary["total"].sum() == model.exclusions.kept
    assert ((summary["active_rate"] >= 0) & (summary["active_rate"] <= 1)).all()

    medians = model.medians()
    assert len(medians) == len(model.curves)

    ratio = model.survival_ratio(365)
    assert ratio["ratio"].max() == 1.0


def test_milestone_table(three_customers, global_cfg):
    cfg = global_cfg
    cfg.reference_tenure = 20
    m = fit(three_customers, cfg)
    row = m.milestone_table(365).iloc[0]
    assert row["survival"] == pytest.approx(2 / 3)
    assert row["hazard"] == pytest.approx(1 / 2)
    assert row["conditional_survival"] == pytest.approx(1 / 2)
    # make_subs fee is 30.4 → 1 per day
    assert row["revenue"] == pytest.approx(10 + 355 / 2)


def test_schema_error():
    df = make_subs([(10, "V", "Gotham", "Dealer")]).drop(columns="monthly_fee")
    with pytest.raises(SchemaError):
        fit(df, Config())
    df = make_subs([(10, "V", "Gotham", "Dealer")])
    with pytest.raises(SchemaError):
        fit(df, Config(strata=("region",)))
