import pandas as pd
import pytest

from anime_eda.modeling import (
    SearchStart,
    compare_nested,
    fit_ols,
    stepwise_select,
    usable_indicators,
)
from anime_eda.preprocess import expand_genres


@pytest.fixture
def scoped(anime_df):
    """Baseline and genre-augmented fits on the same rows."""
    table = expand_genres(anime_df).table
    genres = usable_indicators(table, ["Action", "Comedy", "Drama", "Romance"])
    lower = fit_ols(table, "score", ["scored_by"], ["type"], label="baseline")
    upper = fit_ols(table, "score", ["scored_by"], ["type"], indicators=genres, label="upper")
    return table, lower, upper


@pytest.mark.parametrize("start", [SearchStart.LOWER, SearchStart.UPPER])
def test_stepwise_never_worse_than_start(scoped, start):
    table, lower, upper = scoped
    result = stepwise_select(lower, upper, table, start=start)
    assert result.model.aic <= result.start_model.aic + 1e-9
    assert set(lower.terms) <= set(result.model.terms) <= set(upper.terms)
    # steps record strictly non-increasing AIC
    aics = [s.aic for s in result.steps]
    assert all(b <= a + 1e-9 for a, b in zip(aics, aics[1:]))


def test_stepwise_finds_the_real_genre_effect(scoped):
    table, lower, upper = scoped
    result = stepwise_select(lower, upper, table)
    assert "Action" in result.added
    assert result.steps[0].action == "start"


def test_stepwise_is_deterministic(scoped):
    table, lower, upper = scoped
    a = stepwise_select(lower, upper, table)
    b = stepwise_select(lower, upper, table)
    assert a.model.terms == b.model.terms
    assert a.steps == b.steps


def test_stepwise_with_equal_scopes_returns_start(scoped):
    table, lower, _ = scoped
    result = stepwise_select(lower, lower, table)
    assert result.model.terms == lower.terms
    assert len(result.steps) == 1


def test_stepwise_rejects_lower_outside_upper(anime_df):
    a = fit_ols(anime_df, "score", ["scored_by"])
    b = fit_ols(anime_df, "score", ["episodes"])
    with pytest.raises(ValueError):
        stepwise_select(a, b, anime_df)


def test_f_test_model_against_itself(scoped):
    _, lower, _ = scoped
    res = compare_nested(lower, lower)
    assert res.f_statistic == pytest.approx(0.0)
    assert res.p_value == pytest.approx(1.0)
    assert not res.reject_null


def test_f_test_matches_statsmodels(scoped):
    _, lower, upper = scoped
    res = compare_nested(lower, upper, alpha=0.05)
    f_ref, p_ref, df_ref = upper.results.compare_f_test(lower.results)
    assert res.f_statistic == pytest.approx(f_ref, rel=1e-8)
    assert res.p_value == pytest.approx(p_ref, rel=1e-6, abs=1e-300)
    assert res.df_num == int(df_ref)
    assert res.reject_null
    assert res.decision == "reject H0"


def test_f_test_argument_order_does_not_matter(scoped):
    _, lower, upper = scoped
    assert compare_nested(lower, upper) == compare_nested(upper, lower)


def test_f_test_rejects_non_nested(anime_df):
    a = fit_ols(anime_df, "score", ["scored_by"])
    b = fit_ols(anime_df, "score", ["episodes"])
    with pytest.raises(ValueError, match="not nested"):
        compare_nested(a, b)


def test_f_test_rejects_different_rows(anime_df):
    a = fit_ols(anime_df, "score", ["scored_by"])
    b = fit_ols(anime_df.iloc[:-3], "score", ["scored_by", "episodes"])
    with pytest.raises(ValueError, match="different rows"):
        compare_nested(a, b)


def test_usable_indicators_drops_constant_columns():
    df = pd.DataFrame({"A": [True, False], "B": [True, True], "C": [False, False]})
    assert usable_indicators(df, ["A", "B", "C"]) == ["A"]


def test_usable_indicators_drops_duplicate_columns():
    df = pd.DataFrame(
        {
            "Mecha": [1, 0, 1, 0],
            "Space": [1, 0, 1, 0],
            "Drama": [0, 1, 1, 0],
        }
    )
    assert usable_indicators(df, ["Mecha", "Space", "Drama"]) == ["Mecha", "Drama"]


def test_usable_indicators_drops_columns_aliased_with_base(anime_df):
    table = expand_genres(anime_df).table
    base = fit_ols(table, "score", ["scored_by"], ["type"]).design
    table["Movie only"] = (table["type"] == "Movie").astype(int)
    table["Not Action"] = 1 - table["Action"].astype(int)
    kept = usable_indicators(table, ["Action", "Movie only", "Not Action", "Comedy"], base=base)
    assert kept == ["Action", "Comedy"]


def test_f_test_rejects_different_responses(anime_df):
    df = anime_df.assign(score_transformed=anime_df["score"] - 1.0)
    a = fit_ols(df, "score", ["scored_by"])
    b = fit_ols(df, "score_transformed", ["scored_by", "episodes"])
    with pytest.raises(ValueError, match="different responses"):
        compare_nested(a, b)
