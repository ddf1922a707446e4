import numpy as np
import pandas as pd
import pytest
import statsmodels.api as sm

from anime_eda.errors import SchemaError, SingularDesignError
from anime_eda.modeling import (
    INTERCEPT,
    ReferenceLevel,
    choose_reference,
    fit_ols,
)


def test_coefficient_count_and_names(anime_df):
    m = fit_ols(anime_df, "score", ["scored_by", "episodes"], ["type", "source"])
    # const + 2 numeric + (3-1) type + (3-1) source
    assert m.n_params == 7
    assert len(m.coefficients) == 7
    assert m.design_columns[0] == INTERCEPT
    assert "type[T.Movie]" in m.design_columns
    # ALPHABETICAL reference for type is 'Movie' -> absent
    assert m.encodings[0].reference == "Movie"
    assert "type[T.OVA]" in m.design_columns and "type[T.TV]" in m.design_columns


def test_residuals_sum_to_zero_with_intercept(anime_df):
    m = fit_ols(anime_df, "score", ["scored_by"], ["type"])
    assert abs(float(m.residuals.sum())) < 1e-8
    np.testing.assert_allclose(m.fitted + m.residuals, m.y, atol=1e-10)


def test_matches_statsmodels_reference_fit(anime_df):
    m = fit_ols(anime_df, "score", ["scored_by", "episodes"])
    X = sm.add_constant(anime_df[["scored_by", "episodes"]].astype(float))
    ref = sm.OLS(anime_df["score"], X).fit()
    np.testing.assert_allclose(m.coefficients.to_numpy(), ref.params.to_numpy(), rtol=1e-8)
    assert m.rsquared == pytest.approx(ref.rsquared)
    # p counts the error variance, so AIC is shifted by 2 from statsmodels'
    assert m.aic == pytest.approx(ref.aic + 2.0)


def test_most_frequent_reference_policy():
    values = pd.Series(["TV", "Movie", "TV", "OVA", "Movie", "TV"], name="type")
    assert choose_reference(values, ReferenceLevel.ALPHABETICAL) == "Movie"
    assert choose_reference(values, ReferenceLevel.MOST_FREQUENT) == "TV"
    tie = pd.Series(["b", "a", "b", "a"], name="t")
    assert choose_reference(tie, ReferenceLevel.MOST_FREQUENT) == "a"


def test_reference_policy_changes_design_not_fit(anime_df):
    a = fit_ols(anime_df, "score", ["scored_by"], ["type"], reference=ReferenceLevel.ALPHABETICAL)
    b = fit_ols(anime_df, "score", ["scored_by"], ["type"], reference=ReferenceLevel.MOST_FREQUENT)
    assert a.design_columns != b.design_columns
    assert a.rss == pytest.approx(b.rss)


def test_rows_with_missing_values_are_dropped(anime_df):
    df = anime_df.copy()
    df.loc[df.index[:5], "episodes"] = np.nan
    m = fit_ols(df, "score", ["episodes"])
    assert m.nobs == len(df) - 5


def test_too_few_rows_raises():
    df = pd.DataFrame({"score": [5.0, 6.0, 7.0], "a": [1.0, 2.0, 4.0], "b": [3.0, 1.0, 2.0]})
    with pytest.raises(SingularDesignError):
        fit_ols(df, "score", ["a", "b"])


def test_collinear_design_raises(anime_df):
    df = anime_df.copy()
    df["scored_by_twice"] = df["scored_by"] * 2
    with pytest.raises(SingularDesignError):
        fit_ols(df, "score", ["scored_by", "scored_by_twice"])


def test_constant_indicator_raises(anime_df):
    df = anime_df.assign(Everything=True)
    with pytest.raises(SingularDesignError, match="Everything"):
        fit_ols(df, "score", ["scored_by"], indicators=["Everything"])


def test_missing_column_and_bad_terms():
    df = pd.DataFrame({"score": [1.0, 2.0, 3.0]})
    with pytest.raises(SchemaError):
        fit_ols(df, "score", ["nope"])
    with pytest.raises(ValueError):
        fit_ols(df, "score", ["score"])


def test_predict_uses_fit_encoding(anime_df):
    m = fit_ols(anime_df, "score", ["scored_by"], ["type"])
    pred = m.predict(anime_df)
    np.testing.assert_allclose(pred.to_numpy(), m.fitted.to_numpy(), atol=1e-9)
    unseen = anime_df.head(2).assign(type="Special")
    with pytest.raises(SchemaError):
        m.predict(unseen)
