import numpy as np
import pandas as pd
import pytest

from anime_eda.errors import DomainError
from anime_eda.modeling import boxcox_loglik, estimate_boxcox_lambda
from anime_eda.preprocess import (
    boxcox_inverse_derivative,
    boxcox_transform,
    inverse_boxcox,
)


@pytest.mark.parametrize("lam", [1.0, 2.2, 3.0])
def test_inverse_recovers_scores(lam):
    df = pd.DataFrame({"score": [1.0, 5.5, 7.25, 9.9]})
    out = boxcox_transform(df, lam)
    back = inverse_boxcox(out["score_transformed"], lam)
    np.testing.assert_allclose(back, df["score"].to_numpy(), rtol=1e-9)


def test_lambda_one_is_a_shift():
    df = pd.DataFrame({"score": [2.0, 8.0]})
    out = boxcox_transform(df, 1.0)
    assert out["score_transformed"].tolist() == [1.0, 7.0]


def test_lambda_zero_is_log():
    df = pd.DataFrame({"score": [1.0, np.e]})
    out = boxcox_transform(df, 0.0)
    np.testing.assert_allclose(out["score_transformed"], [0.0, 1.0])
    np.testing.assert_allclose(inverse_boxcox([0.0, 1.0], 0.0), [1.0, np.e])


def test_transform_does_not_mutate_input():
    df = pd.DataFrame({"score": [3.0, 4.0]})
    out = boxcox_transform(df, 2.0)
    assert "score_transformed" not in df.columns
    assert out["score"].tolist() == [3.0, 4.0]


@pytest.mark.parametrize("bad", [0.0, -1.0, np.nan])
def test_non_positive_or_missing_score_raises(bad):
    df = pd.DataFrame({"score": [5.0, bad]})
    with pytest.raises(DomainError):
        boxcox_transform(df, 2.0)


def test_inverse_outside_domain_raises():
    with pytest.raises(DomainError):
        inverse_boxcox([-1.0], 2.0)


def test_inverse_derivative_matches_finite_difference():
    lam, y0 = 2.2, 7.0
    z0 = (y0**lam - 1) / lam
    h = 1e-6
    numeric = (inverse_boxcox([z0 + h], lam)[0] - inverse_boxcox([z0 - h], lam)[0]) / (2 * h)
    assert boxcox_inverse_derivative(y0, lam) == pytest.approx(numeric, rel=1e-6)


def test_lambda_estimate_recovers_known_power():
    # z = (y**2 - 1)/2 is linear in x with normal noise, so lambda ~ 2
    rng = np.random.default_rng(3)
    n = 400
    x = rng.uniform(0, 1, size=n)
    z = 2.0 + 40.0 * x + rng.normal(0, 0.3, size=n)
    y = np.sqrt(2 * z + 1)
    df = pd.DataFrame({"score": y, "x": x})
    profile = estimate_boxcox_lambda(df, "score", numeric=["x"], bounds=(-2.0, 4.0))
    assert profile.lam == pytest.approx(2.0, abs=0.5)
    assert profile.ci_low <= profile.lam <= profile.ci_high
    assert not profile.at_boundary
    assert len(profile.grid) == len(profile.loglik)


def test_lambda_estimate_rejects_bad_bounds():
    df = pd.DataFrame({"score": [1.0, 2.0, 3.0, 4.0], "x": [1.0, 2.0, 3.0, 5.0]})
    with pytest.raises(ValueError):
        estimate_boxcox_lambda(df, "score", numeric=["x"], bounds=(2.0, 1.0))


def test_loglik_of_perfect_fit_is_minus_infinity():
    x = np.arange(1.0, 11.0)
    y = 1.0 + 2.0 * x
    X = np.column_stack([np.ones_like(x), x])
    assert boxcox_loglik(y, X, 1.0) == float("-inf")
    assert np.isfinite(boxcox_loglik(y, X, 0.5))
