"""
Linear modeling of anime scores with statsmodels.

Exposes:
- fit_ols(): OLS with explicit categorical encoding and rank checks
- estimate_boxcox_lambda(): profile-likelihood choice of the power transform
- stepwise_select(): bidirectional AIC search between two nested scopes
- compare_nested(): F-test between nested fits
- diagnose(): leverage, leave-one-out error, RMSE and VIF for a fit

Fitted models are frozen dataclasses; nothing here mutates a model or the
table it was fitted on.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import statsmodels.api as sm
from scipy import optimize, stats
from sklearn.linear_model import LinearRegression
from sklearn.model_selection import KFold, cross_val_score
from statsmodels.stats.outliers_influence import variance_inflation_factor

from .errors import DomainError, SchemaError, SingularDesignError
from .preprocess import boxcox_inverse_derivative, boxcox_values, inverse_boxcox

logger = logging.getLogger(__name__)

INTERCEPT = "const"
# Relative tolerance used when comparing information criteria
AIC_TOL = 1e-9


class ReferenceLevel(Enum):
    """
    Which category level is absorbed into the intercept.

    - ALPHABETICAL:  first level in sorted string order (R's factor default)
    - MOST_FREQUENT: most common level; ties go to the alphabetically first
    """

    ALPHABETICAL = auto()
    MOST_FREQUENT = auto()


class SearchStart(Enum):
    """Model the stepwise search starts from."""

    LOWER = auto()
    UPPER = auto()


@dataclass(frozen=True)
class CategoricalEncoding:
    """Treatment coding of one categorical predictor."""

    column: str
    levels: tuple[str, ...]
    reference: str

    @property
    def indicator_columns(self) -> tuple[str, ...]:
        return tuple(
            indicator_name(self.column, lvl)
            for lvl in self.levels
            if lvl != self.reference
        )

    def encode(self, values: pd.Series) -> pd.DataFrame:
        """
        One float column per non-reference level. Missing values give NaN
        rows; levels not seen at fit time raise SchemaError.
        """
        present = values.notna()
        as_str = values.astype(str).where(present)
        unseen = sorted(set(as_str.dropna().unique()) - set(self.levels))
        if unseen:
            raise SchemaError(
                f"Column '{self.column}' has levels not seen when fitting: {unseen}"
            )
        cols = {}
        for lvl in self.levels:
            if lvl == self.reference:
                continue
            col = (as_str == lvl).astype(float)
            cols[indicator_name(self.column, lvl)] = col.where(present, np.nan)
        return pd.DataFrame(cols, index=values.index)


def indicator_name(column: str, level: str) -> str:
    return f"{column}[T.{level}]"


def choose_reference(values: pd.Series, policy: ReferenceLevel) -> str:
    """Pick the reference level of a categorical column (NaN ignored)."""
    as_str = values.dropna().astype(str)
    if as_str.empty:
        raise SchemaError(f"Categorical column '{values.name}' has no values")
    if policy is ReferenceLevel.ALPHABETICAL:
        return sorted(as_str.unique())[0]
    if policy is ReferenceLevel.MOST_FREQUENT:
        counts = as_str.value_counts()
        top = counts.max()
        return sorted(counts[counts == top].index)[0]
    raise ValueError(f"Unsupported reference level policy: {policy}")


def encode_categorical(
    values: pd.Series, policy: ReferenceLevel = ReferenceLevel.ALPHABETICAL
) -> CategoricalEncoding:
    levels = tuple(sorted(values.dropna().astype(str).unique()))
    return CategoricalEncoding(
        column=str(values.name),
        levels=levels,
        reference=choose_reference(values, policy),
    )


@dataclass(frozen=True, eq=False)
class FittedModel:
    """
    Immutable OLS fit.

    `aic` follows 2p - 2*logLik with p counting every coefficient plus the
    error variance; `bic` uses the same p.
    """

    label: str
    response: str
    numeric: tuple[str, ...]
    categorical: tuple[str, ...]
    indicators: tuple[str, ...]
    reference: ReferenceLevel
    encodings: tuple[CategoricalEncoding, ...]
    design: pd.DataFrame = field(repr=False)
    y: pd.Series = field(repr=False)
    coefficients: pd.Series = field(repr=False)
    std_errors: pd.Series = field(repr=False)
    pvalues: pd.Series = field(repr=False)
    residuals: pd.Series = field(repr=False)
    fitted: pd.Series = field(repr=False)
    rsquared: float
    rsquared_adj: float
    fvalue: float
    f_pvalue: float
    llf: float
    aic: float
    bic: float
    rss: float
    nobs: int
    df_resid: float
    results: Any = field(repr=False, compare=False)

    @property
    def terms(self) -> tuple[str, ...]:
        return self.numeric + self.categorical + self.indicators

    @property
    def design_columns(self) -> tuple[str, ...]:
        return tuple(self.design.columns)

    @property
    def n_params(self) -> int:
        return int(self.design.shape[1])

    def design_for(self, df: pd.DataFrame) -> pd.DataFrame:
        """Design matrix for new rows using this fit's encodings."""
        missing = sorted(set(self.terms) - set(df.columns))
        if missing:
            raise SchemaError(
                f"Prediction table is missing model columns: {missing}",
                missing=missing,
            )
        X = _assemble_design(df, self.numeric, self.encodings, self.indicators)
        return X.reindex(columns=self.design_columns)

    def predict(self, df: pd.DataFrame) -> pd.Series:
        X = self.design_for(df)
        return X.dot(self.coefficients.reindex(X.columns))


def _check_columns(df: pd.DataFrame, columns: Sequence[str]) -> None:
    missing = sorted(set(columns) - set(df.columns))
    if missing:
        raise SchemaError(f"Model columns not found: {missing}", missing=missing)


def _assemble_design(
    df: pd.DataFrame,
    numeric: Sequence[str],
    encodings: Sequence[CategoricalEncoding],
    indicators: Sequence[str],
) -> pd.DataFrame:
    parts: List[pd.DataFrame] = [
        pd.DataFrame({INTERCEPT: np.ones(len(df))}, index=df.index)
    ]
    if numeric:
        parts.append(
            df[list(numeric)].apply(pd.to_numeric, errors="coerce").astype(float)
        )
    for enc in encodings:
        parts.append(enc.encode(df[enc.column]))
    if indicators:
        parts.append(df[list(indicators)].astype(float))
    return pd.concat(parts, axis=1)


def complete_cases(
    df: pd.DataFrame, response: str, terms: Sequence[str], numeric: Sequence[str] = ()
) -> pd.DataFrame:
    """
    Rows with no missing value in the response or any term.

    Response and numeric columns are coerced to float first so strings such
    as 'Unknown' count as missing.
    """
    used = [response, *terms]
    _check_columns(df, used)
    data = df[used].copy()
    for col in (response, *numeric):
        data[col] = pd.to_numeric(data[col], errors="coerce")
    keep = data.notna().all(axis=1)
    dropped = int((~keep).sum())
    if dropped:
        logger.warning(
            f"Dropping {dropped} of {len(data)} rows with missing values in {used}"
        )
    return df.loc[keep].copy()


def _rank_problems(X: pd.DataFrame) -> list[str]:
    """Names of non-intercept columns with no variation."""
    out = []
    for col in X.columns:
        if col == INTERCEPT:
            continue
        if X[col].nunique(dropna=True) <= 1:
            out.append(col)
    return out


def fit_ols(
    df: pd.DataFrame,
    response: str,
    numeric: Sequence[str] = (),
    categorical: Sequence[str] = (),
    indicators: Sequence[str] = (),
    reference: ReferenceLevel = ReferenceLevel.ALPHABETICAL,
    label: Optional[str] = None,
) -> FittedModel:
    """
    Fit response ~ 1 + numeric + categorical + indicators by OLS (QR).

    Categorical columns get one 0/1 column per non-reference level, named
    'column[T.level]'. Rows missing any used value are dropped first.

    Raises:
        SchemaError: a column is missing.
        SingularDesignError: n <= p or the design is rank-deficient.
    """
    numeric = tuple(numeric)
    categorical = tuple(categorical)
    indicators = tuple(indicators)
    terms = numeric + categorical + indicators
    if len(set(terms)) != len(terms):
        raise ValueError(f"Duplicate model terms: {terms}")
    if response in terms:
        raise ValueError(f"Response '{response}' cannot also be a predictor")

    data = complete_cases(df, response, terms, numeric)
    encodings = tuple(encode_categorical(data[c], reference) for c in categorical)
    X = _assemble_design(data, numeric, encodings, indicators)
    y = pd.to_numeric(data[response], errors="coerce").astype(float)

    n, p = X.shape
    if n <= p:
        raise SingularDesignError(
            f"Need more observations than coefficients: n={n}, p={p}"
        )
    rank = int(np.linalg.matrix_rank(X.to_numpy()))
    if rank < p:
        constant = _rank_problems(X)
        detail = f"; constant columns: {constant}" if constant else ""
        raise SingularDesignError(
            f"Design matrix is rank-deficient (rank {rank} < {p} columns){detail}"
        )

    res = sm.OLS(y, X).fit(method="qr")

    k = p + 1
    llf = float(res.llf)
    name = label or (f"{response} ~ " + (" + ".join(terms) if terms else "1"))
    return FittedModel(
        label=name,
        response=response,
        numeric=numeric,
        categorical=categorical,
        indicators=indicators,
        reference=reference,
        encodings=encodings,
        design=X,
        y=y,
        coefficients=res.params,
        std_errors=res.bse,
        pvalues=res.pvalues,
        residuals=res.resid,
        fitted=res.fittedvalues,
        rsquared=float(res.rsquared),
        rsquared_adj=float(res.rsquared_adj),
        fvalue=float(res.fvalue) if p > 1 else float("nan"),
        f_pvalue=float(res.f_pvalue) if p > 1 else float("nan"),
        llf=llf,
        aic=2.0 * k - 2.0 * llf,
        bic=k * np.log(n) - 2.0 * llf,
        rss=float(res.ssr),
        nobs=int(n),
        df_resid=float(res.df_resid),
        results=res,
    )


def refit(
    model: FittedModel,
    df: pd.DataFrame,
    terms: Sequence[str],
    label: Optional[str] = None,
) -> FittedModel:
    """Fit the subset `terms` of model's predictors on df, keeping term kinds."""
    term_set = set(terms)
    return fit_ols(
        df,
        model.response,
        numeric=[t for t in model.numeric if t in term_set],
        categorical=[t for t in model.categorical if t in term_set],
        indicators=[t for t in model.indicators if t in term_set],
        reference=model.reference,
        label=label,
    )


# -------------------------
# Box-Cox exponent
# -------------------------
@dataclass(frozen=True, eq=False)
class BoxCoxProfile:
    """Profile log-likelihood of the Box-Cox exponent for a linear model."""

    lam: float
    ci_low: float
    ci_high: float
    max_loglik: float
    bounds: tuple[float, float]
    grid: np.ndarray = field(repr=False)
    loglik: np.ndarray = field(repr=False)

    @property
    def at_boundary(self) -> bool:
        lo, hi = self.bounds
        span = hi - lo
        return min(abs(self.lam - lo), abs(self.lam - hi)) < 1e-3 * span


def boxcox_loglik(y: np.ndarray, X: np.ndarray, lam: float) -> float:
    """
    Profile log-likelihood (up to a constant) of lam for z(y) ~ X:
    -n/2 * log(RSS/n) + (lam - 1) * sum(log y).

    A residual sum of squares that is zero to machine precision gives -inf.
    """
    n = len(y)
    z = boxcox_values(y, lam)
    rss = float(sm.OLS(z, X).fit(method="qr").ssr)
    tss = float(np.sum(np.square(z - z.mean())))
    if rss <= np.finfo(float).eps * max(1.0, tss):
        return float("-inf")
    return -0.5 * n * np.log(rss / n) + (lam - 1.0) * float(np.sum(np.log(y)))


def estimate_boxcox_lambda(
    df: pd.DataFrame,
    response: str,
    numeric: Sequence[str] = (),
    categorical: Sequence[str] = (),
    indicators: Sequence[str] = (),
    reference: ReferenceLevel = ReferenceLevel.ALPHABETICAL,
    bounds: Tuple[float, float] = (-2.0, 4.0),
    grid_size: int = 121,
    confidence: float = 0.95,
) -> BoxCoxProfile:
    """
    Choose the Box-Cox exponent maximising the regression's profile
    likelihood within bounds.

    The confidence interval covers grid values whose log-likelihood is within
    chi2(1).ppf(confidence) / 2 of the maximum.

    Raises:
        DomainError: response has values <= 0.
        SingularDesignError: design cannot be fitted.
    """
    lo, hi = float(bounds[0]), float(bounds[1])
    if not lo < hi:
        raise ValueError(f"Invalid lambda bounds: {bounds}")

    base = fit_ols(df, response, numeric, categorical, indicators, reference)
    y = base.y.to_numpy(dtype=float)
    if (y <= 0).any():
        raise DomainError(
            f"Box-Cox needs {response} > 0; {int((y <= 0).sum())} values are not"
        )
    X = base.design.to_numpy()

    opt = optimize.minimize_scalar(
        lambda lam: -boxcox_loglik(y, X, lam),
        bounds=(lo, hi),
        method="bounded",
        options={"xatol": 1e-6},
    )
    lam_hat = float(opt.x)
    max_ll = -float(opt.fun)

    grid = np.linspace(lo, hi, grid_size)
    ll = np.array([boxcox_loglik(y, X, g) for g in grid])
    if np.nanmax(ll) > max_ll:
        # Bounded search can settle on a local optimum; trust the grid then
        i = int(np.nanargmax(ll))
        lam_hat, max_ll = float(grid[i]), float(ll[i])

    cutoff = max_ll - stats.chi2.ppf(confidence, 1) / 2.0
    inside = grid[ll >= cutoff]
    ci_low = float(inside.min()) if inside.size else lam_hat
    ci_high = float(inside.max()) if inside.size else lam_hat

    profile = BoxCoxProfile(
        lam=lam_hat,
        ci_low=min(ci_low, lam_hat),
        ci_high=max(ci_high, lam_hat),
        max_loglik=max_ll,
        bounds=(lo, hi),
        grid=grid,
        loglik=ll,
    )
    logger.info(
        f"Box-Cox lambda={lam_hat:.4f} "
        f"(95% interval {profile.ci_low:.3f}..{profile.ci_high:.3f})"
    )
    if profile.at_boundary:
        logger.warning(
            f"Box-Cox lambda {lam_hat:.4f} is at the search boundary {bounds}; "
            "consider widening --lambda-min/--lambda-max"
        )
    return profile


# -------------------------
# Model selection
# -------------------------
@dataclass(frozen=True)
class SelectionStep:
    action: str  # "start", "add" or "drop"
    term: Optional[str]
    aic: float
    n_terms: int


@dataclass(frozen=True, eq=False)
class SelectionResult:
    model: FittedModel
    start_model: FittedModel
    lower_terms: tuple[str, ...]
    upper_terms: tuple[str, ...]
    steps: tuple[SelectionStep, ...]

    @property
    def added(self) -> tuple[str, ...]:
        return tuple(t for t in self.model.terms if t not in self.lower_terms)

    @property
    def dropped(self) -> tuple[str, ...]:
        return tuple(t for t in self.upper_terms if t not in self.model.terms)


def usable_indicators(
    df: pd.DataFrame,
    columns: Sequence[str],
    base: Optional[pd.DataFrame] = None,
) -> list[str]:
    """
    Indicator columns that can be estimated alongside each other and base.

    Dropped, in column order:
    - constant columns (a genre in every record, or in none)
    - columns identical to an earlier kept column (genres that always
      co-occur)
    - columns adding no rank to base plus the columns kept so far, when a
      base design matrix is given; rows of df are aligned to base's index
    """
    if base is not None:
        df = df.loc[base.index]
        X = base.to_numpy(dtype=float)
        rank = int(np.linalg.matrix_rank(X))
    else:
        X, rank = None, 0

    keep: list[str] = []
    constant: list[str] = []
    aliased: list[str] = []
    seen: Dict[bytes, str] = {}
    for col in columns:
        if df[col].nunique(dropna=True) <= 1:
            constant.append(col)
            continue
        values = df[col].to_numpy(dtype=float)
        key = values.tobytes()
        if key in seen:
            aliased.append(col)
            continue
        if X is not None:
            candidate = np.column_stack([X, values])
            new_rank = int(np.linalg.matrix_rank(candidate))
            if new_rank <= rank:
                aliased.append(col)
                continue
            X, rank = candidate, new_rank
        seen[key] = col
        keep.append(col)

    if constant:
        logger.warning(
            f"Skipping {len(constant)} constant indicator columns: {constant}"
        )
    if aliased:
        logger.warning(
            f"Skipping {len(aliased)} indicator columns aliased with other terms: {aliased}"
        )
    return keep


def _aic_better(candidate: float, current: float) -> bool:
    return candidate < current - AIC_TOL * max(1.0, abs(current))


def _aic_equal(candidate: float, current: float) -> bool:
    return abs(candidate - current) <= AIC_TOL * max(1.0, abs(current))


def stepwise_select(
    lower: FittedModel,
    upper: FittedModel,
    data: pd.DataFrame,
    start: SearchStart = SearchStart.LOWER,
) -> SelectionResult:
    """
    Bidirectional stepwise AIC search between two nested models.

    Starting from the lower or upper model, every step tries each single
    term addition (from upper's terms) and each single removal (never below
    lower's terms) and takes the one with lowest AIC. A move is made only if
    it lowers AIC, or keeps it equal while removing a term; the search stops
    at the first step with no such move, so the result is a local optimum
    and its AIC never exceeds the start model's.

    All candidates are fitted on the complete cases of the upper model's
    columns so AIC values are comparable.
    """
    if lower.response != upper.response:
        raise ValueError(
            f"Models have different responses: {lower.response} vs {upper.response}"
        )
    not_in_upper = sorted(set(lower.terms) - set(upper.terms))
    if not_in_upper:
        raise ValueError(f"Lower model terms not in upper model: {not_in_upper}")

    rows = complete_cases(data, upper.response, upper.terms, upper.numeric)
    upper_order = list(upper.terms)
    lower_set = set(lower.terms)

    cache: Dict[frozenset, Optional[FittedModel]] = {}

    def _fit(term_set: frozenset) -> Optional[FittedModel]:
        if term_set not in cache:
            ordered = [t for t in upper_order if t in term_set]
            try:
                cache[term_set] = refit(upper, rows, ordered)
            except SingularDesignError as e:
                logger.debug(f"Skipping candidate {ordered}: {e}")
                cache[term_set] = None
        return cache[term_set]

    start_terms = frozenset(lower.terms if start is SearchStart.LOWER else upper.terms)
    current = _fit(start_terms)
    if current is None:
        raise SingularDesignError(
            f"Starting model ({start.name.lower()}) cannot be fitted on the selection rows"
        )
    start_model = current
    steps = [SelectionStep("start", None, current.aic, len(current.terms))]
    logger.info(f"Stepwise start ({start.name}): AIC={current.aic:.3f}")

    while True:
        cur_terms = frozenset(current.terms)
        candidates: list[tuple[float, int, str, str, FittedModel]] = []
        for term in sorted(cur_terms - lower_set):
            m = _fit(cur_terms - {term})
            if m is not None:
                candidates.append((m.aic, 0, term, "drop", m))
        for term in sorted(set(upper_order) - cur_terms):
            m = _fit(cur_terms | {term})
            if m is not None:
                candidates.append((m.aic, 1, term, "add", m))
        if not candidates:
            break

        # Lowest AIC; on ties removals first, then term name
        aic, _, term, action, model = min(candidates, key=lambda c: c[:3])
        accept = _aic_better(aic, current.aic) or (
            action == "drop" and _aic_equal(aic, current.aic)
        )
        if not accept:
            break
        logger.debug(f"Stepwise {action} '{term}': AIC {current.aic:.3f} -> {aic:.3f}")
        current = model
        steps.append(SelectionStep(action, term, aic, len(current.terms)))

    logger.info(
        f"Stepwise finished after {len(steps) - 1} steps: "
        f"AIC={current.aic:.3f}, {len(current.terms)} terms"
    )
    return SelectionResult(
        model=current,
        start_model=start_model,
        lower_terms=tuple(lower.terms),
        upper_terms=tuple(upper.terms),
        steps=tuple(steps),
    )


@dataclass(frozen=True)
class ComparisonResult:
    small_label: str
    large_label: str
    f_statistic: float
    p_value: float
    df_num: int
    df_den: int
    alpha: float
    reject_null: bool

    @property
    def decision(self) -> str:
        return "reject H0" if self.reject_null else "fail to reject H0"


def compare_nested(
    small: FittedModel, large: FittedModel, alpha: float = 0.05
) -> ComparisonResult:
    """
    Partial F-test of the smaller model against the larger one.

    F = ((RSS_small - RSS_large) / (p_large - p_small)) / (RSS_large / (n - p_large))

    The argument order does not matter; the model with fewer design columns
    is treated as the null. Identical column sets give F = 0 and p = 1.

    Raises:
        ValueError: models are not nested or were fitted on different rows.
        ValueError: models have different responses.
    """
    if not 0 < alpha < 1:
        raise ValueError(f"alpha must be in (0, 1), got {alpha}")
    if small.response != large.response:
        raise ValueError(
            f"Models have different responses: {small.response!r} vs {large.response!r}"
        )
    cols_a, cols_b = set(small.design_columns), set(large.design_columns)
    if not (cols_a <= cols_b or cols_b <= cols_a):
        raise ValueError(
            "Models are not nested: neither design is a subset of the other "
            f"({sorted(cols_a ^ cols_b)})"
        )
    if cols_b < cols_a:
        small, large = large, small
    if small.nobs != large.nobs or not small.y.index.equals(large.y.index):
        raise ValueError(
            f"Models were fitted on different rows (n={small.nobs} vs n={large.nobs})"
        )

    n = large.nobs
    df_num = large.n_params - small.n_params
    df_den = n - large.n_params
    if df_num == 0:
        f_stat, p_value = 0.0, 1.0
    elif large.rss <= 0:
        f_stat, p_value = float("inf"), 0.0
    else:
        f_stat = ((small.rss - large.rss) / df_num) / (large.rss / df_den)
        f_stat = max(float(f_stat), 0.0)
        p_value = float(stats.f.sf(f_stat, df_num, df_den))

    return ComparisonResult(
        small_label=small.label,
        large_label=large.label,
        f_statistic=float(f_stat),
        p_value=p_value,
        df_num=int(df_num),
        df_den=int(df_den),
        alpha=float(alpha),
        reject_null=bool(p_value < alpha),
    )


# -------------------------
# Diagnostics
# -------------------------
@dataclass(frozen=True, eq=False)
class DiagnosticsReport:
    label: str
    fitted: pd.Series = field(repr=False)
    residuals: pd.Series = field(repr=False)
    leverage: pd.Series = field(repr=False)
    loo_residuals: pd.Series = field(repr=False)
    residual_summary: pd.Series = field(repr=False)
    vif: pd.Series = field(repr=False)
    rmse: float = float("nan")
    press: float = float("nan")
    loocv_rmse: float = float("nan")
    rmse_original_approx: Optional[float] = None
    rmse_original_exact: Optional[float] = None
    rmse_original_excluded: int = 0
    reference_score: Optional[float] = None
    cv_rmse: Optional[float] = None
    cv_folds: Optional[int] = None
    max_leverage: float = float("nan")
    high_leverage_count: int = 0


def compute_vif(model: FittedModel, columns: Optional[Sequence[str]] = None) -> pd.Series:
    r"""
    VIF per predictor column: 1 / (1 - R_j^2), R_j^2 from regressing column j
    on every other design column (intercept included).

    Defaults to the model's numeric predictors.
    """
    cols = list(model.numeric if columns is None else columns)
    exog = model.design.to_numpy(dtype=float)
    names = list(model.design_columns)
    out = {}
    with np.errstate(divide="ignore", invalid="ignore"):
        for col in cols:
            if exog.shape[1] <= 2:
                # Only the intercept to regress on
                out[col] = 1.0
                continue
            out[col] = float(variance_inflation_factor(exog, names.index(col)))
    return pd.Series(out, dtype=float)


def kfold_rmse(
    model: FittedModel, folds: int = 5, random_state: Optional[int] = 0
) -> Optional[float]:
    """Mean out-of-fold RMSE of the same design, or None if folds < 2 or n < folds."""
    if folds is None or folds < 2 or model.nobs < folds:
        return None
    splitter = KFold(n_splits=folds, shuffle=True, random_state=random_state)
    scores = cross_val_score(
        LinearRegression(fit_intercept=False),
        model.design.to_numpy(dtype=float),
        model.y.to_numpy(dtype=float),
        cv=splitter,
        scoring="neg_root_mean_squared_error",
        error_score="raise",
    )
    return float(-np.mean(scores))


def diagnose(
    model: FittedModel,
    lam: Optional[float] = None,
    reference_score: Optional[float] = None,
    cv_folds: Optional[int] = 5,
    random_state: Optional[int] = 0,
) -> DiagnosticsReport:
    """
    Fit-quality metrics for a model; read-only.

    When lam is given the response is taken to be Box-Cox transformed and two
    original-scale RMSEs are added:
    - approx: RMSE times the inverse transform's derivative at reference_score
      (default: mean back-transformed response)
    - exact:  RMSE between back-transformed response and fitted values
      whose inverse exists (z*lam + 1 > 0); the rest are counted in
      rmse_original_excluded, and exact is NaN when none remain
    """
    resid = model.residuals
    fitted = model.fitted
    leverage = pd.Series(
        model.results.get_influence().hat_matrix_diag, index=resid.index
    )

    with np.errstate(divide="ignore", invalid="ignore"):
        loo = resid / (1.0 - leverage)
    loo = loo.where(np.isfinite(loo), np.nan)
    n_undefined = int(loo.isna().sum())
    if n_undefined:
        logger.warning(
            f"{n_undefined} records have leverage 1; leave-one-out residual undefined"
        )

    rmse = float(np.sqrt(np.mean(np.square(resid))))
    press = float(np.nansum(np.square(loo)))
    loocv_rmse = float(np.sqrt(np.nanmean(np.square(loo))))

    approx = exact = y0 = None
    excluded = 0
    if lam is not None:
        y_orig = inverse_boxcox(model.y.to_numpy(dtype=float), lam)
        y0 = float(np.mean(y_orig)) if reference_score is None else float(reference_score)
        approx = rmse * boxcox_inverse_derivative(y0, lam)
        z_hat = fitted.to_numpy(dtype=float)
        ok = np.ones(len(z_hat), dtype=bool) if lam == 0 else z_hat * lam + 1.0 > 0
        excluded = int((~ok).sum())
        if excluded:
            logger.warning(
                f"{model.label}: {excluded} fitted values have no inverse Box-Cox "
                f"at lambda={lam:.4f}; left out of the original-scale RMSE"
            )
        if ok.any():
            pred_orig = inverse_boxcox(z_hat[ok], lam)
            exact = float(np.sqrt(np.mean(np.square(y_orig[ok] - pred_orig))))
        else:
            exact = float("nan")

    p = model.n_params
    n = model.nobs
    threshold = 2.0 * p / n
    q = resid.quantile([0.0, 0.25, 0.5, 0.75, 1.0])
    q.index = ["min", "q1", "median", "q3", "max"]

    return DiagnosticsReport(
        label=model.label,
        fitted=fitted,
        residuals=resid,
        leverage=leverage,
        loo_residuals=loo,
        residual_summary=q,
        vif=compute_vif(model),
        rmse=rmse,
        press=press,
        loocv_rmse=loocv_rmse,
        rmse_original_approx=approx,
        rmse_original_exact=exact,
        rmse_original_excluded=excluded,
        reference_score=y0,
        cv_rmse=kfold_rmse(model, cv_folds, random_state) if cv_folds else None,
        cv_folds=cv_folds,
        max_leverage=float(leverage.max()),
        high_leverage_count=int((leverage > threshold).sum()),
    )
