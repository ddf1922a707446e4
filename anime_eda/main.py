#!/usr/bin/env python3
"""
Anime score regression report, as pure functional stages.

This module exposes:
- load_table()
- transform_pipeline()
- summarize_and_model()
- assemble_text_report()

Each function takes explicit inputs and returns explicit outputs; only
_orchestrate() and main() touch the filesystem or print.
"""

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .csv_processor import (
    NUMERIC_COLUMNS,
    CSVProcessingError,
    CSVRangeProcessor,
    check_required_columns,
    normalize_headers,
)
from .errors import EmptyResultError
from .modeling import (
    BoxCoxProfile,
    ComparisonResult,
    DiagnosticsReport,
    FittedModel,
    ReferenceLevel,
    SearchStart,
    SelectionResult,
    compare_nested,
    diagnose,
    estimate_boxcox_lambda,
    fit_ols,
    stepwise_select,
    usable_indicators,
)
from .preprocess import (
    DEFAULT_EXCLUDED_STATUSES,
    DEFAULT_MIN_SCORED_BY,
    GENRE_DELIMITER,
    FilterResult,
    GenreExpansion,
    boxcox_transform,
    expand_genres,
    filter_quality,
)
from .utils import (
    build_effective_parameters,
    canonical_json_hash,
    normalize_abs_posix,
    utc_timestamp_seconds,
    write_manifest,
    write_text_report,
)

# Configure logging for debugging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

TRANSFORMED_SUFFIX = "_transformed"


@dataclass
class LoadParams:
    """
    Parameters used when loading the CSV.

    Attributes:
        csv_path: Path to the anime CSV file.
        start_line: 1-based inclusive start row (header excluded) or None.
        end_line: 1-based inclusive end row or None to read to the end.
    """

    csv_path: Optional[Path]
    start_line: Optional[int] = None
    end_line: Optional[int] = None


@dataclass
class FilterParams:
    min_scored_by: int = DEFAULT_MIN_SCORED_BY
    excluded_statuses: List[str] = field(
        default_factory=lambda: list(DEFAULT_EXCLUDED_STATUSES)
    )
    genre_column: str = "genre"
    genre_delimiter: str = GENRE_DELIMITER
    verbose_filtering: bool = False


@dataclass
class ModelParams:
    """
    Model specification and selection settings.

    boxcox_lambda=None estimates the exponent from the baseline model's
    profile likelihood within lambda_bounds.
    """

    response: str = "score"
    numeric_predictors: List[str] = field(
        default_factory=lambda: ["scored_by", "episodes"]
    )
    categorical_predictors: List[str] = field(
        default_factory=lambda: ["type", "source", "rating"]
    )
    reference_level: ReferenceLevel = ReferenceLevel.ALPHABETICAL
    boxcox_lambda: Optional[float] = None
    lambda_bounds: Tuple[float, float] = (-2.0, 4.0)
    search_start: SearchStart = SearchStart.LOWER
    alpha: float = 0.05
    cv_folds: int = 5
    random_state: int = 0


@dataclass
class ReportParams:
    output_dir: Path = Path("output")
    render_plots: bool = True


@dataclass
class TransformOutputs:
    df_expanded: pd.DataFrame
    df_filtered: pd.DataFrame
    df_excluded: pd.DataFrame
    genres: GenreExpansion
    filter_result: FilterResult


@dataclass
class ModelingOutputs:
    lam: float
    transformed_column: str
    df_model: pd.DataFrame
    raw_baseline: FittedModel
    baseline: FittedModel
    upper: FittedModel
    selection: SelectionResult
    comparisons: List[ComparisonResult]
    diagnostics: Dict[str, DiagnosticsReport]
    boxcox_profile: Optional[BoxCoxProfile] = None
    genre_terms: List[str] = field(default_factory=list)

    @property
    def models(self) -> Dict[str, FittedModel]:
        return {
            "baseline": self.baseline,
            "selected": self.selection.model,
            "genre-augmented": self.upper,
        }


def load_table(params: LoadParams) -> pd.DataFrame:
    """
    Load the anime CSV and normalise it for the pipeline.

    Header names are stripped and lower-cased, required columns checked,
    numeric columns coerced (non-numeric such as 'Unknown' -> NaN) and a
    missing genre string replaced by "".
    """
    if params.csv_path is None:
        raise ValueError("csv_path is required")
    path = Path(params.csv_path)
    if not path.exists():
        raise FileNotFoundError(f"CSV file not found at {path}")

    with CSVRangeProcessor(path) as processor:
        df = processor.read_range(
            start_line=params.start_line, end_line=params.end_line
        )

    df = normalize_headers(df)
    check_required_columns(df)
    if df.empty:
        raise EmptyResultError(f"No data rows found in {path}")

    for col in NUMERIC_COLUMNS:
        before = df[col].notna()
        df[col] = pd.to_numeric(df[col], errors="coerce")
        coerced = int((before & df[col].isna()).sum())
        if coerced:
            logger.warning(f"Coerced {coerced} non-numeric '{col}' values to NaN")
    df["genre"] = df["genre"].fillna("").astype(str)

    logger.info(f"Loaded {len(df)} rows x {len(df.columns)} columns from {path}")
    return df


def transform_pipeline(df: pd.DataFrame, params: FilterParams) -> TransformOutputs:
    """
    Expand genres over the full corpus, then apply the quality filter.

    Genres are discovered before filtering so the indicator set reflects the
    whole dataset; indicators that end up constant after filtering are
    dropped at model time.

    Example:
        >>> df = pd.DataFrame({
        ...     "status": ["Finished Airing", "Not yet aired"],
        ...     "scored_by": [120, 0],
        ...     "genre": ["Comedy, Action", "Drama"],
        ... })
        >>> out = transform_pipeline(df, FilterParams())
        >>> list(out.genres.genres)
        ['Comedy', 'Action', 'Drama']
        >>> len(out.df_filtered)
        1
    """
    expansion = expand_genres(
        df, column=params.genre_column, delimiter=params.genre_delimiter
    )
    df_filtered, df_excluded, result = filter_quality(
        expansion.table,
        min_scored_by=params.min_scored_by,
        excluded_statuses=params.excluded_statuses,
        verbose=params.verbose_filtering,
    )
    return TransformOutputs(
        df_expanded=expansion.table,
        df_filtered=df_filtered,
        df_excluded=df_excluded,
        genres=expansion,
        filter_result=result,
    )


def summarize_and_model(
    transformed: TransformOutputs, params: ModelParams
) -> ModelingOutputs:
    """
    Box-Cox transform the response, fit baseline and genre-augmented models,
    run stepwise selection between them and diagnose the results.
    """
    df = transformed.df_filtered
    numeric = list(params.numeric_predictors)
    categorical = list(params.categorical_predictors)
    overlap = sorted(set(numeric) & set(categorical))
    if overlap:
        raise ValueError(f"Predictors listed as both numeric and categorical: {overlap}")

    raw_baseline = fit_ols(
        df,
        params.response,
        numeric,
        categorical,
        reference=params.reference_level,
        label="baseline (untransformed)",
    )

    profile: Optional[BoxCoxProfile] = None
    if params.boxcox_lambda is None:
        profile = estimate_boxcox_lambda(
            df,
            params.response,
            numeric,
            categorical,
            reference=params.reference_level,
            bounds=params.lambda_bounds,
        )
        lam = profile.lam
    else:
        lam = float(params.boxcox_lambda)
        logger.info(f"Using fixed Box-Cox lambda={lam}")

    transformed_column = f"{params.response}{TRANSFORMED_SUFFIX}"
    df_model = boxcox_transform(
        df, lam, column=params.response, output=transformed_column
    )

    baseline = fit_ols(
        df_model,
        transformed_column,
        numeric,
        categorical,
        reference=params.reference_level,
        label="baseline",
    )

    genre_terms = usable_indicators(
        df_model, transformed.genres.columns, base=baseline.design
    )
    upper = fit_ols(
        df_model,
        transformed_column,
        numeric,
        categorical,
        indicators=genre_terms,
        reference=params.reference_level,
        label="genre-augmented",
    )

    selection = stepwise_select(baseline, upper, df_model, start=params.search_start)
    selected = selection.model
    selected = fit_ols(
        df_model,
        transformed_column,
        selected.numeric,
        selected.categorical,
        indicators=selected.indicators,
        reference=params.reference_level,
        label="selected",
    )
    selection = SelectionResult(
        model=selected,
        start_model=selection.start_model,
        lower_terms=selection.lower_terms,
        upper_terms=selection.upper_terms,
        steps=selection.steps,
    )

    comparisons = [
        compare_nested(baseline, selected, alpha=params.alpha),
        compare_nested(selected, upper, alpha=params.alpha),
    ]
    for c in comparisons:
        logger.info(
            f"F-test {c.small_label} vs {c.large_label}: "
            f"F={c.f_statistic:.4f}, p={c.p_value:.4g} -> {c.decision}"
        )

    diagnostics = {
        "baseline (untransformed)": diagnose(
            raw_baseline, cv_folds=params.cv_folds, random_state=params.random_state
        ),
        "baseline": diagnose(
            baseline, lam=lam, cv_folds=params.cv_folds, random_state=params.random_state
        ),
        "selected": diagnose(
            selected, lam=lam, cv_folds=params.cv_folds, random_state=params.random_state
        ),
        "genre-augmented": diagnose(
            upper, lam=lam, cv_folds=params.cv_folds, random_state=params.random_state
        ),
    }

    return ModelingOutputs(
        lam=lam,
        transformed_column=transformed_column,
        df_model=df_model,
        raw_baseline=raw_baseline,
        baseline=baseline,
        upper=upper,
        selection=selection,
        comparisons=comparisons,
        diagnostics=diagnostics,
        boxcox_profile=profile,
        genre_terms=genre_terms,
    )


def _fmt_fixed(x: float | None, width: int, decimals: int) -> str:
    """
    Format a number in fixed notation with specified width and decimals.
    Returns '-' centered in the field if x is None or not finite.
    """
    if x is None or not np.isfinite(float(x)):
        return "-".center(width)
    return f"{float(x):.{decimals}f}".rjust(width)


def build_model_comparison(
    models: Dict[str, FittedModel], diagnostics: Dict[str, DiagnosticsReport]
) -> tuple[str, str]:
    """
    Build the model-comparison table and return (best_label, table_text).

    Columns: Model, Terms, AIC, BIC, RMSE, LOOCV RMSE, Adj R². The best model
    has the lowest AIC, then fewest terms, then label.
    """
    headers = ("Model", "Terms", "AIC", "BIC", "RMSE", "LOOCV RMSE", "Adj R²")
    widths = (6, 12, 12, 10, 12, 10)
    decimals = (0, 1, 1, 5, 5, 5)

    rows = []
    for label, m in models.items():
        d = diagnostics.get(label)
        rows.append(
            (
                label,
                (
                    len(m.terms),
                    m.aic,
                    m.bic,
                    d.rmse if d else None,
                    d.loocv_rmse if d else None,
                    m.rsquared_adj,
                ),
            )
        )

    best = sorted(
        rows,
        key=lambda r: (
            r[1][1] if np.isfinite(r[1][1]) else float("inf"),
            r[1][0],
            r[0],
        ),
    )[0]

    col0_width = max(len(headers[0]), max(len(r[0]) for r in rows))
    header_line = f"{headers[0]:<{col0_width}}  " + "  ".join(
        f"{h:>{w}}" for h, w in zip(headers[1:], widths)
    )
    lines = [
        "Model comparison (Box-Cox scale)",
        header_line,
        "-" * len(header_line),
    ]
    for label, values in rows:
        cells = [
            _fmt_fixed(v, w, dec) for v, w, dec in zip(values, widths, decimals)
        ]
        lines.append(f"{label:<{col0_width}}  " + "  ".join(cells))
    lines.append("")
    lines.append(f"Lowest AIC: {best[0]}")
    lines.append("")
    return best[0], "\n".join(lines)


def build_run_identity(
    load: LoadParams, filt: FilterParams, model: ModelParams
) -> tuple[str, str, str, dict]:
    """
    Returns (abs_input_posix, short_hash, full_hash, effective_params)
    """
    if load.csv_path is None:
        raise ValueError("csv_path is required")
    abs_input_posix = normalize_abs_posix(load.csv_path)
    effective_params = build_effective_parameters(
        {"load": load, "filter": filt, "model": model}
    )
    canonical_payload = {
        "absolute_input_path": abs_input_posix,
        "effective_parameters": effective_params,
    }
    short_hash, full_hash = canonical_json_hash(canonical_payload)
    return abs_input_posix, short_hash, full_hash, effective_params


def build_manifest_dict(
    abs_input_posix: str,
    counts: dict,
    effective_params: dict,
    hashes: tuple[str, str],
    artifact_paths: list[str],
    summary: Optional[dict] = None,
) -> dict:
    short_hash, full_hash = hashes
    exclusion_reasons = (
        f"status_excluded_rows={counts.get('excluded_by_status', 0)}; "
        f"scored_by_excluded_rows={counts.get('excluded_by_scored_by', 0)}"
    )
    return {
        "version": "1",
        "timestamp_utc": utc_timestamp_seconds(),
        "absolute_input_path": abs_input_posix,
        "total_input_rows": int(counts.get("total_input_rows", 0)),
        "processed_row_count": int(counts.get("processed_row_count", 0)),
        "excluded_row_count": int(counts.get("excluded_row_count", 0)),
        "exclusion_reasons": exclusion_reasons,
        "effective_parameters": effective_params,
        "canonical_hash": full_hash,
        "canonical_hash_short": short_hash,
        "summary": summary or {},
        "artifacts": {"plot_svgs": artifact_paths},
    }


def _fmt_head_tail(df: pd.DataFrame, n: int = 5) -> str:
    """
    Render head and tail with original headers and no index.
    If rows <= 2n, show only head to avoid duplication.
    """
    if df.empty:
        return "(no rows)"
    head_txt = df.head(n).to_string(index=False)
    if len(df) <= 2 * n:
        return head_txt
    tail_txt = df.tail(n).to_string(index=False)
    return f"{head_txt}\n...\n{tail_txt}"


def _fmt_terms(terms: Sequence[str]) -> str:
    return ", ".join(terms) if terms else "(none)"


def assemble_text_report(
    input_df: pd.DataFrame,
    transformed: TransformOutputs,
    modeled: ModelingOutputs,
    table_text: str,
    best_label: str,
) -> str:
    """Create the human-readable report in one place."""
    preview_cols = [
        c
        for c in ("score", "scored_by", "episodes", "status", "type", "source", "rating", "genre")
        if c in input_df.columns
    ]
    parts: list[str] = ["\n"]
    parts.append(f"Input data (head/tail):\n{_fmt_head_tail(input_df[preview_cols])}")
    parts.append("")
    fr = transformed.filter_result
    parts.append(f"Quality filter: {fr.summarize()}")
    parts.append(
        f"Filtered data (head/tail):\n"
        f"{_fmt_head_tail(transformed.df_filtered[preview_cols])}"
    )
    parts.append("")

    counts = transformed.df_filtered[list(transformed.genres.columns)].sum()
    counts = counts.sort_values(ascending=False)
    parts.append(
        f"Genres: {len(transformed.genres.genres)} discovered, "
        f"{len(modeled.genre_terms)} usable after filtering"
    )
    parts.append(
        "Most common (filtered): "
        + ", ".join(f"{g}={int(n)}" for g, n in counts.head(10).items())
    )
    parts.append("")

    if modeled.boxcox_profile is not None:
        p = modeled.boxcox_profile
        parts.append(
            f"Box-Cox lambda: {p.lam:.4f} (95% interval {p.ci_low:.3f} .. {p.ci_high:.3f}; "
            f"search bounds {p.bounds[0]:g} .. {p.bounds[1]:g})"
        )
    else:
        parts.append(f"Box-Cox lambda (fixed): {modeled.lam:.4f}")
    raw_d = modeled.diagnostics.get("baseline (untransformed)")
    if raw_d is not None:
        parts.append(
            f"Untransformed baseline: R²={modeled.raw_baseline.rsquared:.5f}, "
            f"RMSE={raw_d.rmse:.5f}"
        )
    parts.append("")

    parts.append(table_text)

    sel = modeled.selection
    parts.append(f"Stepwise selection (start={sel.steps[0].n_terms} terms)")
    for step in sel.steps:
        if step.action == "start":
            parts.append(f"  start            AIC={step.aic:.3f}")
        else:
            parts.append(f"  {step.action:<4} {step.term:<12}  AIC={step.aic:.3f}")
    parts.append(f"  Added genres:   {_fmt_terms(sel.added)}")
    parts.append(f"  Not selected:   {len(sel.dropped)} terms")
    parts.append("")

    parts.append("Nested F-tests")
    for c in modeled.comparisons:
        parts.append(
            f"  {c.small_label} vs {c.large_label}: F({c.df_num}, {c.df_den}) = "
            f"{c.f_statistic:.4f}, p = {c.p_value:.4g} -> {c.decision} at alpha={c.alpha:g}"
        )
    parts.append("")

    d = modeled.diagnostics.get(best_label) or modeled.diagnostics["selected"]
    parts.append(f"Diagnostics ({d.label})")
    parts.append(
        "  Residuals: "
        + ", ".join(f"{k}={v:.4f}" for k, v in d.residual_summary.items())
    )
    parts.append(f"  RMSE (transformed scale): {d.rmse:.5f}")
    parts.append(f"  LOOCV RMSE: {d.loocv_rmse:.5f}  PRESS: {d.press:.3f}")
    if d.cv_rmse is not None:
        parts.append(f"  {d.cv_folds}-fold CV RMSE: {d.cv_rmse:.5f}")
    if d.rmse_original_approx is not None:
        parts.append(
            f"  RMSE (score scale, delta method at y0={d.reference_score:.3f}): "
            f"{d.rmse_original_approx:.5f}"
        )
    if d.rmse_original_exact is not None:
        parts.append(f"  RMSE (score scale, back-transformed): {d.rmse_original_exact:.5f}")
        if d.rmse_original_excluded:
            parts.append(
                f"    ({d.rmse_original_excluded} records without an inverse left out)"
            )
    parts.append(
        f"  Max leverage: {d.max_leverage:.4f}; records above 2p/n: {d.high_leverage_count}"
    )
    if not d.vif.empty:
        parts.append("  VIF: " + ", ".join(f"{k}={v:.3f}" for k, v in d.vif.items()))
    parts.append("")

    return "\n".join(parts)


def get_default_params() -> tuple[LoadParams, FilterParams, ModelParams, ReportParams]:
    """Policy defaults used when a CLI flag is not provided."""
    return (
        LoadParams(csv_path=None),
        FilterParams(),
        ModelParams(),
        ReportParams(),
    )


def _orchestrate(
    params_load: LoadParams,
    params_filter: FilterParams,
    params_model: ModelParams,
    params_report: ReportParams,
) -> Path:
    """
    Run the full pipeline and write report, manifest and plots into a
    timestamped run directory. Returns that directory.
    """
    abs_input_posix, short_hash, full_hash, effective_params = build_run_identity(
        params_load, params_filter, params_model
    )

    df = load_table(params_load)
    global_run_timestamp = datetime.now().strftime("%Y%m%dT%H%M%S")
    run_output_dir = Path(params_report.output_dir) / global_run_timestamp
    run_output_dir.mkdir(parents=True, exist_ok=True)

    transformed = transform_pipeline(df, params_filter)
    modeled = summarize_and_model(transformed, params_model)

    best_label, table_text = build_model_comparison(
        modeled.models, modeled.diagnostics
    )

    artifact_paths: list[str] = []
    if params_report.render_plots:
        from .plots import render_report_plots

        selected = modeled.selection.model
        artifact_paths = render_report_plots(
            df_filtered=modeled.df_model,
            genre_counts=transformed.genres.counts,
            diag=modeled.diagnostics["selected"],
            n_params=selected.n_params,
            short_hash=short_hash,
            output_dir=run_output_dir,
            profile=modeled.boxcox_profile,
            transformed_column=modeled.transformed_column,
        )

    fr = transformed.filter_result
    counts = {
        "total_input_rows": int(len(df)),
        "processed_row_count": int(len(transformed.df_filtered)),
        "excluded_row_count": int(len(transformed.df_excluded)),
        "excluded_by_status": fr.metrics.get("excluded_by_status", 0),
        "excluded_by_scored_by": fr.metrics.get("excluded_by_scored_by", 0),
    }
    summary = {
        "boxcox_lambda": modeled.lam,
        "best_model": best_label,
        "selected_terms": list(modeled.selection.model.terms),
        "f_tests": [
            {
                "small": c.small_label,
                "large": c.large_label,
                "f_statistic": c.f_statistic,
                "p_value": c.p_value,
                "reject_null": c.reject_null,
            }
            for c in modeled.comparisons
        ],
    }
    manifest = build_manifest_dict(
        abs_input_posix=abs_input_posix,
        counts=counts,
        effective_params=effective_params,
        hashes=(short_hash, full_hash),
        artifact_paths=artifact_paths,
        summary=summary,
    )
    write_manifest(str(run_output_dir / f"manifest-{short_hash}.json"), manifest)

    report = assemble_text_report(df, transformed, modeled, table_text, best_label)
    write_text_report(report, run_output_dir, short_hash)

    print(report)
    return run_output_dir


def _parse_name_list(raw: Optional[str]) -> Optional[List[str]]:
    """Split 'a, b,c' into ['a', 'b', 'c']; '' gives []; None stays None."""
    if raw is None:
        return None
    return [s.strip().lower() for s in raw.split(",") if s.strip()]


def _build_cli_parser():
    import argparse

    parser = argparse.ArgumentParser(
        prog="anime-eda",
        description="Anime score regression report (load -> filter -> Box-Cox -> model -> report).",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--print-defaults",
        action="store_true",
        help="Print default parameter values and exit.",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Show full tracebacks for debugging (also ANIME_EDA_DEBUG=1).",
    )

    g_load = parser.add_argument_group("LoadParams")
    g_load.add_argument("--csv-path", type=str, help="Path to the anime CSV (required).")
    g_load.add_argument("--start-line", type=int, help="1-based inclusive start row.")
    g_load.add_argument("--end-line", type=int, help="1-based inclusive end row.")

    g_filter = parser.add_argument_group("FilterParams")
    g_filter.add_argument(
        "--min-scored-by", type=int, help="Minimum number of ratings to keep a record."
    )
    g_filter.add_argument(
        "--exclude-status",
        action="append",
        metavar="STATUS",
        help="Status to exclude (case-insensitive). Repeatable; replaces the default list.",
    )
    g_filter.add_argument(
        "--verbose-filtering",
        action="store_true",
        help="Log filter events in detail.",
    )

    g_model = parser.add_argument_group("ModelParams")
    g_model.add_argument(
        "--numeric", type=str, help="Comma-separated numeric predictors."
    )
    g_model.add_argument(
        "--categorical", type=str, help="Comma-separated categorical predictors."
    )
    g_model.add_argument(
        "--reference-level",
        choices=[r.name for r in ReferenceLevel],
        help="Reference level policy for categorical predictors.",
    )
    g_model.add_argument(
        "--lambda",
        type=float,
        dest="boxcox_lambda",
        help="Fixed Box-Cox exponent; omit to estimate it.",
    )
    g_model.add_argument("--lambda-min", type=float, help="Lower bound of the lambda search.")
    g_model.add_argument("--lambda-max", type=float, help="Upper bound of the lambda search.")
    g_model.add_argument(
        "--search-start",
        choices=[s.name for s in SearchStart],
        help="Model the stepwise search starts from.",
    )
    g_model.add_argument("--alpha", type=float, help="Significance level for F-tests.")
    g_model.add_argument(
        "--cv-folds", type=int, help="K for K-fold CV RMSE (0 disables)."
    )
    g_model.add_argument("--random-state", type=int, help="Seed for CV fold shuffling.")

    g_report = parser.add_argument_group("ReportParams")
    g_report.add_argument("--output-dir", type=str, help="Base directory for run outputs.")
    g_report.add_argument("--no-plots", action="store_true", help="Skip SVG rendering.")
    return parser


def _args_to_params(
    args,
) -> tuple[LoadParams, FilterParams, ModelParams, ReportParams]:
    """
    Merge parsed CLI args over get_default_params(). Raises ValueError on
    invalid combinations.
    """
    load, filt, model, report = get_default_params()

    def _get(name):
        return getattr(args, name, None)

    if _get("csv_path") is None:
        raise ValueError("--csv-path is required")
    load.csv_path = Path(args.csv_path)
    load.start_line = _get("start_line")
    load.end_line = _get("end_line")
    for name in ("start_line", "end_line"):
        value = getattr(load, name)
        if value is not None and value <= 0:
            raise ValueError(f"Invalid --{name.replace('_', '-')}: must be a positive integer")
    if (
        load.start_line is not None
        and load.end_line is not None
        and load.end_line < load.start_line
    ):
        raise ValueError("--end-line must be >= --start-line")

    if _get("min_scored_by") is not None:
        if args.min_scored_by < 0:
            raise ValueError("Invalid --min-scored-by: must be >= 0")
        filt.min_scored_by = int(args.min_scored_by)
    if _get("exclude_status"):
        filt.excluded_statuses = [s.strip() for s in args.exclude_status if s.strip()]
    filt.verbose_filtering = bool(_get("verbose_filtering"))

    numeric = _parse_name_list(_get("numeric"))
    if numeric is not None:
        model.numeric_predictors = numeric
    categorical = _parse_name_list(_get("categorical"))
    if categorical is not None:
        model.categorical_predictors = categorical
    overlap = sorted(set(model.numeric_predictors) & set(model.categorical_predictors))
    if overlap:
        raise ValueError(f"Predictors listed as both numeric and categorical: {overlap}")

    if _get("reference_level") is not None:
        model.reference_level = ReferenceLevel[args.reference_level]
    if _get("search_start") is not None:
        model.search_start = SearchStart[args.search_start]
    if _get("boxcox_lambda") is not None:
        if not np.isfinite(args.boxcox_lambda):
            raise ValueError("Invalid --lambda: must be finite")
        model.boxcox_lambda = float(args.boxcox_lambda)

    lo, hi = model.lambda_bounds
    if _get("lambda_min") is not None:
        lo = float(args.lambda_min)
    if _get("lambda_max") is not None:
        hi = float(args.lambda_max)
    if not lo < hi:
        raise ValueError(f"--lambda-min ({lo}) must be < --lambda-max ({hi})")
    model.lambda_bounds = (lo, hi)

    if _get("alpha") is not None:
        if not 0 < args.alpha < 1:
            raise ValueError("Invalid --alpha: must be in (0, 1)")
        model.alpha = float(args.alpha)
    if _get("cv_folds") is not None:
        if args.cv_folds < 0 or args.cv_folds == 1:
            raise ValueError("Invalid --cv-folds: use 0 to disable or >= 2")
        model.cv_folds = int(args.cv_folds)
    if _get("random_state") is not None:
        model.random_state = int(args.random_state)

    if _get("output_dir") is not None:
        report.output_dir = Path(args.output_dir)
    report.render_plots = not bool(_get("no_plots"))

    return load, filt, model, report


def _defaults_payload() -> dict:
    d_load, d_filter, d_model, d_report = get_default_params()
    return {
        "LoadParams": {
            "csv_path": None if d_load.csv_path is None else str(d_load.csv_path),
            "start_line": d_load.start_line,
            "end_line": d_load.end_line,
        },
        "FilterParams": {
            "min_scored_by": d_filter.min_scored_by,
            "excluded_statuses": d_filter.excluded_statuses,
            "genre_column": d_filter.genre_column,
            "genre_delimiter": d_filter.genre_delimiter,
            "verbose_filtering": d_filter.verbose_filtering,
        },
        "ModelParams": {
            "response": d_model.response,
            "numeric_predictors": d_model.numeric_predictors,
            "categorical_predictors": d_model.categorical_predictors,
            "reference_level": d_model.reference_level.name,
            "boxcox_lambda": d_model.boxcox_lambda,
            "lambda_bounds": list(d_model.lambda_bounds),
            "search_start": d_model.search_start.name,
            "alpha": d_model.alpha,
            "cv_folds": d_model.cv_folds,
            "random_state": d_model.random_state,
        },
        "ReportParams": {
            "output_dir": str(d_report.output_dir),
            "render_plots": d_report.render_plots,
        },
    }


def main(argv: Optional[List[str]] = None) -> None:
    """
    CLI entry point. Parses arguments, builds parameter objects, then orchestrates.
    """
    import sys

    parser = _build_cli_parser()
    args = parser.parse_args(sys.argv[1:] if argv is None else argv)

    if args.print_defaults:
        import json

        print(json.dumps(_defaults_payload(), indent=2))
        return

    debug_mode = bool(
        getattr(args, "debug", False) or os.getenv("ANIME_EDA_DEBUG", "") == "1"
    )
    if debug_mode:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        params = _args_to_params(args)
        _orchestrate(*params)
    except (FileNotFoundError, ValueError, CSVProcessingError) as e:
        # Concise, user-facing errors for common/user-correctable problems.
        logger.info("User-facing error: %s", e)
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except Exception as e:
        logger.exception("Unhandled exception during execution")
        if debug_mode:
            import traceback

            traceback.print_exc()
        else:
            print(f"Unexpected error: {e}", file=sys.stderr)
            print(
                "Run with --debug or set ANIME_EDA_DEBUG=1 to see the full traceback.",
                file=sys.stderr,
            )
        sys.exit(1)


if __name__ == "__main__":
    main()
