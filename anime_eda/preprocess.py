"""
Table-shaping stages: genre expansion, quality filtering and the Box-Cox
power transform of the score.

Every function returns new frames; inputs are never modified in place.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Iterable, Optional

import numpy as np
import pandas as pd

from .errors import DomainError, EmptyResultError, SchemaError

logger = logging.getLogger(__name__)

GENRE_DELIMITER = ", "
DEFAULT_EXCLUDED_STATUSES: tuple[str, ...] = ("Not yet aired",)
DEFAULT_MIN_SCORED_BY = 10


class FilterResult:
    """Container for filter operation results and diagnostics."""

    def __init__(self, label: Optional[str] = None) -> None:
        self.label: Optional[str] = label

        # Row counters
        self.original_rows: int = 0
        self.filtered_rows: int = 0
        self.excluded_rows: int = 0

        # Diagnostics
        self.warnings: list[str] = []
        self.events: list[str] = []
        self.metrics: dict[str, int | float | str] = {}

        # Timing
        self.started_at: Optional[float] = None
        self.finished_at: Optional[float] = None
        self.elapsed_ms: Optional[float] = None

    def start(self) -> None:
        self.started_at = time.perf_counter()

    def stop(self) -> None:
        self.finished_at = time.perf_counter()
        if self.started_at is not None:
            self.elapsed_ms = (self.finished_at - self.started_at) * 1000.0

    def add_warning(self, message: str) -> None:
        """Add a warning message."""
        self.warnings.append(message)
        logger.warning(message)

    def add_event(self, message: str) -> None:
        """Add an info-level event message."""
        self.events.append(message)
        logger.info(message)

    def add_metric(self, name: str, value: int | float | str) -> None:
        """Attach a named metric."""
        self.metrics[name] = value

    def summarize(self) -> str:
        """Produce a concise summary string for diagnostics."""
        lbl = f"{self.label} " if self.label else ""
        parts = [f"{lbl}result: {self.original_rows} → {self.filtered_rows}"]
        if self.excluded_rows:
            parts.append(f"excluded_rows={self.excluded_rows}")
        if self.elapsed_ms is not None:
            parts.append(f"elapsed_ms={self.elapsed_ms:.1f}")
        if self.metrics:
            parts.append(f"metrics={self.metrics}")
        return " | ".join(parts)


@dataclass(frozen=True)
class GenreExpansion:
    """
    Output of expand_genres.

    Attributes:
        table: copy of the input with one bool column per genre appended.
        genres: genre names in first-appearance order; also the column names
            (prefixed when a prefix was requested).
        columns: indicator column names, aligned with genres.
        counts: number of records carrying each genre, indexed by genre.
    """

    table: pd.DataFrame
    genres: tuple[str, ...]
    columns: tuple[str, ...]
    counts: pd.Series = field(repr=False)

    def column_for(self, genre: str) -> str:
        return self.columns[self.genres.index(genre)]


def split_genres(raw, delimiter: str = GENRE_DELIMITER) -> list[str]:
    """Split one raw genre string into stripped, non-empty tokens."""
    if raw is None or (isinstance(raw, float) and np.isnan(raw)):
        return []
    tokens = [t.strip() for t in str(raw).split(delimiter)]
    return [t for t in tokens if t]


def expand_genres(
    df: pd.DataFrame,
    column: str = "genre",
    delimiter: str = GENRE_DELIMITER,
    prefix: str = "",
) -> GenreExpansion:
    """
    Append one boolean indicator column per distinct genre in the corpus.

    The column set is the union over all records, ordered by first
    appearance, so two runs over the same table produce identical output.
    A record without a genre gets False in that genre's column.

    Raises:
        SchemaError: the genre column is missing, or a genre column name
            would overwrite an existing column.
    """
    if column not in df.columns:
        raise SchemaError(f"Genre column '{column}' not found", missing=[column])

    token_lists = [split_genres(v, delimiter) for v in df[column].tolist()]

    genres: list[str] = []
    seen: set[str] = set()
    for tokens in token_lists:
        for tok in tokens:
            if tok not in seen:
                seen.add(tok)
                genres.append(tok)

    columns = [f"{prefix}{g}" for g in genres]
    clashes = sorted(set(columns) & set(df.columns))
    if clashes:
        raise SchemaError(
            f"Genre indicator columns collide with existing columns: {clashes}"
        )

    token_sets = [set(tokens) for tokens in token_lists]
    indicators = pd.DataFrame(
        {
            col: pd.Series(
                [g in ts for ts in token_sets], index=df.index, dtype=bool
            )
            for g, col in zip(genres, columns)
        },
        index=df.index,
    )
    out = pd.concat([df.copy(), indicators], axis=1)

    counts = pd.Series(
        [int(indicators[c].sum()) for c in columns], index=genres, dtype=int
    )
    logger.info(
        f"Expanded '{column}' into {len(genres)} genre indicators over {len(df)} records"
    )
    return GenreExpansion(
        table=out, genres=tuple(genres), columns=tuple(columns), counts=counts
    )


def _normalize_status(values: pd.Series) -> pd.Series:
    return values.astype("string").str.strip().str.lower()


def filter_quality(
    df: pd.DataFrame,
    min_scored_by: int = DEFAULT_MIN_SCORED_BY,
    excluded_statuses: Iterable[str] = DEFAULT_EXCLUDED_STATUSES,
    verbose: bool = False,
) -> tuple[pd.DataFrame, pd.DataFrame, FilterResult]:
    """
    Keep records that have aired and enough ratings.

    A record is kept iff its status (trimmed, case-insensitive) is not one of
    excluded_statuses and scored_by >= min_scored_by. Missing scored_by
    counts as failing. Input order is preserved, so filtering an already
    filtered table with the same thresholds returns it unchanged.

    Returns:
        (df_kept, df_excluded, result) where both frames are copies.

    Raises:
        SchemaError: 'status' or 'scored_by' missing.
        EmptyResultError: no record passes.
    """
    missing = sorted({"status", "scored_by"} - set(df.columns))
    if missing:
        raise SchemaError(
            f"Quality filter requires columns: {missing}", missing=missing
        )

    result = FilterResult(label="quality_filter")
    result.start()
    result.original_rows = int(len(df))

    excluded = {s.strip().lower() for s in excluded_statuses}
    status_norm = _normalize_status(df["status"])
    mask_status = ~status_norm.isin(excluded).fillna(False).astype(bool)

    scored_by = pd.to_numeric(df["scored_by"], errors="coerce")
    mask_scored = (scored_by >= min_scored_by).fillna(False).astype(bool)

    mask = mask_status & mask_scored
    df_kept = df[mask].copy()
    df_excluded = df[~mask].copy()

    result.filtered_rows = int(len(df_kept))
    result.excluded_rows = int(len(df_excluded))
    result.add_metric("excluded_by_status", int((~mask_status).sum()))
    result.add_metric("excluded_by_scored_by", int((~mask_scored).sum()))
    result.add_metric("min_scored_by", int(min_scored_by))
    result.stop()

    if verbose:
        result.add_event(
            f"Excluded statuses {sorted(excluded)}; scored_by threshold {min_scored_by}"
        )
    logger.info(result.summarize())

    if df_kept.empty:
        raise EmptyResultError(
            f"Quality filter removed all {result.original_rows} records "
            f"(min_scored_by={min_scored_by}, excluded_statuses={sorted(excluded)})"
        )
    return df_kept, df_excluded, result


def boxcox_values(y: np.ndarray, lam: float) -> np.ndarray:
    if lam == 0:
        return np.log(y)
    return (np.power(y, lam) - 1.0) / lam


def boxcox_transform(
    df: pd.DataFrame,
    lam: float,
    column: str = "score",
    output: str = "score_transformed",
) -> pd.DataFrame:
    """
    Add output = (y**lam - 1) / lam for y = df[column]; log(y) when lam == 0.

    Raises:
        SchemaError: column missing.
        DomainError: any value is non-finite or <= 0.
    """
    if column not in df.columns:
        raise SchemaError(f"Column '{column}' not found", missing=[column])
    if not np.isfinite(lam):
        raise DomainError(f"Box-Cox exponent must be finite, got {lam}")

    y = pd.to_numeric(df[column], errors="coerce").to_numpy(dtype=float)
    bad = ~np.isfinite(y) | (y <= 0)
    if bad.any():
        raise DomainError(
            f"Box-Cox transform needs {column} > 0; "
            f"{int(bad.sum())} of {len(y)} records are zero, negative or missing"
        )

    out = df.copy()
    out[output] = boxcox_values(y, float(lam))
    return out


def inverse_boxcox(values, lam: float) -> np.ndarray:
    """
    Map transformed values back to the original scale: (z*lam + 1)**(1/lam).

    Raises:
        DomainError: z*lam + 1 <= 0 for some value (no real preimage).
    """
    z = np.asarray(values, dtype=float)
    if lam == 0:
        return np.exp(z)
    base = z * lam + 1.0
    if (base <= 0).any():
        raise DomainError(
            f"Inverse Box-Cox undefined for {int((base <= 0).sum())} values "
            f"with lambda={lam}"
        )
    return np.power(base, 1.0 / lam)


def boxcox_inverse_derivative(y0: float, lam: float) -> float:
    """
    dy/dz of the inverse transform at original-scale point y0.

    The forward transform has dz/dy = y**(lam - 1), so a small error on the
    transformed scale maps to roughly y0**(1 - lam) times that error on the
    score scale.
    Not 1/(lam * y0**(lam - 1)); that is the derivative for the unnormalised
    y**lam.
    """
    if y0 <= 0:
        raise DomainError(f"Reference score must be > 0, got {y0}")
    return float(np.power(y0, 1.0 - lam))
