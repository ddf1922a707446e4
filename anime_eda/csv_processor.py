#!/usr/bin/env python3
"""
CSV loading for the anime dataset.

Reads a line range of the raw CSV into a DataFrame and checks that the
columns the pipeline depends on are present.
"""

import logging
from pathlib import Path
from typing import Iterable, Optional, Tuple, Union

import pandas as pd

from .errors import SchemaError

logger = logging.getLogger(__name__)

# Columns consumed by the genre expansion, quality filter and model stages.
REQUIRED_COLUMNS: tuple[str, ...] = (
    "score",
    "scored_by",
    "episodes",
    "status",
    "genre",
    "type",
    "source",
    "rating",
    "studio",
)

NUMERIC_COLUMNS: tuple[str, ...] = ("score", "scored_by", "episodes")


class CSVProcessingError(Exception):
    """Base exception for CSV processing errors."""

    pass


class InvalidRangeError(CSVProcessingError):
    """Raised when invalid line range is provided."""

    pass


class FileAccessError(CSVProcessingError):
    """Raised when file cannot be accessed or read."""

    pass


def normalize_headers(df: pd.DataFrame) -> pd.DataFrame:
    """
    Return a copy with header names stripped and lower-cased.

    Raises SchemaError if normalisation makes two headers collide
    (e.g. 'Score' and 'score ').
    """
    renamed = [str(c).strip().lower() for c in df.columns]
    seen: set[str] = set()
    dups: list[str] = []
    for name in renamed:
        if name in seen and name not in dups:
            dups.append(name)
        seen.add(name)
    if dups:
        raise SchemaError(
            f"Header normalisation produced duplicate columns: {sorted(dups)}"
        )
    out = df.copy()
    out.columns = renamed
    return out


def check_required_columns(
    df: pd.DataFrame, required: Iterable[str] = REQUIRED_COLUMNS
) -> None:
    """Raise SchemaError listing every required column absent from df."""
    missing = sorted(set(required) - set(df.columns))
    if missing:
        raise SchemaError(
            f"Input table is missing required columns: {missing}", missing=missing
        )


class CSVRangeProcessor:
    """
    Reads specific data-row ranges from a CSV file.

    Line numbers are 1-indexed and exclude the header row.
    """

    def __init__(self, file_path: Union[str, Path]) -> None:
        """
        Args:
            file_path: Path to the CSV file to process

        Raises:
            FileNotFoundError: If the specified file does not exist
            FileAccessError: If the path is not a regular file
        """
        self.file_path = Path(file_path)
        if not self.file_path.exists():
            raise FileNotFoundError(f"CSV file not found: {self.file_path}")
        if not self.file_path.is_file():
            raise FileAccessError(f"Path is not a file: {self.file_path}")
        if not self.file_path.suffix.lower() == ".csv":
            logger.warning(f"File does not have .csv extension: {self.file_path}")

    def get_total_lines(self) -> int:
        """
        Get the total number of data rows (excluding header).

        Raises:
            FileAccessError: If the file cannot be read
        """
        try:
            # Chunked count keeps memory flat on the full MAL dump
            chunk_iter = pd.read_csv(self.file_path, chunksize=10000)
            total_rows = 0
            for chunk in chunk_iter:
                total_rows += len(chunk)
            return total_rows
        except pd.errors.EmptyDataError:
            return 0
        except Exception as e:
            raise FileAccessError(f"Error reading CSV file: {e}")

    def _validate_line_range(
        self, start_line: Optional[int], end_line: Optional[int] = None
    ) -> Tuple[int, int]:
        """
        Validate and normalize line range parameters.

        Returns:
            Tuple[int, int]: Validated (start_line, end_line) tuple

        Raises:
            InvalidRangeError: If the range is invalid
        """
        total_lines = self.get_total_lines()

        if start_line is None:
            start_line = 1
        elif not isinstance(start_line, int) or start_line <= 0:
            raise InvalidRangeError(
                f"Start line must be a positive integer or None, got: {start_line}"
            )

        if end_line is None:
            end_line = total_lines
        elif not isinstance(end_line, int) or end_line <= 0:
            raise InvalidRangeError(
                f"End line must be a positive integer or None, got: {end_line}"
            )

        if total_lines == 0:
            return start_line, 0

        if start_line > total_lines:
            raise InvalidRangeError(
                f"Start line {start_line} exceeds total data rows {total_lines}"
            )

        if end_line < start_line:
            raise InvalidRangeError(
                f"End line {end_line} must be greater than or equal to start line {start_line}"
            )

        if end_line > total_lines:
            end_line = total_lines

        return start_line, end_line

    def read_range(
        self,
        start_line: Optional[int] = None,
        end_line: Optional[int] = None,
    ) -> pd.DataFrame:
        """
        Read a specific range of data rows, header preserved.

        Args:
            start_line: Starting line number. If None, starts from first line
            end_line: Ending line number. If None, reads to end

        Raises:
            InvalidRangeError: If the range parameters are invalid
            FileAccessError: If the file cannot be read
        """
        start_line, end_line = self._validate_line_range(start_line, end_line)
        if end_line == 0:
            return self._read_header_only()

        n_rows = end_line - start_line + 1
        # Keep header row (line 0); skip only preceding data rows.
        skiprows = None if start_line <= 1 else range(1, start_line)
        try:
            return pd.read_csv(
                self.file_path,
                header=0,
                skiprows=skiprows,
                nrows=n_rows,
            )
        except pd.errors.EmptyDataError:
            return pd.DataFrame()
        except Exception as e:
            raise FileAccessError(f"Error reading CSV range: {e}")

    def _read_header_only(self) -> pd.DataFrame:
        try:
            return pd.read_csv(self.file_path, header=0, nrows=0)
        except pd.errors.EmptyDataError:
            return pd.DataFrame()
        except Exception as e:
            raise FileAccessError(f"Error reading CSV header: {e}")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        pass
