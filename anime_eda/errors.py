"""
Error taxonomy for the anime score pipeline.

All pipeline errors subclass ValueError so the CLI can treat them as
user-correctable input problems (bad columns, empty filters, invalid
transform domain, unidentifiable regression designs).
"""


class AnalysisError(ValueError):
    """Base class for pipeline stage failures."""

    pass


class SchemaError(AnalysisError):
    """Raised when required input columns are missing or malformed."""

    def __init__(self, message: str, missing: list[str] | None = None) -> None:
        super().__init__(message)
        self.missing: list[str] = list(missing or [])


class EmptyResultError(AnalysisError):
    """Raised when a stage leaves zero rows."""

    pass


class DomainError(AnalysisError):
    """Raised when a transform is applied outside its valid domain."""

    pass


class SingularDesignError(AnalysisError):
    """Raised when a regression design matrix is rank-deficient."""

    pass
