"""Domain errors and failure typing."""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for roll lookup failures."""

    error_code = "PIPELINE_ERROR"


class ConfigError(PipelineError):
    """Raised for invalid or missing configuration."""

    error_code = "CONFIG_ERROR"


class InvalidPolicy(ConfigError):
    """Raised for an unknown truncation policy or a width below one."""

    error_code = "INVALID_POLICY"


class SourceError(PipelineError):
    """Raised when the roll extract cannot be parsed."""

    error_code = "SOURCE_ERROR"


class NormalizationError(PipelineError):
    """Raised when a source or query value cannot be normalised."""

    error_code = "NORMALIZATION_ERROR"

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class MissingRequiredField(NormalizationError):
    error_code = "MISSING_REQUIRED_FIELD"

    def __init__(self, field: str) -> None:
        super().__init__(f"Missing required field: {field}", field=field)


class MalformedDate(NormalizationError):
    error_code = "MALFORMED_DATE"


class IngestFailed(PipelineError):
    """Raised when the store rejects the ingestion batch; the batch is rolled back."""

    error_code = "INGEST_FAILED"


class StoreError(PipelineError):
    """Raised by the keyed record store for any storage-engine failure."""

    error_code = "STORE_ERROR"
