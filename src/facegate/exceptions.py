"""
Custom exception classes for the FaceGate engine.

This module defines a hierarchy of exceptions for the conditions the engine
surfaces to its caller. Quality and diversity rejections and cache staleness
are expected outcomes and are returned as data, never raised.
"""

from typing import Optional, Dict, Any


class FaceGateError(Exception):
    """
    Base exception class for all FaceGate errors.

    Parameters
    ----------
    message : str
        Human-readable error message.
    context : dict, optional
        Additional context information about the error.
    error_code : str, optional
        Unique error code for programmatic handling.
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None,
    ) -> None:
        self.message = message
        self.context = context or {}
        self.error_code = error_code
        super().__init__(self.message)

    def __str__(self) -> str:
        """Return a formatted string representation of the error."""
        parts = [self.message]

        if self.error_code:
            parts.append(f"[Error Code: {self.error_code}]")

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            parts.append(f"[Context: {context_str}]")

        return " ".join(parts)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert the exception to a dictionary for structured logging.

        Returns
        -------
        dict
            Dictionary representation of the exception.
        """
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "context": self.context,
        }


class EmbeddingError(FaceGateError):
    """
    Exception raised for invalid embedding input.

    These are input validation failures: the caller can recover by
    requesting a valid embedding from the upstream model.
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        **kwargs,
    ) -> None:
        context = kwargs.get("context", {})
        if operation:
            context["operation"] = operation

        super().__init__(message, context, kwargs.get("error_code"))


class DimensionMismatchError(EmbeddingError):
    """Exception raised when two embeddings have different lengths."""

    def __init__(
        self, expected: int, actual: int, operation: str = "similarity"
    ) -> None:
        message = f"Embedding dimension mismatch: expected {expected}, got {actual}"
        context = {"expected_dimension": expected, "actual_dimension": actual}
        super().__init__(
            message, operation=operation, context=context, error_code="EMB_001"
        )


class InvalidEmbeddingError(EmbeddingError):
    """Exception raised for embeddings that are empty, non-finite or not 1-D."""

    def __init__(self, message: str, operation: str = "validation") -> None:
        super().__init__(message, operation=operation, error_code="EMB_002")


class EmptyGalleryError(EmbeddingError):
    """Exception raised when an operation needs at least one embedding."""

    def __init__(self, message: str, operation: str = "aggregation") -> None:
        super().__init__(message, operation=operation, error_code="EMB_003")


class QualityCheckError(FaceGateError):
    """
    Exception raised when a face image cannot be assessed at all.

    A low quality score is not an error; this is reserved for malformed
    input such as an empty array or an unsupported number of channels.
    """

    def __init__(self, message: str, image_shape: Optional[tuple] = None) -> None:
        context = {}
        if image_shape is not None:
            context["image_shape"] = image_shape
        super().__init__(message, context, error_code="QUAL_001")


class TemplateUnavailableError(FaceGateError):
    """
    Exception raised when stored templates cannot be loaded or decrypted.

    Undecryptable templates must never be treated as non-matches: doing so
    would hide systemic corruption behind ordinary rejections.
    """

    def __init__(
        self,
        message: str,
        identity_id: Optional[Any] = None,
        sample_index: Optional[int] = None,
    ) -> None:
        context = {}
        if identity_id is not None:
            context["identity_id"] = identity_id
        if sample_index is not None:
            context["sample_index"] = sample_index
        super().__init__(message, context, error_code="STORE_001")


class AuditWriteError(FaceGateError):
    """Exception raised when an audit record could not be persisted."""

    def __init__(self, message: str, record_id: Optional[str] = None) -> None:
        context = {}
        if record_id:
            context["record_id"] = record_id
        super().__init__(message, context, error_code="AUDIT_001")


class ConfigurationError(FaceGateError):
    """
    Exception raised for configuration-related errors.

    This includes invalid configuration values and out-of-range thresholds.
    """

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        config_value: Optional[str] = None,
        **kwargs,
    ) -> None:
        context = kwargs.get("context", {})
        if config_key:
            context["config_key"] = config_key
        if config_value:
            context["config_value"] = config_value

        super().__init__(message, context, kwargs.get("error_code", "CONFIG_001"))
