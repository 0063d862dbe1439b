from typing import Optional, Dict, Any


class ExporterException(Exception):
    """Base exception for all exporter errors."""

    def __init__(
        self,
        message: str,
        code: str = "internal_error",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}


class FetchError(ExporterException):
    """Raised when a single upstream GET does not yield a usable body."""

    def __init__(
        self,
        message: str,
        code: str = "fetch_error",
        path: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        merged = dict(details or {})
        if path is not None:
            merged.setdefault("path", path)
        super().__init__(message, code=code, details=merged)
        self.path = path


class NotFoundError(FetchError):
    """Upstream answered 404."""

    def __init__(self, path: str):
        super().__init__(f"Resource not found: {path}", code="not_found", path=path)


class ForbiddenError(FetchError):
    """Upstream answered 403."""

    def __init__(self, path: str):
        super().__init__(f"Access forbidden: {path}", code="forbidden", path=path)


class UnauthorizedError(FetchError):
    """Upstream answered 401."""

    def __init__(self, path: str):
        super().__init__(
            f"Unauthorized request: {path}", code="unauthorized", path=path
        )


class UnknownStatusError(FetchError):
    """Upstream answered with a status code the client does not classify."""

    def __init__(self, path: str, status_code: int):
        super().__init__(
            f"Unexpected status {status_code} for {path}",
            code="unknown_status",
            path=path,
            details={"status_code": status_code},
        )
        self.status_code = status_code


class TransportError(FetchError):
    """DNS, TLS, connect or timeout failure before a response was received."""

    def __init__(self, path: str, cause: Exception):
        super().__init__(
            f"Transport failure for {path}: {cause}",
            code="transport_error",
            path=path,
            details={"cause": type(cause).__name__},
        )
        self.cause = cause


class DecodeError(ExporterException):
    """Raised when a response body does not match the expected schema."""

    def __init__(
        self,
        message: str,
        schema: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        merged = dict(details or {})
        merged.setdefault("schema", schema)
        super().__init__(message, code="malformed", details=merged)
        self.schema = schema


class ConfigurationError(ExporterException):
    """Raised when exporter configuration is invalid or missing."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="config_error", details=details)


class CollectionPassError(ExporterException):
    """Raised when a collection pass cannot proceed past the top-level fetch."""

    def __init__(self, message: str, cause: ExporterException):
        super().__init__(
            message,
            code="pass_failed",
            details={"cause_code": cause.code, **cause.details},
        )
        self.cause = cause


class CollectionInProgressError(ExporterException):
    """Raised when a pass is triggered while the previous one is still draining."""

    def __init__(self) -> None:
        super().__init__(
            "A collection pass is already running", code="pass_in_progress"
        )
