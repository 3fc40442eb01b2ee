"""공통 에러 클래스 정의(Common error classes)."""
from __future__ import annotations

from typing import Any, Dict, Optional


class IngestionError(Exception):
    """피드 수집 기본 예외(Base exception for a failed ingestion attempt).

    Every failure inside one ingestion attempt surfaces as exactly one
    subclass of this type. None of them is fatal to the process.
    """

    error_code = "INGESTION_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging or JSON output."""
        response: Dict[str, Any] = {
            "error": {
                "code": self.error_code,
                "message": self.message,
            }
        }
        if self.details:
            response["error"]["details"] = self.details
        return response


class TransportError(IngestionError):
    """전송 오류(Fetch failure or non-success HTTP response)."""

    error_code = "TRANSPORT_ERROR"

    def __init__(self, url: str, reason: str, status_code: Optional[int] = None) -> None:
        """Initialize with request context.

        Args:
            url: Requested document URL
            reason: Why the fetch failed
            status_code: HTTP status code when a response was received
        """
        self.url = url
        self.status_code = status_code
        message = f"Failed to fetch {url}"
        if status_code is not None:
            message += f" (HTTP {status_code})"
        message += f": {reason}"
        details: Dict[str, Any] = {"url": url, "reason": reason}
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message, details)


class DecodeError(IngestionError):
    """디코딩 오류(Decompression or JSON structure failure)."""

    error_code = "DECODE_ERROR"

    def __init__(self, reason: str, source: Optional[str] = None) -> None:
        self.source = source
        message = f"Failed to decode feed document: {reason}"
        if source:
            message = f"Failed to decode feed document {source}: {reason}"
        super().__init__(message, {"reason": reason, "source": source} if source else {"reason": reason})


class StorageError(IngestionError):
    """저장소 오류(Transaction begin/execute/commit failure)."""

    error_code = "STORAGE_ERROR"

    def __init__(self, operation: str, reason: str, details: Optional[Dict[str, Any]] = None) -> None:
        """Initialize with storage context.

        Args:
            operation: What was being attempted (e.g. "upsert advisory")
            reason: Why it failed
            details: Additional context such as the advisory ID
        """
        self.operation = operation
        message = f"Storage failure during {operation}: {reason}"
        super().__init__(message, details or {"operation": operation, "reason": reason})


class WatermarkError(StorageError):
    """워터마크 저장 오류(Failure reading or writing the local watermark)."""

    error_code = "WATERMARK_ERROR"


class AppException(Exception):
    """애플리케이션 기본 예외 클래스(Base application exception)."""

    def __init__(
        self,
        status_code: int,
        error_code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Initialize exception with structured error information.

        Args:
            status_code: HTTP status code (e.g., 404, 503, 400)
            error_code: Machine-readable error code (e.g., "RESOURCE_NOT_FOUND")
            message: Human-readable error message
            details: Additional error context (optional)
        """
        self.status_code = status_code
        self.error_code = error_code
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON response."""
        response: Dict[str, Any] = {
            "error": {
                "code": self.error_code,
                "message": self.message,
            }
        }
        if self.details:
            response["error"]["details"] = self.details
        return response


class ResourceNotFound(AppException):
    """자원을 찾을 수 없음(Resource not found - 404)."""

    def __init__(
        self,
        resource_type: str,
        identifier: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        message = f"{resource_type.capitalize()} '{identifier}' not found."
        super().__init__(
            status_code=404,
            error_code="RESOURCE_NOT_FOUND",
            message=message,
            details=details or {"resource_type": resource_type, "identifier": identifier},
        )


class ExternalServiceError(AppException):
    """외부 서비스 오류(External service unavailable - 503)."""

    def __init__(
        self,
        service_name: str,
        reason: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        message = f"{service_name} is currently unavailable: {reason}"
        super().__init__(
            status_code=503,
            error_code="EXTERNAL_SERVICE_ERROR",
            message=message,
            details=details or {"service_name": service_name, "reason": reason},
        )
