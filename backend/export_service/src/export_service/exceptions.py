"""
Exception hierarchy for the export service.

Service and store code raises these; the API layer maps them onto the
structured `{error, details}` responses.
"""

from typing import Any


class ExportServiceError(Exception):
    """Base exception for all export service errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        return self.message


class ProductNotFoundError(ExportServiceError):
    """Raised when a product id does not match any stored product."""

    def __init__(self, product_id: str) -> None:
        super().__init__(f"Product not found: {product_id}", {"product_id": product_id})
        self.product_id = product_id


class ProductDesignMissingError(ExportServiceError):
    """Raised when a product exists but has no design attached."""

    def __init__(self, product_id: str) -> None:
        super().__init__(f"No design found for product: {product_id}", {"product_id": product_id})
        self.product_id = product_id


class InvalidExportUrlError(ExportServiceError):
    """Raised when no destination filename can be derived from the export URL."""

    def __init__(self, message: str, url: str) -> None:
        super().__init__(message, {"url": url})
        self.url = url


class ExportDownloadError(ExportServiceError):
    """Raised when the export host answers with a non-200 status or the transfer fails."""

    def __init__(self, message: str, url: str, status_code: int | None = None) -> None:
        details: dict[str, Any] = {"url": url}
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message, details)
        self.url = url
        self.status_code = status_code


class ExportWriteError(ExportServiceError):
    """Raised when the downloaded bytes cannot be written to local storage."""


class ProductStoreError(ExportServiceError):
    """Raised when the JSON product database cannot be read or written."""
