"""Error taxonomy of SiteAudit.

Every error that reaches a caller carries a stable machine-readable
:class:`ErrorCode` and an HTTP status used by :mod:`site_audit.server`.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict


class ErrorCode(str, Enum):
    MISSING_URL = "MISSING_URL"
    INVALID_URL = "INVALID_URL"
    INVALID_LIMIT = "INVALID_LIMIT"
    INVALID_MAX_PAGES = "INVALID_MAX_PAGES"
    FIRECRAWL_PAYMENT_REQUIRED = "FIRECRAWL_PAYMENT_REQUIRED"
    MISSING_API_KEY = "MISSING_API_KEY"
    CRAWL_ERROR = "CRAWL_ERROR"
    NO_PAGES = "NO_PAGES"
    ANALYSIS_ERROR = "ANALYSIS_ERROR"
    UNEXPECTED_ERROR = "UNEXPECTED_ERROR"
    TASK_NOT_FOUND = "TASK_NOT_FOUND"


class AuditError(Exception):
    """Base error of an audit run."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.UNEXPECTED_ERROR,
        status: int = 500,
    ):
        self.message = message
        self.code = code
        self.status = status
        super().__init__(self.message)

    def as_dict(self) -> Dict[str, Any]:
        return {"success": False, "error": self.message, "code": self.code.value}


class ValidationError(AuditError):
    """Raised for malformed input, before any network activity."""

    def __init__(self, message: str, code: ErrorCode):
        super().__init__(message=message, code=code, status=400)


class ProviderError(AuditError):
    """Raised when the page content provider fails for the whole run."""

    def __init__(self, message: str, code: ErrorCode = ErrorCode.CRAWL_ERROR):
        status = {
            ErrorCode.FIRECRAWL_PAYMENT_REQUIRED: 402,
            ErrorCode.MISSING_API_KEY: 400,
        }.get(code, 500)
        super().__init__(message=message, code=code, status=status)


class NoPagesError(AuditError):
    """Raised when no strategy produced a single page."""

    def __init__(
        self,
        message: str = "No pages were crawled. The website may be inaccessible or have no crawlable content.",
    ):
        super().__init__(message=message, code=ErrorCode.NO_PAGES, status=400)


class AnalysisError(AuditError):
    """Raised when analysis of already fetched data crashes."""

    def __init__(self, message: str):
        super().__init__(message=message, code=ErrorCode.ANALYSIS_ERROR, status=500)


__all__ = [
    "ErrorCode",
    "AuditError",
    "ValidationError",
    "ProviderError",
    "NoPagesError",
    "AnalysisError",
]
