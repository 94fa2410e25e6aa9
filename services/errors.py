"""Failure taxonomy for the ingestion path.

Each error carries the short public message returned to callers and the
HTTP status it maps to. Provider detail stays on the exception for logging.
"""

from __future__ import annotations

from typing import Optional


class IngestionError(Exception):
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class Unauthorized(IngestionError):
    status_code = 401


class ValidationError(IngestionError):
    status_code = 400


class StorageError(IngestionError):
    status_code = 500

    def __init__(
        self,
        detail: str,
        message: str = "Failed to store sensor reading",
        provider_status: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.detail = detail
        self.provider_status = provider_status


class UnexpectedError(IngestionError):
    status_code = 500

    def __init__(self, message: str = "Internal server error") -> None:
        super().__init__(message)
