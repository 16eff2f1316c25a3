from __future__ import annotations

from typing import Any, Dict, Optional


class PoiFinderError(Exception):
    """Base class for every error raised by poifinder."""


class ProviderError(PoiFinderError):
    """A page request to the upstream search API did not produce a usable page."""


class TransportError(ProviderError):
    pass


class HttpError(ProviderError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimited(ProviderError):
    """The upstream answered successfully but its payload carries the soft-limit sentinel."""

    def __init__(self, info: str, payload: Optional[Dict[str, Any]] = None):
        super().__init__(f"upstream soft rate limit: {info}")
        self.info = info
        self.payload = payload or {}


class ExhaustedRetries(ProviderError):
    def __init__(self, attempts: int, last_error: Optional[Exception]):
        super().__init__(f"request failed after {attempts} attempt(s): {last_error}")
        self.attempts = attempts
        self.last_error = last_error


class RegionPartialFailure(PoiFinderError):
    """Pages from `page_num` on could not be fetched; earlier pages were kept."""

    def __init__(self, region: str, page_num: int, cause: Optional[Exception] = None):
        super().__init__(f"{region}: stopped at page {page_num}: {cause}")
        self.region = region
        self.page_num = page_num
        self.cause = cause


class JobFailure(PoiFinderError):
    def __init__(self, task_id: str, cause: Exception):
        super().__init__(f"task {task_id} failed: {cause}")
        self.task_id = task_id
        self.cause = cause


class TaskRegistryError(PoiFinderError):
    pass


class TaskNotFound(TaskRegistryError, KeyError):
    def __str__(self) -> str:
        return f"task not found: {self.args[0] if self.args else ''}"


class InvalidTransition(TaskRegistryError):
    pass
