"""Exceptions raised by the ETL pipelines."""
from __future__ import annotations

from typing import List, Optional, Sequence


class EtlError(RuntimeError):
    """Base class for pipeline failures."""


class OverpassRemarkError(EtlError):
    """Overpass answered 2xx but flagged the query with a ``remark``."""

    def __init__(self, remark: str) -> None:
        super().__init__(f"Overpass remark: {remark}")
        self.remark = remark


class RetryExhaustedError(EtlError):
    def __init__(
        self,
        attempts: int,
        endpoints_tried: Sequence[str],
        last_error: Optional[BaseException],
    ) -> None:
        message = str(last_error) if last_error is not None else "Overpass query failed"
        super().__init__(message)
        self.attempts = attempts
        self.endpoints_tried: List[str] = list(endpoints_tried)
        self.last_error = last_error


class SourceUnavailableError(EtlError):
    """A sourcing state has nothing to offer (file absent, URL unset)."""


class NoUsableSourceError(EtlError):
    def __init__(self, failures: Sequence[str]) -> None:
        detail = "; ".join(failures) if failures else "no sources configured"
        super().__init__(f"No usable schools dataset: {detail}")
        self.failures = list(failures)
