"""
errors.py — Failure taxonomy for the Congress delegation tracker.

  ConfigurationError  bill number in neither chamber list (skips that entry)
  FetchFailure        non-2xx status or transport error on one request
  ParseFailure        malformed JSON payload; handled exactly like FetchFailure
  PersistFailure      snapshot could not be written; aborts the run
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class TrackerError(Exception):
    """Base class for every error raised by the tracker."""


class ConfigurationError(TrackerError):
    pass


class FetchFailure(TrackerError):
    """A single upstream request failed.

    Exactly one of status_code / transport_error is normally set.
    """

    def __init__(
        self,
        url: str,
        status_code: Optional[int] = None,
        transport_error: Optional[BaseException] = None,
    ):
        self.url = url
        self.status_code = status_code
        self.transport_error = transport_error
        if status_code is not None:
            reason = f"HTTP {status_code}"
        elif transport_error is not None:
            reason = f"{type(transport_error).__name__}: {transport_error}"
        else:
            reason = "unknown failure"
        super().__init__(f"{reason} — {url}")


class ParseFailure(FetchFailure):
    def __init__(self, url: str, detail: str = ""):
        self.detail = detail
        super().__init__(url)
        self.args = (f"malformed JSON ({detail}) — {url}" if detail else f"malformed JSON — {url}",)


class PersistFailure(TrackerError):
    def __init__(self, path: Path, cause: BaseException):
        self.path = Path(path)
        self.cause = cause
        super().__init__(f"could not write {self.path}: {type(cause).__name__}: {cause}")
