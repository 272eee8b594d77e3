"""
Shared utilities for the billwatch trackers.
============================================
Provides:
  - setup_logging       — consistent logging (console + rotating file)
  - build_session       — pooled requests.Session (no adapter-level retries)
  - http_get_with_retry — HTTP GET with exponential backoff on transient failures
  - load_json           — JSON loading that tells "missing" apart from "corrupt"
  - save_json           — atomic JSON write (temp file → fsync → rename)
  - ensure_dir          — mkdir -p helper

Trackers import from here. Keep this file focused and stable.
"""

import json
import logging
import os
import time
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

# Status codes worth retrying: rate limiting and server-side trouble.
TRANSIENT_STATUS = frozenset({429, 500, 502, 503, 504})


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

def setup_logging(
    name: str,
    level: str = "INFO",
    log_file: Optional[Path] = None,
) -> logging.Logger:
    """
    Configure a named logger with console output and optional rotating file.

    Args:
        name:     Logger name (shown in every log line).
        level:    "DEBUG" | "INFO" | "WARNING" | "ERROR"
        log_file: If provided, also write to this rotating log file.

    Returns:
        Configured Logger instance.
    """
    log_level = getattr(logging, str(level).upper(), logging.INFO)
    logger = logging.getLogger(name)
    logger.setLevel(log_level)

    # Avoid duplicate handlers when called multiple times (e.g. in tests)
    if logger.handlers:
        return logger

    fmt = logging.Formatter(
        "%(asctime)s | %(name)-20s | %(levelname)-8s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    ch = logging.StreamHandler()
    ch.setLevel(log_level)
    ch.setFormatter(fmt)
    logger.addHandler(ch)

    # Rotating file handler: 10 MB max, keep 5 backups
    if log_file:
        ensure_dir(Path(log_file).parent)
        fh = RotatingFileHandler(log_file, maxBytes=10_000_000, backupCount=5, encoding="utf-8")
        fh.setLevel(log_level)
        fh.setFormatter(fmt)
        logger.addHandler(fh)

    return logger


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

def build_session(
    headers: Optional[dict] = None,
    pool_size: int = 10,
) -> requests.Session:
    """
    Return a pooled Session whose adapter never retries on its own.

    All retries (connection, timeout and status) belong to
    http_get_with_retry(), so each logical request is attempted at most
    max_retries times.
    """
    session = requests.Session()
    adapter = HTTPAdapter(
        pool_connections=pool_size,
        pool_maxsize=pool_size,
        max_retries=Retry(total=0, connect=0, read=0, status=0, raise_on_status=False),
    )
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    if headers:
        session.headers.update(headers)
    return session


def is_transient(exc: BaseException) -> bool:
    """True for failures a retry can plausibly fix (timeouts, drops, 429/5xx)."""
    if isinstance(exc, (requests.Timeout, requests.ConnectionError)):
        return True
    if isinstance(exc, requests.HTTPError) and exc.response is not None:
        return exc.response.status_code in TRANSIENT_STATUS
    return False


def http_get_with_retry(
    url: str,
    params: Optional[dict] = None,
    headers: Optional[dict] = None,
    timeout: float = 30,
    max_retries: int = 3,
    retry_delay: float = 2.0,
    session: Optional[requests.Session] = None,
    logger: Optional[logging.Logger] = None,
) -> requests.Response:
    """
    HTTP GET with exponential backoff on transient failures.

    Retries on timeouts, connection errors and HTTP 429/5xx responses.
    Any other 4xx is raised immediately. Each retry waits
    retry_delay * 2^(attempt-1) seconds.

    Args:
        url:         Target URL.
        params:      Query parameters dict.
        headers:     HTTP headers dict.
        timeout:     Per-request timeout in seconds.
        max_retries: Maximum number of attempts.
        retry_delay: Base delay in seconds between retries.
        session:     Session to send through (a fresh one is built if None).
        logger:      Logger instance (uses module logger if None).

    Returns:
        requests.Response with 2xx status.

    Raises:
        requests.RequestException: on a non-transient failure, or the last
        transient failure once all attempts are used.
    """
    log = logger or logging.getLogger(__name__)
    session = session or build_session()
    attempts = max(1, max_retries)

    last_exc: Optional[Exception] = None

    for attempt in range(1, attempts + 1):
        try:
            resp = session.get(url, params=params, headers=headers, timeout=timeout)
            resp.raise_for_status()
            return resp
        except requests.RequestException as exc:
            if not is_transient(exc):
                raise
            last_exc = exc
            if attempt == attempts:
                break
            wait = retry_delay * (2 ** (attempt - 1))
            log.warning(
                f"HTTP GET attempt {attempt}/{attempts} failed ({exc}). "
                f"Retrying in {wait:.1f}s — {url}"
            )
            time.sleep(wait)

    log.error(f"HTTP GET failed after {attempts} attempts: {url} — {last_exc}")
    raise last_exc  # type: ignore[misc]


# ---------------------------------------------------------------------------
# JSON persistence
# ---------------------------------------------------------------------------

def load_json(path: Path, logger: Optional[logging.Logger] = None) -> dict:
    """
    Load JSON from a file. Returns empty dict on missing file or parse error.
    """
    log = logger or logging.getLogger(__name__)
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        return {}
    except json.JSONDecodeError as exc:
        log.warning(f"JSON parse error in {path}: {exc}. Returning empty dict.")
        return {}
    if not isinstance(data, dict):
        log.warning(f"Expected a JSON object in {path}, got {type(data).__name__}. Ignoring.")
        return {}
    return data


def save_json(data: Any, path: Path, logger: Optional[logging.Logger] = None) -> None:
    """
    Atomically write data as pretty-printed JSON.

    Writes to a .tmp file first, flushes it to disk, then renames it over
    the target path. A crash mid-write leaves the previous file intact.
    """
    log = logger or logging.getLogger(__name__)
    path = Path(path)
    ensure_dir(path.parent)

    tmp_path = path.with_suffix(path.suffix + ".tmp")
    try:
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.write("\n")
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except Exception as exc:
        log.error(f"Failed to save JSON to {path}: {exc}")
        if tmp_path.exists():
            tmp_path.unlink(missing_ok=True)
        raise


# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------

def ensure_dir(path: Path) -> None:
    """Create directory (and all parents) if it doesn't already exist."""
    Path(path).mkdir(parents=True, exist_ok=True)
