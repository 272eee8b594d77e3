"""
snapshot.py — Load, diff and persist the bill snapshot.

The snapshot file is one JSON object mapping bill id → canonical record.
It is the tracker's only persisted state, so every write is atomic: a
crash mid-write leaves the previous snapshot in place.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Iterable

from billwatch.congress.errors import PersistFailure
from billwatch.shared.utils import load_json, save_json

log = logging.getLogger(__name__)


def load_snapshot(path: Path) -> dict:
    """Previous snapshot, or {} when there is none (or it cannot be parsed)."""
    path = Path(path)
    if not path.exists():
        log.info(f"No previous snapshot at {path} — starting fresh")
        return {}
    data = load_json(path, logger=log)
    snapshot = {k: v for k, v in data.items() if isinstance(v, dict)}
    log.info(f"Loaded {len(snapshot)} records from {path.name}")
    return snapshot


def _canonical(record: dict) -> str:
    return json.dumps(record, sort_keys=True, ensure_ascii=False, separators=(",", ":"))


def diff_snapshots(previous: dict, current: dict) -> set[str]:
    """
    Ids in current that are new or whose record differs in any field.

    Comparison is full structural equality, so an upstream timestamp
    bump alone counts as a change.
    """
    changed = set()
    for bill_id, record in current.items():
        old = previous.get(bill_id)
        if old is None or _canonical(old) != _canonical(record):
            changed.add(bill_id)
    return changed


def order_ids(ids: Iterable[str], order: list[str]) -> list[str]:
    """Sort ids by their position in order; unknown ids go last, alphabetically."""
    rank = {bill_id: i for i, bill_id in enumerate(order)}
    return sorted(ids, key=lambda b: (rank.get(b, len(rank)), b))


def persist_snapshot(current: dict, path: Path) -> None:
    """Atomically write the full snapshot. Raises PersistFailure."""
    path = Path(path)
    ordered = {bill_id: current[bill_id] for bill_id in sorted(current)}
    try:
        save_json(ordered, path, logger=log)
    except (OSError, TypeError, ValueError) as exc:
        raise PersistFailure(path, exc) from exc
    log.info(f"Saved {len(current)} records → {path.name}")


def persist_changes(changed_ids: list[str], summary: dict, path: Path) -> None:
    """Atomically write the change report read alongside the snapshot."""
    path = Path(path)
    payload = {
        "generated_at": datetime.now().isoformat(timespec="seconds"),
        **summary,
        "changed": list(changed_ids),
    }
    try:
        save_json(payload, path, logger=log)
    except (OSError, TypeError, ValueError) as exc:
        raise PersistFailure(path, exc) from exc
