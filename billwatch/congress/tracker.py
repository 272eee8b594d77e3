#!/usr/bin/env python3
"""
Congress Delegation Bill Tracker
================================
Follows a fixed list of House and Senate bills on Congress.gov and flags
which of them a state's congressional delegation sponsors or cosponsors.

Pipeline:  resolve → fetch → normalize → flag delegation → diff → store

Data sources:
  1. Congress.gov API v3   (primary)   — bill metadata, cosponsors, actions
     https://api.congress.gov
  2. congress.gov web page (secondary) — cosponsor names, only consulted
     when the API shows no delegation cosponsors for a bill

Output:
  data/bills.json     snapshot: bill id → canonical record
  data/changes.json   ids that changed since the previous run + run counts

Usage:
    python -m billwatch.congress.tracker
    python -m billwatch.congress.tracker --dry-run
    python -m billwatch.congress.tracker --workers 2
    python -m billwatch.congress.tracker --config path/to/config.yaml

Environment variables:
    CONGRESS_API_KEY     Free key from https://api.data.gov/signup/

    Credentials can be stored in a .env file at the project root.
"""

from __future__ import annotations

import argparse
import os
import sys
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv

from billwatch.congress.chambers import resolve_identity
from billwatch.congress.congress_client import CongressClient
from billwatch.congress.delegation import (
    CosponsorPageScraper,
    DelegationRoster,
    SecondarySource,
    apply_delegation_flags,
)
from billwatch.congress.errors import ConfigurationError, PersistFailure, TrackerError
from billwatch.congress.normalize import normalize_bill
from billwatch.congress.snapshot import (
    diff_snapshots,
    load_snapshot,
    order_ids,
    persist_changes,
    persist_snapshot,
)
from billwatch.shared.utils import ensure_dir, setup_logging

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
DEFAULT_CONFIG = Path(__file__).parent / "config.yaml"
DEFAULT_MAX_WORKERS = 4

load_dotenv(PROJECT_ROOT / ".env")


def _dedupe_key(number):
    """467, "467" and "0467" are one bill; unparseable entries stay distinct."""
    try:
        return int(str(number).strip())
    except (TypeError, ValueError):
        return str(number).strip()


@dataclass
class RunResult:
    snapshot: dict
    changed: list
    failures: dict = field(default_factory=dict)   # label → "Kind: message"

    @property
    def succeeded(self) -> int:
        return len(self.snapshot)

    @property
    def skipped(self) -> int:
        return len(self.failures)


# ===========================================================================
# DelegationTracker
# ===========================================================================

class DelegationTracker:
    """
    Bill synchronization pipeline.

      Stage 1 — fetch:  For each configured bill: resolve its chamber, pull
                        metadata, cosponsors and actions, normalize, flag
                        delegation members. Bills run on a bounded worker
                        pool; a failing bill is logged and left out.
      Stage 2 — diff:   Compare against the previous snapshot by value.
      Stage 3 — store:  Atomically write the snapshot and the change list.

    Safe to run repeatedly; an unchanged upstream yields an empty change list.
    """

    def __init__(
        self,
        config_path: Path = DEFAULT_CONFIG,
        config: Optional[dict] = None,
        client: Optional[CongressClient] = None,
        secondary: Optional[SecondarySource] = None,
        api_key: Optional[str] = None,
    ):
        self.config = config if config is not None else self._load_config(config_path)
        self._setup_paths()
        log_cfg = self.config.get("logging", {})
        self.logger = setup_logging(
            name="billwatch",
            level=log_cfg.get("level", "INFO"),
            log_file=self._log_file,
        )

        bills = self.config.get("bills", {})
        self.house_bills: list = list(bills.get("house") or [])
        self.senate_bills: list = list(bills.get("senate") or [])
        self.congress = int(self.config.get("congress", 119))
        self.max_workers = max(
            1, int(self.config.get("concurrency", {}).get("max_workers", DEFAULT_MAX_WORKERS))
        )
        self.roster = DelegationRoster.from_config(self.config.get("delegation", {}))

        self.client = client or CongressClient.from_config(
            self.config, api_key=self._api_key(api_key)
        )
        self.secondary = secondary if secondary is not None else self._default_secondary()

    # -----------------------------------------------------------------------
    # Setup
    # -----------------------------------------------------------------------

    def _load_config(self, config_path: Path) -> dict:
        """Load and return YAML configuration."""
        with open(config_path, encoding="utf-8") as f:
            return yaml.safe_load(f) or {}

    def _resolve_path(self, value: str) -> Path:
        p = Path(value)
        return p if p.is_absolute() else PROJECT_ROOT / p

    def _setup_paths(self) -> None:
        """Resolve output paths relative to project root; create directories."""
        paths = self.config.get("paths", {})
        self.snapshot_path = self._resolve_path(paths.get("snapshot_file", "data/bills.json"))
        self.changes_path = self._resolve_path(paths.get("changes_file", "data/changes.json"))

        log_file = self.config.get("logging", {}).get("file")
        self._log_file: Optional[Path] = self._resolve_path(log_file) if log_file else None

        ensure_dir(self.snapshot_path.parent)
        ensure_dir(self.changes_path.parent)

    def _api_key(self, explicit: Optional[str]) -> str:
        data_source = self.config.get("data_source") or {}
        key = str(
            explicit
            or os.environ.get("CONGRESS_API_KEY")
            or data_source.get("congress_api_key")
            or ""
        ).strip()
        if not key:
            raise ConfigurationError(
                "No CONGRESS_API_KEY set. Get a free key at https://api.data.gov/signup/"
            )
        return key

    def _default_secondary(self) -> Optional[SecondarySource]:
        cfg = self.config.get("secondary", {})
        if not cfg.get("enabled", True):
            return None
        http_cfg = self.config.get("http", {})
        return CosponsorPageScraper(
            self.roster,
            congress=self.congress,
            timeout=http_cfg.get("timeout", 30),
            max_retries=cfg.get("max_retries", 2),
            retry_delay=http_cfg.get("retry_delay", 2.0),
            max_pages=cfg.get("max_pages", 5),
        )

    def bill_order(self) -> list:
        """House list then senate list, configured order, each number once."""
        seen: set = set()
        order = []
        for number in [*self.house_bills, *self.senate_bills]:
            key = _dedupe_key(number)
            if key not in seen:
                seen.add(key)
                order.append(number)
        return order

    # -----------------------------------------------------------------------
    # Main entry point
    # -----------------------------------------------------------------------

    def run(self, dry_run: bool = False) -> RunResult:
        """
        Run the full pipeline and return what it produced.

        Only a PersistFailure escapes; every per-bill problem is logged and
        the bill is left out of the snapshot.
        """
        order = self.bill_order()
        self.logger.info("=" * 60)
        self.logger.info("Congress Delegation Tracker — pipeline start")
        self.logger.info(f"Timestamp  : {datetime.now().isoformat()}")
        self.logger.info(f"Bills      : {len(order)} (congress {self.congress})")
        self.logger.info(f"Delegation : {self.roster.state}")
        self.logger.info(f"Snapshot   : {self.snapshot_path}")

        # ------------------------------------------------------------------
        # Stage 1: Fetch
        # ------------------------------------------------------------------
        current, failures, processed_ids = self._fetch_all(order)
        self.logger.info(
            f"Stage 1 complete — succeeded: {len(current)}, skipped: {len(failures)}"
        )

        # ------------------------------------------------------------------
        # Stage 2: Diff
        # ------------------------------------------------------------------
        previous = load_snapshot(self.snapshot_path)
        changed = order_ids(diff_snapshots(previous, current), processed_ids)
        for bill_id in changed:
            tag = "[CHANGED]" if bill_id in previous else "[NEW]    "
            self.logger.info(f"{tag} {bill_id}: {current[bill_id].get('title', '')[:70]}")
        self.logger.info(f"Stage 2 complete — changed: {len(changed)}")

        result = RunResult(snapshot=current, changed=changed, failures=failures)

        # ------------------------------------------------------------------
        # Stage 3: Store
        # ------------------------------------------------------------------
        if dry_run:
            self.logger.info("Dry run — snapshot not written")
        else:
            # Snapshot last: a failed write leaves bills.json at the previous run.
            persist_changes(
                changed,
                {
                    "succeeded": result.succeeded,
                    "skipped": result.skipped,
                    "failures": failures,
                },
                self.changes_path,
            )
            persist_snapshot(current, self.snapshot_path)
            self.logger.info("Stage 3 complete — snapshot persisted")

        self.logger.info("=" * 60)
        self._print_summary(result, dry_run)
        return result

    # -----------------------------------------------------------------------
    # Stage 1: Fetch
    # -----------------------------------------------------------------------

    def _fetch_all(self, order: list) -> tuple[dict, dict, list]:
        """
        Process every bill on a bounded pool.

        Workers return their record; only this thread writes the snapshot
        dict. Returns (snapshot, failures, ids in processing order).
        """
        current: dict = {}
        failures: dict = {}
        outcomes: dict = {}

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            futures = {pool.submit(self._process_safely, n): i for i, n in enumerate(order)}
            for future in as_completed(futures):
                outcomes[futures[future]] = future.result()

        processed_ids = []
        for i in range(len(order)):
            label, record, error = outcomes[i]
            if record is None:
                failures[label] = error
                continue
            current[record["id"]] = record
            processed_ids.append(record["id"])
        return current, failures, processed_ids

    def _process_safely(self, number) -> tuple[str, Optional[dict], Optional[str]]:
        """Per-bill isolation boundary: never raises."""
        label = str(number)
        try:
            identity = resolve_identity(number, self.house_bills, self.senate_bills)
            label = identity.id
            return label, self.process_bill(identity), None
        except TrackerError as exc:
            error = f"{type(exc).__name__}: {exc}"
            self.logger.warning(f"[FAILED]  {label}: {error}")
        except Exception as exc:
            error = f"{type(exc).__name__}: {exc}"
            self.logger.error(f"[FAILED]  {label}: {error}", exc_info=True)
        return label, None, error

    def process_bill(self, identity) -> dict:
        """Fetch, normalize and flag one bill. Raises on metadata failure."""
        self.logger.debug(f"Checking {identity.label}")
        raw = self.client.fetch_base_metadata(identity)
        cosponsors = self.client.fetch_all_cosponsors(identity)
        actions = self.client.fetch_actions(identity)

        record = normalize_bill(raw, cosponsors, identity, actions=actions, congress=self.congress)
        record = apply_delegation_flags(record, self.roster, self.secondary)

        self.logger.info(
            f"{identity.label}: {record['step']} | cosponsors {record['cosponsorCount']} | "
            f"{self.roster.state} sponsor: {'YES' if record['hasTargetSponsor'] else 'NO'}, "
            f"{self.roster.state} cosponsors: {record['targetCosponsorCount']}"
        )
        return record

    # -----------------------------------------------------------------------
    # Reporting
    # -----------------------------------------------------------------------

    def _print_summary(self, result: RunResult, dry_run: bool) -> None:
        print(f"\n{'=' * 55}")
        print("  Congress Delegation Tracker — run complete")
        print(f"{'=' * 55}")
        print(f"  Succeeded : {result.succeeded}")
        print(f"  Skipped   : {result.skipped}")
        print(f"  Changed   : {len(result.changed)}")
        if result.changed:
            print(f"  Changed ids: {', '.join(result.changed)}")
        if not dry_run:
            print(f"  Snapshot  : {self.snapshot_path}")
            print(f"  Changes   : {self.changes_path}")
        print(f"{'=' * 55}\n")


# ===========================================================================
# CLI entry point
# ===========================================================================

def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(
        description=(
            "Congress Delegation Tracker — tracks configured bills on Congress.gov "
            "and flags state-delegation sponsors and cosponsors."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
examples:
  python -m billwatch.congress.tracker
  python -m billwatch.congress.tracker --dry-run
  python -m billwatch.congress.tracker --config billwatch/congress/config.yaml

environment variables:
  CONGRESS_API_KEY   Free API key from https://api.data.gov/signup/
        """,
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG,
        help=f"Path to config YAML file (default: {DEFAULT_CONFIG})",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Fetch and diff but do not write the snapshot or change list",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Override concurrency.max_workers from the config",
    )
    args = parser.parse_args(argv)

    try:
        tracker = DelegationTracker(config_path=args.config)
        if args.workers:
            tracker.max_workers = max(1, args.workers)
        tracker.run(dry_run=args.dry_run)
    except PersistFailure as exc:
        print(
            f"ERROR: could not write {exc.path}: {exc.cause} (previous snapshot kept)",
            file=sys.stderr,
        )
        return 1
    except ConfigurationError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
