"""
congress_client.py — Congress.gov API v3 reads for a single bill.

    fetch_base_metadata(identity)   GET /bill/{congress}/{type}/{number}
    fetch_all_cosponsors(identity)  GET .../cosponsors?offset=N&limit=L  (paged)
    fetch_actions(identity)         GET .../actions?offset=N&limit=L     (paged)

API docs: https://api.congress.gov/  (key from https://api.data.gov/signup/)

Paging stops at whichever comes first:
  1. no pagination.next link, or offset reached pagination.count
  2. a page with no new items (upstream repeating itself)
  3. max_pages requests
A page that still fails after retries ends the sequence; the items
collected so far are returned. Pages are requested one after another,
never in parallel, and their items keep upstream order.
"""

from __future__ import annotations

import logging
from typing import Callable, Hashable, Optional

import requests

from billwatch.congress.chambers import BillIdentity
from billwatch.congress.errors import FetchFailure, ParseFailure
from billwatch.congress.normalize import extract_action_list, extract_cosponsor_list
from billwatch.shared.utils import build_session, http_get_with_retry

API_BASE_URL = "https://api.congress.gov/v3"
DEFAULT_PAGE_SIZE = 250   # API maximum
DEFAULT_MAX_PAGES = 200

log = logging.getLogger(__name__)


# Two entries with the same date, code, source and text are one upstream action.
def _action_key(action: dict) -> tuple:
    source = action.get("sourceSystem") if isinstance(action.get("sourceSystem"), dict) else {}
    return (
        action.get("actionDate"),
        action.get("actionCode"),
        source.get("code"),
        action.get("text"),
    )


class CongressClient:
    """Thin Congress.gov reader. One instance is shared by all worker threads."""

    def __init__(
        self,
        api_key: str,
        congress: int = 119,
        timeout: float = 30,
        max_retries: int = 3,
        retry_delay: float = 2.0,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_pages: int = DEFAULT_MAX_PAGES,
        session: Optional[requests.Session] = None,
        base_url: str = API_BASE_URL,
    ):
        self.api_key = api_key
        self.congress = int(congress)
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.page_size = page_size
        self.max_pages = max_pages
        self.base_url = base_url.rstrip("/")
        self.session = session or build_session(headers={"Accept": "application/json"})

    @classmethod
    def from_config(
        cls,
        config: dict,
        api_key: str,
        session: Optional[requests.Session] = None,
    ) -> "CongressClient":
        http_cfg = config.get("http", {})
        paging = config.get("pagination", {})
        return cls(
            api_key=api_key,
            congress=config.get("congress", 119),
            timeout=http_cfg.get("timeout", 30),
            max_retries=http_cfg.get("max_retries", 3),
            retry_delay=http_cfg.get("retry_delay", 2.0),
            page_size=paging.get("page_size", DEFAULT_PAGE_SIZE),
            max_pages=paging.get("max_pages", DEFAULT_MAX_PAGES),
            session=session,
        )

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def bill_url(self, identity: BillIdentity) -> str:
        return f"{self.base_url}/bill/{self.congress}/{identity.chamber}/{identity.number}"

    def _get_json(self, url: str, params: Optional[dict] = None) -> dict:
        """GET one JSON document, translating every failure into FetchFailure."""
        query = {"api_key": self.api_key, "format": "json", **(params or {})}
        try:
            resp = http_get_with_retry(
                url,
                params=query,
                timeout=self.timeout,
                max_retries=self.max_retries,
                retry_delay=self.retry_delay,
                session=self.session,
                logger=log,
            )
        except requests.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else None
            raise FetchFailure(url, status_code=status) from exc
        except requests.RequestException as exc:
            raise FetchFailure(url, transport_error=exc) from exc

        try:
            data = resp.json()
        except ValueError as exc:
            raise ParseFailure(url, str(exc)) from exc
        if not isinstance(data, dict):
            raise ParseFailure(url, f"expected an object, got {type(data).__name__}")
        return data

    def fetch_base_metadata(self, identity: BillIdentity) -> dict:
        """Return the raw {"bill": {...}} envelope. Raises FetchFailure / ParseFailure."""
        url = self.bill_url(identity)
        data = self._get_json(url)
        if not isinstance(data.get("bill"), dict):
            raise ParseFailure(url, "response has no 'bill' object")
        return data

    def fetch_all_cosponsors(self, identity: BillIdentity) -> list[dict]:
        return self._paginate(
            identity,
            f"{self.bill_url(identity)}/cosponsors",
            extract_cosponsor_list,
            key=lambda c: c.get("bioguideId") or None,
            what="cosponsors",
        )

    def fetch_actions(self, identity: BillIdentity) -> list[dict]:
        return self._paginate(
            identity,
            f"{self.bill_url(identity)}/actions",
            extract_action_list,
            key=_action_key,
            what="actions",
        )

    # ------------------------------------------------------------------
    # Pagination
    # ------------------------------------------------------------------

    def _paginate(
        self,
        identity: BillIdentity,
        url: str,
        extract: Callable[[dict], list],
        key: Callable[[dict], Optional[Hashable]],
        what: str,
    ) -> list[dict]:
        items: list[dict] = []
        seen: set = set()
        offset = 0

        for page in range(1, self.max_pages + 1):
            try:
                data = self._get_json(url, {"offset": offset, "limit": self.page_size})
            except FetchFailure as exc:
                log.warning(
                    f"{identity.id}: {what} page {page} failed ({exc}) — "
                    f"keeping {len(items)} collected so far"
                )
                return items

            page_items = extract(data)
            new_items = []
            for item in page_items:
                k = key(item)
                if k is not None:
                    if k in seen:
                        continue
                    seen.add(k)
                new_items.append(item)

            if not new_items:
                log.debug(f"{identity.id}: {what} page {page} had no new items — done")
                return items
            items.extend(new_items)
            offset += len(page_items)

            pagination = data.get("pagination") if isinstance(data.get("pagination"), dict) else {}
            total = pagination.get("count")
            if not pagination.get("next"):
                return items
            if isinstance(total, int) and offset >= total:
                return items

        log.warning(
            f"{identity.id}: {what} stopped at the {self.max_pages}-page ceiling "
            f"with {len(items)} items"
        )
        return items
