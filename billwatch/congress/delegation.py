"""
delegation.py — Flag sponsors/cosponsors who belong to a state delegation.

Matching, strongest first:
  1. state code      person["state"] == roster.state          source="primary"
  2. surname         roster surname appears in the name         source="surname"
                     (only for people with no state code; low confidence:
                     "Smith" also matches every other Smith in Congress)
  3. secondary page  names scraped from the public congress.gov
                     cosponsors page                            source="secondary"
                     (only when 1+2 found zero cosponsors)

apply_delegation_flags() never mutates its input record.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

import requests
from bs4 import BeautifulSoup

from billwatch.congress.chambers import BillIdentity
from billwatch.congress.normalize import PUBLIC_BILL_URL
from billwatch.shared.utils import http_get_with_retry

log = logging.getLogger(__name__)

SOURCE_PRIMARY = "primary"
SOURCE_SURNAME = "surname"
SOURCE_SECONDARY = "secondary"

# Given a bill, return candidate display names already scoped to the delegation.
SecondarySource = Callable[[BillIdentity], list]

_BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/121.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}


# ===========================================================================
# Roster
# ===========================================================================

@dataclass(frozen=True)
class DelegationRoster:
    state: str
    surnames: tuple = ()

    @classmethod
    def from_config(cls, cfg: dict) -> "DelegationRoster":
        return cls(
            state=str(cfg.get("state", "")).strip().upper(),
            surnames=tuple(s for s in cfg.get("surnames", []) if s),
        )

    def matches_name(self, name: str) -> bool:
        return bool(name) and any(surname in name for surname in self.surnames)

    def classify(self, person: Optional[dict]) -> Optional[str]:
        """Return the match source for a person, or None if not in the delegation."""
        if not person:
            return None
        state = (person.get("state") or "").upper()
        if state:
            return SOURCE_PRIMARY if state == self.state else None
        if self.matches_name(person.get("lastName") or person.get("fullName") or ""):
            log.warning(
                f"Surname-only delegation match for '{person.get('fullName')}' "
                f"(no state code) — low confidence"
            )
            return SOURCE_SURNAME
        return None


def _tagged(person: dict, source: str) -> dict:
    return {**person, "source": source}


def _secondary_person(name: str) -> dict:
    return {
        "bioguideId": "",
        "firstName": "",
        "lastName": "",
        "middleName": "",
        "fullName": name,
        "party": "",
        "state": "",
        "district": None,
        "isOriginalCosponsor": None,
        "sponsorshipDate": None,
        "profileUrl": "",
        "source": SOURCE_SECONDARY,
    }


# ===========================================================================
# Flagging
# ===========================================================================

def apply_delegation_flags(
    record: dict,
    roster: DelegationRoster,
    secondary: Optional[SecondarySource] = None,
) -> dict:
    """
    Return a copy of record with the target* delegation fields filled in.

    The secondary source is consulted only when no cosponsor matched by
    state code or surname. A failing secondary source is logged and the
    primary (empty) result is kept.
    """
    out = copy.deepcopy(record)

    sponsor_source = roster.classify(out.get("sponsor"))
    target_sponsor = _tagged(out["sponsor"], sponsor_source) if sponsor_source else None

    targets = []
    for person in out.get("cosponsors", []):
        source = roster.classify(person)
        if source:
            targets.append(_tagged(person, source))

    if not targets and secondary is not None:
        identity = BillIdentity(chamber=out["chamber"], number=int(out["number"]))
        try:
            names = secondary(identity) or []
        except Exception as exc:
            log.warning(f"{out['id']}: secondary cosponsor source failed: {exc}")
            names = []
        if names:
            log.info(
                f"{out['id']}: primary source found no delegation cosponsors; "
                f"secondary source supplied {len(names)}"
            )
            targets = [_secondary_person(n) for n in names]

    out["hasTargetSponsor"] = target_sponsor is not None
    out["targetSponsor"] = target_sponsor
    out["targetCosponsors"] = targets
    out["targetCosponsorCount"] = len(targets)
    return out


# ===========================================================================
# Secondary source: public congress.gov cosponsors page
# ===========================================================================

def parse_cosponsor_page(html: str) -> tuple[list[str], bool]:
    """
    Extract cosponsor display names from one congress.gov cosponsors page.

    Returns (names, has_next_page). Parsing is defensive: an unexpected
    layout yields ([], False).
    """
    soup = BeautifulSoup(html, "lxml")

    rows = soup.select("table.item_table tbody tr, table.item-table tbody tr")
    if not rows:
        rows = soup.select("table tbody tr")

    names: list[str] = []
    for row in rows:
        cell = row.find("td")
        link = cell.find("a") if cell else None
        name = (link or cell).get_text(" ", strip=True) if cell else ""
        if name:
            names.append(name)

    has_next = bool(
        soup.select_one('a[aria-label="Next"], a.next')
        or soup.find("a", string=lambda s: s and s.strip().lower() == "next")
    )
    return names, has_next


class CosponsorPageScraper:
    """
    Secondary source: scrape cosponsor names from the public bill page and
    keep the ones containing a delegation surname.

    Names come back without state codes; they are trusted as delegation
    members because the surname filter already scoped them.
    """

    def __init__(
        self,
        roster: DelegationRoster,
        congress: int = 119,
        timeout: float = 30,
        max_retries: int = 2,
        retry_delay: float = 2.0,
        max_pages: int = 5,
        session: Optional[requests.Session] = None,
    ):
        self.roster = roster
        self.congress = congress
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.max_pages = max_pages
        self.session = session

    def page_url(self, identity: BillIdentity) -> str:
        base = PUBLIC_BILL_URL.format(
            congress=self.congress, slug=identity.public_slug, number=identity.number
        )
        return f"{base}/cosponsors"

    def __call__(self, identity: BillIdentity) -> list[str]:
        return self.fetch_names(identity)

    def fetch_names(self, identity: BillIdentity) -> list[str]:
        url = self.page_url(identity)
        scraped: list[str] = []

        for page in range(1, self.max_pages + 1):
            resp = http_get_with_retry(
                url,
                params={"page": page} if page > 1 else None,
                headers=_BROWSER_HEADERS,
                timeout=self.timeout,
                max_retries=self.max_retries,
                retry_delay=self.retry_delay,
                session=self.session,
                logger=log,
            )
            names, has_next = parse_cosponsor_page(resp.text)
            if not names:
                break
            scraped.extend(names)
            if not has_next:
                break

        matches = _unique(n for n in scraped if self.roster.matches_name(n))
        log.debug(
            f"{identity.id}: cosponsors page listed {len(scraped)} names, "
            f"{len(matches)} match the delegation"
        )
        return matches


def _unique(names: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    out = []
    for name in names:
        if name not in seen:
            seen.add(name)
            out.append(name)
    return out
