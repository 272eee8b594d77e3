"""
chambers.py — Map configured bill numbers to their originating chamber.

Bill numbers are configured as two lists (house, senate). A number that
appears in both lists resolves to the Senate: this is a silent tie-break
for a malformed config, not an error, and is logged at WARNING.
A number in neither list raises ConfigurationError.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from billwatch.congress.errors import ConfigurationError

log = logging.getLogger(__name__)

HOUSE = "hr"
SENATE = "s"

# Path segment used by congress.gov for public bill pages
_PUBLIC_SLUG = {HOUSE: "house-bill", SENATE: "senate-bill"}


@dataclass(frozen=True)
class BillIdentity:
    chamber: str
    number: int

    @property
    def id(self) -> str:
        """Snapshot key, e.g. "hr467" or "s275"."""
        return f"{self.chamber}{self.number}"

    @property
    def label(self) -> str:
        return f"{self.chamber.upper()}. {self.number}"

    @property
    def public_slug(self) -> str:
        return _PUBLIC_SLUG[self.chamber]


def _as_number(value) -> int:
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        raise ConfigurationError(f"Bill number {value!r} is not an integer") from None
    if number <= 0:
        raise ConfigurationError(f"Bill number {value!r} must be positive")
    return number


def resolve_chamber(number, house_bills: Iterable, senate_bills: Iterable) -> str:
    """Return "s" or "hr" for a configured bill number.

    Senate membership takes priority when the number is in both lists.
    """
    n = _as_number(number)
    in_house = n in {_as_number(b) for b in house_bills}
    in_senate = n in {_as_number(b) for b in senate_bills}

    if in_senate:
        if in_house:
            log.warning(f"Bill {n} is listed for both chambers — resolving to Senate")
        return SENATE
    if in_house:
        return HOUSE
    raise ConfigurationError(f"Bill {n} is in neither the house nor the senate list")


def resolve_identity(number, house_bills: Iterable, senate_bills: Iterable) -> BillIdentity:
    return BillIdentity(
        chamber=resolve_chamber(number, house_bills, senate_bills),
        number=_as_number(number),
    )
