"""
normalize.py — Map raw Congress.gov payloads to the canonical bill record.

The canonical record is a plain JSON-ready dict shared by the snapshot file
and every downstream consumer:

    id                    str   "hr467" / "s275"
    chamber               str   "hr" | "s"
    number                int   467
    label                 str   "HR. 467"
    title                 str   Official title
    latestAction          str   Text of the most recent action
    actionDate            str   Date of the most recent action (ISO) or None
    legislationUrl        str   Public congress.gov page
    updatedDate           str   Upstream updateDate (not the retrieval time)
    step                  str   Introduced | Passed House | Passed Senate |
                                To President | Became Law
    sponsor               dict  Person or None
    cosponsors            list  [Person, ...] in upstream page order
    cosponsorCount        int   len(cosponsors)
    stageDates            dict  {introduced, passedHouse, passedSenate,
                                 toPresident, becameLaw}
    committeeActions      list  [{text, actionDate}, ...]
    hasTargetSponsor      bool  ┐
    targetSponsor         dict  │ filled in by delegation.apply_delegation_flags();
    targetCosponsors      list  │ empty until then
    targetCosponsorCount  int   ┘

Upstream envelopes are inconsistent, so every list is found by probing a
few known locations. An unrecognized shape yields an empty list, never an
exception.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Iterable, Optional

from billwatch.congress.chambers import BillIdentity

log = logging.getLogger(__name__)

PUBLIC_BILL_URL = "https://www.congress.gov/bill/{congress}th-congress/{slug}/{number}"

STEP_INTRODUCED = "Introduced"
STEP_PASSED_HOUSE = "Passed House"
STEP_PASSED_SENATE = "Passed Senate"
STEP_TO_PRESIDENT = "To President"
STEP_BECAME_LAW = "Became Law"

# Most advanced stage first; the first matching phrase wins.
_STEP_RULES = [
    (("became law", "became public law"), STEP_BECAME_LAW),
    (("president",), STEP_TO_PRESIDENT),
    (("passed senate",), STEP_PASSED_SENATE),
    (("passed house",), STEP_PASSED_HOUSE),
]

# Where the cosponsor list has been observed in upstream responses.
_COSPONSOR_PATHS = [
    ("cosponsors",),
    ("bill", "cosponsors"),
    ("cosponsors", "item"),
    ("items",),
]

_ACTION_PATHS = [
    ("actions",),
    ("actions", "actions"),
    ("actions", "item"),
    ("bill", "actions"),
]

_COMMITTEE_RE = re.compile(r"committee|subcommittee", re.IGNORECASE)

# "Rep. Smith, Adam [D-WA-9]" / "Sen. Murray, Patty [D-WA]"
_MEMBER_TAG_RE = re.compile(r"\[([A-Z]{1,2})-([A-Z]{2})(?:-(\d+|At Large))?\]")


# ---------------------------------------------------------------------------
# Envelope probing
# ---------------------------------------------------------------------------

def _dig(payload: Any, path: tuple) -> Any:
    node = payload
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def _first_list(payload: Any, paths: list[tuple], what: str) -> list:
    if isinstance(payload, list):
        return payload
    if not isinstance(payload, dict):
        return []
    for path in paths:
        found = _dig(payload, path)
        if isinstance(found, list) and found:
            return found
    if not any(isinstance(_dig(payload, p), list) for p in paths):
        log.debug(f"No {what} list found in payload with keys {sorted(payload)}")
    return []


def extract_cosponsor_list(payload: Any) -> list[dict]:
    """Return the raw cosponsor entries from any known envelope shape."""
    return [c for c in _first_list(payload, _COSPONSOR_PATHS, "cosponsor") if isinstance(c, dict)]


def extract_action_list(payload: Any) -> list[dict]:
    """Return the raw action entries from any known envelope shape."""
    return [a for a in _first_list(payload, _ACTION_PATHS, "action") if isinstance(a, dict)]


def unwrap_bill(raw: Any) -> dict:
    """Accept either the API envelope {"bill": {...}} or the bill object itself."""
    if isinstance(raw, dict) and isinstance(raw.get("bill"), dict):
        return raw["bill"]
    return raw if isinstance(raw, dict) else {}


# ---------------------------------------------------------------------------
# People
# ---------------------------------------------------------------------------

def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _int_or_none(value: Any) -> Optional[int]:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def normalize_person(raw: Any, cosponsor: bool = True) -> Optional[dict]:
    """
    Map a sponsor/cosponsor entry to the Person shape.

    Every key is always present. Returns None when the entry carries
    neither a name nor a bioguide id nor a state, since nothing downstream
    could identify it.
    """
    if not isinstance(raw, dict):
        return None

    first = _text(raw.get("firstName"))
    middle = _text(raw.get("middleName"))
    last = _text(raw.get("lastName"))
    full = _text(raw.get("fullName") or raw.get("name"))
    if not full:
        full = " ".join(p for p in (first, middle, last) if p)

    state = _text(raw.get("state") or raw.get("stateCode")).upper()
    if not (full or raw.get("bioguideId") or state):
        return None
    district = _int_or_none(raw.get("district"))
    party = _text(raw.get("party") or raw.get("partyName"))

    tag = _MEMBER_TAG_RE.search(full)
    if tag:
        party = party or tag.group(1)
        state = state or tag.group(2)
        if district is None:
            district = _int_or_none(tag.group(3))

    return {
        "bioguideId": _text(raw.get("bioguideId")),
        "firstName": first,
        "lastName": last,
        "middleName": middle,
        "fullName": full,
        "party": party,
        "state": state,
        "district": district,
        "isOriginalCosponsor": bool(raw.get("isOriginalCosponsor")) if cosponsor else None,
        "sponsorshipDate": (raw.get("sponsorshipDate") or None) if cosponsor else None,
        "profileUrl": _text(raw.get("url") or raw.get("profileUrl") or raw.get("memberUrl")),
    }


def normalize_people(raw_list: Iterable) -> list[dict]:
    people = []
    for raw in raw_list:
        person = normalize_person(raw, cosponsor=True)
        if person is None:
            log.debug(f"Dropping unidentifiable cosponsor entry: {raw!r}")
            continue
        people.append(person)
    return people


# ---------------------------------------------------------------------------
# Stage + committee derivation
# ---------------------------------------------------------------------------

def derive_step(latest_action: str) -> str:
    """Most advanced stage evidenced by the latest-action text."""
    text = (latest_action or "").lower()
    for phrases, step in _STEP_RULES:
        if any(p in text for p in phrases):
            return step
    return STEP_INTRODUCED


def _passed(text: str, chamber: str) -> bool:
    return ("passed" in text or "on passage" in text) and chamber in text


_STAGE_PREDICATES = [
    ("introduced", lambda t: "introduced" in t),
    ("passedHouse", lambda t: _passed(t, "house")),
    ("passedSenate", lambda t: _passed(t, "senate")),
    ("toPresident", lambda t: "presented to president" in t or "sent to the president" in t),
    ("becameLaw", lambda t: "became public law" in t or "signed into law" in t),
]


def extract_stage_dates(actions: list[dict]) -> dict:
    """
    For each stage, the date of the first action (upstream order) whose
    text matches that stage. Stages with no evidence are None.
    """
    dates: dict[str, Optional[str]] = {stage: None for stage, _ in _STAGE_PREDICATES}
    for action in actions:
        text = _text(action.get("text")).lower()
        if not text:
            continue
        for stage, matches in _STAGE_PREDICATES:
            if dates[stage] is None and matches(text):
                dates[stage] = action.get("actionDate") or None
    return dates


def extract_committee_actions(actions: list[dict]) -> list[dict]:
    # TODO: separate referrals ("Referred to the Committee on ...") from
    # markup/report actions once the action "type" field is mapped.
    return [
        {"text": _text(a.get("text")), "actionDate": a.get("actionDate") or None}
        for a in actions
        if _COMMITTEE_RE.search(_text(a.get("text")))
    ]


# ---------------------------------------------------------------------------
# Record
# ---------------------------------------------------------------------------

def _legislation_url(bill: dict, identity: BillIdentity, congress: int) -> str:
    urls = bill.get("urls") if isinstance(bill.get("urls"), dict) else {}
    return (
        _text(bill.get("legislationUrl"))
        or _text(urls.get("congressURL"))
        or PUBLIC_BILL_URL.format(
            congress=congress, slug=identity.public_slug, number=identity.number
        )
    )


def normalize_bill(
    raw_bill: Any,
    raw_cosponsors: Any,
    identity: BillIdentity,
    actions: Optional[list] = None,
    congress: int = 119,
) -> dict:
    """
    Build the canonical record for one bill.

    Args:
        raw_bill:       Base metadata payload (envelope or bill object).
        raw_cosponsors: Cosponsor entries as a list, or any cosponsor envelope.
        identity:       Resolved chamber + number.
        actions:        Full action history, upstream order. Falls back to
                        an inline bill.actions list when None or empty.
        congress:       Congress number, used for the fallback public URL.
    """
    bill = unwrap_bill(raw_bill)

    cosponsors = normalize_people(extract_cosponsor_list(raw_cosponsors))

    sponsors = bill.get("sponsors")
    raw_sponsor = sponsors[0] if isinstance(sponsors, list) and sponsors else bill.get("sponsor")
    sponsor = normalize_person(raw_sponsor, cosponsor=False)

    latest = bill.get("latestAction") if isinstance(bill.get("latestAction"), dict) else {}
    latest_text = _text(latest.get("text"))

    history = actions if actions else extract_action_list(bill)
    stage_dates = extract_stage_dates(history)
    if stage_dates["introduced"] is None:
        stage_dates["introduced"] = bill.get("introducedDate") or None

    return {
        "id": identity.id,
        "chamber": identity.chamber,
        "number": identity.number,
        "label": identity.label,
        "title": _text(bill.get("title")),
        "latestAction": latest_text,
        "actionDate": latest.get("actionDate") or None,
        "legislationUrl": _legislation_url(bill, identity, congress),
        "updatedDate": bill.get("updateDate") or bill.get("updateDateIncludingText") or None,
        "step": derive_step(latest_text),
        "sponsor": sponsor,
        "cosponsors": cosponsors,
        "cosponsorCount": len(cosponsors),
        "stageDates": stage_dates,
        "committeeActions": extract_committee_actions(history),
        "hasTargetSponsor": False,
        "targetSponsor": None,
        "targetCosponsors": [],
        "targetCosponsorCount": 0,
    }
