"""Tests: delegation.py — delegation flags, secondary fallback, page parsing."""
import copy

import pytest

from billwatch.congress.chambers import BillIdentity
from billwatch.congress.delegation import (
    SOURCE_PRIMARY,
    SOURCE_SECONDARY,
    SOURCE_SURNAME,
    CosponsorPageScraper,
    DelegationRoster,
    apply_delegation_flags,
    parse_cosponsor_page,
)
from billwatch.congress.normalize import normalize_bill

HR467 = BillIdentity(chamber="hr", number=467)
ROSTER = DelegationRoster(state="WA", surnames=("DelBene", "Jayapal", "Smith", "Murray"))

COSPONSORS_PAGE = "https://www.congress.gov/bill/119th-congress/house-bill/467/cosponsors"

PAGE_HTML = """
<html><body>
<table class="item_table">
  <thead><tr><th>Cosponsor</th><th>Date Cosponsored</th></tr></thead>
  <tbody>
    <tr><td><a href="/member/pramila-jayapal/J000298">Rep. Jayapal, Pramila [D-WA-7]*</a></td><td>01/16/2025</td></tr>
    <tr><td><a href="/member/jason-smith/S001195">Rep. Smith, Jason [R-MO-8]</a></td><td>02/03/2025</td></tr>
    <tr><td><a href="/member/ro-khanna/K000389">Rep. Khanna, Ro [D-CA-17]</a></td><td>02/04/2025</td></tr>
  </tbody>
</table>
</body></html>
"""


def _record(bill, cosponsors):
    return normalize_bill({"bill": bill}, cosponsors, HR467)


# ---------------------------------------------------------------------------
# Primary matching
# ---------------------------------------------------------------------------

def test_state_match_flags_sponsor_and_cosponsors(hr467_bill, wa_member, tx_smith):
    out = apply_delegation_flags(_record(hr467_bill, [wa_member, tx_smith]), ROSTER)

    assert out["hasTargetSponsor"] is True
    assert out["targetSponsor"]["lastName"] == "DelBene"
    assert out["targetSponsor"]["source"] == SOURCE_PRIMARY
    assert [c["lastName"] for c in out["targetCosponsors"]] == ["Jayapal"]
    assert out["targetCosponsorCount"] == 1


def test_state_code_beats_surname(hr467_bill, tx_smith):
    # "Smith" is on the roster but this Smith is from MO
    out = apply_delegation_flags(_record(hr467_bill, [tx_smith]), ROSTER)
    assert out["targetCosponsors"] == []


def test_surname_fallback_only_without_state(hr467_bill):
    stateless = {"bioguideId": "M001111", "lastName": "Murray", "fullName": "Patty Murray"}
    out = apply_delegation_flags(_record(hr467_bill, [stateless]), ROSTER)
    assert out["targetCosponsorCount"] == 1
    assert out["targetCosponsors"][0]["source"] == SOURCE_SURNAME


def test_non_delegation_sponsor(hr467_bill):
    bill = {**hr467_bill, "sponsors": [{"fullName": "Rep. Khanna, Ro [D-CA-17]", "state": "CA"}]}
    out = apply_delegation_flags(_record(bill, []), ROSTER)
    assert out["hasTargetSponsor"] is False
    assert out["targetSponsor"] is None


def test_flags_do_not_mutate_input(hr467_bill, wa_member):
    record = _record(hr467_bill, [wa_member])
    before = copy.deepcopy(record)
    out = apply_delegation_flags(record, ROSTER)
    assert record == before
    assert out is not record
    assert "source" not in record["cosponsors"][0]


def test_counts_match_target_lists(hr467_bill, wa_member, tx_smith):
    out = apply_delegation_flags(_record(hr467_bill, [wa_member, tx_smith]), ROSTER)
    assert out["cosponsorCount"] == len(out["cosponsors"])
    assert out["targetCosponsorCount"] == len(out["targetCosponsors"])
    assert out["hasTargetSponsor"] == (out["targetSponsor"] is not None)


# ---------------------------------------------------------------------------
# Secondary fallback
# ---------------------------------------------------------------------------

def test_secondary_used_when_primary_finds_none(hr467_bill, tx_smith, counting_secondary):
    secondary = counting_secondary(["Smith", "Jayapal"])
    out = apply_delegation_flags(_record(hr467_bill, [tx_smith]), ROSTER, secondary)

    assert secondary.calls == [HR467]
    assert out["targetCosponsorCount"] == 2
    assert [c["fullName"] for c in out["targetCosponsors"]] == ["Smith", "Jayapal"]
    assert all(c["source"] == SOURCE_SECONDARY for c in out["targetCosponsors"])


def test_secondary_not_called_when_primary_matches(hr467_bill, wa_member, counting_secondary):
    secondary = counting_secondary(["Smith", "Jayapal"])
    out = apply_delegation_flags(_record(hr467_bill, [wa_member]), ROSTER, secondary)

    assert secondary.calls == []
    assert out["targetCosponsorCount"] == 1
    assert out["targetCosponsors"][0]["source"] == SOURCE_PRIMARY


def test_secondary_empty_keeps_zero(hr467_bill, counting_secondary):
    secondary = counting_secondary([])
    out = apply_delegation_flags(_record(hr467_bill, []), ROSTER, secondary)
    assert len(secondary.calls) == 1
    assert out["targetCosponsorCount"] == 0


def test_secondary_failure_is_contained(hr467_bill):
    def broken(identity):
        raise RuntimeError("page layout changed")

    out = apply_delegation_flags(_record(hr467_bill, []), ROSTER, broken)
    assert out["targetCosponsors"] == []
    assert out["targetCosponsorCount"] == 0
    assert out["hasTargetSponsor"] is True


# ---------------------------------------------------------------------------
# Roster config
# ---------------------------------------------------------------------------

def test_roster_from_config_normalizes_state():
    roster = DelegationRoster.from_config({"state": " wa ", "surnames": ["Larsen", ""]})
    assert roster.state == "WA"
    assert roster.surnames == ("Larsen",)


# ---------------------------------------------------------------------------
# Secondary source: congress.gov cosponsors page
# ---------------------------------------------------------------------------

def test_parse_cosponsor_page():
    names, has_next = parse_cosponsor_page(PAGE_HTML)
    assert names == [
        "Rep. Jayapal, Pramila [D-WA-7]*",
        "Rep. Smith, Jason [R-MO-8]",
        "Rep. Khanna, Ro [D-CA-17]",
    ]
    assert has_next is False


def test_parse_cosponsor_page_detects_next_link():
    html = PAGE_HTML.replace("</table>", '</table><a aria-label="Next" href="?page=2">Next</a>')
    _, has_next = parse_cosponsor_page(html)
    assert has_next is True


def test_parse_unexpected_layout_is_empty():
    assert parse_cosponsor_page("<html><body><p>Maintenance</p></body></html>") == ([], False)


def test_scraper_keeps_only_roster_surnames(fake_session, fake_response):
    session = fake_session({COSPONSORS_PAGE: [fake_response(text=PAGE_HTML)]})
    scraper = CosponsorPageScraper(ROSTER, retry_delay=0, session=session)

    names = scraper(HR467)

    # Surname heuristic: the MO Smith slips through, as documented
    assert names == ["Rep. Jayapal, Pramila [D-WA-7]*", "Rep. Smith, Jason [R-MO-8]"]
    assert len(session.calls) == 1


def test_scraper_follows_next_pages(fake_session, fake_response):
    page1 = PAGE_HTML.replace("</table>", '</table><a class="next" href="?page=2">Next</a>')
    page2 = """<table><tbody><tr><td><a href="/member/x">Sen. Murray, Patty [D-WA]</a></td></tr></tbody></table>"""
    session = fake_session({
        COSPONSORS_PAGE: lambda params: fake_response(
            text=page2 if params.get("page") == 2 else page1
        )
    })
    scraper = CosponsorPageScraper(ROSTER, retry_delay=0, session=session)

    names = scraper.fetch_names(HR467)

    assert names[-1] == "Sen. Murray, Patty [D-WA]"
    assert [p.get("page") for p in session.calls_to(COSPONSORS_PAGE)] == [None, 2]
