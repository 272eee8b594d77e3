"""Shared pytest fixtures for the billwatch test suite.

Nothing here touches the network: FakeSession stands in for
requests.Session and FakeClient for CongressClient.

Bill fixtures mirror trimmed Congress.gov v3 responses for the
119th Congress (H.R. 467, S. 275).
"""
import pytest
import requests

from billwatch.congress.errors import FetchFailure


# ---------------------------------------------------------------------------
# HTTP test doubles
# ---------------------------------------------------------------------------

class FakeResponse:
    def __init__(self, payload=None, status_code=200, text=""):
        self._payload = payload
        self.status_code = status_code
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)


class FakeSession:
    """
    Serves queued responses per URL and records every call.

    A route is either a list (consumed in order; the last item repeats)
    of FakeResponse / Exception, or a callable(params) -> FakeResponse.
    """

    def __init__(self, routes):
        self.routes = {url: (r if callable(r) else list(r)) for url, r in routes.items()}
        self.calls = []

    def get(self, url, params=None, headers=None, timeout=None):
        params = dict(params or {})
        self.calls.append((url, params))
        route = self.routes[url]
        item = route(params) if callable(route) else (route.pop(0) if len(route) > 1 else route[0])
        if isinstance(item, Exception):
            raise item
        return item

    def calls_to(self, url):
        return [params for u, params in self.calls if u == url]


class FakeClient:
    """CongressClient stand-in keyed by bill id ("hr467")."""

    def __init__(self, bills, cosponsors=None, actions=None, fail=()):
        self.bills = bills
        self.cosponsors = cosponsors or {}
        self.actions = actions or {}
        self.fail = set(fail)

    def fetch_base_metadata(self, identity):
        if identity.id in self.fail or identity.id not in self.bills:
            raise FetchFailure(f"https://api.congress.gov/v3/bill/119/{identity.id}", status_code=500)
        return {"bill": self.bills[identity.id]}

    def fetch_all_cosponsors(self, identity):
        return list(self.cosponsors.get(identity.id, []))

    def fetch_actions(self, identity):
        return list(self.actions.get(identity.id, []))


class CountingSecondary:
    """Secondary-source double that records which bills it was asked about."""

    def __init__(self, names=()):
        self.names = list(names)
        self.calls = []

    def __call__(self, identity):
        self.calls.append(identity)
        return list(self.names)


@pytest.fixture
def fake_response():
    return FakeResponse


@pytest.fixture
def fake_session():
    return FakeSession


@pytest.fixture
def fake_client():
    return FakeClient


@pytest.fixture
def counting_secondary():
    return CountingSecondary


# ---------------------------------------------------------------------------
# People
# ---------------------------------------------------------------------------

@pytest.fixture
def wa_member():
    return {
        "bioguideId": "J000298",
        "firstName": "Pramila",
        "lastName": "Jayapal",
        "fullName": "Rep. Jayapal, Pramila [D-WA-7]",
        "party": "D",
        "state": "WA",
        "district": 7,
        "isOriginalCosponsor": True,
        "sponsorshipDate": "2025-01-16",
        "url": "https://api.congress.gov/v3/member/J000298?format=json",
    }


@pytest.fixture
def tx_smith():
    """Shares a surname with a WA delegation member but is not one."""
    return {
        "bioguideId": "S001999",
        "firstName": "Jason",
        "lastName": "Smith",
        "fullName": "Rep. Smith, Jason [R-MO-8]",
        "party": "R",
        "state": "MO",
        "district": 8,
        "isOriginalCosponsor": False,
        "sponsorshipDate": "2025-02-03",
        "url": "https://api.congress.gov/v3/member/S001999?format=json",
    }


# ---------------------------------------------------------------------------
# Bills
# ---------------------------------------------------------------------------

@pytest.fixture
def hr467_bill():
    return {
        "congress": 119,
        "number": "467",
        "type": "HR",
        "title": "Test Housing Supply Act",
        "introducedDate": "2025-01-16",
        "updateDate": "2025-03-01T12:00:00Z",
        "latestAction": {"actionDate": "2025-02-27", "text": "Passed House."},
        "sponsors": [
            {
                "bioguideId": "D000617",
                "firstName": "Suzan",
                "lastName": "DelBene",
                "fullName": "Rep. DelBene, Suzan K. [D-WA-1]",
                "party": "D",
                "state": "WA",
                "district": 1,
                "url": "https://api.congress.gov/v3/member/D000617?format=json",
            }
        ],
        "cosponsors": {"count": 0, "url": "https://api.congress.gov/v3/bill/119/hr/467/cosponsors"},
    }


@pytest.fixture
def s275_bill():
    return {
        "congress": 119,
        "number": "275",
        "type": "S",
        "title": "Senate Test Act",
        "introducedDate": "2025-01-28",
        "updateDate": "2025-02-10T09:30:00Z",
        "latestAction": {
            "actionDate": "2025-01-28",
            "text": "Read twice and referred to the Committee on Finance.",
        },
        "sponsors": [
            {
                "bioguideId": "C000127",
                "firstName": "Maria",
                "lastName": "Cantwell",
                "fullName": "Sen. Cantwell, Maria [D-WA]",
                "party": "D",
                "state": "WA",
            }
        ],
    }


@pytest.fixture
def action_history():
    """Chronological (oldest first) action list."""
    return [
        {"actionDate": "2025-01-16", "text": "Introduced in House"},
        {"actionDate": "2025-01-16", "text": "Referred to the House Committee on Financial Services."},
        {"actionDate": "2025-02-05", "text": "Subcommittee Hearings Held."},
        {"actionDate": "2025-02-27", "text": "On passage Passed by the Yeas and Nays: 310 - 101."},
        {"actionDate": "2025-02-27", "text": "Passed/agreed to in House: On passage Passed by the Yeas and Nays."},
        {"actionDate": "2025-03-10", "text": "Passed Senate without amendment by Unanimous Consent."},
        {"actionDate": "2025-03-12", "text": "Presented to President."},
        {"actionDate": "2025-03-20", "text": "Became Public Law No: 119-12."},
    ]


@pytest.fixture
def tracker_config(tmp_path):
    return {
        "congress": 119,
        "bills": {"house": [467], "senate": [275]},
        "delegation": {"state": "WA", "surnames": ["DelBene", "Jayapal", "Smith", "Cantwell"]},
        "concurrency": {"max_workers": 2},
        "secondary": {"enabled": False},
        "paths": {
            "snapshot_file": str(tmp_path / "bills.json"),
            "changes_file": str(tmp_path / "changes.json"),
        },
        "logging": {"level": "WARNING"},
    }
