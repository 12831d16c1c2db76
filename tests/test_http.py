import pytest
import requests

from utils import http
from tests.fakes import FakeResponse, FakeSession


def test_one_off_session_is_closed(monkeypatch):
    created = []

    def build_session():
        session = FakeSession([FakeResponse(200, "ok")])
        created.append(session)
        return session

    monkeypatch.setattr(http, "build_session", build_session)

    assert http.fetch_text("https://data.example/schools.csv") == "ok"
    assert len(created) == 1
    assert created[0].closed


def test_one_off_session_is_closed_on_http_error(monkeypatch):
    session = FakeSession([FakeResponse(502, "bad gateway")])
    monkeypatch.setattr(http, "build_session", lambda: session)

    with pytest.raises(requests.HTTPError):
        http.fetch_text("https://data.example/schools.csv")
    assert session.closed


def test_injected_session_is_left_open():
    session = FakeSession([FakeResponse(200, {"elements": []})])

    response = http.post_form("https://overpass.example/api/interpreter", {"data": "q"}, session=session)

    assert response.json() == {"elements": []}
    assert not session.closed
    assert session.calls[0]["headers"]["User-Agent"] == http.USER_AGENT
