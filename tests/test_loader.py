import json

import pytest
import requests

from etl.loader import DatasetLoader, read_collection
from tests.fakes import FakeResponse, FakeSession
from utils.memo import CacheState

COLLECTION = {"type": "FeatureCollection", "features": [], "meta": {"source": "overpass"}}


def test_read_collection_from_file(tmp_path):
    path = tmp_path / "schools.geojson"
    path.write_text(json.dumps(COLLECTION), encoding="utf-8")
    assert read_collection(path) == COLLECTION


def test_read_collection_from_url():
    session = FakeSession([FakeResponse(200, COLLECTION)])
    assert read_collection("https://cdn.example/fiber.geojson", session=session) == COLLECTION
    assert session.calls[0]["method"] == "GET"


def test_read_collection_rejects_non_collections(tmp_path):
    path = tmp_path / "bad.geojson"
    path.write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(ValueError, match="not a FeatureCollection"):
        read_collection(path)


def test_loader_fetches_once():
    session = FakeSession([FakeResponse(200, COLLECTION)])
    loader = DatasetLoader("https://cdn.example/schools.geojson", session=session)

    assert loader.get() == COLLECTION
    assert loader.get() == COLLECTION
    assert len(session.calls) == 1
    assert loader.state is CacheState.READY


def test_loader_retries_after_failure():
    session = FakeSession([FakeResponse(503, "busy"), FakeResponse(200, COLLECTION)])
    loader = DatasetLoader("https://cdn.example/schools.geojson", session=session)

    with pytest.raises(requests.HTTPError):
        loader.get()
    assert loader.state is CacheState.FAILED
    assert loader.get() == COLLECTION
    assert len(session.calls) == 2


def test_loader_accepts_custom_reader():
    loader = DatasetLoader("memory", reader=lambda: COLLECTION)
    loader.prefetch()
    assert loader.get(timeout=5) is COLLECTION
