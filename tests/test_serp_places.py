import pytest
import requests

from coffeehaus.core.config import ConfigError
from coffeehaus.core.discovery import DiscoveryEngine
from coffeehaus.models import Coordinate, RejectedPlace
from coffeehaus.vendors import serp_places


class DummySearch:
    payload = {}
    error = None
    instances = []

    def __init__(self, params):
        self.params = params
        self.timeout = None
        DummySearch.instances.append(self)

    def get_dict(self):
        if DummySearch.error is not None:
            raise DummySearch.error
        return DummySearch.payload


@pytest.fixture(autouse=True)
def patch_search(monkeypatch):
    DummySearch.payload = {}
    DummySearch.error = None
    DummySearch.instances = []
    monkeypatch.setattr(serp_places, "GoogleSearch", DummySearch)
    return DummySearch


@pytest.fixture
def client():
    return serp_places.SerpPlacesClient("serp-key", timeout=4)


def test_client_requires_api_key():
    with pytest.raises(ConfigError):
        serp_places.SerpPlacesClient("")


def test_build_serpapi_params_drops_none():
    params = serp_places.build_serpapi_params("k", q="latte", ll=None)

    assert params == {"engine": "google_maps", "api_key": "k", "type": "search", "q": "latte"}


def test_search_places_builds_request_and_parses(client, patch_search):
    patch_search.payload = {
        "local_results": [
            {
                "title": "Epoch Coffee",
                "place_id": "place-epoch",
                "type": "Coffee shop",
                "address": "221 W N Loop Blvd, Austin, TX 78751",
                "gps_coordinates": {"latitude": 30.318, "longitude": -97.724},
                "rating": 4.5,
                "reviews": 2100,
            },
            {"title": "Jiffy Lube", "type": "Oil change service"},
        ]
    }

    shops = client.search_places("espresso", Coordinate(30.2672, -97.7431), 5000)

    search = patch_search.instances[0]
    assert search.params["q"] == "espresso coffee shop"
    assert search.params["ll"] == "@30.2672,-97.7431,14z"
    assert search.params["engine"] == "google_maps"
    assert search.timeout == 4
    assert [shop.name for shop in shops] == ["Epoch Coffee"]
    assert shops[0].external_id == "place-epoch"
    assert shops[0].id is None


def test_search_without_center_omits_viewport(client, patch_search):
    patch_search.payload = {"local_results": []}

    client.search_places("Blue Bottle")

    assert "ll" not in patch_search.instances[0].params


def test_search_returns_malformed_places_as_rejections(client, patch_search):
    patch_search.payload = {
        "local_results": [
            {"title": "Bad Rating Cafe", "type": "cafe", "rating": 9.5},
            {"title": "Good Cafe", "type": "cafe", "rating": 4.0},
        ]
    }

    places = client.search_places("latte")

    assert isinstance(places[0], RejectedPlace)
    assert places[0].name == "Bad Rating Cafe"
    assert "rating" in places[0].reason
    assert places[1].name == "Good Cafe"


def test_malformed_place_is_reported_by_discovery(client, patch_search, repository):
    patch_search.payload = {
        "local_results": [
            {"title": "Bad Rating Cafe", "type": "cafe", "rating": 9.5},
            {"title": "Good Cafe", "type": "cafe", "rating": 4.0, "place_id": "place-good"},
        ]
    }

    result = DiscoveryEngine(client, repository).discover("latte")

    assert result.added == 1
    assert len(result.errors) == 1
    assert result.errors[0].startswith("Error processing Bad Rating Cafe:")
    assert [shop.name for shop in repository.shops.values()] == ["Good Cafe"]


def test_provider_error_raises(client, patch_search):
    patch_search.payload = {"error": "Invalid API key."}

    with pytest.raises(serp_places.PlacesError):
        client.search_places("latte")


def test_no_results_error_is_empty(client, patch_search):
    patch_search.payload = {"error": "Google hasn't returned any results for this query."}

    assert client.search_places("latte") == []


def test_transport_error_raises(client, patch_search):
    patch_search.error = requests.Timeout("read timed out")

    with pytest.raises(serp_places.PlacesError):
        client.geocode("Austin, TX")


def test_empty_payload_raises(client, patch_search):
    patch_search.payload = {}

    with pytest.raises(serp_places.PlacesError):
        client.place_details("place-1")


def test_place_details_parses_place_results(client, patch_search):
    patch_search.payload = {
        "place_results": {
            "title": "Houndstooth Coffee",
            "address": "401 Congress Ave, Austin, TX 78701",
            "gps_coordinates": {"latitude": 30.267, "longitude": -97.743},
            "photos": [{"image": "https://example.com/1.jpg"}],
        }
    }

    shop = client.place_details("place-hound")

    assert patch_search.instances[0].params["type"] == "place"
    assert patch_search.instances[0].params["place_id"] == "place-hound"
    assert shop.external_id == "place-hound"
    assert shop.categories == ["Coffee Shop"]
    assert shop.photos == ["https://example.com/1.jpg"]


def test_place_details_unknown_returns_none(client, patch_search):
    patch_search.payload = {"search_metadata": {"status": "Success"}}

    assert client.place_details("place-gone") is None


def test_geocode_prefers_place_results(client, patch_search):
    patch_search.payload = {
        "place_results": {"title": "Austin", "gps_coordinates": {"latitude": 30.2672, "longitude": -97.7431}},
        "local_results": [{"gps_coordinates": {"latitude": 1.0, "longitude": 2.0}}],
    }

    assert client.geocode(" Austin, TX ") == Coordinate(30.2672, -97.7431)
    assert patch_search.instances[0].params["q"] == "Austin, TX"


def test_geocode_falls_back_to_first_local_result(client, patch_search):
    patch_search.payload = {
        "local_results": [
            {"title": "No coords"},
            {"title": "Cafe", "gps_coordinates": {"latitude": 45.5, "longitude": -122.6}},
        ]
    }

    assert client.geocode("Portland") == Coordinate(45.5, -122.6)


def test_geocode_without_match_returns_none(client, patch_search):
    patch_search.payload = {"error": "Google hasn't returned any results for this query."}

    assert client.geocode("Atlantis") is None
