"""Tests for osm_client.py"""

from unittest.mock import MagicMock, patch

import pytest
import requests

from osm_client import (
    NOMINATIM,
    OVERPASS,
    OSMClient,
    UpstreamRateLimited,
    UpstreamUnavailable,
)


def _mock_response(status_code=200, json_data=None):
    """Create a mock requests.Response object."""
    resp = MagicMock(spec=requests.Response)
    resp.status_code = status_code
    if json_data is not None:
        resp.json.return_value = json_data
    else:
        resp.json.side_effect = ValueError("No JSON")
    return resp


@pytest.fixture
def client():
    c = OSMClient(nominatim_url="https://nominatim.test/search",
                  overpass_url="https://overpass.test/api/interpreter",
                  user_agent="test-agent/1.0")
    c.spacing = {NOMINATIM: 0, OVERPASS: 0}
    c.rate_limit_delay = {NOMINATIM: 0, OVERPASS: 0}
    return c


class TestSearch:
    def test_sends_query_params(self, client):
        hits = [{"lat": "45.7578", "lon": "4.8320", "display_name": "Lyon"}]
        with patch.object(client.session, "request", return_value=_mock_response(200, hits)) as req:
            result = client.search("Lyon", limit=1, extratags=False)

        assert result == hits
        args, kwargs = req.call_args
        assert args == ("get", "https://nominatim.test/search")
        assert kwargs["params"] == {"q": "Lyon", "format": "json", "limit": 1}
        assert kwargs["timeout"] > 0

    def test_extratags_requested_by_default(self, client):
        with patch.object(client.session, "request", return_value=_mock_response(200, [])) as req:
            client.search("route=hiking Lyon")
        assert req.call_args.kwargs["params"]["extratags"] == 1
        assert req.call_args.kwargs["params"]["limit"] == 10

    def test_user_agent_header(self, client):
        assert client.session.headers["User-Agent"] == "test-agent/1.0"

    def test_non_list_body_is_unavailable(self, client):
        with patch.object(client.session, "request",
                          return_value=_mock_response(200, {"error": "bad"})):
            with pytest.raises(UpstreamUnavailable):
                client.search("Lyon")


class TestOverpass:
    def test_posts_query_and_returns_elements(self, client):
        body = {"elements": [{"type": "node", "id": 1, "lat": 1.0, "lon": 2.0}]}
        with patch.object(client.session, "request", return_value=_mock_response(200, body)) as req:
            elements = client.overpass("[out:json];node(1);out;")

        assert elements == body["elements"]
        args, kwargs = req.call_args
        assert args == ("post", "https://overpass.test/api/interpreter")
        assert kwargs["data"] == {"data": "[out:json];node(1);out;"}

    def test_missing_elements_is_empty(self, client):
        with patch.object(client.session, "request", return_value=_mock_response(200, {})):
            assert client.overpass("q") == []

    def test_custom_timeout(self, client):
        with patch.object(client.session, "request",
                          return_value=_mock_response(200, {"elements": []})) as req:
            client.overpass("q", timeout=42)
        assert req.call_args.kwargs["timeout"] == 42


class TestErrors:
    @pytest.mark.parametrize("status", [403, 429])
    def test_rate_limited(self, client, status):
        with patch.object(client.session, "request", return_value=_mock_response(status)):
            with pytest.raises(UpstreamRateLimited) as exc_info:
                client.overpass("q")
        assert exc_info.value.service == OVERPASS

    @pytest.mark.parametrize("status", [400, 500, 504])
    def test_http_errors_unavailable(self, client, status):
        with patch.object(client.session, "request", return_value=_mock_response(status)):
            with pytest.raises(UpstreamUnavailable, match=str(status)):
                client.search("Lyon")

    def test_non_json(self, client):
        with patch.object(client.session, "request", return_value=_mock_response(200)):
            with pytest.raises(UpstreamUnavailable, match="non-JSON"):
                client.overpass("q")

    def test_timeout(self, client):
        with patch.object(client.session, "request",
                          side_effect=requests.exceptions.Timeout("slow")):
            with pytest.raises(UpstreamUnavailable, match="timed out"):
                client.search("Lyon")

    def test_connection_error(self, client):
        with patch.object(client.session, "request",
                          side_effect=requests.exceptions.ConnectionError("refused")):
            with pytest.raises(UpstreamUnavailable) as exc_info:
                client.search("Lyon")
        assert exc_info.value.service == NOMINATIM


class TestRateLimiting:
    def test_spacing_enforced_between_requests(self, client):
        client.spacing = {NOMINATIM: 2.0, OVERPASS: 0}
        with patch("osm_client.time.monotonic", side_effect=[100.0, 100.5, 102.0, 102.0]), \
                patch("osm_client.time.sleep") as mock_sleep, \
                patch.object(client.session, "request", return_value=_mock_response(200, [])):
            client.search("a")
            client.search("b")

        mock_sleep.assert_called_once()
        assert mock_sleep.call_args.args[0] == pytest.approx(1.5)

    def test_no_wait_on_first_request(self, client):
        client.spacing = {NOMINATIM: 2.0, OVERPASS: 2.0}
        with patch("osm_client.time.sleep") as mock_sleep, \
                patch.object(client.session, "request", return_value=_mock_response(200, [])):
            client.search("a")
        mock_sleep.assert_not_called()

    def test_services_spaced_independently(self, client):
        client.spacing = {NOMINATIM: 2.0, OVERPASS: 2.0}
        with patch("osm_client.time.sleep") as mock_sleep, \
                patch.object(client.session, "request",
                             side_effect=[_mock_response(200, []), _mock_response(200, {})]):
            client.search("a")
            client.overpass("q")
        mock_sleep.assert_not_called()

    def test_pause_after_rate_limit(self, client):
        client.rate_limit_delay = {NOMINATIM: 5.0, OVERPASS: 10.0}
        with patch("osm_client.time.sleep") as mock_sleep:
            client.pause_after_rate_limit(OVERPASS)
        mock_sleep.assert_called_once_with(10.0)
