"""Tests for the controller client and its failure classification."""

import unittest
from unittest.mock import Mock

from requests import exceptions as requests_exceptions

from unifi_exporter.config import ExporterConfig
from unifi_exporter.unifi_client import (
    API_KEY_HEADER,
    API_PATH_INFO,
    AuthExpiredError,
    MalformedResponseError,
    NoSiteFoundError,
    RemoteError,
    TransportError,
    UnifiClient,
)


def create_test_config(**kwargs):
    """Helper to create ExporterConfig with defaults for testing."""
    defaults = {
        "controller_url": "https://unifi.test/",
        "api_token": "secret-token",
        "site": None,
        "poll_interval": 300.0,
        "request_timeout": 7.0,
        "verify_tls": False,
        "fetch_concurrency": 4,
        "prune_stale_devices": False,
        "listen_host": "127.0.0.1",
        "listen_port": 8080,
        "log_level": "INFO",
    }
    defaults.update(kwargs)
    return ExporterConfig(**defaults)


def make_response(status_code=200, payload=None, text=""):
    """Create a mock requests.Response."""
    response = Mock()
    response.status_code = status_code
    response.text = text
    if isinstance(payload, Exception):
        response.json.side_effect = payload
    else:
        response.json.return_value = payload
    return response


def make_client(*responses, **config_overrides):
    session = Mock()
    session.headers = {}
    session.get.side_effect = list(responses)
    client = UnifiClient(create_test_config(**config_overrides), session=session)
    return client, session


class TestRequestShape(unittest.TestCase):

    def test_credential_header_and_timeout_attached(self):
        client, session = make_client(make_response(200, {"applicationVersion": "9.0"}))
        client.check_liveness()

        self.assertEqual(session.headers[API_KEY_HEADER], "secret-token")
        url = session.get.call_args.args[0]
        self.assertEqual(url, "https://unifi.test" + API_PATH_INFO)
        self.assertEqual(session.get.call_args.kwargs["timeout"], 7.0)

    def test_tls_verification_follows_config(self):
        _, session = make_client(verify_tls=True)
        self.assertTrue(session.verify)
        _, session = make_client(verify_tls=False)
        self.assertFalse(session.verify)


class TestClassification(unittest.TestCase):

    def test_401_is_auth_expired(self):
        client, _ = make_client(make_response(401, text="Unauthorized"))
        with self.assertRaises(AuthExpiredError) as ctx:
            client.check_liveness()
        self.assertEqual(ctx.exception.status, 401)

    def test_403_treated_as_auth_expired(self):
        client, _ = make_client(make_response(403))
        with self.assertRaises(AuthExpiredError):
            client.list_devices("site-1")

    def test_other_status_is_remote_error_with_body(self):
        client, _ = make_client(make_response(502, text=" Bad Gateway "))
        with self.assertRaises(RemoteError) as ctx:
            client.check_liveness()
        self.assertEqual(ctx.exception.status, 502)
        self.assertEqual(ctx.exception.body, "Bad Gateway")
        self.assertNotIsInstance(ctx.exception, AuthExpiredError)

    def test_connection_failure_is_transport_error(self):
        client, _ = make_client(requests_exceptions.ConnectionError("Connection refused"))
        with self.assertRaises(TransportError):
            client.check_liveness()

    def test_timeout_is_transport_error(self):
        client, _ = make_client(requests_exceptions.ReadTimeout("read timed out"))
        with self.assertRaises(TransportError):
            client.fetch_statistics("site-1", "dev-1")

    def test_non_json_body_is_malformed(self):
        client, _ = make_client(make_response(200, ValueError("Expecting value")))
        with self.assertRaises(MalformedResponseError):
            client.list_sites()

    def test_schema_mismatch_is_malformed(self):
        client, _ = make_client(make_response(200, {"data": [{"name": "no id"}], "totalCount": 1}))
        with self.assertRaises(MalformedResponseError):
            client.list_devices("site-1")


class TestSiteResolution(unittest.TestCase):

    def test_first_site_wins_without_selector(self):
        payload = {
            "data": [
                {"id": "88f7af54", "internalReference": "default", "name": "Default"},
                {"id": "other", "internalReference": "lab", "name": "Lab"},
            ]
        }
        client, _ = make_client(make_response(200, payload))
        self.assertEqual(client.resolve_site_id(), "88f7af54")

    def test_selector_matches_internal_reference(self):
        payload = {
            "data": [
                {"id": "88f7af54", "internalReference": "default", "name": "Default"},
                {"id": "other", "internalReference": "lab", "name": "Lab"},
            ]
        }
        client, _ = make_client(make_response(200, payload))
        self.assertEqual(client.resolve_site_id("lab"), "other")

    def test_empty_site_list_is_no_site_found(self):
        client, _ = make_client(make_response(200, {"data": [], "totalCount": 0}))
        with self.assertRaises(NoSiteFoundError) as ctx:
            client.resolve_site_id()
        self.assertNotIsInstance(ctx.exception, AuthExpiredError)

    def test_site_without_id_is_no_site_found(self):
        client, _ = make_client(make_response(200, {"data": [{"name": "Default"}]}))
        with self.assertRaises(NoSiteFoundError):
            client.resolve_site_id()

    def test_unknown_selector_is_no_site_found(self):
        client, _ = make_client(make_response(200, {"data": [{"id": "a", "name": "Default"}]}))
        with self.assertRaises(NoSiteFoundError):
            client.resolve_site_id("missing")


class TestDevices(unittest.TestCase):

    def test_pagination_follows_total_count(self):
        page1 = {
            "offset": 0,
            "limit": 2,
            "count": 2,
            "totalCount": 3,
            "data": [{"id": "a", "name": "ap-lobby"}, {"id": "b", "name": "sw-core"}],
        }
        page2 = {
            "offset": 2,
            "limit": 2,
            "count": 1,
            "totalCount": 3,
            "data": [{"id": "c", "name": "gw"}],
        }
        client, session = make_client(make_response(200, page1), make_response(200, page2))

        devices = client.list_devices("site-1")

        self.assertEqual([d.id for d in devices], ["a", "b", "c"])
        self.assertEqual(session.get.call_count, 2)
        self.assertEqual(session.get.call_args_list[1].kwargs["params"]["offset"], 2)
        self.assertIn("/sites/site-1/devices", session.get.call_args_list[0].args[0])

    def test_short_page_without_total_stops(self):
        payload = {"limit": 200, "data": [{"id": "a", "name": "ap-lobby"}]}
        client, session = make_client(make_response(200, payload))
        devices = client.list_devices("site-1")
        self.assertEqual(len(devices), 1)
        self.assertEqual(session.get.call_count, 1)

    def test_device_fields_parsed(self):
        payload = {
            "totalCount": 1,
            "data": [
                {
                    "id": "a",
                    "name": "ap-lobby",
                    "model": "U6 Pro",
                    "state": "ONLINE",
                    "ipAddress": "10.0.0.5",
                    "macAddress": "aa:bb:cc:dd:ee:ff",
                    "features": ["accessPoint"],
                    "interfaces": ["radios"],
                    "firmwareVersion": "6.6.55",
                }
            ],
        }
        client, _ = make_client(make_response(200, payload))
        device = client.list_devices("site-1")[0]
        self.assertEqual(device.ip_address, "10.0.0.5")
        self.assertEqual(device.mac_address, "aa:bb:cc:dd:ee:ff")
        self.assertEqual(device.features, ["accessPoint"])
        self.assertEqual(device.label, "ap-lobby")


class TestStatistics(unittest.TestCase):

    def test_statistics_parsed(self):
        payload = {
            "uptimeSec": 3600,
            "lastHeartbeatAt": "2024-05-01T10:00:00Z",
            "nextHeartbeatAt": "2024-05-01T10:00:10Z",
            "loadAverage1Min": 0.25,
            "loadAverage5Min": 0.5,
            "loadAverage15Min": 0.75,
            "cpuUtilizationPct": 12.5,
            "memoryUtilizationPct": 40.0,
            "uplink": {"txRateBps": 52000, "rxRateBps": 81000},
            "interfaces": {"radios": [{"frequencyGHz": 5.0, "txRetriesPct": 3.1}]},
        }
        client, session = make_client(make_response(200, payload))

        stats = client.fetch_statistics("site-1", "dev-1")

        self.assertTrue(session.get.call_args.args[0].endswith("/devices/dev-1/statistics/latest"))
        self.assertEqual(stats.uptime_seconds, 3600)
        self.assertEqual(stats.cpu_pct, 12.5)
        self.assertEqual(stats.uplink.tx_bps, 52000)
        self.assertEqual(stats.interfaces.radios[0].frequency_ghz, 5.0)
        self.assertIsNotNone(stats.last_heartbeat)

    def test_missing_optional_fields_are_none(self):
        client, _ = make_client(make_response(200, {"uptimeSec": 10}))
        stats = client.fetch_statistics("site-1", "dev-1")
        self.assertIsNone(stats.uplink)
        self.assertIsNone(stats.interfaces)
        self.assertIsNone(stats.cpu_pct)


def test_base_url_trailing_slash_stripped(test_config):
    test_config.controller_url = "https://unifi.test//"
    session = Mock()
    session.headers = {}
    client = UnifiClient(test_config, session=session)
    assert client.base_url == "https://unifi.test"
    assert session.headers["Accept"] == "application/json"


if __name__ == "__main__":
    unittest.main()
