"""
Tests for the RGW admin REST client.

Run with: python -m pytest tests/ -v
Or: python tests/test_rgw_client.py
"""

import io
import os
import sys
import unittest
from datetime import datetime, timezone
from unittest.mock import Mock
from urllib.parse import parse_qsl, urlsplit

import requests

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from rgw_exporter.errors import ConfigError, TransportError, UpstreamError
from rgw_exporter.models import Credential, ExporterConfig
from rgw_exporter.rgw_client import (
    INTERNAL_ERROR_STATUS, RGWAdminClient, expect_success, is_success, normalize_endpoint,
)
from rgw_exporter.signing import sign_request


def make_client(status=200, content=b"[]", **kwargs):
    session = Mock(spec=requests.Session)
    session.request.return_value = Mock(status_code=status, content=content)
    client = RGWAdminClient("rgw.local:8080", "AK", "SK", session=session, **kwargs)
    return client, session


class TestRequestConstruction(unittest.TestCase):

    def test_get_bucket_stats(self):
        client, session = make_client()

        status, body, error = client.get_bucket(stats=True)

        self.assertEqual((status, body, error), (200, b"[]", None))
        session.request.assert_called_once()
        args, kwargs = session.request.call_args
        self.assertEqual(args, ("GET", "http://rgw.local:8080/admin/bucket?format=json&stats=true"))
        self.assertEqual(kwargs["timeout"], 300)
        self.assertIsNone(kwargs["data"])
        headers = kwargs["headers"]
        self.assertEqual(headers["Host"], "rgw.local:8080")
        self.assertTrue(headers["Authorization"].startswith("AWS4-HMAC-SHA256 Credential=AK/"))
        self.assertIn("X-Amz-Date", headers)

    def test_get_bucket_filters(self):
        client, session = make_client()
        client.get_bucket(bucket="photos", uid="alice", stats=False)
        url = session.request.call_args[0][1]
        self.assertEqual(url, "http://rgw.local:8080/admin/bucket"
                              "?bucket=photos&format=json&stats=false&uid=alice")

    def test_get_usage_entries_only(self):
        client, session = make_client(content=b'{"entries": []}')
        client.get_usage()
        url = session.request.call_args[0][1]
        self.assertEqual(url, "http://rgw.local:8080/admin/usage"
                              "?format=json&show-entries=true&show-summary=false")

    def test_get_usage_range(self):
        client, session = make_client()
        client.get_usage(uid="alice", start=datetime(2024, 1, 1),
                         end=datetime(2024, 1, 2, 6, 30), show_summary=True)
        url = session.request.call_args[0][1]
        self.assertEqual(url, "http://rgw.local:8080/admin/usage"
                              "?end=2024-01-02%2006%3A30%3A00&format=json"
                              "&show-entries=true&show-summary=true"
                              "&start=2024-01-01%2000%3A00%3A00&uid=alice")

    def test_quota_and_policy(self):
        client, session = make_client()
        client.get_quota("alice", "bucket")
        self.assertEqual(session.request.call_args[0][1],
                         "http://rgw.local:8080/admin/user"
                         "?format=json&quota=&quota-type=bucket&uid=alice")
        client.get_policy("photos", "cat.jpg")
        self.assertEqual(session.request.call_args[0][1],
                         "http://rgw.local:8080/admin/bucket"
                         "?bucket=photos&format=json&object=cat.jpg&policy=")

    def test_invalid_arguments_send_nothing(self):
        client, session = make_client()
        with self.assertRaises(ValueError):
            client.get_quota("alice", "global")
        with self.assertRaises(ValueError):
            client.get_quota("", "user")
        with self.assertRaises(ValueError):
            client.get_policy("")
        session.request.assert_not_called()

    def test_body_is_buffered(self):
        client, session = make_client()
        client.send_request("PUT", "/user", {"uid": "bob"}, body=io.BytesIO(b"xyz"))
        self.assertEqual(session.request.call_args[1]["data"], b"xyz")

    def test_signature_covers_sent_path(self):
        session = Mock(spec=requests.Session)
        session.request.return_value = Mock(status_code=200, content=b"[]")
        client = RGWAdminClient("http://gw.local:8080/rgw/", "AK", "SK", session=session)

        client.get_bucket()

        (method, url), kwargs = session.request.call_args
        sent = urlsplit(url)
        self.assertEqual(f"{sent.scheme}://{sent.netloc}", "http://gw.local:8080")
        self.assertEqual(sent.path, "/rgw/admin/bucket")

        headers = kwargs["headers"]
        timestamp = datetime.strptime(headers["X-Amz-Date"], "%Y%m%dT%H%M%SZ")
        expected = sign_request(Credential("AK", "SK"), method, sent.netloc, sent.path,
                                params=parse_qsl(sent.query, keep_blank_values=True),
                                timestamp=timestamp.replace(tzinfo=timezone.utc))
        self.assertEqual(headers["Authorization"], expected["Authorization"])

    def test_custom_prefix_and_timeout(self):
        client, session = make_client(prefix="/gw-admin", timeout=5)
        client.get_user("alice")
        args, kwargs = session.request.call_args
        self.assertEqual(args[1], "http://rgw.local:8080/gw-admin/user?format=json&uid=alice")
        self.assertEqual(kwargs["timeout"], 5)


class TestResponses(unittest.TestCase):

    def test_error_status_is_returned_verbatim(self):
        client, _ = make_client(status=404, content=b'{"Code": "NoSuchBucket"}')
        self.assertEqual(client.get_bucket(), (404, b'{"Code": "NoSuchBucket"}', None))

    def test_connection_error(self):
        client, session = make_client()
        session.request.side_effect = requests.ConnectionError("connection refused")

        status, body, error = client.get_bucket()

        self.assertEqual(status, INTERNAL_ERROR_STATUS)
        self.assertEqual(body, b"")
        self.assertIsInstance(error, TransportError)
        self.assertIsInstance(error.cause, requests.ConnectionError)
        self.assertEqual(session.request.call_count, 1)

    def test_timeout_is_not_retried(self):
        client, session = make_client()
        session.request.side_effect = requests.Timeout("read timed out")
        status, _, error = client.get_usage()
        self.assertEqual(status, INTERNAL_ERROR_STATUS)
        self.assertIsInstance(error, TransportError)
        self.assertEqual(session.request.call_count, 1)

    def test_is_success(self):
        for status in (200, 201, 204, 299):
            self.assertTrue(is_success(status), status)
        for status in (199, 300, 304, 403, 500):
            self.assertFalse(is_success(status), status)

    def test_expect_success(self):
        self.assertEqual(expect_success((204, b"", None)), b"")

        with self.assertRaises(UpstreamError) as ctx:
            expect_success((403, b"AccessDenied", None), "usage")
        self.assertEqual(ctx.exception.status, 403)
        self.assertEqual(ctx.exception.body, b"AccessDenied")
        self.assertIn("usage", str(ctx.exception))

        with self.assertRaises(TransportError):
            expect_success((500, b"", TransportError("refused")))


class TestConfiguration(unittest.TestCase):

    def test_missing_credentials(self):
        with self.assertRaises(ConfigError):
            RGWAdminClient("rgw:8080", "", "SK")
        with self.assertRaises(ConfigError):
            RGWAdminClient("rgw:8080", "AK", "")
        with self.assertRaises(ConfigError):
            RGWAdminClient("", "AK", "SK")

    def test_normalize_endpoint(self):
        self.assertEqual(normalize_endpoint("rgw.local:8080/"), "http://rgw.local:8080")
        self.assertEqual(normalize_endpoint("https://rgw.example.com/"), "https://rgw.example.com")

    def test_from_config(self):
        config = ExporterConfig(endpoint="https://rgw.example.com", access_key="AK",
                                secret_key="SK", admin_prefix="/adm", timeout=30)
        client = RGWAdminClient.from_config(config, session=Mock(spec=requests.Session))
        self.assertEqual(client.endpoint, "https://rgw.example.com")
        self.assertEqual(client.host, "rgw.example.com")
        self.assertEqual(client.prefix, "/adm")
        self.assertEqual(client.timeout, 30)

    def test_secret_not_in_repr(self):
        client, _ = make_client()
        self.assertNotIn("SK", repr(client))
        self.assertNotIn("SK", repr(client._credential))

    def test_close_and_context_manager(self):
        client, session = make_client()
        with client:
            pass
        session.close.assert_called_once()


if __name__ == '__main__':
    unittest.main(verbosity=2)
