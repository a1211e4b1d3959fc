"""
Tests for the metrics HTTP app.

Run with: python -m pytest tests/ -v
"""

import os
import sys
import unittest
from wsgiref.util import setup_testing_defaults

# Add project root and tests dir to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))
sys.path.insert(0, os.path.dirname(__file__))

from rgw_exporter.collector import SnapshotCollector
from rgw_exporter.server import build_registry, make_app
from mock_rgw import MockRGWClient, bucket_stat, ok, usage_doc


def call(app, path):
    environ = {'PATH_INFO': path}
    setup_testing_defaults(environ)
    captured = {}

    def start_response(status, headers, exc_info=None):
        captured['status'] = status
        captured['headers'] = dict(headers)

    body = b"".join(app(environ, start_response))
    return captured['status'], captured['headers'], body.decode("utf-8")


class TestMetricsApp(unittest.TestCase):

    def setUp(self):
        self.client = MockRGWClient(
            [ok([bucket_stat("alice", "photos", 10, 2048)])],
            [ok(usage_doc(("alice", "photos", "get_obj", 500, 0, 3, 3)))],
        )
        self.registry = build_registry(SnapshotCollector(self.client))

    def test_metrics_path(self):
        status, headers, body = call(make_app(self.registry), "/metrics")

        self.assertTrue(status.startswith("200"))
        self.assertTrue(headers['Content-Type'].startswith("text/plain"))
        samples = [line for line in body.splitlines() if not line.startswith("#")]
        object_count = [line for line in samples if line.startswith("radosgw_object_count{")]
        self.assertEqual(len(object_count), 1)
        self.assertIn('user="alice"', object_count[0])
        self.assertTrue(object_count[0].endswith(" 10.0"))
        ops_ok = [line for line in samples if line.startswith("radosgw_ops_ok_total{")]
        self.assertIn('api="get_obj"', ops_ok[0])
        self.assertTrue(ops_ok[0].endswith(" 3.0"))

    def test_landing_page(self):
        status, headers, body = call(make_app(self.registry), "/")

        self.assertTrue(status.startswith("200"))
        self.assertEqual(headers['Content-Type'], "text/html; charset=utf-8")
        self.assertIn("<title>Radosgw Exporter</title>", body)
        self.assertIn("href='/metrics'", body)

    def test_landing_page_does_not_poll(self):
        before = self.client.call_count('bucket')
        call(make_app(self.registry), "/anything/else")
        self.assertEqual(self.client.call_count('bucket'), before)

    def test_custom_metrics_path(self):
        app = make_app(self.registry, "/rgw")

        _, _, body = call(app, "/rgw")
        self.assertIn("radosgw_capacity_bytes", body)

        _, _, page = call(app, "/metrics")
        self.assertIn("href='/rgw'", page)


if __name__ == '__main__':
    unittest.main(verbosity=2)
