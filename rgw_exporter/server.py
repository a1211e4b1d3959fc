"""
HTTP exposition of the collector.

The metrics path serves the Prometheus text format; every other path gets a
small landing page pointing at it. Requests are handled on their own
threads, so overlapping scrapes each run their own poll cycle.
"""

import html
import logging
from socketserver import ThreadingMixIn
from typing import Optional
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

from prometheus_client import CollectorRegistry, make_wsgi_app

from .collector import SnapshotCollector
from .models import ExporterConfig


logger = logging.getLogger(__name__)

LANDING_PAGE = """<html>
    <head><title>Radosgw Exporter</title></head>
    <body>
        <h1>Radosgw Exporter</h1>
        <p><a href='{path}'>Metrics</a></p>
    </body>
</html>
"""


class ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    daemon_threads = True


class _LoggingHandler(WSGIRequestHandler):
    def log_message(self, format, *args):
        logger.debug("%s %s", self.address_string(), format % args)


def build_registry(collector: SnapshotCollector) -> CollectorRegistry:
    """Registry holding only our collector (registering runs one describe())."""
    registry = CollectorRegistry()
    registry.register(collector)
    return registry


def make_app(registry: CollectorRegistry, metrics_path: str = "/metrics"):
    """WSGI app: metrics on metrics_path, landing page elsewhere."""
    metrics_app = make_wsgi_app(registry)
    page = LANDING_PAGE.format(path=html.escape(metrics_path, quote=True)).encode("utf-8")

    def app(environ, start_response):
        if environ.get("PATH_INFO", "/") == metrics_path:
            return metrics_app(environ, start_response)
        start_response("200 OK", [
            ("Content-Type", "text/html; charset=utf-8"),
            ("Content-Length", str(len(page))),
        ])
        return [page]

    return app


def serve(config: ExporterConfig, collector: Optional[SnapshotCollector] = None):
    """Serve until interrupted."""
    collector = collector or SnapshotCollector.from_config(config)
    host, port = config.listen_host_port()

    app = make_app(build_registry(collector), config.metrics_path)
    httpd = make_server(host, port, app, ThreadingWSGIServer, handler_class=_LoggingHandler)
    logger.info("Radosgw exporter listening on %s:%d%s, polling %s",
                host, port, config.metrics_path, collector.rgw_client.endpoint)
    try:
        httpd.serve_forever()
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
    finally:
        httpd.server_close()
        collector.close()
