"""
RGW Usage Exporter

Polls the radosgw admin API for bucket and usage statistics and exposes
them as Prometheus metrics.
"""

from .errors import ConfigError, ExporterError, ParseError, TransportError, UpstreamError
from .models import Credential, ExporterConfig, Sample, Snapshot
from .rgw_client import RGWAdminClient
from .collector import SnapshotCollector

__version__ = "1.0.0"
__all__ = ['ConfigError', 'ExporterError', 'ParseError', 'TransportError', 'UpstreamError',
           'Credential', 'ExporterConfig', 'Sample', 'Snapshot', 'RGWAdminClient',
           'SnapshotCollector']
