"""
Prometheus collector that polls RGW on every scrape.

Each describe()/collect() call runs one full poll cycle (bucket stats, then
usage) on the calling thread and answers from the snapshot published by the
latest successful cycle. A failed cycle leaves the published snapshot alone.
Concurrent scrapes are not coalesced: each one polls the gateway itself.
"""

import logging
import threading
import time
from typing import Dict, List, Optional

from prometheus_client.core import GaugeMetricFamily

from .errors import ParseError, TransportError, UpstreamError
from .mapper import BUCKET_STATS_OP, METRICS, USAGE_OP, map_samples
from .models import ExporterConfig, Snapshot
from .rgw_client import RGWAdminClient, expect_success


logger = logging.getLogger(__name__)


class CollectorState:
    """Poll cycle counters, shared by concurrent scrapes."""

    def __init__(self):
        self.stats = {
            'cycles_started': 0,
            'cycles_published': 0,
            'cycles_failed': 0,
            'cycles_superseded': 0,
            'last_error': None,
            'last_cycle_time': 0.0,
            'last_sample_count': 0,
        }
        self._lock = threading.Lock()

    def start_cycle(self) -> int:
        """Count a new cycle and return its number."""
        with self._lock:
            self.stats['cycles_started'] += 1
            return self.stats['cycles_started']

    def record_success(self, samples: int, duration: float, published: bool = True):
        with self._lock:
            if published:
                self.stats['cycles_published'] += 1
            else:
                self.stats['cycles_superseded'] += 1
            self.stats['last_cycle_time'] = duration
            self.stats['last_sample_count'] = samples

    def record_failure(self, error: Exception, duration: float):
        with self._lock:
            self.stats['cycles_failed'] += 1
            self.stats['last_cycle_time'] = duration
            self.stats['last_error'] = str(error)

    def get_stats(self) -> dict:
        with self._lock:
            return self.stats.copy()


class SnapshotCollector:
    """
    Custom collector for prometheus_client.

    The published Snapshot is immutable and replaced as a whole under
    _publish_lock, so readers see either the old or the new one.
    """

    def __init__(self, rgw_client: RGWAdminClient):
        self.rgw_client = rgw_client
        self.state = CollectorState()
        self._snapshot = Snapshot()
        self._publish_lock = threading.Lock()

    @classmethod
    def from_config(cls, config: ExporterConfig) -> "SnapshotCollector":
        return cls(RGWAdminClient.from_config(config))

    @property
    def snapshot(self) -> Snapshot:
        """Currently published snapshot (empty before the first good cycle)."""
        with self._publish_lock:
            return self._snapshot

    def _publish(self, snapshot: Snapshot) -> bool:
        # A slow cycle finishing late must not replace a newer snapshot
        with self._publish_lock:
            if snapshot.cycle < self._snapshot.cycle:
                return False
            self._snapshot = snapshot
            return True

    def poll(self) -> Optional[Snapshot]:
        """
        Run one poll cycle.

        Returns: the new snapshot, or None when the cycle was aborted.
        """
        cycle = self.state.start_cycle()
        start_time = time.time()
        logger.debug("Poll cycle %d started", cycle)

        try:
            bucket_body = expect_success(self.rgw_client.get_bucket(stats=True), BUCKET_STATS_OP)
            usage_body = expect_success(
                self.rgw_client.get_usage(show_entries=True, show_summary=False), USAGE_OP)
            samples = map_samples(bucket_body, usage_body)
        except TransportError as e:
            self.state.record_failure(e, time.time() - start_time)
            logger.error("Poll cycle %d aborted, radosgw unreachable: %s", cycle, e)
            return None
        except (UpstreamError, ParseError) as e:
            self.state.record_failure(e, time.time() - start_time)
            logger.warning("Poll cycle %d aborted: %s", cycle, e)
            return None

        duration = time.time() - start_time
        snapshot = Snapshot(samples=tuple(samples), cycle=cycle, created_at=time.time())
        published = self._publish(snapshot)
        if published:
            logger.info("Published %d samples from cycle %d in %.2fs", len(snapshot), cycle, duration)
        else:
            logger.debug("Cycle %d finished after a newer one, not published", cycle)
        self.state.record_success(len(snapshot), duration, published)
        return snapshot

    def _families(self, snapshot: Snapshot, with_samples: bool) -> List[GaugeMetricFamily]:
        present = set(snapshot.metric_names())
        families = []
        for metric in METRICS:
            # describe() lists every metric, collect() only those with samples
            if with_samples and metric.name not in present:
                continue
            family = GaugeMetricFamily(metric.name, metric.documentation, labels=list(metric.labels))
            if with_samples:
                for sample in snapshot.by_metric(metric.name):
                    family.add_metric(list(sample.label_values), sample.value)
            families.append(family)
        return families

    def describe(self) -> List[GaugeMetricFamily]:
        """Descriptors (no samples) of every exported metric."""
        self.poll()
        return self._families(self.snapshot, with_samples=False)

    def collect(self) -> List[GaugeMetricFamily]:
        """Metric families with all samples of the current snapshot."""
        self.poll()
        return self._families(self.snapshot, with_samples=True)

    def get_status(self) -> Dict[str, object]:
        snapshot = self.snapshot
        return {
            'snapshot_cycle': snapshot.cycle,
            'snapshot_samples': len(snapshot),
            'snapshot_created_at': snapshot.created_at,
            'collector_stats': self.state.get_stats(),
        }

    def close(self):
        self.rgw_client.close()
