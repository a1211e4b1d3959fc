"""
Data models for RGW usage and bucket statistics.
"""

from dataclasses import dataclass, field
from typing import Dict, Tuple, Optional, Union

from .errors import ConfigError


@dataclass(frozen=True)
class Credential:
    """Admin user key pair. The secret never shows up in repr()."""
    access_key: str
    secret_key: str = field(repr=False)


@dataclass(frozen=True)
class BucketStat:
    """One full entry of the bucket stats response."""
    owner: str
    bucket: str
    object_count: int = 0
    size_bytes: int = 0


@dataclass(frozen=True)
class BareBucket:
    """Bucket listed by name only - no numbers available for it."""
    name: str


# Result of decoding one element of the bucket stats response
BucketEntry = Union[BucketStat, BareBucket]


@dataclass(frozen=True)
class UsageRecord:
    """One (user, bucket, category) leaf of the usage response."""
    user: str
    bucket: str
    category: str
    bytes_sent: int = 0
    bytes_received: int = 0
    ops: int = 0
    successful_ops: int = 0


@dataclass(frozen=True)
class MetricSpec:
    """Static description of one exported metric."""
    name: str
    documentation: str
    labels: Tuple[str, ...]


@dataclass(frozen=True)
class Sample:
    """One numeric value of one metric, addressed by its label values."""
    metric: str
    labels: Tuple[Tuple[str, str], ...]
    value: float

    @property
    def label_values(self) -> Tuple[str, ...]:
        return tuple(v for _, v in self.labels)

    def key(self) -> Tuple[str, Tuple[Tuple[str, str], ...]]:
        """Identity of the time series this sample belongs to."""
        return self.metric, self.labels


@dataclass(frozen=True)
class Snapshot:
    """
    Complete, immutable result of one poll cycle.

    Snapshots are never merged: a new one replaces the previous one whole.
    """
    samples: Tuple[Sample, ...] = ()
    cycle: int = 0
    created_at: Optional[float] = None

    def __len__(self) -> int:
        return len(self.samples)

    def metric_names(self) -> Tuple[str, ...]:
        """Metric names present in this snapshot, in first-seen order."""
        seen = {}
        for sample in self.samples:
            seen.setdefault(sample.metric, None)
        return tuple(seen)

    def by_metric(self, name: str) -> Tuple[Sample, ...]:
        return tuple(s for s in self.samples if s.metric == name)

    def to_dict(self) -> Dict[str, object]:
        """Plain-dict form, handy for JSON dumps and comparisons."""
        return {
            'cycle': self.cycle,
            'created_at': self.created_at,
            'samples': [
                {'metric': s.metric, 'labels': dict(s.labels), 'value': s.value}
                for s in self.samples
            ],
        }


@dataclass
class ExporterConfig:
    """Configuration for the exporter."""
    endpoint: str = "127.0.0.1:8080"
    access_key: str = ""
    secret_key: str = field(default="", repr=False)
    admin_prefix: str = "/admin"

    # Exposition
    listen_addr: str = "127.0.0.1:9129"
    metrics_path: str = "/metrics"

    # Upstream request timeout, seconds
    timeout: float = 300

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    def __post_init__(self):
        if not self.endpoint or not self.endpoint.strip():
            raise ConfigError("endpoint of the radosgw service should not be empty")
        if not self.access_key or not self.secret_key:
            raise ConfigError("invalid admin access key / secret key for the radosgw service")
        if not self.metrics_path.startswith("/"):
            raise ConfigError(f"metrics path must start with '/': {self.metrics_path!r}")
        if self.timeout <= 0:
            raise ConfigError(f"timeout must be positive, got {self.timeout}")
        # Fail early on a bad listen address
        self.listen_host_port()

    @property
    def credential(self) -> Credential:
        return Credential(self.access_key, self.secret_key)

    def listen_host_port(self) -> Tuple[str, int]:
        """Split listen_addr into (host, port)."""
        host, sep, port = self.listen_addr.rpartition(":")
        if not sep or not port.isdigit():
            raise ConfigError(f"invalid listen address: {self.listen_addr!r}")
        port_num = int(port)
        if not 0 <= port_num <= 65535:
            raise ConfigError(f"invalid listen port: {port}")
        return host.strip("[]") or "0.0.0.0", port_num
