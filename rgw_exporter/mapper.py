"""
Turns the bucket stats and usage responses into a flat list of samples.

Nothing here keeps state between calls: the output depends only on the two
documents passed in.
"""

import json
import logging
from typing import Any, Dict, List, Tuple

from .errors import ParseError
from .models import BareBucket, BucketEntry, BucketStat, MetricSpec, Sample, UsageRecord


logger = logging.getLogger(__name__)

NAMESPACE = "radosgw"
MAIN_STORAGE_CATEGORY = "rgw.main"

BUCKET_LABELS = ("user", "bucket")
USAGE_LABELS = ("user", "bucket", "api")

OBJECT_COUNT = MetricSpec(f"{NAMESPACE}_object_count", "Total number of objects in the bucket",
                          BUCKET_LABELS)
CAPACITY_BYTES = MetricSpec(f"{NAMESPACE}_capacity_bytes",
                            "Current disk space used by all objects of the bucket", BUCKET_LABELS)
BYTES_SENT = MetricSpec(f"{NAMESPACE}_bytes_sent_total", "Total bytes sent by the gateway",
                        USAGE_LABELS)
BYTES_RECV = MetricSpec(f"{NAMESPACE}_bytes_recv_total", "Total bytes received by the gateway",
                        USAGE_LABELS)
OPS = MetricSpec(f"{NAMESPACE}_ops_total", "Total number of operations", USAGE_LABELS)
OPS_OK = MetricSpec(f"{NAMESPACE}_ops_ok_total", "Total number of successful operations",
                    USAGE_LABELS)

METRICS = (OBJECT_COUNT, CAPACITY_BYTES, BYTES_SENT, BYTES_RECV, OPS, OPS_OK)
METRICS_BY_NAME = {m.name: m for m in METRICS}

BUCKET_STATS_OP = "bucket stats"
USAGE_OP = "usage"


def load_json(payload: Any, operation: str = "") -> Any:
    """Decode bytes/str into JSON; already decoded documents pass through."""
    if isinstance(payload, (bytes, bytearray)):
        try:
            payload = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ParseError(f"response is not UTF-8: {e}", operation)
    if isinstance(payload, str):
        try:
            return json.loads(payload)
        except json.JSONDecodeError as e:
            raise ParseError(f"invalid JSON: {e}", operation)
    return payload


def _number(value: Any, name: str, operation: str):
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ParseError(f"{name} is not a number: {value!r}", operation)
    return value


def _expect(value: Any, kind: type, what: str, operation: str):
    if not isinstance(value, kind):
        raise ParseError(f"{what} should be {kind.__name__}, got {type(value).__name__}", operation)
    return value


def decode_bucket_entry(raw: Any) -> BucketEntry:
    """
    Decode one element of the bucket stats response.

    A string is a bare bucket name; an object is a full stat entry.
    Anything else is rejected before looking inside it.
    """
    if isinstance(raw, str):
        return BareBucket(raw)
    if not isinstance(raw, dict):
        raise ParseError(f"unexpected bucket entry: {raw!r}", BUCKET_STATS_OP)

    bucket = raw.get("bucket")
    if not isinstance(bucket, str) or not bucket:
        raise ParseError("bucket stat entry without a bucket name", BUCKET_STATS_OP)
    owner = raw.get("owner") or ""
    _expect(owner, str, f"owner of {bucket}", BUCKET_STATS_OP)

    usage = _expect(raw.get("usage") or {}, dict, f"usage of {bucket}", BUCKET_STATS_OP)
    # Empty buckets have no rgw.main section
    main = _expect(usage.get(MAIN_STORAGE_CATEGORY) or {}, dict,
                   f"{MAIN_STORAGE_CATEGORY} usage of {bucket}", BUCKET_STATS_OP)

    return BucketStat(
        owner=owner,
        bucket=bucket,
        object_count=_number(main.get("num_objects"), "num_objects", BUCKET_STATS_OP),
        size_bytes=_number(main.get("size"), "size", BUCKET_STATS_OP),
    )


def decode_bucket_stats(payload: Any) -> List[BucketEntry]:
    """Decode the bucket stats response: an array of entries or one stat object."""
    doc = load_json(payload, BUCKET_STATS_OP)
    if isinstance(doc, list):
        return [decode_bucket_entry(raw) for raw in doc]
    if isinstance(doc, dict):
        return [decode_bucket_entry(doc)]
    raise ParseError(f"unexpected top level type {type(doc).__name__}", BUCKET_STATS_OP)


def decode_usage(payload: Any) -> List[UsageRecord]:
    """Flatten entries -> buckets -> categories into usage records."""
    doc = _expect(load_json(payload, USAGE_OP), dict, "usage response", USAGE_OP)
    entries = _expect(doc.get("entries") or [], list, "entries", USAGE_OP)

    records = []
    for entry in entries:
        _expect(entry, dict, "usage entry", USAGE_OP)
        user = entry.get("user") or entry.get("owner") or ""
        for bucket in _expect(entry.get("buckets") or [], list, f"buckets of {user}", USAGE_OP):
            _expect(bucket, dict, f"bucket entry of {user}", USAGE_OP)
            bucket_name = bucket.get("bucket") or ""
            categories = _expect(bucket.get("categories") or [], list,
                                 f"categories of {user}/{bucket_name}", USAGE_OP)
            for category in categories:
                _expect(category, dict, "usage category", USAGE_OP)
                records.append(UsageRecord(
                    user=user,
                    bucket=bucket_name,
                    category=category.get("category") or "",
                    bytes_sent=_number(category.get("bytes_sent"), "bytes_sent", USAGE_OP),
                    bytes_received=_number(category.get("bytes_received"), "bytes_received",
                                           USAGE_OP),
                    ops=_number(category.get("ops"), "ops", USAGE_OP),
                    successful_ops=_number(category.get("successful_ops"), "successful_ops",
                                           USAGE_OP),
                ))
    return records


def _labels(names: Tuple[str, ...], values: Tuple[str, ...]) -> Tuple[Tuple[str, str], ...]:
    return tuple(zip(names, values))


def map_bucket_stats(entries: List[BucketEntry]) -> List[Sample]:
    """Two samples per stat entry; bare names contribute nothing."""
    samples = []
    seen = set()
    for entry in entries:
        if not isinstance(entry, BucketStat):
            continue
        key = (entry.owner, entry.bucket)
        if key in seen:
            logger.warning("Duplicate stats for bucket %s of %s, keeping the first one",
                           entry.bucket, entry.owner)
            continue
        seen.add(key)
        labels = _labels(BUCKET_LABELS, key)
        samples.append(Sample(OBJECT_COUNT.name, labels, float(entry.object_count)))
        samples.append(Sample(CAPACITY_BYTES.name, labels, float(entry.size_bytes)))
    return samples


def map_usage(records: List[UsageRecord]) -> List[Sample]:
    """
    Four samples per (user, bucket, category).

    The usage log repeats a bucket once per time slice, so records sharing a
    label set are summed.
    """
    totals: Dict[Tuple[str, str, str], List[float]] = {}
    for record in records:
        key = (record.user, record.bucket, record.category)
        values = totals.setdefault(key, [0, 0, 0, 0])
        values[0] += record.bytes_sent
        values[1] += record.bytes_received
        values[2] += record.ops
        values[3] += record.successful_ops

    samples = []
    for key, (sent, received, ops, ok) in totals.items():
        labels = _labels(USAGE_LABELS, key)
        samples.append(Sample(BYTES_SENT.name, labels, float(sent)))
        samples.append(Sample(BYTES_RECV.name, labels, float(received)))
        samples.append(Sample(OPS.name, labels, float(ops)))
        samples.append(Sample(OPS_OK.name, labels, float(ok)))
    return samples


def map_samples(bucket_payload: Any, usage_payload: Any) -> List[Sample]:
    """Full sample list for one poll cycle."""
    samples = map_bucket_stats(decode_bucket_stats(bucket_payload))
    samples.extend(map_usage(decode_usage(usage_payload)))
    return samples
