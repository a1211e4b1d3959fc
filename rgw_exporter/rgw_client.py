"""
RGW Admin REST API client.

Every call is signed with SigV4 and sent exactly once over a shared
requests.Session. Calls return (status, body, error) and leave the
success/failure decision to the caller.
"""

import logging
import time
from datetime import datetime
from typing import Optional, Tuple
from urllib.parse import urlsplit

import requests

from .errors import ConfigError, TransportError, UpstreamError
from .models import Credential, ExporterConfig
from .signing import Params, buffer_payload, canonical_query_string, canonical_uri, sign_request


logger = logging.getLogger(__name__)

DEFAULT_ADMIN_PREFIX = "/admin"
DEFAULT_TIMEOUT = 300

# Reported in place of a real status when no response was obtained
INTERNAL_ERROR_STATUS = 500

USAGE_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"
QUOTA_TYPES = ("user", "bucket")

Response = Tuple[int, bytes, Optional[TransportError]]


def normalize_endpoint(endpoint: str) -> str:
    """Add http:// when no scheme is given and drop trailing slashes."""
    endpoint = endpoint.strip()
    if "://" not in endpoint:
        endpoint = "http://" + endpoint
    return endpoint.rstrip("/")


def is_success(status: int) -> bool:
    """Any 2xx counts as success."""
    return 200 <= status < 300


def expect_success(response: Response, operation: str = "") -> bytes:
    """
    Turn a (status, body, error) triple into the body, or raise.

    Raises:
        TransportError: no response was obtained
        UpstreamError: non-2xx status
    """
    status, body, error = response
    if error is not None:
        raise error
    if not is_success(status):
        raise UpstreamError(status, body, operation)
    return body


class RGWAdminClient:
    """Interface to the radosgw admin REST API."""

    def __init__(self, endpoint: str, access_key: str, secret_key: str,
                 prefix: str = DEFAULT_ADMIN_PREFIX, timeout: float = DEFAULT_TIMEOUT,
                 session: Optional[requests.Session] = None):
        if not endpoint or not access_key or not secret_key:
            raise ConfigError("endpoint, access key and secret key should not be empty")
        self.endpoint = normalize_endpoint(endpoint)
        parts = urlsplit(self.endpoint)
        self.host = parts.netloc
        if not self.host:
            raise ConfigError(f"invalid radosgw endpoint: {endpoint!r}")
        self.base_url = f"{parts.scheme}://{parts.netloc}"
        # Path the gateway is mounted under, e.g. behind a reverse proxy
        self.base_path = parts.path.rstrip("/")
        self.prefix = prefix
        self.timeout = timeout
        self._credential = Credential(access_key, secret_key)
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config: ExporterConfig,
                    session: Optional[requests.Session] = None) -> "RGWAdminClient":
        return cls(config.endpoint, config.access_key, config.secret_key,
                   prefix=config.admin_prefix, timeout=config.timeout, session=session)

    def __repr__(self):
        return f"RGWAdminClient(endpoint={self.endpoint!r}, prefix={self.prefix!r})"

    def send_request(self, method: str, uri: str, params: Params = None,
                     headers=None, body=None, prefix: Optional[str] = None) -> Response:
        """
        Sign and send one request.

        Returns: (status, body, error). error is a TransportError when no
        response came back, in which case status is 500 and body is empty.
        Any HTTP status, 4xx/5xx included, is returned as is.
        """
        path = self.base_path + (self.prefix if prefix is None else prefix) + uri
        payload = buffer_payload(body)
        signed_headers = sign_request(self._credential, method, self.host, path,
                                      params=params, headers=headers, body=payload)

        url = self.base_url + canonical_uri(path)
        query = canonical_query_string(params)
        if query:
            url = f"{url}?{query}"

        start_time = time.time()
        try:
            response = self.session.request(
                method, url,
                headers=signed_headers,
                data=payload or None,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            elapsed = time.time() - start_time
            logger.debug("%s %s failed after %.2fs: %s", method, path, elapsed, e)
            return INTERNAL_ERROR_STATUS, b"", TransportError(f"{method} {path}: {e}", cause=e)

        logger.debug("%s %s -> %d in %.2fs", method, path, response.status_code,
                     time.time() - start_time)
        return response.status_code, response.content, None

    def get_bucket(self, bucket: str = "", uid: str = "", stats: bool = True) -> Response:
        """
        Bucket list or stats.

        Without a bucket name the response is a JSON array: bare names when
        stats is false, stat objects when it is true. With a bucket name and
        stats it is a single stat object.
        """
        params = [("format", "json")]
        if bucket:
            params.append(("bucket", bucket))
        if uid:
            params.append(("uid", uid))
        params.append(("stats", stats))
        return self.send_request("GET", "/bucket", params)

    def get_usage(self, uid: str = "", start: Optional[datetime] = None,
                  end: Optional[datetime] = None, show_entries: bool = True,
                  show_summary: bool = False) -> Response:
        """Usage log, optionally for one user and a [start, end) range."""
        params = [("format", "json")]
        if uid:
            params.append(("uid", uid))
        if start is not None:
            params.append(("start", start.strftime(USAGE_TIME_FORMAT)))
        if end is not None:
            params.append(("end", end.strftime(USAGE_TIME_FORMAT)))
        params.append(("show-entries", show_entries))
        params.append(("show-summary", show_summary))
        return self.send_request("GET", "/usage", params)

    def get_user(self, uid: str = "") -> Response:
        params = [("format", "json")]
        if uid:
            params.append(("uid", uid))
        return self.send_request("GET", "/user", params)

    def get_quota(self, uid: str, quota_type: str = "user") -> Response:
        """User or bucket quota of a user."""
        if not uid:
            raise ValueError("user id should not be empty")
        if quota_type not in QUOTA_TYPES:
            raise ValueError(f"quota type must be one of {QUOTA_TYPES}, got {quota_type!r}")
        params = [("format", "json"), ("quota", ""), ("uid", uid), ("quota-type", quota_type)]
        return self.send_request("GET", "/user", params)

    def get_policy(self, bucket: str, obj: str = "") -> Response:
        """Policy of a bucket, or of one object in it."""
        if not bucket:
            raise ValueError("bucket name should not be empty")
        params = [("format", "json"), ("policy", ""), ("bucket", bucket)]
        if obj:
            params.append(("object", obj))
        return self.send_request("GET", "/bucket", params)

    def close(self):
        """Release pooled connections."""
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
