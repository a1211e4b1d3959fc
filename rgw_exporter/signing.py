"""
AWS Signature Version 4 signing for RGW admin requests.

RGW authenticates admin API calls exactly like S3 calls. The credential
scope is pinned to us-east-1/s3 because that is what the gateway's
validator expects, whatever region the cluster really serves.

Signing is a pure transform: the same request, credential and timestamp
always produce the same headers.
"""

import hashlib
import hmac
from datetime import datetime, timezone
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union
from urllib.parse import quote, urlencode

from .models import Credential


SIGN_ALGORITHM = "AWS4-HMAC-SHA256"
SIGN_REGION = "us-east-1"
SIGN_SERVICE = "s3"
SIGN_TERMINATOR = "aws4_request"
SIGN_KEY_PREFIX = "AWS4"

TIMESTAMP_FORMAT = "%Y%m%dT%H%M%SZ"

# Besides these, every x-amz-* header is signed
SIGNED_HEADERS = frozenset(("content-type", "content-md5", "host"))
AMZ_HEADER_PREFIX = "x-amz-"

DEFAULT_CONTENT_TYPE = "application/x-www-form-urlencoded; charset=utf-8"

EMPTY_PAYLOAD_HASH = hashlib.sha256(b"").hexdigest()

Params = Union[Mapping[str, object], Sequence[Tuple[str, object]], None]


def _sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def _hmac_sha256(key: bytes, msg: str) -> bytes:
    return hmac.new(key, msg.encode("utf-8"), hashlib.sha256).digest()


def buffer_payload(body) -> bytes:
    """
    Return the request body as bytes.

    File-like bodies are read once and rewound when possible, so the
    caller can still send the same stream (or just send the returned bytes).
    """
    if body is None:
        return b""
    if isinstance(body, bytes):
        return body
    if isinstance(body, (bytearray, memoryview)):
        return bytes(body)
    if isinstance(body, str):
        return body.encode("utf-8")

    start = body.tell() if hasattr(body, "tell") else None
    data = body.read()
    if start is not None and getattr(body, "seekable", lambda: False)():
        body.seek(start)
    if isinstance(data, str):
        data = data.encode("utf-8")
    return data or b""


def canonical_uri(path: str) -> str:
    """Percent-encode everything but unreserved characters and '/'."""
    if path.startswith("/"):
        path = path[1:]
    return "/" + quote(path, safe="/")


def _param_value(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def param_pairs(params: Params) -> List[Tuple[str, str]]:
    """Flatten a mapping or pair sequence into (key, value) strings."""
    if not params:
        return []
    items = params.items() if isinstance(params, Mapping) else params
    pairs = []
    for key, value in items:
        if isinstance(value, (list, tuple)):
            pairs.extend((str(key), _param_value(v)) for v in value)
        else:
            pairs.append((str(key), _param_value(value)))
    return pairs


def canonical_query_string(params: Params) -> str:
    """
    Sorted, URL-encoded query string with spaces as %20.

    Sorting is by key only and stable, so repeated keys keep their order.
    """
    pairs = sorted(param_pairs(params), key=lambda kv: kv[0])
    return urlencode(pairs).replace("+", "%20")


def _strip_default_port(host: str) -> str:
    for suffix in (":80", ":443"):
        if host.endswith(suffix):
            return host[:-len(suffix)]
    return host


def canonical_headers(headers: Mapping[str, str]) -> Tuple[str, str]:
    """
    Build the canonical header block and the signed header list.

    Returns: (block, signed_headers) where block is "name:value\\n" per
    header and signed_headers is the ';'-joined sorted names.
    """
    selected: Dict[str, str] = {}
    for name, value in headers.items():
        lname = name.lower()
        if lname not in SIGNED_HEADERS and not lname.startswith(AMZ_HEADER_PREFIX):
            continue
        value = str(value).strip()
        if lname == "host":
            value = _strip_default_port(value)
        selected[lname] = value

    names = sorted(selected)
    block = "".join(f"{name}:{selected[name]}\n" for name in names)
    return block, ";".join(names)


def canonical_request(method: str, path: str, params: Params,
                      headers: Mapping[str, str], payload_hash: str) -> Tuple[str, str]:
    """
    Build the canonical request.

    Returns: (canonical_request, signed_headers)
    """
    header_block, signed_headers = canonical_headers(headers)
    request = "\n".join([
        method.upper(),
        canonical_uri(path),
        canonical_query_string(params),
        header_block,
        signed_headers,
        payload_hash,
    ])
    return request, signed_headers


def credential_scope(date_stamp: str) -> str:
    return f"{date_stamp}/{SIGN_REGION}/{SIGN_SERVICE}/{SIGN_TERMINATOR}"


def string_to_sign(amz_date: str, scope: str, canonical: str) -> str:
    return "\n".join([
        SIGN_ALGORITHM,
        amz_date,
        scope,
        _sha256_hex(canonical.encode("utf-8")),
    ])


def derive_signing_key(secret_key: str, date_stamp: str) -> bytes:
    """Four-step HMAC chain: date, region, service, terminator."""
    k_date = _hmac_sha256((SIGN_KEY_PREFIX + secret_key).encode("utf-8"), date_stamp)
    k_region = _hmac_sha256(k_date, SIGN_REGION)
    k_service = _hmac_sha256(k_region, SIGN_SERVICE)
    return _hmac_sha256(k_service, SIGN_TERMINATOR)


def _find_header(headers: Mapping[str, str], name: str) -> Optional[str]:
    lname = name.lower()
    for key in headers:
        if key.lower() == lname:
            return key
    return None


def _set_header(headers: Dict[str, str], name: str, value: str):
    existing = _find_header(headers, name)
    while existing is not None:
        del headers[existing]
        existing = _find_header(headers, name)
    headers[name] = value


def _utc(timestamp: Optional[datetime]) -> datetime:
    if timestamp is None:
        return datetime.now(timezone.utc)
    if timestamp.tzinfo is None:
        return timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(timezone.utc)


def sign_request(credential: Credential, method: str, host: str, path: str,
                 params: Params = None, headers: Optional[Mapping[str, str]] = None,
                 body=None, timestamp: Optional[datetime] = None) -> Dict[str, str]:
    """
    Sign one request and return the full header set to send with it.

    The input headers are not modified. The result adds X-Amz-Content-Sha256,
    X-Amz-Date, Host, Authorization and, when the caller set none,
    a default Content-Type.

    Args:
        credential: Admin key pair
        method: HTTP method
        host: Host header value (port included, :80/:443 are not signed)
        path: Request path, not yet encoded
        params: Query parameters
        headers: Extra request headers
        body: bytes, str, file-like or None
        timestamp: Signing time; now (UTC) when omitted
    """
    when = _utc(timestamp)
    amz_date = when.strftime(TIMESTAMP_FORMAT)
    date_stamp = amz_date[:8]

    payload_hash = _sha256_hex(buffer_payload(body))

    signed = {str(k): str(v) for k, v in (headers or {}).items()}
    _set_header(signed, "X-Amz-Content-Sha256", payload_hash)
    _set_header(signed, "X-Amz-Date", amz_date)
    if _find_header(signed, "Content-Type") is None:
        signed["Content-Type"] = DEFAULT_CONTENT_TYPE
    _set_header(signed, "Host", host)
    existing_auth = _find_header(signed, "Authorization")
    if existing_auth is not None:
        del signed[existing_auth]

    canonical, signed_headers = canonical_request(method, path, params, signed, payload_hash)
    scope = credential_scope(date_stamp)
    to_sign = string_to_sign(amz_date, scope, canonical)

    signing_key = derive_signing_key(credential.secret_key, date_stamp)
    signature = hmac.new(signing_key, to_sign.encode("utf-8"), hashlib.sha256).hexdigest()

    signed["Authorization"] = (
        f"{SIGN_ALGORITHM} Credential={credential.access_key}/{scope}, "
        f"SignedHeaders={signed_headers}, Signature={signature}"
    )
    return signed
