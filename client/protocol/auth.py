# client/protocol/auth.py
"""
Handshake signing for the IAT WebSocket endpoint.

Signing string (three lines, newline-joined, no trailing newline):

    host: <host>
    date: <RFC 1123 date>
    GET <path> HTTP/1.1

signature      = base64(HMAC-SHA256(api_secret, signing string))
descriptor     = api_key="..", algorithm="hmac-sha256",
                 headers="host date request-line", signature=".."
authorization  = base64(descriptor)

Connection URL:

    wss://<host><path>?authorization=<authorization>&date=<urlencoded date>&host=<host>

NOTE: `authorization` goes into the query string as raw base64 (not
url-encoded) while `date` IS url-encoded. This asymmetry matches the
provider's published example URL; keep it unless the provider says otherwise.

Also here: the `signa` used by the recorded-file upload API.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import time
from dataclasses import dataclass
from email.utils import formatdate
from urllib.parse import quote

from spec import AUTH_ALGORITHM, AUTH_SIGNED_HEADERS


@dataclass(frozen=True)
class Authorization:
    """Result of signing one handshake."""
    signature: str
    authorization_header: str
    date: str


def rfc1123_date(ts: float | None = None) -> str:
    """Format a POSIX timestamp (default: now) as an RFC 1123 GMT date."""
    return formatdate(timeval=time.time() if ts is None else ts, usegmt=True)


def signing_string(host: str, path: str, date: str) -> str:
    return f"host: {host}\ndate: {date}\nGET {path} HTTP/1.1"


def build_authorization(
    host: str,
    path: str,
    api_key: str,
    api_secret: str,
    date: str | None = None,
) -> Authorization:
    """
    Sign a handshake for (host, path) at `date` (default: now).

    Pure for fixed inputs: the same host/path/date/key/secret always yield
    the same signature and header.
    """
    date = date or rfc1123_date()
    digest = hmac.new(
        api_secret.encode("utf-8"),
        signing_string(host, path, date).encode("utf-8"),
        hashlib.sha256,
    ).digest()
    signature = base64.b64encode(digest).decode("ascii")

    descriptor = (
        f'api_key="{api_key}", algorithm="{AUTH_ALGORITHM}", '
        f'headers="{AUTH_SIGNED_HEADERS}", signature="{signature}"'
    )
    header = base64.b64encode(descriptor.encode("utf-8")).decode("ascii")

    return Authorization(signature=signature, authorization_header=header, date=date)


def build_connection_url(
    host: str,
    path: str,
    api_key: str,
    api_secret: str,
    date: str | None = None,
) -> str:
    """Signed wss:// URL for one connection attempt."""
    auth = build_authorization(host, path, api_key, api_secret, date)
    return (
        f"wss://{host}{path}"
        f"?authorization={auth.authorization_header}"
        f"&date={quote(auth.date, safe='')}"
        f"&host={host}"
    )


def build_signa(app_id: str, ts: int, secret_key: str) -> str:
    """
    Recorded-file API signature: base64(HMAC-SHA1(secret_key, md5_hex(app_id + ts))).
    """
    base = hashlib.md5(f"{app_id}{ts}".encode("utf-8")).hexdigest()
    digest = hmac.new(secret_key.encode("utf-8"), base.encode("utf-8"), hashlib.sha1).digest()
    return base64.b64encode(digest).decode("ascii")
