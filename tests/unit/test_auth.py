# pylint: disable=missing-module-docstring,missing-function-docstring

import base64
import hashlib
import hmac
from urllib.parse import parse_qs, urlsplit

from protocol.auth import (
    build_authorization,
    build_connection_url,
    build_signa,
    rfc1123_date,
    signing_string,
)

HOST = "iat.xf-yun.com"
PATH = "/v1"
DATE = "Thu, 01 Jan 1970 00:00:00 GMT"


def test_rfc1123_date_format() -> None:
    assert rfc1123_date(0) == DATE


def test_signing_string_is_three_lines_without_trailing_newline() -> None:
    s = signing_string(HOST, PATH, DATE)

    assert s == f"host: {HOST}\ndate: {DATE}\nGET {PATH} HTTP/1.1"
    assert not s.endswith("\n")


def test_signature_is_hmac_sha256_of_signing_string() -> None:
    auth = build_authorization(HOST, PATH, "key", "secret", DATE)

    expected = base64.b64encode(
        hmac.new(b"secret", signing_string(HOST, PATH, DATE).encode(), hashlib.sha256).digest()
    ).decode()
    assert auth.signature == expected
    assert auth.date == DATE


def test_authorization_header_decodes_to_descriptor() -> None:
    auth = build_authorization(HOST, PATH, "my-key", "secret", DATE)

    descriptor = base64.b64decode(auth.authorization_header).decode()

    assert descriptor == (
        'api_key="my-key", algorithm="hmac-sha256", '
        f'headers="host date request-line", signature="{auth.signature}"'
    )


def test_signing_is_deterministic_for_fixed_inputs() -> None:
    a = build_authorization(HOST, PATH, "key", "secret", DATE)
    b = build_authorization(HOST, PATH, "key", "secret", DATE)
    c = build_authorization(HOST, PATH, "key", "other-secret", DATE)

    assert a == b
    assert a.signature != c.signature


def test_url_encodes_date_but_not_authorization() -> None:
    url = build_connection_url(HOST, PATH, "key", "secret", DATE)
    auth = build_authorization(HOST, PATH, "key", "secret", DATE)

    parts = urlsplit(url)
    assert parts.scheme == "wss"
    assert parts.netloc == HOST
    assert parts.path == PATH

    assert f"authorization={auth.authorization_header}&" in url
    assert "date=Thu%2C%2001%20Jan%201970%2000%3A00%3A00%20GMT&" in url
    assert url.endswith(f"&host={HOST}")
    assert parse_qs(parts.query)["date"] == [DATE]


def test_signa_matches_hmac_sha1_of_md5() -> None:
    md5_hex = hashlib.md5(b"app1700000000").hexdigest()
    expected = base64.b64encode(
        hmac.new(b"sk", md5_hex.encode(), hashlib.sha1).digest()
    ).decode()

    assert build_signa("app", 1700000000, "sk") == expected
