"""Shared fixtures: an in-memory resolver and a DKIM message signer.

The signer builds signatures with ``cryptography`` directly and its own
small canonicalization code, so verification is checked against an
implementation that does not share code with the validator.
"""

import base64
import hashlib
import logging
import re

import pytest
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ed25519, padding, rsa

from sender_auth.constants import TUNABLE_LOGGERS
from sender_auth.resolvers import MockDNSResolver
from sender_auth.utils.debug_stats import get_stats_tracker

CRLF = "\r\n"

DEFAULT_HEADERS = [
    "From: Alice <alice@example.com>",
    "To: bob@example.net",
    "Subject: Quarterly report",
    "Date: Mon, 05 Jan 2026 10:00:00 +0000",
    "Message-ID: <20260105100000.1234@example.com>",
]
DEFAULT_BODY = "Hello Bob," + CRLF + CRLF + "The report is attached." + CRLF


# ============================================================================
# Signing helpers
# ============================================================================


def _relaxed_header(field: str) -> str:
    name, _, value = field.replace(CRLF, "").partition(":")
    return name.strip().lower() + ":" + " ".join(value.split())


def _canonical_header(field: str, mode: str) -> str:
    return field if mode == "simple" else _relaxed_header(field)


def _canonical_body(body: str, mode: str) -> str:
    lines = body.replace(CRLF, "\n").split("\n")
    if mode == "relaxed":
        lines = [re.sub(r"[ \t]+", " ", line).rstrip(" \t") for line in lines]
    while lines and lines[-1] == "":
        lines.pop()
    return CRLF.join(lines) + CRLF


def public_key_record(private_key, extra: str = "") -> str:
    """DKIM key record publishing the public half of ``private_key``."""
    public_key = private_key.public_key()
    if isinstance(private_key, ed25519.Ed25519PrivateKey):
        raw = public_key.public_bytes(serialization.Encoding.Raw, serialization.PublicFormat.Raw)
        key_type = "ed25519"
    else:
        raw = public_key.public_bytes(
            serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo
        )
        key_type = "rsa"
    record = f"v=DKIM1; k={key_type}; p={base64.b64encode(raw).decode('ascii')}"
    return record + extra


def sign_message(
    private_key,
    headers: list[str] | None = None,
    body: str = DEFAULT_BODY,
    domain: str = "example.com",
    selector: str = "s1",
    algorithm: str = "rsa-sha256",
    canonicalization: str = "relaxed/relaxed",
    signed_headers: tuple[str, ...] = ("from", "to", "subject", "date"),
    extra_tags: str = "",
    body_length: int | None = None,
) -> tuple[str, str, str]:
    """
    Sign a message and return ``(headers, body, dkim_signature_value)``.

    The returned header block starts with the DKIM-Signature field and has
    no trailing line break, matching ``split_message`` output.
    """
    headers = list(headers or DEFAULT_HEADERS)
    header_mode, _, body_mode = canonicalization.partition("/")
    body_mode = body_mode or "simple"
    hash_name = algorithm.split("-", 1)[1]
    hash_function = getattr(hashlib, hash_name)

    canonical_body = _canonical_body(body, body_mode).encode("utf-8")
    if body_length is not None:
        canonical_body = canonical_body[:body_length]
        extra_tags += f" l={body_length};"
    body_hash = base64.b64encode(hash_function(canonical_body).digest()).decode("ascii")

    unsigned_value = (
        f" v=1; a={algorithm}; c={canonicalization}; d={domain}; s={selector};"
        f"{extra_tags} h={':'.join(signed_headers)}; bh={body_hash}; b="
    )

    remaining = list(headers)
    parts = []
    for name in signed_headers:
        for field in reversed(remaining):
            if field.split(":", 1)[0].strip().lower() == name:
                parts.append(_canonical_header(field, header_mode) + CRLF)
                remaining.remove(field)
                break
    parts.append(_canonical_header("DKIM-Signature:" + unsigned_value, header_mode))
    data = "".join(parts).encode("utf-8")

    if algorithm == "ed25519-sha256":
        signature = private_key.sign(hashlib.sha256(data).digest())
    else:
        crypto_hash = hashes.SHA1() if hash_name == "sha1" else hashes.SHA256()
        signature = private_key.sign(data, padding.PKCS1v15(), crypto_hash)

    value = unsigned_value + base64.b64encode(signature).decode("ascii")
    header_block = CRLF.join(["DKIM-Signature:" + value] + headers)
    return header_block, body, value


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture(scope="session")
def rsa_private_key():
    """2048-bit RSA signing key shared by the whole session."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def ed25519_private_key():
    """Ed25519 signing key shared by the whole session."""
    return ed25519.Ed25519PrivateKey.generate()


@pytest.fixture
def mock_dns():
    """Empty in-memory resolver."""
    return MockDNSResolver()


@pytest.fixture(autouse=True)
def _reset_global_state():
    """Undo logger handlers and debug statistics left behind by CLI runs."""
    yield
    logging.getLogger("sender_auth").handlers.clear()
    logging.getLogger("sender_auth").setLevel(logging.NOTSET)
    for component in TUNABLE_LOGGERS:
        logging.getLogger(f"sender_auth.{component}").setLevel(logging.NOTSET)
    tracker = get_stats_tracker()
    tracker.disable()
    tracker.reset()


@pytest.fixture
def signer():
    """The :func:`sign_message` helper."""
    return sign_message


@pytest.fixture
def key_record():
    """The :func:`public_key_record` helper."""
    return public_key_record
