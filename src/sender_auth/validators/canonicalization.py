"""DKIM canonicalization algorithms (RFC 6376 section 3.4)."""

import re
from enum import Enum

_LINE_BREAK_RE = re.compile(r"\r\n|\r|\n")
_TRAILING_LINE_BREAK_RE = re.compile(r"\r?\n\Z")
_WSP_RUN_RE = re.compile(r"[ \t]+")
_TRAILING_CRLFS_RE = re.compile(r"(?:\r\n)+\Z")

CRLF = "\r\n"


class CanonicalizationMode(str, Enum):
    """DKIM canonicalization algorithm."""

    SIMPLE = "simple"
    RELAXED = "relaxed"


def canonicalize_header(header: str, mode: CanonicalizationMode) -> str:
    """
    Canonicalize one header field.

    The result never ends in CRLF; callers add line framing.

    Args:
        header: Full header field, ``Name: value``, possibly folded
        mode: Canonicalization algorithm

    Returns:
        Canonical header field

    Example:
        >>> canonicalize_header("From:   Sender   <a@example.com>  ", CanonicalizationMode.RELAXED)
        'from:Sender <a@example.com>'
    """
    text = _TRAILING_LINE_BREAK_RE.sub("", header)

    if mode == CanonicalizationMode.SIMPLE:
        return text

    # Unfold, then collapse whitespace runs
    text = _LINE_BREAK_RE.sub("", text)
    name, sep, value = text.partition(":")
    if not sep:
        return _WSP_RUN_RE.sub(" ", text).strip(" \t").lower()

    name = name.strip(" \t").lower()
    value = _WSP_RUN_RE.sub(" ", value).strip(" \t")
    return f"{name}:{value}"


def canonicalize_body(body: str, mode: CanonicalizationMode) -> str:
    """
    Canonicalize a message body.

    Line endings become CRLF and trailing empty lines are removed. The result
    always ends with exactly one CRLF, so an empty body canonicalizes to a
    lone CRLF in both modes.

    Args:
        body: Message body
        mode: Canonicalization algorithm

    Returns:
        Canonical body
    """
    text = _normalize_line_endings(body)

    if mode == CanonicalizationMode.SIMPLE:
        return _TRAILING_CRLFS_RE.sub("", text) + CRLF

    lines = [_WSP_RUN_RE.sub(" ", line).rstrip(" \t") for line in text.split(CRLF)]
    while lines and lines[-1] == "":
        lines.pop()

    return CRLF.join(lines) + CRLF


def _normalize_line_endings(text: str) -> str:
    # Bare CR is left alone; only LF and CRLF terminate lines
    return re.sub(r"\r?\n", CRLF, text)
