"""Minimal RFC 5322 header block handling for DKIM.

This is not a MIME parser: it only splits a raw message into its header
block and body, and the header block into (still folded) fields.
"""

import re

_HEADER_BODY_SEPARATOR_RE = re.compile(r"\r?\n\r?\n")
_LINE_RE = re.compile(r"\r?\n")

DKIM_SIGNATURE_HEADER = "dkim-signature"


def split_message(raw: str) -> tuple[str, str]:
    """
    Split a raw message into header block and body.

    Args:
        raw: Complete message text

    Returns:
        (headers, body); body is empty when the message has no blank line
    """
    match = _HEADER_BODY_SEPARATOR_RE.search(raw)
    if not match:
        return raw, ""
    return raw[: match.start()], raw[match.end() :]


def split_header_fields(headers: str) -> list[str]:
    """
    Split a header block into fields, keeping folded continuation lines.

    Continuation lines are joined back with CRLF so that simple
    canonicalization sees the original folding.
    """
    fields: list[str] = []
    for line in _LINE_RE.split(headers):
        if line[:1] in (" ", "\t") and fields:
            fields[-1] += "\r\n" + line
        elif line:
            fields.append(line)
    return fields


def field_name(header_field: str) -> str:
    """Lower-cased field name of a header field."""
    return header_field.split(":", 1)[0].strip().lower()


def field_value(header_field: str) -> str:
    """Raw value of a header field (everything after the first colon)."""
    return header_field.split(":", 1)[1] if ":" in header_field else ""


def get_header_fields(headers: str, name: str) -> list[str]:
    """All fields named ``name``, top to bottom."""
    wanted = name.lower()
    return [f for f in split_header_fields(headers) if ":" in f and field_name(f) == wanted]


def get_dkim_signatures(headers: str) -> list[str]:
    """Raw values of every DKIM-Signature field, top to bottom."""
    return [field_value(f) for f in get_header_fields(headers, DKIM_SIGNATURE_HEADER)]
