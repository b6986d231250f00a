"""Exception hierarchy for sender authentication.

These exceptions are raised inside the validators and converted into
``AuthResult`` values at the ``validate``/``verify`` boundary. Callers of the
public validator API never see them, with the exception of
``DKIMValidator.get_public_key`` and ``DKIMValidator.parse_signature`` which
are documented to raise.
"""


class SenderAuthError(Exception):
    """Base class for all sender-auth errors."""


# ============================================================================
# DNS
# ============================================================================


class DNSLookupError(SenderAuthError):
    """A DNS query failed for a reason other than the name having no data."""

    def __init__(self, name: str, record_type: str, reason: str = "lookup failed"):
        self.name = name
        self.record_type = record_type
        self.reason = reason
        super().__init__(f"DNS {record_type} lookup for {name} failed: {reason}")


class DNSTimeoutError(DNSLookupError):
    """A DNS query timed out."""

    def __init__(self, name: str, record_type: str):
        super().__init__(name, record_type, reason="timeout")


# ============================================================================
# SPF
# ============================================================================


class SPFError(SenderAuthError):
    """Base class for SPF evaluation errors."""


class SPFPermError(SPFError):
    """Permanent SPF error: the policy is broken and will not succeed on retry."""


class SPFParseError(SPFPermError):
    """SPF record syntax error."""


class SPFLookupLimitError(SPFPermError):
    """The evaluation needed more DNS lookups than allowed."""

    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(f"DNS lookup limit exceeded (max {limit})")


# ============================================================================
# DKIM
# ============================================================================


class DKIMError(SenderAuthError):
    """Base class for DKIM errors."""


class DKIMParseError(DKIMError):
    """DKIM-Signature header could not be parsed."""


class DKIMKeyNotFoundError(DKIMError):
    """No key record is published at selector._domainkey.domain."""


class DKIMKeyFormatError(DKIMError):
    """The published public key could not be decoded."""
