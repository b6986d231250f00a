"""DNS resolution port used by the SPF and DKIM validators."""

from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class MXRecord:
    """A single MX answer."""

    priority: int
    exchange: str


@runtime_checkable
class DNSResolver(Protocol):
    """
    Capability set the validators need from DNS.

    Implementations return an empty list when the name does not exist or has
    no records of the requested type, and raise
    :class:`~sender_auth.exceptions.DNSLookupError` (or its
    :class:`~sender_auth.exceptions.DNSTimeoutError` subclass) on timeouts and
    server failures.

    Example:
        >>> resolver = MockDNSResolver()
        >>> resolver.set_txt_record("example.com", ["v=spf1 -all"])
        >>> validator = SPFValidator(resolver)
    """

    def resolve_txt(self, name: str) -> list[str]:
        """Return TXT records for ``name``, each with its strings joined."""
        ...

    def resolve_a(self, name: str) -> list[str]:
        """Return IPv4 addresses for ``name``."""
        ...

    def resolve_aaaa(self, name: str) -> list[str]:
        """Return IPv6 addresses for ``name``."""
        ...

    def resolve_mx(self, name: str) -> list[MXRecord]:
        """Return MX records for ``name``."""
        ...
