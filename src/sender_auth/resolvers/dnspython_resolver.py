"""Production DNS resolver backed by dnspython."""

import logging

import dns.exception
import dns.resolver

from ..constants import DEFAULT_DNS_PUBLIC_SERVERS, DEFAULT_DNS_TIMEOUT
from ..exceptions import DNSLookupError, DNSTimeoutError
from ..utils.debug_stats import get_stats_tracker
from .base import MXRecord

logger = logging.getLogger(__name__)


def create_resolver(
    nameservers: list[str] | None = None,
    timeout: float = DEFAULT_DNS_TIMEOUT,
) -> dns.resolver.Resolver:
    """
    Create a DNS resolver with fallback to public DNS servers.

    Args:
        nameservers: Custom nameservers to use (optional).
                    If None, will try system DNS first, then fallback to public DNS.
        timeout: DNS query timeout in seconds (default: 5.0)

    Returns:
        Configured DNS resolver ready for use

    Example:
        >>> resolver = create_resolver(timeout=10.0)
        >>> answers = resolver.resolve('example.com', 'TXT')
    """
    # Try to create resolver with system config, fallback to manual config
    try:
        resolver = dns.resolver.Resolver()
        if not resolver.nameservers:
            raise dns.resolver.NoResolverConfiguration("no nameservers")
    except (dns.resolver.NoResolverConfiguration, OSError):
        resolver = dns.resolver.Resolver(configure=False)
        logger.debug("System DNS not available, using public DNS servers")

    if nameservers:
        resolver.nameservers = nameservers
        logger.debug(f"Using custom nameservers: {', '.join(nameservers)}")
    elif not resolver.nameservers:
        resolver.nameservers = DEFAULT_DNS_PUBLIC_SERVERS
        logger.debug(
            f"Using fallback public DNS servers: {', '.join(DEFAULT_DNS_PUBLIC_SERVERS)}"
        )

    resolver.timeout = timeout
    resolver.lifetime = timeout

    return resolver


class DNSPythonResolver:
    """
    :class:`~sender_auth.resolvers.base.DNSResolver` implementation using dnspython.

    NXDOMAIN and empty answers map to an empty list. Timeouts raise
    :class:`DNSTimeoutError`; any other resolver failure (SERVFAIL from every
    nameserver, malformed names) raises :class:`DNSLookupError`.
    """

    def __init__(
        self,
        nameservers: list[str] | None = None,
        timeout: float = DEFAULT_DNS_TIMEOUT,
        resolver: dns.resolver.Resolver | None = None,
    ):
        self.resolver = resolver or create_resolver(nameservers=nameservers, timeout=timeout)

    def resolve_txt(self, name: str) -> list[str]:
        records = []
        for rdata in self._query(name, "TXT"):
            # Long TXT records arrive split into 255-byte character-strings
            records.append(b"".join(rdata.strings).decode("utf-8", errors="replace"))
        return records

    def resolve_a(self, name: str) -> list[str]:
        return [rdata.address for rdata in self._query(name, "A")]

    def resolve_aaaa(self, name: str) -> list[str]:
        return [rdata.address for rdata in self._query(name, "AAAA")]

    def resolve_mx(self, name: str) -> list[MXRecord]:
        records = [
            MXRecord(priority=rdata.preference, exchange=rdata.exchange.to_text().rstrip("."))
            for rdata in self._query(name, "MX")
        ]
        return sorted(records, key=lambda mx: mx.priority)

    def _query(self, name: str, record_type: str) -> list:
        """Run a query and translate dnspython exceptions."""
        stats = get_stats_tracker()
        try:
            answers = self.resolver.resolve(name, record_type)
        except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer):
            logger.debug(f"No {record_type} records for {name}")
            stats.record_dns_query(name, record_type, success=True)
            return []
        except dns.exception.Timeout:
            stats.record_dns_query(name, record_type, success=False, error="timeout")
            raise DNSTimeoutError(name, record_type)
        except dns.exception.DNSException as e:
            stats.record_dns_query(name, record_type, success=False, error=str(e))
            raise DNSLookupError(name, record_type, reason=str(e)) from e

        stats.record_dns_query(name, record_type, success=True)
        return list(answers)
