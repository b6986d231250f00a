"""Run SPF and DKIM for one message.

The two verdicts are returned side by side; combining them into a policy
decision (DMARC, scoring) is left to the caller.
"""

import logging
from dataclasses import dataclass

from .config import Config
from .resolvers.base import DNSResolver
from .resolvers.dnspython_resolver import DNSPythonResolver
from .validators.dkim import DKIMValidationResult, DKIMValidator
from .validators.headers import get_dkim_signatures, split_message
from .validators.macros import split_sender
from .validators.spf import SPFEvaluationResult, SPFValidator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthenticationResults:
    """SPF and DKIM results for one message."""

    spf: SPFEvaluationResult
    dkim: tuple[DKIMValidationResult, ...] = ()


class MessageAuthenticator:
    """
    Facade running both validators against one inbound message.

    Example:
        >>> authenticator = MessageAuthenticator.from_config(load_config())
        >>> results = authenticator.authenticate_message(raw, "192.0.2.1", "alice@example.com")
        >>> results.spf.result, [r.result for r in results.dkim]
    """

    def __init__(
        self,
        resolver: DNSResolver,
        spf_validator: SPFValidator | None = None,
        dkim_validator: DKIMValidator | None = None,
    ):
        self.resolver = resolver
        self.spf = spf_validator or SPFValidator(resolver)
        self.dkim = dkim_validator or DKIMValidator(resolver)

    @classmethod
    def from_config(cls, config: Config, resolver: DNSResolver | None = None) -> "MessageAuthenticator":
        """Build validators from configuration, using dnspython unless a resolver is given."""
        if resolver is None:
            resolver = DNSPythonResolver(
                nameservers=config.dns.nameservers, timeout=config.dns.timeout
            )

        return cls(
            resolver,
            spf_validator=SPFValidator(
                resolver,
                max_lookups=config.spf.max_lookups,
                max_mx_hosts=config.spf.max_mx_hosts,
                fetch_explanation=config.spf.fetch_explanation,
            ),
            dkim_validator=DKIMValidator(
                resolver,
                cache_ttl=config.dkim.key_cache_ttl,
                max_workers=config.dkim.max_workers,
            ),
        )

    def authenticate(
        self,
        headers: str,
        body: str,
        ip: str,
        sender: str,
        helo: str | None = None,
    ) -> AuthenticationResults:
        """
        Evaluate SPF for the sender's domain and verify every DKIM signature.

        Args:
            headers: Raw header block
            body: Raw body
            ip: Connecting IP address
            sender: Envelope sender (MAIL FROM) address or domain
            helo: HELO/EHLO name; used as the SPF domain when the sender is empty

        Returns:
            AuthenticationResults
        """
        _, domain = split_sender(sender, helo or "")
        if not domain:
            logger.warning("No sender domain or HELO name; SPF cannot be evaluated")

        spf_result = self.spf.validate(ip, sender, domain, helo=helo)

        signatures = get_dkim_signatures(headers)
        logger.debug(f"Found {len(signatures)} DKIM-Signature header(s)")
        dkim_results = self.dkim.verify_multiple(headers, body, signatures)

        return AuthenticationResults(spf=spf_result, dkim=tuple(dkim_results))

    def authenticate_message(
        self,
        raw_message: str,
        ip: str,
        sender: str,
        helo: str | None = None,
    ) -> AuthenticationResults:
        """Same as :meth:`authenticate` for a complete raw message."""
        headers, body = split_message(raw_message)
        return self.authenticate(headers, body, ip, sender, helo=helo)
