"""SPF (Sender Policy Framework) validation per RFC 7208.

Parses SPF policy records and evaluates them against a connecting IP
address. Evaluation is recursive through ``include`` and ``redirect=`` and
shares one DNS lookup budget across the whole chain.
"""

import ipaddress
import logging
import re
from dataclasses import dataclass, field
from enum import Enum

from ..constants import (
    SPF_DEFAULT_IPV4_CIDR,
    SPF_DEFAULT_IPV6_CIDR,
    SPF_MAX_DNS_LOOKUPS,
    SPF_MAX_MX_HOSTS,
    SPF_VERSION_TAG,
)
from ..exceptions import DNSLookupError, SPFError, SPFLookupLimitError, SPFParseError, SPFPermError
from ..output import OutputDescriptor, VerbosityLevel
from ..resolvers.base import DNSResolver
from .base import RESULT_STYLES, AuthResult, Qualifier
from .macros import MacroExpander

logger = logging.getLogger(__name__)

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address


# ============================================================================
# Data Model
# ============================================================================


class MechanismType(str, Enum):
    """SPF mechanism names (RFC 7208 section 5)."""

    ALL = "all"
    IP4 = "ip4"
    IP6 = "ip6"
    A = "a"
    MX = "mx"
    INCLUDE = "include"
    EXISTS = "exists"
    PTR = "ptr"


# Mechanisms that cost one DNS lookup each (RFC 7208 section 4.6.4)
LOOKUP_MECHANISMS = frozenset(
    {
        MechanismType.A,
        MechanismType.MX,
        MechanismType.INCLUDE,
        MechanismType.EXISTS,
        MechanismType.PTR,
    }
)


@dataclass(frozen=True)
class SPFMechanism:
    """One mechanism term of an SPF record."""

    type: MechanismType
    qualifier: Qualifier = Qualifier.PASS
    value: str | None = None
    cidr: int | None = None
    # IPv6 prefix of a dual-cidr-length, as in "a/24//64"
    cidr6: int | None = None

    def __str__(self) -> str:
        text = self.type.value
        if self.qualifier != Qualifier.PASS:
            text = self.qualifier.value + text
        if self.value is not None:
            text += f":{self.value}"
        if self.cidr is not None:
            text += f"/{self.cidr}"
        if self.cidr6 is not None:
            text += f"//{self.cidr6}"
        return text


@dataclass(frozen=True)
class SPFRecord:
    """Parsed SPF record."""

    mechanisms: tuple[SPFMechanism, ...] = ()
    redirect: str | None = None
    exp: str | None = None
    raw: str = ""
    version: str = "spf1"


@dataclass(frozen=True)
class SPFEvaluationResult:
    """Outcome of evaluating a sender against a domain's SPF policy."""

    result: AuthResult
    domain: str
    sender_ip: str
    mechanism: SPFMechanism | None = None
    lookup_count: int = 0
    explanation: str | None = None


@dataclass
class SPFEvaluationContext:
    """
    State shared by one evaluation and every nested include/redirect.

    Nested evaluations consume from the same lookup budget; it is never
    reset for an include or redirect.
    """

    sender_ip: str
    sender: str
    helo: str | None = None
    max_lookups: int = SPF_MAX_DNS_LOOKUPS
    lookup_count: int = 0
    domain_chain: list[str] = field(default_factory=list)
    ip: IPAddress | None = field(init=False, default=None)

    def __post_init__(self) -> None:
        self.ip = parse_ip(self.sender_ip)

    def consume_lookup(self) -> None:
        """
        Account for one DNS-querying term.

        Raises:
            SPFLookupLimitError: If the budget is already spent
        """
        if self.lookup_count >= self.max_lookups:
            raise SPFLookupLimitError(self.max_lookups)
        self.lookup_count += 1


def parse_ip(value: str) -> IPAddress | None:
    """Parse an IP literal; IPv4-mapped IPv6 addresses become IPv4. None if invalid."""
    try:
        ip = ipaddress.ip_address(value.strip())
    except ValueError:
        return None
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        return ip.ipv4_mapped
    return ip


def is_spf_record(txt: str) -> bool:
    """Whether a TXT record is an SPF version 1 record."""
    parts = txt.split(None, 1)
    return bool(parts) and parts[0].lower() == SPF_VERSION_TAG


# ============================================================================
# Parser
# ============================================================================

_MODIFIER_RE = re.compile(r"(?P<name>[A-Za-z][A-Za-z0-9_.\-]*)=(?P<value>.*)")
_MECHANISM_RE = re.compile(
    r"(?P<name>[A-Za-z][A-Za-z0-9_.\-]*)"
    r"(?::(?P<value>.*?))?"
    r"(?:/(?P<cidr>[0-9]+))?"
    r"(?://(?P<cidr6>[0-9]+))?"
)


def _parse_mechanism(term: str) -> SPFMechanism:
    qualifier = Qualifier.PASS
    rest = term
    if rest[0] in "+-~?":
        qualifier = Qualifier(rest[0])
        rest = rest[1:]

    match = _MECHANISM_RE.fullmatch(rest)
    if not match:
        raise SPFParseError(f"Invalid SPF mechanism: {term}")

    try:
        mech_type = MechanismType(match.group("name").lower())
    except ValueError:
        raise SPFParseError(f"Invalid SPF mechanism: {term}") from None

    value = match.group("value")
    cidr = int(match.group("cidr")) if match.group("cidr") is not None else None
    cidr6 = int(match.group("cidr6")) if match.group("cidr6") is not None else None

    if value is not None and value == "":
        raise SPFParseError(f"Empty value in SPF mechanism: {term}")

    if mech_type == MechanismType.ALL:
        if value is not None or cidr is not None or cidr6 is not None:
            raise SPFParseError(f"The 'all' mechanism takes no arguments: {term}")

    elif mech_type == MechanismType.IP4:
        if value is None or cidr6 is not None:
            raise SPFParseError(f"Invalid ip4 mechanism: {term}")
        try:
            ipaddress.IPv4Address(value)
        except ValueError:
            raise SPFParseError(f"Invalid IPv4 address in SPF mechanism: {term}") from None
        if cidr is not None and cidr > 32:
            raise SPFParseError(f"Invalid IPv4 prefix length in SPF mechanism: {term}")

    elif mech_type == MechanismType.IP6:
        if value is None or cidr6 is not None:
            raise SPFParseError(f"Invalid ip6 mechanism: {term}")
        try:
            ipaddress.IPv6Address(value)
        except ValueError:
            raise SPFParseError(f"Invalid IPv6 address in SPF mechanism: {term}") from None
        if cidr is not None and cidr > 128:
            raise SPFParseError(f"Invalid IPv6 prefix length in SPF mechanism: {term}")

    elif mech_type in (MechanismType.A, MechanismType.MX):
        if (cidr is not None and cidr > 32) or (cidr6 is not None and cidr6 > 128):
            raise SPFParseError(f"Invalid prefix length in SPF mechanism: {term}")

    elif mech_type in (MechanismType.INCLUDE, MechanismType.EXISTS):
        if value is None:
            raise SPFParseError(f"The '{mech_type.value}' mechanism requires a domain: {term}")
        if cidr is not None or cidr6 is not None:
            raise SPFParseError(f"The '{mech_type.value}' mechanism takes no prefix: {term}")

    elif mech_type == MechanismType.PTR:
        if cidr is not None or cidr6 is not None:
            raise SPFParseError(f"The 'ptr' mechanism takes no prefix: {term}")

    return SPFMechanism(
        type=mech_type, qualifier=qualifier, value=value, cidr=cidr, cidr6=cidr6
    )


# ============================================================================
# Validator
# ============================================================================


class SPFValidator:
    """
    Evaluate SPF policies.

    Results are always returned, never raised: DNS failures become
    ``temperror`` and broken policies (syntax errors, multiple records,
    lookup budget exceeded, loops) become ``permerror``.

    Example:
        >>> validator = SPFValidator(DNSPythonResolver())
        >>> result = validator.validate("192.0.2.10", "alice@example.com", "example.com")
        >>> result.result
        <AuthResult.PASS: 'pass'>
    """

    name = "SPF"
    category = "spf"

    def __init__(
        self,
        resolver: DNSResolver,
        max_lookups: int = SPF_MAX_DNS_LOOKUPS,
        max_mx_hosts: int = SPF_MAX_MX_HOSTS,
        macro_expander: MacroExpander | None = None,
        fetch_explanation: bool = True,
    ):
        """
        Initialize validator.

        Args:
            resolver: DNS resolution port
            max_lookups: Budget of DNS-querying terms per evaluation
            max_mx_hosts: Maximum MX exchanges an "mx" mechanism may return
            macro_expander: Macro expansion strategy (default: RFC 7208 macros)
            fetch_explanation: Fetch the exp= explanation text on fail
        """
        self.resolver = resolver
        self.max_lookups = max_lookups
        self.max_mx_hosts = max_mx_hosts
        self.macro_expander = macro_expander or MacroExpander()
        self.fetch_explanation = fetch_explanation

        self._matchers = {
            MechanismType.ALL: self._match_all,
            MechanismType.IP4: self._match_ip4,
            MechanismType.IP6: self._match_ip6,
            MechanismType.A: self._match_a,
            MechanismType.MX: self._match_mx,
            MechanismType.INCLUDE: self._match_include,
            MechanismType.EXISTS: self._match_exists,
            MechanismType.PTR: self._match_ptr,
        }

    def parse_record(self, text: str) -> SPFRecord:
        """
        Parse an SPF record.

        Args:
            text: TXT record value, e.g. ``v=spf1 ip4:192.0.2.0/24 -all``

        Returns:
            Parsed record with mechanisms in source order

        Raises:
            SPFParseError: If the version tag is wrong or a term is malformed
        """
        terms = text.split()
        if not terms or terms[0].lower() != SPF_VERSION_TAG:
            raise SPFParseError("Invalid SPF version: record must start with v=spf1")

        mechanisms = []
        redirect = None
        exp = None

        for term in terms[1:]:
            modifier = _MODIFIER_RE.fullmatch(term)
            if modifier:
                name = modifier.group("name").lower()
                value = modifier.group("value")
                if name in ("redirect", "exp"):
                    if not value:
                        raise SPFParseError(f"Empty {name}= modifier")
                    if name == "redirect":
                        if redirect is not None:
                            raise SPFParseError("Duplicate redirect= modifier")
                        redirect = value
                    else:
                        if exp is not None:
                            raise SPFParseError("Duplicate exp= modifier")
                        exp = value
                else:
                    # RFC 7208 6: unrecognized modifiers are ignored
                    logger.debug(f"Ignoring unknown SPF modifier: {term}")
                continue

            mechanisms.append(_parse_mechanism(term))

        return SPFRecord(
            mechanisms=tuple(mechanisms),
            redirect=redirect,
            exp=exp,
            raw=text,
        )

    def validate(
        self,
        ip: str,
        sender: str,
        domain: str,
        helo: str | None = None,
    ) -> SPFEvaluationResult:
        """
        Evaluate the SPF policy of ``domain`` for a message from ``ip``.

        Args:
            ip: Connecting IP address (IPv4 or IPv6 literal)
            sender: Envelope sender address or domain
            domain: Domain whose policy is checked
            helo: HELO/EHLO name, used for the ``%{h}`` macro

        Returns:
            SPFEvaluationResult
        """
        context = SPFEvaluationContext(
            sender_ip=ip, sender=sender, helo=helo, max_lookups=self.max_lookups
        )
        if context.ip is None:
            logger.warning(f"Invalid sender IP '{ip}', only 'all' can match")

        logger.info(f"Checking SPF for {domain} (sender IP {ip})")

        try:
            result = self._check_domain(domain, context)
        except SPFPermError as e:
            logger.info(f"SPF permerror for {domain}: {e}")
            return self._result(AuthResult.PERMERROR, domain, context, explanation=str(e))
        except DNSLookupError as e:
            logger.warning(f"SPF temperror for {domain}: {e}")
            return self._result(AuthResult.TEMPERROR, domain, context, explanation=str(e))

        logger.info(f"SPF {result.result.value} for {domain} ({result.lookup_count} lookups)")
        return result

    # ========================================================================
    # Evaluation
    # ========================================================================

    def _check_domain(self, domain: str, context: SPFEvaluationContext) -> SPFEvaluationResult:
        """Evaluate one domain's record. Raises on permerror/temperror conditions."""
        key = domain.lower().rstrip(".")
        if key in context.domain_chain:
            raise SPFPermError(f"SPF include/redirect loop detected at {domain}")

        context.domain_chain.append(key)
        try:
            return self._evaluate_domain(domain, context)
        finally:
            context.domain_chain.pop()

    def _evaluate_domain(self, domain: str, context: SPFEvaluationContext) -> SPFEvaluationResult:
        spf_records = [r for r in self.resolver.resolve_txt(domain) if is_spf_record(r)]

        if not spf_records:
            logger.debug(f"No SPF record found for {domain}")
            return self._result(AuthResult.NONE, domain, context)

        if len(spf_records) > 1:
            raise SPFPermError(f"Multiple SPF records found for {domain}")

        record = self.parse_record(spf_records[0])
        logger.debug(f"SPF record for {domain}: {record.raw}")

        for mechanism in record.mechanisms:
            if self._matchers[mechanism.type](mechanism, domain, context):
                result = mechanism.qualifier.result
                logger.debug(f"Matched '{mechanism}' in {domain} -> {result.value}")

                explanation = None
                if result == AuthResult.FAIL and record.exp and self.fetch_explanation:
                    explanation = self._get_explanation(record.exp, domain, context)

                return self._result(
                    result, domain, context, mechanism=mechanism, explanation=explanation
                )

        if record.redirect:
            context.consume_lookup()
            target = self.macro_expander.expand_domain(record.redirect, context, domain)
            logger.debug(f"Following redirect from {domain} to {target}")

            redirected = self._check_domain(target, context)
            if redirected.result == AuthResult.NONE:
                raise SPFPermError(f"Redirect target {target} has no SPF record")
            return redirected

        # Implicit "?all"
        return self._result(AuthResult.NEUTRAL, domain, context)

    def _get_explanation(self, exp: str, domain: str, context: SPFEvaluationContext) -> str | None:
        """Fetch and expand the exp= text. Failures are ignored and not counted."""
        try:
            target = self.macro_expander.expand_domain(exp, context, domain)
            records = self.resolver.resolve_txt(target)
            if len(records) != 1:
                return None
            return self.macro_expander.expand(records[0], context, domain, explanation=True)
        except (SPFError, DNSLookupError) as e:
            logger.debug(f"Could not fetch SPF explanation from {exp}: {e}")
            return None

    # ========================================================================
    # Mechanism matchers
    # ========================================================================

    def _match_all(self, mechanism: SPFMechanism, domain: str, context: SPFEvaluationContext) -> bool:
        return True

    def _match_ip4(self, mechanism: SPFMechanism, domain: str, context: SPFEvaluationContext) -> bool:
        if not isinstance(context.ip, ipaddress.IPv4Address):
            return False
        prefix = mechanism.cidr if mechanism.cidr is not None else SPF_DEFAULT_IPV4_CIDR
        return _in_network(context.ip, mechanism.value, prefix)

    def _match_ip6(self, mechanism: SPFMechanism, domain: str, context: SPFEvaluationContext) -> bool:
        if not isinstance(context.ip, ipaddress.IPv6Address):
            return False
        prefix = mechanism.cidr if mechanism.cidr is not None else SPF_DEFAULT_IPV6_CIDR
        return _in_network(context.ip, mechanism.value, prefix)

    def _match_a(self, mechanism: SPFMechanism, domain: str, context: SPFEvaluationContext) -> bool:
        context.consume_lookup()
        target = self._target(mechanism, domain, context)
        if context.ip is None:
            return False
        return self._match_host_addresses(target, mechanism, context)

    def _match_mx(self, mechanism: SPFMechanism, domain: str, context: SPFEvaluationContext) -> bool:
        context.consume_lookup()
        target = self._target(mechanism, domain, context)

        mx_records = self.resolver.resolve_mx(target)
        if len(mx_records) > self.max_mx_hosts:
            raise SPFPermError(
                f"Too many MX records for {target}: {len(mx_records)} (max {self.max_mx_hosts})"
            )
        if context.ip is None:
            return False

        for mx in mx_records:
            # Null MX (RFC 7505)
            if not mx.exchange or mx.exchange == ".":
                continue
            if self._match_host_addresses(mx.exchange, mechanism, context):
                return True
        return False

    def _match_include(
        self, mechanism: SPFMechanism, domain: str, context: SPFEvaluationContext
    ) -> bool:
        context.consume_lookup()
        target = self._target(mechanism, domain, context)
        logger.debug(f"Evaluating include:{target}")

        # Only a nested pass is a match; none/fail/softfail/neutral continue
        nested = self._check_domain(target, context)
        return nested.result == AuthResult.PASS

    def _match_exists(
        self, mechanism: SPFMechanism, domain: str, context: SPFEvaluationContext
    ) -> bool:
        context.consume_lookup()
        target = self._target(mechanism, domain, context)
        return bool(self.resolver.resolve_a(target))

    def _match_ptr(self, mechanism: SPFMechanism, domain: str, context: SPFEvaluationContext) -> bool:
        # Deprecated by RFC 7208 5.5; counted but never matched
        context.consume_lookup()
        logger.info(f"SPF record for {domain} uses deprecated 'ptr' mechanism; treating as no match")
        return False

    def _match_host_addresses(
        self, host: str, mechanism: SPFMechanism, context: SPFEvaluationContext
    ) -> bool:
        """Match the sender against the A or AAAA records of ``host``."""
        if isinstance(context.ip, ipaddress.IPv4Address):
            addresses = self.resolver.resolve_a(host)
            prefix = mechanism.cidr if mechanism.cidr is not None else SPF_DEFAULT_IPV4_CIDR
        else:
            addresses = self.resolver.resolve_aaaa(host)
            prefix = mechanism.cidr6 if mechanism.cidr6 is not None else SPF_DEFAULT_IPV6_CIDR

        return any(_in_network(context.ip, address, prefix) for address in addresses)

    def _target(self, mechanism: SPFMechanism, domain: str, context: SPFEvaluationContext) -> str:
        if mechanism.value is None:
            return domain
        return self.macro_expander.expand_domain(mechanism.value, context, domain)

    def _result(
        self,
        result: AuthResult,
        domain: str,
        context: SPFEvaluationContext,
        mechanism: SPFMechanism | None = None,
        explanation: str | None = None,
    ) -> SPFEvaluationResult:
        return SPFEvaluationResult(
            result=result,
            domain=domain,
            sender_ip=context.sender_ip,
            mechanism=mechanism,
            lookup_count=context.lookup_count,
            explanation=explanation,
        )

    # ========================================================================
    # Output
    # ========================================================================

    def describe_output(self, result: SPFEvaluationResult) -> OutputDescriptor:
        """
        Describe how to render an SPF result.

        Args:
            result: SPF evaluation result

        Returns:
            OutputDescriptor with semantic styling
        """
        descriptor = OutputDescriptor(title=self.name, category=self.category)
        descriptor.quiet_summary = lambda r: f"SPF: {r.result.value}"

        style, icon = RESULT_STYLES[result.result]
        descriptor.add_row(
            label="SPF Result",
            value=result.result.value,
            style_class=style,
            icon=icon,
            severity="error" if style == "error" else "info",
            verbosity=VerbosityLevel.QUIET,
        )
        descriptor.add_row(label="Domain", value=result.domain, verbosity=VerbosityLevel.NORMAL)
        descriptor.add_row(
            label="Sender IP", value=result.sender_ip, verbosity=VerbosityLevel.NORMAL
        )

        if result.mechanism is not None:
            descriptor.add_row(
                label="Matched Mechanism",
                value=str(result.mechanism),
                style_class="highlight",
                format_as="code",
                verbosity=VerbosityLevel.NORMAL,
            )

        if result.explanation:
            descriptor.add_row(
                label="Explanation",
                value=result.explanation,
                style_class="warning" if result.result != AuthResult.PASS else "info",
                verbosity=VerbosityLevel.NORMAL,
            )

        descriptor.add_row(
            label="DNS Lookups",
            value=f"{result.lookup_count}/{self.max_lookups}",
            style_class="muted",
            verbosity=VerbosityLevel.VERBOSE,
        )

        return descriptor

    def to_dict(self, result: SPFEvaluationResult) -> dict:
        """
        Serialize result to JSON-compatible dictionary.

        Args:
            result: SPF evaluation result

        Returns:
            JSON-serializable dict
        """
        mechanism = None
        if result.mechanism is not None:
            mechanism = {
                "type": result.mechanism.type.value,
                "qualifier": result.mechanism.qualifier.value,
                "value": result.mechanism.value,
                "cidr": result.mechanism.cidr,
                "cidr6": result.mechanism.cidr6,
            }

        return {
            "result": result.result.value,
            "domain": result.domain,
            "sender_ip": result.sender_ip,
            "mechanism": mechanism,
            "lookup_count": result.lookup_count,
            "explanation": result.explanation,
        }

    def describe_record(self, record: SPFRecord) -> OutputDescriptor:
        """Describe a parsed record for display."""
        descriptor = OutputDescriptor(title="SPF Record", category=self.category)
        descriptor.quiet_summary = lambda r: f"SPF: {len(record.mechanisms)} mechanisms"

        descriptor.add_row(
            label="Record",
            value=record.raw,
            style_class="info",
            format_as="code",
            verbosity=VerbosityLevel.QUIET,
        )
        descriptor.add_row(
            label="Mechanisms",
            value=[str(m) for m in record.mechanisms],
            section_type="list",
            style_class="info",
            verbosity=VerbosityLevel.NORMAL,
        )
        lookups = sum(1 for m in record.mechanisms if m.type in LOOKUP_MECHANISMS)
        if record.redirect:
            descriptor.add_row(label="Redirect", value=record.redirect, verbosity=VerbosityLevel.NORMAL)
            lookups += 1
        if record.exp:
            descriptor.add_row(label="Explanation", value=record.exp, verbosity=VerbosityLevel.NORMAL)

        descriptor.add_row(
            label="Direct DNS Lookups",
            value=lookups,
            style_class="warning" if lookups > self.max_lookups else "muted",
            verbosity=VerbosityLevel.VERBOSE,
        )
        return descriptor

    def record_to_dict(self, record: SPFRecord) -> dict:
        """Serialize a parsed record."""
        return {
            "version": record.version,
            "raw": record.raw,
            "mechanisms": [
                {
                    "type": m.type.value,
                    "qualifier": m.qualifier.value,
                    "value": m.value,
                    "cidr": m.cidr,
                    "cidr6": m.cidr6,
                }
                for m in record.mechanisms
            ],
            "redirect": record.redirect,
            "exp": record.exp,
        }


def _in_network(ip: IPAddress, network: str, prefix: int) -> bool:
    """CIDR containment; host bits in ``network`` are ignored."""
    try:
        net = ipaddress.ip_network(f"{network}/{prefix}", strict=False)
    except ValueError:
        logger.debug(f"Ignoring unusable address '{network}/{prefix}'")
        return False
    return ip.version == net.version and ip in net
