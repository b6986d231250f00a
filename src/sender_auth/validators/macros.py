"""SPF macro expansion (RFC 7208 section 7).

Domain-specs in ``include``, ``exists``, ``a``, ``mx``, ``ptr``,
``redirect=`` and ``exp=`` may contain macros such as ``%{i}._spf.%{d}``.
:class:`MacroExpander` implements the RFC letters and transformers; subclass
it and override :meth:`MacroExpander.macro_value` to change what a letter
expands to.
"""

import ipaddress
import logging
import re
import time
import urllib.parse
from typing import TYPE_CHECKING

from ..exceptions import SPFParseError

if TYPE_CHECKING:
    from .spf import SPFEvaluationContext

logger = logging.getLogger(__name__)

_MACRO_RE = re.compile(
    r"%\{(?P<letter>[A-Za-z])(?P<digits>[0-9]*)(?P<reverse>[rR]?)(?P<delimiters>[.\-+,/_=]*)\}"
)

# Letters only allowed inside the explanation string fetched via exp=
_EXPLANATION_ONLY = frozenset("crt")

MAX_DOMAIN_LENGTH = 253


def split_sender(sender: str, default_domain: str) -> tuple[str, str]:
    """
    Split an envelope sender into local-part and domain.

    A missing local-part becomes ``postmaster``; a bare domain (no ``@``)
    is treated as ``postmaster@domain``.
    """
    sender = sender.strip()
    if "@" in sender:
        local, domain = sender.rsplit("@", 1)
        return local or "postmaster", domain or default_domain
    return "postmaster", sender or default_domain


class MacroExpander:
    """
    Expand SPF macro-strings.

    Example:
        >>> expander = MacroExpander()
        >>> expander.expand("%{ir}.%{v}._spf.%{d}", context, "example.com")
        '1.2.0.192.in-addr._spf.example.com'
    """

    def __init__(self, receiver: str = "unknown"):
        """
        Initialize expander.

        Args:
            receiver: Receiving host name used for the ``%{r}`` macro
        """
        self.receiver = receiver

    def expand(
        self,
        macro_string: str,
        context: "SPFEvaluationContext",
        domain: str,
        explanation: bool = False,
    ) -> str:
        """
        Expand every macro in ``macro_string``.

        Args:
            macro_string: Text containing ``%{...}``, ``%%``, ``%_`` or ``%-``
            context: Current evaluation context (sender, IP, HELO)
            domain: Current domain, the value of ``%{d}``
            explanation: True when expanding an exp= explanation text, which
                allows the ``c``, ``r`` and ``t`` letters

        Returns:
            Expanded string

        Raises:
            SPFParseError: On malformed macros or unknown letters
        """
        if "%" not in macro_string:
            return macro_string

        out = []
        pos = 0
        while pos < len(macro_string):
            idx = macro_string.find("%", pos)
            if idx < 0:
                out.append(macro_string[pos:])
                break

            out.append(macro_string[pos:idx])
            nxt = macro_string[idx + 1 : idx + 2]
            if nxt == "%":
                out.append("%")
                pos = idx + 2
            elif nxt == "_":
                out.append(" ")
                pos = idx + 2
            elif nxt == "-":
                out.append("%20")
                pos = idx + 2
            elif nxt == "{":
                match = _MACRO_RE.match(macro_string, idx)
                if not match:
                    raise SPFParseError(f"Invalid macro in '{macro_string}'")
                out.append(self._expand_macro(match, context, domain, explanation))
                pos = match.end()
            else:
                raise SPFParseError(f"Invalid macro escape '%{nxt}' in '{macro_string}'")

        return "".join(out)

    def expand_domain(self, domain_spec: str, context: "SPFEvaluationContext", domain: str) -> str:
        """Expand a domain-spec and shorten it to a valid domain length."""
        expanded = self.expand(domain_spec, context, domain).rstrip(".")

        # RFC 7208 7.3: drop labels from the left until the name fits
        while len(expanded) > MAX_DOMAIN_LENGTH and "." in expanded:
            expanded = expanded.split(".", 1)[1]

        if expanded != domain_spec:
            logger.debug(f"Expanded macro '{domain_spec}' -> '{expanded}'")
        return expanded

    def macro_value(
        self,
        letter: str,
        context: "SPFEvaluationContext",
        domain: str,
        explanation: bool = False,
    ) -> str:
        """
        Return the raw (untransformed) value of a lower-cased macro letter.

        Override in a subclass to change expansion semantics.
        """
        if letter in _EXPLANATION_ONLY and not explanation:
            raise SPFParseError(f"Macro letter '{letter}' is only allowed in explanations")

        local, sender_domain = split_sender(context.sender, domain)
        ip = context.ip

        if letter == "s":
            return f"{local}@{sender_domain}"
        if letter == "l":
            return local
        if letter == "o":
            return sender_domain
        if letter == "d":
            return domain
        if letter == "i":
            if isinstance(ip, ipaddress.IPv6Address):
                return ".".join(ip.exploded.replace(":", ""))
            return str(ip) if ip is not None else context.sender_ip
        if letter == "p":
            # Validated PTR name; ptr lookups are not performed
            return "unknown"
        if letter == "v":
            return "ip6" if isinstance(ip, ipaddress.IPv6Address) else "in-addr"
        if letter == "h":
            return context.helo or "unknown"
        if letter == "c":
            return str(ip) if ip is not None else context.sender_ip
        if letter == "r":
            return self.receiver
        if letter == "t":
            return str(int(time.time()))

        raise SPFParseError(f"Unknown macro letter '{letter}'")

    def _expand_macro(
        self,
        match: re.Match,
        context: "SPFEvaluationContext",
        domain: str,
        explanation: bool,
    ) -> str:
        letter = match.group("letter")
        value = self.macro_value(letter.lower(), context, domain, explanation)

        digits = match.group("digits")
        if digits and int(digits) == 0:
            raise SPFParseError(f"Invalid macro transformer in '{match.group(0)}'")

        delimiters = match.group("delimiters") or "."
        parts = re.split("[" + re.escape(delimiters) + "]", value)
        if match.group("reverse"):
            parts.reverse()
        if digits:
            parts = parts[-int(digits) :]

        expanded = ".".join(parts)
        if letter.isupper():
            expanded = urllib.parse.quote(expanded, safe="")
        return expanded
