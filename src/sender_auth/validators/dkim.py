"""DKIM (DomainKeys Identified Mail) verification per RFC 6376.

Supports rsa-sha256, rsa-sha1 and ed25519-sha256 (RFC 8463). Public keys
are fetched from ``selector._domainkey.domain`` and cached with a TTL.
"""

import base64
import binascii
import hashlib
import logging
import re
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPublicKey

from ..constants import (
    DKIM_DEFAULT_QUERY_METHOD,
    DKIM_DOMAINKEY_LABEL,
    DKIM_KEY_CACHE_TTL,
    DKIM_MAX_WORKERS,
    DKIM_REQUIRED_TAGS,
    MAX_VALUE_DISPLAY,
)
from ..exceptions import (
    DKIMError,
    DKIMKeyFormatError,
    DKIMKeyNotFoundError,
    DKIMParseError,
    DNSLookupError,
)
from ..output import OutputDescriptor, VerbosityLevel
from ..resolvers.base import DNSResolver
from ..resolvers.cache import TTLCache
from . import canonicalization
from .base import RESULT_STYLES, AuthResult
from .canonicalization import CRLF, CanonicalizationMode
from .headers import DKIM_SIGNATURE_HEADER, field_name, field_value, split_header_fields

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")
_LINE_BREAK_RE = re.compile(r"[\r\n]")
_B_TAG_RE = re.compile(r"(^|;)(\s*b\s*=)[^;]*")


# ============================================================================
# Data Model
# ============================================================================


class DKIMAlgorithm(str, Enum):
    """Signing algorithm from the a= tag."""

    RSA_SHA1 = "rsa-sha1"
    RSA_SHA256 = "rsa-sha256"
    ED25519_SHA256 = "ed25519-sha256"

    @property
    def key_type(self) -> str:
        return self.value.split("-", 1)[0]

    @property
    def hash_name(self) -> str:
        return self.value.split("-", 1)[1]


_HASH_FUNCTIONS = {
    "sha1": hashlib.sha1,
    "sha256": hashlib.sha256,
}

_CRYPTO_HASHES = {
    "sha1": hashes.SHA1,
    "sha256": hashes.SHA256,
}


@dataclass(frozen=True)
class DKIMSignature:
    """Parsed DKIM-Signature header value."""

    version: str
    algorithm: DKIMAlgorithm
    domain: str
    selector: str
    signed_headers: tuple[str, ...]
    body_hash: str
    signature: str
    header_canonicalization: CanonicalizationMode = CanonicalizationMode.SIMPLE
    body_canonicalization: CanonicalizationMode = CanonicalizationMode.SIMPLE
    query_method: str = DKIM_DEFAULT_QUERY_METHOD
    timestamp: int | None = None
    expiration: int | None = None
    identity: str | None = None
    body_length: int | None = None
    raw: str = ""

    @property
    def canonicalization(self) -> tuple[CanonicalizationMode, CanonicalizationMode]:
        """(header, body) canonicalization modes."""
        return self.header_canonicalization, self.body_canonicalization


@dataclass(frozen=True)
class DKIMPublicKey:
    """Public key record published at ``selector._domainkey.domain``."""

    public_key: str
    key_type: str = "rsa"
    hash_algorithms: frozenset[str] = field(default_factory=frozenset)
    service_types: frozenset[str] = field(default_factory=lambda: frozenset({"*"}))
    flags: frozenset[str] = field(default_factory=frozenset)
    version: str | None = None
    notes: str | None = None

    @property
    def is_revoked(self) -> bool:
        """An empty p= means the key has been revoked."""
        return self.public_key == ""

    @property
    def is_testing(self) -> bool:
        return "y" in self.flags


@dataclass(frozen=True)
class DKIMValidationResult:
    """Outcome of verifying one DKIM signature."""

    result: AuthResult
    domain: str
    selector: str
    signature: DKIMSignature | None = None
    error: str | None = None


# ============================================================================
# Tag parsing
# ============================================================================


def parse_tag_list(text: str) -> dict[str, str]:
    """
    Parse a DKIM tag-list (``tag=value; tag=value``).

    Header folding is undone and surrounding whitespace stripped; whitespace
    inside values is kept.

    Raises:
        DKIMParseError: On a malformed or duplicated tag
    """
    tags: dict[str, str] = {}
    unfolded = _LINE_BREAK_RE.sub("", text)

    for part in unfolded.split(";"):
        if not part.strip():
            continue

        name, sep, value = part.partition("=")
        name = name.strip()
        if not sep or not name:
            raise DKIMParseError(f"Malformed tag: '{part.strip()}'")
        if name in tags:
            raise DKIMParseError(f"Duplicate tag: {name}")
        tags[name] = value.strip()

    return tags


def _parse_int_tag(tags: dict[str, str], name: str) -> int | None:
    if name not in tags:
        return None
    value = tags[name]
    # RFC 6376 allows ASCII digits only; int() would also take "1_0" or "١٠"
    if not (value.isascii() and value.isdigit()):
        raise DKIMParseError(f"Invalid {name}= value: {value!r}")
    return int(value)


def message_bytes(text: str) -> bytes:
    """
    Encode message text for hashing.

    Bytes that were not valid UTF-8 when the message was read come back
    unchanged through ``surrogateescape``.

    Raises:
        UnicodeEncodeError: If the text holds a surrogate that does not stand
            for an original byte
    """
    return text.encode("utf-8", errors="surrogateescape")


def _split_list(value: str | None) -> frozenset[str]:
    if not value:
        return frozenset()
    return frozenset(item.strip().lower() for item in value.split(":") if item.strip())


def _parse_canonicalization(value: str | None) -> tuple[CanonicalizationMode, CanonicalizationMode]:
    if not value:
        return CanonicalizationMode.SIMPLE, CanonicalizationMode.SIMPLE

    header, _, body = value.lower().partition("/")
    try:
        # "c=relaxed" alone means relaxed headers with simple body
        return CanonicalizationMode(header), CanonicalizationMode(body or "simple")
    except ValueError:
        raise DKIMParseError(f"Unsupported canonicalization: {value}") from None


def parse_key_record(record: str) -> DKIMPublicKey:
    """
    Parse a DKIM key record (``v=DKIM1; k=rsa; p=...``).

    Raises:
        DKIMKeyFormatError: If the record is malformed or has no p= tag
    """
    try:
        tags = parse_tag_list(record)
    except DKIMParseError as e:
        raise DKIMKeyFormatError(f"Malformed key record: {e}") from e

    version = tags.get("v")
    if version is not None and version != "DKIM1":
        raise DKIMKeyFormatError(f"Unsupported key record version: {version}")
    if "p" not in tags:
        raise DKIMKeyFormatError("Key record has no p= tag")

    return DKIMPublicKey(
        public_key=_WHITESPACE_RE.sub("", tags["p"]),
        key_type=tags.get("k", "rsa").strip().lower() or "rsa",
        hash_algorithms=_split_list(tags.get("h")),
        service_types=_split_list(tags.get("s")) or frozenset({"*"}),
        flags=_split_list(tags.get("t")),
        version=version,
        notes=tags.get("n"),
    )


# ============================================================================
# Validator
# ============================================================================


class DKIMValidator:
    """
    Verify DKIM signatures.

    Every failure is reported through :class:`DKIMValidationResult`;
    :meth:`verify` and :meth:`verify_multiple` never raise for bad input or
    DNS trouble.

    Example:
        >>> validator = DKIMValidator(DNSPythonResolver())
        >>> headers, body = split_message(raw_message)
        >>> results = validator.verify_multiple(headers, body, get_dkim_signatures(headers))
    """

    name = "DKIM"
    category = "dkim"

    def __init__(
        self,
        resolver: DNSResolver,
        key_cache: TTLCache | None = None,
        cache_ttl: float = DKIM_KEY_CACHE_TTL,
        clock: Callable[[], float] = time.time,
        max_workers: int = DKIM_MAX_WORKERS,
    ):
        """
        Initialize validator.

        Args:
            resolver: DNS resolution port
            key_cache: Public key cache (default: a new TTLCache with ``cache_ttl``)
            cache_ttl: Key cache lifetime in seconds when no cache is given
            clock: Returns the current Unix time, used for x= expiration
            max_workers: Thread pool size for verify_multiple
        """
        self.resolver = resolver
        self.key_cache = key_cache if key_cache is not None else TTLCache(default_ttl=cache_ttl)
        self.clock = clock
        self.max_workers = max_workers

    # ========================================================================
    # Parsing
    # ========================================================================

    def parse_signature(self, header_value: str) -> DKIMSignature:
        """
        Parse a DKIM-Signature header value.

        Args:
            header_value: Value of the header (without the ``DKIM-Signature:`` name)

        Returns:
            Parsed signature

        Raises:
            DKIMParseError: On syntax errors, missing required tags or
                unsupported algorithms
        """
        tags = parse_tag_list(header_value)

        for tag in DKIM_REQUIRED_TAGS:
            if not tags.get(tag):
                raise DKIMParseError(f"Missing required DKIM field: {tag}")

        if tags["v"] != "1":
            raise DKIMParseError(f"Unsupported DKIM version: {tags['v']}")

        try:
            algorithm = DKIMAlgorithm(tags["a"].lower())
        except ValueError:
            raise DKIMParseError(f"Unsupported DKIM algorithm: {tags['a']}") from None

        header_canon, body_canon = _parse_canonicalization(tags.get("c"))

        signed_headers = tuple(
            h.strip().lower() for h in tags["h"].split(":") if h.strip()
        )
        if "from" not in signed_headers:
            raise DKIMParseError("From header is not signed")

        domain = tags["d"].lower()
        identity = tags.get("i")
        if identity:
            identity_domain = identity.rpartition("@")[2].lower()
            if identity_domain != domain and not identity_domain.endswith("." + domain):
                raise DKIMParseError(f"Identity {identity} is not within signing domain {domain}")

        timestamp = _parse_int_tag(tags, "t")
        expiration = _parse_int_tag(tags, "x")
        if timestamp is not None and expiration is not None and expiration < timestamp:
            raise DKIMParseError("Expiration (x=) is earlier than timestamp (t=)")

        body_length = _parse_int_tag(tags, "l")

        return DKIMSignature(
            version=tags["v"],
            algorithm=algorithm,
            domain=domain,
            selector=tags["s"],
            signed_headers=signed_headers,
            body_hash=_WHITESPACE_RE.sub("", tags["bh"]),
            signature=_WHITESPACE_RE.sub("", tags["b"]),
            header_canonicalization=header_canon,
            body_canonicalization=body_canon,
            query_method=tags.get("q") or DKIM_DEFAULT_QUERY_METHOD,
            timestamp=timestamp,
            expiration=expiration,
            identity=identity,
            body_length=body_length,
            raw=header_value,
        )

    # ========================================================================
    # Public keys
    # ========================================================================

    def get_public_key(self, domain: str, selector: str) -> DKIMPublicKey:
        """
        Fetch the public key for ``selector`` at ``domain``.

        Non-revoked keys are cached; revoked keys are re-read on every call.

        Raises:
            DNSLookupError: If the DNS query fails
            DKIMKeyNotFoundError: If no key record is published
            DKIMKeyFormatError: If the record cannot be parsed
        """
        name = f"{selector}.{DKIM_DOMAINKEY_LABEL}.{domain}"
        cache_key = name.lower()

        cached = self.key_cache.get(cache_key)
        if cached is not None:
            logger.debug(f"DKIM key cache hit: {name}")
            return cached

        records = self.resolver.resolve_txt(name)
        if not records:
            raise DKIMKeyNotFoundError(f"No DKIM public key found for {name}")

        record = next((r for r in records if "p=" in r), records[0])
        key = parse_key_record(record)

        if key.is_revoked:
            logger.info(f"DKIM key {name} has been revoked")
        else:
            self.key_cache.set(cache_key, key)

        return key

    def clear_cache(self) -> None:
        """Flush the public key cache."""
        self.key_cache.clear()

    # ========================================================================
    # Canonicalization
    # ========================================================================

    def canonicalize_header(self, header: str, mode: CanonicalizationMode | str) -> str:
        return canonicalization.canonicalize_header(header, CanonicalizationMode(mode))

    def canonicalize_body(self, body: str, mode: CanonicalizationMode | str) -> str:
        return canonicalization.canonicalize_body(body, CanonicalizationMode(mode))

    # ========================================================================
    # Verification
    # ========================================================================

    def verify(self, headers: str, body: str, dkim_header_value: str) -> DKIMValidationResult:
        """
        Verify one DKIM signature.

        Args:
            headers: Raw header block of the message
            body: Raw message body
            dkim_header_value: Value of the DKIM-Signature header to verify

        Returns:
            DKIMValidationResult; carries the parsed signature whenever
            parsing succeeded
        """
        try:
            signature = self.parse_signature(dkim_header_value)
        except DKIMParseError as e:
            logger.info(f"DKIM permerror: failed to parse signature: {e}")
            return DKIMValidationResult(
                result=AuthResult.PERMERROR,
                domain="",
                selector="",
                error=f"Failed to parse DKIM signature: {e}",
            )

        def outcome(result: AuthResult, error: str | None = None) -> DKIMValidationResult:
            if error:
                logger.info(f"DKIM {result.value} for {signature.selector}/{signature.domain}: {error}")
            else:
                logger.info(f"DKIM {result.value} for {signature.selector}/{signature.domain}")
            return DKIMValidationResult(
                result=result,
                domain=signature.domain,
                selector=signature.selector,
                signature=signature,
                error=error,
            )

        if signature.expiration is not None and self.clock() > signature.expiration:
            return outcome(AuthResult.FAIL, "Signature has expired")

        try:
            key = self.get_public_key(signature.domain, signature.selector)
        except DNSLookupError as e:
            return outcome(AuthResult.TEMPERROR, f"Failed to retrieve public key: {e}")
        except DKIMError as e:
            return outcome(AuthResult.PERMERROR, f"Failed to retrieve public key: {e}")

        if key.is_revoked:
            return outcome(AuthResult.FAIL, "Public key has been revoked")

        key_error = self._check_key_usage(signature, key)
        if key_error:
            return outcome(AuthResult.FAIL, key_error)

        if key.is_testing:
            logger.info(f"DKIM key {signature.selector}/{signature.domain} is in testing mode (t=y)")

        try:
            body_hash = self.compute_body_hash(body, signature)
            data = message_bytes(self.header_hash_input(headers, dkim_header_value, signature))
        except UnicodeEncodeError as e:
            return outcome(AuthResult.PERMERROR, f"Message cannot be encoded for hashing: {e.reason}")

        if body_hash != signature.body_hash:
            logger.debug(f"Body hash computed {body_hash}, signed {signature.body_hash}")
            return outcome(AuthResult.FAIL, "Body hash mismatch")

        try:
            self._verify_signature(signature, key, data)
        except DKIMKeyFormatError as e:
            return outcome(AuthResult.FAIL, f"Signature verification failed: {e}")
        except (InvalidSignature, ValueError):
            return outcome(AuthResult.FAIL, "Signature verification failed")

        return outcome(AuthResult.PASS)

    def verify_multiple(
        self, headers: str, body: str, dkim_header_values: Sequence[str]
    ) -> list[DKIMValidationResult]:
        """
        Verify several signatures independently and concurrently.

        Results are returned in the order of ``dkim_header_values``.
        """
        if not dkim_header_values:
            return []

        workers = max(1, min(self.max_workers, len(dkim_header_values)))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            return list(
                executor.map(lambda value: self.verify(headers, body, value), dkim_header_values)
            )

    def compute_body_hash(self, body: str, signature: DKIMSignature) -> str:
        """Base64 hash of the canonical body, truncated to l= bytes when present."""
        canonical = canonicalization.canonicalize_body(body, signature.body_canonicalization)
        data = message_bytes(canonical)
        if signature.body_length is not None:
            data = data[: signature.body_length]

        digest = _HASH_FUNCTIONS[signature.algorithm.hash_name](data).digest()
        return base64.b64encode(digest).decode("ascii")

    def header_hash_input(
        self, headers: str, dkim_header_value: str, signature: DKIMSignature
    ) -> str:
        """
        Build the text the header signature covers (RFC 6376 section 3.7).

        Signed headers are taken in h= order; repeated names consume field
        instances from the bottom up. The DKIM-Signature field itself is
        appended with an empty b= and no trailing CRLF.
        """
        mode = signature.header_canonicalization
        fields = split_header_fields(headers)

        by_name: dict[str, list[str]] = {}
        for header_field in fields:
            if ":" in header_field:
                by_name.setdefault(field_name(header_field), []).append(header_field)

        parts = []
        for name in signature.signed_headers:
            instances = by_name.get(name)
            if instances:
                parts.append(canonicalization.canonicalize_header(instances.pop(), mode) + CRLF)

        dkim_field = self._find_signature_field(fields, dkim_header_value)
        name, _, value = dkim_field.partition(":")
        stripped = _B_TAG_RE.sub(r"\1\2", value, count=1)
        parts.append(canonicalization.canonicalize_header(f"{name}:{stripped}", mode))

        return "".join(parts)

    def _find_signature_field(self, fields: list[str], dkim_header_value: str) -> str:
        """Locate the original DKIM-Signature field so simple mode sees its exact bytes."""
        wanted = _WHITESPACE_RE.sub("", dkim_header_value)
        for header_field in fields:
            if ":" not in header_field or field_name(header_field) != DKIM_SIGNATURE_HEADER:
                continue
            value = field_value(header_field)
            if value == dkim_header_value or _WHITESPACE_RE.sub("", value) == wanted:
                return header_field
        return f"DKIM-Signature:{dkim_header_value}"

    def _check_key_usage(self, signature: DKIMSignature, key: DKIMPublicKey) -> str | None:
        if key.key_type != signature.algorithm.key_type:
            return (
                f"Key type '{key.key_type}' does not match algorithm "
                f"'{signature.algorithm.value}'"
            )
        if key.hash_algorithms and signature.algorithm.hash_name not in key.hash_algorithms:
            return f"Hash algorithm {signature.algorithm.hash_name} not permitted by key"
        if not key.service_types & {"*", "email"}:
            return "Key is not valid for email"
        return None

    def _verify_signature(self, signature: DKIMSignature, key: DKIMPublicKey, data: bytes) -> None:
        """Raise InvalidSignature (or ValueError on bad encoding) unless the signature verifies."""
        try:
            key_bytes = base64.b64decode(key.public_key, validate=True)
        except binascii.Error as e:
            raise DKIMKeyFormatError("public key is not valid base64") from e

        try:
            signature_bytes = base64.b64decode(signature.signature, validate=True)
        except binascii.Error as e:
            raise ValueError("signature is not valid base64") from e

        if signature.algorithm == DKIMAlgorithm.ED25519_SHA256:
            try:
                public_key = Ed25519PublicKey.from_public_bytes(key_bytes)
            except (ValueError, UnsupportedAlgorithm) as e:
                raise DKIMKeyFormatError("invalid Ed25519 public key") from e
            # RFC 8463: Ed25519 signs the SHA-256 digest of the header data
            public_key.verify(signature_bytes, hashlib.sha256(data).digest())
            return

        try:
            public_key = serialization.load_der_public_key(key_bytes)
        except (ValueError, UnsupportedAlgorithm) as e:
            raise DKIMKeyFormatError("invalid RSA public key") from e
        if not isinstance(public_key, RSAPublicKey):
            raise DKIMKeyFormatError("public key is not an RSA key")

        public_key.verify(
            signature_bytes,
            data,
            padding.PKCS1v15(),
            _CRYPTO_HASHES[signature.algorithm.hash_name](),
        )

    # ========================================================================
    # Output
    # ========================================================================

    def describe_output(self, results: Sequence[DKIMValidationResult]) -> OutputDescriptor:
        """
        Describe how to render DKIM results.

        Args:
            results: One result per signature, in header order

        Returns:
            OutputDescriptor with semantic styling
        """
        descriptor = OutputDescriptor(title=self.name, category=self.category)
        descriptor.quiet_summary = lambda rs: "DKIM: " + (
            ", ".join(r.result.value for r in rs) if rs else "none"
        )

        if not results:
            descriptor.add_row(
                label="DKIM Signatures",
                value="None found",
                style_class="muted",
                icon="info",
                verbosity=VerbosityLevel.QUIET,
            )
            return descriptor

        for index, result in enumerate(results, 1):
            style, icon = RESULT_STYLES[result.result]
            who = f"{result.selector}/{result.domain}" if result.domain else f"#{index}"
            descriptor.add_row(
                label=f"Signature {who}",
                value=result.result.value,
                style_class=style,
                icon=icon,
                severity="error" if style == "error" else "info",
                section_name=f"Signature {index}",
                verbosity=VerbosityLevel.QUIET,
            )

            if result.error:
                descriptor.add_row(
                    label="Error",
                    value=result.error,
                    style_class="error" if result.result != AuthResult.TEMPERROR else "warning",
                    section_name=f"Signature {index}",
                    verbosity=VerbosityLevel.NORMAL,
                )

            sig = result.signature
            if sig is None:
                continue

            descriptor.add_row(
                label="Algorithm",
                value=sig.algorithm.value,
                section_name=f"Signature {index}",
                verbosity=VerbosityLevel.VERBOSE,
            )
            descriptor.add_row(
                label="Canonicalization",
                value=f"{sig.header_canonicalization.value}/{sig.body_canonicalization.value}",
                section_name=f"Signature {index}",
                verbosity=VerbosityLevel.VERBOSE,
            )
            descriptor.add_row(
                label="Signed Headers",
                value=list(sig.signed_headers),
                section_type="list",
                section_name=f"Signature {index}",
                verbosity=VerbosityLevel.VERBOSE,
            )
            if sig.body_length is not None:
                descriptor.add_row(
                    label="Body Length Limit",
                    value=sig.body_length,
                    style_class="warning",
                    section_name=f"Signature {index}",
                    verbosity=VerbosityLevel.VERBOSE,
                )
            descriptor.add_row(
                label="Signature",
                value=_truncate(sig.signature),
                format_as="code",
                style_class="muted",
                section_name=f"Signature {index}",
                verbosity=VerbosityLevel.DEBUG,
            )

        return descriptor

    def to_dict(self, result: DKIMValidationResult) -> dict:
        """
        Serialize result to JSON-compatible dictionary.

        Args:
            result: DKIM validation result

        Returns:
            JSON-serializable dict
        """
        signature = None
        sig = result.signature
        if sig is not None:
            signature = {
                "version": sig.version,
                "algorithm": sig.algorithm.value,
                "domain": sig.domain,
                "selector": sig.selector,
                "canonicalization": {
                    "header": sig.header_canonicalization.value,
                    "body": sig.body_canonicalization.value,
                },
                "query_method": sig.query_method,
                "signed_headers": list(sig.signed_headers),
                "timestamp": sig.timestamp,
                "expiration": sig.expiration,
                "identity": sig.identity,
                "body_length": sig.body_length,
                "body_hash": sig.body_hash,
                "signature": sig.signature,
            }

        return {
            "result": result.result.value,
            "domain": result.domain,
            "selector": result.selector,
            "error": result.error,
            "signature": signature,
        }


def _truncate(value: str) -> str:
    if len(value) <= MAX_VALUE_DISPLAY:
        return value
    return value[:MAX_VALUE_DISPLAY] + "..."
