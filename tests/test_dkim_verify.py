"""Tests for DKIM signature verification with real keys."""

import base64
import logging

import pytest
from cryptography.hazmat.primitives.asymmetric import rsa

from sender_auth.exceptions import DNSTimeoutError
from sender_auth.output import VerbosityLevel
from sender_auth.resolvers import MockDNSResolver, TTLCache
from sender_auth.validators.base import AuthResult
from sender_auth.validators.dkim import DKIMValidator
from sender_auth.validators.headers import get_dkim_signatures

KEY_NAME = "s1._domainkey.example.com"


@pytest.fixture
def rsa_dns(rsa_private_key, key_record):
    """Resolver publishing the session RSA key at s1._domainkey.example.com."""
    resolver = MockDNSResolver()
    resolver.set_txt_record(KEY_NAME, [key_record(rsa_private_key)])
    return resolver


# ============================================================================
# Successful verification
# ============================================================================


class TestVerifyPass:
    """Test signatures that verify."""

    @pytest.mark.parametrize(
        "canonicalization",
        ["simple/simple", "relaxed/relaxed", "relaxed/simple", "simple/relaxed"],
    )
    def test_rsa_sha256(self, rsa_dns, rsa_private_key, signer, canonicalization):
        """Test rsa-sha256 in every canonicalization combination."""
        headers, body, value = signer(rsa_private_key, canonicalization=canonicalization)
        result = DKIMValidator(rsa_dns).verify(headers, body, value)

        assert result.result == AuthResult.PASS, result.error
        assert result.domain == "example.com"
        assert result.selector == "s1"
        assert result.error is None
        assert result.signature is not None

    def test_rsa_sha1(self, rsa_dns, rsa_private_key, signer):
        """Test the legacy rsa-sha1 algorithm."""
        headers, body, value = signer(rsa_private_key, algorithm="rsa-sha1")
        assert DKIMValidator(rsa_dns).verify(headers, body, value).result == AuthResult.PASS

    def test_ed25519(self, ed25519_private_key, signer, key_record):
        """Test ed25519-sha256 (RFC 8463)."""
        resolver = MockDNSResolver()
        resolver.set_txt_record(KEY_NAME, [key_record(ed25519_private_key)])
        headers, body, value = signer(ed25519_private_key, algorithm="ed25519-sha256")

        result = DKIMValidator(resolver).verify(headers, body, value)
        assert result.result == AuthResult.PASS, result.error

    def test_value_from_header_block(self, rsa_dns, rsa_private_key, signer):
        """Test the value extracted from the header block verifies."""
        headers, body, _ = signer(rsa_private_key)
        [value] = get_dkim_signatures(headers)
        assert DKIMValidator(rsa_dns).verify(headers, body, value).result == AuthResult.PASS

    def test_relaxed_tolerates_whitespace_changes(self, rsa_dns, rsa_private_key, signer):
        """Test relaxed canonicalization survives re-folding and trailing spaces."""
        headers, body, value = signer(rsa_private_key, canonicalization="relaxed/relaxed")
        headers = headers.replace("Subject: Quarterly report", "Subject:   Quarterly\r\n\treport ")
        body = body.replace("attached.", "attached.   ")

        assert DKIMValidator(rsa_dns).verify(headers, body, value).result == AuthResult.PASS

    def test_missing_signed_header_is_skipped(self, rsa_dns, rsa_private_key, signer):
        """Test h= naming a header the message lacks."""
        headers, body, value = signer(
            rsa_private_key, signed_headers=("from", "subject", "reply-to")
        )
        assert DKIMValidator(rsa_dns).verify(headers, body, value).result == AuthResult.PASS

    def test_repeated_header_bottom_up(self, rsa_dns, rsa_private_key, signer):
        """Test repeated signed header names consume instances bottom-up."""
        message_headers = [
            "From: Alice <alice@example.com>",
            "Received: from relay1.example.com",
            "Received: from relay2.example.com",
        ]
        headers, body, value = signer(
            rsa_private_key,
            headers=message_headers,
            signed_headers=("from", "received", "received"),
        )
        assert DKIMValidator(rsa_dns).verify(headers, body, value).result == AuthResult.PASS

    def test_body_length_limit(self, rsa_dns, rsa_private_key, signer):
        """Test content appended after l= bytes does not break the signature."""
        body = "Signed part\r\n"
        headers, body, value = signer(
            rsa_private_key, body=body, canonicalization="simple/simple", body_length=len(body)
        )
        result = DKIMValidator(rsa_dns).verify(headers, body + "Appended later\r\n", value)
        assert result.result == AuthResult.PASS
        assert result.signature.body_length == len("Signed part\r\n")

    def test_not_yet_expired(self, rsa_dns, rsa_private_key, signer):
        """Test x= in the future."""
        headers, body, value = signer(rsa_private_key, extra_tags=" t=1000; x=3000;")
        validator = DKIMValidator(rsa_dns, clock=lambda: 2000)
        assert validator.verify(headers, body, value).result == AuthResult.PASS

    def test_testing_mode_key(self, rsa_private_key, signer, key_record, caplog):
        """Test a t=y key still verifies and is noted in the log."""
        resolver = MockDNSResolver()
        resolver.set_txt_record(KEY_NAME, [key_record(rsa_private_key, extra="; t=y")])
        headers, body, value = signer(rsa_private_key)

        with caplog.at_level(logging.INFO, logger="sender_auth.validators.dkim"):
            result = DKIMValidator(resolver).verify(headers, body, value)

        assert result.result == AuthResult.PASS
        assert "testing mode (t=y)" in caplog.text


# ============================================================================
# Failures
# ============================================================================


class TestVerifyFail:
    """Test signatures that do not verify."""

    def test_body_modified(self, rsa_dns, rsa_private_key, signer):
        """Test a changed body gives a body hash mismatch."""
        headers, body, value = signer(rsa_private_key)
        result = DKIMValidator(rsa_dns).verify(headers, body + "P.S. extra\r\n", value)
        assert result.result == AuthResult.FAIL
        assert result.error == "Body hash mismatch"

    def test_header_modified(self, rsa_dns, rsa_private_key, signer):
        """Test a changed signed header fails signature verification."""
        headers, body, value = signer(rsa_private_key)
        headers = headers.replace("Quarterly report", "Invoice overdue")
        result = DKIMValidator(rsa_dns).verify(headers, body, value)
        assert result.result == AuthResult.FAIL
        assert result.error.startswith("Signature verification failed")

    def test_simple_rejects_whitespace_change(self, rsa_dns, rsa_private_key, signer):
        """Test simple header canonicalization is byte exact."""
        headers, body, value = signer(rsa_private_key, canonicalization="simple/simple")
        headers = headers.replace("Subject: Quarterly report", "Subject:  Quarterly report")
        assert DKIMValidator(rsa_dns).verify(headers, body, value).result == AuthResult.FAIL

    def test_unsigned_header_may_change(self, rsa_dns, rsa_private_key, signer):
        """Test headers outside h= are not covered."""
        headers, body, value = signer(rsa_private_key)
        headers = headers.replace("<20260105100000.1234@example.com>", "<other@example.com>")
        assert DKIMValidator(rsa_dns).verify(headers, body, value).result == AuthResult.PASS

    def test_wrong_key(self, rsa_private_key, signer, key_record):
        """Test a signature checked against a different published key."""
        other = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        resolver = MockDNSResolver()
        resolver.set_txt_record(KEY_NAME, [key_record(other)])
        headers, body, value = signer(rsa_private_key)

        result = DKIMValidator(resolver).verify(headers, body, value)
        assert result.result == AuthResult.FAIL
        assert result.error == "Signature verification failed"

    def test_expired(self, rsa_dns, rsa_private_key, signer):
        """Test x= in the past fails without a key lookup."""
        headers, body, value = signer(rsa_private_key, extra_tags=" t=1000; x=2000;")
        validator = DKIMValidator(rsa_dns, clock=lambda: 3000)

        result = validator.verify(headers, body, value)
        assert result.result == AuthResult.FAIL
        assert result.error == "Signature has expired"
        assert rsa_dns.query_count() == 0

    def test_revoked_key(self, rsa_private_key, signer):
        """Test an empty p= fails as revoked."""
        resolver = MockDNSResolver(txt={KEY_NAME: ["v=DKIM1; k=rsa; p="]})
        headers, body, value = signer(rsa_private_key)
        result = DKIMValidator(resolver).verify(headers, body, value)
        assert result.result == AuthResult.FAIL
        assert result.error == "Public key has been revoked"

    def test_key_type_mismatch(self, ed25519_private_key, rsa_private_key, signer, key_record):
        """Test an rsa signature against an ed25519 key record."""
        resolver = MockDNSResolver(txt={KEY_NAME: [key_record(ed25519_private_key)]})
        headers, body, value = signer(rsa_private_key)
        result = DKIMValidator(resolver).verify(headers, body, value)
        assert result.result == AuthResult.FAIL
        assert "Key type" in result.error

    def test_hash_not_permitted_by_key(self, rsa_private_key, signer, key_record):
        """Test a key restricted with h=sha256 rejects rsa-sha1."""
        resolver = MockDNSResolver(txt={KEY_NAME: [key_record(rsa_private_key, "; h=sha256")]})
        headers, body, value = signer(rsa_private_key, algorithm="rsa-sha1")
        result = DKIMValidator(resolver).verify(headers, body, value)
        assert result.result == AuthResult.FAIL
        assert "sha1" in result.error

    def test_key_not_for_email(self, rsa_private_key, signer, key_record):
        """Test a key whose s= excludes email."""
        resolver = MockDNSResolver(txt={KEY_NAME: [key_record(rsa_private_key, "; s=other")]})
        headers, body, value = signer(rsa_private_key)
        assert DKIMValidator(resolver).verify(headers, body, value).result == AuthResult.FAIL

    def test_garbage_key_material(self, rsa_private_key, signer):
        """Test an undecodable public key."""
        garbage = base64.b64encode(b"not a key").decode("ascii")
        resolver = MockDNSResolver(txt={KEY_NAME: [f"v=DKIM1; k=rsa; p={garbage}"]})
        headers, body, value = signer(rsa_private_key)
        result = DKIMValidator(resolver).verify(headers, body, value)
        assert result.result == AuthResult.FAIL
        assert result.error.startswith("Signature verification failed")


# ============================================================================
# Errors
# ============================================================================


class TestVerifyErrors:
    """Test permerror and temperror outcomes."""

    def test_unparseable_signature(self, rsa_dns):
        """Test a malformed DKIM-Signature value."""
        result = DKIMValidator(rsa_dns).verify("From: a@example.com", "", "v=1; a=rsa-sha256")
        assert result.result == AuthResult.PERMERROR
        assert result.error.startswith("Failed to parse DKIM signature:")
        assert result.signature is None
        assert result.domain == ""

    def test_key_not_found(self, rsa_private_key, signer):
        """Test no key record published."""
        headers, body, value = signer(rsa_private_key)
        result = DKIMValidator(MockDNSResolver()).verify(headers, body, value)
        assert result.result == AuthResult.PERMERROR
        assert result.error == (
            "Failed to retrieve public key: No DKIM public key found for s1._domainkey.example.com"
        )

    def test_malformed_key_record(self, rsa_private_key, signer):
        """Test a key record without p=."""
        resolver = MockDNSResolver(txt={KEY_NAME: ["v=DKIM1; k=rsa"]})
        headers, body, value = signer(rsa_private_key)
        result = DKIMValidator(resolver).verify(headers, body, value)
        assert result.result == AuthResult.PERMERROR
        assert result.error.startswith("Failed to retrieve public key:")

    def test_dns_timeout(self, rsa_private_key, signer):
        """Test a DNS timeout while fetching the key."""
        resolver = MockDNSResolver()
        resolver.set_error(KEY_NAME, DNSTimeoutError(KEY_NAME, "TXT"))
        headers, body, value = signer(rsa_private_key)
        result = DKIMValidator(resolver).verify(headers, body, value)
        assert result.result == AuthResult.TEMPERROR
        assert result.error.startswith("Failed to retrieve public key:")

    def test_unencodable_body(self, rsa_dns, rsa_private_key, signer):
        """Test a lone surrogate in the body is reported, not raised."""
        headers, body, value = signer(rsa_private_key)
        result = DKIMValidator(rsa_dns).verify(headers, body + "\ud800", value)
        assert result.result == AuthResult.PERMERROR
        assert result.error.startswith("Message cannot be encoded for hashing:")
        assert result.signature is not None

    def test_unencodable_header(self, rsa_dns, rsa_private_key, signer):
        """Test a lone surrogate in a signed header is reported, not raised."""
        headers, body, value = signer(rsa_private_key)
        headers = headers.replace("Quarterly report", "Quarterly \udbff report")
        result = DKIMValidator(rsa_dns).verify(headers, body, value)
        assert result.result == AuthResult.PERMERROR

    def test_escaped_bytes_are_hashed(self, rsa_dns, rsa_private_key, signer):
        """Test surrogate-escaped raw bytes hash normally."""
        headers, body, value = signer(rsa_private_key)
        result = DKIMValidator(rsa_dns).verify(headers, body + "\udc80", value)
        assert result.result == AuthResult.FAIL
        assert result.error == "Body hash mismatch"


# ============================================================================
# Key cache
# ============================================================================


class TestKeyCache:
    """Test public key caching."""

    def test_key_cached(self, rsa_dns, rsa_private_key, signer):
        """Test two verifications query DNS once."""
        headers, body, value = signer(rsa_private_key)
        validator = DKIMValidator(rsa_dns)
        validator.verify(headers, body, value)
        validator.verify(headers, body, value)
        assert rsa_dns.query_count("TXT") == 1

    def test_cache_expires(self, rsa_dns, rsa_private_key, signer):
        """Test an expired cache entry is fetched again."""
        now = [0.0]
        validator = DKIMValidator(rsa_dns, key_cache=TTLCache(default_ttl=60, clock=lambda: now[0]))
        headers, body, value = signer(rsa_private_key)

        validator.verify(headers, body, value)
        now[0] = 59.0
        validator.verify(headers, body, value)
        assert rsa_dns.query_count("TXT") == 1

        now[0] = 60.0
        validator.verify(headers, body, value)
        assert rsa_dns.query_count("TXT") == 2

    def test_cached_key_survives_record_change(
        self, rsa_dns, rsa_private_key, ed25519_private_key, key_record
    ):
        """Test a rotated record is seen only after the cached key expires."""
        now = [0.0]
        validator = DKIMValidator(rsa_dns, key_cache=TTLCache(default_ttl=60, clock=lambda: now[0]))
        assert validator.get_public_key("example.com", "s1").key_type == "rsa"

        rsa_dns.set_txt_record(KEY_NAME, [key_record(ed25519_private_key)])
        now[0] = 30.0
        assert validator.get_public_key("example.com", "s1").key_type == "rsa"

        now[0] = 60.0
        assert validator.get_public_key("example.com", "s1").key_type == "ed25519"

    def test_clear_cache(self, rsa_dns, rsa_private_key, signer):
        """Test clear_cache forces a new lookup."""
        headers, body, value = signer(rsa_private_key)
        validator = DKIMValidator(rsa_dns)
        validator.verify(headers, body, value)
        validator.clear_cache()
        validator.verify(headers, body, value)
        assert rsa_dns.query_count("TXT") == 2

    def test_revoked_key_not_cached(self, rsa_private_key, signer):
        """Test revocations are re-read every time."""
        resolver = MockDNSResolver(txt={KEY_NAME: ["v=DKIM1; p="]})
        headers, body, value = signer(rsa_private_key)
        validator = DKIMValidator(resolver)
        validator.verify(headers, body, value)
        validator.verify(headers, body, value)
        assert resolver.query_count("TXT") == 2

    def test_get_public_key_prefers_record_with_p(self, rsa_private_key, key_record):
        """Test the record carrying p= is chosen among several TXT strings."""
        resolver = MockDNSResolver(txt={KEY_NAME: ["unrelated", key_record(rsa_private_key)]})
        key = DKIMValidator(resolver).get_public_key("example.com", "s1")
        assert key.key_type == "rsa"
        assert key.public_key


# ============================================================================
# Multiple signatures
# ============================================================================


class TestVerifyMultiple:
    """Test verify_multiple."""

    def test_results_keep_input_order(self, rsa_dns, rsa_private_key, signer):
        """Test each signature is verified independently and in order."""
        headers, body, good = signer(rsa_private_key)
        _, _, unknown_selector = signer(rsa_private_key, selector="missing")
        broken = "v=1; a=rsa-sha256"

        results = DKIMValidator(rsa_dns, max_workers=3).verify_multiple(
            headers, body, [unknown_selector, good, broken]
        )
        assert [r.result for r in results] == [
            AuthResult.PERMERROR,
            AuthResult.PASS,
            AuthResult.PERMERROR,
        ]
        assert results[0].selector == "missing"

    def test_no_signatures(self, rsa_dns):
        """Test an empty list."""
        assert DKIMValidator(rsa_dns).verify_multiple("From: a@example.com", "", []) == []

    def test_unencodable_body_does_not_lose_results(self, rsa_dns, rsa_private_key, signer):
        """Test every signature still gets a result when the body cannot be hashed."""
        headers, body, value = signer(rsa_private_key)
        results = DKIMValidator(rsa_dns, max_workers=2).verify_multiple(
            headers, body + "\ud800", [value, value, "v=1; a=rsa-sha256"]
        )
        assert [r.result for r in results] == [AuthResult.PERMERROR] * 3
        assert results[0].error.startswith("Message cannot be encoded")


# ============================================================================
# Output
# ============================================================================


class TestOutput:
    """Test describe_output and to_dict."""

    def test_to_dict(self, rsa_dns, rsa_private_key, signer):
        """Test JSON serialization."""
        headers, body, value = signer(rsa_private_key)
        validator = DKIMValidator(rsa_dns)
        data = validator.to_dict(validator.verify(headers, body, value))

        assert data["result"] == "pass"
        assert data["signature"]["algorithm"] == "rsa-sha256"
        assert data["signature"]["canonicalization"] == {"header": "relaxed", "body": "relaxed"}
        assert data["signature"]["signed_headers"] == ["from", "to", "subject", "date"]

    def test_to_dict_without_signature(self, rsa_dns):
        """Test a parse failure has no signature details."""
        validator = DKIMValidator(rsa_dns)
        data = validator.to_dict(validator.verify("", "", "garbage"))
        assert data["result"] == "permerror"
        assert data["signature"] is None

    def test_describe_no_signatures(self, rsa_dns):
        """Test the descriptor for a message without signatures."""
        descriptor = DKIMValidator(rsa_dns).describe_output([])
        assert descriptor.rows[0].value == "None found"
        assert descriptor.quiet_summary([]) == "DKIM: none"

    def test_describe_results(self, rsa_dns, rsa_private_key, signer):
        """Test one section per signature and verbose-only details."""
        headers, body, value = signer(rsa_private_key)
        validator = DKIMValidator(rsa_dns)
        results = validator.verify_multiple(headers, body, [value, "garbage"])
        descriptor = validator.describe_output(results)

        normal = descriptor.filter_by_verbosity(VerbosityLevel.NORMAL)
        assert normal[0].label == "Signature s1/example.com"
        assert normal[0].style_class == "success"
        assert any(row.label == "Error" for row in normal)
        assert not any(row.label == "Algorithm" for row in normal)

        verbose = descriptor.filter_by_verbosity(VerbosityLevel.VERBOSE)
        assert any(row.label == "Algorithm" for row in verbose)
        assert descriptor.quiet_summary(results) == "DKIM: pass, permerror"
