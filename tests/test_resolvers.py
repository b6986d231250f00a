"""Tests for the DNS resolvers and the TTL cache."""

from unittest.mock import MagicMock

import dns.exception
import dns.resolver
import pytest

from sender_auth.exceptions import DNSLookupError, DNSTimeoutError
from sender_auth.resolvers import (
    DNSPythonResolver,
    MockDNSResolver,
    MXRecord,
    TTLCache,
    create_resolver,
)
from sender_auth.utils.debug_stats import get_stats_tracker

# ============================================================================
# TTL cache
# ============================================================================


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestTTLCache:
    """Test TTLCache."""

    def test_get_missing(self):
        """Test a missing key returns None."""
        assert TTLCache().get("nothing") is None

    def test_set_and_get(self):
        """Test a stored value is returned before expiry."""
        clock = FakeClock()
        cache = TTLCache(default_ttl=10, clock=clock)
        entry = cache.set("key", "value")

        assert entry.expires_at == 1010.0
        clock.now = 1009.9
        assert cache.get("key") == "value"
        assert "key" in cache
        assert len(cache) == 1

    def test_expiry_boundary(self):
        """Test an entry is stale once the clock reaches expires_at."""
        clock = FakeClock()
        cache = TTLCache(default_ttl=10, clock=clock)
        cache.set("key", "value")

        clock.now = 1010.0
        assert cache.get("key") is None
        assert len(cache) == 0

    def test_per_entry_ttl(self):
        """Test an explicit TTL overrides the default."""
        clock = FakeClock()
        cache = TTLCache(default_ttl=10, clock=clock)
        cache.set("short", 1, ttl=1)
        cache.set("long", 2)

        clock.now = 1005.0
        assert cache.get("short") is None
        assert cache.get("long") == 2

    def test_overwrite(self):
        """Test set replaces the value and the deadline."""
        clock = FakeClock()
        cache = TTLCache(default_ttl=10, clock=clock)
        cache.set("key", "old")
        clock.now = 1008.0
        cache.set("key", "new")
        clock.now = 1015.0
        assert cache.get("key") == "new"

    def test_delete_and_clear(self):
        """Test delete and clear."""
        cache = TTLCache()
        cache.set("a", 1)
        cache.set("b", 2)
        cache.delete("a")
        cache.delete("never-set")
        assert cache.get("a") is None
        cache.clear()
        assert len(cache) == 0

    def test_purge_expired(self):
        """Test purge_expired removes only stale entries."""
        clock = FakeClock()
        cache = TTLCache(default_ttl=10, clock=clock)
        cache.set("a", 1, ttl=1)
        cache.set("b", 2, ttl=100)
        clock.now = 1050.0
        assert cache.purge_expired() == 1
        assert len(cache) == 1


# ============================================================================
# In-memory resolver
# ============================================================================


class TestMockDNSResolver:
    """Test MockDNSResolver."""

    def test_unknown_names_empty(self):
        """Test unknown names resolve to empty lists."""
        resolver = MockDNSResolver()
        assert resolver.resolve_txt("example.com") == []
        assert resolver.resolve_a("example.com") == []
        assert resolver.resolve_aaaa("example.com") == []
        assert resolver.resolve_mx("example.com") == []

    def test_names_normalized(self):
        """Test case and trailing dot do not matter."""
        resolver = MockDNSResolver(txt={"Example.COM.": ["v=spf1 -all"]})
        assert resolver.resolve_txt("example.com") == ["v=spf1 -all"]

    def test_mx_sorted_by_priority(self):
        """Test MX records come back sorted."""
        resolver = MockDNSResolver()
        resolver.set_mx_record("example.com", [(20, "b.example.com"), MXRecord(10, "a.example.com")])
        assert [mx.exchange for mx in resolver.resolve_mx("example.com")] == [
            "a.example.com",
            "b.example.com",
        ]

    def test_errors(self):
        """Test registered errors are raised and can be cleared."""
        resolver = MockDNSResolver(a={"example.com": ["192.0.2.1"]})
        resolver.set_error("example.com", DNSTimeoutError("example.com", "A"))
        with pytest.raises(DNSTimeoutError):
            resolver.resolve_a("example.com")

        resolver.clear_error("example.com")
        assert resolver.resolve_a("example.com") == ["192.0.2.1"]

    def test_query_log(self):
        """Test queries are recorded in order."""
        resolver = MockDNSResolver()
        resolver.resolve_txt("a.example")
        resolver.resolve_a("b.example")
        resolver.resolve_txt("c.example")
        assert resolver.queries == [("TXT", "a.example"), ("A", "b.example"), ("TXT", "c.example")]
        assert resolver.query_count() == 3
        assert resolver.query_count("TXT") == 2

    def test_returned_lists_are_copies(self):
        """Test callers cannot modify stored records."""
        resolver = MockDNSResolver(txt={"example.com": ["one"]})
        resolver.resolve_txt("example.com").append("two")
        assert resolver.resolve_txt("example.com") == ["one"]


# ============================================================================
# dnspython resolver
# ============================================================================


def make_resolver(answers=None, error=None) -> tuple[DNSPythonResolver, MagicMock]:
    """DNSPythonResolver over a mocked dns.resolver.Resolver."""
    backend = MagicMock(spec=dns.resolver.Resolver)
    if error is not None:
        backend.resolve.side_effect = error
    else:
        backend.resolve.return_value = answers or []
    return DNSPythonResolver(resolver=backend), backend


class TestDNSPythonResolver:
    """Test DNSPythonResolver with a mocked dnspython backend."""

    def test_txt_strings_joined(self):
        """Test multi-string TXT records are concatenated."""
        rdata = MagicMock()
        rdata.strings = (b"v=spf1 ip4:192.0.2.0/24 ", b"include:_spf.example.net -all")
        resolver, backend = make_resolver([rdata])

        assert resolver.resolve_txt("example.com") == [
            "v=spf1 ip4:192.0.2.0/24 include:_spf.example.net -all"
        ]
        backend.resolve.assert_called_once_with("example.com", "TXT")

    def test_a_and_aaaa(self):
        """Test address records."""
        rdata = MagicMock()
        rdata.address = "192.0.2.1"
        resolver, backend = make_resolver([rdata])
        assert resolver.resolve_a("example.com") == ["192.0.2.1"]

        rdata.address = "2001:db8::1"
        assert resolver.resolve_aaaa("example.com") == ["2001:db8::1"]
        backend.resolve.assert_called_with("example.com", "AAAA")

    def test_mx_sorted_and_dot_stripped(self):
        """Test MX preference ordering and exchange names."""
        low, high = MagicMock(), MagicMock()
        low.preference, high.preference = 10, 20
        low.exchange.to_text.return_value = "mx1.example.com."
        high.exchange.to_text.return_value = "mx2.example.com."
        resolver, _ = make_resolver([high, low])

        assert resolver.resolve_mx("example.com") == [
            MXRecord(priority=10, exchange="mx1.example.com"),
            MXRecord(priority=20, exchange="mx2.example.com"),
        ]

    @pytest.mark.parametrize("error", [dns.resolver.NXDOMAIN(), dns.resolver.NoAnswer()])
    def test_no_data_is_empty(self, error):
        """Test NXDOMAIN and NoAnswer map to an empty list."""
        resolver, _ = make_resolver(error=error)
        assert resolver.resolve_txt("missing.example") == []

    def test_timeout(self):
        """Test a timeout raises DNSTimeoutError."""
        resolver, _ = make_resolver(error=dns.exception.Timeout())
        with pytest.raises(DNSTimeoutError) as exc_info:
            resolver.resolve_txt("slow.example")
        assert exc_info.value.name == "slow.example"
        assert exc_info.value.record_type == "TXT"

    def test_other_failure(self):
        """Test other dnspython errors raise DNSLookupError."""
        resolver, _ = make_resolver(error=dns.exception.DNSException("SERVFAIL"))
        with pytest.raises(DNSLookupError) as exc_info:
            resolver.resolve_a("broken.example")
        assert not isinstance(exc_info.value, DNSTimeoutError)
        assert "SERVFAIL" in str(exc_info.value)

    def test_queries_recorded_in_debug_stats(self):
        """Test queries are counted when statistics are enabled."""
        tracker = get_stats_tracker()
        tracker.enable()
        tracker.reset()

        resolver, _ = make_resolver(error=dns.resolver.NXDOMAIN())
        resolver.resolve_txt("example.com")
        resolver, _ = make_resolver(error=dns.exception.Timeout())
        with pytest.raises(DNSTimeoutError):
            resolver.resolve_mx("example.com")

        assert tracker.dns.total == 2
        assert tracker.dns.failed == 1
        assert tracker.dns.by_type["TXT"] == 1
        assert "example.com" in tracker.get_summary()


class TestCreateResolver:
    """Test create_resolver."""

    def test_timeout_applied(self):
        """Test the timeout covers both single tries and the whole query."""
        resolver = create_resolver(nameservers=["192.0.2.53"], timeout=2.5)
        assert resolver.timeout == 2.5
        assert resolver.lifetime == 2.5

    def test_protocol_conformance(self):
        """Test both implementations satisfy the DNSResolver protocol."""
        from sender_auth.resolvers import DNSResolver

        assert isinstance(MockDNSResolver(), DNSResolver)
        assert isinstance(DNSPythonResolver(resolver=MagicMock()), DNSResolver)
