"""In-memory DNS resolver for tests and offline evaluation."""

from .base import MXRecord


def _normalize(name: str) -> str:
    return name.lower().rstrip(".")


class MockDNSResolver:
    """
    Deterministic :class:`~sender_auth.resolvers.base.DNSResolver` backed by dicts.

    Names are matched case-insensitively. Unknown names resolve to an empty
    list. Errors registered with :meth:`set_error` are raised for every record
    type queried on that name.

    Example:
        >>> dns = MockDNSResolver()
        >>> dns.set_txt_record("example.com", ["v=spf1 ip4:192.0.2.0/24 -all"])
        >>> dns.set_error("broken.example", DNSTimeoutError("broken.example", "TXT"))
    """

    def __init__(
        self,
        txt: dict[str, list[str]] | None = None,
        a: dict[str, list[str]] | None = None,
        aaaa: dict[str, list[str]] | None = None,
        mx: dict[str, list[MXRecord]] | None = None,
    ):
        self.txt = {_normalize(k): list(v) for k, v in (txt or {}).items()}
        self.a = {_normalize(k): list(v) for k, v in (a or {}).items()}
        self.aaaa = {_normalize(k): list(v) for k, v in (aaaa or {}).items()}
        self.mx = {_normalize(k): list(v) for k, v in (mx or {}).items()}
        self.errors: dict[str, Exception] = {}
        self.queries: list[tuple[str, str]] = []  # (record_type, name)

    # ========================================================================
    # Setup
    # ========================================================================

    def set_txt_record(self, name: str, records: list[str]) -> None:
        self.txt[_normalize(name)] = list(records)

    def set_a_record(self, name: str, addresses: list[str]) -> None:
        self.a[_normalize(name)] = list(addresses)

    def set_aaaa_record(self, name: str, addresses: list[str]) -> None:
        self.aaaa[_normalize(name)] = list(addresses)

    def set_mx_record(self, name: str, records: list[MXRecord | tuple[int, str]]) -> None:
        """Set MX records; plain ``(priority, exchange)`` tuples are accepted."""
        self.mx[_normalize(name)] = [
            r if isinstance(r, MXRecord) else MXRecord(priority=r[0], exchange=r[1])
            for r in records
        ]

    def set_error(self, name: str, error: Exception) -> None:
        self.errors[_normalize(name)] = error

    def clear_error(self, name: str) -> None:
        self.errors.pop(_normalize(name), None)

    def query_count(self, record_type: str | None = None) -> int:
        """Number of queries made, optionally for one record type."""
        if record_type is None:
            return len(self.queries)
        return sum(1 for rtype, _ in self.queries if rtype == record_type)

    # ========================================================================
    # DNSResolver protocol
    # ========================================================================

    def resolve_txt(self, name: str) -> list[str]:
        return list(self._lookup(self.txt, name, "TXT"))

    def resolve_a(self, name: str) -> list[str]:
        return list(self._lookup(self.a, name, "A"))

    def resolve_aaaa(self, name: str) -> list[str]:
        return list(self._lookup(self.aaaa, name, "AAAA"))

    def resolve_mx(self, name: str) -> list[MXRecord]:
        return sorted(self._lookup(self.mx, name, "MX"), key=lambda mx: mx.priority)

    def _lookup(self, table: dict, name: str, record_type: str) -> list:
        normalized = _normalize(name)
        self.queries.append((record_type, normalized))

        error = self.errors.get(normalized)
        if error is not None:
            raise error

        return table.get(normalized, [])
