"""Debug statistics tracking for DNS queries.

This module provides a global statistics tracker that the DNS resolvers
report into when debug mode is enabled.
"""

import logging
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from typing import ClassVar

logger = logging.getLogger(__name__)


@dataclass
class DNSQueryStats:
    """Statistics for DNS queries."""

    # Count by record type (TXT, A, AAAA, MX)
    by_type: dict[str, int] = field(default_factory=lambda: defaultdict(int))

    # Count by queried name, useful to spot SPF include fan-out
    by_name: dict[str, int] = field(default_factory=lambda: defaultdict(int))

    total: int = 0
    failed: int = 0
    successful: int = 0


class DebugStatsTracker:
    """
    Global statistics tracker for debug mode.

    Thread-safe singleton; DKIM signatures are verified on a thread pool so
    queries can be recorded concurrently.
    """

    _instance: ClassVar["DebugStatsTracker | None"] = None
    _lock: ClassVar[threading.Lock] = threading.Lock()

    def __init__(self) -> None:
        """Initialize statistics."""
        self.dns = DNSQueryStats()
        self._enabled = False
        self._data_lock = threading.Lock()

    @classmethod
    def get_instance(cls) -> "DebugStatsTracker":
        """Get singleton instance (thread-safe)."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    def enable(self) -> None:
        """Enable statistics tracking."""
        self._enabled = True
        logger.debug("Debug statistics tracking enabled")

    def disable(self) -> None:
        self._enabled = False

    def is_enabled(self) -> bool:
        return self._enabled

    def reset(self) -> None:
        """Reset all statistics."""
        with self._data_lock:
            self.dns = DNSQueryStats()
        logger.debug("Debug statistics reset")

    def record_dns_query(
        self,
        domain: str,
        record_type: str,
        success: bool = True,
        error: str | None = None,
    ) -> None:
        """
        Record a DNS query.

        Args:
            domain: Name queried
            record_type: Type of DNS record (TXT, A, AAAA, MX)
            success: Whether query succeeded
            error: Error message if failed
        """
        if not self._enabled:
            return

        with self._data_lock:
            self.dns.total += 1
            self.dns.by_type[record_type] += 1
            self.dns.by_name[domain.lower()] += 1

            if success:
                self.dns.successful += 1
                logger.debug(f"→ DNS {record_type}: {domain}")
            else:
                self.dns.failed += 1
                error_msg = f" ({error})" if error else ""
                logger.debug(f"✗ DNS {record_type}: {domain}{error_msg}")

    def get_summary(self) -> str:
        """
        Get formatted summary of statistics.

        Returns:
            Formatted string with statistics
        """
        if not self._enabled:
            return "Debug statistics tracking disabled"

        with self._data_lock:
            lines = ["\n" + "=" * 70, "DEBUG STATISTICS SUMMARY", "=" * 70]

            if self.dns.total == 0:
                lines.append("\nDNS Queries: None")
            else:
                lines.append("\nDNS Queries:")
                lines.append(f"  Total:      {self.dns.total}")
                lines.append(f"  Successful: {self.dns.successful}")
                lines.append(f"  Failed:     {self.dns.failed}")

                lines.append("\n  By record type:")
                for record_type in sorted(self.dns.by_type):
                    lines.append(f"    {record_type:8s}: {self.dns.by_type[record_type]:3d}")

                lines.append("\n  By name:")
                for name in sorted(self.dns.by_name):
                    lines.append(f"    {name}: {self.dns.by_name[name]}")

            lines.append("=" * 70)
            return "\n".join(lines)


def get_stats_tracker() -> DebugStatsTracker:
    """Get the global statistics tracker instance."""
    return DebugStatsTracker.get_instance()
