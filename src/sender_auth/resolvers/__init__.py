"""DNS resolution port, implementations, and the key cache."""

from .base import DNSResolver, MXRecord
from .cache import DNSCacheEntry, TTLCache
from .dnspython_resolver import DNSPythonResolver, create_resolver
from .memory import MockDNSResolver

__all__ = [
    "DNSCacheEntry",
    "DNSPythonResolver",
    "DNSResolver",
    "MXRecord",
    "MockDNSResolver",
    "TTLCache",
    "create_resolver",
]
