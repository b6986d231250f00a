"""SPF and DKIM sender authentication.

Validators take a DNS resolver and return immutable results; see
``sender_auth.validators`` for the details and ``sender_auth.cli`` for the
command-line interface.
"""

from .authenticator import AuthenticationResults, MessageAuthenticator
from .resolvers import DNSPythonResolver, DNSResolver, MockDNSResolver, MXRecord, TTLCache
from .validators import (
    AuthResult,
    DKIMValidationResult,
    DKIMValidator,
    SPFEvaluationResult,
    SPFValidator,
)

__all__ = [
    "AuthResult",
    "AuthenticationResults",
    "DKIMValidationResult",
    "DKIMValidator",
    "DNSPythonResolver",
    "DNSResolver",
    "MXRecord",
    "MessageAuthenticator",
    "MockDNSResolver",
    "SPFEvaluationResult",
    "SPFValidator",
    "TTLCache",
]
