"""SPF and DKIM validators.

Both validators depend only on the DNS resolution port in
``sender_auth.resolvers`` and return immutable result records.
"""

from .base import AuthResult, Qualifier
from .canonicalization import CanonicalizationMode, canonicalize_body, canonicalize_header
from .dkim import (
    DKIMAlgorithm,
    DKIMPublicKey,
    DKIMSignature,
    DKIMValidationResult,
    DKIMValidator,
    parse_key_record,
)
from .headers import get_dkim_signatures, split_header_fields, split_message
from .macros import MacroExpander
from .spf import (
    MechanismType,
    SPFEvaluationContext,
    SPFEvaluationResult,
    SPFMechanism,
    SPFRecord,
    SPFValidator,
)

__all__ = [
    "AuthResult",
    "CanonicalizationMode",
    "DKIMAlgorithm",
    "DKIMPublicKey",
    "DKIMSignature",
    "DKIMValidationResult",
    "DKIMValidator",
    "MacroExpander",
    "MechanismType",
    "Qualifier",
    "SPFEvaluationContext",
    "SPFEvaluationResult",
    "SPFMechanism",
    "SPFRecord",
    "SPFValidator",
    "canonicalize_body",
    "canonicalize_header",
    "get_dkim_signatures",
    "parse_key_record",
    "split_header_fields",
    "split_message",
]
