"""Result vocabulary shared by the SPF and DKIM validators."""

from enum import Enum


class AuthResult(str, Enum):
    """
    RFC 7208 / RFC 6376 result codes.

    ``pass``, ``fail``, ``softfail``, ``neutral`` and ``none`` are protocol
    outcomes. ``temperror`` is a transient failure worth retrying upstream;
    ``permerror`` is a defect in the published policy or the signature that
    will not go away on retry. DKIM only produces pass, fail, temperror and
    permerror.
    """

    PASS = "pass"
    FAIL = "fail"
    SOFTFAIL = "softfail"
    NEUTRAL = "neutral"
    NONE = "none"
    TEMPERROR = "temperror"
    PERMERROR = "permerror"

    def __str__(self) -> str:
        return self.value


class Qualifier(str, Enum):
    """SPF mechanism prefix."""

    PASS = "+"
    FAIL = "-"
    SOFTFAIL = "~"
    NEUTRAL = "?"

    @property
    def result(self) -> AuthResult:
        """Result produced when a mechanism with this qualifier matches."""
        return QUALIFIER_RESULTS[self]


QUALIFIER_RESULTS: dict[Qualifier, AuthResult] = {
    Qualifier.PASS: AuthResult.PASS,
    Qualifier.FAIL: AuthResult.FAIL,
    Qualifier.SOFTFAIL: AuthResult.SOFTFAIL,
    Qualifier.NEUTRAL: AuthResult.NEUTRAL,
}

# Semantic style per result, used by describe_output()
RESULT_STYLES: dict[AuthResult, tuple[str, str]] = {
    AuthResult.PASS: ("success", "check"),
    AuthResult.FAIL: ("error", "cross"),
    AuthResult.SOFTFAIL: ("warning", "warning"),
    AuthResult.NEUTRAL: ("muted", "info"),
    AuthResult.NONE: ("muted", "info"),
    AuthResult.TEMPERROR: ("warning", "warning"),
    AuthResult.PERMERROR: ("error", "cross"),
}
