"""Renderer-agnostic output descriptions.

Validators describe WHAT to display for a result; renderers in
``sender_auth.renderers`` decide HOW.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class VerbosityLevel(Enum):
    """Output verbosity levels."""

    QUIET = "quiet"
    NORMAL = "normal"
    VERBOSE = "verbose"
    DEBUG = "debug"

    def __ge__(self, other):
        """Allow >= comparison for verbosity filtering."""
        if not isinstance(other, VerbosityLevel):
            return NotImplemented
        return _LEVEL_ORDER.index(self) >= _LEVEL_ORDER.index(other)

    def __gt__(self, other):
        """Allow > comparison for verbosity filtering."""
        if not isinstance(other, VerbosityLevel):
            return NotImplemented
        return _LEVEL_ORDER.index(self) > _LEVEL_ORDER.index(other)


_LEVEL_ORDER = [
    VerbosityLevel.QUIET,
    VerbosityLevel.NORMAL,
    VerbosityLevel.VERBOSE,
    VerbosityLevel.DEBUG,
]


@dataclass
class OutputRow:
    """
    Renderer-agnostic output row.

    Example:
        OutputRow(
            label="SPF Result",
            value="pass",
            style_class="success",  # Renderer decides: green, checkmark, etc.
            icon="check",
        )
    """

    label: str | None = None
    value: Any = None

    # Semantic presentation hints (NOT specific colors/styles)
    style_class: str = "neutral"  # success, error, warning, info, highlight, muted, neutral
    severity: str = "info"  # error, warning, info

    section_type: str = "key_value"  # key_value, list, heading, text
    section_name: str | None = None

    verbosity: VerbosityLevel = VerbosityLevel.NORMAL

    show_if_empty: bool = True
    icon: str | None = None  # check, cross, warning, info, arrow, key, envelope
    format_as: str | None = None  # code


@dataclass
class OutputDescriptor:
    """Describes how to render a validation result at different verbosity levels."""

    rows: list[OutputRow] = field(default_factory=list)

    title: str = ""
    category: str = "general"  # spf, dkim

    # Summary for quiet mode
    quiet_summary: Callable[[Any], str] | None = None

    def add_row(self, label: str | None = None, value: Any = None, **kwargs) -> "OutputDescriptor":
        """
        Builder pattern for adding rows.

        Args:
            label: Row label
            value: Row value
            **kwargs: Additional OutputRow parameters

        Returns:
            Self for chaining
        """
        self.rows.append(OutputRow(label=label, value=value, **kwargs))
        return self

    def filter_by_verbosity(self, verbosity: VerbosityLevel) -> list[OutputRow]:
        """Return only rows that should be shown at this verbosity level."""
        return [row for row in self.rows if verbosity >= row.verbosity]
