"""Base renderer protocol.

Renderers only know about :class:`~sender_auth.output.OutputDescriptor`;
they never inspect validator internals.
"""

from abc import ABC, abstractmethod
from typing import Any

from ..output import OutputDescriptor, VerbosityLevel


class BaseRenderer(ABC):
    """
    Base class for all output renderers.

    Renderers interpret OutputDescriptor semantic styles and render them
    according to their output format.
    """

    def __init__(self, verbosity: VerbosityLevel = VerbosityLevel.NORMAL):
        """
        Initialize renderer.

        Args:
            verbosity: Output verbosity level
        """
        self.verbosity = verbosity
        self.all_errors: list[tuple[str, str]] = []  # (category, message)
        self.all_warnings: list[tuple[str, str]] = []  # (category, message)

    @abstractmethod
    def render(
        self,
        descriptor: OutputDescriptor,
        result: Any,
        section_id: str,
        data: dict | list | None = None,
    ) -> None:
        """
        Render one validator's output.

        Args:
            descriptor: Output structure description
            result: Validator result, passed to the quiet summary
            section_id: Identifier used to key and categorize the output
            data: Serialized result from the validator's ``to_dict``
        """
        ...

    @abstractmethod
    def render_summary(self) -> None:
        """Render summary of everything rendered so far."""
        ...

    def collect_errors_warnings(self, descriptor: OutputDescriptor, category: str) -> None:
        """
        Collect errors and warnings from descriptor for summary.

        Args:
            descriptor: Output descriptor
            category: Category name for grouping
        """
        for row in descriptor.rows:
            if row.severity == "error":
                msg = str(row.value) if row.value else str(row.label)
                self.all_errors.append((category, msg))
            elif row.severity == "warning":
                msg = str(row.value) if row.value else str(row.label)
                self.all_warnings.append((category, msg))
