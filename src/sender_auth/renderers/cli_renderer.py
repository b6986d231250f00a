"""CLI renderer using Rich library.

Interprets the semantic styles of an OutputDescriptor and prints them to
the terminal with Rich markup.
"""

from typing import Any

from rich.console import Console
from rich.markup import escape

from ..output import OutputDescriptor, OutputRow, VerbosityLevel
from .base import BaseRenderer


class CLIRenderer(BaseRenderer):
    """
    Renders output to CLI using Rich library.

    Maps semantic style classes to Rich markup:
    - success -> green
    - error -> red
    - warning -> yellow
    - info -> blue
    - highlight -> bold
    - muted -> dim
    - neutral -> default
    """

    STYLE_MAP = {
        "success": "green",
        "error": "red",
        "warning": "yellow",
        "info": "blue",
        "highlight": "bold",
        "muted": "dim",
        "neutral": "",
    }

    ICON_MAP = {
        "check": "✓",
        "cross": "✗",
        "warning": "⚠",
        "info": "ℹ",
        "arrow": "→",
        "key": "🔑",
        "envelope": "✉",
        "bullet": "•",
    }

    def __init__(
        self,
        verbosity: VerbosityLevel = VerbosityLevel.NORMAL,
        color: bool = True,
        console: Console | None = None,
    ):
        """
        Initialize CLI renderer.

        Args:
            verbosity: Output verbosity level
            color: Enable colored output
            console: Console to print to (default: a new stdout console)
        """
        super().__init__(verbosity)
        self.console = console or Console(color_system="auto" if color else None)

    def render(
        self,
        descriptor: OutputDescriptor,
        result: Any,
        section_id: str,
        data: dict | list | None = None,
    ) -> None:
        """
        Render validator output to CLI.

        Args:
            descriptor: Output structure description
            result: Validator result
            section_id: Section identifier
            data: Unused by this renderer
        """
        self.collect_errors_warnings(descriptor, descriptor.title)

        if self.verbosity == VerbosityLevel.QUIET:
            if descriptor.quiet_summary:
                self.console.print(descriptor.quiet_summary(result))
            return

        self.console.print(f"\n[bold blue]{descriptor.title}[/bold blue]")
        self.console.print()

        rows = descriptor.filter_by_verbosity(self.verbosity)
        if not rows:
            self.console.print("  [dim]No data to display[/dim]")
            return

        sections: dict[str, list[OutputRow]] = {}
        for row in rows:
            sections.setdefault(row.section_name or "_default", []).append(row)

        for section_name, section_rows in sections.items():
            if section_name != "_default":
                self.console.print()
                self.console.print(f"  [cyan]{section_name}[/cyan]")

            for row in section_rows:
                self._render_row(row)

    def _render_row(self, row: OutputRow) -> None:
        indent = "  "

        if row.section_type == "list":
            if row.label:
                style = self.STYLE_MAP.get(row.style_class, "")
                label = f"[{style}]{row.label}:[/{style}]" if style else f"{row.label}:"
                self.console.print(f"{indent}{label}")

            items = row.value if isinstance(row.value, (list, tuple)) else [row.value]
            for item in items:
                self.console.print(f"{indent}  {self.ICON_MAP['bullet']} {escape(str(item))}")
            return

        if not row.show_if_empty and not row.value:
            return

        formatted_value = self._format_value(row)

        style = self.STYLE_MAP.get(row.style_class, "")
        if style:
            formatted_value = f"[{style}]{formatted_value}[/{style}]"

        icon = self.ICON_MAP.get(row.icon, "")
        icon_str = f"{icon} " if icon else ""

        if row.label:
            self.console.print(f"{indent}{row.label}: {icon_str}{formatted_value}")
        else:
            self.console.print(f"{indent}{icon_str}{formatted_value}")

    def _format_value(self, row: OutputRow) -> str:
        """
        Format row value for display.

        Args:
            row: OutputRow

        Returns:
            Formatted string (Rich markup)
        """
        if row.value is None:
            return "[dim]none[/dim]"

        if isinstance(row.value, bool):
            return "Yes" if row.value else "No"

        if isinstance(row.value, (list, tuple)):
            return escape(", ".join(str(v) for v in row.value))

        return escape(str(row.value))

    def render_summary(self) -> None:
        """Render summary of all results."""
        if self.verbosity == VerbosityLevel.QUIET:
            return

        self.console.print()
        self.console.print("[bold blue]═══ Summary ═══[/bold blue]")
        self.console.print()

        if not self.all_errors and not self.all_warnings:
            self.console.print("[green]✓ No issues found![/green]")
        else:
            if self.all_errors:
                self.console.print(f"[red]✗ {len(self.all_errors)} error(s) found:[/red]")
                for category, error in self.all_errors:
                    self.console.print(f"  [red]• \\[{category}] {escape(error)}[/red]")
                self.console.print()

            if self.all_warnings:
                self.console.print(f"[yellow]⚠ {len(self.all_warnings)} warning(s) found:[/yellow]")
                for category, warning in self.all_warnings:
                    self.console.print(f"  [yellow]• \\[{category}] {escape(warning)}[/yellow]")

        self.console.print()
