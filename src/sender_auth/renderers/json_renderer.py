"""JSON renderer for API/export."""

import json
import sys
from typing import Any, TextIO

from ..output import OutputDescriptor
from .base import BaseRenderer


class JSONRenderer(BaseRenderer):
    """
    Renders output to JSON format.

    Exports semantic styles as-is, allowing clients to apply their own
    theme interpretation, next to the validator's serialized result.
    """

    def __init__(self, stream: TextIO | None = None, **kwargs):
        super().__init__(**kwargs)
        self.stream = stream
        self.results: dict[str, dict[str, Any]] = {}

    def render(
        self,
        descriptor: OutputDescriptor,
        result: Any,
        section_id: str,
        data: dict | list | None = None,
    ) -> None:
        """
        Collect results for JSON export.

        Args:
            descriptor: Output descriptor
            result: Validator result
            section_id: Key under "results" in the JSON document
            data: Serialized result from the validator's ``to_dict``
        """
        self.collect_errors_warnings(descriptor, descriptor.title)

        self.results[section_id] = {
            "title": descriptor.title,
            "category": descriptor.category,
            "result": data,
            "rows": [
                {
                    "label": row.label,
                    "value": self._serialize_value(row.value),
                    "style_class": row.style_class,
                    "severity": row.severity,
                    "section_type": row.section_type,
                    "section_name": row.section_name,
                    "verbosity": row.verbosity.value,
                    "icon": row.icon,
                }
                for row in descriptor.rows
            ],
        }

    def render_summary(self) -> None:
        """Output JSON to stdout."""
        output = {
            "results": self.results,
            "summary": {
                "total_errors": len(self.all_errors),
                "total_warnings": len(self.all_warnings),
                "errors": [{"category": cat, "message": msg} for cat, msg in self.all_errors],
                "warnings": [{"category": cat, "message": msg} for cat, msg in self.all_warnings],
            },
        }

        stream = self.stream or sys.stdout
        json.dump(output, stream, indent=2, default=str)
        stream.write("\n")

    @staticmethod
    def _serialize_value(value: Any) -> Any:
        """
        Serialize value to JSON-compatible format.

        Args:
            value: Value to serialize

        Returns:
            JSON-serializable value
        """
        if value is None or isinstance(value, (str, int, float, bool)):
            return value

        if isinstance(value, (list, tuple, set, frozenset)):
            return [JSONRenderer._serialize_value(v) for v in value]

        if isinstance(value, dict):
            return {k: JSONRenderer._serialize_value(v) for k, v in value.items()}

        return str(value)
