"""Renderers for validator output.

All renderers implement the BaseRenderer protocol and are decoupled from
the validators.
"""

from .base import BaseRenderer
from .cli_renderer import CLIRenderer
from .json_renderer import JSONRenderer

__all__ = ["BaseRenderer", "CLIRenderer", "JSONRenderer"]
