from .cmd import cmd
from .template import format_template

__all__ = (
    "cmd",
    "format_template",
)
