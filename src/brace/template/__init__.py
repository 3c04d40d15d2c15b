"""Compiled templates and their runtime helpers."""

from brace.template.core import Template
from brace.template.helpers import SwitchBreak
from brace.utils.html import Markup

__all__ = [
    "Markup",
    "SwitchBreak",
    "Template",
]
