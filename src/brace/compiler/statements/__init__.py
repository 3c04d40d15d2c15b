"""Statement compilation for the Brace compiler.

The statements package is organized into logical modules:
- basic: literal text, output, assignment
- control_flow: if, foreach, for, while, switch, break, continue
- template_structure: regions, parent, include, macro calls
- special_blocks: capture, filter, autoescape, cycle
- functions: registered function tags
"""

from __future__ import annotations

from brace.compiler.statements.basic import BasicStatementMixin
from brace.compiler.statements.control_flow import ControlFlowMixin
from brace.compiler.statements.functions import FunctionCompilationMixin
from brace.compiler.statements.special_blocks import SpecialBlockMixin
from brace.compiler.statements.template_structure import TemplateStructureMixin


class StatementCompilationMixin(
    BasicStatementMixin,
    ControlFlowMixin,
    TemplateStructureMixin,
    FunctionCompilationMixin,
    SpecialBlockMixin,
):
    """Combined mixin for compiling all statement types."""
