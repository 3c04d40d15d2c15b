"""Brace AST nodes.

Immutable dataclasses produced by the parser and consumed by the compiler.
"""

from brace.nodes.base import Node
from brace.nodes.control_flow import Break, Continue, Foreach, ForRange, If, Switch, While
from brace.nodes.expressions import (
    BinOp,
    BoolOp,
    Compare,
    Concat,
    CondExpr,
    Const,
    DictExpr,
    Expr,
    FuncCall,
    Getattr,
    Getitem,
    ListExpr,
    MethodCall,
    Modifier,
    Property,
    SystemVar,
    Test,
    UnaryOp,
    Var,
)
from brace.nodes.functions import BlockFunctionCall, FunctionCall
from brace.nodes.output import Assign, Autoescape, Capture, Cycle, Data, Filter, Output
from brace.nodes.structure import (
    Block,
    Fragment,
    Include,
    Macro,
    MacroCall,
    Parent,
    Template,
)

__all__ = [
    "Assign",
    "Autoescape",
    "BinOp",
    "Block",
    "BlockFunctionCall",
    "BoolOp",
    "Break",
    "Capture",
    "Compare",
    "Concat",
    "CondExpr",
    "Const",
    "Continue",
    "Cycle",
    "Data",
    "DictExpr",
    "Expr",
    "Filter",
    "ForRange",
    "Foreach",
    "Fragment",
    "FuncCall",
    "FunctionCall",
    "Getattr",
    "Getitem",
    "If",
    "Include",
    "ListExpr",
    "Macro",
    "MacroCall",
    "MethodCall",
    "Modifier",
    "Node",
    "Output",
    "Parent",
    "Property",
    "Switch",
    "SystemVar",
    "Template",
    "Test",
    "UnaryOp",
    "Var",
    "While",
]
