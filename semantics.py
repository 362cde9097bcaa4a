"""
Arith Expression Tree
Immutable node types produced by the parser and consumed by the interpreter
"""

from dataclasses import dataclass
from enum import Enum
import math
from typing import Any, Dict, List, Tuple, Union


# ============================================================================
# OPERATOR TAGS
# ============================================================================

class UnaryOp(Enum):
  PLUS = "+"
  MINUS = "-"


class BinaryOp(Enum):
  PLUS = "+"
  MINUS = "-"
  MUL = "*"
  DIV = "/"
  MOD = "mod"
  POW = "**"


# ============================================================================
# DATA STRUCTURES (Frozen Dataclasses)
# ============================================================================

@dataclass(frozen=True)
class NumberLiteral:
  """Leaf node holding a parsed numeric literal"""
  value: float


@dataclass(frozen=True)
class UnaryExpression:
  """Sign applied to a single operand"""
  op: UnaryOp
  arg: 'Expression'


@dataclass(frozen=True)
class BinaryExpression:
  """First operand followed by (operator, operand) pairs of one precedence tier.

  The pairs are kept in input order and folded left to right.
  """
  first: 'Expression'
  ops: Tuple[Tuple[BinaryOp, 'Expression'], ...]


@dataclass(frozen=True)
class FunctionCall:
  """Call of a registered function with positional arguments"""
  name: str
  args: Tuple['Expression', ...]


Expression = Union[NumberLiteral, UnaryExpression, BinaryExpression, FunctionCall]

class ArithSemanticsError(TypeError):
  """An object that is not an expression node was found in a tree"""

  def __init__(self, node: Any):
    self.node = node
    super().__init__(f"Not an expression node: {node!r}")


# ============================================================================
# TREE FUNCTIONS (Pure)
# ============================================================================

def children(expr: Expression) -> List[Expression]:
  """Direct sub-expressions of a node, in input order"""
  if isinstance(expr, NumberLiteral):
    return []
  elif isinstance(expr, UnaryExpression):
    return [expr.arg]
  elif isinstance(expr, BinaryExpression):
    return [expr.first] + [operand for _, operand in expr.ops]
  elif isinstance(expr, FunctionCall):
    return list(expr.args)
  raise ArithSemanticsError(expr)


def expression_depth(expr: Expression) -> int:
  """Nesting depth of the tree; a lone literal has depth 1"""
  depth = 0
  level = [expr]
  # Breadth-first so deep trees do not recurse
  while level:
    depth += 1
    level = [child for node in level for child in children(node)]
  return depth


def count_nodes(expr: Expression) -> int:
  total = 0
  stack = [expr]
  while stack:
    node = stack.pop()
    total += 1
    stack.extend(children(node))
  return total


def format_number(value: float) -> str:
  """Integral values without a fraction, everything else as repr"""
  if math.isfinite(value) and value == int(value) and abs(value) < 1e16:
    return str(int(value))
  return repr(value)


def format_expression(expr: Expression) -> str:
  """Render the tree back to source text, parenthesising every operation.

  The output parses back to a tree that evaluates to the same value.
  """
  if isinstance(expr, NumberLiteral):
    return format_number(expr.value)
  elif isinstance(expr, UnaryExpression):
    return f"{expr.op.value}{format_expression(expr.arg)}"
  elif isinstance(expr, BinaryExpression):
    parts = [format_expression(expr.first)]
    for op, operand in expr.ops:
      parts.append(op.value)
      parts.append(format_expression(operand))
    return "(" + " ".join(parts) + ")"
  elif isinstance(expr, FunctionCall):
    args = ", ".join(format_expression(arg) for arg in expr.args)
    return f"{expr.name}({args})"
  raise ArithSemanticsError(expr)


def pretty_print_expression(expr: Expression, indent: int = 0) -> str:
  """Pretty print the tree, one node per line"""
  prefix = "  " * indent

  if isinstance(expr, NumberLiteral):
    return f"{prefix}Number({format_number(expr.value)})"
  elif isinstance(expr, UnaryExpression):
    result = f"{prefix}Unary({expr.op.name})"
    return result + "\n" + pretty_print_expression(expr.arg, indent + 1)
  elif isinstance(expr, BinaryExpression):
    lines = [f"{prefix}Binary", pretty_print_expression(expr.first, indent + 1)]
    for op, operand in expr.ops:
      lines.append(f"{prefix}  {op.name}")
      lines.append(pretty_print_expression(operand, indent + 1))
    return "\n".join(lines)
  elif isinstance(expr, FunctionCall):
    lines = [f"{prefix}Call({expr.name})"]
    lines.extend(pretty_print_expression(arg, indent + 1) for arg in expr.args)
    return "\n".join(lines)
  raise ArithSemanticsError(expr)


def expression_to_dict(expr: Expression) -> Dict[str, Any]:
  """Convert the tree to plain dicts and lists (JSON compatible)"""
  if isinstance(expr, NumberLiteral):
    return {'type': 'NUMBER', 'value': expr.value}
  elif isinstance(expr, UnaryExpression):
    return {'type': 'UNARY', 'op': expr.op.name, 'arg': expression_to_dict(expr.arg)}
  elif isinstance(expr, BinaryExpression):
    return {
        'type': 'BINARY',
        'first': expression_to_dict(expr.first),
        'ops': [{'op': op.name, 'operand': expression_to_dict(operand)}
                for op, operand in expr.ops]
    }
  elif isinstance(expr, FunctionCall):
    return {
        'type': 'CALL',
        'name': expr.name,
        'args': [expression_to_dict(arg) for arg in expr.args]
    }
  raise ArithSemanticsError(expr)
