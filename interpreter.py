"""
Arith Interpreter - Pure Functional Style
Tree-walking evaluation of parsed expressions
Concurrent batch evaluation is handled at the boundary with actors
"""

from typing import Any, Dict, List, Optional, Sequence
import pykka

from error_handling import ArithEvalError, ArithParseError
from parsing import MAX_NESTING_DEPTH, create_parser, parse_expression
from semantics import (
  ArithSemanticsError,
  BinaryExpression,
  Expression,
  FunctionCall,
  NumberLiteral,
  UnaryExpression,
  expression_depth,
)
from stdlib import (
  BUILTIN_FUNCTIONS,
  FunctionRegistry,
  apply_binary,
  apply_unary,
  call_function,
  register_function,
)
from utilities import argument_at, recursion_headroom, unknown_function_error


# A parsed tree grows at most four nodes (three tiers and a call or sign)
# per nesting level
MAX_EVAL_DEPTH = 4 * (MAX_NESTING_DEPTH + 1)

EVAL_FRAMES_PER_LEVEL = 3
EVAL_FRAME_SLACK = 50


# ============================================================================
# EVALUATION FUNCTIONS
# ============================================================================

def eval_ast(expr: Expression, functions: FunctionRegistry, debug: bool = False) -> float:
  """
  Evaluate an expression node and return its value.
  Dispatches on the node class; every node kind must be handled here.
  """
  if debug:
    print(f"DEBUG: Evaluating {type(expr).__name__}")

  if isinstance(expr, NumberLiteral):
    return eval_number(expr, functions, debug)
  elif isinstance(expr, UnaryExpression):
    return eval_unary(expr, functions, debug)
  elif isinstance(expr, BinaryExpression):
    return eval_binary(expr, functions, debug)
  elif isinstance(expr, FunctionCall):
    return eval_function_call(expr, functions, debug)
  else:
    raise ArithEvalError(f"Unknown expression node: {expr!r}", expr)


def eval_number(expr: NumberLiteral, functions: FunctionRegistry, debug: bool = False) -> float:
  """Evaluate number literal"""
  return float(expr.value)


def eval_unary(expr: UnaryExpression, functions: FunctionRegistry, debug: bool = False) -> float:
  """Evaluate the operand, then apply the sign"""
  value = eval_ast(expr.arg, functions, debug)
  return apply_unary(expr.op, value)


def eval_binary(expr: BinaryExpression, functions: FunctionRegistry, debug: bool = False) -> float:
  """Left fold over the operator chain; every operand is evaluated, in order"""
  acc = eval_ast(expr.first, functions, debug)
  for op, operand in expr.ops:
    right = eval_ast(operand, functions, debug)
    result = apply_binary(op, acc, right)
    if debug:
      print(f"DEBUG: {acc!r} {op.value} {right!r} = {result!r}")
    acc = result
  return acc


def eval_function_call(expr: FunctionCall, functions: FunctionRegistry, debug: bool = False) -> float:
  """Look up the function and evaluate the arguments it requires by position.

  Arguments beyond the function's arity are neither evaluated nor reported.
  """
  func = functions.get(expr.name)
  if func is None:
    raise unknown_function_error(expr.name, list(functions))

  args = []
  for index in range(func.arity):
    arg_expr = argument_at(func.name, expr.args, index, func.arity)
    args.append(eval_ast(arg_expr, functions, debug))

  if debug:
    print(f"DEBUG: Calling {func.name}{tuple(args)}")

  try:
    return call_function(func, args)
  except (ValueError, TypeError, OverflowError, ZeroDivisionError) as e:
    raise ArithEvalError(f"{func.name} failed: {e}", expr) from e


def evaluate(expr: Expression, functions: Optional[FunctionRegistry] = None, debug: bool = False) -> float:
  """
  Evaluate an expression tree to a float.
  The tree is not modified, so evaluating it again gives the same result.
  Trees deeper than MAX_EVAL_DEPTH are rejected; every tree the parser
  accepts is within it.
  """
  if functions is None:
    functions = BUILTIN_FUNCTIONS
  try:
    depth = expression_depth(expr)
  except ArithSemanticsError as e:
    raise ArithEvalError(f"Unknown expression node: {e.node!r}", expr) from e
  if depth > MAX_EVAL_DEPTH:
    raise ArithEvalError(
      f"Expression nested too deeply to evaluate (depth {depth}, limit {MAX_EVAL_DEPTH})", expr
    )
  try:
    with recursion_headroom(EVAL_FRAMES_PER_LEVEL * depth + EVAL_FRAME_SLACK):
      return eval_ast(expr, functions, debug)
  except RecursionError as e:
    raise ArithEvalError("Expression nested too deeply to evaluate", expr) from e


def calculate(text: str, functions: Optional[FunctionRegistry] = None, debug: bool = False) -> float:
  """Parse and evaluate expression text"""
  if debug:
    expr = create_parser(debug=True).parse_expression(text)
  else:
    expr = parse_expression(text)
  return evaluate(expr, functions, debug)


# ============================================================================
# INTERPRETER OBJECT
# ============================================================================

class ArithInterpreter:
  """Parser and evaluator bound to one function registry"""

  def __init__(self, debug: bool = False, functions: Optional[FunctionRegistry] = None):
    self.debug = debug
    self.functions = BUILTIN_FUNCTIONS if functions is None else functions
    self.parser = create_parser(debug)

  def parse(self, text: str) -> Expression:
    return self.parser.parse_expression(text)

  def evaluate(self, expr: Expression) -> float:
    return evaluate(expr, self.functions, self.debug)

  def calculate(self, text: str) -> float:
    return self.evaluate(self.parse(text))

  def with_function(self, name: str, arity: int, impl) -> 'ArithInterpreter':
    """Return a new interpreter whose registry also contains `name`"""
    return ArithInterpreter(self.debug, register_function(self.functions, name, arity, impl))


def create_interpreter(debug: bool = False, functions: Optional[FunctionRegistry] = None) -> ArithInterpreter:
  """Factory function returning an interpreter"""
  return ArithInterpreter(debug=debug, functions=functions)


def create_debug_interpreter(functions: Optional[FunctionRegistry] = None) -> ArithInterpreter:
  """Factory function returning a debug interpreter"""
  return create_interpreter(debug=True, functions=functions)


# ============================================================================
# ACTOR SYSTEM (Using Pykka)
# ============================================================================

def make_batch_result(text: str, value: Optional[float] = None, error: Optional[str] = None) -> Dict[str, Any]:
  """Create an immutable batch result"""
  return {
      'text': text,
      'value': value,
      'error': error
  }


class ExpressionActor(pykka.ThreadingActor):
  """Actor that parses and evaluates expressions sent to it.

  Actors share the read-only grammar and function registry.
  """

  def __init__(self, functions: FunctionRegistry, debug: bool = False):
    super().__init__()
    self.functions = functions
    self.debug = debug

  def on_receive(self, message):
    text = message['text']
    try:
      value = calculate(text, self.functions, self.debug)
    except (ArithParseError, ArithEvalError) as e:
      return make_batch_result(text, error=str(e))
    return make_batch_result(text, value=value)


def evaluate_batch(
  texts: Sequence[str],
  workers: int = 4,
  functions: Optional[FunctionRegistry] = None,
  debug: bool = False,
  timeout: Optional[float] = None
) -> List[Dict[str, Any]]:
  """
  Evaluate many expressions on a pool of actors.
  Results are returned in input order; a failing expression only marks its own result.
  """
  if workers < 1:
    raise ValueError(f"workers must be at least 1, got {workers}")
  if functions is None:
    functions = BUILTIN_FUNCTIONS

  pool_size = min(workers, max(len(texts), 1))
  actors = [ExpressionActor.start(functions, debug) for _ in range(pool_size)]
  try:
    futures = [
        actors[i % pool_size].ask({'text': text}, block=False)
        for i, text in enumerate(texts)
    ]
    return [future.get(timeout=timeout) for future in futures]
  finally:
    for actor_ref in actors:
      actor_ref.stop()
