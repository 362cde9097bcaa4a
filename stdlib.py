"""
Arith Standard Library
Operator semantics and the builtin function registry
Registries are read-only mappings built once at import time
"""

from types import MappingProxyType
from typing import Callable, Mapping, NamedTuple
import math
import operator
import re

from error_handling import ArithEvalError
from semantics import BinaryOp, UnaryOp
from utilities import (
  is_odd_integer,
  nan_on_domain_error,
  truncate_to_int,
)


# ============================================================================
# ARITHMETIC FUNCTIONS
# ============================================================================

def arith_div(a: float, b: float) -> float:
  """IEEE division: dividing by zero gives an infinity or nan, never raises"""
  if b == 0:
    if a == 0 or math.isnan(a):
      return math.nan
    return math.copysign(math.inf, a) * math.copysign(1.0, b)
  return a / b


def arith_mod(a: float, b: float) -> float:
  """Integer remainder of both operands truncated toward zero.

  Fractions are discarded first and the remainder takes the sign of the
  dividend, as C's `%` on ints does: 7.9 mod 2.5 == 1, -7 mod 3 == -1.
  """
  dividend = truncate_to_int(a, "take modulo of")
  divisor = truncate_to_int(b, "take modulo by")
  if divisor == 0:
    raise ArithEvalError(f"Integer modulo by zero in {a!r} mod {b!r}")
  remainder = abs(dividend) % abs(divisor)
  return float(-remainder if dividend < 0 else remainder)


def arith_pow(base: float, exponent: float) -> float:
  """Real power following the C library's pow conventions"""
  if base == 0 and exponent < 0:
    # pole error
    if is_odd_integer(exponent):
      return math.copysign(math.inf, base)
    return math.inf
  try:
    return math.pow(base, exponent)
  except ValueError:
    return math.nan
  except OverflowError:
    if base < 0 and is_odd_integer(exponent):
      return -math.inf
    return math.inf


def arith_add(a: float, b: float) -> float:
  return a + b


def arith_sub(a: float, b: float) -> float:
  return a - b


def arith_mul(a: float, b: float) -> float:
  return a * b


BINARY_OPERATIONS: Mapping[BinaryOp, Callable[[float, float], float]] = MappingProxyType({
    BinaryOp.PLUS: arith_add,
    BinaryOp.MINUS: arith_sub,
    BinaryOp.MUL: arith_mul,
    BinaryOp.DIV: arith_div,
    BinaryOp.MOD: arith_mod,
    BinaryOp.POW: arith_pow,
})

UNARY_OPERATIONS: Mapping[UnaryOp, Callable[[float], float]] = MappingProxyType({
    UnaryOp.PLUS: operator.pos,
    UnaryOp.MINUS: operator.neg,
})


def apply_binary(op: BinaryOp, a: float, b: float) -> float:
  """Apply a binary operator tag to two evaluated operands"""
  func = BINARY_OPERATIONS.get(op)
  if func is None:
    raise ArithEvalError(f"Unknown operator: {op!r}")
  return func(a, b)


def apply_unary(op: UnaryOp, a: float) -> float:
  """Apply a sign tag to an evaluated operand"""
  func = UNARY_OPERATIONS.get(op)
  if func is None:
    raise ArithEvalError(f"Unknown operator: {op!r}")
  return func(a)


# ============================================================================
# FUNCTION REGISTRY
# ============================================================================

class BuiltinFunction(NamedTuple):
  """A callable exposed to expressions under a name with a fixed arity"""
  name: str
  arity: int
  impl: Callable[..., float]


FunctionRegistry = Mapping[str, BuiltinFunction]

# Names must be expressible by the grammar's identifier rule
_FUNCTION_NAME = re.compile(r'[A-Za-z_]+\Z')


def make_function(name: str, arity: int, impl: Callable[..., float]) -> BuiltinFunction:
  """Create a registry entry, validating it can be called from an expression"""
  if not _FUNCTION_NAME.match(name):
    raise ValueError(f"Invalid function name {name!r}: only letters and '_' are allowed")
  if arity < 1:
    raise ValueError(f"Function {name!r} must take at least one argument, got arity {arity}")
  if not callable(impl):
    raise TypeError(f"Implementation of {name!r} is not callable")
  return BuiltinFunction(name, arity, impl)


def create_builtin_functions() -> FunctionRegistry:
  """Create the fixed set of builtin functions"""
  builtins = [
      make_function("abs", 1, math.fabs),
      make_function("sin", 1, nan_on_domain_error(math.sin)),
      make_function("cos", 1, nan_on_domain_error(math.cos)),
      make_function("pow", 2, arith_pow),
  ]
  return MappingProxyType({func.name: func for func in builtins})


def register_function(
  registry: FunctionRegistry,
  name: str,
  arity: int,
  impl: Callable[..., float]
) -> FunctionRegistry:
  """Return a new registry with `name` bound; `registry` itself is unchanged.

  An existing entry of the same name is replaced in the returned registry.
  """
  return MappingProxyType({**registry, name: make_function(name, arity, impl)})


def call_function(func: BuiltinFunction, args) -> float:
  """Invoke a registry entry with already evaluated arguments"""
  return float(func.impl(*args))


BUILTIN_FUNCTIONS: FunctionRegistry = create_builtin_functions()
