"""
Utilities module for the arith interpreter
Contains common helper functions shared by the stdlib and the interpreter
"""

from contextlib import contextmanager
from typing import Callable, Iterator, Sequence, TypeVar
import math
import sys
import threading

from error_handling import ArithEvalError


T = TypeVar('T')


# ==================== ERROR MESSAGE BUILDERS ====================

def arity_error(func_name: str, expected: int, got: int) -> ArithEvalError:
  """
  Generate arity mismatch error

  Args:
    func_name: Function name
    expected: Expected number of arguments
    got: Actual number of arguments

  Returns:
    ArithEvalError with formatted message
  """
  plural = "argument" if expected == 1 else "arguments"
  return ArithEvalError(
    f"{func_name} requires {expected} {plural}, got {got}"
  )


def unknown_function_error(func_name: str, known: Sequence[str]) -> ArithEvalError:
  """
  Generate unknown function error listing the registered names

  Args:
    func_name: Name used in the expression
    known: Names of registered functions

  Returns:
    ArithEvalError with formatted message
  """
  names = ", ".join(sorted(known)) or "none"
  return ArithEvalError(
    f"Unknown function '{func_name}' (available: {names})"
  )


# ==================== VALIDATION UTILITIES ====================

def argument_at(func_name: str, args: Sequence[T], index: int, arity: int) -> T:
  """
  Fetch a positional argument, failing when the call supplied too few

  Args:
    func_name: Function name for error messages
    args: Unevaluated call arguments
    index: Zero-based position
    arity: Number of arguments the function requires

  Raises:
    ArithEvalError if the index is out of range
  """
  if index >= len(args):
    raise arity_error(func_name, arity, len(args))
  return args[index]


def truncate_to_int(value: float, op_name: str) -> int:
  """
  Truncate toward zero the way a C (int) cast does

  Raises:
    ArithEvalError for nan and infinities, which have no integer value
  """
  if not math.isfinite(value):
    raise ArithEvalError(f"Cannot {op_name} non-finite value {value!r}")
  return int(value)


# ==================== NUMERIC FUNCTION FACTORIES ====================

def nan_on_domain_error(func: Callable[..., float]) -> Callable[..., float]:
  """
  Wrap a math function so domain errors give nan instead of raising

  Python's math module raises ValueError where the C library returns nan
  (e.g. math.sin(inf)).

  Examples:
    safe_sin = nan_on_domain_error(math.sin)
    safe_sin(float('inf')) -> nan
  """
  def wrapped(*args: float) -> float:
    try:
      return func(*args)
    except ValueError:
      return math.nan

  wrapped.__name__ = getattr(func, '__name__', 'wrapped')
  wrapped.__doc__ = getattr(func, '__doc__', None)
  return wrapped


def is_odd_integer(value: float) -> bool:
  return math.isfinite(value) and value == int(value) and int(value) % 2 == 1



# ==================== RECURSION HEADROOM ====================

_headroom_lock = threading.Lock()
_headroom_users = 0
_saved_recursion_limit = 0


def stack_depth() -> int:
  """Number of frames on the calling thread's stack"""
  depth = 0
  frame = sys._getframe(1)
  while frame is not None:
    depth += 1
    frame = frame.f_back
  return depth


@contextmanager
def recursion_headroom(frames: int) -> Iterator[None]:
  """
  Guarantee `frames` more levels of recursion than the caller already uses

  The process-wide limit is raised while any thread holds headroom and
  restored when the last holder leaves, so the outcome of a recursive
  descent does not depend on how deep the caller's own stack is.

  Examples:
    with recursion_headroom(500):
      walk(tree)
  """
  global _headroom_users, _saved_recursion_limit
  needed = stack_depth() + frames
  with _headroom_lock:
    if _headroom_users == 0:
      _saved_recursion_limit = sys.getrecursionlimit()
    _headroom_users += 1
    if sys.getrecursionlimit() < needed:
      sys.setrecursionlimit(needed)
  try:
    yield
  finally:
    with _headroom_lock:
      _headroom_users -= 1
      if _headroom_users == 0:
        sys.setrecursionlimit(_saved_recursion_limit)
