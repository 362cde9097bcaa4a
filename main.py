"""
Arith Expression Evaluator - Main Entry Point
Parses arithmetic expressions and evaluates them to floating-point results
"""

import sys
import argparse
from pathlib import Path
from typing import List, Optional, Tuple
import os

# Readline support for history and auto-completion
try:
  import readline
  READLINE_AVAILABLE = True
except ImportError:
  READLINE_AVAILABLE = False

from error_handling import ArithParseError, ArithEvalError
from parsing import create_parser, create_debug_parser, split_expressions
from semantics import count_nodes, expression_depth, format_expression, format_number, pretty_print_expression
from interpreter import create_interpreter, create_debug_interpreter, evaluate_batch
from stdlib import BUILTIN_FUNCTIONS


VERSION = 'arith 0.1.0'

# Demo table for --self-test
SELF_TEST_CASES: List[Tuple[str, float]] = [
    ("0", 0),
    ("1", 1),
    ("9", 9),
    ("10", 10),
    ("+1", 1),
    ("-1", -1),
    ("(1)", 1),
    ("(-1)", -1),
    ("abs(-1)", 1),
    ("sin(0)", 0),
    ("cos(0)", 1),
    ("pow(2, 3)", 8),
    ("---1", -1),
    ("1+20", 21),
    ("1 + 20", 21),
    ("(1+20)", 21),
    ("-2*3", -6),
    ("2*-3", -6),
    ("1++2", 3),
    ("1+20+300", 321),
    ("1+20+300+4000", 4321),
    ("1+10*2", 21),
    ("10*2+1", 21),
    ("(1+20)*2", 42),
    ("2*(1+20)", 42),
    ("(1+2)*(3+4)", 21),
    ("2*3+4*5", 26),
    ("100+2*10+3", 123),
    ("2**3", 8),
    ("2**3*5+2", 42),
    ("5*2**3+2", 42),
    ("2+5*2**3", 42),
    ("1+2**3*10", 81),
    ("2**3+2*10", 28),
    ("5 * 4 + 3 * 2 + 1", 27),
]


def create_arg_parser() -> argparse.ArgumentParser:
  """Create command line argument parser"""
  parser = argparse.ArgumentParser(
      prog='arith',
      description='Arith - evaluate arithmetic expressions',
      formatter_class=argparse.RawDescriptionHelpFormatter,
      epilog="""
Examples:
  %(prog)s "2**3*5+2"             # Evaluate an expression
  %(prog)s --parse "1+2*3"        # Show the expression tree
  %(prog)s -- "-2*3"             # Leading sign: end options with --
  %(prog)s -f formulas.txt        # Evaluate one expression per line
  %(prog)s -f formulas.txt --batch --workers 8
  %(prog)s -i                     # Interactive mode
  %(prog)s --self-test            # Run the built-in demo table
        """
  )

  parser.add_argument(
      'expression',
      nargs='?',
      help='Expression to evaluate'
  )

  parser.add_argument(
      '-f', '--file',
      help='File with one expression per line (# starts a comment)'
  )

  parser.add_argument(
      '-i', '--interactive',
      action='store_true',
      help='Start interactive mode'
  )

  parser.add_argument(
      '--parse',
      action='store_true',
      help='Show the expression tree instead of evaluating'
  )

  parser.add_argument(
      '--tokens',
      action='store_true',
      help='Show the tokens of the expression'
  )

  parser.add_argument(
      '--batch',
      action='store_true',
      help='Evaluate the lines of --file concurrently'
  )

  parser.add_argument(
      '--workers',
      type=int,
      default=4,
      help='Number of evaluator actors used by --batch (default: 4)'
  )

  parser.add_argument(
      '--self-test',
      action='store_true',
      help='Evaluate the built-in demo table and report failures'
  )

  parser.add_argument(
      '--debug',
      action='store_true',
      help='Enable debug output for all stages'
  )

  parser.add_argument(
      '--version',
      action='version',
      version=VERSION
  )

  return parser


def print_parse_error(source: str, error: ArithParseError) -> None:
  print(f"Parse error in '{source}':")
  print(error)


def show_tree(text: str, debug: bool = False) -> None:
  """Parse an expression and show its tree"""
  parser = create_debug_parser() if debug else create_parser()
  try:
    expr = parser.parse_expression(text)
  except ArithParseError as e:
    print_parse_error(text, e)
    sys.exit(1)

  print(f"Expression: {format_expression(expr)}")
  print(f"Nodes: {count_nodes(expr)}, depth: {expression_depth(expr)}")
  print("=" * 50)
  print(pretty_print_expression(expr))


def show_tokens(text: str) -> None:
  """Tokenize an expression and print one token per line"""
  try:
    tokens = create_parser().tokenize(text)
  except ArithParseError as e:
    print_parse_error(text, e)
    sys.exit(1)
  for token in tokens:
    print(f"{token.offset:4d}  {token}")


def evaluate_expression(text: str, debug: bool = False) -> None:
  """Evaluate a single expression and print its value"""
  interpreter = create_debug_interpreter() if debug else create_interpreter()
  try:
    value = interpreter.calculate(text)
  except ArithParseError as e:
    print_parse_error(text, e)
    sys.exit(1)
  except ArithEvalError as e:
    print(f"{e} in '{text}'")
    sys.exit(1)
  print(format_number(value))


def run_expression_file(path: str, batch: bool = False, workers: int = 4, debug: bool = False) -> None:
  """Evaluate every expression of a file, one per line"""
  try:
    with open(path, 'r', encoding='utf-8') as f:
      content = f.read()
  except FileNotFoundError:
    print(f"Error: Expression file '{path}' not found")
    print(f"  Hint: Check the file path and make sure the file exists")
    sys.exit(1)
  except PermissionError:
    print(f"Error: Permission denied reading '{path}'")
    sys.exit(1)
  except UnicodeDecodeError as e:
    print(f"Error: Cannot decode file '{path}': {e}")
    print(f"  Hint: Make sure the file is a text file with UTF-8 encoding")
    sys.exit(1)

  lines = split_expressions(content)
  errors = 0

  try:
    if batch:
      results = evaluate_batch([text for _, text in lines], workers=workers, debug=debug)
      for (line_num, text), result in zip(lines, results):
        if result['error']:
          errors += 1
          print(f"{path}:{line_num}: {text} : {result['error']}")
        else:
          print(f"{text} = {format_number(result['value'])}")
    else:
      interpreter = create_debug_interpreter() if debug else create_interpreter()
      for line_num, text in lines:
        try:
          print(f"{text} = {format_number(interpreter.calculate(text))}")
        except (ArithParseError, ArithEvalError) as e:
          errors += 1
          print(f"{path}:{line_num}: {text} : {e}")
  except Exception as e:
    print(f"Unexpected error while processing '{path}': {e}")
    if debug:
      import traceback
      traceback.print_exc()
    sys.exit(1)

  if errors:
    print(f"{errors} of {len(lines)} expressions failed")
    sys.exit(1)


def run_self_test(debug: bool = False) -> int:
  """Evaluate the demo table, print every failure and return the error count"""
  interpreter = create_debug_interpreter() if debug else create_interpreter()
  errors = 0

  for text, expected in SELF_TEST_CASES:
    try:
      result = interpreter.calculate(text)
      if result == expected:
        continue
      print(f"{text} = {format_number(expected)} : error, got {format_number(result)}")
    except (ArithParseError, ArithEvalError) as e:
      print(f"{text} : exception: {e.message}")
    errors += 1

  print(f"Done with {errors} errors.")
  return errors


def setup_readline():
  """Setup readline with history and auto-completion"""
  if not READLINE_AVAILABLE:
    return

  history_file = os.path.expanduser("~/.arith_history")
  try:
    readline.read_history_file(history_file)
  except OSError:
    pass  # First run or unreadable history

  readline.set_history_length(1000)

  completions = sorted(BUILTIN_FUNCTIONS) + [
      "mod",
      # REPL commands
      ":parse", ":tokens", ":functions", ":help", "exit"
  ]

  def completer(text, state):
    options = [cmd for cmd in completions if cmd.startswith(text)]
    if state < len(options):
      return options[state]
    return None

  readline.set_completer(completer)
  readline.parse_and_bind("tab: complete")

  import atexit
  atexit.register(readline.write_history_file, history_file)


def print_repl_help() -> None:
  print("REPL Commands:")
  print("  :parse <expr>     - Show the expression tree")
  print("  :tokens <expr>    - Show the tokens")
  print("  :functions        - List available functions")
  print("  :help             - Show this help")
  print("  exit              - Exit REPL")
  print()
  print("Operators, loosest first:  + -   * / mod   **")
  print("Unary signs: +x -x;  calls: abs(x) sin(x) cos(x) pow(x, y)")


def run_interactive_mode(debug: bool = False) -> None:
  """Run arith in interactive mode"""
  print(f"{VERSION} - Interactive Mode")
  print("Type 'exit' to quit, ':help' for commands")
  if READLINE_AVAILABLE:
    print("Readline enabled: Use ↑/↓ for history, Tab for completion")
  if debug:
    print("Debug mode enabled")
  print()

  setup_readline()
  interpreter = create_debug_interpreter() if debug else create_interpreter()

  while True:
    try:
      code = input("arith> ").strip()

      if code in ("exit", "quit"):
        break

      if not code:
        continue

      if code.startswith(":parse "):
        try:
          expr = interpreter.parse(code[7:])
          print(pretty_print_expression(expr))
        except ArithParseError as e:
          print(e)
        continue

      if code.startswith(":tokens "):
        try:
          for token in interpreter.parser.tokenize(code[8:]):
            print(f"{token.offset:4d}  {token}")
        except ArithParseError as e:
          print(e)
        continue

      if code == ":functions":
        for name, func in sorted(interpreter.functions.items()):
          print(f"  {name}/{func.arity}")
        continue

      if code == ":help":
        print_repl_help()
        continue

      try:
        print(f"=> {format_number(interpreter.calculate(code))}")
      except ArithParseError as e:
        print(e)
      except ArithEvalError as e:
        print(e)

    except (KeyboardInterrupt, EOFError):
      print("\nGoodbye!")
      break


def main(argv: Optional[List[str]] = None) -> None:
  """Main entry point for arith"""
  arg_parser = create_arg_parser()
  args = arg_parser.parse_args(argv)

  if args.self_test:
    errors = run_self_test(debug=args.debug)
    sys.exit(1 if errors else 0)

  if args.file:
    if not Path(args.file).exists():
      print(f"Error: Expression file '{args.file}' does not exist")
      sys.exit(1)
    run_expression_file(args.file, batch=args.batch, workers=args.workers, debug=args.debug)

  elif args.expression is not None:
    if args.tokens:
      show_tokens(args.expression)
    elif args.parse:
      show_tree(args.expression, debug=args.debug)
    else:
      evaluate_expression(args.expression, debug=args.debug)

  elif args.interactive or (argv if argv is not None else sys.argv[1:]) == []:
    run_interactive_mode(debug=args.debug)

  else:
    arg_parser.print_help()


if __name__ == "__main__":
  main()
