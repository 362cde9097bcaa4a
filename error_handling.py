"""
Error handling for the arith parser and evaluator
Parse failures are enhanced with context, expected tokens and suggestions
"""

from typing import List, Optional, Dict
from pyparsing import ParseBaseException
import re


# ============================================================================
# DATA STRUCTURES (Immutable Dictionaries)
# ============================================================================

def make_parse_error(
    message: str,
    location: int,
    line: int,
    column: int,
    expected: Optional[List[str]] = None,
    got: Optional[str] = None,
    context: Optional[str] = None,
    suggestions: Optional[List[str]] = None
) -> Dict:
    """Create an immutable parse error structure"""
    return {
        'message': message,
        'location': location,
        'line': line,
        'column': column,
        'expected': expected or [],
        'got': got,
        'context': context,
        'suggestions': suggestions or []
    }


def format_parse_error(error: Dict) -> str:
    """Format parse error as string"""
    error_msg = f"Parse error at offset {error['location']} (line {error['line']}, column {error['column']}):\n"
    error_msg += f"  {error['message']}\n"

    if error['expected']:
        error_msg += f"  Expected: {', '.join(error['expected'])}\n"

    if error['got']:
        error_msg += f"  Got: {error['got']}\n"

    if error['context']:
        error_msg += f"  Context:\n{error['context']}\n"

    if error['suggestions']:
        error_msg += f"  Suggestions:\n"
        for suggestion in error['suggestions']:
            error_msg += f"    - {suggestion}\n"

    return error_msg.rstrip('\n')


# ============================================================================
# PURE FUNCTIONS
# ============================================================================

def get_context_lines(source_text: str, line_num: int, col_num: int, context_lines: int = 1) -> str:
    """Get context lines around the error with a caret under the failing column"""
    lines = source_text.split('\n')
    start_line = max(0, line_num - context_lines - 1)
    end_line = min(len(lines), line_num + context_lines)

    context_parts = []
    for i in range(start_line, end_line):
        line_prefix = f"{i+1:4d}: "
        context_parts.append(f"{line_prefix}{lines[i]}")
        if i == line_num - 1:
            context_parts.append(f"{'':6}{' ' * (col_num - 1)}^ Error here")

    return '\n'.join(context_parts)


def extract_expected(exc: ParseBaseException) -> List[str]:
    """Extract expected tokens from exception"""
    expected = []

    # pyparsing only reports the expectation in its message
    msg = str(exc)
    if "Expected" in msg:
        expected_match = re.search(r"Expected\s+(.+?)(?:,\s+found|\s+\(at|$)", msg)
        if expected_match:
            expected.append(expected_match.group(1))

    return expected if expected else ["valid expression"]


def extract_got(source_text: str, location: int) -> str:
    """Extract what was actually found at the error offset"""
    if location >= len(source_text) or not source_text[location:].strip():
        return "end of input"

    got_text = source_text[location:location + 10].split('\n')[0].strip()
    if got_text:
        return f"'{got_text}'"
    return "end of line"


def _balance(text: str) -> int:
    depth = 0
    for char in text:
        if char == '(':
            depth += 1
        elif char == ')':
            depth -= 1
    return depth


def generate_suggestions(source_text: str, location: int, got: str) -> List[str]:
    """Generate helpful suggestions based on the error"""
    suggestions = []
    consumed = source_text[:location]
    remaining = source_text[location:].strip()

    depth = _balance(source_text)
    if depth > 0:
        suggestions.append("Unbalanced parentheses: add a closing ')'")
    elif depth < 0:
        suggestions.append("Unbalanced parentheses: remove the extra ')'")

    if re.search(r"[A-Za-z_]\s*\(\s*\)", source_text):
        suggestions.append("Function calls need at least one argument, e.g. abs(x)")

    if re.search(r"[A-Za-z_]+\d", source_text):
        suggestions.append("Function names may only contain letters and '_'")

    if re.search(r"(\*\*|[-+*/]|mod)\s*$", source_text):
        suggestions.append("The expression ends with an operator; add an operand")

    if remaining and location > 0 and consumed.strip() and got != "end of input" and depth == 0:
        if re.match(r"[\d.(A-Za-z_]", remaining):
            suggestions.append("Two operands are not joined by an operator")

    return suggestions


def enhance_parse_exception_dict(exc: ParseBaseException, source_text: str) -> Dict:
    """Convert pyparsing exception to an enhanced arith error dict"""
    line_num = exc.lineno
    col_num = exc.column

    context = get_context_lines(source_text, line_num, col_num)
    expected = extract_expected(exc)
    got = extract_got(source_text, exc.loc)
    suggestions = generate_suggestions(source_text, exc.loc, got)

    return make_parse_error(
        message=f"Failed at: `{source_text[exc.loc:]}`",
        location=exc.loc,
        line=line_num,
        column=col_num,
        expected=expected,
        got=got,
        context=context,
        suggestions=suggestions
    )


# ============================================================================
# EXCEPTION CLASSES
# ============================================================================

class ArithParseError(Exception):
    """The grammar did not match, or matched without consuming all input"""
    def __init__(self, message: str, location: int = 0, line: int = 0, column: int = 0,
                 expected: Optional[List[str]] = None, got: Optional[str] = None,
                 context: Optional[str] = None, suggestions: Optional[List[str]] = None):
        self.message = message
        self.location = location
        self.line = line
        self.column = column
        self.expected = expected or []
        self.got = got
        self.context = context
        self.suggestions = suggestions or []
        super().__init__(message)

    def __str__(self) -> str:
        error_dict = make_parse_error(
            self.message, self.location, self.line, self.column,
            self.expected, self.got, self.context, self.suggestions
        )
        return format_parse_error(error_dict)


class ArithEvalError(Exception):
    """Evaluation failed: unknown function or operator, or a missing argument"""
    def __init__(self, message: str, expression: Optional[object] = None):
        self.message = message
        self.expression = expression
        super().__init__(message)

    def __str__(self) -> str:
        return f"Evaluation error: {self.message}"


def parse_error_from_exception(exc: ParseBaseException, source_text: str) -> ArithParseError:
    """Convert a pyparsing exception to an enhanced ArithParseError"""
    error_dict = enhance_parse_exception_dict(exc, source_text)
    return ArithParseError(
        message=error_dict['message'],
        location=error_dict['location'],
        line=error_dict['line'],
        column=error_dict['column'],
        expected=error_dict['expected'],
        got=error_dict['got'],
        context=error_dict['context'],
        suggestions=error_dict['suggestions']
    )


def nesting_error(source_text: str, location: int, limit: int) -> ArithParseError:
    """Report input nested deeper than the parser accepts"""
    line = source_text.count('\n', 0, location) + 1
    column = location - (source_text.rfind('\n', 0, location) + 1) + 1
    return ArithParseError(
        message=f"Expression nested too deeply (more than {limit} levels)",
        location=location,
        line=line,
        column=column,
        got=extract_got(source_text, location),
        context=get_context_lines(source_text, line, column),
        suggestions=[f"Brackets, calls and unary signs may nest at most {limit} levels"]
    )
