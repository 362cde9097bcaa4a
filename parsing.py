"""
Arith Expression Parser
Precedence-layered grammar built from mutually recursive pyparsing rules
"""

from types import MappingProxyType
from typing import List, Mapping, Tuple, Optional
from dataclasses import dataclass
import re

from pyparsing import (
    Forward, Literal, MatchFirst, ParseBaseException, ParserElement,
    Regex, Suppress, ZeroOrMore
)

from error_handling import ArithParseError, nesting_error, parse_error_from_exception
from semantics import (
    BinaryExpression, BinaryOp, Expression, FunctionCall, NumberLiteral,
    UnaryExpression, UnaryOp
)
from utilities import recursion_headroom


# ============================================================================
# LEXICAL PRIMITIVES
# ============================================================================

# Unsigned: a leading sign is always a unary operator
NUMBER_PATTERN = r'(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?'

# Letters and '_' only, digits are not part of identifiers
IDENTIFIER_PATTERN = r'[A-Za-z_]+'

# C isspace: vertical tab and form feed included
WHITESPACE_CHARS = " \t\n\r\v\f"

# Brackets and unary signs each count as one level
MAX_NESTING_DEPTH = 100

# pyparsing needs about 17 frames per bracket level and 7 per sign
PARSE_FRAMES_PER_LEVEL = 25
PARSE_FRAME_SLACK = 100

UNARY_OPERATORS: Mapping[str, UnaryOp] = MappingProxyType({
    "+": UnaryOp.PLUS,
    "-": UnaryOp.MINUS,
})

# Tier 1 binds loosest, tier 3 tightest
BINARY_OPERATOR_TIERS: Mapping[int, Mapping[str, BinaryOp]] = MappingProxyType({
    1: MappingProxyType({"+": BinaryOp.PLUS, "-": BinaryOp.MINUS}),
    2: MappingProxyType({"*": BinaryOp.MUL, "/": BinaryOp.DIV, "mod": BinaryOp.MOD}),
    3: MappingProxyType({"**": BinaryOp.POW}),
})

ALL_OPERATOR_SYMBOLS = frozenset(
    [symbol for symbol in UNARY_OPERATORS] +
    [symbol for table in BINARY_OPERATOR_TIERS.values() for symbol in table]
)


def operator_pattern(symbol: str, known_symbols=ALL_OPERATOR_SYMBOLS) -> str:
    """Regex for `symbol` that fails where a longer operator or an identifier starts.

    `*` does not match the start of `**`, and `mod` does not match the
    start of `modulus`.
    """
    pattern = re.escape(symbol)
    continuations = sorted(
        (other[len(symbol):] for other in known_symbols
         if other != symbol and other.startswith(symbol)),
        key=len, reverse=True
    )
    if continuations:
        pattern += "(?!" + "|".join(re.escape(rest) for rest in continuations) + ")"
    if re.match(IDENTIFIER_PATTERN, symbol[-1]):
        pattern += "(?![A-Za-z_])"
    return pattern


def make_operator(symbol: str, tag, known_symbols=ALL_OPERATOR_SYMBOLS) -> ParserElement:
    """Match `symbol` as a whole operator and return its tag"""
    pattern = operator_pattern(symbol, known_symbols)
    if pattern == re.escape(symbol):
        element = Literal(symbol)
    else:
        element = Regex(pattern)
    return element.set_parse_action(lambda t: tag).set_name(repr(symbol))


def make_operator_table(table: Mapping[str, object], name: str) -> ParserElement:
    """Ordered choice over a symbol table, longest symbols tried first"""
    symbols = sorted(table, key=len, reverse=True)
    return MatchFirst([make_operator(symbol, table[symbol]) for symbol in symbols]).set_name(name)


def make_binary(tokens) -> Expression:
    """Build one tier: operand (operator operand)* as a left-to-right sequence"""
    items = list(tokens)
    if len(items) == 1:
        return items[0]
    pairs = tuple((items[i], items[i + 1]) for i in range(1, len(items), 2))
    return BinaryExpression(items[0], pairs)


def make_call(tokens) -> FunctionCall:
    items = list(tokens)
    return FunctionCall(items[0], tuple(items[1:]))


def set_whitespace(root: ParserElement, chars: str) -> None:
    """Make every element reachable from `root` skip `chars`"""
    seen = set()
    pending = [root]
    while pending:
        element = pending.pop()
        if id(element) in seen:
            continue
        seen.add(id(element))
        element.set_whitespace_chars(chars)
        pending.extend(element.recurse())


def check_nesting_depth(text: str, limit: int = MAX_NESTING_DEPTH) -> int:
    """Return how deeply `text` nests, raising ArithParseError beyond `limit`.

    Every '(' is one level, and so is every unary sign, held until the
    operand it applies to ends. A sign after an operand is binary and does
    not count. The scan is flat, so it works on input of any depth.
    """
    depth = 0
    signs = 0
    deepest = 0
    opened = []
    previous = ''
    for offset, char in enumerate(text):
        if char in WHITESPACE_CHARS:
            continue
        if char in UNARY_OPERATORS and not (previous.isdigit() or previous in ('.', ')')):
            signs += 1
        elif char == '(':
            opened.append(signs + 1)
            depth += signs + 1
            signs = 0
        elif char == ')':
            if opened:
                depth -= opened.pop()
            signs = 0
        elif not (char.isalpha() or char == '_'):
            # A call name keeps its signs until the bracket
            signs = 0
        if depth + signs > limit:
            raise nesting_error(text, offset, limit)
        deepest = max(deepest, depth + signs)
        previous = char
    return deepest


# ============================================================================
# TOKENIZER
# ============================================================================

@dataclass(frozen=True)
class Token:
    """Lexical token with its offset into the source"""
    type: str
    value: str
    offset: int

    def __str__(self) -> str:
        return f"{self.type}({self.value})"


class ArithTokenizer:
    """Splits input into tokens with the same primitives the grammar uses.

    Only used for diagnostics: the grammar tokenizes while parsing, which is
    what tells a unary sign from a binary operator.
    """

    def __init__(self):
        self.number_pattern = re.compile(NUMBER_PATTERN)
        self.identifier_pattern = re.compile(IDENTIFIER_PATTERN)
        operators_sorted = sorted(ALL_OPERATOR_SYMBOLS, key=len, reverse=True)
        self.operator_pattern = re.compile('|'.join(operator_pattern(op) for op in operators_sorted))
        self.delimiters = {'(', ')', ','}

    def tokenize(self, text: str) -> List[Token]:
        tokens = []
        pos = 0
        while pos < len(text):
            if text[pos] in WHITESPACE_CHARS:
                pos += 1
                continue

            token = self._match_token_at_position(text, pos)
            if token is None:
                raise ArithParseError(
                    f"Unknown character '{text[pos]}'", location=pos, line=1, column=pos + 1,
                    got=f"'{text[pos]}'"
                )
            tokens.append(token)
            pos += len(token.value)
        return tokens

    def _match_token_at_position(self, text: str, pos: int) -> Optional[Token]:
        """Match a token at a position using priority order"""
        # Priority 1: numbers
        num_match = self.number_pattern.match(text, pos)
        if num_match:
            return Token("NUMBER", num_match.group(0), pos)

        # Priority 2: operators, longest first ('mod' only as a whole word)
        op_match = self.operator_pattern.match(text, pos)
        if op_match:
            return Token("OPERATOR", op_match.group(0), pos)

        # Priority 3: delimiters
        if text[pos] in self.delimiters:
            return Token("DELIMITER", text[pos], pos)

        # Priority 4: identifiers
        id_match = self.identifier_pattern.match(text, pos)
        if id_match:
            return Token("IDENTIFIER", id_match.group(0), pos)

        return None


# ============================================================================
# GRAMMAR
# ============================================================================

class ArithGrammar:
    """Arith grammar definition using pyparsing

    expr    := term1
    term1   := term2 (("+"|"-") term2)*
    term2   := term3 (("*"|"/"|"mod") term3)*
    term3   := primary ("**" primary)*
    primary := number | "(" expr ")" | unary | call
    unary   := ("+"|"-") primary
    call    := identifier "(" expr ("," expr)* ")"
    """

    def __init__(self, debug: bool = False):
        self.debug = debug
        self._setup_grammar()

    def _setup_grammar(self):
        # Forward declarations for the mutually recursive rules
        expression = Forward().set_name("expression")
        primary_expr = Forward().set_name("operand")

        number = Regex(NUMBER_PATTERN).set_parse_action(
            lambda t: NumberLiteral(float(t[0]))
        ).set_name("number")

        identifier = Regex(IDENTIFIER_PATTERN).set_name("identifier")

        lparen = Suppress("(")
        rparen = Suppress(")")

        unary_op = make_operator_table(UNARY_OPERATORS, "unary operator")

        parenthesized = (lparen + expression + rparen).set_name("parenthesized expression")

        unary_expr = (unary_op + primary_expr).set_parse_action(
            lambda t: UnaryExpression(t[0], t[1])
        ).set_name("unary expression")

        # At least one argument; arity is checked at evaluation
        function_call = (
            identifier + lparen + expression + ZeroOrMore(Suppress(",") + expression) + rparen
        ).set_parse_action(make_call).set_name("function call")

        # Ordered choice: first alternative that matches wins
        primary_expr <<= number | parenthesized | unary_expr | function_call

        # Precedence tiers, tightest first
        tiers = {}
        operand = primary_expr
        for level in sorted(BINARY_OPERATOR_TIERS, reverse=True):
            operator_table = make_operator_table(
                BINARY_OPERATOR_TIERS[level], f"tier {level} operator"
            )
            tier = (operand + ZeroOrMore(operator_table + operand)).set_parse_action(make_binary)
            tiers[level] = tier.set_name(f"tier {level} expression")
            operand = tier

        expression <<= tiers[1]
        set_whitespace(expression, WHITESPACE_CHARS)

        # Expose rules for testing and diagnostics
        self.expression = expression
        self.primary_expr = primary_expr
        self.unary_expr = unary_expr
        self.function_call = function_call
        self.number = number
        self.identifier = identifier
        self.term1 = tiers[1]
        self.term2 = tiers[2]
        self.term3 = tiers[3]

        if self.debug:
            for rule in (primary_expr, unary_expr, function_call, tiers[1], tiers[2], tiers[3]):
                rule.set_debug()

        # Offsets in errors must index the input text unexpanded
        self.expression.parse_with_tabs()
        # Finish all lazy initialisation now, before the grammar is shared
        self.expression.streamline()

    def parse_expression(self, text: str) -> Expression:
        """Parse a complete expression; trailing input is an error.

        Input nested deeper than MAX_NESTING_DEPTH is rejected up front, and
        anything within the limit gets the stack it needs wherever it is
        called from.
        """
        depth = check_nesting_depth(text)
        try:
            with recursion_headroom(PARSE_FRAMES_PER_LEVEL * (depth + 1) + PARSE_FRAME_SLACK):
                result = self.expression.parse_string(text, parse_all=True)
        except ParseBaseException as e:
            raise parse_error_from_exception(e, text) from e
        except RecursionError as e:
            raise ArithParseError("Expression nested too deeply", got="recursion limit reached") from e
        return result[0]


class ArithParser:
    """Main arith parser combining tokenizer and grammar"""

    def __init__(self, debug: bool = False):
        self.debug = debug
        self.grammar = ArithGrammar(debug) if debug else DEFAULT_GRAMMAR

    def parse_expression(self, text: str) -> Expression:
        """Parse a single expression into its tree"""
        if self.debug:
            print(f"DEBUG: Parsing {text!r}")
        expr = self.grammar.parse_expression(text)
        if self.debug:
            print(f"DEBUG: Parsed {expr}")
        return expr

    def tokenize(self, text: str) -> List[Token]:
        """Tokenize expression text"""
        return ArithTokenizer().tokenize(text)


def split_expressions(text: str) -> List[Tuple[int, str]]:
    """Split text into (line number, expression) pairs.

    '#' starts a comment; blank lines are skipped.
    """
    expressions = []
    for line_num, line in enumerate(text.split('\n'), 1):
        if '#' in line:
            line = line[:line.index('#')]
        line = line.strip()
        if line:
            expressions.append((line_num, line))
    return expressions


# Built at import, before any thread can use it
DEFAULT_GRAMMAR = ArithGrammar()


# Factory functions for creating parsers
def create_parser(debug: bool = False) -> ArithParser:
    """Create an arith parser"""
    return ArithParser(debug=debug)


def create_debug_parser() -> ArithParser:
    """Create an arith parser with debug enabled"""
    return ArithParser(debug=True)


def parse_expression(text: str) -> Expression:
    """Parse text into an expression tree using the shared grammar"""
    return DEFAULT_GRAMMAR.parse_expression(text)


parse = parse_expression
