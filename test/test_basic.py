"""
Basic parsing tests for arith
Tests the grammar rules and the shape of the trees they build
"""

import pytest
from pyparsing import ParseException
from parsing import (
  ArithGrammar,
  ArithTokenizer,
  BINARY_OPERATOR_TIERS,
  MAX_NESTING_DEPTH,
  UNARY_OPERATORS,
  check_nesting_depth,
  create_parser,
  parse_expression,
  split_expressions,
)
from error_handling import ArithParseError
from semantics import (
  ArithSemanticsError,
  BinaryExpression,
  BinaryOp,
  FunctionCall,
  NumberLiteral,
  UnaryExpression,
  UnaryOp,
  count_nodes,
  expression_depth,
  expression_to_dict,
  format_expression,
  format_number,
)


def num(value):
  return NumberLiteral(float(value))


def call_at_depth(depth, func, *args):
  """Call func with `depth` extra frames already on the stack"""
  if depth == 0:
    return func(*args)
  return call_at_depth(depth - 1, func, *args)


class TestLexicalPrimitives:
  """Test numbers, identifiers and symbol tables"""

  @pytest.fixture
  def grammar(self):
    """Provide a fresh grammar instance for each test"""
    return ArithGrammar()

  @pytest.mark.parametrize("text,value", [
      ("0", 0.0),
      ("10", 10.0),
      ("1.5", 1.5),
      ("1.", 1.0),
      (".5", 0.5),
      ("2.5e-3", 0.0025),
      ("1E3", 1000.0),
  ])
  def test_number_literals(self, grammar, text, value):
    """Test standard decimal floating-point syntax"""
    result = grammar.number.parse_string(text, parse_all=True)
    assert result[0] == NumberLiteral(value)

  def test_number_has_no_sign(self, grammar):
    """A leading sign belongs to a unary expression, not to the literal"""
    with pytest.raises(ParseException):
      grammar.number.parse_string("-1", parse_all=True)

  def test_identifier_letters_and_underscore(self, grammar):
    """Test identifiers accept letters and underscores"""
    assert grammar.identifier.parse_string("my_func", parse_all=True)[0] == "my_func"
    assert grammar.identifier.parse_string("_", parse_all=True)[0] == "_"

  def test_identifier_rejects_digits(self, grammar):
    """Digits are not part of identifiers"""
    with pytest.raises(ParseException):
      grammar.identifier.parse_string("log10", parse_all=True)

  def test_symbol_tables(self):
    """Test the operator tables hold the documented symbols"""
    assert dict(UNARY_OPERATORS) == {"+": UnaryOp.PLUS, "-": UnaryOp.MINUS}
    assert dict(BINARY_OPERATOR_TIERS[1]) == {"+": BinaryOp.PLUS, "-": BinaryOp.MINUS}
    assert dict(BINARY_OPERATOR_TIERS[2]) == {
        "*": BinaryOp.MUL, "/": BinaryOp.DIV, "mod": BinaryOp.MOD
    }
    assert dict(BINARY_OPERATOR_TIERS[3]) == {"**": BinaryOp.POW}

  def test_symbol_tables_are_read_only(self):
    """Test the tables cannot be changed after initialisation"""
    with pytest.raises(TypeError):
      UNARY_OPERATORS["!"] = UnaryOp.MINUS
    with pytest.raises(TypeError):
      BINARY_OPERATOR_TIERS[2]["%"] = BinaryOp.MOD


class TestExpressionTrees:
  """Test the trees built for each grammar rule"""

  def test_single_number_is_not_wrapped(self):
    """A tier without operators yields its operand"""
    assert parse_expression("1") == num(1)

  def test_parenthesized(self):
    """Parentheses do not produce a node of their own"""
    assert parse_expression("((1))") == num(1)

  def test_unary_chain_nests(self):
    """Test ---1 builds three nested unary expressions"""
    expected = UnaryExpression(
        UnaryOp.MINUS, UnaryExpression(UnaryOp.MINUS, UnaryExpression(UnaryOp.MINUS, num(1)))
    )
    assert parse_expression("---1") == expected

  def test_unary_plus(self):
    """Test unary plus is kept in the tree"""
    assert parse_expression("+1") == UnaryExpression(UnaryOp.PLUS, num(1))

  def test_precedence_layers(self):
    """Test multiplication nests inside addition"""
    expected = BinaryExpression(
        num(1), ((BinaryOp.PLUS, BinaryExpression(num(2), ((BinaryOp.MUL, num(3)),))),)
    )
    assert parse_expression("1+2*3") == expected

  def test_chain_keeps_input_order(self):
    """Test operators of one tier form a single left-to-right sequence"""
    expected = BinaryExpression(
        num(1), ((BinaryOp.MINUS, num(2)), (BinaryOp.PLUS, num(3)), (BinaryOp.MINUS, num(4)))
    )
    assert parse_expression("1-2+3-4") == expected

  def test_power_chains_left_to_right(self):
    """Test ** uses the same repetition as the other tiers"""
    expected = BinaryExpression(num(2), ((BinaryOp.POW, num(3)), (BinaryOp.POW, num(2))))
    assert parse_expression("2**3**2") == expected

  def test_double_star_is_one_operator(self):
    """Test ** is never read as two * tokens"""
    expected = BinaryExpression(num(2), ((BinaryOp.POW, num(3)),))
    assert parse_expression("2**3") == expected

  def test_spaced_stars_are_not_power(self):
    """Test '* *' is a multiplication missing its operand"""
    with pytest.raises(ArithParseError):
      parse_expression("2* *3")

  def test_mod_operator(self):
    """Test mod is a tier 2 operator"""
    expected = BinaryExpression(num(7), ((BinaryOp.MOD, num(3)),))
    assert parse_expression("7 mod 3") == expected

  def test_binary_then_unary(self):
    """Test 1++2 is a binary plus followed by a unary plus"""
    expected = BinaryExpression(num(1), ((BinaryOp.PLUS, UnaryExpression(UnaryOp.PLUS, num(2))),))
    assert parse_expression("1++2") == expected

  def test_unary_binds_to_primary(self):
    """Test the sign applies to the primary only, before **"""
    expected = BinaryExpression(
        UnaryExpression(UnaryOp.MINUS, num(2)), ((BinaryOp.POW, num(2)),)
    )
    assert parse_expression("-2**2") == expected

  def test_function_call(self):
    """Test argument order is kept"""
    assert parse_expression("pow(2, 3)") == FunctionCall("pow", (num(2), num(3)))

  def test_function_call_arguments_are_expressions(self):
    """Test arguments are full expressions"""
    expected = FunctionCall("abs", (BinaryExpression(num(1), ((BinaryOp.MINUS, num(3)),)),))
    assert parse_expression("abs(1 - 3)") == expected

  def test_unknown_function_parses(self):
    """Function names are resolved at evaluation, not while parsing"""
    assert parse_expression("foo(1, 2, 3)") == FunctionCall("foo", (num(1), num(2), num(3)))

  def test_whitespace_is_skipped(self):
    """Test whitespace between tokens does not change the tree"""
    assert parse_expression(" \t1 +\n 20 ") == parse_expression("1+20")

  def test_vertical_tab_and_form_feed_are_whitespace(self):
    """Test every C isspace character is skipped, at the ends too"""
    assert parse_expression("\v1\f+\v2\f") == parse_expression("1+2")
    assert parse_expression("pow(\f2,\v3)") == parse_expression("pow(2,3)")

  def test_mod_is_a_whole_word(self):
    """Test mod does not match the start of an identifier"""
    assert parse_expression("modulus(1)") == FunctionCall("modulus", (num(1),))
    assert parse_expression("7mod3") == BinaryExpression(num(7), ((BinaryOp.MOD, num(3)),))
    with pytest.raises(ArithParseError):
      parse_expression("7 modx(1)")


class TestParseErrors:
  """Test error handling and reporting"""

  @pytest.mark.parametrize("text", [
      "",
      "1 1",
      "(1",
      "1)",
      "2**",
      "abs()",
      "abs",
      "log10(1)",
      "1 + * 2",
      "sin(0",
      "1 $ 2",
  ])
  def test_invalid_input_raises(self, text):
    """Test that invalid syntax raises a parse error"""
    with pytest.raises(ArithParseError):
      parse_expression(text)

  def test_trailing_input_location(self):
    """Test trailing input is reported at its offset"""
    with pytest.raises(ArithParseError) as excinfo:
      parse_expression("1 1")
    error = excinfo.value
    assert error.location == 2
    assert error.column == 3
    assert error.got == "'1'"
    assert "Two operands are not joined by an operator" in error.suggestions

  def test_error_report_has_caret(self):
    """Test the rendered error points at the failing column"""
    with pytest.raises(ArithParseError) as excinfo:
      parse_expression("1 1")
    report = str(excinfo.value)
    assert "Failed at: `1`" in report
    assert "   1: 1 1" in report
    assert "        ^ Error here" in report

  def test_empty_call_suggestion(self):
    """Test a hint is given for calls without arguments"""
    with pytest.raises(ArithParseError) as excinfo:
      parse_expression("abs()")
    assert any("at least one argument" in s for s in excinfo.value.suggestions)

  def test_unbalanced_parentheses_suggestion(self):
    """Test a hint is given for a missing closing parenthesis"""
    with pytest.raises(ArithParseError) as excinfo:
      parse_expression("(1 + 2")
    assert any("closing" in s for s in excinfo.value.suggestions)

  def test_deep_nesting_is_a_parse_error(self):
    """Test exhausting the recursion limit is reported, not raised raw"""
    text = "(" * 2000 + "1" + ")" * 2000
    with pytest.raises(ArithParseError) as excinfo:
      parse_expression(text)
    assert "nested too deeply" in excinfo.value.message


NESTED_FORMS = [("(", ")"), ("abs(", ")"), ("-", ""), ("-(", ")")]


def nested(opening, closing, levels):
  """Build input whose nesting depth is `levels` times the form's own depth"""
  return opening * levels + "1" + closing * levels


class TestNestingLimit:
  """Test the fixed nesting limit of the parser"""

  @pytest.mark.parametrize("opening,closing", NESTED_FORMS)
  def test_deepest_accepted_input_parses(self, opening, closing):
    levels = MAX_NESTING_DEPTH // check_nesting_depth(nested(opening, closing, 1))
    text = nested(opening, closing, levels)
    assert check_nesting_depth(text) == MAX_NESTING_DEPTH
    assert isinstance(parse_expression(text), (NumberLiteral, UnaryExpression, FunctionCall))

  @pytest.mark.parametrize("opening,closing", [("(", ")"), ("abs(", ")"), ("-", "")])
  def test_one_level_more_is_rejected(self, opening, closing):
    text = nested(opening, closing, MAX_NESTING_DEPTH + 1)
    with pytest.raises(ArithParseError) as excinfo:
      parse_expression(text)
    error = excinfo.value
    assert "nested too deeply" in error.message
    assert error.location == len(opening) * (MAX_NESTING_DEPTH + 1) - 1

  @pytest.mark.parametrize("opening,closing", NESTED_FORMS)
  def test_limit_does_not_depend_on_caller_stack(self, opening, closing):
    """Input at the limit parses the same with a deep stack underneath"""
    levels = MAX_NESTING_DEPTH // check_nesting_depth(nested(opening, closing, 1))
    text = nested(opening, closing, levels)
    assert call_at_depth(300, parse_expression, text) == parse_expression(text)

  def test_binary_signs_do_not_count(self):
    text = "1-(" * MAX_NESTING_DEPTH + "1" + ")" * MAX_NESTING_DEPTH
    assert check_nesting_depth(text) == MAX_NESTING_DEPTH
    parse_expression(text)

  def test_sign_before_call_counts_until_bracket(self):
    assert check_nesting_depth("-abs(1)") == 2
    assert check_nesting_depth("-1 + -2") == 1

  def test_flat_input_has_no_depth(self):
    assert check_nesting_depth("1 + 2 * 3") == 0
    assert check_nesting_depth("") == 0


class TestTokenizer:
  """Test the diagnostic tokenizer"""

  @pytest.fixture
  def tokenizer(self):
    return ArithTokenizer()

  def test_longest_operator_match(self, tokenizer):
    """Test ** is a single token"""
    tokens = tokenizer.tokenize("2**3*4")
    assert [t.value for t in tokens] == ["2", "**", "3", "*", "4"]

  def test_token_types_and_offsets(self, tokenizer):
    """Test tokens carry their type and offset"""
    tokens = tokenizer.tokenize("pow(2, 3) mod 5")
    assert [(t.type, t.value, t.offset) for t in tokens] == [
        ("IDENTIFIER", "pow", 0),
        ("DELIMITER", "(", 3),
        ("NUMBER", "2", 4),
        ("DELIMITER", ",", 5),
        ("NUMBER", "3", 7),
        ("DELIMITER", ")", 8),
        ("OPERATOR", "mod", 10),
        ("NUMBER", "5", 14),
    ]

  def test_mod_prefix_is_an_identifier(self, tokenizer):
    """Test tokens agree with the grammar on words starting with mod"""
    tokens = tokenizer.tokenize("modulus(1) mod 2")
    assert [(t.type, t.value) for t in tokens] == [
        ("IDENTIFIER", "modulus"),
        ("DELIMITER", "("),
        ("NUMBER", "1"),
        ("DELIMITER", ")"),
        ("OPERATOR", "mod"),
        ("NUMBER", "2"),
    ]

  def test_same_whitespace_as_grammar(self, tokenizer):
    tokens = tokenizer.tokenize("1\f+\v2")
    assert [t.value for t in tokens] == ["1", "+", "2"]

  def test_unknown_character(self, tokenizer):
    """Test unknown characters are reported with their offset"""
    with pytest.raises(ArithParseError) as excinfo:
      tokenizer.tokenize("1 $ 2")
    assert excinfo.value.location == 2


class TestParserObject:
  """Test the parser facade"""

  def test_create_parser(self):
    parser = create_parser()
    assert parser.parse_expression("1+1") == parse_expression("1+1")

  def test_debug_parser_traces(self, capsys):
    """Test debug mode prints trace lines"""
    parser = create_parser(debug=True)
    parser.parse_expression("1+1")
    assert "DEBUG: Parsing '1+1'" in capsys.readouterr().out

  def test_split_expressions(self):
    """Test comments and blank lines are skipped, line numbers kept"""
    text = "# header\n1+1\n\n  2*3  # six\n"
    assert split_expressions(text) == [(2, "1+1"), (4, "2*3")]


class TestTreeUtilities:
  """Test the read-only helpers over expression trees"""

  def test_depth_and_size(self):
    expr = parse_expression("pow(1 + 2, -3)")
    assert expression_depth(expr) == 3
    assert count_nodes(expr) == 6
    assert expression_depth(num(1)) == 1

  def test_depth_of_deep_tree(self):
    """Depth is computed without recursion"""
    expr = num(1)
    for _ in range(5000):
      expr = UnaryExpression(UnaryOp.MINUS, expr)
    assert expression_depth(expr) == 5001

  def test_format_expression_round_trips(self):
    expr = parse_expression("1 - 2 * abs(-3) ** 2 mod 4")
    assert format_expression(expr) == "(1 - (2 * (abs(-3) ** 2) mod 4))"
    assert parse_expression(format_expression(expr)) == expr

  @pytest.mark.parametrize("value,text", [
      (42.0, "42"),
      (-6.0, "-6"),
      (3.5, "3.5"),
      (float("inf"), "inf"),
      (1e20, "1e+20"),
  ])
  def test_format_number(self, value, text):
    assert format_number(value) == text

  def test_expression_to_dict(self):
    expr = parse_expression("-1 + sin(2)")
    assert expression_to_dict(expr) == {
        'type': 'BINARY',
        'first': {'type': 'UNARY', 'op': 'MINUS', 'arg': {'type': 'NUMBER', 'value': 1.0}},
        'ops': [{
            'op': 'PLUS',
            'operand': {'type': 'CALL', 'name': 'sin', 'args': [{'type': 'NUMBER', 'value': 2.0}]},
        }],
    }

  def test_non_node_is_rejected(self):
    with pytest.raises(ArithSemanticsError):
      expression_to_dict((1, 2))
