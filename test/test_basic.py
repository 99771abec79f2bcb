"""
Basic tokenizer and parser tests for TinyC
Tests tokens, backtracking, precedence and source reconstruction
"""

import pytest
import utilities
from parsing import (
  AssignmentNode, BinaryExpressionNode, BlockNode, ExpressionStatementNode,
  FunctionCallNode, FunctionDeclarationNode, GroupExpressionNode, IdentifierNode,
  IfNode, LiteralNode, ProgramNode, Span, TokenKind, TokenStream, UnaryExpressionNode,
  Token, VariableDeclarationNode, WhileNode, create_parser, pretty_print_tree, tokenize
)
from error_handling import TinyCSyntaxError, TinyCTokenizeError


def kinds(text):
  return [token.kind for token in tokenize(text)]


def token_pairs(text):
  return [(token.kind, token.text) for token in tokenize(text)]


class TestTokenizer:
  """Test the token stream produced from raw source"""

  def test_declaration_tokens(self):
    assert kinds("int x = 42;") == [
      TokenKind.INT, TokenKind.IDENTIFIER, TokenKind.EQUAL,
      TokenKind.INT_LITERAL, TokenKind.SEMICOLON, TokenKind.END
    ]

  def test_token_spans_are_text_offsets(self):
    tokens = tokenize("int x = 42;")
    assert tokens[0].span == Span(0, 3)
    assert tokens[1].span == Span(4, 5)
    assert tokens[3].span == Span(8, 10)
    assert tokens[3].text == "42"

  def test_spans_count_code_points_not_bytes(self):
    tokens = tokenize('string s = "é"; int y;')
    assert tokens[3].span == Span(11, 14)
    assert tokens[5].text == "int"
    assert tokens[5].span == Span(16, 19)

  def test_end_token_has_empty_span_at_end(self):
    tokens = tokenize("ab ")
    assert tokens[-1].kind == TokenKind.END
    assert tokens[-1].span == Span(3, 3)
    assert tokenize("") == [Token(TokenKind.END, "", Span(0, 0))]

  def test_two_character_operators_win(self):
    assert kinds("a<=b==c!=d>=e<f>g") == [
      TokenKind.IDENTIFIER, TokenKind.LESS_EQUAL, TokenKind.IDENTIFIER,
      TokenKind.EQUAL_EQUAL, TokenKind.IDENTIFIER, TokenKind.NOT_EQUAL,
      TokenKind.IDENTIFIER, TokenKind.GREATER_EQUAL, TokenKind.IDENTIFIER,
      TokenKind.LESS, TokenKind.IDENTIFIER, TokenKind.GREATER,
      TokenKind.IDENTIFIER, TokenKind.END
    ]

  def test_literals(self):
    assert token_pairs('1.5 .5 3. 7 "hi there" true false') == [
      (TokenKind.FLOAT_LITERAL, "1.5"),
      (TokenKind.FLOAT_LITERAL, ".5"),
      (TokenKind.FLOAT_LITERAL, "3."),
      (TokenKind.INT_LITERAL, "7"),
      (TokenKind.STRING_LITERAL, '"hi there"'),
      (TokenKind.BOOL_LITERAL, "true"),
      (TokenKind.BOOL_LITERAL, "false"),
      (TokenKind.END, ""),
    ]

  def test_keywords_need_word_boundaries(self):
    assert token_pairs("integer truex int_ while") == [
      (TokenKind.IDENTIFIER, "integer"),
      (TokenKind.IDENTIFIER, "truex"),
      (TokenKind.IDENTIFIER, "int_"),
      (TokenKind.WHILE, "while"),
      (TokenKind.END, ""),
    ]

  def test_comments_are_skipped(self):
    source = "int a; // line comment\n/* block\ncomment */ int b;"
    assert kinds(source) == [
      TokenKind.INT, TokenKind.IDENTIFIER, TokenKind.SEMICOLON,
      TokenKind.INT, TokenKind.IDENTIFIER, TokenKind.SEMICOLON, TokenKind.END
    ]

  def test_tabs_do_not_shift_spans(self):
    tokens = tokenize("\tx")
    assert tokens[0].span == Span(1, 2)

  def test_unknown_character_is_an_error(self):
    with pytest.raises(TinyCTokenizeError) as exc_info:
      tokenize("int a = 3 @ 4;")
    assert "'@'" in exc_info.value.message
    assert exc_info.value.span == Span(10, 11)

  def test_tokenize_error_is_a_syntax_error(self):
    with pytest.raises(TinyCSyntaxError):
      tokenize('string s = "unterminated;')


class TestTokenStream:
  """Test the push/pop/yeet backtracking interface"""

  @pytest.fixture
  def stream(self):
    return TokenStream(tokenize("a b c"))

  def test_peek_does_not_consume(self, stream):
    assert stream.peek().text == "a"
    assert stream.peek().text == "a"
    assert stream.consume().text == "a"
    assert stream.peek().text == "b"

  def test_pop_state_rewinds(self, stream):
    stream.push_state()
    stream.consume()
    stream.consume()
    stream.pop_state()
    assert stream.peek().text == "a"
    assert stream.depth() == 0

  def test_yeet_state_keeps_position(self, stream):
    stream.push_state()
    stream.consume()
    stream.yeet_state()
    assert stream.peek().text == "b"
    assert stream.depth() == 0

  def test_nested_marks(self, stream):
    stream.push_state()
    stream.consume()
    stream.push_state()
    stream.consume()
    stream.pop_state()
    assert stream.peek().text == "b"
    stream.pop_state()
    assert stream.peek().text == "a"

  def test_unbalanced_pop_is_a_tooling_error(self, stream):
    with pytest.raises(IndexError):
      stream.pop_state()
    with pytest.raises(IndexError):
      stream.yeet_state()

  def test_consume_never_passes_end(self, stream):
    for _ in range(10):
      stream.consume()
    assert stream.peek().kind == TokenKind.END

  def test_token_list_must_end_with_end(self):
    with pytest.raises(ValueError):
      TokenStream(tokenize("a")[:-1])


class TestExpressionParsing:
  """Test precedence, associativity and primary alternatives"""

  @pytest.fixture
  def parser(self):
    return create_parser()

  def expression(self, parser, text):
    program = parser.parse_string(text + ";")
    statement = program.statements[0]
    assert isinstance(statement, ExpressionStatementNode)
    return statement.expression

  def test_left_associativity_and_precedence(self, parser):
    expr = self.expression(parser, "1 - 8 + 7 + 6 * 5 * 3")
    # ((1 - 8) + 7) + ((6 * 5) * 3)
    assert isinstance(expr, BinaryExpressionNode)
    assert expr.operator.text == "+"
    assert expr.left.operator.text == "+"
    assert expr.left.left.operator.text == "-"
    assert expr.right.operator.text == "*"
    assert expr.right.left.operator.text == "*"
    assert expr.right.right.token.text == "3"

  def test_unary_minus_binds_tighter_than_multiplication(self, parser):
    expr = self.expression(parser, "-a * b")
    assert expr.operator.text == "*"
    assert isinstance(expr.left, UnaryExpressionNode)

  def test_comparison_is_lowest(self, parser):
    expr = self.expression(parser, "a + 1 == b * 2")
    assert expr.operator.text == "=="
    assert expr.left.operator.text == "+"
    assert expr.right.operator.text == "*"

  def test_group_overrides_precedence(self, parser):
    expr = self.expression(parser, "(1 + 2) * 3")
    assert expr.operator.text == "*"
    assert isinstance(expr.left, GroupExpressionNode)
    assert expr.left.expression.operator.text == "+"

  def test_function_call_before_identifier(self, parser):
    call = self.expression(parser, "f(1, x)")
    assert isinstance(call, FunctionCallNode)
    assert call.name.text == "f"
    assert len(call.arguments) == 2
    assert isinstance(self.expression(parser, "f"), IdentifierNode)

  def test_call_without_arguments(self, parser):
    call = self.expression(parser, "f()")
    assert isinstance(call, FunctionCallNode)
    assert call.arguments == ()

  def test_literal(self, parser):
    assert isinstance(self.expression(parser, '"text"'), LiteralNode)

  def test_parse_expression_entry_point(self, parser):
    expr = parser.parse_expression("1 + 2")
    assert isinstance(expr, BinaryExpressionNode)
    with pytest.raises(TinyCSyntaxError):
      parser.parse_expression("1 + 2 )")


class TestStatementParsing:
  """Test statement alternatives and their disambiguation"""

  @pytest.fixture
  def parser(self):
    return create_parser()

  def first(self, parser, text):
    return parser.parse_string(text).statements[0]

  def test_variable_declaration(self, parser):
    decl = self.first(parser, "int a;")
    assert isinstance(decl, VariableDeclarationNode)
    assert decl.initializer is None
    decl = self.first(parser, "float b = 1.5;")
    assert isinstance(decl.initializer, LiteralNode)

  def test_function_declaration_after_failed_variable_declaration(self, parser):
    decl = self.first(parser, "int f(int a, float b) { return a; }")
    assert isinstance(decl, FunctionDeclarationNode)
    assert [arg.name.text for arg in decl.arguments.arguments] == ["a", "b"]
    assert isinstance(decl.body, BlockNode)

  def test_void_function_without_parameters(self, parser):
    decl = self.first(parser, "void g() {}")
    assert isinstance(decl, FunctionDeclarationNode)
    assert decl.return_type.text == "void"
    assert decl.arguments.arguments == ()

  def test_assignment_versus_comparison(self, parser):
    assert isinstance(self.first(parser, "x = 1;"), AssignmentNode)
    assert isinstance(self.first(parser, "x == 1;"), ExpressionStatementNode)

  def test_if_and_while(self, parser):
    stmt = self.first(parser, "if (x) y = 1;")
    assert isinstance(stmt, IfNode)
    assert isinstance(stmt.body, AssignmentNode)
    stmt = self.first(parser, "while (x < 3) { x = x + 1; break; }")
    assert isinstance(stmt, WhileNode)
    assert len(stmt.body.statements) == 2

  def test_program_of_several_statements(self, parser):
    program = parser.parse_string("int a = 1; { a = 2; } return;")
    assert isinstance(program, ProgramNode)
    assert len(program.statements) == 3

  def test_spans_cover_consumed_tokens(self, parser):
    program = parser.parse_string("int a = 1;")
    assert program.statements[0].span == Span(0, 10)
    assert program.span == Span(0, 10)
    assert parser.parse_string("").span == Span(0, 0)

  def test_marks_are_balanced_after_parse(self, parser):
    stream = TokenStream(tokenize("int f(int a) { if (a) return a; return 0; } int b = f(1);"))
    parser.parse_tokens(stream)
    assert stream.depth() == 0


class TestSyntaxErrors:
  """Committed rules raise, uncommitted ones fall through"""

  @pytest.fixture
  def parser(self):
    return create_parser()

  def test_missing_initializer(self, parser):
    with pytest.raises(TinyCSyntaxError, match="expected expression"):
      parser.parse_string("int a = ;")

  def test_missing_semicolon(self, parser):
    with pytest.raises(TinyCSyntaxError, match="expected ';'"):
      parser.parse_string("int a = 1")

  def test_unclosed_block(self, parser):
    with pytest.raises(TinyCSyntaxError, match="end of input"):
      parser.parse_string("{ int a;")

  def test_unmatched_statement_reports_position(self, parser):
    with pytest.raises(TinyCSyntaxError) as exc_info:
      parser.parse_string("int a;\nint 5;")
    assert "unexpected token 'int' at position 7" in exc_info.value.message
    assert exc_info.value.span == Span(7, 10)

  def test_reserved_words_have_no_grammar(self, parser):
    with pytest.raises(TinyCSyntaxError, match="'for'"):
      parser.parse_string("for;")

  def test_bad_parameter_list(self, parser):
    with pytest.raises(TinyCSyntaxError, match="expected a type"):
      parser.parse_string("int f(a) { return 1; }")

  def test_missing_operand(self, parser):
    with pytest.raises(TinyCSyntaxError, match="expected operand after '\\+'"):
      parser.parse_string("int a = 1 + ;")

  def test_if_requires_parenthesis(self, parser):
    with pytest.raises(TinyCSyntaxError, match="expected '\\('"):
      parser.parse_string("if x y = 1;")


class TestSourceReconstruction:
  """Test to_source and the tree dump"""

  @pytest.fixture
  def parser(self):
    return create_parser()

  PROGRAMS = [
    "int a = 1 - 8 + 7 + 6 * 5 * 3;",
    "float f(int x){ if(x==1) return 1; if(x==2) return 1; return f(x-1)+f(x-2); } float b = f(5);",
    'string s = "a" + 1; bool t = true == 1; float g = (1 + 2.5) * -3;',
    "void loop() { int i = 0; while (i < 10) { i = i + 1; if (i == 5) continue; if (i > 8) break; } return; }",
    "{ int a; { int a = 2; } }",
    "int noBlock(int a) return a;",
  ]

  @pytest.mark.parametrize("source", PROGRAMS)
  def test_round_trip_preserves_tokens(self, parser, source):
    rebuilt = parser.parse_string(source).to_source()
    assert token_pairs(rebuilt) == token_pairs(source)

  def test_normalized_spacing(self, parser):
    assert parser.parse_string("int  a=1+2 ;").to_source() == "int a = 1 + 2;\n"

  def test_block_indentation(self, parser):
    source = parser.parse_string("int f(int a){return a*2;}").to_source()
    assert source == "int f(int a)\n{\n  return a * 2;\n}\n\n"

  def test_if_body_indentation(self, parser):
    assert parser.parse_string("if (x) y = 1;").to_source() == "if (x)\n  y = 1;\n"

  def test_pretty_print_tree(self, parser):
    dump = pretty_print_tree(parser.parse_string("int a = 1 + 2;"))
    lines = dump.split("\n")
    assert lines[0] == "Program [0 14]"
    assert lines[1] == "└─ VariableDeclaration int a [0 14]"
    assert lines[2] == "   └─ BinaryExpression + [8 13]"
    assert lines[3] == "      ├─ Literal 1 [8 9]"
    assert lines[4] == "      └─ Literal 2 [12 13]"


class TestDeepNesting:
  """Test inputs nested deeper than Python's default stack allows"""

  @pytest.fixture
  def parser(self):
    return create_parser()

  def test_long_operator_chain(self, parser):
    source = "int a = " + " + ".join(["1"] * 600) + ";"
    declaration = parser.parse_string(source).statements[0]
    assert declaration.span == Span(0, len(source))
    assert declaration.initializer.span == Span(8, len(source) - 1)

  def test_deep_parentheses(self, parser):
    source = "int a = " + "(" * 200 + "1" + ")" * 200 + ";"
    declaration = parser.parse_string(source).statements[0]
    assert isinstance(declaration.initializer, GroupExpressionNode)
    assert declaration.to_source() == source

  def test_deep_unary_minus(self, parser):
    expression = parser.parse_expression("-" * 300 + "7")
    assert isinstance(expression, UnaryExpressionNode)
    assert expression.span == Span(0, 301)

  def test_exhausted_stack_is_a_syntax_error(self, parser, monkeypatch):
    monkeypatch.setattr(utilities, "NESTING_RECURSION_LIMIT", 0)
    source = "int a = " + "(" * 1500 + "1" + ")" * 1500 + ";"
    with pytest.raises(TinyCSyntaxError, match="Nesting too deep while parsing"):
      parser.parse_string(source)
