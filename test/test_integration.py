"""
Integration tests for TinyC using the example programs
"""

import sys
import pytest
from pathlib import Path

import main
import utilities
from error_handling import TinyCRuntimeError
from parsing import create_parser, tokenize


EXAMPLES_DIR = Path(__file__).parent.parent / "examples"


class TestExamplePrograms:
  """Run every example program end to end"""

  EXPECTED = {
    "fibonacci.tc": {"b": 5.0, "c": 55.0},
    "promotion.tc": {
      "s": "a1", "g": 3.5, "t": True, "arith": 90, "trunc": -3,
      "label": "pi is about 3.5",
    },
    "loops.tc": {"total": 64, "i": 17, "fact6": 720},
    "scopes.tc": {"a": 1, "outer": 2, "counter": 2, "x": 10, "lexical": 10},
  }

  @pytest.mark.parametrize("name", sorted(EXPECTED))
  def test_example_program(self, run_source, name):
    path = EXAMPLES_DIR / name
    if not path.exists():
      pytest.skip(f"Example file {path} not found")
    assert run_source(path.read_text()) == self.EXPECTED[name]

  @pytest.mark.parametrize("name", sorted(EXPECTED))
  def test_example_round_trips(self, name):
    source = (EXAMPLES_DIR / name).read_text()
    rebuilt = create_parser().parse_string(source).to_source()
    original = [(t.kind, t.text) for t in tokenize(source)]
    assert [(t.kind, t.text) for t in tokenize(rebuilt)] == original

  def test_parse_file(self):
    program = create_parser().parse_file(str(EXAMPLES_DIR / "fibonacci.tc"))
    assert len(program.statements) == 3


class TestCommandLine:
  """Test the command line entry points"""

  @pytest.fixture
  def script(self, tmp_path):
    path = tmp_path / "prog.tc"
    path.write_text("int sq(int n) { return n * n; }\nint a = sq(7);\nstring s = \"v\" + a;\n")
    return path

  def run_main(self, monkeypatch, *args):
    monkeypatch.setattr(sys, "argv", ["tinyc", *args])
    main.main()

  def test_run_script(self, monkeypatch, capsys, script):
    self.run_main(monkeypatch, str(script))
    out = capsys.readouterr().out
    assert "Program executed successfully!" in out
    assert "a = 49" in out
    assert "s = 'v49'" in out

  def test_tokens_option(self, monkeypatch, capsys, script):
    self.run_main(monkeypatch, "--tokens", str(script))
    out = capsys.readouterr().out
    assert "INT('int')" in out
    assert "END('')" in out

  def test_parse_option_prints_tree_and_source(self, monkeypatch, capsys, script):
    self.run_main(monkeypatch, "--parse", str(script))
    out = capsys.readouterr().out
    assert "└─ " in out
    assert "FunctionDeclaration int sq" in out
    assert "Reconstructed source:" in out
    assert "int a = sq(7);" in out

  def test_analyze_option_prints_types(self, monkeypatch, capsys, script):
    self.run_main(monkeypatch, "--analyze", str(script))
    out = capsys.readouterr().out
    assert "FunctionCall sq : int" in out

  def test_errors_exit_with_report(self, monkeypatch, capsys, tmp_path):
    path = tmp_path / "bad.tc"
    path.write_text("int a = 1;\nint b = c;\n")
    with pytest.raises(SystemExit) as exc_info:
      self.run_main(monkeypatch, str(path))
    assert exc_info.value.code == 1
    out = capsys.readouterr().out
    assert "Semantic error at line 2, column 9" in out
    assert "Use of undeclared identifier 'c'" in out
    assert "^ Error here" in out

  def test_missing_script(self, monkeypatch, capsys, tmp_path):
    with pytest.raises(SystemExit):
      self.run_main(monkeypatch, str(tmp_path / "absent.tc"))
    assert "does not exist" in capsys.readouterr().out

  def test_max_call_depth_option(self, monkeypatch, capsys, tmp_path):
    path = tmp_path / "deep.tc"
    path.write_text("int d(int n) { if (n == 0) return 0; return d(n - 1); }\nint r = d(20);\n")
    with pytest.raises(SystemExit):
      self.run_main(monkeypatch, "--max-call-depth", "5", str(path))
    assert "maximum call depth of 5 exceeded" in capsys.readouterr().out

  def test_deeply_nested_script_runs(self, monkeypatch, capsys, tmp_path):
    path = tmp_path / "deep.tc"
    path.write_text("int a = " + " + ".join(["1"] * 600) + ";\nint b = " + "(" * 300 + "4" + ")" * 300 + ";\n")
    self.run_main(monkeypatch, str(path))
    out = capsys.readouterr().out
    assert "a = 600" in out
    assert "b = 4" in out

  def test_deeply_nested_script_dumps_tree(self, monkeypatch, capsys, tmp_path):
    path = tmp_path / "deep.tc"
    path.write_text("int b = " + "(" * 300 + "4" + ")" * 300 + ";\n")
    self.run_main(monkeypatch, "--parse", str(path))
    assert "GroupExpression" in capsys.readouterr().out

  def test_exhausted_stack_is_reported(self, monkeypatch, capsys, tmp_path):
    monkeypatch.setattr(utilities, "NESTING_RECURSION_LIMIT", 0)
    path = tmp_path / "deep.tc"
    path.write_text("int b = " + "(" * 1500 + "4" + ")" * 1500 + ";\n")
    with pytest.raises(SystemExit) as exc_info:
      self.run_main(monkeypatch, str(path))
    assert exc_info.value.code == 1
    assert "Nesting too deep while parsing" in capsys.readouterr().out


class TestRepl:
  """Test one line at a time the way the interactive mode runs it"""

  @pytest.fixture
  def session(self):
    from semantics import create_analyzer
    from interpreter import create_interpreter
    return (create_parser(), create_analyzer(), create_interpreter())

  def test_expression_statements_echo(self, session, capsys):
    main.run_repl_line("int a = 4;", session)
    main.run_repl_line("a * 2.5;", session)
    assert capsys.readouterr().out.strip() == "=> 10.0 : float"

  def test_failed_analysis_does_not_leave_symbols(self, session):
    from error_handling import TinyCSemanticError
    with pytest.raises(TinyCSemanticError):
      main.run_repl_line("int a = missing;", session)
    main.run_repl_line("int a = 1;", session)
    assert session[2].global_scope.lookup("a").data == 1

  def test_runtime_failure_rolls_back_the_line(self, session):
    with pytest.raises(TinyCRuntimeError, match="Division by zero"):
      main.run_repl_line("int x = 1 / 0;", session)
    assert session[1].global_scope.lookup("x") is None
    main.run_repl_line("int x = 2;", session)
    assert session[2].global_scope.lookup("x").data == 2

  def test_failed_line_keeps_earlier_lines(self, session, capsys):
    main.run_repl_line("int y = 1;", session)
    with pytest.raises(TinyCRuntimeError):
      main.run_repl_line("y = 5; int z = y / 0;", session)
    main.run_repl_line("y;", session)
    assert capsys.readouterr().out.strip() == "=> 1 : int"
    assert session[1].global_scope.lookup("z") is None
    assert "z" not in session[2].global_scope.values
