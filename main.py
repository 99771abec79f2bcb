"""
TinyC Programming Language - Main Entry Point
A small statically scoped C-like language: parser, semantic analyzer and interpreter
"""

import sys
import argparse
from pathlib import Path
from typing import Optional
import os

# Readline support for history and auto-completion
try:
  import readline
  READLINE_AVAILABLE = True
except ImportError:
  READLINE_AVAILABLE = False

from error_handling import TinyCError, format_error
from parsing import KEYWORDS, create_parser, pretty_print_tree
from semantics import ExpressionStatement, create_analyzer, pretty_print_ast
from interpreter import DEFAULT_MAX_CALL_DEPTH, create_interpreter
from utilities import recursion_limit


VERSION = "TinyC v0.1.0"


def create_arg_parser() -> argparse.ArgumentParser:
  """Create command line argument parser"""
  parser = argparse.ArgumentParser(
      description='TinyC - a small C-like language front-end and interpreter',
      formatter_class=argparse.RawDescriptionHelpFormatter,
      epilog="""
Examples:
  %(prog)s program.tc             # Run a TinyC program
  %(prog)s -i                     # Interactive mode
  %(prog)s --tokens program.tc    # Show the token stream
  %(prog)s --parse program.tc     # Show the parse tree and reconstructed source
  %(prog)s --analyze program.tc   # Parse, analyze and show the typed AST
  %(prog)s --debug program.tc     # Run with debug output
        """
  )

  parser.add_argument(
      'script',
      nargs='?',
      help='TinyC source file to execute'
  )

  parser.add_argument(
      '-i', '--interactive',
      action='store_true',
      help='Start interactive mode'
  )

  parser.add_argument(
      '--tokens',
      action='store_true',
      help='Tokenize file and list tokens with spans'
  )

  parser.add_argument(
      '--parse',
      action='store_true',
      help='Parse file and show the parse tree (for debugging)'
  )

  parser.add_argument(
      '--analyze',
      action='store_true',
      help='Parse and analyze file, show AST (for debugging)'
  )

  parser.add_argument(
      '--debug',
      action='store_true',
      help='Enable debug output for all stages'
  )

  parser.add_argument(
      '--max-call-depth',
      type=int,
      default=DEFAULT_MAX_CALL_DEPTH,
      metavar='N',
      help=f'Maximum function call depth (default: {DEFAULT_MAX_CALL_DEPTH})'
  )

  parser.add_argument(
      '--version',
      action='version',
      version=VERSION
  )

  return parser


def read_source(script_path: str) -> str:
  """Read a source file, exiting with a hint when it cannot be read"""
  try:
    return Path(script_path).read_text(encoding="utf-8")
  except FileNotFoundError:
    print(f"Error: Script file '{script_path}' not found")
    print(f"  Hint: Check the file path and make sure the file exists")
    sys.exit(1)
  except PermissionError:
    print(f"Error: Permission denied reading '{script_path}'")
    print(f"  Hint: Make sure you have read permissions for this file")
    sys.exit(1)
  except UnicodeDecodeError as e:
    print(f"Error: Cannot decode file '{script_path}': {e}")
    print(f"  Hint: Make sure the file is a text file with UTF-8 encoding")
    sys.exit(1)


def report_error(error: TinyCError, script_path: str, source: Optional[str]) -> None:
  print(f"In '{script_path}':")
  print(format_error(error, source))


def show_tokens(script_path: str, debug: bool = False) -> None:
  """Tokenize a TinyC file and list its tokens"""
  source = read_source(script_path)
  try:
    tokens = create_parser(debug).tokenize(source)
  except TinyCError as e:
    report_error(e, script_path, source)
    sys.exit(1)

  print(f"{len(tokens)} tokens in {script_path}:")
  for token in tokens:
    print(f"  {token.span!s:<12} {token}")


def parse_file(script_path: str, debug: bool = False) -> None:
  """Parse a TinyC file and show the parse tree and reconstructed source"""
  source = read_source(script_path)
  try:
    print(f"Parsing {script_path}...")
    program = create_parser(debug).parse_string(source)
  except TinyCError as e:
    report_error(e, script_path, source)
    sys.exit(1)

  print(f"\nParsed {len(program.statements)} top-level statements:")
  print("=" * 50)
  print(pretty_print_tree(program))
  print("=" * 50)
  print("Reconstructed source:")
  print(program.to_source())


def analyze_file(script_path: str, debug: bool = False) -> None:
  """Parse and analyze a TinyC file and show the AST"""
  source = read_source(script_path)
  try:
    print(f"Parsing and analyzing {script_path}...")
    program = create_parser(debug).parse_string(source)
    ast = create_analyzer(debug).analyze(program)
  except TinyCError as e:
    report_error(e, script_path, source)
    sys.exit(1)

  print(f"\nAnalyzed {len(ast.statements)} top-level statements:")
  print("=" * 50)
  print(pretty_print_ast(ast))


def run_script_file(script_path: str, debug: bool = False,
                    max_call_depth: int = DEFAULT_MAX_CALL_DEPTH) -> None:
  """Run a TinyC file with full interpretation"""
  source = read_source(script_path)
  try:
    parser = create_parser(debug)
    analyzer = create_analyzer(debug)
    interpreter = create_interpreter(debug, max_call_depth)

    if debug:
      print(f"Parsing {script_path}...")
    program = parser.parse_string(source)
    if debug:
      print(f"Parsed {len(program.statements)} statements")

    ast = analyzer.analyze(program)
    if debug:
      print(f"Analyzed {len(ast.statements)} statements")

    final_env = interpreter.interpret(ast)
  except TinyCError as e:
    print(f"\n{'='*70}")
    report_error(e, script_path, source)
    print(f"{'='*70}\n")
    sys.exit(1)

  print(f"Program executed successfully!")
  if final_env:
    print(f"\nFinal environment ({len(final_env)} bindings):")
    for name, value in final_env.items():
      print(f"  {name} = {value!r}")


def setup_readline():
  """Setup readline with history and auto-completion"""
  if not READLINE_AVAILABLE:
    return

  history_file = os.path.expanduser("~/.tinyc_history")
  try:
    readline.read_history_file(history_file)
  except OSError:
    pass  # First run, no history yet

  readline.set_history_length(1000)

  completions = sorted(KEYWORDS) + ["true", "false",
                                    ":tokens", ":parse", ":analyze", ":env", ":help", "exit"]

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
  print("  :tokens <code>    - Show tokens")
  print("  :parse <code>     - Show parse tree")
  print("  :analyze <code>   - Show analyzed AST (not executed)")
  print("  :env              - Show current environment")
  print("  :help             - Show this help")
  print("  exit              - Exit REPL")
  print()
  print("Language features:")
  print("  int x = 5;                        - Variable declaration")
  print("  x = x + 1;                        - Assignment")
  print("  int sq(int n) { return n * n; }   - Function declaration")
  print("  sq(4);                            - Expression statement, echoes the value")
  print("  while (x < 10) x = x + 1;         - Loops (with break/continue)")


def run_repl_line(code: str, session, debug: bool = False) -> None:
  """Parse, analyze and execute one REPL input in the persistent session"""
  parser, analyzer, interpreter = session
  program = parser.parse_string(code)

  # A line that fails leaves neither declarations nor bindings behind
  saved_symbols = dict(analyzer.global_scope.symbols)
  saved_values = dict(interpreter.global_scope.values)
  try:
    ast = analyzer.analyze(program)
    value = interpreter.run(ast)
  except TinyCError:
    analyzer.global_scope.symbols = saved_symbols
    interpreter.global_scope.values = saved_values
    raise

  if ast.statements and isinstance(ast.statements[-1], ExpressionStatement):
    print(f"=> {value} : {value.type}")


def run_interactive_mode(debug: bool = False, max_call_depth: int = DEFAULT_MAX_CALL_DEPTH) -> None:
  """Run TinyC in interactive mode with a persistent global scope"""
  print(f"{VERSION} - Interactive Mode")
  print("Type 'exit' to quit, ':help' for commands")
  if READLINE_AVAILABLE:
    print("Readline enabled: Use ↑/↓ for history, Tab for completion")
  if debug:
    print("Debug mode enabled")
  print()

  setup_readline()

  parser = create_parser(debug)
  analyzer = create_analyzer(debug)
  interpreter = create_interpreter(debug, max_call_depth)
  session = (parser, analyzer, interpreter)

  while True:
    try:
      code = input("tinyc> ")
    except (KeyboardInterrupt, EOFError):
      print("\nGoodbye!")
      break

    stripped = code.strip()
    if stripped == "exit":
      break
    if not stripped:
      continue

    try:
      if stripped.startswith(":tokens "):
        for token in parser.tokenize(stripped[8:]):
          print(f"  {token.span!s:<12} {token}")
      elif stripped.startswith(":parse "):
        program = parser.parse_string(stripped[7:])
        print(pretty_print_tree(program))
      elif stripped.startswith(":analyze "):
        # Analyze in a throwaway analyzer so nothing is declared in the session
        program = parser.parse_string(stripped[9:])
        print(pretty_print_ast(create_analyzer(debug).analyze(program)))
      elif stripped == ":env":
        bindings = interpreter.global_scope.bindings()
        functions = interpreter.global_scope.functions()
        if not bindings and not functions:
          print("  (no user-defined bindings)")
        for name, value in bindings.items():
          print(f"  {value.type} {name} = {value}")
        for function in functions.values():
          print(f"  {function}")
      elif stripped == ":help":
        print_repl_help()
      else:
        run_repl_line(code, session, debug)
    except TinyCError as e:
      print(format_error(e, code))


def show_language_info() -> None:
  """Show TinyC language information"""
  print("TinyC Programming Language")
  print("=" * 50)
  print("A small statically scoped C-like language with:")
  print("• Four primitive types: bool, int, float, string")
  print("• Implicit promotion between primitive types")
  print("• Functions with recursion and lexical scoping")
  print("• if / while / break / continue / return")
  print()


def run_command(args, arg_parser: argparse.ArgumentParser) -> None:
  """Dispatch the parsed command line to a pipeline entry point"""
  if args.script:
    if not Path(args.script).exists():
      print(f"Error: Script file '{args.script}' does not exist")
      sys.exit(1)

    if args.tokens:
      show_tokens(args.script, debug=args.debug)
    elif args.parse:
      parse_file(args.script, debug=args.debug)
    elif args.analyze:
      analyze_file(args.script, debug=args.debug)
    else:
      run_script_file(args.script, debug=args.debug, max_call_depth=args.max_call_depth)

  elif args.interactive:
    run_interactive_mode(debug=args.debug, max_call_depth=args.max_call_depth)

  else:
    arg_parser.print_help()
    print()
    show_language_info()


def main() -> None:
  """Main entry point for TinyC"""
  arg_parser = create_arg_parser()
  args = arg_parser.parse_args()

  # Tree dumps and source reconstruction recurse as deep as the program nests
  with recursion_limit():
    if len(sys.argv) == 1:
      show_language_info()
      print("Starting interactive mode...")
      print("Use 'tinyc --help' for command line options")
      print()
      run_interactive_mode()
      return

    run_command(args, arg_parser)


if __name__ == "__main__":
  main()
