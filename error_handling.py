"""
Error taxonomy and source-context error reports for TinyC
Every pipeline stage raises one of the TinyCError subclasses; the driver
turns them into readable reports with line/column context.
"""

from typing import List, Optional, Dict
from pyparsing import lineno, col, line


# ============================================================================
# ERROR CLASSES
# ============================================================================

class TinyCError(Exception):
    """Base class for all TinyC language errors"""

    kind = "Error"

    def __init__(self, message: str, span=None, hint: Optional[str] = None):
        self.message = message
        self.span = span
        self.hint = hint
        super().__init__(self._format_error())

    def _format_error(self) -> str:
        if self.span is not None:
            return f"{self.message} (at {self.span})"
        return self.message


class TinyCSyntaxError(TinyCError):
    """Token stream does not match the grammar at a committed parse point"""

    kind = "Syntax error"


class TinyCTokenizeError(TinyCSyntaxError):
    """Source text contains a character no token can start with"""

    kind = "Tokenize error"


class TinyCSemanticError(TinyCError):
    """Undeclared symbol, redeclaration, unresolvable type or type mismatch"""

    kind = "Semantic error"


class TinyCRuntimeError(TinyCError):
    """Error raised while executing an analyzed program"""

    kind = "Runtime error"


# ============================================================================
# DATA STRUCTURES (Immutable Dictionaries)
# ============================================================================

def make_error_report(
    kind: str,
    message: str,
    location: int,
    line_num: int,
    column: int,
    got: Optional[str] = None,
    context: Optional[str] = None,
    hint: Optional[str] = None,
    suggestions: Optional[List[str]] = None
) -> Dict:
    """Create an immutable error report structure"""
    return {
        'kind': kind,
        'message': message,
        'location': location,
        'line': line_num,
        'column': column,
        'got': got,
        'context': context,
        'hint': hint,
        'suggestions': suggestions or []
    }


def format_error_report(report: Dict) -> str:
    """Format an error report as string"""
    if report['line'] > 0:
        error_msg = f"{report['kind']} at line {report['line']}, column {report['column']}:\n"
    else:
        error_msg = f"{report['kind']}:\n"
    error_msg += f"  {report['message']}\n"

    if report['got']:
        error_msg += f"  Got: {report['got']}\n"

    if report['hint']:
        error_msg += f"  Hint: {report['hint']}\n"

    if report['context']:
        error_msg += f"\n{report['context']}\n"

    if report['suggestions']:
        error_msg += f"  Suggestions:\n"
        for suggestion in report['suggestions']:
            error_msg += f"    - {suggestion}\n"

    return error_msg


# ============================================================================
# PURE FUNCTIONS
# ============================================================================

def get_context_lines(source_text: str, line_num: int, column: int, width: int = 1,
                      context_lines: int = 2) -> str:
    """Quote the numbered lines around an error and underline the offending text"""
    first = max(1, line_num - context_lines)
    window = source_text.split('\n')[first - 1:line_num + context_lines]

    quoted = []
    for number, text in enumerate(window, start=first):
        quoted.append(f"{number:4d}: {text}")
        if number == line_num:
            quoted.append(" " * (column + 5) + "^" + "~" * (width - 1) + " Error here")
    return '\n'.join(quoted)


def underline_width(source_text: str, location: int, span_end: int) -> int:
    """Width of a span on its first line, at least one column"""
    remaining = len(line(location, source_text)) - col(location, source_text) + 1
    return max(1, min(span_end - location, remaining))


def extract_got(source_text: str, location: int, span_end: Optional[int] = None) -> Optional[str]:
    """Extract the offending text at an error location"""
    if location >= len(source_text):
        return "end of input"
    if span_end is not None and span_end > location:
        return repr(source_text[location:span_end])
    current = line(location, source_text)
    offset = col(location, source_text) - 1
    rest = current[offset:].split()
    return repr(rest[0]) if rest else None


def generate_suggestions(error: TinyCError) -> List[str]:
    """Generate suggestions based on common mistakes"""
    suggestions = []
    message = error.message.lower()

    if "expected ';'" in message:
        suggestions.append("Every declaration, assignment and expression statement ends with ';'")
    if "undeclared identifier" in message:
        suggestions.append("Declare the variable before using it, e.g. 'int x = 0;'")
    if "unknown function" in message:
        suggestions.append("Functions must be declared before they are called")
    if "redeclaration" in message:
        suggestions.append("Use a nested block to shadow a name, or pick a different name")
    if "unknown typename" in message or "unknown return type" in message:
        suggestions.append("Available types: bool, int, float, string (and void for return types)")
    if "division by zero" in message:
        suggestions.append("Guard the division with an 'if' on the divisor")
    if "maximum call depth" in message:
        suggestions.append("Check that the recursion has a reachable base case")

    return suggestions


def build_error_report(error: TinyCError, source_text: Optional[str] = None) -> Dict:
    """Build an error report for a TinyC error, resolving its span against the source"""
    span = error.span
    if span is None or source_text is None:
        return make_error_report(error.kind, error.message, -1, 0, 0,
                                 hint=error.hint,
                                 suggestions=generate_suggestions(error))

    location = min(span.start, len(source_text))
    if source_text:
        line_num = lineno(location, source_text)
        column = col(location, source_text)
    else:
        line_num, column = 1, 1
    return make_error_report(
        error.kind,
        error.message,
        location,
        line_num,
        column,
        got=extract_got(source_text, location, span.end),
        context=get_context_lines(source_text, line_num, column,
                                  underline_width(source_text, location, span.end)),
        hint=error.hint,
        suggestions=generate_suggestions(error)
    )


def format_error(error: TinyCError, source_text: Optional[str] = None) -> str:
    """Build and format an error report in one step"""
    return format_error_report(build_error_report(error, source_text))
