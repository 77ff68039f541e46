"""scopestate CLI — print the scope state of a Julia cell."""

from __future__ import annotations

import json
import logging
import sys

from ..julia import ParseError, TokenizeError, parse
from .context import ScopeError
from .explore import explore_variable_usage
from .state import ScopeState


USAGE: str = """\
scopestate [OPTIONS] [FILE]

Classify the variables of one Julia cell into global definitions,
locals and usages. Reads FILE, or stdin when FILE is omitted.

Options:
  --json      Print the scope state as JSON
  --verbose   Trace the walk on stderr
  --help      Show this help message
"""


def format_state(state: ScopeState) -> str:
    """Render a scope state as the human-readable listing."""
    lines: list[str] = ["definitions:"]
    for d in state.definitions.values():
        lines.append("  " + d.name + " " + _span(d.span))
    lines.append("locals:")
    for l in state.locals:
        lines.append("  " + l.name + " " + _span(l.definition) + " in " + _span(l.validity))
    lines.append("usages:")
    for u in state.usages:
        target = "global" if u.definition is None else "-> " + _span(u.definition)
        lines.append("  " + u.name + " " + _span(u.usage) + " " + target)
    return "\n".join(lines) + "\n"


def _span(span) -> str:
    return str(span.start) + ":" + str(span.end)


def main(argv: list[str] | None = None) -> int:
    args = argv if argv is not None else sys.argv[1:]
    filepath: str = ""
    as_json = False
    verbose = False
    i = 0
    while i < len(args):
        arg = args[i]
        if arg == "--help" or arg == "-h":
            print(USAGE, end="")
            return 0
        elif arg == "--json":
            as_json = True
            i += 1
        elif arg == "--verbose" or arg == "-v":
            verbose = True
            i += 1
        elif arg.startswith("-") and arg != "-":
            print("scopestate: unknown flag '" + arg + "'", file=sys.stderr)
            return 2
        elif filepath == "":
            filepath = arg
            i += 1
        else:
            print("scopestate: unexpected argument '" + arg + "'", file=sys.stderr)
            return 2

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(name)s: %(message)s",
        stream=sys.stderr,
    )

    if filepath == "" or filepath == "-":
        raw = sys.stdin.buffer.read()
        label = "<stdin>"
    else:
        label = filepath
        try:
            with open(filepath, "rb") as f:
                raw = f.read()
        except FileNotFoundError:
            print("scopestate: " + filepath + ": No such file or directory", file=sys.stderr)
            return 1
        except OSError as e:
            print("scopestate: " + filepath + ": " + str(e), file=sys.stderr)
            return 1
    try:
        source = raw.decode("utf-8")
    except ValueError:
        print("scopestate: " + label + ": invalid utf-8", file=sys.stderr)
        return 1

    try:
        tree = parse(source)
    except (TokenizeError, ParseError) as e:
        print("scopestate: parse error: " + str(e), file=sys.stderr)
        return 1

    try:
        state = explore_variable_usage(tree, source, verbose)
    except ScopeError as e:
        print("scopestate: error: " + str(e), file=sys.stderr)
        return 1

    if as_json:
        print(json.dumps(state.to_dict(), indent=2, ensure_ascii=False))
    else:
        sys.stdout.write(format_state(state))
    return 0


if __name__ == "__main__":
    sys.exit(main())
