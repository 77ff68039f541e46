"""Julia front end — tokenizer, parser and syntax tree."""

from __future__ import annotations

from .ast import JSource
from .parse import ParseError as ParseError, Parser
from .tokens import TokenizeError as TokenizeError, tokenize


def parse(source: str) -> JSource:
    """Parse Julia source code into a JSource tree."""
    tokens = tokenize(source)
    parser = Parser(tokens, source)
    return parser.parse_program()
