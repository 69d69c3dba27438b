"""
idiolint.parser - JavaScript tokenizer and structural indexer

Converts source text into tokens, and tokens into a nesting model
(blocks, parens, brackets, statements, functions) that rules inspect.
"""

from idiolint.parser.lexer import (
    AnalysisCancelled,
    Lexer,
    LexError,
    Token,
    TokenType,
    read_source,
    tokenize,
    tokenize_all,
)
from idiolint.parser.structure import (
    NodeKind,
    Structure,
    StructureBuilder,
    StructureDiagnostic,
    StructuralNode,
    build_structure,
)

__all__ = [
    # Lexer
    "AnalysisCancelled",
    "Lexer",
    "LexError",
    "Token",
    "TokenType",
    "read_source",
    "tokenize",
    "tokenize_all",
    # Structure
    "NodeKind",
    "Structure",
    "StructureBuilder",
    "StructureDiagnostic",
    "StructuralNode",
    "build_structure",
]
