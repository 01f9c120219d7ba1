"""Source-to-facts extraction.

Two strategies per language share one contract,
``extract(source, file_path) -> FileExtractionResult``:

- grammar extractors (``python_impl`` on CPython's ``ast``, ``treesitter_impl``
  on tree-sitter grammars for TypeScript/JavaScript, Java, C# and PHP)
- pattern extractors under ``regex/`` that locate signatures and call
  expressions with per-language regular-expression tables

``hybrid.HybridExtractor`` picks a strategy per file and merges results.
"""

from driftscan.ast_extractors.base import (
    CallExtraction,
    ClassExtraction,
    ExtractionQuality,
    FileExtractionResult,
    FunctionExtraction,
    ImportExtraction,
    ImportedName,
    ParameterInfo,
    detect_language,
)
from driftscan.ast_extractors.grammar import GrammarProbe, get_grammar_probe, reset_grammar_probe
from driftscan.ast_extractors.hybrid import HybridExtractor

__all__ = [
    "CallExtraction",
    "ClassExtraction",
    "ExtractionQuality",
    "FileExtractionResult",
    "FunctionExtraction",
    "GrammarProbe",
    "HybridExtractor",
    "ImportExtraction",
    "ImportedName",
    "ParameterInfo",
    "detect_language",
    "get_grammar_probe",
    "reset_grammar_probe",
]
