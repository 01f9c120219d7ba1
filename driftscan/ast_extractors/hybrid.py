"""Hybrid extraction: grammar first, patterns as the safety net.

Modes:
    auto      grammar when available; merge in pattern facts when the grammar
              reports syntax-error regions; patterns alone when the grammar
              is unavailable or the parse fails outright
    grammar   grammar only (patterns only when no grammar can run at all)
    fallback  patterns only
    hybrid    always run both and merge

Merging keys facts by (line, name). Grammar facts win when both strategies
report the same structure; pattern facts fill in where the grammar produced
nothing. Extraction never raises: the worst outcome is an empty result whose
quality level is ``low``.
"""

from driftscan.ast_extractors.base import (
    METHOD_FALLBACK,
    FileExtractionResult,
    FunctionExtraction,
    assign_callers,
    detect_language,
    find_containing_function,
    merge_qualities,
)
from driftscan.ast_extractors.grammar import GrammarProbe, get_grammar_probe
from driftscan.ast_extractors.python_impl import PythonGrammarExtractor
from driftscan.ast_extractors.regex import get_regex_extractor
from driftscan.ast_extractors.treesitter_impl import LANGUAGE_RULES, TreeSitterExtractor
from driftscan.config_runtime import EXTRACTION_MODES
from driftscan.exceptions import ConfigurationError
from driftscan.utils.logging import logger


class HybridExtractor:
    """Chooses and combines extraction strategies per file."""

    def __init__(self, probe: GrammarProbe | None = None, mode: str = "auto"):
        if mode not in EXTRACTION_MODES:
            raise ConfigurationError(f"Unknown extraction mode: {mode!r}", {"mode": mode})
        self.probe = probe or get_grammar_probe()
        self.mode = mode
        self._grammar: dict[str, PythonGrammarExtractor | TreeSitterExtractor] = {}

    def grammar_extractor(self, language: str) -> PythonGrammarExtractor | TreeSitterExtractor | None:
        if language not in self._grammar:
            if language == "python":
                self._grammar[language] = PythonGrammarExtractor()
            elif language in LANGUAGE_RULES:
                self._grammar[language] = TreeSitterExtractor(language, self.probe)
            else:
                return None
        return self._grammar[language]

    def extract(self, source: str, file_path: str, language: str | None = None) -> FileExtractionResult:
        """Extract one file. Never raises."""
        language = language or detect_language(file_path)
        if language is None:
            return FileExtractionResult.empty(file_path, "unknown", reason="unsupported file type")

        if self.mode == "fallback":
            return self._fallback(source, file_path, language, "pattern extraction requested")

        grammar_language = "tsx" if file_path.endswith(".tsx") else language
        grammar = self.grammar_extractor(language)
        if grammar is None or not self.probe.is_available(grammar_language):
            return self._fallback(source, file_path, language, f"grammar engine unavailable for {language}")

        try:
            primary = grammar.extract(source, file_path)
        except SyntaxError as e:
            reason = f"parse failure: {e.msg} (line {e.lineno})"
            logger.warning(f"[EXTRACT] {file_path}: {reason}, using fallback")
            return self._fallback(source, file_path, language, reason)
        except Exception as e:  # grammar engines surface crashes as assorted exception types
            reason = f"grammar engine error: {type(e).__name__}: {e}"
            logger.warning(f"[EXTRACT] {file_path}: {reason}, using fallback")
            return self._fallback(source, file_path, language, reason)

        if self.mode == "hybrid" or (self.mode == "auto" and primary.quality.parse_errors):
            secondary = self._pattern(source, file_path, language)
            if secondary is not None:
                return merge_results(primary, secondary)
        return primary

    def _pattern(self, source: str, file_path: str, language: str) -> FileExtractionResult | None:
        extractor = get_regex_extractor(language)
        if extractor is None:
            return None
        return extractor.extract(source, file_path)

    def _fallback(self, source: str, file_path: str, language: str, reason: str) -> FileExtractionResult:
        result = self._pattern(source, file_path, language)
        if result is None:
            return FileExtractionResult.empty(file_path, language, METHOD_FALLBACK, reason)
        result.quality.failure_reason = "; ".join(r for r in (reason, result.quality.failure_reason) if r)
        result.quality.warnings.append(reason)
        return result


def _reparent(func: FunctionExtraction, functions: list[FunctionExtraction], class_names: set[str]) -> None:
    """Re-derive nesting for a pattern fact dropped into a grammar result."""
    outer = find_containing_function(
        [f for f in functions if f is not func and f.start_line < func.start_line and f.end_line >= func.end_line],
        func.start_line,
    )
    if outer is not None:
        func.parent = outer.qualified_name
        func.qualified_name = f"{outer.qualified_name}.{func.name}"
    elif func.class_name and func.class_name in class_names:
        func.parent = func.class_name
        func.qualified_name = f"{func.class_name}.{func.name}"
    else:
        func.parent = None
        func.class_name = None
        func.is_method = False
        func.qualified_name = func.name


def merge_results(primary: FileExtractionResult, secondary: FileExtractionResult) -> FileExtractionResult:
    """Merge a grammar result with a pattern result for the same file.

    Facts are keyed by (line, name); on collision the higher-confidence entry
    stays, which is the grammar one unless a caller lowered it.
    """
    merged = FileExtractionResult(file=primary.file, language=primary.language)

    classes = {(c.start_line, c.name): c for c in primary.classes}
    for cls in secondary.classes:
        key = (cls.start_line, cls.name)
        if key not in classes or cls.confidence > classes[key].confidence:
            classes[key] = cls
    merged.classes = list(classes.values())

    functions = {(f.start_line, f.name): f for f in primary.functions}
    grammar_starts = {f.start_line for f in primary.functions}
    added: list[FunctionExtraction] = []
    for func in secondary.functions:
        key = (func.start_line, func.name)
        if key in functions:
            if func.confidence > functions[key].confidence:
                functions[key] = func
            continue
        if func.start_line in grammar_starts:
            continue
        functions[key] = func
        added.append(func)
    merged.functions = sorted(functions.values(), key=lambda f: (f.start_line, -f.end_line))
    class_names = {c.name for c in merged.classes}
    for func in sorted(added, key=lambda f: (f.start_line, -f.end_line)):
        _reparent(func, merged.functions, class_names)

    # Several call sites may share a line, so grammar calls are kept as a list
    merged.calls = list(primary.calls)
    grammar_calls = {(c.line, c.callee_name) for c in primary.calls}
    for call in secondary.calls:
        key = (call.line, call.callee_name)
        if key not in grammar_calls:
            grammar_calls.add(key)
            call.caller = None
            merged.calls.append(call)

    imports = {(i.line, i.source): i for i in primary.imports}
    for imp in secondary.imports:
        imports.setdefault((imp.line, imp.source), imp)
    merged.imports = list(imports.values())

    assign_callers(merged)
    merged.errors = primary.errors + secondary.errors
    merged.quality = merge_qualities(
        primary.quality,
        secondary.quality,
        primary.item_count,
        merged.item_count - primary.item_count,
    )
    merged.quality.items_extracted = merged.item_count
    return merged.sort()


__all__ = ["HybridExtractor", "merge_results"]
