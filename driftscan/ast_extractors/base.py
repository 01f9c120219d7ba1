"""Extraction data model and helpers shared by every extractor.

A FileExtractionResult is the only thing the call graph builder sees from a
file: ordered functions (with parameters, nesting and constructor flag),
ordered call sites, imports, classes and an ExtractionQuality record.
Grammar and pattern extractors both produce it, so the hybrid merge and the
builder never need to know which strategy ran.
"""

from dataclasses import asdict, dataclass, field
from pathlib import PurePosixPath
from typing import Any

# Confidence attached to facts by the strategy that produced them
GRAMMAR_CONFIDENCE = 0.95
PATTERN_CONFIDENCE = 0.75
HEURISTIC_CONFIDENCE = 0.50
UNKNOWN_CONFIDENCE = 0.25

# Pattern extraction misses nested lambdas, multi-line signatures and
# calls split across lines; this is its coverage estimate when it ran cleanly.
PATTERN_COMPLETENESS = 0.6

METHOD_GRAMMAR = "grammar"
METHOD_FALLBACK = "fallback"
METHOD_HYBRID = "hybrid"

LANGUAGE_EXTENSIONS = {
    ".py": "python",
    ".pyw": "python",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".mts": "typescript",
    ".cts": "typescript",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".java": "java",
    ".cs": "csharp",
    ".php": "php",
}

SUPPORTED_LANGUAGES = ("python", "typescript", "javascript", "java", "csharp", "php")


def detect_language(file_path: str) -> str | None:
    """Map a file path to its language tag, or None for unsupported files."""
    suffix = PurePosixPath(str(file_path).replace("\\", "/")).suffix.lower()
    return LANGUAGE_EXTENSIONS.get(suffix)


def quality_level(completeness: float) -> str:
    """Bucket a completeness estimate into high/medium/low."""
    if completeness >= 0.85:
        return "high"
    if completeness >= 0.5:
        return "medium"
    return "low"


@dataclass
class ParameterInfo:
    """One declared parameter."""

    name: str
    type: str | None = None
    has_default: bool = False
    is_rest: bool = False


@dataclass
class FunctionExtraction:
    """A function, method, constructor or named lambda found in a file.

    ``qualified_name`` is unique within the file for distinct scopes
    (``UserService.get_user``, ``outer.inner``). ``parent`` names the
    enclosing function or class by qualified name, or is None at module level.
    """

    name: str
    qualified_name: str
    start_line: int
    end_line: int
    parameters: list[ParameterInfo] = field(default_factory=list)
    return_type: str | None = None
    class_name: str | None = None
    parent: str | None = None
    is_method: bool = False
    is_constructor: bool = False
    is_exported: bool = False
    is_async: bool = False
    decorators: list[str] = field(default_factory=list)
    confidence: float = GRAMMAR_CONFIDENCE
    source: str = METHOD_GRAMMAR


@dataclass
class CallExtraction:
    """A call site. ``caller`` is the qualified name of the enclosing function."""

    callee_name: str
    line: int
    column: int = 0
    receiver: str | None = None
    full_expression: str = ""
    argument_count: int = 0
    is_method_call: bool = False
    is_constructor_call: bool = False
    caller: str | None = None
    confidence: float = GRAMMAR_CONFIDENCE
    source: str = METHOD_GRAMMAR


@dataclass
class ImportedName:
    imported: str
    local: str
    is_default: bool = False
    is_namespace: bool = False


@dataclass
class ImportExtraction:
    """An import/using/use statement. ``source`` is the module, namespace or path as written."""

    source: str
    line: int
    names: list[ImportedName] = field(default_factory=list)
    is_type_only: bool = False
    confidence: float = GRAMMAR_CONFIDENCE


@dataclass
class ClassExtraction:
    name: str
    start_line: int
    end_line: int
    base_classes: list[str] = field(default_factory=list)
    decorators: list[str] = field(default_factory=list)
    is_exported: bool = False
    confidence: float = GRAMMAR_CONFIDENCE
    source: str = METHOD_GRAMMAR


@dataclass
class ExtractionQuality:
    """How a file was extracted and how much to trust it.

    Attributes:
        method: "grammar", "fallback" or "hybrid"
        completeness: Estimated share of the file's structure captured (0-1)
        confidence: Weighted confidence of the extracted facts (0-1)
        level: "high", "medium" or "low"
        failure_reason: Why the grammar path was not (fully) used, if it wasn't
    """

    method: str
    completeness: float
    confidence: float
    level: str = "high"
    failure_reason: str | None = None
    parse_errors: int = 0
    items_extracted: int = 0
    warnings: list[str] = field(default_factory=list)

    @classmethod
    def build(cls, method: str, completeness: float, confidence: float, **kwargs: Any) -> "ExtractionQuality":
        completeness = max(0.0, min(1.0, completeness))
        return cls(
            method=method,
            completeness=round(completeness, 3),
            confidence=round(confidence, 3),
            level=quality_level(completeness),
            **kwargs,
        )


@dataclass
class FileExtractionResult:
    file: str
    language: str
    functions: list[FunctionExtraction] = field(default_factory=list)
    calls: list[CallExtraction] = field(default_factory=list)
    imports: list[ImportExtraction] = field(default_factory=list)
    classes: list[ClassExtraction] = field(default_factory=list)
    quality: ExtractionQuality = field(
        default_factory=lambda: ExtractionQuality.build(METHOD_FALLBACK, 0.0, UNKNOWN_CONFIDENCE)
    )
    errors: list[str] = field(default_factory=list)

    @classmethod
    def empty(cls, file: str, language: str, method: str = METHOD_FALLBACK,
              reason: str | None = None) -> "FileExtractionResult":
        """An empty result flagged low quality - what unparseable input yields."""
        quality = ExtractionQuality.build(method, 0.0, UNKNOWN_CONFIDENCE, failure_reason=reason)
        return cls(file=file, language=language, quality=quality, errors=[reason] if reason else [])

    @property
    def item_count(self) -> int:
        return len(self.functions) + len(self.calls) + len(self.imports) + len(self.classes)

    def sort(self) -> "FileExtractionResult":
        """Order facts by position so output never depends on traversal order."""
        self.functions.sort(key=lambda f: (f.start_line, f.end_line, f.qualified_name))
        self.calls.sort(key=lambda c: (c.line, c.column, c.callee_name))
        self.imports.sort(key=lambda i: (i.line, i.source))
        self.classes.sort(key=lambda c: (c.start_line, c.name))
        return self

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def find_containing_function(functions: list[FunctionExtraction], line: int) -> FunctionExtraction | None:
    """Innermost function whose line span contains ``line``."""
    best = None
    for func in functions:
        if func.start_line <= line <= func.end_line:
            if best is None or (func.end_line - func.start_line) < (best.end_line - best.start_line) \
                    or ((func.end_line - func.start_line) == (best.end_line - best.start_line)
                        and func.start_line > best.start_line):
                best = func
    return best


def assign_callers(result: FileExtractionResult) -> FileExtractionResult:
    """Fill ``caller`` on call sites that lack one, by innermost line span."""
    for call in result.calls:
        if call.caller is None:
            owner = find_containing_function(result.functions, call.line)
            if owner is not None:
                call.caller = owner.qualified_name
    return result


def merge_qualities(primary: ExtractionQuality, secondary: ExtractionQuality,
                    primary_items: int, secondary_items: int) -> ExtractionQuality:
    """Combine two qualities into a hybrid one, weighting confidence by item count."""
    total = primary_items + secondary_items
    if total:
        confidence = (primary.confidence * primary_items + secondary.confidence * secondary_items) / total
    else:
        confidence = max(primary.confidence, secondary.confidence)
    reasons = [r for r in (primary.failure_reason, secondary.failure_reason) if r]
    return ExtractionQuality.build(
        METHOD_HYBRID,
        max(primary.completeness, secondary.completeness),
        confidence,
        failure_reason="; ".join(reasons) if reasons else None,
        parse_errors=primary.parse_errors + secondary.parse_errors,
        warnings=primary.warnings + secondary.warnings,
    )


def line_of_offset(text: str, offset: int) -> int:
    """1-based line number of a character offset."""
    return text.count("\n", 0, offset) + 1
