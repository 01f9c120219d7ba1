"""Shared machinery for pattern-based extraction.

Pattern extractors never see the raw text directly. ``preprocess`` blanks
comments and string contents with spaces, keeping every newline and every
column, so a regex match offset maps back to the same line and column in
the original file while ``"foo("`` inside a string or comment can no longer
masquerade as a call.
"""

import re
from abc import ABC, abstractmethod

from driftscan.ast_extractors.base import (
    METHOD_FALLBACK,
    PATTERN_COMPLETENESS,
    PATTERN_CONFIDENCE,
    CallExtraction,
    ClassExtraction,
    ExtractionQuality,
    FileExtractionResult,
    FunctionExtraction,
    ImportExtraction,
    ParameterInfo,
    assign_callers,
    find_containing_function,
    line_of_offset,
)

# Words that look like calls but are control flow or declarations in most grammars
COMMON_CALL_KEYWORDS = frozenset({
    "if", "for", "while", "switch", "catch", "return", "function", "typeof", "sizeof",
    "new", "throw", "await", "yield", "delete", "void", "in", "of", "with", "else",
    "elif", "and", "or", "not", "is", "lambda", "def", "class", "super", "using",
    "foreach", "lock", "fixed", "checked", "unchecked", "nameof", "default", "when",
    "match", "echo", "print", "isset", "unset", "empty", "list", "array", "fn",
    "synchronized", "try", "do", "case", "import", "export", "assert", "except",
})

_METHOD_CALL = re.compile(r"([A-Za-z_$][\w$]*(?:\s*(?:\.|\?\.|->|::)\s*[A-Za-z_$][\w$]*)*)\s*(?:\.|\?\.|->|::)\s*([A-Za-z_$][\w$]*)\s*(?:<[\w\s,.<>\[\]?]*>)?\s*\(")
_PLAIN_CALL = re.compile(r"(?<![.\w$>:])(new\s+)?([A-Za-z_$][\w$]*)\s*(?:<[\w\s,.<>\[\]?]*>)?\s*\(")


def blank(text: str) -> str:
    """Replace everything but newlines with spaces."""
    return re.sub(r"[^\n]", " ", text)


def strip_comments_and_strings(source: str, line_comments: tuple[str, ...] = ("//",),
                               block_comments: bool = True, quotes: str = "\"'`",
                               triple_quotes: bool = False, keep_strings: bool = False) -> str:
    """Blank comments (and string contents unless ``keep_strings``) preserving positions."""
    out = []
    i = 0
    n = len(source)
    while i < n:
        ch = source[i]
        if triple_quotes and source.startswith(('"""', "'''"), i):
            delim = source[i:i + 3]
            end = source.find(delim, i + 3)
            end = n if end == -1 else end + 3
            segment = source[i:end]
            if keep_strings:
                out.append(segment)
            elif len(segment) >= 6 and segment.endswith(delim):
                out.append(delim + blank(segment[3:-3]) + delim)
            else:
                out.append(delim + blank(segment[3:]))
            i = end
            continue
        matched_line_comment = next((lc for lc in line_comments if source.startswith(lc, i)), None)
        if matched_line_comment is not None:
            end = source.find("\n", i)
            end = n if end == -1 else end
            out.append(blank(source[i:end]))
            i = end
            continue
        if block_comments and source.startswith("/*", i):
            end = source.find("*/", i + 2)
            end = n if end == -1 else end + 2
            out.append(blank(source[i:end]))
            i = end
            continue
        if ch in quotes:
            j = i + 1
            while j < n and source[j] != ch:
                if source[j] == "\\":
                    j += 1
                elif source[j] == "\n" and ch != "`":
                    break
                j += 1
            end = min(j + 1, n)
            segment = source[i:end]
            if keep_strings or len(segment) < 2:
                out.append(segment)
            else:
                out.append(segment[0] + blank(segment[1:-1]) + segment[-1])
            i = end
            continue
        out.append(ch)
        i += 1
    # Every branch preserves length, so offsets line up with the original
    return "".join(out)


def find_block_end(code: str, start: int) -> int:
    """Offset of the brace closing the first ``{`` at or after ``start``; end of text if unbalanced.

    Returns ``start`` when a ``;`` shows up before any ``{`` (abstract or
    interface declarations have no body).
    """
    open_at = -1
    for i in range(start, len(code)):
        if code[i] == "{":
            open_at = i
            break
        if code[i] == ";":
            return start
    if open_at == -1:
        return start
    depth = 0
    for i in range(open_at, len(code)):
        if code[i] == "{":
            depth += 1
        elif code[i] == "}":
            depth -= 1
            if depth == 0:
                return i
    return len(code) - 1


def split_parameters(params: str) -> list[str]:
    """Split a parameter list on top-level commas."""
    parts, depth, current = [], 0, []
    for ch in params:
        if ch in "([{<":
            depth += 1
        elif ch in ")]}>":
            depth -= 1
        if ch == "," and depth == 0:
            parts.append("".join(current).strip())
            current = []
        else:
            current.append(ch)
    tail = "".join(current).strip()
    if tail:
        parts.append(tail)
    return [p for p in parts if p]


class BaseRegexExtractor(ABC):
    """Template for one language's pattern extractor.

    Subclasses implement ``preprocess``, ``extract_functions``,
    ``extract_classes`` and ``extract_imports``; call-site scanning is shared.
    """

    language: str = ""
    call_keywords: frozenset[str] = COMMON_CALL_KEYWORDS

    def extract(self, source: str, file_path: str) -> FileExtractionResult:
        """Extract facts from ``source``; never raises for malformed input."""
        result = FileExtractionResult(file=file_path, language=self.language)
        try:
            code = self.preprocess(source)
            with_strings = self.preprocess(source, keep_strings=True)
            result.classes = self.extract_classes(code, source)
            result.functions = self.extract_functions(code, source, result.classes)
            result.imports = self.extract_imports(with_strings, source)
            result.calls = self.extract_calls(code, result.functions)
        except (re.error, ValueError, IndexError, RecursionError) as e:
            result.errors.append(f"pattern extraction failed: {e}")

        for item in [*result.functions, *result.calls, *result.classes]:
            item.source = METHOD_FALLBACK
            item.confidence = PATTERN_CONFIDENCE
        for item in result.imports:
            item.confidence = PATTERN_CONFIDENCE

        assign_callers(result)
        # Nothing recovered means nothing to vouch for
        completeness = 0.0 if result.errors or not result.item_count else PATTERN_COMPLETENESS
        result.quality = ExtractionQuality.build(
            METHOD_FALLBACK,
            completeness,
            PATTERN_CONFIDENCE,
            failure_reason="; ".join(result.errors) or None,
            items_extracted=result.item_count,
        )
        return result.sort()

    @abstractmethod
    def preprocess(self, source: str, keep_strings: bool = False) -> str:
        """Blank comments (and strings unless ``keep_strings``) without moving offsets."""

    @abstractmethod
    def extract_functions(self, code: str, source: str,
                          classes: list[ClassExtraction]) -> list[FunctionExtraction]:
        pass

    @abstractmethod
    def extract_classes(self, code: str, source: str) -> list[ClassExtraction]:
        pass

    @abstractmethod
    def extract_imports(self, code: str, source: str) -> list[ImportExtraction]:
        pass

    def parse_parameters(self, params: str) -> list[ParameterInfo]:
        """Default ``name: Type = default`` parameter parsing."""
        parsed = []
        for raw in split_parameters(params):
            raw = re.sub(r"^(?:(?:public|private|protected|readonly|override)\s+)+", "", raw)
            is_rest = raw.startswith(("...", "*"))
            raw = raw.lstrip(".*")
            name_part, _, default = raw.partition("=")
            name, _, type_part = name_part.partition(":")
            optional = name.strip().endswith("?")
            name = name.strip().rstrip("?")
            if not re.fullmatch(r"[\w$]+", name):
                continue
            parsed.append(ParameterInfo(
                name=name,
                type=type_part.strip() or None,
                has_default=bool(default.strip()) or optional,
                is_rest=is_rest,
            ))
        return parsed

    def extract_calls(self, code: str, functions: list[FunctionExtraction]) -> list[CallExtraction]:
        """Find method and plain calls, skipping keywords and declaration sites."""
        declared_at = {(f.start_line, f.name) for f in functions}
        calls: list[CallExtraction] = []
        seen: set[tuple[int, int]] = set()

        for match in _METHOD_CALL.finditer(code):
            name_start = match.start(2)
            line = line_of_offset(code, name_start)
            receiver = re.sub(r"\s+", "", match.group(1))
            name = match.group(2)
            if name in self.call_keywords:
                continue
            seen.add((line, name_start))
            calls.append(CallExtraction(
                callee_name=name,
                line=line,
                column=name_start - (code.rfind("\n", 0, name_start) + 1),
                receiver=receiver,
                full_expression=f"{receiver}.{name}",
                is_method_call=True,
            ))

        for match in _PLAIN_CALL.finditer(code):
            name_start = match.start(2)
            name = match.group(2)
            if name in self.call_keywords:
                continue
            line = line_of_offset(code, name_start)
            if (line, name_start) in seen or self.is_declaration(code, match.start(), name, line, declared_at):
                continue
            calls.append(CallExtraction(
                callee_name=name,
                line=line,
                column=name_start - (code.rfind("\n", 0, name_start) + 1),
                full_expression=name,
                is_constructor_call=bool(match.group(1)),
            ))
        return calls

    def is_declaration(self, code: str, offset: int, name: str, line: int,
                       declared_at: set[tuple[int, str]]) -> bool:
        """True when the ``name(`` at ``offset`` declares rather than calls."""
        if (line, name) in declared_at:
            return True
        line_start = code.rfind("\n", 0, offset) + 1
        prefix = code[line_start:offset].strip()
        return prefix.endswith(("function", "def", "fn", "class", "interface", "record")) \
            or bool(re.search(r"\b(?:void|public|private|protected|static|async|override|virtual|abstract)\s*$", prefix))

    @staticmethod
    def owner_class(classes: list[ClassExtraction], line: int) -> ClassExtraction | None:
        best = None
        for cls in classes:
            if cls.start_line <= line <= cls.end_line:
                if best is None or cls.start_line > best.start_line:
                    best = cls
        return best

    @staticmethod
    def nest(functions: list[FunctionExtraction], classes: list[ClassExtraction]) -> list[FunctionExtraction]:
        """Fill class_name/parent/qualified_name from line containment."""
        functions.sort(key=lambda f: (f.start_line, -f.end_line))
        for func in functions:
            outer = find_containing_function(
                [f for f in functions if f is not func and f.start_line < func.start_line
                 and f.end_line >= func.end_line],
                func.start_line,
            )
            owner = BaseRegexExtractor.owner_class(classes, func.start_line)
            if outer is not None and (owner is None or outer.start_line > owner.start_line):
                func.parent = outer.qualified_name
                func.qualified_name = f"{outer.qualified_name}.{func.name}"
            elif owner is not None:
                func.class_name = owner.name
                func.is_method = True
                func.parent = owner.name
                func.qualified_name = f"{owner.name}.{func.name}"
        return functions
