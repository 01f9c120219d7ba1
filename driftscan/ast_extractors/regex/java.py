"""Pattern extraction for Java."""

import re

from driftscan.ast_extractors.base import (
    ClassExtraction,
    FunctionExtraction,
    ImportedName,
    ImportExtraction,
    ParameterInfo,
    line_of_offset,
)
from driftscan.ast_extractors.regex.base import (
    BaseRegexExtractor,
    find_block_end,
    split_parameters,
    strip_comments_and_strings,
)

_CLASS = re.compile(
    r"((?:(?:public|private|protected|abstract|final|static|sealed|non-sealed)\s+)*)(class|interface|enum|record)\s+(\w+)(?:\s*<[^>{]*>)?([^{]*)\{"
)
_METHOD = re.compile(
    r"^[ \t]*((?:(?:public|private|protected|static|final|abstract|synchronized|native|default|strictfp)\s+)*)"
    r"(?:<[^>]+>\s+)?([\w$.<>\[\],? ]+?)\s+(\w+)\s*\(([^)]*)\)\s*(?:throws\s+[\w.,\s]+)?\s*[{;]",
    re.MULTILINE,
)
_CONSTRUCTOR = re.compile(
    r"^[ \t]*((?:(?:public|private|protected)\s+)?)(\w+)\s*\(([^)]*)\)\s*(?:throws\s+[\w.,\s]+)?\s*\{",
    re.MULTILINE,
)
_ANNOTATION = re.compile(r"^[ \t]*(@[\w.]+(?:\([^)]*\))?)\s*$", re.MULTILINE)
_IMPORT = re.compile(r"^[ \t]*import\s+(static\s+)?([\w.]+(?:\.\*)?)\s*;", re.MULTILINE)

JAVA_KEYWORDS = frozenset({"return", "new", "throw", "else", "if", "for", "while", "switch", "catch",
                           "synchronized", "yield", "case", "assert"})


def annotations_above(code: str, offset: int, pattern: re.Pattern = _ANNOTATION) -> list[str]:
    """Annotation/attribute lines directly above ``offset`` plus inline ones on its line."""
    found = []
    line_start = code.rfind("\n", 0, offset) + 1
    inline = code[line_start:offset]
    found.extend(re.findall(r"(@[\w.]+(?:\([^)]*\))?|\[[\w.]+(?:\([^)\]]*\))?\])", inline))
    above = []
    while line_start > 0:
        prev_start = code.rfind("\n", 0, line_start - 1) + 1
        line = code[prev_start:line_start - 1]
        match = pattern.match(line)
        if match:
            above.append(match.group(1))
        elif line.strip():
            break
        line_start = prev_start
    return list(reversed(above)) + found


def parse_typed_parameters(params: str) -> list[ParameterInfo]:
    """``Type name`` style parameters (Java, C#)."""
    parsed = []
    for raw in split_parameters(params):
        raw = re.sub(r"@\w+(?:\([^)]*\))?\s*", "", raw)
        raw = re.sub(r"\[[^\]]*\]\s*", "", raw) if raw.startswith("[") else raw
        raw = re.sub(r"^(?:final|this|ref|out|in|params)\s+", "", raw.strip())
        head, _, default = raw.partition("=")
        tokens = head.split()
        if not tokens:
            continue
        name = tokens[-1]
        type_text = " ".join(tokens[:-1]) or None
        is_rest = "..." in head or raw.startswith("params") or (type_text or "").endswith("...")
        parsed.append(ParameterInfo(
            name=name.lstrip("."),
            type=type_text.replace("...", "") if type_text else None,
            has_default=bool(default.strip()),
            is_rest=is_rest,
        ))
    return parsed


class JavaRegexExtractor(BaseRegexExtractor):
    language = "java"

    def preprocess(self, source: str, keep_strings: bool = False) -> str:
        return strip_comments_and_strings(source, quotes="\"'", keep_strings=keep_strings)

    def parse_parameters(self, params: str) -> list[ParameterInfo]:
        return parse_typed_parameters(params)

    def extract_classes(self, code, source):
        classes = []
        for match in _CLASS.finditer(code):
            start = line_of_offset(code, match.start(3))
            heritage = match.group(4) or ""
            bases = re.findall(r"(?:extends|implements)\s+([\w.<>,\s]+?)(?=\s+(?:extends|implements)|$)", heritage.strip())
            classes.append(ClassExtraction(
                name=match.group(3),
                start_line=start,
                end_line=line_of_offset(code, find_block_end(code, match.end() - 1)),
                base_classes=[b.strip() for chunk in bases for b in chunk.split(",") if b.strip()],
                decorators=annotations_above(code, match.start()),
                is_exported="public" in (match.group(1) or ""),
            ))
        return classes

    def extract_functions(self, code, source, classes):
        functions = []
        taken = set()
        for match in _METHOD.finditer(code):
            name = match.group(3)
            return_type = match.group(2).strip()
            if name in JAVA_KEYWORDS or any(tok in JAVA_KEYWORDS for tok in return_type.split()):
                continue
            line = line_of_offset(code, match.start(3))
            end_offset = find_block_end(code, match.end() - 1)
            taken.add((line, name))
            functions.append(FunctionExtraction(
                name=name,
                qualified_name=name,
                start_line=line,
                end_line=max(line, line_of_offset(code, end_offset)),
                parameters=self.parse_parameters(match.group(4)),
                return_type=return_type,
                is_exported="public" in (match.group(1) or ""),
                decorators=annotations_above(code, match.start(2)),
            ))

        class_names = {c.name for c in classes}
        for match in _CONSTRUCTOR.finditer(code):
            name = match.group(2)
            line = line_of_offset(code, match.start(2))
            if name not in class_names or (line, name) in taken:
                continue
            functions.append(FunctionExtraction(
                name=name,
                qualified_name=name,
                start_line=line,
                end_line=line_of_offset(code, find_block_end(code, match.end() - 1)),
                parameters=self.parse_parameters(match.group(3)),
                is_exported="public" in (match.group(1) or ""),
                is_constructor=True,
                decorators=annotations_above(code, match.start(2)),
            ))

        return self.nest(functions, classes)

    def extract_imports(self, code, source):
        imports = []
        for match in _IMPORT.finditer(code):
            path = match.group(2)
            last = path.rsplit(".", 1)[-1]
            name = ImportedName(imported="*", local="*", is_namespace=True) if last == "*" \
                else ImportedName(imported=last, local=last)
            imports.append(ImportExtraction(source=path, line=line_of_offset(code, match.start()), names=[name]))
        return imports
