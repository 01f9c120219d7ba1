"""Pattern extraction for Python."""

import re

from driftscan.ast_extractors.base import (
    ClassExtraction,
    FunctionExtraction,
    ImportedName,
    ImportExtraction,
    line_of_offset,
)
from driftscan.ast_extractors.regex.base import COMMON_CALL_KEYWORDS, BaseRegexExtractor, strip_comments_and_strings

_DEF = re.compile(
    r"^([ \t]*)(async[ \t]+)?def[ \t]+(\w+)[ \t]*\(([^)]*)\)[ \t]*(?:->[ \t]*([^:\n]+))?:",
    re.MULTILINE,
)
_CLASS = re.compile(r"^([ \t]*)class[ \t]+(\w+)(?:[ \t]*\(([^)]*)\))?[ \t]*:", re.MULTILINE)
_FROM_IMPORT = re.compile(r"^[ \t]*from[ \t]+(\S+)[ \t]+import[ \t]+(\([^)]*\)|[^\n]+)", re.MULTILINE)
_IMPORT = re.compile(r"^[ \t]*import[ \t]+([^\n]+)", re.MULTILINE)

PYTHON_KEYWORDS = COMMON_CALL_KEYWORDS | frozenset({
    "print", "exec", "async", "from", "raise", "global", "nonlocal", "pass", "break", "continue",
})


def _indent_width(indent: str) -> int:
    return len(indent.expandtabs(4))


def _block_end_line(lines: list[str], start_index: int, indent: int) -> int:
    """Last line (1-based) of the indented block whose header is at ``start_index``."""
    end = start_index
    for i in range(start_index + 1, len(lines)):
        stripped = lines[i].strip()
        if not stripped:
            continue
        if _indent_width(lines[i][: len(lines[i]) - len(lines[i].lstrip())]) <= indent:
            break
        end = i
    return end + 1


def _decorators(lines: list[str], header_index: int) -> list[str]:
    found = []
    i = header_index - 1
    while i >= 0:
        stripped = lines[i].strip()
        if stripped.startswith("@"):
            found.append(stripped)
        elif stripped:
            break
        i -= 1
    return list(reversed(found))


class PythonRegexExtractor(BaseRegexExtractor):
    language = "python"
    call_keywords = PYTHON_KEYWORDS

    def preprocess(self, source: str, keep_strings: bool = False) -> str:
        return strip_comments_and_strings(
            source, line_comments=("#",), block_comments=False, quotes="\"'",
            triple_quotes=True, keep_strings=keep_strings,
        )

    def extract_classes(self, code, source):
        lines = code.split("\n")
        classes = []
        for match in _CLASS.finditer(code):
            line = line_of_offset(code, match.start(2))
            indent = _indent_width(match.group(1))
            bases = [b.strip() for b in (match.group(3) or "").split(",") if b.strip()]
            classes.append(ClassExtraction(
                name=match.group(2),
                start_line=line,
                end_line=_block_end_line(lines, line - 1, indent),
                base_classes=bases,
                decorators=_decorators(lines, line - 1),
                is_exported=indent == 0 and not match.group(2).startswith("_"),
            ))
        return classes

    def extract_functions(self, code, source, classes):
        lines = code.split("\n")
        functions = []
        for match in _DEF.finditer(code):
            line = line_of_offset(code, match.start(3))
            indent = _indent_width(match.group(1))
            name = match.group(3)
            params = [p for p in self.parse_parameters(match.group(4))]
            functions.append(FunctionExtraction(
                name=name,
                qualified_name=name,
                start_line=line,
                end_line=_block_end_line(lines, line - 1, indent),
                parameters=params,
                return_type=(match.group(5) or "").strip() or None,
                is_async=bool(match.group(2)),
                is_exported=indent == 0 and not name.startswith("_"),
                decorators=_decorators(lines, line - 1),
            ))
        functions = self.nest(functions, classes)
        for func in functions:
            if func.is_method:
                func.is_constructor = func.name == "__init__"
                func.is_exported = not func.name.startswith("_")
        return functions

    def extract_imports(self, code, source):
        imports = []
        for match in _FROM_IMPORT.finditer(code):
            names_text = match.group(2).strip().strip("()").split("#", 1)[0]
            names = []
            for part in names_text.replace("\n", " ").split(","):
                part = part.strip()
                if not part:
                    continue
                imported, _, alias = part.partition(" as ")
                names.append(ImportedName(imported=imported.strip(), local=(alias or imported).strip()))
            imports.append(ImportExtraction(
                source=match.group(1),
                line=line_of_offset(code, match.start(1)),
                names=names,
            ))
        for match in _IMPORT.finditer(code):
            line = line_of_offset(code, match.start(1))
            for part in match.group(1).split("#", 1)[0].split(","):
                part = part.strip()
                if not part:
                    continue
                module, _, alias = part.partition(" as ")
                module = module.strip()
                imports.append(ImportExtraction(
                    source=module,
                    line=line,
                    names=[ImportedName(imported=module, local=(alias.strip() or module.split(".")[0]),
                                        is_namespace=True)],
                ))
        return imports
