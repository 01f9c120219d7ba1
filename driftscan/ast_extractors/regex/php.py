"""Pattern extraction for PHP."""

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
    r"((?:(?:abstract|final|readonly)\s+)*)(class|interface|trait|enum)\s+(\w+)(?:\s+extends\s+([\w\\]+))?(?:\s+implements\s+([\w\\,\s]+))?\s*\{"
)
_FUNCTION = re.compile(
    r"((?:(?:public|private|protected|static|abstract|final)\s+)*)function\s+&?\s*(\w+)\s*\(([^)]*)\)\s*(?::\s*\??([\w\\|]+))?\s*[{;]"
)
_ATTRIBUTE = re.compile(r"^[ \t]*(#\[[^\]]+\]|\*?\s*@\w+(?:\([^)]*\))?)\s*$", re.MULTILINE)
_USE = re.compile(r"^[ \t]*use\s+(?:function\s+|const\s+)?([\w\\]+)(?:\s+as\s+(\w+))?\s*;", re.MULTILINE)

PHP_KEYWORDS = frozenset({"function", "fn", "array", "list", "isset", "unset", "empty", "echo", "print",
                          "require", "require_once", "include", "include_once", "die", "exit", "eval",
                          "if", "elseif", "foreach", "for", "while", "switch", "match", "catch", "return",
                          "new", "clone", "declare"})


def _docblock_annotations(source: str, offset: int) -> list[str]:
    """``#[Attr]`` lines and ``@annotations`` from the docblock directly above ``offset``."""
    head = source[:offset].rstrip()
    line_start = source.rfind("\n", 0, offset) + 1
    found = re.findall(r"#\[[^\]]+\]", source[line_start:offset])
    if head.endswith("*/"):
        block_start = head.rfind("/**")
        if block_start != -1:
            for line in head[block_start:].splitlines():
                stripped = line.strip().lstrip("/*").strip()
                if stripped.startswith("@"):
                    found.append(stripped)
            head = head[:block_start].rstrip()
    for line in reversed(head.splitlines()[-5:]):
        stripped = line.strip()
        if stripped.startswith("#["):
            found.insert(0, stripped)
        else:
            break
    return found


class PhpRegexExtractor(BaseRegexExtractor):
    language = "php"
    call_keywords = PHP_KEYWORDS

    def preprocess(self, source: str, keep_strings: bool = False) -> str:
        # "#[" opens an attribute, not a comment
        code = strip_comments_and_strings(source, line_comments=("//",), quotes="\"'", keep_strings=keep_strings)
        return re.sub(r"#(?!\[)[^\n]*", lambda m: " " * len(m.group(0)), code)

    def parse_parameters(self, params: str) -> list[ParameterInfo]:
        parsed = []
        for raw in split_parameters(params):
            raw = re.sub(r"#\[[^\]]*\]\s*", "", raw)
            raw = re.sub(r"^(?:(?:public|private|protected|readonly)\s+)+", "", raw.strip())
            head, _, default = raw.partition("=")
            match = re.search(r"(\.\.\.)?\s*&?\$(\w+)", head)
            if not match:
                continue
            type_text = head[: match.start()].strip() or None
            parsed.append(ParameterInfo(
                name=match.group(2),
                type=type_text,
                has_default=bool(default.strip()),
                is_rest=bool(match.group(1)),
            ))
        return parsed

    def extract_classes(self, code, source):
        classes = []
        for match in _CLASS.finditer(code):
            bases = [b for b in [match.group(4)] if b]
            bases += [b.strip() for b in (match.group(5) or "").split(",") if b.strip()]
            classes.append(ClassExtraction(
                name=match.group(3),
                start_line=line_of_offset(code, match.start(3)),
                end_line=line_of_offset(code, find_block_end(code, match.end() - 1)),
                base_classes=bases,
                decorators=_docblock_annotations(source, match.start()),
                is_exported=True,
            ))
        return classes

    def extract_functions(self, code, source, classes):
        functions = []
        for match in _FUNCTION.finditer(code):
            name = match.group(2)
            line = line_of_offset(code, match.start(2))
            end_offset = find_block_end(code, match.end() - 1)
            modifiers = match.group(1) or ""
            functions.append(FunctionExtraction(
                name=name,
                qualified_name=name,
                start_line=line,
                end_line=max(line, line_of_offset(code, end_offset)),
                parameters=self.parse_parameters(match.group(3)),
                return_type=match.group(4),
                is_exported="private" not in modifiers and "protected" not in modifiers,
                decorators=_docblock_annotations(source, match.start()),
            ))
        functions = self.nest(functions, classes)
        for func in functions:
            if func.is_method:
                func.is_constructor = func.name == "__construct"
        return functions

    def extract_imports(self, code, source):
        imports = []
        for match in _USE.finditer(code):
            path = match.group(1).lstrip("\\")
            last = path.rsplit("\\", 1)[-1]
            imports.append(ImportExtraction(
                source=path,
                line=line_of_offset(code, match.start()),
                names=[ImportedName(imported=last, local=match.group(2) or last)],
            ))
        return imports
