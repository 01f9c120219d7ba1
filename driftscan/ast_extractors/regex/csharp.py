"""Pattern extraction for C#."""

import re

from driftscan.ast_extractors.base import (
    ClassExtraction,
    FunctionExtraction,
    ImportedName,
    ImportExtraction,
    ParameterInfo,
    line_of_offset,
)
from driftscan.ast_extractors.regex.base import BaseRegexExtractor, find_block_end, strip_comments_and_strings
from driftscan.ast_extractors.regex.java import annotations_above, parse_typed_parameters

_MODIFIERS = r"(?:public|private|protected|internal|static|virtual|override|abstract|sealed|async|partial|new|extern|unsafe|readonly)"
_CLASS = re.compile(
    rf"((?:{_MODIFIERS}\s+)*)(class|interface|struct|record)\s+(\w+)(?:\s*<[^>{{]*>)?(?:\s*\([^)]*\))?(?:\s*:\s*([^{{]+?))?\s*(?:where\s+[^{{]+)?\{{"
)
_METHOD = re.compile(
    rf"^[ \t]*((?:{_MODIFIERS}\s+)+)([\w.<>\[\],? ()]+?)\s+(\w+)\s*(?:<[^>]+>)?\s*\(([^)]*)\)\s*(?:where\s+[^{{;=]+)?\s*(\{{|=>|;)",
    re.MULTILINE,
)
_CONSTRUCTOR = re.compile(
    r"^[ \t]*((?:(?:public|private|protected|internal|static)\s+)*)(\w+)\s*\(([^)]*)\)\s*(?::\s*(?:base|this)\s*\([^)]*\))?\s*\{",
    re.MULTILINE,
)
_ATTRIBUTE = re.compile(r"^[ \t]*(\[[^\]]+\])\s*$", re.MULTILINE)
_USING = re.compile(r"^[ \t]*(?:global\s+)?using\s+(?:static\s+)?(?:(\w+)\s*=\s*)?([\w.]+)\s*;", re.MULTILINE)


class CSharpRegexExtractor(BaseRegexExtractor):
    language = "csharp"

    def preprocess(self, source: str, keep_strings: bool = False) -> str:
        return strip_comments_and_strings(source, quotes="\"'", keep_strings=keep_strings)

    def parse_parameters(self, params: str) -> list[ParameterInfo]:
        return parse_typed_parameters(params)

    def extract_classes(self, code, source):
        classes = []
        for match in _CLASS.finditer(code):
            start = line_of_offset(code, match.start(3))
            classes.append(ClassExtraction(
                name=match.group(3),
                start_line=start,
                end_line=line_of_offset(code, find_block_end(code, match.end() - 1)),
                base_classes=[b.strip() for b in (match.group(4) or "").split(",") if b.strip()],
                decorators=annotations_above(code, match.start(), _ATTRIBUTE),
                is_exported="public" in (match.group(1) or ""),
            ))
        return classes

    def extract_functions(self, code, source, classes):
        functions = []
        taken = set()
        for match in _METHOD.finditer(code):
            name = match.group(3)
            return_type = match.group(2).strip()
            if return_type in ("class", "interface", "struct", "record", "new", "return"):
                continue
            line = line_of_offset(code, match.start(3))
            if match.group(5) == "{":
                end = line_of_offset(code, find_block_end(code, match.end() - 1))
            elif match.group(5) == "=>":
                end = line_of_offset(code, code.find(";", match.end()) if ";" in code[match.end():] else len(code) - 1)
            else:
                end = line
            modifiers = match.group(1) or ""
            taken.add((line, name))
            functions.append(FunctionExtraction(
                name=name,
                qualified_name=name,
                start_line=line,
                end_line=max(line, end),
                parameters=self.parse_parameters(match.group(4)),
                return_type=return_type,
                is_exported="public" in modifiers,
                is_async="async" in modifiers,
                decorators=annotations_above(code, match.start() + len(match.group(0)) - len(match.group(0).lstrip()), _ATTRIBUTE),
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
                decorators=annotations_above(code, match.start(2), _ATTRIBUTE),
            ))
        return self.nest(functions, classes)

    def extract_imports(self, code, source):
        imports = []
        for match in _USING.finditer(code):
            namespace = match.group(2)
            local = match.group(1) or namespace.rsplit(".", 1)[-1]
            imports.append(ImportExtraction(
                source=namespace,
                line=line_of_offset(code, match.start()),
                names=[ImportedName(imported="*", local=local, is_namespace=True)],
            ))
        return imports
