"""Pattern extraction for TypeScript and JavaScript."""

import re

from driftscan.ast_extractors.base import (
    ClassExtraction,
    FunctionExtraction,
    ImportedName,
    ImportExtraction,
    line_of_offset,
)
from driftscan.ast_extractors.regex.base import (
    BaseRegexExtractor,
    find_block_end,
    strip_comments_and_strings,
)

_FUNCTION_DECL = re.compile(
    r"(export\s+(?:default\s+)?)?(async\s+)?function\s*\*?\s*([A-Za-z_$][\w$]*)\s*(?:<[^>]*>)?\s*\(([^)]*)\)\s*(?::\s*([^{]+?))?\s*\{"
)
_ARROW = re.compile(
    r"(export\s+)?(?:const|let|var)\s+([A-Za-z_$][\w$]*)\s*(?::\s*[^=]+)?=\s*(async\s+)?(?:function\s*\(([^)]*)\)|\(([^)]*)\)\s*(?::\s*[^=]+?)?\s*=>|([A-Za-z_$][\w$]*)\s*=>)"
)
_CLASS = re.compile(
    r"(export\s+(?:default\s+)?)?(?:abstract\s+)?class\s+([A-Za-z_$][\w$]*)(?:\s*<[^>]*>)?(?:\s+extends\s+([\w$.]+))?(?:\s+implements\s+([^{]+))?\s*\{"
)
_METHOD = re.compile(
    r"^[ \t]*((?:(?:public|private|protected|static|async|readonly|override|abstract|get|set)\s+)*)\*?\s*(#?[A-Za-z_$][\w$]*)\s*(?:<[^>]*>)?\s*\(([^)]*)\)\s*(?::\s*([^{;]+?))?\s*\{",
    re.MULTILINE,
)
_DECORATOR = re.compile(r"^[ \t]*(@[\w$.]+(?:\([^)]*\))?)", re.MULTILINE)
_NAMED_IMPORT = re.compile(r"import\s+(type\s+)?(?:([\w$]+)\s*,\s*)?\{([^}]*)\}\s*from\s*['\"]([^'\"]+)['\"]")
_DEFAULT_IMPORT = re.compile(r"import\s+(type\s+)?([\w$]+)\s+from\s*['\"]([^'\"]+)['\"]")
_NAMESPACE_IMPORT = re.compile(r"import\s+\*\s+as\s+([\w$]+)\s+from\s*['\"]([^'\"]+)['\"]")
_REQUIRE = re.compile(r"(?:const|let|var)\s+([\w$]+)\s*=\s*require\(\s*['\"]([^'\"]+)['\"]\s*\)")

_NOT_METHODS = frozenset({"if", "for", "while", "switch", "catch", "function", "return", "with", "constructor_"})


def _decorators_above(code: str, offset: int) -> list[str]:
    found = []
    line_start = code.rfind("\n", 0, offset) + 1
    while line_start > 0:
        prev_start = code.rfind("\n", 0, line_start - 1) + 1
        line = code[prev_start:line_start - 1]
        match = _DECORATOR.match(line)
        if match:
            found.append(match.group(1))
        elif line.strip():
            break
        line_start = prev_start
    return list(reversed(found))


class TypeScriptRegexExtractor(BaseRegexExtractor):
    language = "typescript"

    def preprocess(self, source: str, keep_strings: bool = False) -> str:
        return strip_comments_and_strings(source, keep_strings=keep_strings)

    def extract_classes(self, code, source):
        classes = []
        for match in _CLASS.finditer(code):
            start = line_of_offset(code, match.start(2))
            end = line_of_offset(code, find_block_end(code, match.end() - 1))
            bases = [b for b in [match.group(3)] if b]
            bases += [b.strip() for b in (match.group(4) or "").split(",") if b.strip()]
            classes.append(ClassExtraction(
                name=match.group(2),
                start_line=start,
                end_line=end,
                base_classes=bases,
                decorators=_decorators_above(code, match.start()),
                is_exported=bool(match.group(1)),
            ))
        return classes

    def extract_functions(self, code, source, classes):
        functions: list[FunctionExtraction] = []
        taken: set[tuple[int, str]] = set()

        def add(name, offset, body_from, params, return_type=None, exported=False, is_async=False):
            start = line_of_offset(code, offset)
            if (start, name) in taken:
                return
            taken.add((start, name))
            end_offset = find_block_end(code, body_from)
            end = line_of_offset(code, end_offset) if end_offset > body_from else _expression_end(code, start)
            functions.append(FunctionExtraction(
                name=name,
                qualified_name=name,
                start_line=start,
                end_line=max(end, start),
                parameters=self.parse_parameters(params or ""),
                return_type=(return_type or "").strip() or None,
                is_exported=exported,
                is_async=is_async,
                decorators=_decorators_above(code, offset),
            ))

        for match in _FUNCTION_DECL.finditer(code):
            add(match.group(3), match.start(3), match.end() - 1, match.group(4), match.group(5),
                exported=bool(match.group(1)), is_async=bool(match.group(2)))

        for match in _ARROW.finditer(code):
            params = match.group(4) if match.group(4) is not None else match.group(5)
            if params is None:
                params = match.group(6)
            add(match.group(2), match.start(2), match.end(), params,
                exported=bool(match.group(1)), is_async=bool(match.group(3)))

        for match in _METHOD.finditer(code):
            name = match.group(2)
            line = line_of_offset(code, match.start(2))
            if name in _NOT_METHODS or self.owner_class(classes, line) is None:
                continue
            if any(c.start_line == line for c in classes):
                continue
            modifiers = match.group(1) or ""
            add(name, match.start(2), match.end() - 1, match.group(3), match.group(4),
                exported="private" not in modifiers and "protected" not in modifiers and not name.startswith("#"),
                is_async="async" in modifiers)

        functions = self.nest(functions, classes)
        for func in functions:
            if func.is_method:
                func.is_constructor = func.name == "constructor"
        return functions

    def extract_imports(self, code, source):
        imports = []
        for match in _NAMED_IMPORT.finditer(code):
            names = []
            if match.group(2):
                names.append(ImportedName(imported="default", local=match.group(2), is_default=True))
            for part in match.group(3).split(","):
                part = part.strip()
                if part.startswith("type "):
                    part = part[5:].strip()
                if not part:
                    continue
                imported, _, alias = part.partition(" as ")
                names.append(ImportedName(imported=imported.strip(), local=(alias or imported).strip()))
            imports.append(ImportExtraction(source=match.group(4), line=line_of_offset(code, match.start()),
                                            names=names, is_type_only=bool(match.group(1))))
        for match in _DEFAULT_IMPORT.finditer(code):
            imports.append(ImportExtraction(
                source=match.group(3),
                line=line_of_offset(code, match.start()),
                names=[ImportedName(imported="default", local=match.group(2), is_default=True)],
                is_type_only=bool(match.group(1)),
            ))
        for match in _NAMESPACE_IMPORT.finditer(code):
            imports.append(ImportExtraction(
                source=match.group(2),
                line=line_of_offset(code, match.start()),
                names=[ImportedName(imported="*", local=match.group(1), is_namespace=True)],
            ))
        for match in _REQUIRE.finditer(code):
            imports.append(ImportExtraction(
                source=match.group(2),
                line=line_of_offset(code, match.start()),
                names=[ImportedName(imported="*", local=match.group(1), is_namespace=True)],
            ))
        return imports

    def extract_calls(self, code, functions):
        calls = super().extract_calls(code, functions)
        return [c for c in calls if not (c.callee_name == "require" and c.receiver is None)]


def _expression_end(code: str, start_line: int) -> int:
    """End line for an expression-bodied arrow: the statement's terminating line."""
    lines = code.split("\n")
    depth = 0
    for index in range(start_line - 1, len(lines)):
        for ch in lines[index]:
            if ch in "([{":
                depth += 1
            elif ch in ")]}":
                depth -= 1
        stripped = lines[index].rstrip()
        if depth <= 0 and (stripped.endswith(";") or index + 1 == len(lines)
                           or not lines[index + 1].strip() or depth < 0):
            return index + 1
    return len(lines)


class JavaScriptRegexExtractor(TypeScriptRegexExtractor):
    language = "javascript"
