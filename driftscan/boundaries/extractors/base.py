"""Shared contract and helpers for data-access extractors.

Every extractor implements ``extract(source, file_path) -> DataAccessExtraction``
for one (language, framework) pair. Extractors are stateless; the registry
in ``driftscan.boundaries.extractors`` instantiates them once and reuses them
across worker threads.
"""

import re
from abc import ABC, abstractmethod

from driftscan.ast_extractors.base import detect_language, line_of_offset
from driftscan.ast_extractors.regex import get_regex_extractor
from driftscan.boundaries.extractors.syntax import SyntaxIndex, build_syntax_index
from driftscan.boundaries.sensitivity import find_marker
from driftscan.boundaries.table_names import default_table_name, default_validator
from driftscan.boundaries.types import WHOLE_ROW, DataAccessExtraction, DataAccessPoint, ExtractedField

# Confidence of a site whose table comes from a declaration or explicit argument
ORM_CONFIDENCE = 0.9
# Table inferred from a receiver or variable name
INFERRED_CONFIDENCE = 0.7
# Generic "table.field" accessor strings
GENERIC_CONFIDENCE = 0.6

READ_METHODS = frozenset({
    # supabase / drizzle / knex
    "select", "single", "maybesingle", "selectdistinct", "first", "pluck",
    # prisma
    "findunique", "findfirst", "findmany", "finduniqueorthrow", "findfirstorthrow", "count", "aggregate", "groupby",
    # django / sqlalchemy
    "get", "filter", "exclude", "all", "last", "values", "values_list", "annotate", "exists",
    "query", "filter_by", "one", "one_or_none", "scalar", "scalars", "get_object_or_404",
    # typeorm / sequelize
    "find", "findone", "findoneby", "findby", "findandcount", "findoneorfail", "findall", "findbypk",
    "findandcountall", "max", "min", "sum", "avg",
    # spring data / jpa
    "findbyid", "findallbyid", "getreferencebyid", "getone", "existsbyid",
    # entity framework / linq
    "where", "firstordefault", "firstordefaultasync", "singleordefault", "singleordefaultasync",
    "tolist", "tolistasync", "findasync", "any", "anyasync", "countasync", "include",
    # eloquent
    "paginate", "firstorfail", "findorfail", "latest", "oldest",
})

WRITE_METHODS = frozenset({
    "insert", "update", "upsert", "create", "createmany", "updatemany", "save", "bulk_create",
    "bulk_update", "get_or_create", "update_or_create", "add", "add_all", "merge", "bulkcreate",
    "findorcreate", "saveall", "saveandflush", "persist", "addasync", "addrange", "addrangeasync",
    "savechanges", "savechangesasync", "firstorcreate", "updateorcreate", "fill", "increment", "decrement",
    "insertgetid", "updateorinsert",
})

DELETE_METHODS = frozenset({
    "delete", "deletemany", "destroy", "remove", "softdelete", "softremove", "del", "truncate",
    "deletebyid", "deleteall", "deleteallbyid", "removerange", "forcedelete", "executedelete",
})

_READ_PREFIX = re.compile(r"^(get|find|fetch|load|read|select|query|search|list|count|exists)")
_WRITE_PREFIX = re.compile(r"^(create|insert|add|save|update|upsert|put|set|write|store|merge)")
_DELETE_PREFIX = re.compile(r"^(delete|remove|destroy|drop|truncate|clear)")


def detect_operation(method: str, use_prefixes: bool = True) -> str | None:
    """read/write/delete for an ORM or repository method name, None if it names no access."""
    lower = method.lower()
    if lower in DELETE_METHODS:
        return "delete"
    if lower in WRITE_METHODS:
        return "write"
    if lower in READ_METHODS:
        return "read"
    if not use_prefixes:
        return None
    if _DELETE_PREFIX.match(lower):
        return "delete"
    if _WRITE_PREFIX.match(lower):
        return "write"
    if _READ_PREFIX.match(lower):
        return "read"
    return None


def fields_from_string(text: str) -> list[str]:
    """Column names from ``'a, b'``, ``['a', 'b']`` or ``{a: true}`` style selections."""
    cleaned = re.sub(r"[\"'`\[\]{}()]", " ", text)
    fields = []
    for part in re.split(r"\s*,\s*", cleaned):
        part = part.strip()
        if not part or part == WHOLE_ROW:
            continue
        match = re.match(r"(?:\w+\.)?(\w+)", part)
        if match and match.group(1) not in fields and match.group(1) not in ("true", "false", "True", "False"):
            fields.append(match.group(1))
    return fields


def balanced_end(code: str, open_at: int) -> int:
    """Offset just past the bracket closing ``code[open_at]``; end of text if unbalanced."""
    pairs = {"(": ")", "[": "]", "{": "}"}
    opener = code[open_at]
    closer = pairs[opener]
    depth = 0
    for i in range(open_at, len(code)):
        if code[i] == opener:
            depth += 1
        elif code[i] == closer:
            depth -= 1
            if depth == 0:
                return i + 1
    return len(code)


def statement_tail(code: str, start: int, limit: int = 600) -> str:
    """Text from ``start`` up to the end of the statement (``;`` or a blank line)."""
    window = code[start:start + limit]
    ends = [i for i in (window.find(";"), window.find("\n\n")) if i != -1]
    return window[: min(ends)] if ends else window


def infer_table(name: str) -> str:
    """Table for a receiver such as ``userRepository``, ``UserModel`` or ``_users``."""
    return default_table_name(name.strip().lstrip("_$"))


class BaseDataAccessExtractor(ABC):
    """One (language, framework) data-access convention."""

    languages: tuple[str, ...] = ()
    framework: str = "unknown"
    # Site patterns are confirmed against a SyntaxIndex of the file
    uses_syntax_index: bool = False

    @abstractmethod
    def extract(self, source: str, file_path: str) -> DataAccessExtraction:
        pass

    def new_result(self, file_path: str, language: str | None = None) -> DataAccessExtraction:
        return DataAccessExtraction(file=file_path, language=language or (self.languages or ("unknown",))[0])

    def syntax_index(self, source: str, file_path: str, index: SyntaxIndex | None = None) -> SyntaxIndex:
        """``index`` when the caller already built one, else a fresh index of ``source``."""
        if index is not None:
            return index
        return build_syntax_index(source, file_path, detect_language(file_path) or self.languages[0])

    @staticmethod
    def preprocess(source: str, language: str) -> str:
        """Comments blanked, strings kept, offsets preserved."""
        extractor = get_regex_extractor(language)
        if extractor is None:
            return source
        return extractor.preprocess(source, keep_strings=True)

    def make_point(self, file_path: str, code: str, offset: int, table: str, operation: str,
                   fields: list[str] | None = None, confidence: float = ORM_CONFIDENCE,
                   model: str | None = None, validate: bool = False, **extra) -> DataAccessPoint | None:
        """Access point at ``offset`` of ``code``; None when a heuristic table name is rejected."""
        line_start = code.rfind("\n", 0, offset) + 1
        line_end = code.find("\n", offset)
        context = code[line_start: line_end if line_end != -1 else len(code)]
        return self.point_at(file_path, line_of_offset(code, offset), offset - line_start, context, table,
                             operation, fields, confidence, model, validate, **extra)

    def point_at(self, file_path: str, line: int, column: int, context: str, table: str, operation: str,
                 fields: list[str] | None = None, confidence: float = ORM_CONFIDENCE,
                 model: str | None = None, validate: bool = False, **extra) -> DataAccessPoint | None:
        if validate:
            check = default_validator.validate(table)
            if not check.is_valid:
                return None
            confidence *= check.multiplier
        context = context.strip()
        return DataAccessPoint(
            file=file_path,
            line=line,
            column=column,
            table=table,
            operation=operation,
            framework=self.framework,
            fields=list(fields) if fields else [WHOLE_ROW],
            confidence=round(confidence, 4),
            context=context[:200],
            model=model,
            **extra,
        )

    def make_field(self, lines: list[str], line: int, table: str, name: str, file_path: str,
                   model: str | None = None, declared_type: str | None = None) -> ExtractedField:
        """Field declared at 1-based ``line``, with any explicit sensitivity marker attached to it."""
        marker = find_marker(lines, line - 1)
        return ExtractedField(
            table=table,
            name=name,
            file=file_path,
            line=line,
            model=model,
            declared_type=declared_type,
            marker_tier=marker[0] if marker else None,
            marker_source=marker[1] if marker else None,
            framework=self.framework,
        )
