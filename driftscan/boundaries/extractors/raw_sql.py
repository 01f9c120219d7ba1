"""Raw SQL embedded in string literals, for every language.

String literals that look like DML are parsed with sqlparse; each referenced
table yields one access point carrying the columns the statement reads or
writes. Interpolated table names (``${table}``, ``{table}``) are dynamic and
skipped.
"""

import re

import sqlparse
from sqlparse import tokens as T
from sqlparse.exceptions import SQLParseError

from driftscan.ast_extractors.base import line_of_offset
from driftscan.boundaries.extractors.base import BaseDataAccessExtractor
from driftscan.boundaries.types import WHOLE_ROW
from driftscan.utils.logging import logger

RAW_SQL_CONFIDENCE = 0.85
DYNAMIC = "__dynamic__"

_STRING_LITERAL = re.compile(
    r'"""(?P<tdq>[\s\S]*?)"""'
    r"|'''(?P<tsq>[\s\S]*?)'''"
    r"|`(?P<bt>[^`]*)`"
    r'|@"(?P<verb>(?:[^"]|"")*)"'
    r'|"(?P<dq>(?:[^"\\\n]|\\.)*)"'
    r"|'(?P<sq>(?:[^'\\\n]|\\.)*)'"
)
_SQL_SHAPE = re.compile(
    r"^\s*(?:\(\s*)?(?:SELECT\b[\s\S]+?\bFROM\b|INSERT\s+(?:IGNORE\s+)?INTO\b|UPDATE\s+\S+\s+(?:\w+\s+)?SET\b"
    r"|DELETE\s+FROM\b|REPLACE\s+INTO\b|MERGE\s+INTO\b|WITH\s+(?:RECURSIVE\s+)?\w+\s+AS\s*\()",
    re.IGNORECASE,
)
_INTERPOLATION = re.compile(r"\$\{[^}]*\}|#\{[^}]*\}|\{[^{}]*\}")

OPERATIONS = {
    "SELECT": "read",
    "INSERT": "write",
    "UPDATE": "write",
    "REPLACE": "write",
    "MERGE": "write",
    "UPSERT": "write",
    "DELETE": "delete",
}

_TABLE_KEYWORDS = {"FROM", "INTO", "UPDATE", "TABLE", "USING"}
_CLAUSE_END = {
    "WHERE", "GROUP BY", "ORDER BY", "HAVING", "LIMIT", "OFFSET", "ON", "VALUES", "RETURNING", "UNION",
    "UNION ALL", "EXCEPT", "INTERSECT", "WINDOW", "FOR", "SET", "OUTPUT", "USING",
}
# Keywords that are SQL structure, never identifiers
_STRUCTURAL = {
    "SELECT", "DISTINCT", "FROM", "AS", "AND", "OR", "NOT", "NULL", "CASE", "WHEN", "THEN", "ELSE", "END",
    "IS", "IN", "LIKE", "ILIKE", "BETWEEN", "ON", "WHERE", "ALL", "TOP", "ASC", "DESC", "OVER", "PARTITION BY",
    "INTO", "VALUES", "SET", "UPDATE", "DELETE", "INSERT", "TABLE", "EXISTS", "ANY", "TRUE", "FALSE",
    "INTERVAL", "CAST", "DEFAULT", "RETURNING", "LIMIT", "OFFSET", "WITH", "RECURSIVE", "IGNORE", "ONLY",
    "LATERAL", "NATURAL", "OUTER", "INNER", "LEFT", "RIGHT", "FULL", "CROSS",
} | _CLAUSE_END


def _is_identifier(token) -> bool:
    """Names, quoted names, and keywords sqlparse lexes for common column words (name, user, password)."""
    if token.ttype in T.Name or token.ttype in T.String.Symbol:
        return True
    return token.ttype in T.Keyword and token.normalized not in _STRUCTURAL and not token.normalized.endswith("JOIN")


def _clean(value: str) -> str:
    return value.strip("\"'`[]")


class _StatementWalker:
    """Tables, aliases and (qualifier, column) references of one statement."""

    def __init__(self, statement):
        self.tokens = [t for t in statement.flatten() if not t.is_whitespace and t.ttype not in T.Comment]
        self.tables: list[str] = []
        self.aliases: dict[str, str] = {}
        self.columns: list[tuple[str | None, str]] = []
        self.whole_row: set[str | None] = set()

    def walk(self) -> None:
        mode = None
        depth = 0
        i = 0
        tokens = self.tokens
        while i < len(tokens):
            tok = tokens[i]
            value = tok.normalized if tok.ttype in T.Keyword else tok.value
            if tok.ttype in T.Punctuation and tok.value == "(":
                depth += 1
            elif tok.ttype in T.Punctuation and tok.value == ")":
                depth -= 1
                if mode == "insert_cols" and depth == 0:
                    mode = None
            elif tok.ttype in T.Keyword.DML and value == "SELECT":
                mode, depth = "select", 0
            elif tok.ttype in T.Keyword and (value in _TABLE_KEYWORDS or value.endswith("JOIN")):
                i = self._read_tables(i + 1, value)
                mode = "insert_cols" if value == "INTO" else ("set" if value == "UPDATE" else None)
                depth = 0
                continue
            elif tok.ttype in T.Keyword and value in _CLAUSE_END:
                mode = "set" if value == "SET" else None
            elif mode == "select":
                i = self._select_item(i, depth)
                continue
            elif mode == "insert_cols" and depth == 1 and _is_identifier(tok):
                self.columns.append((None, _clean(tok.value)))
            elif mode == "set" and _is_identifier(tok):
                nxt = tokens[i + 1] if i + 1 < len(tokens) else None
                if nxt is not None and nxt.ttype in T.Operator.Comparison and nxt.value == "=":
                    self.columns.append((None, _clean(tok.value)))
            i += 1

    def _select_item(self, i: int, depth: int) -> int:
        tokens = self.tokens
        tok = tokens[i]
        nxt = tokens[i + 1] if i + 1 < len(tokens) else None
        if tok.ttype in T.Wildcard and depth == 0:
            self.whole_row.add(None)
            return i + 1
        if tok.ttype in T.Keyword and tok.normalized == "AS":
            # Alias name follows
            return i + 2
        if not _is_identifier(tok):
            return i + 1
        if nxt is not None and nxt.ttype in T.Punctuation and nxt.value == "(":
            # Function call name
            return i + 1
        if nxt is not None and nxt.ttype in T.Punctuation and nxt.value == ".":
            after = tokens[i + 2] if i + 2 < len(tokens) else None
            if after is not None and after.ttype in T.Wildcard:
                self.whole_row.add(_clean(tok.value))
                return i + 3
            if after is not None and _is_identifier(after):
                self.columns.append((_clean(tok.value), _clean(after.value)))
                return i + 3
            return i + 2
        self.columns.append((None, _clean(tok.value)))
        return i + 1

    def _read_tables(self, i: int, keyword: str) -> int:
        """Consume ``a.b alias, c AS d`` after a table keyword; returns the next index."""
        tokens = self.tokens
        while i < len(tokens):
            tok = tokens[i]
            if tok.ttype in T.Punctuation and tok.value == "(":
                return i
            if not _is_identifier(tok) and tok.ttype not in T.Literal.String.Single:
                return i
            name = _clean(tok.value)
            i += 1
            while i + 1 < len(tokens) and tokens[i].value == "." and _is_identifier(tokens[i + 1]):
                name = _clean(tokens[i + 1].value)
                i += 2
            self.tables.append(name)
            if i < len(tokens) and tokens[i].ttype in T.Keyword and tokens[i].normalized == "AS":
                i += 1
            if keyword != "INTO" and i < len(tokens) and _is_identifier(tokens[i]):
                self.aliases[_clean(tokens[i].value)] = name
                i += 1
            if i < len(tokens) and tokens[i].ttype in T.Punctuation and tokens[i].value == "," and keyword == "FROM":
                i += 1
                continue
            return i
        return i

    def fields_by_table(self, operation: str) -> dict[str, list[str]]:
        result: dict[str, list[str]] = {table: [] for table in self.tables}
        if not self.tables:
            return result
        primary = self.tables[0]
        whole = set()
        for qualifier in self.whole_row:
            whole.add(self.aliases.get(qualifier, qualifier) if qualifier else None)
        for qualifier, column in self.columns:
            if qualifier is None and column in self.aliases:
                # "SELECT u FROM User u" selects the entity
                whole.add(self.aliases[column])
                continue
            table = self.aliases.get(qualifier, qualifier) if qualifier else primary
            if table in result and column not in result[table]:
                result[table].append(column)
        for table in result:
            if operation == "delete" or table in whole or (None in whole and table == primary):
                result[table] = [WHOLE_ROW]
        return result


def parse_sql(sql: str) -> list[tuple[str, dict[str, list[str]]]]:
    """(operation, {table: columns}) per statement in ``sql``."""
    statements = []
    for statement in sqlparse.parse(_INTERPOLATION.sub(DYNAMIC, sql)):
        kind = statement.get_type()
        operation = OPERATIONS.get(kind, "raw-sql")
        walker = _StatementWalker(statement)
        walker.walk()
        tables = walker.fields_by_table(operation)
        if tables:
            statements.append((operation, tables))
    return statements


class RawSqlExtractor(BaseDataAccessExtractor):
    languages = ("python", "typescript", "javascript", "java", "csharp", "php")
    framework = "raw-sql"

    def extract(self, source, file_path, language: str | None = None):
        result = self.new_result(file_path, language)
        code = self.preprocess(source, language) if language else source
        for match in _STRING_LITERAL.finditer(code):
            literal = next((group for group in match.groups() if group is not None), "")
            if not _SQL_SHAPE.match(literal):
                continue
            try:
                statements = parse_sql(literal)
            except SQLParseError as e:
                result.errors.append(f"raw-sql: {e}")
                logger.debug(f"[EXTRACT] Unparseable SQL in {file_path}:{line_of_offset(code, match.start())}")
                continue
            for operation, tables in statements:
                for table, fields in tables.items():
                    if not table or DYNAMIC in table:
                        continue
                    point = self.make_point(file_path, code, match.start(), table, operation, fields,
                                            RAW_SQL_CONFIDENCE, validate=True, is_raw_sql=True)
                    if point:
                        result.access_points.append(point)
        return result
