"""Table name validation and model-to-table naming.

Filters false-positive table names produced by heuristic extraction
(receiver names, string literals, comments) in three layers:

1. Structure: length, characters, placeholder and variable-shaped names
2. Semantics: common words, SQL reserved words, programming keywords
3. Scoring: a confidence multiplier for names that look table-like or not
"""

import re
from dataclasses import dataclass

COMMON_WORDS = frozenset({
    "a", "an", "the", "in", "on", "at", "to", "for", "of", "by", "with", "from", "as",
    "and", "or", "but", "if", "then", "else", "when", "while",
    "it", "this", "that", "these", "those", "he", "she", "we", "they",
    "is", "are", "was", "were", "be", "been", "being", "have", "has", "had",
    "do", "does", "did", "will", "would", "could", "should", "may", "might",
    "can", "get", "set", "put", "add", "new", "old",
    "all", "any", "some", "no", "not", "only", "own", "same", "so", "than",
    "too", "very", "just", "also", "now", "here", "there", "where", "how",
    "what", "which", "who", "whom", "why",
    "data", "info", "item", "items", "thing", "things", "stuff", "value",
    "values", "result", "results", "response", "request", "error", "errors",
    "message", "messages", "text", "string", "number", "numbers", "list",
    "array", "object", "objects", "key", "keys", "name", "names", "type",
    "types", "class", "function", "method", "property", "field", "fields",
    "unknown", "undefined", "null", "none", "default", "module", "router",
    "status", "state", "context", "config", "options", "params", "args",
    "body", "query", "path", "url", "uri", "id", "ids", "uuid", "record",
    "records", "row", "rows", "column", "columns", "entry", "entries",
    "self", "cls", "super", "parent", "child", "children",
    "time", "date", "day", "days", "week", "month", "year", "hour", "minute",
    "second", "timestamp", "datetime", "duration", "interval", "period",
    "next", "prev", "previous", "current", "first", "last", "start", "end",
    "begin", "finish", "done", "complete", "pending", "active", "inactive",
    "enabled", "disabled", "visible", "hidden", "open", "closed", "locked",
    "unlocked", "valid", "invalid", "success", "failed", "failure",
    "cache", "lock", "mutex", "semaphore", "queue", "stack", "buffer",
    "stream", "pipe", "channel", "socket", "connection", "session",
    "client", "server", "host", "port", "endpoint", "service", "handler",
    "listener", "observer", "subscriber", "publisher", "producer", "consumer",
    "worker", "job", "task", "process", "thread", "pool", "executor",
    "exception", "traceback", "stacktrace", "cause", "reason", "detail",
    "input", "output", "source", "target", "destination", "origin",
    "payload", "content", "contents", "format", "encoding", "charset",
    "length", "size", "count", "total", "sum", "avg", "min", "max",
    "index", "offset", "limit", "page", "cursor", "iterator", "generator",
    "component", "element", "node", "widget", "view", "layout", "container",
    "wrapper", "inner", "outer", "header", "footer", "sidebar",
    "modal", "dialog", "popup", "tooltip", "dropdown", "menu", "tab", "panel",
    "form", "button", "link", "icon", "image", "label", "badge", "tag",
    "insert", "update", "delete", "select", "create", "read", "write",
    "fetch", "load", "save", "store", "remove", "clear", "reset", "init",
    "setup", "teardown", "cleanup", "dispose", "destroy", "close",
    "metadata", "meta", "settings", "preferences", "configuration",
    "your", "my", "our", "their", "its",
    "mapper", "matcher", "parser", "formatter", "converter", "transformer",
    "validator", "sanitizer", "encoder", "decoder", "serializer", "deserializer",
    "pay", "run", "log", "err", "msg", "req", "res", "ctx", "env", "app",
    "db", "api", "sql", "orm", "dto", "dao", "svc", "mgr", "cfg", "opt",
    "objects", "manager", "model", "models", "repository", "repo", "conn", "cur", "cursor",
})

SQL_RESERVED = frozenset({
    "select", "from", "where", "insert", "update", "delete", "create", "drop",
    "alter", "table", "index", "view", "database", "schema", "grant", "revoke",
    "commit", "rollback", "transaction", "begin", "end", "declare", "cursor",
    "fetch", "open", "close", "null", "true", "false", "and", "or", "not",
    "in", "between", "like", "is", "exists", "case", "when", "then", "else",
    "join", "inner", "outer", "left", "right", "full", "cross", "on", "using",
    "group", "order", "by", "having", "limit", "offset", "union", "intersect",
    "except", "distinct", "all", "as", "asc", "desc", "primary", "foreign",
    "key", "references", "constraint", "unique", "check", "default", "auto",
    "increment", "serial", "identity", "sequence", "trigger", "procedure",
    "function", "return", "returns", "set", "get", "into", "values", "dual",
})

PROGRAMMING_KEYWORDS = frozenset({
    "const", "let", "var", "function", "class", "interface", "type", "enum",
    "import", "export", "default", "async", "await", "return", "throw", "try",
    "catch", "finally", "if", "else", "switch", "case", "break", "continue",
    "for", "while", "do", "new", "this", "super", "extends", "implements",
    "static", "public", "private", "protected", "readonly", "abstract",
    "undefined", "null", "true", "false", "void", "never", "any", "unknown",
    "def", "elif", "with", "yield", "raise", "pass", "lambda", "none",
    "self", "cls", "global", "nonlocal", "assert", "del",
    "router", "controller", "service", "repository", "model", "entity",
    "component", "module", "provider", "factory", "builder", "handler",
    "middleware", "interceptor", "guard", "pipe", "filter", "decorator",
    "validator", "transformer", "serializer", "deserializer", "mapper",
})

FALSE_POSITIVE_PATTERNS = [
    re.compile(r"^\d+$"),
    re.compile(r"^[a-z]$"),
    re.compile(r"^\d"),
    re.compile(r"^[^a-zA-Z0-9]+$"),
    re.compile(r"^_+$"),
    re.compile(r"^(placeholder|temp|tmp|dummy|sample|example)", re.IGNORECASE),
    re.compile(r"^test_?$", re.IGNORECASE),
    re.compile(r"^(foo|bar|baz)$", re.IGNORECASE),
    re.compile(r"^xxx+$", re.IGNORECASE),
    re.compile(r"^__.*__$"),
    re.compile(r"^_[A-Z]"),
    re.compile(r"^_[a-z]+$"),
    # Variable-shaped camelCase: newCollapsedState, apiClientOptions
    re.compile(r"^[a-z]+[A-Z][a-z]+[A-Z]"),
    re.compile(r"^(new|old|current|prev|next|first|last|all|my|your|our|their)[A-Z]"),
    re.compile(r"^(get|set|is|has|can|should|will|on|handle)[A-Z]"),
    # CONSTANT_CASE
    re.compile(r"^[A-Z][A-Z_]+[A-Z]$"),
    re.compile(r"(Timeout|Interval|Handler|Callback|Listener|Observer|Promise|Future)s?$", re.IGNORECASE),
    re.compile(r"(Client|Service|Manager|Factory|Builder|Provider|Adapter|Wrapper)$", re.IGNORECASE),
    re.compile(r"(Options|Config|Settings|Params|Args|Props|State|Context)$", re.IGNORECASE),
    re.compile(r"(Response|Request|Payload|Body|Header|Query|Path)$", re.IGNORECASE),
    re.compile(r"_(text|data|info|list|map|set|dict|obj|str|num|val|ref|ptr|idx|cnt|len)$", re.IGNORECASE),
    re.compile(r"_(service|client|handler|manager|factory|builder|provider|adapter|wrapper|helper|utils?"
               r"|matcher|parser|formatter|validator|converter|transformer)$", re.IGNORECASE),
]

TABLE_LIKE_PATTERNS = [
    re.compile(r"s$"),
    re.compile(r"_[a-z]"),
    re.compile(r"table|tbl|tb_", re.IGNORECASE),
    re.compile(r"_log$|_logs$|_history$|_audit$|_archive$", re.IGNORECASE),
    re.compile(r"^app_|^sys_|^usr_|^ref_|^dim_|^fact_", re.IGNORECASE),
]


@dataclass
class TableNameValidation:
    is_valid: bool
    multiplier: float = 1.0
    reason: str | None = None
    normalized: str | None = None


class TableNameValidator:
    """Decides whether a detected name plausibly names a table."""

    def __init__(self, min_length: int = 2, max_length: int = 64, strict: bool = False,
                 blocklist: list[str] | None = None, allowlist: list[str] | None = None):
        self.min_length = min_length
        self.max_length = max_length
        self.strict = strict
        self.blocklist = {name.lower() for name in (blocklist or [])}
        self.allowlist = {name.lower() for name in (allowlist or [])}

    def validate(self, name: str) -> TableNameValidation:
        normalized = name.strip().strip("\"'`[]")
        if "." in normalized:
            # schema.table
            normalized = normalized.rsplit(".", 1)[-1]
        lower = normalized.lower()

        if lower in self.allowlist:
            return TableNameValidation(True, 1.0, normalized=normalized)
        if lower in self.blocklist:
            return TableNameValidation(False, 0.0, "in custom blocklist")
        if len(normalized) < self.min_length:
            return TableNameValidation(False, 0.0, f"too short (min: {self.min_length})")
        if len(normalized) > self.max_length:
            return TableNameValidation(False, 0.0, f"too long (max: {self.max_length})")
        if not re.fullmatch(r"[A-Za-z_][\w$]*", normalized):
            return TableNameValidation(False, 0.0, "not an identifier")
        for pattern in FALSE_POSITIVE_PATTERNS:
            if pattern.search(normalized):
                return TableNameValidation(False, 0.0, f"matches false positive pattern {pattern.pattern}")
        if lower in COMMON_WORDS:
            return TableNameValidation(False, 0.0, f"'{normalized}' is a common word")
        if self.strict and lower in SQL_RESERVED:
            return TableNameValidation(False, 0.0, f"'{normalized}' is a SQL reserved word")
        if self.strict and lower in PROGRAMMING_KEYWORDS:
            return TableNameValidation(False, 0.0, f"'{normalized}' is a programming keyword")

        return TableNameValidation(True, self._multiplier(normalized, lower), normalized=normalized)

    def _multiplier(self, name: str, lower: str) -> float:
        multiplier = 1.0
        if lower in SQL_RESERVED:
            multiplier *= 0.5
        if lower in PROGRAMMING_KEYWORDS:
            multiplier *= 0.6
        if len(name) <= 3:
            multiplier *= 0.7
        if re.fullmatch(r"[a-z][a-zA-Z]+", name) and re.search(r"[A-Z]", name):
            multiplier *= 0.8
        if any(p.search(name) for p in TABLE_LIKE_PATTERNS):
            multiplier *= 1.1
        if re.fullmatch(r"[a-z][a-z0-9]*(_[a-z0-9]+)+", name):
            multiplier *= 1.2
        return round(max(0.1, min(1.0, multiplier)), 4)

    def is_valid(self, name: str) -> bool:
        return self.validate(name).is_valid

    def filter_valid(self, names: list[str]) -> list[str]:
        return [name for name in names if self.is_valid(name)]


def to_snake_case(name: str) -> str:
    snake = re.sub(r"(?<=[a-z0-9])([A-Z])", r"_\1", name)
    snake = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", snake)
    return snake.replace("-", "_").lower()


def pluralize(word: str) -> str:
    if not word:
        return word
    if word.endswith(("ss", "sh", "ch", "x", "z")):
        return word + "es"
    if word.endswith("s"):
        return word
    if word.endswith("y") and len(word) > 1 and word[-2] not in "aeiou":
        return word[:-1] + "ies"
    return word + "s"


_MODEL_SUFFIXES = re.compile(r"(Repository|Repo|Model|Entity|Dao|DAO|Record|Table)$")


def default_table_name(model: str) -> str:
    """Conventional table for an ORM class: snake_case plural (OrderItem -> order_items)."""
    stem = _MODEL_SUFFIXES.sub("", model.lstrip("_$")) or model.lstrip("_$")
    snake = to_snake_case(stem)
    head, _, last = snake.rpartition("_")
    return f"{head}_{pluralize(last)}" if head else pluralize(last)


def naming_style(name: str) -> str:
    """snake_case, camelCase, PascalCase or other."""
    if re.fullmatch(r"[a-z][a-z0-9]*(_[a-z0-9]+)*", name):
        return "snake_case"
    if re.fullmatch(r"[a-z][a-z0-9]*([A-Z][a-z0-9]*)+", name):
        return "camelCase"
    if re.fullmatch(r"([A-Z][a-z0-9]*)+", name):
        return "PascalCase"
    return "other"


default_validator = TableNameValidator()
