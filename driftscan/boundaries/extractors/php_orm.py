"""PHP data access - Laravel Eloquent and Doctrine.

Static, arrow and chained call sites count only where the SyntaxIndex shows
a real call of the matched method name.
"""

import re
from collections.abc import Callable

from driftscan.boundaries.extractors.base import (
    INFERRED_CONFIDENCE,
    ORM_CONFIDENCE,
    BaseDataAccessExtractor,
    balanced_end,
    detect_operation,
    fields_from_string,
    statement_tail,
)
from driftscan.boundaries.table_names import default_table_name
from driftscan.boundaries.types import OrmModel

_ELOQUENT_CLASS = re.compile(
    r"class\s+(\w+)\s+extends\s+(?:\\?[\w\\]*\\)?(Model|Authenticatable|Eloquent|Pivot|User)\b[^{]*\{"
)
_TABLE_PROPERTY = re.compile(r"protected\s+\$table\s*=\s*['\"](\w+)['\"]")
_ARRAY_PROPERTY = re.compile(r"protected\s+\$(fillable|hidden|guarded|visible|casts|encrypted)\s*=\s*\[")
_ARRAY_ENTRY = re.compile(r"['\"](\w+)['\"]\s*(?:=>\s*[^,\]]+)?")

_STATIC_CALL = re.compile(r"(?<![\w$\\])\\?(?:[\w\\]*\\)?([A-Z]\w*)\s*::\s*(\w+)\s*\(")
_DB_TABLE = re.compile(r"\bDB\s*::\s*(table)\s*\(\s*['\"](\w+)['\"]\s*\)")
_ARROW_METHOD = re.compile(r"->\s*(\w+)\s*\(")
# Static receivers that are facades or helpers, never models
_FACADES = frozenset({
    "DB", "Schema", "Route", "Log", "Cache", "Auth", "Config", "Session", "Storage", "Mail", "Queue",
    "Event", "Gate", "Hash", "Validator", "Str", "Arr", "Carbon", "Http", "Request", "Response",
    "Redirect", "View", "App", "Artisan", "Bus", "Crypt", "Lang", "Notification", "URL", "Password",
    "Cookie", "File", "Blade", "Broadcast", "Collection", "Factory", "Date", "parent", "self", "static",
})

_DOCTRINE_ENTITY = re.compile(
    r"(?P<annotations>(?:(?:#\[[^\]]*\]|/?\*+[^\n]*@ORM\\\w+[^\n]*)\s*)+)"
    r"(?:final\s+|abstract\s+)?class\s+(?P<name>\w+)[^{]*\{"
)
_DOCTRINE_TABLE = re.compile(r"ORM\\Table\s*\(\s*(?:name\s*[:=]\s*)?['\"](\w+)['\"]")
_DOCTRINE_COLUMN = re.compile(
    r"(?P<marker>ORM\\(?:Column|Id|JoinColumn)[^\n]*)\n(?:[^\n]*\n){0,4}?\s*"
    r"(?:private|protected|public)\s+(?:readonly\s+)?(?:\??(?P<type>[\w\\|]+)\s+)?\$(?P<name>\w+)"
)
_DOCTRINE_COLUMN_NAME = re.compile(r"name\s*[:=]\s*['\"](\w+)['\"]")
_DOCTRINE_REPOSITORY = re.compile(r"->\s*getRepository\s*\(\s*\\?(?:[\w\\]*\\)?(\w+)::class\s*\)\s*->\s*(\w+)\s*\(")
_ENTITY_MANAGER = re.compile(r"\$(?:this->)?(?:em|entityManager|manager)\s*->\s*(persist|remove|find)\s*\(\s*"
                             r"(?:\\?(?:[\w\\]*\\)?(\w+)::class|new\s+\\?(?:[\w\\]*\\)?(\w+))?")


def _chain_operation(tail: str, initial: str | None,
                     is_call: Callable[[int], bool]) -> tuple[str | None, list[str]]:
    """Strongest operation and projected columns of an ``->a()->b()`` chain.

    ``is_call`` receives the offset of each method name within ``tail``.
    """
    operation, fields = initial, []
    for match in _ARROW_METHOD.finditer(tail):
        if not is_call(match.start(1)):
            continue
        method = match.group(1)
        op = detect_operation(method, use_prefixes=False)
        if op in ("write", "delete") or (op == "read" and operation is None):
            operation = op
        if method in ("select", "pluck", "get", "first", "value") and not fields:
            args = tail[match.end() - 1: balanced_end(tail, match.end() - 1)][1:-1]
            if "'" in args or '"' in args:
                fields = fields_from_string(args)
        if method in ("update", "insert", "create") and "=>" in tail[match.end():match.end() + 400]:
            args = tail[match.end() - 1: balanced_end(tail, match.end() - 1)]
            fields = re.findall(r"['\"](\w+)['\"]\s*=>", args) or fields
    return operation, fields


class EloquentExtractor(BaseDataAccessExtractor):
    languages = ("php",)
    framework = "eloquent"
    uses_syntax_index = True

    def extract(self, source, file_path, index=None):
        result = self.new_result(file_path)
        code = self.preprocess(source, "php")
        index = self.syntax_index(source, file_path, index)
        lines = source.splitlines()

        for match in _ELOQUENT_CLASS.finditer(code):
            name = match.group(1)
            if not index.in_code(match.start(1)):
                continue
            body_start = match.end() - 1
            body = code[body_start:balanced_end(code, body_start)]
            explicit = _TABLE_PROPERTY.search(body)
            table = explicit.group(1) if explicit else default_table_name(name)
            model = OrmModel(name=name, table=table, file=file_path,
                             line=code.count("\n", 0, match.start(1)) + 1,
                             framework=self.framework, explicit_table=explicit is not None)
            for prop in _ARRAY_PROPERTY.finditer(body):
                array_start = prop.end() - 1
                array_body = body[array_start:balanced_end(body, array_start)]
                for entry in _ARRAY_ENTRY.finditer(array_body):
                    field_name = entry.group(1)
                    if field_name in model.fields:
                        continue
                    line = code.count("\n", 0, body_start + array_start + entry.start(1)) + 1
                    model.fields.append(field_name)
                    result.fields.append(self.make_field(lines, line, table, field_name, file_path, name,
                                                         prop.group(1)))
            result.models.append(model)

        known = {m.name: m.table for m in result.models}
        for match in _STATIC_CALL.finditer(code):
            model, method = match.group(1), match.group(2)
            if model in _FACADES or not index.is_call(match.start(2)):
                continue
            operation = detect_operation(method, use_prefixes=False)
            if method in ("query", "with", "whereHas", "select", "orderBy"):
                operation = operation or "read"
            if not operation:
                continue
            args_end = balanced_end(code, match.end() - 1)
            fields = []
            if method in ("select", "pluck", "get"):
                fields = fields_from_string(code[match.end():args_end - 1])
            elif operation == "write":
                fields = re.findall(r"['\"](\w+)['\"]\s*=>", code[match.end():args_end])
            operation, chained_fields = _chain_operation(statement_tail(code, args_end), operation,
                                                         lambda offset: index.is_call(args_end + offset))
            fields = fields or chained_fields
            table = known.get(model)
            point = self.make_point(
                file_path, code, match.start(), table or default_table_name(model), operation or "read", fields,
                ORM_CONFIDENCE if table else INFERRED_CONFIDENCE, model=model, validate=table is None,
            )
            if point:
                result.access_points.append(point)

        for match in _DB_TABLE.finditer(code):
            if not index.is_call(match.start(1)):
                continue
            end = match.end()
            operation, fields = _chain_operation(statement_tail(code, end), None,
                                                 lambda offset: index.is_call(end + offset))
            if operation is None:
                continue
            point = self.make_point(file_path, code, match.start(), match.group(2), operation, fields,
                                    ORM_CONFIDENCE, validate=True)
            if point:
                point.framework = "laravel-db"
                result.access_points.append(point)
        return result


class DoctrineExtractor(BaseDataAccessExtractor):
    languages = ("php",)
    framework = "doctrine"
    uses_syntax_index = True

    def extract(self, source, file_path, index=None):
        result = self.new_result(file_path)
        code = self.preprocess(source, "php")
        index = self.syntax_index(source, file_path, index)
        lines = source.splitlines()

        for match in _DOCTRINE_ENTITY.finditer(source):
            annotations = match.group("annotations")
            if "ORM\\Entity" not in annotations or not index.in_code(match.start("name")):
                continue
            name = match.group("name")
            explicit = _DOCTRINE_TABLE.search(annotations)
            table = explicit.group(1) if explicit else default_table_name(name)
            model = OrmModel(name=name, table=table, file=file_path,
                             line=source.count("\n", 0, match.start("name")) + 1,
                             framework=self.framework, explicit_table=explicit is not None)
            # Annotations live in docblocks, so fields are read from the raw source
            body_start = match.end() - 1
            body = source[body_start:balanced_end(source, body_start)]
            for column in _DOCTRINE_COLUMN.finditer(body):
                if "OneToMany" in column.group(0) or "ManyToMany" in column.group(0):
                    continue
                marker = column.group("marker")
                named = _DOCTRINE_COLUMN_NAME.search(marker) if marker.startswith("ORM\\Column") else None
                field_name = named.group(1) if named else column.group("name")
                if field_name in model.fields:
                    continue
                line = source.count("\n", 0, body_start + column.start("name")) + 1
                model.fields.append(field_name)
                result.fields.append(self.make_field(lines, line, table, field_name, file_path, name,
                                                     column.group("type")))
            result.models.append(model)

        known = {m.name: m.table for m in result.models}
        for match in _DOCTRINE_REPOSITORY.finditer(code):
            model, method = match.group(1), match.group(2)
            operation = detect_operation(method)
            if operation and index.is_call(match.start(2)):
                self._add(result, file_path, code, match.start(), model, known, operation)
        for match in _ENTITY_MANAGER.finditer(code):
            method = match.group(1)
            model = match.group(2) or match.group(3)
            if not model or not index.is_call(match.start(1)):
                continue
            operation = {"persist": "write", "remove": "delete", "find": "read"}[method]
            self._add(result, file_path, code, match.start(), model, known, operation)
        return result

    def _add(self, result, file_path, code, offset, model, known, operation):
        table = known.get(model)
        point = self.make_point(
            file_path, code, offset, table or default_table_name(model), operation, [],
            ORM_CONFIDENCE if table else INFERRED_CONFIDENCE, model=model, validate=table is None,
        )
        if point:
            result.access_points.append(point)
