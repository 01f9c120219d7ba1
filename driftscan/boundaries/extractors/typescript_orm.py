"""TypeScript/JavaScript data access - Prisma, TypeORM, Sequelize and query builders.

Site patterns run over comment-blanked source (strings kept, offsets
preserved) and a match only counts where the SyntaxIndex of the file shows a
real call; text inside string literals and comments never produces a site:

- Prisma: ``prisma.user.findMany({ select: { email: true } })``
- TypeORM: ``@Entity('users') class User`` + ``@Column()`` properties;
  ``userRepository.find()``, ``getRepository(User).save()``
- Sequelize: ``sequelize.define('user', {...})``, ``User.init({...}, { tableName })``,
  ``User.findAll({ attributes: [...] })``
- Query builders: ``knex('users').select('email')``,
  ``supabase.from('users').select('email, ssn')``, drizzle ``db.select().from(users)``
"""

import re

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

JS_LANGUAGES = ("typescript", "javascript")

_PRISMA_METHODS = (
    "findUnique|findFirst|findMany|findUniqueOrThrow|findFirstOrThrow|count|aggregate|groupBy"
    "|create|createMany|update|updateMany|upsert|delete|deleteMany"
)
_PRISMA_CALL = re.compile(rf"\b(\w*(?:prisma|db|client)\w*)\s*\.\s*([a-z]\w*)\s*\.\s*({_PRISMA_METHODS})\s*\(", re.IGNORECASE)
_SELECT_OBJECT = re.compile(r"\bselect\s*:\s*\{([^{}]*)\}")
_TRUE_KEYS = re.compile(r"(\w+)\s*:\s*true\b")
_DATA_OBJECT = re.compile(r"\bdata\s*:\s*\{([^{}]*)\}")
_OBJECT_KEYS = re.compile(r"(?:^|[,{\s])(\w+)\s*(?=[:,}]|$)")
_SEGMENT_KEY = re.compile(r"\s*['\"]?(\w+)['\"]?\s*(?::|$)")


def _top_level_segments(body: str) -> list[tuple[int, str]]:
    """(offset, text) of the comma separated members of an object/array body."""
    segments = []
    depth = 0
    start = 0
    for i, ch in enumerate(body):
        if ch in "{[(":
            depth += 1
        elif ch in "}])":
            depth -= 1
        elif ch == "," and depth == 0:
            segments.append((start, body[start:i]))
            start = i + 1
    segments.append((start, body[start:]))
    return segments


def _object_keys(body: str) -> list[str]:
    """Top-level keys of an object literal body (``a: 1, b, 'c': x``)."""
    keys = []
    for _, segment in _top_level_segments(body):
        match = _SEGMENT_KEY.match(segment)
        if match and match.group(1) not in keys:
            keys.append(match.group(1))
    return keys


class PrismaExtractor(BaseDataAccessExtractor):
    languages = JS_LANGUAGES
    framework = "prisma"
    uses_syntax_index = True

    def extract(self, source, file_path, index=None):
        result = self.new_result(file_path)
        code = self.preprocess(source, "typescript")
        index = self.syntax_index(source, file_path, index)
        for match in _PRISMA_CALL.finditer(code):
            delegate, method = match.group(2), match.group(3)
            if delegate.startswith("$") or not index.is_call(match.start(3)):
                continue
            args = code[match.end() - 1: balanced_end(code, match.end() - 1)]
            fields: list[str] = []
            select = _SELECT_OBJECT.search(args)
            if select:
                fields = _TRUE_KEYS.findall(select.group(1))
            elif detect_operation(method) == "write":
                data = _DATA_OBJECT.search(args)
                if data:
                    fields = _object_keys(data.group(1))
            model = delegate[0].upper() + delegate[1:]
            point = self.make_point(file_path, code, match.start(), default_table_name(model),
                                    detect_operation(method) or "read", fields, ORM_CONFIDENCE, model=model)
            if point:
                result.access_points.append(point)
        return result


_ENTITY = re.compile(
    r"@Entity\s*\(\s*(?:['\"](\w+)['\"]|\{[^}]*?name\s*:\s*['\"](\w+)['\"][^}]*\})?\s*\)"
    r"(?:\s*@\w+(?:\([^)]*\))?)*\s*(?:export\s+)?(?:default\s+)?(?:abstract\s+)?class\s+(\w+)"
)
_COLUMN_DECORATOR = re.compile(
    r"@(Column|PrimaryGeneratedColumn|PrimaryColumn|CreateDateColumn|UpdateDateColumn|DeleteDateColumn"
    r"|VersionColumn|ObjectIdColumn)\s*\(([^)]*)\)(?:\s*@\w+(?:\([^)]*\))?)*\s*(?:(?:public|private|protected|readonly)\s+)*(\w+)[!?]?\s*:\s*([\w<>\[\]| ]+)"
)
_REPOSITORY_CALL = re.compile(r"\b(?:this\s*\.\s*)?(\w+?)(?:Repository|Repo)\s*\.\s*(\w+)\s*\(")
_GET_REPOSITORY = re.compile(r"\b(?:getRepository|getCustomRepository|dataSource\s*\.\s*getRepository|manager\s*\.\s*getRepository)\s*\(\s*(\w+)\s*\)\s*\.\s*(\w+)\s*\(")
_SELECT_ARRAY = re.compile(r"\bselect\s*:\s*\[([^\]]*)\]")


class TypeOrmExtractor(BaseDataAccessExtractor):
    languages = JS_LANGUAGES
    framework = "typeorm"
    uses_syntax_index = True

    def extract(self, source, file_path, index=None):
        result = self.new_result(file_path)
        code = self.preprocess(source, "typescript")
        index = self.syntax_index(source, file_path, index)
        lines = source.splitlines()

        for match in _ENTITY.finditer(code):
            if not index.in_code(match.start(3)):
                continue
            explicit = match.group(1) or match.group(2)
            name = match.group(3)
            table = explicit or default_table_name(name)
            body_start = code.find("{", match.end())
            body_end = balanced_end(code, body_start) if body_start != -1 else match.end()
            body = code[body_start:body_end] if body_start != -1 else ""
            model = OrmModel(name=name, table=table, file=file_path, line=code.count("\n", 0, match.start(3)) + 1,
                             framework=self.framework, explicit_table=bool(explicit))
            for column in _COLUMN_DECORATOR.finditer(body):
                options, prop, prop_type = column.group(2), column.group(3), column.group(4).strip()
                named = re.search(r"name\s*:\s*['\"](\w+)['\"]", options)
                field_name = named.group(1) if named else prop
                line = code.count("\n", 0, body_start + column.start(3)) + 1
                model.fields.append(field_name)
                result.fields.append(self.make_field(lines, line, table, field_name, file_path, name, prop_type))
            result.models.append(model)

        known = {m.name: m.table for m in result.models}
        for pattern in (_REPOSITORY_CALL, _GET_REPOSITORY):
            for match in pattern.finditer(code):
                receiver, method = match.group(1), match.group(2)
                operation = detect_operation(method, use_prefixes=False)
                if not operation or not receiver or not index.is_call(match.start(2)):
                    continue
                model = receiver[0].upper() + receiver[1:]
                args = code[match.end() - 1: balanced_end(code, match.end() - 1)]
                fields = []
                select = _SELECT_ARRAY.search(args) or _SELECT_OBJECT.search(args)
                if select:
                    fields = fields_from_string(select.group(1)) if select.re is _SELECT_ARRAY \
                        else _TRUE_KEYS.findall(select.group(1))
                point = self.make_point(
                    file_path, code, match.start(), known.get(model) or default_table_name(model), operation,
                    fields, ORM_CONFIDENCE if model in known else INFERRED_CONFIDENCE,
                    model=model, validate=model not in known,
                )
                if point:
                    result.access_points.append(point)
        return result


_SEQUELIZE_DEFINE = re.compile(r"\b\w+\s*\.\s*(define)\s*\(\s*['\"](\w+)['\"]\s*,\s*\{")
_SEQUELIZE_INIT = re.compile(r"\b([A-Z]\w*)\s*\.\s*(init)\s*\(\s*\{")
_TABLE_NAME_OPTION = re.compile(r"tableName\s*:\s*['\"](\w+)['\"]")
_SEQUELIZE_METHODS = (
    "findAll|findOne|findByPk|findOrCreate|findAndCountAll|count|max|min|sum"
    "|create|bulkCreate|update|upsert|destroy|increment|decrement"
)
_SEQUELIZE_CALL = re.compile(rf"\b([A-Z]\w*)\s*\.\s*({_SEQUELIZE_METHODS})\s*\(")
_ATTRIBUTES = re.compile(r"\battributes\s*:\s*\[([^\]]*)\]")
# Static receivers that are never models
_NOT_MODELS = frozenset({
    "Object", "Array", "Math", "JSON", "Promise", "Date", "Number", "String", "Reflect", "Buffer",
    "Sequelize", "DataTypes", "Op", "Map", "Set", "console", "Intl", "Symbol", "BigInt",
})


class SequelizeExtractor(BaseDataAccessExtractor):
    languages = JS_LANGUAGES
    framework = "sequelize"
    uses_syntax_index = True

    def extract(self, source, file_path, index=None):
        result = self.new_result(file_path)
        code = self.preprocess(source, "typescript")
        index = self.syntax_index(source, file_path, index)
        lines = source.splitlines()

        declarations = []
        for match in _SEQUELIZE_DEFINE.finditer(code):
            if index.is_call(match.start(1)):
                declarations.append((match.group(2), match, None))
        for match in _SEQUELIZE_INIT.finditer(code):
            if index.is_call(match.start(2)):
                declarations.append((match.group(1), match, match.group(1)))
        for raw_name, match, class_name in declarations:
            body_start = match.end() - 1
            body_end = balanced_end(code, body_start)
            options = statement_tail(code, body_end)
            explicit = _TABLE_NAME_OPTION.search(options)
            name = class_name or raw_name[0].upper() + raw_name[1:]
            table = explicit.group(1) if explicit else default_table_name(raw_name)
            model = OrmModel(name=name, table=table, file=file_path, line=code.count("\n", 0, match.start()) + 1,
                             framework=self.framework, explicit_table=bool(explicit))
            body = code[body_start + 1:body_end - 1]
            for offset, segment in _top_level_segments(body):
                key = re.match(r"\s*['\"]?(\w+)['\"]?\s*:", segment)
                if not key or key.group(1) in model.fields:
                    continue
                field_name = key.group(1)
                line = code.count("\n", 0, body_start + 1 + offset + key.start(1)) + 1
                model.fields.append(field_name)
                result.fields.append(self.make_field(lines, line, table, field_name, file_path, name))
            result.models.append(model)

        known = {m.name: m.table for m in result.models}
        for match in _SEQUELIZE_CALL.finditer(code):
            model, method = match.group(1), match.group(2)
            if model in _NOT_MODELS or not index.is_call(match.start(2)):
                continue
            args = code[match.end() - 1: balanced_end(code, match.end() - 1)]
            attributes = _ATTRIBUTES.search(args)
            fields = fields_from_string(attributes.group(1)) if attributes else []
            operation = detect_operation(method, use_prefixes=False) or "read"
            point = self.make_point(
                file_path, code, match.start(), known.get(model) or default_table_name(model), operation, fields,
                ORM_CONFIDENCE if model in known else INFERRED_CONFIDENCE, model=model, validate=model not in known,
            )
            if point:
                result.access_points.append(point)
        return result


_BUILDER_ROOT = re.compile(
    r"\b(?:(knex|db|trx|sql|query|builder)\s*\(\s*['\"](\w+(?:\.\w+)?)['\"]\s*\)"
    r"|\.\s*(from|table|into)\s*\(\s*['\"](\w+(?:\.\w+)?)['\"]\s*\))"
)
_DRIZZLE_FROM = re.compile(r"\.\s*(select|selectDistinct)\s*\(([^)]*)\)\s*\.\s*from\s*\(\s*(\w+)\s*\)")
_DRIZZLE_WRITE = re.compile(r"\b(?:db|tx|trx)\s*\.\s*(insert|update|delete)\s*\(\s*(\w+)\s*\)")
_CHAIN_METHOD = re.compile(r"\.\s*(\w+)\s*\(")


class QueryBuilderExtractor(BaseDataAccessExtractor):
    """knex, Supabase and drizzle chains where the table is an explicit argument."""

    languages = JS_LANGUAGES
    framework = "query-builder"
    uses_syntax_index = True

    def extract(self, source, file_path, index=None):
        result = self.new_result(file_path)
        code = self.preprocess(source, "typescript")
        index = self.syntax_index(source, file_path, index)

        for match in _BUILDER_ROOT.finditer(code):
            if not index.is_call(match.start(1) if match.group(1) else match.start(3)):
                continue
            table = (match.group(2) or match.group(4)).rsplit(".", 1)[-1]
            head = code[max(0, match.start() - 200):match.start()]
            framework = "supabase" if "supabase" in head[-120:].lower() else "knex"
            tail = statement_tail(code, match.end())
            operation, fields = None, []
            for method_match in _CHAIN_METHOD.finditer(tail):
                if not index.is_call(match.end() + method_match.start(1)):
                    continue
                method = method_match.group(1)
                op = detect_operation(method, use_prefixes=False)
                if op in ("write", "delete") or (op == "read" and operation is None):
                    operation = op
                if method in ("select", "pluck", "first", "returning") and not fields:
                    args = tail[method_match.end() - 1: balanced_end(tail, method_match.end() - 1)]
                    fields = fields_from_string(args[1:-1]) if args.startswith("(") else []
                if method in ("insert", "update", "upsert"):
                    args = tail[method_match.end() - 1: balanced_end(tail, method_match.end() - 1)]
                    fields = _object_keys(args[2:-2]) if args.startswith("({") else fields
            if operation is None:
                continue
            point = self.make_point(file_path, code, match.start(), table, operation, fields, ORM_CONFIDENCE,
                                    validate=True)
            if point:
                point.framework = framework
                result.access_points.append(point)

        for match in _DRIZZLE_FROM.finditer(code):
            if not index.is_call(match.start(1)):
                continue
            fields = _OBJECT_KEYS.findall(match.group(2)) if match.group(2).strip().startswith("{") else []
            point = self.make_point(file_path, code, match.start(), match.group(3), "read", fields,
                                    INFERRED_CONFIDENCE, validate=True)
            if point:
                point.framework = "drizzle"
                result.access_points.append(point)
        for match in _DRIZZLE_WRITE.finditer(code):
            if not index.is_call(match.start(1)):
                continue
            operation = "delete" if match.group(1) == "delete" else "write"
            point = self.make_point(file_path, code, match.start(), match.group(2), operation, [],
                                    INFERRED_CONFIDENCE, validate=True)
            if point:
                point.framework = "drizzle"
                result.access_points.append(point)
        return result
