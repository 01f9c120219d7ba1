"""C# data access - Entity Framework Core contexts and entities.

``DbSet<User> Users`` maps an entity to its table (the property name, EF's
convention) unless the entity carries ``[Table("...")]``. Entity classes are
recognized from the same file's DbSets, ``[Table]``, or data annotations on
their properties. Context sites count only where the SyntaxIndex shows a
real ``invocation_expression`` calling the matched method.
"""

import re

from driftscan.boundaries.extractors.base import (
    INFERRED_CONFIDENCE,
    ORM_CONFIDENCE,
    BaseDataAccessExtractor,
    balanced_end,
    detect_operation,
    statement_tail,
)
from driftscan.boundaries.table_names import default_table_name
from driftscan.boundaries.types import OrmModel

_CLASS = re.compile(
    r"(?P<attributes>(?:\[[^\]]*\]\s*)*)(?:(?:public|internal|private|protected|sealed|partial|abstract)\s+)*"
    r"class\s+(?P<name>\w+)(?:\s*<[^>]*>)?(?:\s*:\s*(?P<bases>[\w<>.,\s]+?))?\s*\{"
)
_TABLE_ATTRIBUTE = re.compile(r"\[\s*Table\s*\(\s*\"(\w+)\"")
_DBSET = re.compile(r"DbSet\s*<\s*(\w+)\s*>\s+(\w+)\s*\{")
_PROPERTY = re.compile(
    r"(?P<attributes>(?:\[[^\]]*\]\s*)*)public\s+(?:virtual\s+|required\s+)*(?P<type>[\w<>\[\]?.,]+)\s+(?P<name>\w+)"
    r"\s*\{\s*get\s*;"
)
_COLUMN_ATTRIBUTE = re.compile(r"\[\s*Column\s*\(\s*\"(\w+)\"")
_ENTITY_ATTRIBUTES = re.compile(r"\[\s*(Key|Required|Column|MaxLength|StringLength|PersonalData|ProtectedPersonalData"
                                r"|Sensitive|ForeignKey)\b")
_NOT_MAPPED = re.compile(r"\[\s*NotMapped\b")
_CONTEXT_ACCESS = re.compile(r"\b(_?\w*(?:[cC]ontext|[dD]b))\s*\.\s*(?:(\w+)|Set\s*<\s*(\w+)\s*>\s*\(\s*\))\s*\.\s*(\w+)\s*\(")
_CONTEXT_ADD = re.compile(r"\b(_?\w*(?:[cC]ontext|[dD]b))\s*\.\s*(Add|AddAsync|Update|Remove|AddRange|RemoveRange|Attach)"
                          r"\s*\(\s*(?:new\s+(\w+))?")
_LINQ_SELECT = re.compile(r"\.\s*Select\s*\(\s*(\w+)\s*=>\s*(?:new\s*\{([^}]*)\}|\1\s*\.\s*(\w+))")
_CHAINED_CALL = re.compile(r"\.\s*(\w+)\s*\(")


class EntityFrameworkExtractor(BaseDataAccessExtractor):
    languages = ("csharp",)
    framework = "ef-core"
    uses_syntax_index = True

    def extract(self, source, file_path, index=None):
        result = self.new_result(file_path)
        code = self.preprocess(source, "csharp")
        index = self.syntax_index(source, file_path, index)
        lines = source.splitlines()

        # DbSet property name is the table for its entity
        declared = [m for m in _DBSET.finditer(code) if index.in_code(m.start())]
        dbsets = {m.group(1): m.group(2) for m in declared}
        sets_by_property = {prop: entity for entity, prop in dbsets.items()}
        for match in declared:
            entity, prop = match.group(1), match.group(2)
            result.models.append(OrmModel(name=entity, table=prop, file=file_path,
                                          line=code.count("\n", 0, match.start()) + 1,
                                          framework=self.framework, explicit_table=True))

        for match in _CLASS.finditer(code):
            name = match.group("name")
            bases = match.group("bases") or ""
            if "DbContext" in bases or not index.in_code(match.start("name")):
                continue
            body_start = match.end() - 1
            body = code[body_start:balanced_end(code, body_start)]
            table_attr = _TABLE_ATTRIBUTE.search(match.group("attributes") or "")
            properties = list(_PROPERTY.finditer(body))
            is_entity = table_attr or name in dbsets or any(
                _ENTITY_ATTRIBUTES.search(p.group("attributes") or "") for p in properties)
            if not is_entity:
                continue
            table = table_attr.group(1) if table_attr else dbsets.get(name) or default_table_name(name)
            model = OrmModel(name=name, table=table, file=file_path,
                             line=code.count("\n", 0, match.start("name")) + 1,
                             framework=self.framework, explicit_table=bool(table_attr) or name in dbsets)
            for prop in properties:
                attributes = prop.group("attributes") or ""
                if _NOT_MAPPED.search(attributes) or prop.group("type").startswith(("ICollection", "List<")):
                    continue
                column = _COLUMN_ATTRIBUTE.search(attributes)
                field_name = column.group(1) if column else prop.group("name")
                line = code.count("\n", 0, body_start + prop.start("name")) + 1
                model.fields.append(field_name)
                result.fields.append(self.make_field(lines, line, table, field_name, file_path, name,
                                                     prop.group("type")))
            result.models.append(model)

        known = {m.name: m.table for m in result.models}
        for match in _CONTEXT_ACCESS.finditer(code):
            prop, set_entity, method = match.group(2), match.group(3), match.group(4)
            operation = detect_operation(method, use_prefixes=False)
            if not operation or not index.is_call(match.start(4)):
                continue
            if set_entity:
                model, table = set_entity, known.get(set_entity)
            else:
                model = sets_by_property.get(prop)
                table = prop if model else None
                if not model and not prop[:1].isupper():
                    continue
            tail = statement_tail(code, match.end())
            if operation == "read":
                # Chained writes (.ExecuteDelete(), .ExecuteUpdate()) win over the leading filter
                for chained_match in _CHAINED_CALL.finditer(tail):
                    chained = chained_match.group(1)
                    if not index.is_call(match.end() + chained_match.start(1)):
                        continue
                    chained_op = detect_operation(chained, use_prefixes=False)
                    if chained_op in ("write", "delete"):
                        operation = chained_op
                    elif chained.startswith("ExecuteUpdate"):
                        operation = "write"
            fields = self._projection(code[match.start():match.end()] + tail)
            validate = table is None
            point = self.make_point(
                file_path, code, match.start(), table or default_table_name(prop or model), operation, fields,
                ORM_CONFIDENCE if not validate else INFERRED_CONFIDENCE, model=model or None, validate=validate,
            )
            if point:
                result.access_points.append(point)

        for match in _CONTEXT_ADD.finditer(code):
            method, model = match.group(2), match.group(3)
            if not model or not index.is_call(match.start(2)):
                continue
            operation = "delete" if method.startswith("Remove") else "write"
            table = known.get(model)
            point = self.make_point(
                file_path, code, match.start(), table or default_table_name(model), operation, [],
                ORM_CONFIDENCE if table else INFERRED_CONFIDENCE, model=model, validate=table is None,
            )
            if point:
                result.access_points.append(point)
        return result

    @staticmethod
    def _projection(chain: str) -> list[str]:
        select = _LINQ_SELECT.search(chain)
        if not select:
            return []
        if select.group(3):
            return [select.group(3)]
        param = select.group(1)
        return re.findall(rf"\b{re.escape(param)}\s*\.\s*(\w+)", select.group(2) or "")
