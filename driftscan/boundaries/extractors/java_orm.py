"""Java data access - JPA/Hibernate entities and Spring Data repositories.

Repository and EntityManager sites count only where the SyntaxIndex shows a
real ``method_invocation``.
"""

import re

from driftscan.boundaries.extractors.base import (
    INFERRED_CONFIDENCE,
    ORM_CONFIDENCE,
    BaseDataAccessExtractor,
    balanced_end,
    detect_operation,
)
from driftscan.boundaries.table_names import default_table_name
from driftscan.boundaries.types import OrmModel

_ENTITY_CLASS = re.compile(
    r"@Entity\b(?:\s*\([^)]*\))?(?P<annotations>(?:\s*@\w+(?:\s*\([^)]*\))?)*)"
    r"\s*(?:public\s+|protected\s+|private\s+)?(?:abstract\s+|final\s+)*class\s+(?P<name>\w+)"
)
_TABLE_ANNOTATION = re.compile(r"@Table\s*\([^)]*?name\s*=\s*\"(\w+)\"")
_FIELD = re.compile(
    r"(?P<annotations>(?:@\w+(?:\s*\([^)]*\))?\s*)*)"
    r"(?:private|protected|public)\s+(?:final\s+)?(?P<type>[\w<>\[\],.? ]+?)\s+(?P<name>\w+)\s*(?:=[^;]*)?;"
)
_COLUMN_NAME = re.compile(r"@(?:Column|JoinColumn)\s*\([^)]*?name\s*=\s*\"(\w+)\"")
_SKIPPED_FIELD = re.compile(r"@(Transient|OneToMany|ManyToMany)\b")
_REPOSITORY_DECL = re.compile(
    r"interface\s+(\w+)\s+extends\s+[\w.,<>\s]*?"
    r"(?:JpaRepository|CrudRepository|PagingAndSortingRepository|ListCrudRepository|ReactiveCrudRepository"
    r"|MongoRepository|JpaSpecificationExecutor|Repository)\s*<\s*(\w+)"
)
_REPOSITORY_CALL = re.compile(r"\b(\w*(?:Repository|Repo|Dao|DAO))\s*\.\s*(\w+)\s*\(")
_ENTITY_MANAGER_CALL = re.compile(
    r"\b(?:entityManager|em|session)\s*\.\s*(find|getReference|persist|merge|remove|delete|get|load|save|update)"
    r"\s*\(\s*(?:(\w+)\.class)?"
)
_NEW_ENTITY = re.compile(r"^\s*new\s+(\w+)\s*\(")


class JpaExtractor(BaseDataAccessExtractor):
    languages = ("java",)
    framework = "jpa"
    uses_syntax_index = True

    def extract(self, source, file_path, index=None):
        result = self.new_result(file_path)
        code = self.preprocess(source, "java")
        index = self.syntax_index(source, file_path, index)
        lines = source.splitlines()

        for match in _ENTITY_CLASS.finditer(code):
            if not index.in_code(match.start("name")):
                continue
            name = match.group("name")
            table_match = _TABLE_ANNOTATION.search(match.group("annotations") or "")
            table = table_match.group(1) if table_match else default_table_name(name)
            model = OrmModel(name=name, table=table, file=file_path,
                             line=code.count("\n", 0, match.start("name")) + 1,
                             framework=self.framework, explicit_table=table_match is not None)
            body_start = code.find("{", match.end())
            if body_start != -1:
                body = code[body_start:balanced_end(code, body_start)]
                for field in _FIELD.finditer(body):
                    annotations = field.group("annotations") or ""
                    if "(" in field.group("type") or _SKIPPED_FIELD.search(annotations):
                        continue
                    if re.search(r"\bstatic\b", code[body_start + field.start():body_start + field.end()]):
                        continue
                    column = _COLUMN_NAME.search(annotations)
                    field_name = column.group(1) if column else field.group("name")
                    line = code.count("\n", 0, body_start + field.start("name")) + 1
                    model.fields.append(field_name)
                    result.fields.append(self.make_field(lines, line, table, field_name, file_path, name,
                                                         field.group("type").strip()))
            result.models.append(model)

        known = {m.name: m.table for m in result.models}
        repositories = {repo: entity for repo, entity in _REPOSITORY_DECL.findall(code)}

        for match in _REPOSITORY_CALL.finditer(code):
            receiver, method = match.group(1), match.group(2)
            operation = detect_operation(method)
            if not operation or not index.is_call(match.start(2)):
                continue
            repo_type = receiver[0].upper() + receiver[1:]
            model = repositories.get(repo_type) or re.sub(r"(Repository|Repo|Dao|DAO)$", "", repo_type)
            if not model:
                continue
            # Spring Data methods return whole entities; derived criteria are filters, not projections
            self._add(result, file_path, code, match.start(), model, known, operation, [])

        for match in _ENTITY_MANAGER_CALL.finditer(code):
            method, model = match.group(1), match.group(2)
            if not index.is_call(match.start(1)):
                continue
            if not model:
                args = code[match.end():match.end() + 120]
                created = _NEW_ENTITY.match(args)
                model = created.group(1) if created else None
            if not model:
                continue
            operation = {"remove": "delete", "delete": "delete", "find": "read", "get": "read",
                         "load": "read", "getReference": "read"}.get(method, "write")
            self._add(result, file_path, code, match.start(), model, known, operation, [])
        return result

    def _add(self, result, file_path, code, offset, model, known, operation, fields):
        point = self.make_point(
            file_path, code, offset, known.get(model) or default_table_name(model), operation, fields,
            ORM_CONFIDENCE if model in known else INFERRED_CONFIDENCE, model=model, validate=model not in known,
        )
        if point:
            result.access_points.append(point)
