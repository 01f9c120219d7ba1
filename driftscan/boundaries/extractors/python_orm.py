"""Python ORM data access - Django and SQLAlchemy.

Both extractors walk CPython's ``ast``:

- models: ``models.Model`` subclasses (Django, ``Meta.db_table``) and
  declarative classes with ``Column``/``mapped_column`` attributes
  (SQLAlchemy, ``__tablename__``)
- fields: model attributes assigned from ``*Field(...)``/``Column(...)`` calls
- sites: ``Model.objects.<method>()`` chains (Django); ``session.query(Model)``,
  ``select(Model.col)``, ``session.get(Model, pk)``, ``session.add(Model(...))``
  and ``Model.query.<method>()`` (SQLAlchemy/Flask-SQLAlchemy)

One access point is produced per call chain, at the chain's outermost call.
Unparseable files produce no facts here; the raw-SQL and generic extractors
still run on them.
"""

import ast
import re

from driftscan.boundaries.extractors.base import (
    INFERRED_CONFIDENCE,
    ORM_CONFIDENCE,
    BaseDataAccessExtractor,
    detect_operation,
)
from driftscan.boundaries.table_names import default_table_name
from driftscan.boundaries.types import DataAccessExtraction, OrmModel

DJANGO_MODEL_BASES = {"models.Model", "django.db.models.Model", "Model"}
SQLALCHEMY_BASE_IDENTIFIERS = {"Base", "DeclarativeBase", "db.Model", "SQLModel"}
SQLALCHEMY_COLUMN_CALLS = ("Column", "mapped_column", "Field")

# Projection methods whose string arguments name columns
DJANGO_PROJECTIONS = {"values", "values_list", "only"}
# Write methods whose keyword arguments name columns
DJANGO_WRITE_KWARGS = {"create", "update", "get_or_create", "update_or_create"}
SQLALCHEMY_SESSION_READS = {"query", "get", "scalars", "execute", "scalar"}

_OP_STRENGTH = {"read": 0, "write": 1, "delete": 2}
_SESSION_ROOT = re.compile(r"session|\bdb\b|conn")


def get_node_name(node: ast.AST | None) -> str:
    """Dotted name of a Name/Attribute chain ("" for anything else)."""
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        base = get_node_name(node.value)
        return f"{base}.{node.attr}" if base else node.attr
    return ""


def _get_str_constant(node: ast.AST | None) -> str | None:
    if isinstance(node, ast.Constant) and isinstance(node.value, str):
        return node.value
    return None


def _call_chain(call: ast.Call) -> tuple[ast.AST, list[tuple[str, ast.Call]]]:
    """Root expression and (method, call) pairs, innermost first.

    ``User.objects.filter(a=1).values('b')`` gives root ``User.objects`` and
    ``[("filter", ...), ("values", ...)]``.
    """
    chain: list[tuple[str, ast.Call]] = []
    node: ast.AST = call
    while isinstance(node, ast.Call) and isinstance(node.func, ast.Attribute):
        chain.append((node.func.attr, node))
        node = node.func.value
    chain.reverse()
    return node, chain


def _outermost_calls(tree: ast.AST) -> list[ast.Call]:
    inner: set[int] = set()
    calls: list[ast.Call] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Call):
            calls.append(node)
            if isinstance(node.func, ast.Attribute) and isinstance(node.func.value, ast.Call):
                inner.add(id(node.func.value))
    return sorted((c for c in calls if id(c) not in inner), key=lambda c: (c.lineno, c.col_offset))


def _strongest(operations: list[str]) -> str | None:
    ops = [op for op in operations if op]
    return max(ops, key=_OP_STRENGTH.__getitem__) if ops else None


def _is_model_name(name: str) -> bool:
    return bool(name) and name[0].isupper() and name.isidentifier()


class _PythonOrmExtractor(BaseDataAccessExtractor):
    languages = ("python",)

    def extract(self, source: str, file_path: str) -> DataAccessExtraction:
        result = self.new_result(file_path, "python")
        try:
            tree = ast.parse(source, filename=file_path)
        except (SyntaxError, ValueError) as e:
            result.errors.append(f"{self.framework}: unparseable source: {e}")
            return result

        lines = source.splitlines()
        for node in ast.walk(tree):
            if isinstance(node, ast.ClassDef):
                self._collect_model(node, lines, file_path, result)
        models = {m.name: m.table for m in result.models}
        for call in _outermost_calls(tree):
            self._collect_site(call, lines, file_path, models, result)
        return result

    def _collect_model(self, node: ast.ClassDef, lines: list[str], file_path: str,
                       result: DataAccessExtraction) -> None:
        pass

    def _collect_site(self, call: ast.Call, lines: list[str], file_path: str,
                      models: dict[str, str], result: DataAccessExtraction) -> None:
        pass

    def _add_point(self, call: ast.Call, lines: list[str], file_path: str, model: str,
                   models: dict[str, str], operation: str, fields: list[str],
                   result: DataAccessExtraction) -> None:
        known = model in models
        context = lines[call.lineno - 1] if 0 < call.lineno <= len(lines) else ""
        point = self.point_at(
            file_path,
            call.lineno,
            call.col_offset,
            context,
            models.get(model) or default_table_name(model),
            operation,
            fields,
            ORM_CONFIDENCE if known else INFERRED_CONFIDENCE,
            model=model,
            validate=not known,
        )
        if point is not None:
            result.access_points.append(point)

    @staticmethod
    def _attribute_fields(node: ast.ClassDef, call_names: tuple[str, ...]) -> list[tuple[str, int, str | None]]:
        """(attribute, line, type) for class attributes assigned from one of ``call_names``."""
        found = []
        for stmt in node.body:
            value = getattr(stmt, "value", None)
            attr_name = None
            annotation = None
            if isinstance(stmt, ast.Assign):
                targets = [t for t in stmt.targets if isinstance(t, ast.Name)]
                attr_name = targets[0].id if targets else None
            elif isinstance(stmt, ast.AnnAssign) and isinstance(stmt.target, ast.Name):
                attr_name = stmt.target.id
                annotation = ast.unparse(stmt.annotation)
            if not attr_name or attr_name.startswith("__") or not isinstance(value, ast.Call):
                continue
            func_name = get_node_name(value.func).rsplit(".", 1)[-1]
            if not any(func_name.endswith(name) for name in call_names):
                continue
            field_type = annotation
            if value.args and not field_type:
                field_type = get_node_name(value.args[0]) or None
            found.append((attr_name, stmt.lineno, field_type or func_name))
        return found


class DjangoExtractor(_PythonOrmExtractor):
    framework = "django"

    def _collect_model(self, node, lines, file_path, result):
        base_names = {get_node_name(base) for base in node.bases}
        if not base_names & DJANGO_MODEL_BASES:
            return
        fields = self._attribute_fields(node, ("Field", "ForeignKey"))
        if "Model" in base_names and not fields:
            # Bare "Model" base is only trusted when the class declares Django fields
            return

        table = None
        for stmt in node.body:
            if isinstance(stmt, ast.ClassDef) and stmt.name == "Meta":
                for meta_stmt in stmt.body:
                    if isinstance(meta_stmt, ast.Assign) and any(
                            isinstance(t, ast.Name) and t.id == "db_table" for t in meta_stmt.targets):
                        table = _get_str_constant(meta_stmt.value)
        model = OrmModel(
            name=node.name,
            table=table or default_table_name(node.name),
            file=file_path,
            line=node.lineno,
            framework=self.framework,
            fields=[name for name, _, _ in fields],
            explicit_table=table is not None,
        )
        result.models.append(model)
        for name, line, field_type in fields:
            result.fields.append(self.make_field(lines, line, model.table, name, file_path, node.name, field_type))

    def _collect_site(self, call, lines, file_path, models, result):
        root, chain = _call_chain(call)
        if not chain or not isinstance(root, ast.Attribute) or root.attr != "objects":
            return
        model = get_node_name(root.value).rsplit(".", 1)[-1]
        if not _is_model_name(model):
            return
        operation = _strongest([detect_operation(method, use_prefixes=False) for method, _ in chain]) or "read"

        fields: list[str] = []
        for method, method_call in chain:
            if method in DJANGO_PROJECTIONS:
                fields.extend(s.split("__")[0] for s in map(_get_str_constant, method_call.args) if s)
            elif method in DJANGO_WRITE_KWARGS:
                fields.extend(kw.arg.split("__")[0] for kw in method_call.keywords
                              if kw.arg and kw.arg != "defaults")
        self._add_point(call, lines, file_path, model, models, operation, sorted(set(fields)), result)


class SqlAlchemyExtractor(_PythonOrmExtractor):
    framework = "sqlalchemy"

    def _collect_model(self, node, lines, file_path, result):
        base_names = {get_node_name(base) for base in node.bases}
        if not any(name in SQLALCHEMY_BASE_IDENTIFIERS or name.endswith("Base") for name in base_names):
            return
        fields = self._attribute_fields(node, SQLALCHEMY_COLUMN_CALLS)
        table = None
        for stmt in node.body:
            if isinstance(stmt, ast.Assign) and any(
                    isinstance(t, ast.Name) and t.id == "__tablename__" for t in stmt.targets):
                table = _get_str_constant(stmt.value)
        if not fields and table is None:
            return
        model = OrmModel(
            name=node.name,
            table=table or default_table_name(node.name),
            file=file_path,
            line=node.lineno,
            framework=self.framework,
            fields=[name for name, _, _ in fields],
            explicit_table=table is not None,
        )
        result.models.append(model)
        for name, line, field_type in fields:
            result.fields.append(self.make_field(lines, line, model.table, name, file_path, node.name, field_type))

    def _collect_site(self, call, lines, file_path, models, result):
        root, chain = _call_chain(call)
        chain_ops = [detect_operation(method, use_prefixes=False) for method, _ in chain[1:]]

        # Model.query.filter_by(...).first()
        if chain and isinstance(root, ast.Attribute) and root.attr == "query":
            model = get_node_name(root.value).rsplit(".", 1)[-1]
            if _is_model_name(model):
                operation = _strongest([detect_operation(m, use_prefixes=False) for m, _ in chain]) or "read"
                self._add_point(call, lines, file_path, model, models, operation, [], result)
            return

        # select(User.ssn).where(...) has no attribute root; it is a plain call at the bottom
        bottom = chain[0][1].func.value if chain else call
        if isinstance(bottom, ast.Call) and get_node_name(bottom.func) in ("select", "sa.select", "sqlalchemy.select"):
            self._entity_args(bottom, call, lines, file_path, models, _strongest(chain_ops) or "read", result)
            return
        if not chain:
            return

        method, first_call = chain[0]
        if method != "query" and not _SESSION_ROOT.search(get_node_name(root).lower()):
            return
        if method in SQLALCHEMY_SESSION_READS:
            operation = _strongest(chain_ops) or "read"
            self._entity_args(first_call, call, lines, file_path, models, operation, result)
        elif method in ("add", "merge") and first_call.args:
            instance = first_call.args[0]
            if isinstance(instance, ast.Call):
                model = get_node_name(instance.func).rsplit(".", 1)[-1]
                if _is_model_name(model) and (model in models or get_node_name(root).endswith("session")):
                    fields = sorted({kw.arg for kw in instance.keywords if kw.arg})
                    self._add_point(call, lines, file_path, model, models, "write", fields, result)

    def _entity_args(self, entity_call: ast.Call, call: ast.Call, lines: list[str], file_path: str,
                     models: dict[str, str], operation: str, result: DataAccessExtraction) -> None:
        """Sites for ``query(User)``, ``query(User.ssn, User.name)``, ``select(User)``."""
        per_model: dict[str, list[str]] = {}
        for arg in entity_call.args:
            name = get_node_name(arg)
            if not name:
                continue
            parts = name.split(".")
            if _is_model_name(parts[-1]):
                per_model.setdefault(parts[-1], [])
            elif len(parts) >= 2 and _is_model_name(parts[-2]):
                per_model.setdefault(parts[-2], []).append(parts[-1])
        for model, fields in per_model.items():
            if model not in models and not isinstance(call.func, ast.Attribute):
                continue
            self._add_point(call, lines, file_path, model, models, operation, fields, result)
