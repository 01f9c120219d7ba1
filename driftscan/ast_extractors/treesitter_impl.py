"""Grammar-based extraction using tree-sitter.

One iterative walker serves TypeScript/JavaScript, Java, C# and PHP. What
differs per grammar (which node types declare functions, how a callee is
spelled, how imports look) lives in a ``LanguageRules`` table plus a handful
of small per-language helpers, so adding a grammar means adding a table row.

The walker keeps an explicit stack instead of recursing; minified bundles and
long fluent chains produce trees deeper than Python's recursion limit.
"""

from dataclasses import dataclass
from typing import Any, Callable

from driftscan.ast_extractors.base import (
    GRAMMAR_CONFIDENCE,
    METHOD_GRAMMAR,
    CallExtraction,
    ClassExtraction,
    ExtractionQuality,
    FileExtractionResult,
    FunctionExtraction,
    ImportedName,
    ImportExtraction,
    ParameterInfo,
)
from driftscan.ast_extractors.grammar import GrammarProbe

MAX_EXPRESSION_LENGTH = 120

Scope = tuple[tuple[str, str, str | None], ...]


def _get_node_text(node: Any) -> str:
    """Extract text from a tree-sitter node."""
    if node is None:
        return ""
    return node.text.decode("utf-8", errors="ignore")


def _find_child_by_type(node: Any, *child_types: str) -> Any | None:
    """Find first child of one of the given types."""
    if node is None:
        return None
    for child in node.children:
        if child.type in child_types:
            return child
    return None


def _find_children_by_type(node: Any, *child_types: str) -> list[Any]:
    """Find all children of the given types."""
    if node is None:
        return []
    return [child for child in node.children if child.type in child_types]


def _line(node: Any) -> int:
    return node.start_point[0] + 1


def _end_line(node: Any) -> int:
    return node.end_point[0] + 1


def _strip_quotes(text: str) -> str:
    return text.strip().strip("'\"`")


def _short(text: str) -> str:
    text = " ".join(text.split())
    return text[:MAX_EXPRESSION_LENGTH]


@dataclass(frozen=True)
class LanguageRules:
    function_types: frozenset[str]
    class_types: frozenset[str]
    call_types: frozenset[str]
    import_types: frozenset[str]
    function_name: Callable[[Any], str | None]
    parameters: Callable[[Any], list[ParameterInfo]]
    decorators: Callable[[Any], list[str]]
    is_exported: Callable[[Any, str], bool]
    return_type: Callable[[Any], str | None]
    call_target: Callable[[Any], tuple[str, str | None, bool] | None]
    imports: Callable[[Any], list[ImportExtraction]]
    constructor_names: frozenset[str] = frozenset()


# ----------------------------------------------------------------------------
# TypeScript / JavaScript
# ----------------------------------------------------------------------------

def _ts_function_name(node: Any) -> str | None:
    name_node = node.child_by_field_name("name")
    if name_node is not None:
        return _get_node_text(name_node)
    if node.type not in ("arrow_function", "function_expression", "function"):
        return None
    parent = node.parent
    if parent is None:
        return None
    if parent.type == "variable_declarator":
        return _get_node_text(parent.child_by_field_name("name")) or None
    if parent.type in ("pair", "public_field_definition", "field_definition"):
        key = parent.child_by_field_name("key") or parent.child_by_field_name("name") \
            or parent.child_by_field_name("property")
        return _strip_quotes(_get_node_text(key)) or None
    if parent.type == "assignment_expression":
        left = _get_node_text(parent.child_by_field_name("left"))
        return left.rsplit(".", 1)[-1] or None
    return None


def _ts_parameters(node: Any) -> list[ParameterInfo]:
    params_node = node.child_by_field_name("parameters")
    if params_node is None:
        # Single bare parameter arrow: x => x + 1
        single = node.child_by_field_name("parameter")
        return [ParameterInfo(name=_get_node_text(single))] if single is not None else []

    params = []
    for child in params_node.named_children:
        if child.type in ("required_parameter", "optional_parameter"):
            pattern = child.child_by_field_name("pattern")
            type_node = child.child_by_field_name("type")
            is_rest = pattern is not None and pattern.type == "rest_pattern"
            name = _get_node_text(pattern).lstrip(".") if pattern is not None else _get_node_text(child)
            params.append(ParameterInfo(
                name=name,
                type=_get_node_text(type_node).lstrip(":").strip() or None if type_node is not None else None,
                has_default=child.type == "optional_parameter" or child.child_by_field_name("value") is not None,
                is_rest=is_rest,
            ))
        elif child.type == "identifier":
            params.append(ParameterInfo(name=_get_node_text(child)))
        elif child.type == "assignment_pattern":
            params.append(ParameterInfo(name=_get_node_text(child.child_by_field_name("left")), has_default=True))
        elif child.type == "rest_pattern":
            params.append(ParameterInfo(name=_get_node_text(child).lstrip("."), is_rest=True))
        elif child.type in ("object_pattern", "array_pattern"):
            params.append(ParameterInfo(name=_short(_get_node_text(child))))
    return params


def _ts_decorators(node: Any) -> list[str]:
    found = [_get_node_text(d) for d in _find_children_by_type(node, "decorator")]
    # Method decorators are siblings preceding the method inside class_body
    preceding = []
    sibling = node.prev_named_sibling
    while sibling is not None and sibling.type == "decorator":
        preceding.append(_get_node_text(sibling))
        sibling = sibling.prev_named_sibling
    if node.parent is not None and node.parent.type == "export_statement":
        found.extend(_get_node_text(d) for d in _find_children_by_type(node.parent, "decorator"))
    return list(reversed(preceding)) + found


def _ts_is_exported(node: Any, name: str) -> bool:
    current = node.parent
    hops = 0
    while current is not None and hops < 4:
        if current.type == "export_statement":
            return True
        if current.type in ("program", "class_body", "statement_block"):
            break
        current = current.parent
        hops += 1
    if node.type == "method_definition":
        accessibility = _find_child_by_type(node, "accessibility_modifier")
        return accessibility is None or _get_node_text(accessibility) == "public"
    return False


def _ts_return_type(node: Any) -> str | None:
    type_node = node.child_by_field_name("return_type")
    if type_node is None:
        return None
    return _get_node_text(type_node).lstrip(":").strip() or None


def _ts_call_target(node: Any) -> tuple[str, str | None, bool] | None:
    if node.type == "new_expression":
        ctor = node.child_by_field_name("constructor")
        if ctor is None:
            return None
        text = _get_node_text(ctor)
        return text.rsplit(".", 1)[-1], None, True

    func = node.child_by_field_name("function")
    if func is None:
        return None
    if func.type == "identifier":
        return _get_node_text(func), None, False
    if func.type == "member_expression":
        prop = func.child_by_field_name("property")
        obj = func.child_by_field_name("object")
        if prop is None:
            return None
        return _get_node_text(prop).lstrip("#"), _short(_get_node_text(obj)) if obj is not None else None, False
    return None


def _ts_imports(node: Any) -> list[ImportExtraction]:
    source_node = node.child_by_field_name("source")
    if source_node is None:
        return []
    names = []
    clause = _find_child_by_type(node, "import_clause")
    if clause is not None:
        for child in clause.named_children:
            if child.type == "identifier":
                text = _get_node_text(child)
                names.append(ImportedName(imported="default", local=text, is_default=True))
            elif child.type == "namespace_import":
                ident = _find_child_by_type(child, "identifier")
                text = _get_node_text(ident)
                names.append(ImportedName(imported="*", local=text, is_namespace=True))
            elif child.type == "named_imports":
                for spec in _find_children_by_type(child, "import_specifier"):
                    imported = _get_node_text(spec.child_by_field_name("name"))
                    alias = spec.child_by_field_name("alias")
                    names.append(ImportedName(imported=imported, local=_get_node_text(alias) if alias else imported))
    is_type_only = any(c.type == "type" for c in node.children)
    return [ImportExtraction(
        source=_strip_quotes(_get_node_text(source_node)),
        line=_line(node),
        names=names,
        is_type_only=is_type_only,
    )]


# ----------------------------------------------------------------------------
# Java
# ----------------------------------------------------------------------------

def _field_name(node: Any) -> str | None:
    name_node = node.child_by_field_name("name")
    return _get_node_text(name_node) if name_node is not None else None


def _modifier_texts(node: Any, modifier_type: str = "modifiers") -> list[str]:
    mods = _find_child_by_type(node, modifier_type)
    return [_get_node_text(c) for c in mods.children] if mods is not None else []


def _java_parameters(node: Any) -> list[ParameterInfo]:
    params_node = node.child_by_field_name("parameters")
    params = []
    for child in params_node.named_children if params_node is not None else []:
        if child.type == "formal_parameter":
            params.append(ParameterInfo(
                name=_get_node_text(child.child_by_field_name("name")),
                type=_get_node_text(child.child_by_field_name("type")) or None,
            ))
        elif child.type == "spread_parameter":
            declarator = _find_child_by_type(child, "variable_declarator")
            name_node = declarator.child_by_field_name("name") if declarator is not None else None
            type_node = _find_child_by_type(child, "type_identifier", "generic_type", "integral_type")
            params.append(ParameterInfo(
                name=_get_node_text(name_node) or _get_node_text(child),
                type=_get_node_text(type_node) or None,
                is_rest=True,
            ))
    return params


def _java_decorators(node: Any) -> list[str]:
    mods = _find_child_by_type(node, "modifiers")
    if mods is None:
        return []
    return [_get_node_text(c) for c in mods.children if c.type in ("marker_annotation", "annotation")]


def _java_is_exported(node: Any, name: str) -> bool:
    return "public" in _modifier_texts(node)


def _java_return_type(node: Any) -> str | None:
    type_node = node.child_by_field_name("type")
    return _get_node_text(type_node) or None if type_node is not None else None


def _java_call_target(node: Any) -> tuple[str, str | None, bool] | None:
    if node.type == "object_creation_expression":
        type_node = node.child_by_field_name("type")
        if type_node is None:
            return None
        return _get_node_text(type_node).split("<", 1)[0].rsplit(".", 1)[-1], None, True
    name = node.child_by_field_name("name")
    if name is None:
        return None
    obj = node.child_by_field_name("object")
    return _get_node_text(name), _short(_get_node_text(obj)) if obj is not None else None, False


def _java_imports(node: Any) -> list[ImportExtraction]:
    text = _get_node_text(node).replace("import", "", 1).replace("static ", "").strip().rstrip(";").strip()
    if not text:
        return []
    last = text.rsplit(".", 1)[-1]
    name = ImportedName(imported="*", local="*", is_namespace=True) if last == "*" \
        else ImportedName(imported=last, local=last)
    return [ImportExtraction(source=text, line=_line(node), names=[name])]


# ----------------------------------------------------------------------------
# C#
# ----------------------------------------------------------------------------

def _csharp_parameters(node: Any) -> list[ParameterInfo]:
    params_node = node.child_by_field_name("parameters") or _find_child_by_type(node, "parameter_list")
    params = []
    for child in params_node.named_children if params_node is not None else []:
        if child.type == "parameter":
            type_node = child.child_by_field_name("type")
            params.append(ParameterInfo(
                name=_get_node_text(child.child_by_field_name("name")),
                type=_get_node_text(type_node) or None if type_node is not None else None,
                has_default=_find_child_by_type(child, "equals_value_clause") is not None,
                is_rest=any(_get_node_text(c) == "params" for c in child.children),
            ))
    return params


def _csharp_decorators(node: Any) -> list[str]:
    return [_get_node_text(a) for a in _find_children_by_type(node, "attribute_list")]


def _csharp_modifiers(node: Any) -> list[str]:
    return [_get_node_text(c) for c in node.children if c.type == "modifier"] + _modifier_texts(node)


def _csharp_is_exported(node: Any, name: str) -> bool:
    return "public" in _csharp_modifiers(node)


def _csharp_return_type(node: Any) -> str | None:
    type_node = node.child_by_field_name("returns") or node.child_by_field_name("type")
    return _get_node_text(type_node) or None if type_node is not None else None


def _csharp_call_target(node: Any) -> tuple[str, str | None, bool] | None:
    if node.type == "object_creation_expression":
        type_node = node.child_by_field_name("type")
        if type_node is None:
            return None
        return _get_node_text(type_node).split("<", 1)[0].rsplit(".", 1)[-1], None, True

    func = node.child_by_field_name("function")
    if func is None:
        return None
    if func.type in ("identifier", "generic_name"):
        return _get_node_text(func).split("<", 1)[0], None, False
    if func.type == "member_access_expression":
        name = func.child_by_field_name("name")
        expr = func.child_by_field_name("expression")
        if name is None:
            return None
        return _get_node_text(name).split("<", 1)[0], _short(_get_node_text(expr)) if expr is not None else None, False
    if func.type == "conditional_access_expression":
        binding = _find_child_by_type(func, "member_binding_expression")
        name = binding.child_by_field_name("name") if binding is not None else None
        if name is None:
            return None
        return _get_node_text(name).split("<", 1)[0], _short(_get_node_text(func.child_by_field_name("condition"))), False
    return None


def _csharp_imports(node: Any) -> list[ImportExtraction]:
    target = None
    for child in node.named_children:
        if child.type in ("qualified_name", "identifier", "name"):
            target = child
    if target is None:
        return []
    text = _get_node_text(target)
    alias = node.child_by_field_name("name")
    local = _get_node_text(alias) if alias is not None and alias != target else text.rsplit(".", 1)[-1]
    return [ImportExtraction(
        source=text,
        line=_line(node),
        names=[ImportedName(imported="*", local=local, is_namespace=True)],
    )]


# ----------------------------------------------------------------------------
# PHP
# ----------------------------------------------------------------------------

def _php_parameters(node: Any) -> list[ParameterInfo]:
    params_node = node.child_by_field_name("parameters")
    params = []
    for child in params_node.named_children if params_node is not None else []:
        if child.type in ("simple_parameter", "variadic_parameter", "property_promotion_parameter"):
            type_node = child.child_by_field_name("type")
            params.append(ParameterInfo(
                name=_get_node_text(child.child_by_field_name("name")).lstrip("$"),
                type=_get_node_text(type_node) or None if type_node is not None else None,
                has_default=child.child_by_field_name("default_value") is not None,
                is_rest=child.type == "variadic_parameter",
            ))
    return params


def _php_decorators(node: Any) -> list[str]:
    found = []
    attributes = _find_child_by_type(node, "attribute_list", "attributes")
    if attributes is not None:
        found.append(_get_node_text(attributes))
    comment = node.prev_sibling
    if comment is not None and comment.type == "comment":
        text = _get_node_text(comment)
        found.extend(line.strip().lstrip("*").strip() for line in text.splitlines()
                     if line.strip().lstrip("*").strip().startswith("@"))
    return found


def _php_is_exported(node: Any, name: str) -> bool:
    if node.type == "function_definition":
        return True
    visibility = _find_child_by_type(node, "visibility_modifier")
    return visibility is None or _get_node_text(visibility) == "public"


def _php_return_type(node: Any) -> str | None:
    type_node = node.child_by_field_name("return_type")
    return _get_node_text(type_node).lstrip(":").strip() or None if type_node is not None else None


def _php_call_target(node: Any) -> tuple[str, str | None, bool] | None:
    if node.type == "object_creation_expression":
        type_node = _find_child_by_type(node, "name", "qualified_name")
        if type_node is None:
            return None
        return _get_node_text(type_node).rsplit("\\", 1)[-1], None, True
    if node.type == "function_call_expression":
        func = node.child_by_field_name("function")
        if func is None or func.type not in ("name", "qualified_name"):
            return None
        return _get_node_text(func).rsplit("\\", 1)[-1], None, False
    if node.type == "scoped_call_expression":
        name = node.child_by_field_name("name")
        scope = node.child_by_field_name("scope")
        if name is None:
            return None
        return _get_node_text(name), _get_node_text(scope) if scope is not None else None, False
    name = node.child_by_field_name("name")
    obj = node.child_by_field_name("object")
    if name is None or name.type != "name":
        return None
    return _get_node_text(name), _short(_get_node_text(obj)) if obj is not None else None, False


def _php_imports(node: Any) -> list[ImportExtraction]:
    imports = []
    for clause in _find_children_by_type(node, "namespace_use_clause"):
        text = _get_node_text(clause)
        parts = text.split(" as ")
        source = parts[0].strip().lstrip("\\")
        local = parts[1].strip() if len(parts) > 1 else source.rsplit("\\", 1)[-1]
        imports.append(ImportExtraction(
            source=source,
            line=_line(clause),
            names=[ImportedName(imported=source.rsplit("\\", 1)[-1], local=local)],
        ))
    return imports


# ----------------------------------------------------------------------------
# Rule table
# ----------------------------------------------------------------------------

_TS_RULES = LanguageRules(
    function_types=frozenset({
        "function_declaration", "generator_function_declaration", "method_definition",
        "arrow_function", "function_expression", "function",
    }),
    class_types=frozenset({"class_declaration", "abstract_class_declaration", "class"}),
    call_types=frozenset({"call_expression", "new_expression"}),
    import_types=frozenset({"import_statement"}),
    function_name=_ts_function_name,
    parameters=_ts_parameters,
    decorators=_ts_decorators,
    is_exported=_ts_is_exported,
    return_type=_ts_return_type,
    call_target=_ts_call_target,
    imports=_ts_imports,
    constructor_names=frozenset({"constructor"}),
)

LANGUAGE_RULES: dict[str, LanguageRules] = {
    "typescript": _TS_RULES,
    "javascript": _TS_RULES,
    "java": LanguageRules(
        function_types=frozenset({"method_declaration", "constructor_declaration"}),
        class_types=frozenset({"class_declaration", "interface_declaration", "enum_declaration",
                               "record_declaration"}),
        call_types=frozenset({"method_invocation", "object_creation_expression"}),
        import_types=frozenset({"import_declaration"}),
        function_name=_field_name,
        parameters=_java_parameters,
        decorators=_java_decorators,
        is_exported=_java_is_exported,
        return_type=_java_return_type,
        call_target=_java_call_target,
        imports=_java_imports,
    ),
    "csharp": LanguageRules(
        function_types=frozenset({"method_declaration", "constructor_declaration", "local_function_statement"}),
        class_types=frozenset({"class_declaration", "interface_declaration", "struct_declaration",
                               "record_declaration"}),
        call_types=frozenset({"invocation_expression", "object_creation_expression"}),
        import_types=frozenset({"using_directive"}),
        function_name=_field_name,
        parameters=_csharp_parameters,
        decorators=_csharp_decorators,
        is_exported=_csharp_is_exported,
        return_type=_csharp_return_type,
        call_target=_csharp_call_target,
        imports=_csharp_imports,
    ),
    "php": LanguageRules(
        function_types=frozenset({"function_definition", "method_declaration"}),
        class_types=frozenset({"class_declaration", "interface_declaration", "trait_declaration"}),
        call_types=frozenset({"function_call_expression", "member_call_expression",
                              "nullsafe_member_call_expression", "scoped_call_expression",
                              "object_creation_expression"}),
        import_types=frozenset({"namespace_use_declaration"}),
        function_name=_field_name,
        parameters=_php_parameters,
        decorators=_php_decorators,
        is_exported=_php_is_exported,
        return_type=_php_return_type,
        call_target=_php_call_target,
        imports=_php_imports,
        constructor_names=frozenset({"__construct"}),
    ),
}


def _require_import(node: Any, target: tuple[str, str | None, bool]) -> ImportExtraction | None:
    """CommonJS ``const x = require('mod')`` recorded as an import."""
    name, receiver, _ = target
    if name != "require" or receiver is not None:
        return None
    args = node.child_by_field_name("arguments")
    first = args.named_children[0] if args is not None and args.named_children else None
    if first is None or first.type not in ("string", "template_string"):
        return None
    local = None
    if node.parent is not None and node.parent.type == "variable_declarator":
        local = _get_node_text(node.parent.child_by_field_name("name"))
    source = _strip_quotes(_get_node_text(first))
    names = [ImportedName(imported="*", local=local, is_namespace=True)] if local else []
    return ImportExtraction(source=source, line=_line(node), names=names)


class TreeSitterExtractor:
    """Grammar extractor for one tree-sitter backed language."""

    def __init__(self, language: str, probe: GrammarProbe):
        if language not in LANGUAGE_RULES:
            raise ValueError(f"No tree-sitter rules for language: {language}")
        self.language = language
        self.rules = LANGUAGE_RULES[language]
        self.probe = probe

    def is_available(self, file_path: str = "") -> bool:
        return self.probe.is_available(self._grammar_language(file_path))

    def _grammar_language(self, file_path: str) -> str:
        if self.language == "typescript" and file_path.endswith(".tsx"):
            return "tsx"
        return self.language

    def extract(self, source: str, file_path: str) -> FileExtractionResult:
        """Parse ``source`` and return its facts.

        Raises:
            RuntimeError: when no grammar is available for the language
        """
        parser = self.probe.get_parser(self._grammar_language(file_path))
        if parser is None:
            raise RuntimeError(f"grammar engine unavailable for {self.language}")

        data = source.encode("utf-8")
        tree = parser.parse(data)
        root = tree.root_node
        result = FileExtractionResult(file=file_path, language=self.language)
        error_nodes, error_bytes = self._walk(root, result)

        completeness = 1.0
        warnings = []
        if root.has_error:
            completeness = max(0.0, 1.0 - error_bytes / max(len(data), 1))
            warnings.append(f"{error_nodes} syntax error region(s)")
        result.quality = ExtractionQuality.build(
            METHOD_GRAMMAR,
            completeness,
            GRAMMAR_CONFIDENCE,
            failure_reason=f"syntax errors in {error_nodes} region(s)" if error_nodes else None,
            parse_errors=error_nodes,
            items_extracted=result.item_count,
            warnings=warnings,
        )
        return result.sort()

    def _walk(self, root: Any, result: FileExtractionResult) -> tuple[int, int]:
        rules = self.rules
        error_nodes = 0
        error_bytes = 0
        stack: list[tuple[Any, Scope]] = [(root, ())]

        while stack:
            node, scope = stack.pop()
            node_type = node.type
            child_scope = scope

            if node_type == "ERROR" or node.is_missing:
                error_nodes += 1
                error_bytes += max(node.end_byte - node.start_byte, 1)
            elif node_type in rules.import_types:
                result.imports.extend(rules.imports(node))
                continue
            elif node_type in rules.class_types:
                name = _field_name(node)
                if name:
                    qualified = f"{scope[-1][1]}.{name}" if scope else name
                    result.classes.append(self._class(node, name))
                    child_scope = scope + (("class", qualified, name),)
            elif node_type in rules.function_types:
                name = rules.function_name(node)
                if name:
                    func = self._function(node, name, scope)
                    result.functions.append(func)
                    child_scope = scope + (("function", func.qualified_name, func.class_name),)
            elif node_type in rules.call_types:
                self._call(node, scope, result)

            for child in reversed(node.children):
                stack.append((child, child_scope))

        return error_nodes, error_bytes

    def _class(self, node: Any, name: str) -> ClassExtraction:
        bases = []
        for field_name in ("superclass", "superclasses", "interfaces", "bases", "base_clause"):
            base_node = node.child_by_field_name(field_name)
            if base_node is not None:
                bases.append(_short(_get_node_text(base_node)))
        heritage = _find_child_by_type(node, "class_heritage", "base_list", "base_clause")
        if heritage is not None and not bases:
            bases.append(_short(_get_node_text(heritage)))
        return ClassExtraction(
            name=name,
            start_line=_line(node),
            end_line=_end_line(node),
            base_classes=bases,
            decorators=self.rules.decorators(node),
            is_exported=self.rules.is_exported(node, name),
        )

    def _function(self, node: Any, name: str, scope: Scope) -> FunctionExtraction:
        enclosing = scope[-1] if scope else None
        in_class = enclosing is not None and enclosing[0] == "class"
        class_name = enclosing[2] if enclosing is not None else None
        qualified = f"{enclosing[1]}.{name}" if enclosing else name
        is_constructor = in_class and (
            name in self.rules.constructor_names
            or node.type == "constructor_declaration"
            or (self.language in ("java", "csharp") and name == class_name)
        )
        return FunctionExtraction(
            name=name,
            qualified_name=qualified,
            start_line=_line(node),
            end_line=_end_line(node),
            parameters=self.rules.parameters(node),
            return_type=self.rules.return_type(node),
            class_name=class_name if in_class else None,
            parent=enclosing[1] if enclosing else None,
            is_method=in_class,
            is_constructor=is_constructor,
            is_exported=self.rules.is_exported(node, name),
            is_async=any(_get_node_text(c) == "async" for c in node.children[:3])
            or "async" in _modifier_texts(node),
            decorators=self.rules.decorators(node),
        )

    def _call(self, node: Any, scope: Scope, result: FileExtractionResult) -> None:
        target = self.rules.call_target(node)
        if target is None:
            return
        name, receiver, is_constructor = target
        if not name:
            return
        if self.language in ("typescript", "javascript"):
            required = _require_import(node, target)
            if required is not None:
                result.imports.append(required)
                return

        caller = None
        for kind, qualified, _ in reversed(scope):
            if kind == "function":
                caller = qualified
                break
        args = node.child_by_field_name("arguments") or _find_child_by_type(node, "arguments", "argument_list")
        result.calls.append(CallExtraction(
            callee_name=name,
            line=_line(node),
            column=node.start_point[1],
            receiver=receiver,
            full_expression=_short(_get_node_text(node).split("(", 1)[0]),
            argument_count=len(args.named_children) if args is not None else 0,
            is_method_call=receiver is not None,
            is_constructor_call=is_constructor,
            caller=caller,
        ))
