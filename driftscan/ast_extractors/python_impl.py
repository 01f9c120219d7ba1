"""Grammar-based extraction for Python using CPython's ``ast`` module.

CPython's own parser is the authoritative Python grammar, so no tree-sitter
grammar is needed here. A SyntaxError propagates to the hybrid extractor,
which records it and falls back to pattern extraction.
"""

import ast

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

MAX_EXPRESSION_LENGTH = 120


def _unparse(node: ast.AST | None) -> str | None:
    if node is None:
        return None
    try:
        return ast.unparse(node)
    except (ValueError, TypeError, AttributeError, RecursionError):
        return None


def _parameters(args: ast.arguments) -> list[ParameterInfo]:
    params = []
    positional = list(getattr(args, "posonlyargs", [])) + list(args.args)
    defaults_start = len(positional) - len(args.defaults)
    for index, arg in enumerate(positional):
        params.append(ParameterInfo(
            name=arg.arg,
            type=_unparse(arg.annotation),
            has_default=index >= defaults_start,
        ))
    if args.vararg:
        params.append(ParameterInfo(name=args.vararg.arg, type=_unparse(args.vararg.annotation), is_rest=True))
    for arg, default in zip(args.kwonlyargs, args.kw_defaults):
        params.append(ParameterInfo(name=arg.arg, type=_unparse(arg.annotation), has_default=default is not None))
    if args.kwarg:
        params.append(ParameterInfo(name=args.kwarg.arg, type=_unparse(args.kwarg.annotation), is_rest=True))
    return params


class _PythonVisitor(ast.NodeVisitor):
    """Walks a module keeping a scope stack of (kind, qualified_name, class_name)."""

    def __init__(self, result: FileExtractionResult):
        self.result = result
        self.scopes: list[tuple[str, str, str | None]] = []

    def _qualify(self, name: str) -> str:
        return f"{self.scopes[-1][1]}.{name}" if self.scopes else name

    def _current_function(self) -> str | None:
        for kind, qualified, _ in reversed(self.scopes):
            if kind == "function":
                return qualified
        return None

    def visit_ClassDef(self, node: ast.ClassDef) -> None:
        qualified = self._qualify(node.name)
        self.result.classes.append(ClassExtraction(
            name=node.name,
            start_line=node.lineno,
            end_line=getattr(node, "end_lineno", node.lineno) or node.lineno,
            base_classes=[b for b in (_unparse(base) for base in node.bases) if b],
            decorators=[f"@{d}" for d in (_unparse(dec) for dec in node.decorator_list) if d],
            is_exported=not node.name.startswith("_") and not self.scopes,
        ))
        self.scopes.append(("class", qualified, node.name))
        self.generic_visit(node)
        self.scopes.pop()

    def _visit_function(self, node: ast.FunctionDef | ast.AsyncFunctionDef) -> None:
        qualified = self._qualify(node.name)
        enclosing = self.scopes[-1] if self.scopes else None
        in_class = enclosing is not None and enclosing[0] == "class"
        self.result.functions.append(FunctionExtraction(
            name=node.name,
            qualified_name=qualified,
            start_line=node.lineno,
            end_line=getattr(node, "end_lineno", node.lineno) or node.lineno,
            parameters=_parameters(node.args),
            return_type=_unparse(node.returns),
            class_name=enclosing[2] if in_class else None,
            parent=enclosing[1] if enclosing else None,
            is_method=in_class,
            is_constructor=in_class and node.name == "__init__",
            is_exported=not node.name.startswith("_") and (not self.scopes or in_class and len(self.scopes) == 1),
            is_async=isinstance(node, ast.AsyncFunctionDef),
            decorators=[f"@{d}" for d in (_unparse(dec) for dec in node.decorator_list) if d],
        ))
        # Decorators and defaults evaluate in the enclosing scope
        for dec in node.decorator_list:
            self.visit(dec)
        for default in list(node.args.defaults) + [d for d in node.args.kw_defaults if d is not None]:
            self.visit(default)
        self.scopes.append(("function", qualified, enclosing[2] if in_class else None))
        for stmt in node.body:
            self.visit(stmt)
        self.scopes.pop()

    visit_FunctionDef = _visit_function
    visit_AsyncFunctionDef = _visit_function

    def visit_Call(self, node: ast.Call) -> None:
        func = node.func
        receiver = None
        if isinstance(func, ast.Name):
            callee = func.id
        elif isinstance(func, ast.Attribute):
            callee = func.attr
            receiver = _unparse(func.value)
        else:
            callee = None

        if callee:
            expression = _unparse(func) or callee
            self.result.calls.append(CallExtraction(
                callee_name=callee,
                line=node.lineno,
                column=node.col_offset,
                receiver=receiver[:MAX_EXPRESSION_LENGTH] if receiver else None,
                full_expression=expression[:MAX_EXPRESSION_LENGTH],
                argument_count=len(node.args) + len(node.keywords),
                is_method_call=receiver is not None,
                is_constructor_call=callee[:1].isupper(),
                caller=self._current_function(),
            ))
        self.generic_visit(node)

    def visit_Import(self, node: ast.Import) -> None:
        for alias in node.names:
            local = alias.asname or alias.name.split(".")[0]
            self.result.imports.append(ImportExtraction(
                source=alias.name,
                line=node.lineno,
                names=[ImportedName(imported=alias.name, local=local, is_namespace=True)],
            ))

    def visit_ImportFrom(self, node: ast.ImportFrom) -> None:
        source = "." * (node.level or 0) + (node.module or "")
        self.result.imports.append(ImportExtraction(
            source=source,
            line=node.lineno,
            names=[ImportedName(imported=a.name, local=a.asname or a.name) for a in node.names],
        ))


class PythonGrammarExtractor:
    """Extract functions, calls, imports and classes from Python source."""

    language = "python"

    def extract(self, source: str, file_path: str) -> FileExtractionResult:
        """Parse ``source`` and return its facts.

        Raises:
            SyntaxError: when CPython cannot parse the file
        """
        tree = ast.parse(source, filename=file_path)
        result = FileExtractionResult(file=file_path, language=self.language)
        _PythonVisitor(result).visit(tree)
        result.quality = ExtractionQuality.build(
            METHOD_GRAMMAR, 1.0, GRAMMAR_CONFIDENCE, items_extracted=result.item_count,
        )
        return result.sort()
