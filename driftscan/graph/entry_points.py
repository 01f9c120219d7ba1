"""Entry-point detection.

An entry point is a function reachable from outside the codebase. Two
sources declare them:

- configuration: ``{"file": <glob>, "function": <glob>}`` patterns
- framework convention: route decorators/attributes, controller classes,
  Express-style ``(req, res)`` handlers and ``main`` functions

The matcher returns the reason a function qualifies so reports can explain
why something counts as externally exposed.
"""

import fnmatch
import re
from typing import Any

from driftscan.ast_extractors.base import ClassExtraction
from driftscan.graph.types import FunctionNode

ROUTE_MARKERS = (
    # Flask / FastAPI / Starlette
    "@app.route", "@app.get", "@app.post", "@app.put", "@app.delete", "@app.patch",
    "@router.", "@blueprint.route", "@bp.route", "@api.route", "@api_view",
    # Spring
    "@GetMapping", "@PostMapping", "@PutMapping", "@DeleteMapping", "@PatchMapping",
    "@RequestMapping", "@RestController",
    # ASP.NET (attributes use square brackets)
    "[HttpGet", "[HttpPost", "[HttpPut", "[HttpDelete", "[HttpPatch", "[Route", "[ApiController",
    # Symfony / PHP attributes and annotations
    "#[Route", "@Route",
)

# NestJS decorators are matched exactly so @GetUser() style custom decorators don't qualify
_NEST_DECORATOR = re.compile(r"^@(Get|Post|Put|Delete|Patch|Options|Head|All|Controller)\s*(\(|$)")

CONTROLLER_CLASS_MARKERS = ("@RestController", "@Controller", "[ApiController", "[Controller")
_CONTROLLER_NAME = re.compile(r"(Controller|Handler|Resource|Endpoint)$", re.IGNORECASE)
NON_ROUTE_METHODS = frozenset({
    "constructor", "__construct", "__destruct", "__init__", "middleware", "authorize",
    "rules", "messages", "boot", "register", "handle", "dispose", "tostring", "equals", "hashcode",
})

_REQUEST_PARAMS = frozenset({"req", "request"})
_RESPONSE_PARAMS = frozenset({"res", "response", "reply"})


class EntryPointMatcher:
    """Decides which functions are entry points and why."""

    def __init__(self, patterns: list[dict[str, str]] | None = None, framework_markers: bool = True,
                 main_functions: bool = True, exported_functions: bool = False,
                 explicit_ids: set[str] | None = None):
        self.patterns = [p for p in (patterns or []) if isinstance(p, dict)]
        self.framework_markers = framework_markers
        self.main_functions = main_functions
        self.exported_functions = exported_functions
        self.explicit_ids = set(explicit_ids or ())

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "EntryPointMatcher":
        section = config.get("entry_points", {})
        return cls(
            patterns=section.get("patterns", []),
            framework_markers=section.get("framework_markers", True),
            main_functions=section.get("main_functions", True),
            exported_functions=section.get("exported_functions", False),
        )

    def match(self, node: FunctionNode, owner_class: ClassExtraction | None = None) -> str | None:
        """Reason ``node`` is an entry point, or None."""
        if node.id in self.explicit_ids:
            return "declared"

        for pattern in self.patterns:
            file_glob = pattern.get("file", "*")
            func_glob = pattern.get("function", "*")
            if fnmatch.fnmatch(node.file, file_glob) and (
                fnmatch.fnmatch(node.name, func_glob) or fnmatch.fnmatch(node.qualified_name, func_glob)
            ):
                return f"configured: {file_glob}::{func_glob}"

        if self.framework_markers:
            reason = self._framework_reason(node, owner_class)
            if reason:
                return reason

        if self.main_functions and node.name == "main" and not node.is_constructor:
            return "main function"

        if self.exported_functions and node.is_exported and not node.class_name:
            return "exported function"
        return None

    def _framework_reason(self, node: FunctionNode, owner_class: ClassExtraction | None) -> str | None:
        for decorator in node.decorators:
            text = decorator.strip()
            if any(text.startswith(marker) or marker in text for marker in ROUTE_MARKERS):
                return f"route marker {text.split('(', 1)[0]}"
            if node.language in ("typescript", "javascript") and _NEST_DECORATOR.match(text):
                return f"route marker {text.split('(', 1)[0]}"

        if node.class_name and not node.is_constructor and node.is_exported \
                and node.name.lower() not in NON_ROUTE_METHODS and not node.name.startswith("_"):
            class_decorators = owner_class.decorators if owner_class is not None else []
            if any(m in d for d in class_decorators for m in CONTROLLER_CLASS_MARKERS):
                return f"controller method of {node.class_name}"
            if _CONTROLLER_NAME.search(node.class_name):
                return f"controller method of {node.class_name}"

        if node.language in ("typescript", "javascript") and len(node.parameters) >= 2:
            first = node.parameters[0].name.lower()
            second = node.parameters[1].name.lower()
            if first in _REQUEST_PARAMS and second in _RESPONSE_PARAMS:
                return "request handler signature"

        if node.language == "python" and node.file.rsplit("/", 1)[-1] == "views.py" \
                and node.parameters and node.parameters[0].name == "request" and not node.class_name:
            return "django view"
        return None
