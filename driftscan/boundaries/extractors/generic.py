"""Framework-agnostic accessors that name a column as ``"table.field"``.

Covers thin data layers such as ``db.readField("users.ssn")`` or
``store.update('accounts.balance', v)`` in any language. The method name
decides the operation, so calls whose name implies no data access are ignored.
"""

import re

from driftscan.boundaries.extractors.base import GENERIC_CONFIDENCE, BaseDataAccessExtractor, detect_operation

_ACCESSOR = re.compile(r"\b(\w+)\s*\(\s*[\"'`]([A-Za-z_]\w*)\.([A-Za-z_]\w*)[\"'`]")
# "name.ext" strings are file names, not columns
_FILE_EXTENSIONS = frozenset({
    "json", "yml", "yaml", "txt", "csv", "html", "htm", "js", "ts", "tsx", "jsx", "py", "php", "java", "cs",
    "xml", "md", "log", "sql", "ini", "cfg", "toml", "env", "png", "jpg", "svg", "css", "lock",
})
_IGNORED_CALLS = frozenset({
    "require", "import", "include", "require_once", "include_once", "open", "load_module", "getattr",
    "setattr", "hasattr", "get_env", "getenv", "env", "config", "gettext", "trans", "t", "i18n",
})


class GenericAccessorExtractor(BaseDataAccessExtractor):
    languages = ("python", "typescript", "javascript", "java", "csharp", "php")
    framework = "generic"

    def extract(self, source, file_path, language: str | None = None):
        result = self.new_result(file_path, language)
        code = self.preprocess(source, language) if language else source
        for match in _ACCESSOR.finditer(code):
            method, table, field = match.groups()
            if method in _IGNORED_CALLS or field.lower() in _FILE_EXTENSIONS:
                continue
            operation = detect_operation(method)
            if not operation:
                continue
            point = self.make_point(file_path, code, match.start(), table, operation, [field],
                                    GENERIC_CONFIDENCE, validate=True)
            if point:
                result.access_points.append(point)
        return result
