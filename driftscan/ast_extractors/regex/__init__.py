"""Pattern-based fallback extractors, one per language."""

from driftscan.ast_extractors.regex.base import BaseRegexExtractor
from driftscan.ast_extractors.regex.csharp import CSharpRegexExtractor
from driftscan.ast_extractors.regex.java import JavaRegexExtractor
from driftscan.ast_extractors.regex.php import PhpRegexExtractor
from driftscan.ast_extractors.regex.python import PythonRegexExtractor
from driftscan.ast_extractors.regex.typescript import JavaScriptRegexExtractor, TypeScriptRegexExtractor

REGEX_EXTRACTORS: dict[str, type[BaseRegexExtractor]] = {
    "python": PythonRegexExtractor,
    "typescript": TypeScriptRegexExtractor,
    "javascript": JavaScriptRegexExtractor,
    "java": JavaRegexExtractor,
    "csharp": CSharpRegexExtractor,
    "php": PhpRegexExtractor,
}


def get_regex_extractor(language: str) -> BaseRegexExtractor | None:
    extractor_cls = REGEX_EXTRACTORS.get(language)
    return extractor_cls() if extractor_cls else None


__all__ = ["BaseRegexExtractor", "REGEX_EXTRACTORS", "get_regex_extractor"]
