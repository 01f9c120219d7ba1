"""Grammar engine capability probe.

Answers "can this language be parsed with a real grammar right now?" once per
language and remembers the answer. Python is parsed with CPython's ``ast`` and
is always available; every other language needs a tree-sitter grammar from
``tree_sitter_language_pack``.

The orchestrator receives a probe explicitly at scan start. A process-wide
default exists for convenience and is reset with ``reset_grammar_probe()``;
tests that need "grammar unavailable" pass ``GrammarProbe(disabled={...})``.
"""

import threading
from typing import Any

from driftscan.utils.logging import logger

# Grammar names tried in order for each language tag
GRAMMAR_NAMES: dict[str, tuple[str, ...]] = {
    "typescript": ("typescript",),
    "tsx": ("tsx", "typescript"),
    "javascript": ("javascript", "typescript"),
    "java": ("java",),
    "csharp": ("csharp", "c_sharp"),
    "php": ("php",),
}


class GrammarProbe:
    """Memoized availability of grammar engines per language."""

    def __init__(self, disabled: set[str] | frozenset[str] | None = None):
        self.disabled = frozenset(disabled or ())
        self._grammar: dict[str, str | None] = {}
        self._lock = threading.Lock()

    def is_available(self, language: str) -> bool:
        if language in self.disabled:
            return False
        if language == "python":
            return True
        return self._resolve(language) is not None

    def grammar_name(self, language: str) -> str | None:
        """The tree-sitter grammar name backing ``language``, if any."""
        if language in self.disabled or language == "python":
            return None
        return self._resolve(language)

    def get_parser(self, language: str) -> Any | None:
        """A fresh tree-sitter parser for ``language`` (parsers are not shared across threads)."""
        name = self.grammar_name(language)
        if name is None:
            return None
        from tree_sitter_language_pack import get_parser

        return get_parser(name)

    def snapshot(self) -> dict[str, bool]:
        """Availability of every supported language, probing as needed."""
        languages = ["python", *GRAMMAR_NAMES]
        return {lang: self.is_available(lang) for lang in languages}

    def reset(self) -> None:
        """Forget every memoized answer."""
        with self._lock:
            self._grammar.clear()

    def _resolve(self, language: str) -> str | None:
        with self._lock:
            if language in self._grammar:
                return self._grammar[language]
            self._grammar[language] = self._probe(language)
            return self._grammar[language]

    def _probe(self, language: str) -> str | None:
        candidates = GRAMMAR_NAMES.get(language)
        if not candidates:
            return None
        try:
            from tree_sitter_language_pack import get_parser
        except ImportError:
            logger.warning(
                f"[EXTRACT] Grammar engine unavailable for {language} "
                "(tree-sitter-language-pack not installed), using fallback"
            )
            return None

        errors = []
        for name in candidates:
            try:
                get_parser(name)
                logger.debug(f"[EXTRACT] Grammar '{name}' available for {language}")
                return name
            except Exception as e:  # language pack raises LookupError/ValueError/RuntimeError by version
                errors.append(f"{name}: {e}")
        logger.warning(f"[EXTRACT] Grammar engine unavailable for {language}, using fallback ({'; '.join(errors)})")
        return None


_default_probe: GrammarProbe | None = None
_default_lock = threading.Lock()


def get_grammar_probe() -> GrammarProbe:
    """The process-wide probe, created on first use."""
    global _default_probe
    with _default_lock:
        if _default_probe is None:
            _default_probe = GrammarProbe()
        return _default_probe


def reset_grammar_probe() -> None:
    """Drop the process-wide probe so the next call re-probes every grammar."""
    global _default_probe
    with _default_lock:
        _default_probe = None
