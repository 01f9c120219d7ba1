"""Tests for the extraction layer: grammar probe, hybrid policy, pattern fallback."""

import pytest

from driftscan.ast_extractors.base import (
    GRAMMAR_CONFIDENCE,
    PATTERN_CONFIDENCE,
    ExtractionQuality,
    detect_language,
    merge_qualities,
)
from driftscan.ast_extractors.grammar import GrammarProbe, get_grammar_probe, reset_grammar_probe
from driftscan.ast_extractors.hybrid import HybridExtractor
from driftscan.ast_extractors.regex import get_regex_extractor
from driftscan.exceptions import ConfigurationError

PYTHON_SOURCE = '''\
import os
from app.repo import save as persist


class UserService:
    def get(self, user_id):
        return self.repo.find(user_id)

    async def create(self, data):
        persist(data)


def main():
    UserService().get(1)
'''

TS_SOURCE = '''\
import { Repo } from "./repo";

export class UserService {
  constructor(private repo: Repo) {}

  async findUser(id: string): Promise<User> {
    return this.repo.load(id);
  }
}

export const handler = async (req, res) => {
  const svc = new UserService(new Repo());
  res.json(await svc.findUser(req.params.id));
};

export function main() {
  handler(null, null);
}
'''


class TestLanguageDetection:
    @pytest.mark.parametrize("path,language", [
        ("a/b.py", "python"),
        ("web/App.tsx", "typescript"),
        ("lib/x.mjs", "javascript"),
        ("Main.java", "java"),
        ("Api/UsersController.cs", "csharp"),
        ("app/Models/User.php", "php"),
        ("README.md", None),
    ])
    def test_detect_language(self, path, language):
        """File extensions map to language tags."""
        assert detect_language(path) == language


class TestGrammarProbe:
    """Memoized, resettable capability probe."""

    def test_python_always_available(self):
        """CPython's own parser backs Python."""
        assert GrammarProbe().is_available("python") is True

    def test_disabled_languages(self):
        """Disabled languages report unavailable without probing."""
        probe = GrammarProbe(disabled={"python", "java"})
        assert probe.is_available("python") is False
        assert probe.is_available("java") is False
        assert probe.get_parser("java") is None

    def test_answers_are_memoized_until_reset(self, monkeypatch):
        """Each language is probed once; reset forgets every answer."""
        calls = []

        def fake_probe(self, language):
            calls.append(language)
            return None

        monkeypatch.setattr(GrammarProbe, "_probe", fake_probe)
        probe = GrammarProbe()
        probe.is_available("java")
        probe.is_available("java")
        assert calls == ["java"], f"Expected one probe, got {calls}"

        probe.reset()
        probe.is_available("java")
        assert calls == ["java", "java"], "reset() should force a fresh probe"

    def test_process_wide_probe_reset(self):
        """reset_grammar_probe() replaces the shared probe."""
        first = get_grammar_probe()
        assert get_grammar_probe() is first
        reset_grammar_probe()
        assert get_grammar_probe() is not first


class TestHybridExtractor:
    """Mode policy and quality reporting."""

    def test_python_grammar_extraction(self):
        """Functions, methods, classes and imports come from the grammar."""
        result = HybridExtractor().extract(PYTHON_SOURCE, "app/service.py")
        assert result.quality.method == "grammar"
        assert result.quality.confidence == GRAMMAR_CONFIDENCE
        qualified = [f.qualified_name for f in result.functions]
        assert qualified == ["UserService.get", "UserService.create", "main"], qualified
        assert [c.name for c in result.classes] == ["UserService"]
        assert [i.source for i in result.imports] == ["os", "app.repo"]
        persist = [c for c in result.calls if c.callee_name == "persist"]
        assert persist and persist[0].caller == "UserService.create"

    def test_syntax_error_falls_back(self):
        """Unparseable Python is extracted by patterns and the reason is recorded."""
        source = "def ok():\n    helper()\n\ndef broken(:\n    pass\n"
        result = HybridExtractor().extract(source, "bad.py")
        assert result.quality.method == "fallback"
        assert "parse failure" in result.quality.failure_reason
        assert "ok" in [f.name for f in result.functions]

    def test_fallback_mode(self):
        """extraction_mode=fallback never touches the grammar."""
        result = HybridExtractor(mode="fallback").extract(PYTHON_SOURCE, "app/service.py")
        assert result.quality.method == "fallback"
        assert result.quality.confidence == PATTERN_CONFIDENCE
        assert {"get", "create", "main"} <= {f.name for f in result.functions}

    def test_hybrid_mode_merges(self):
        """extraction_mode=hybrid unions grammar and pattern facts."""
        result = HybridExtractor(mode="hybrid").extract(PYTHON_SOURCE, "app/service.py")
        assert result.quality.method == "hybrid"
        names = [f.qualified_name for f in result.functions]
        assert len(names) == len(set(names)), f"Merged functions should not repeat: {names}"

    def test_unknown_mode_rejected(self):
        """An unknown mode is a configuration error."""
        with pytest.raises(ConfigurationError):
            HybridExtractor(mode="fastest")

    def test_unsupported_file(self):
        """Unsupported files give an empty, low-quality result."""
        result = HybridExtractor().extract("whatever", "notes.txt")
        assert result.language == "unknown"
        assert result.item_count == 0
        assert result.quality.level == "low"

    def test_grammar_unavailable_uses_patterns(self):
        """A disabled grammar degrades to pattern extraction for that language."""
        probe = GrammarProbe(disabled={"typescript"})
        result = HybridExtractor(probe).extract(TS_SOURCE, "src/service.ts")
        assert result.quality.method == "fallback"
        assert "grammar engine unavailable" in result.quality.failure_reason
        names = {f.name for f in result.functions}
        assert {"findUser", "handler", "main"} <= names, names


class TestPatternExtractors:
    """Pattern extraction per language."""

    def test_typescript_patterns(self):
        """Class methods, arrow functions and imports are found by patterns."""
        result = get_regex_extractor("typescript").extract(TS_SOURCE, "src/service.ts")
        methods = {f.qualified_name for f in result.functions if f.class_name}
        assert "UserService.findUser" in methods
        assert [i.source for i in result.imports] == ["./repo"]
        load = [c for c in result.calls if c.callee_name == "load"]
        assert load and load[0].caller == "UserService.findUser"

    def test_java_patterns(self):
        """Java methods are attributed to their class."""
        source = (
            "package app;\n\n"
            "import app.repo.UserRepository;\n\n"
            "public class UserService {\n"
            "    public User find(long id) {\n"
            "        return repository.findById(id);\n"
            "    }\n"
            "}\n"
        )
        result = get_regex_extractor("java").extract(source, "app/UserService.java")
        assert [f.qualified_name for f in result.functions] == ["UserService.find"]
        assert [i.source for i in result.imports] == ["app.repo.UserRepository"]
        assert any(c.callee_name == "findById" and c.caller == "UserService.find" for c in result.calls)

    def test_strings_and_comments_do_not_produce_calls(self):
        """Call-like text inside strings and comments is ignored."""
        source = "def f():\n    # g()\n    x = 'h()'\n    return k()\n"
        result = get_regex_extractor("python").extract(source, "m.py")
        assert [c.callee_name for c in result.calls] == ["k"]

    def test_preprocess_preserves_offsets(self):
        """Blanking keeps every line and column in place."""
        source = "a = 1  # comment\nb = 'text'\n"
        code = get_regex_extractor("python").preprocess(source)
        assert len(code) == len(source)
        assert code.count("\n") == source.count("\n")
        assert "comment" not in code


class TestQualityMerge:
    def test_merge_weights_by_items(self):
        """Hybrid confidence is the item-weighted mean."""
        grammar = ExtractionQuality.build("grammar", 1.0, 0.95)
        pattern = ExtractionQuality.build("fallback", 0.6, 0.75)
        merged = merge_qualities(grammar, pattern, 3, 1)
        assert merged.method == "hybrid"
        assert merged.confidence == 0.9
        assert merged.completeness == 1.0


class TestTreeSitterGrammar:
    """Grammar extraction for languages backed by tree-sitter."""

    def test_typescript_grammar(self):
        """TypeScript parses with the tree-sitter grammar when installed."""
        pytest.importorskip("tree_sitter_language_pack")
        probe = GrammarProbe()
        if not probe.is_available("typescript"):
            pytest.skip("typescript grammar not available in this environment")
        result = HybridExtractor(probe).extract(TS_SOURCE, "src/service.ts")
        assert result.quality.method == "grammar"
        names = {f.qualified_name for f in result.functions}
        assert {"UserService.findUser", "handler", "main"} <= names, names
        assert any(c.callee_name == "findUser" for c in result.calls)

    def test_java_grammar(self):
        """Java methods come from the grammar when installed."""
        pytest.importorskip("tree_sitter_language_pack")
        probe = GrammarProbe()
        if not probe.is_available("java"):
            pytest.skip("java grammar not available in this environment")
        source = "class A {\n  void run() {\n    helper();\n  }\n  void helper() {}\n}\n"
        result = HybridExtractor(probe).extract(source, "A.java")
        assert result.quality.method == "grammar"
        assert {f.qualified_name for f in result.functions} == {"A.run", "A.helper"}


CSHARP_SOURCE = '''\
using App.Data;

namespace App.Controllers
{
    public class UserController : ControllerBase
    {
        private readonly UserRepository _repo;

        public UserController(UserRepository repo)
        {
            _repo = repo;
        }

        [HttpGet("{id}")]
        public async Task<User> GetUser(int id)
        {
            return await _repo.FindAsync(id);
        }
    }
}
'''

PHP_SOURCE = '''\
<?php

namespace App\\Http\\Controllers;

use App\\Repositories\\UserRepository;

class UserController extends Controller
{
    public function __construct(private UserRepository $repo)
    {
    }

    public function show(int $id): array
    {
        return $this->repo->find($id);
    }
}
'''


class TestLanguagePatterns:
    """Pattern extraction for the languages not covered above."""

    def test_python_patterns(self):
        result = get_regex_extractor("python").extract(PYTHON_SOURCE, "app/service.py")
        assert [f.qualified_name for f in result.functions] == ["UserService.get", "UserService.create", "main"]
        assert [c.name for c in result.classes] == ["UserService"]
        assert result.classes[0].end_line == 10
        create = result.functions[1]
        assert create.is_async and create.is_method
        assert [p.name for p in create.parameters] == ["self", "data"]
        assert {i.source for i in result.imports} == {"os", "app.repo"}
        from_import = next(i for i in result.imports if i.source == "app.repo")
        assert [(n.imported, n.local) for n in from_import.names] == [("save", "persist")]
        find = [c for c in result.calls if c.callee_name == "find"]
        assert find and find[0].receiver == "self.repo" and find[0].caller == "UserService.get"
        assert result.quality.method == "fallback"
        assert result.quality.level == "medium"

    def test_csharp_patterns(self):
        """Constructors, attributed methods and using directives."""
        result = get_regex_extractor("csharp").extract(CSHARP_SOURCE, "Controllers/UserController.cs")
        by_name = {f.qualified_name: f for f in result.functions}
        assert set(by_name) == {"UserController.UserController", "UserController.GetUser"}, set(by_name)
        assert by_name["UserController.UserController"].is_constructor
        get_user = by_name["UserController.GetUser"]
        assert get_user.is_async and get_user.is_exported
        assert get_user.return_type == "Task<User>"
        assert [p.name for p in get_user.parameters] == ["id"]
        assert any(d.startswith("[HttpGet") for d in get_user.decorators), get_user.decorators
        assert [c.base_classes for c in result.classes] == [["ControllerBase"]]
        assert [i.source for i in result.imports] == ["App.Data"]
        find = [c for c in result.calls if c.callee_name == "FindAsync"]
        assert find and find[0].receiver == "_repo" and find[0].caller == "UserController.GetUser"

    def test_php_patterns(self):
        """Methods, promoted constructor parameters and use statements."""
        result = get_regex_extractor("php").extract(PHP_SOURCE, "app/Http/Controllers/UserController.php")
        by_name = {f.qualified_name: f for f in result.functions}
        assert set(by_name) == {"UserController.__construct", "UserController.show"}, set(by_name)
        constructor = by_name["UserController.__construct"]
        assert constructor.is_constructor
        assert [(p.name, p.type) for p in constructor.parameters] == [("repo", "UserRepository")]
        assert by_name["UserController.show"].return_type == "array"
        assert [c.base_classes for c in result.classes] == [["Controller"]]
        assert [i.source for i in result.imports] == ["App\\Repositories\\UserRepository"]
        assert [(n.imported, n.local) for n in result.imports[0].names] == [("UserRepository", "UserRepository")]
        find = [c for c in result.calls if c.callee_name == "find"]
        assert find and find[0].receiver == "$this->repo" and find[0].caller == "UserController.show"

    def test_nothing_recovered_is_low_quality(self):
        """A fallback pass that finds no structure does not claim medium quality."""
        result = HybridExtractor(GrammarProbe()).extract("@@@ )))(( ###\n%%%\n", "bad.py")
        assert result.quality.method == "fallback"
        assert result.item_count == 0
        assert result.quality.completeness == 0.0
        assert result.quality.level == "low"


class TestTreeSitterCSharpPhp:
    """C# and PHP grammar extraction."""

    def _grammar_result(self, language, source, path):
        pytest.importorskip("tree_sitter_language_pack")
        probe = GrammarProbe()
        if not probe.is_available(language):
            pytest.skip(f"{language} grammar not available in this environment")
        return HybridExtractor(probe).extract(source, path)

    def test_csharp_grammar(self):
        result = self._grammar_result("csharp", CSHARP_SOURCE, "Controllers/UserController.cs")
        assert result.quality.method == "grammar"
        by_name = {f.qualified_name: f for f in result.functions}
        assert set(by_name) == {"UserController.UserController", "UserController.GetUser"}, set(by_name)
        assert by_name["UserController.UserController"].is_constructor
        assert by_name["UserController.GetUser"].is_exported
        assert [i.source for i in result.imports] == ["App.Data"]
        find = [c for c in result.calls if c.callee_name == "FindAsync"]
        assert find and find[0].receiver == "_repo" and find[0].caller == "UserController.GetUser"

    def test_php_grammar(self):
        result = self._grammar_result("php", PHP_SOURCE, "app/Http/Controllers/UserController.php")
        assert result.quality.method == "grammar"
        by_name = {f.qualified_name: f for f in result.functions}
        assert set(by_name) == {"UserController.__construct", "UserController.show"}, set(by_name)
        assert by_name["UserController.__construct"].is_constructor
        assert [p.name for p in by_name["UserController.show"].parameters] == ["id"]
        find = [c for c in result.calls if c.callee_name == "find"]
        assert find and find[0].caller == "UserController.show"
