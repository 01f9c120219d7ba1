"""Where a file really calls things.

ORM site patterns run over source with string contents kept, because table
names live in string arguments (``knex('users')``). A ``SyntaxIndex`` tells
those patterns whether a match is real code:

- with a tree-sitter grammar, the file is parsed once and every call node
  contributes the offset of the name it invokes (``deleteMany`` in
  ``prisma.user.deleteMany()``); string literal and comment nodes are masked
- without one, string interiors are masked from the pattern preprocessor and
  any unmasked match counts as a call

Offsets are character offsets into the original source, the same offsets the
pattern extractors' preprocessed text uses.
"""

from dataclasses import dataclass, field
from typing import Any

from driftscan.ast_extractors.base import METHOD_FALLBACK, METHOD_GRAMMAR, detect_language
from driftscan.ast_extractors.grammar import GrammarProbe, get_grammar_probe
from driftscan.ast_extractors.regex import get_regex_extractor
from driftscan.utils.logging import logger

# Node types whose span is text, not code
LITERAL_TYPES: dict[str, frozenset[str]] = {
    "typescript": frozenset({"string", "template_string", "regex", "comment"}),
    "javascript": frozenset({"string", "template_string", "regex", "comment"}),
    "java": frozenset({"string_literal", "text_block", "character_literal", "line_comment", "block_comment",
                       "comment"}),
    "csharp": frozenset({"string_literal", "verbatim_string_literal", "raw_string_literal",
                         "interpolated_string_expression", "character_literal", "comment"}),
    "php": frozenset({"string", "encapsed_string", "heredoc", "nowdoc", "comment"}),
}


def _name_node(node: Any, *types: str) -> Any | None:
    """``node`` when it is an identifier-like node, else its first identifier-like child."""
    if node is None:
        return None
    if node.type in types:
        return node
    for child in node.named_children:
        if child.type in types:
            return child
    return None


def _ts_callee(node: Any) -> Any | None:
    if node.type == "call_expression":
        target = node.child_by_field_name("function")
    elif node.type == "new_expression":
        target = node.child_by_field_name("constructor")
    else:
        return None
    if target is None:
        return None
    if target.type == "member_expression":
        return target.child_by_field_name("property")
    return target if target.type == "identifier" else None


def _java_callee(node: Any) -> Any | None:
    if node.type != "method_invocation":
        return None
    return node.child_by_field_name("name")


def _csharp_callee(node: Any) -> Any | None:
    if node.type != "invocation_expression":
        return None
    target = node.child_by_field_name("function")
    if target is None:
        return None
    if target.type == "member_access_expression":
        return _name_node(target.child_by_field_name("name"), "identifier")
    if target.type == "conditional_access_expression":
        binding = _name_node(target, "member_binding_expression")
        return _name_node(binding.child_by_field_name("name") if binding is not None else None, "identifier")
    return _name_node(target, "identifier")


def _php_callee(node: Any) -> Any | None:
    if node.type in ("member_call_expression", "nullsafe_member_call_expression", "scoped_call_expression"):
        return _name_node(node.child_by_field_name("name"), "name")
    if node.type == "function_call_expression":
        target = node.child_by_field_name("function")
        if target is not None and target.type == "qualified_name":
            names = [c for c in target.named_children if c.type == "name"]
            return names[-1] if names else None
        return _name_node(target, "name")
    return None


CALLEE_FINDERS = {
    "typescript": _ts_callee,
    "javascript": _ts_callee,
    "java": _java_callee,
    "csharp": _csharp_callee,
    "php": _php_callee,
}


@dataclass
class SyntaxIndex:
    """Call-name offsets and a text mask for one file."""

    method: str
    call_names: frozenset[int] = frozenset()
    text_mask: bytearray = field(default_factory=bytearray)

    @property
    def grammar_backed(self) -> bool:
        return self.method == METHOD_GRAMMAR

    def in_code(self, offset: int) -> bool:
        """True unless ``offset`` falls inside a string literal or comment."""
        return not (0 <= offset < len(self.text_mask) and self.text_mask[offset])

    def is_call(self, offset: int) -> bool:
        """True when the identifier starting at ``offset`` is the name a real call invokes."""
        if self.grammar_backed:
            return offset in self.call_names
        return self.in_code(offset)


def _char_offsets(source: str, data: bytes) -> list[int] | None:
    """Byte offset -> character offset table; None when the two coincide."""
    if len(data) == len(source):
        return None
    table = []
    for index, ch in enumerate(source):
        table.extend([index] * len(ch.encode("utf-8")))
    table.append(len(source))
    return table


def grammar_language(language: str, file_path: str) -> str:
    if language == "typescript" and file_path.endswith(".tsx"):
        return "tsx"
    return language


def build_syntax_index(source: str, file_path: str, language: str | None = None,
                       probe: GrammarProbe | None = None) -> SyntaxIndex:
    """Index ``source`` with its grammar when one is available, else from the string mask."""
    language = language or detect_language(file_path) or ""
    probe = probe or get_grammar_probe()
    finder = CALLEE_FINDERS.get(language)
    parser = probe.get_parser(grammar_language(language, file_path)) if finder else None
    if parser is None:
        return _fallback_index(source, language)

    data = source.encode("utf-8")
    root = parser.parse(data).root_node
    to_char = _char_offsets(source, data)

    def char_at(byte_offset: int) -> int:
        return to_char[byte_offset] if to_char is not None else byte_offset

    literal_types = LITERAL_TYPES[language]
    mask = bytearray(len(source))
    names: set[int] = set()
    stack = [root]
    while stack:
        node = stack.pop()
        if node.type in literal_types:
            start, end = char_at(node.start_byte), char_at(node.end_byte)
            mask[start:end] = b"\x01" * (end - start)
        callee = finder(node)
        if callee is not None:
            names.add(char_at(callee.start_byte))
        stack.extend(node.children)
    return SyntaxIndex(METHOD_GRAMMAR, frozenset(names), mask)


def _fallback_index(source: str, language: str) -> SyntaxIndex:
    extractor = get_regex_extractor(language)
    if extractor is None:
        return SyntaxIndex(METHOD_FALLBACK, text_mask=bytearray(len(source)))
    logger.debug(f"[BOUNDARY] No grammar for {language} data access, masking strings by pattern")
    kept = extractor.preprocess(source, keep_strings=True)
    blanked = extractor.preprocess(source, keep_strings=False)
    mask = bytearray(a != b for a, b in zip(kept, blanked))
    return SyntaxIndex(METHOD_FALLBACK, text_mask=mask)
