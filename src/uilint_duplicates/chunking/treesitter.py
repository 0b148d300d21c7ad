"""Tree-sitter TS/JS chunk extractor — finds functions, hooks, and components.

Sources are parsed with the ``typescript`` grammar (``.ts``, ``.mts``,
``.cts``) or the ``tsx`` grammar (everything else, so JSX in ``.js`` and
``.jsx`` files parses too). Every named ``function_declaration`` and every
``variable_declarator`` whose value is an arrow function or function
expression becomes a candidate chunk, nested ones included. Chunks span
whole source lines. A file that does not parse cleanly yields no chunks.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import TYPE_CHECKING

import tree_sitter_typescript
from tree_sitter import Language, Parser

from uilint_duplicates.chunking.extractor import (
    DEFAULT_MAX_EMBEDDING_CHARS,
    prepare_embedding_input,
)
from uilint_duplicates.chunking.models import (
    ChunkingOptions,
    ChunkKind,
    ChunkMetadata,
    CodeChunk,
    SplitStrategy,
)

if TYPE_CHECKING:
    from collections.abc import Iterator

    from tree_sitter import Node

logger = logging.getLogger(__name__)

MIN_SECTION_LINES = 3
SECTION_LABEL_CHARS = 30
SUMMARY_TRAILER = "\n    // ... JSX content (see sections)\n  );"

_TYPESCRIPT_SUFFIXES = frozenset({".ts", ".mts", ".cts"})
_FUNCTION_DECLARATIONS = frozenset({"function_declaration", "generator_function_declaration"})
_FUNCTION_VALUES = frozenset({"arrow_function", "function_expression", "function", "generator_function"})
_VARIABLE_DECLARATIONS = frozenset({"lexical_declaration", "variable_declaration"})
_JSX_NODES = frozenset({"jsx_element", "jsx_self_closing_element"})
_JSX_TAGS = frozenset({"jsx_opening_element", "jsx_self_closing_element"})
_SECTION_CHILDREN = frozenset({"jsx_element", "jsx_self_closing_element", "jsx_expression"})
_PARAMETERS = frozenset({"required_parameter", "optional_parameter"})

_HOOK_NAME = re.compile(r"^use[A-Z]")
_UTILITY_CLASS = re.compile(r"^(bg-|text-|p-|m-|w-|h-|flex|grid|border|rounded|shadow|hover:|focus:)")


def _grammar_for(file_path: str) -> str:
    suffix = PurePosixPath(file_path).suffix.lower()
    return "typescript" if suffix in _TYPESCRIPT_SUFFIXES else "tsx"


# ---------------------------------------------------------------------------
# Node helpers
# ---------------------------------------------------------------------------


def _walk(node: Node) -> Iterator[Node]:
    """Pre-order traversal without recursion."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))


def _text(node: Node, source: bytes) -> str:
    return source[node.start_byte : node.end_byte].decode("utf-8", errors="replace")


def _string_value(node: Node, source: bytes) -> str | None:
    if node.type != "string":
        return None
    return _text(node, source)[1:-1]


def _unwrap(node: Node | None) -> Node | None:
    while node is not None and node.type == "parenthesized_expression":
        node = node.named_children[0] if node.named_children else None
    return node


def _unique(items: list[str]) -> list[str]:
    return list(dict.fromkeys(items))


def _has_default(node: Node) -> bool:
    return any(child.type == "default" for child in node.children)


def _declarator_names(declaration: Node, source: bytes) -> list[str]:
    names: list[str] = []
    if declaration.type in _FUNCTION_DECLARATIONS or declaration.type == "class_declaration":
        name = declaration.child_by_field_name("name")
        if name is not None:
            names.append(_text(name, source))
    elif declaration.type in _VARIABLE_DECLARATIONS:
        for declarator in declaration.named_children:
            if declarator.type != "variable_declarator":
                continue
            name = declarator.child_by_field_name("name")
            if name is not None and name.type == "identifier":
                names.append(_text(name, source))
    return names


@dataclass(slots=True)
class _Exports:
    names: set[str] = field(default_factory=set)
    default: str | None = None

    @classmethod
    def collect(cls, root: Node, source: bytes) -> _Exports:
        exports = cls()
        for node in root.named_children:
            if node.type != "export_statement":
                continue
            declaration = node.child_by_field_name("declaration")
            value = node.child_by_field_name("value")
            if _has_default(node):
                if value is not None and value.type == "identifier":
                    exports.default = _text(value, source)
                elif declaration is not None and declaration.type in _FUNCTION_DECLARATIONS:
                    names = _declarator_names(declaration, source)
                    exports.default = names[0] if names else None
                continue
            if declaration is not None:
                exports.names.update(_declarator_names(declaration, source))
            for clause in node.named_children:
                if clause.type != "export_clause":
                    continue
                for spec in clause.named_children:
                    if spec.type != "export_specifier":
                        continue
                    local = spec.child_by_field_name("name")
                    if local is not None:
                        exports.names.add(_text(local, source))
        return exports


@dataclass(frozen=True, slots=True)
class _Unit:
    """A function-like node plus the node whose lines it occupies."""

    function: Node
    location: Node
    name: str | None
    default_export: bool = False


# ---------------------------------------------------------------------------
# Extractor
# ---------------------------------------------------------------------------


class TreeSitterChunker:
    """Default ``ChunkExtractor`` for TypeScript / JavaScript / JSX sources."""

    def __init__(self, max_embedding_chars: int = DEFAULT_MAX_EMBEDDING_CHARS) -> None:
        self.max_embedding_chars = max_embedding_chars
        self._parsers: dict[str, Parser] = {}

    def _get_parser(self, grammar: str) -> Parser:
        """Get or create the tree-sitter parser for ``typescript`` or ``tsx``."""
        parser = self._parsers.get(grammar)
        if parser is None:
            if grammar == "tsx":
                language = Language(tree_sitter_typescript.language_tsx())
            else:
                language = Language(tree_sitter_typescript.language_typescript())
            parser = Parser(language)
            self._parsers[grammar] = parser
        return parser

    def prepare_embedding_input(self, chunk: CodeChunk) -> str:
        return prepare_embedding_input(chunk, self.max_embedding_chars)

    def chunk_file(
        self,
        file_path: str,
        content: str,
        options: ChunkingOptions | None = None,
    ) -> list[CodeChunk]:
        opts = options or ChunkingOptions()
        source = content.encode("utf-8")
        tree = self._get_parser(_grammar_for(file_path)).parse(source)
        root = tree.root_node
        if root.has_error:
            logger.warning("Failed to parse %s; no chunks extracted", file_path)
            return []

        lines = content.split("\n")
        exports = _Exports.collect(root, source)
        imports = self._imports(root, source)
        chunks: list[CodeChunk] = []

        for unit in self._units(root, source):
            chunk = self._make_chunk(unit, file_path, lines, source, exports, imports)
            if not self._should_include(chunk, opts):
                continue
            if chunk.line_count > opts.max_lines and opts.split_strategy != SplitStrategy.NONE:
                parts = self._split(unit.function, chunk, lines, source, opts)
                chunks.extend(c for c in parts if self._should_include(c, opts))
            else:
                chunks.append(chunk)

        logger.debug("Chunked %s into %d chunks", file_path, len(chunks))
        return chunks

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    @staticmethod
    def _units(root: Node, source: bytes) -> Iterator[_Unit]:
        for node in _walk(root):
            if node.type in _FUNCTION_DECLARATIONS:
                name = node.child_by_field_name("name")
                if name is not None:
                    yield _Unit(node, node, _text(name, source))
            elif node.type == "variable_declarator":
                name = node.child_by_field_name("name")
                value = node.child_by_field_name("value")
                if (
                    name is not None
                    and name.type == "identifier"
                    and value is not None
                    and value.type in _FUNCTION_VALUES
                ):
                    location = node.parent if node.parent is not None else node
                    yield _Unit(value, location, _text(name, source))
            elif (
                node.type in _FUNCTION_VALUES
                and node.parent is not None
                and node.parent.type == "export_statement"
                and _has_default(node.parent)
            ):
                yield _Unit(node, node.parent, None, default_export=True)

    @staticmethod
    def _imports(root: Node, source: bytes) -> list[str]:
        sources: list[str] = []
        for node in root.named_children:
            if node.type != "import_statement":
                continue
            value = node.child_by_field_name("source")
            text = _string_value(value, source) if value is not None else None
            if text:
                sources.append(text)
        return _unique(sources)

    def _make_chunk(
        self,
        unit: _Unit,
        file_path: str,
        lines: list[str],
        source: bytes,
        exports: _Exports,
        imports: list[str],
    ) -> CodeChunk:
        start_row, start_column = unit.location.start_point
        end_row, end_column = unit.location.end_point
        is_default = unit.default_export or (unit.name is not None and unit.name == exports.default)
        metadata = ChunkMetadata(
            props=self._props(unit.function, source) or None,
            hooks=self._hooks(unit.function, source) or None,
            jsx_elements=self._jsx_elements(unit.function, source) or None,
            imports=imports or None,
            is_exported=is_default or unit.name in exports.names,
            is_default_export=is_default,
        )
        return CodeChunk(
            file_path=file_path,
            start_line=start_row + 1,
            end_line=end_row + 1,
            start_column=start_column,
            end_column=end_column,
            kind=self._classify(unit.name, unit.function),
            name=unit.name,
            content="\n".join(lines[start_row : end_row + 1]),
            metadata=metadata,
        )

    # ------------------------------------------------------------------
    # Classification and metadata
    # ------------------------------------------------------------------

    @staticmethod
    def _contains_jsx(node: Node) -> bool:
        return any(n.type in _JSX_NODES for n in _walk(node))

    def _classify(self, name: str | None, function: Node) -> ChunkKind:
        if name and _HOOK_NAME.match(name):
            return ChunkKind.HOOK
        has_jsx = self._contains_jsx(function)
        if name and name[0].isupper() and has_jsx:
            return ChunkKind.COMPONENT
        if has_jsx:
            return ChunkKind.JSX_FRAGMENT
        return ChunkKind.FUNCTION

    @staticmethod
    def _first_parameter(function: Node) -> Node | None:
        single = function.child_by_field_name("parameter")
        if single is not None:
            return single
        params = function.child_by_field_name("parameters")
        if params is None:
            return None
        for param in params.named_children:
            if param.type in _PARAMETERS:
                return param.child_by_field_name("pattern")
            if param.type in ("identifier", "object_pattern"):
                return param
        return None

    def _props(self, function: Node, source: bytes) -> list[str]:
        pattern = self._first_parameter(function)
        if pattern is None:
            return []
        if pattern.type == "identifier":
            return [_text(pattern, source)]
        if pattern.type != "object_pattern":
            return []
        props: list[str] = []
        for prop in pattern.named_children:
            if prop.type == "shorthand_property_identifier_pattern":
                props.append(_text(prop, source))
            elif prop.type == "pair_pattern":
                key = prop.child_by_field_name("key")
                if key is not None:
                    props.append(_text(key, source))
            elif prop.type == "object_assignment_pattern":
                left = prop.child_by_field_name("left")
                if left is not None:
                    props.append(_text(left, source))
            elif prop.type == "rest_pattern" and prop.named_children:
                props.append(f"...{_text(prop.named_children[0], source)}")
        return props

    @staticmethod
    def _hooks(node: Node, source: bytes) -> list[str]:
        hooks: list[str] = []
        for n in _walk(node):
            if n.type != "call_expression":
                continue
            callee = n.child_by_field_name("function")
            if callee is not None and callee.type == "identifier":
                name = _text(callee, source)
                if _HOOK_NAME.match(name):
                    hooks.append(name)
        return _unique(hooks)

    @staticmethod
    def _jsx_elements(node: Node, source: bytes) -> list[str]:
        tags: list[str] = []
        for n in _walk(node):
            if n.type not in _JSX_TAGS:
                continue
            name = n.child_by_field_name("name")
            if name is not None:
                tags.append(_text(name, source))
        return _unique(tags)

    @staticmethod
    def _should_include(chunk: CodeChunk, opts: ChunkingOptions) -> bool:
        if chunk.line_count < opts.min_lines:
            return False
        if not opts.include_anonymous and chunk.name is None:
            return False
        return not (opts.kinds and chunk.kind not in opts.kinds)

    # ------------------------------------------------------------------
    # Splitting oversized chunks
    # ------------------------------------------------------------------

    def _split(
        self,
        function: Node,
        chunk: CodeChunk,
        lines: list[str],
        source: bytes,
        opts: ChunkingOptions,
    ) -> list[CodeChunk]:
        if opts.split_strategy == SplitStrategy.JSX_CHILDREN and chunk.kind == ChunkKind.COMPONENT:
            parts = self._split_jsx_children(function, chunk, lines, source)
            if parts:
                return parts
        return self._split_lines(chunk, lines, opts.max_lines)

    @staticmethod
    def _jsx_return(function: Node) -> tuple[int, Node] | None:
        """Row of the JSX ``return`` (or expression body) and its root element."""
        body = function.child_by_field_name("body")
        if body is None:
            return None
        if body.type != "statement_block":
            root = _unwrap(body)
            if root is not None and root.type in _JSX_NODES:
                return root.start_point[0], root
            return None
        for stmt in body.named_children:
            if stmt.type != "return_statement" or not stmt.named_children:
                continue
            root = _unwrap(stmt.named_children[0])
            if root is not None and root.type in _JSX_NODES:
                return stmt.start_point[0], root
        return None

    def _split_jsx_children(
        self,
        function: Node,
        chunk: CodeChunk,
        lines: list[str],
        source: bytes,
    ) -> list[CodeChunk]:
        """One summary (signature, hooks, state) plus one section per top-level JSX child."""
        found = self._jsx_return(function)
        if found is None:
            return []
        return_row, root = found
        children = [c for c in root.named_children if c.type in _SECTION_CHILDREN]
        if len(children) < 2:
            return []

        summary_end = min(return_row + 1, chunk.end_line)
        summary = CodeChunk(
            file_path=chunk.file_path,
            start_line=chunk.start_line,
            end_line=summary_end,
            start_column=chunk.start_column,
            end_column=chunk.end_column,
            kind=ChunkKind.COMPONENT_SUMMARY,
            name=chunk.name,
            content="\n".join(lines[chunk.start_line - 1 : summary_end]) + SUMMARY_TRAILER,
            metadata=chunk.metadata.model_copy(update={"jsx_elements": None}),
        )

        result = [summary]
        for index, child in enumerate(children):
            start_row, start_column = child.start_point
            end_row, end_column = child.end_point
            if end_row - start_row + 1 < MIN_SECTION_LINES:
                continue
            result.append(
                CodeChunk(
                    file_path=chunk.file_path,
                    start_line=start_row + 1,
                    end_line=end_row + 1,
                    start_column=start_column,
                    end_column=end_column,
                    kind=ChunkKind.JSX_SECTION,
                    name=chunk.name,
                    content="\n".join(lines[start_row : end_row + 1]),
                    metadata=ChunkMetadata(
                        jsx_elements=self._jsx_elements(child, source) or None,
                        is_exported=chunk.metadata.is_exported,
                        is_default_export=chunk.metadata.is_default_export,
                    ),
                    parent_id=summary.id,
                    section_index=index,
                    section_label=self._section_label(child, index, source),
                )
            )
        return result

    @staticmethod
    def _section_label(child: Node, index: int, source: bytes) -> str:
        """``aria-label``, else the first non-utility class, else ``tag-index``."""
        if child.type == "jsx_element":
            tag = next((c for c in child.named_children if c.type == "jsx_opening_element"), None)
        elif child.type == "jsx_self_closing_element":
            tag = child
        else:
            tag = None
        if tag is None:
            return f"section-{index}"

        for attr in tag.named_children:
            if attr.type != "jsx_attribute" or len(attr.named_children) < 2:
                continue
            attr_name = _text(attr.named_children[0], source)
            value = _string_value(attr.named_children[-1], source)
            if value is None:
                continue
            if attr_name in ("aria-label", "aria-labelledby"):
                return re.sub(r"\s+", "-", value.lower())[:SECTION_LABEL_CHARS]
            if attr_name in ("className", "class"):
                for cls in value.split():
                    if not _UTILITY_CLASS.match(cls):
                        return cls[:SECTION_LABEL_CHARS]

        name = tag.child_by_field_name("name")
        if name is not None and name.type == "identifier":
            return f"{_text(name, source)}-{index}"
        return f"section-{index}"

    @staticmethod
    def _split_lines(chunk: CodeChunk, lines: list[str], max_lines: int) -> list[CodeChunk]:
        """Fixed windows of *max_lines* with a small overlap; the first is the summary."""
        if chunk.line_count <= max_lines:
            return [chunk]
        is_ui = chunk.kind in (ChunkKind.COMPONENT, ChunkKind.JSX_FRAGMENT)
        summary_kind = ChunkKind.COMPONENT_SUMMARY if is_ui else ChunkKind.FUNCTION_SUMMARY
        section_kind = ChunkKind.JSX_SECTION if is_ui else ChunkKind.FUNCTION_SECTION
        overlap = min(10, max_lines // 5)

        result: list[CodeChunk] = []
        start = chunk.start_line
        while True:
            end = min(start + max_lines - 1, chunk.end_line)
            first = not result
            result.append(
                CodeChunk(
                    file_path=chunk.file_path,
                    start_line=start,
                    end_line=end,
                    start_column=chunk.start_column if first else 0,
                    end_column=chunk.end_column if end == chunk.end_line else len(lines[end - 1]),
                    kind=summary_kind if first else section_kind,
                    name=chunk.name,
                    content="\n".join(lines[start - 1 : end]),
                    metadata=chunk.metadata
                    if first
                    else ChunkMetadata(
                        is_exported=chunk.metadata.is_exported,
                        is_default_export=chunk.metadata.is_default_export,
                    ),
                    parent_id=None if first else result[0].id,
                    section_index=None if first else len(result),
                    section_label=None if first else f"lines-{start}-{end}",
                )
            )
            if end >= chunk.end_line:
                return result
            start = end - overlap + 1
