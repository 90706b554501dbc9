"""Symbol extraction from TypeScript/JavaScript declaration sources.

Parses one file with tree-sitter and emits a SymbolDocument per top-level
function, class (plus one per method), interface, ambient constant and
object-literal variable. "Top level" looks through `export`, `declare`,
`declare module "x" {}` and `namespace X {}` wrappers, which is where
declaration packages put their API.

Document ids have the form::

    {name}@{version}/{filepath}#{kind}_{identifier}_{byteOffset}
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Dict, Iterator, List, Optional, Set, Tuple

import tree_sitter_typescript
from tree_sitter import Language, Node, Parser

from ..errors import ExtractionError
from ..models import ExportKind, PackageRef, SymbolDocument, SymbolKind, SymbolMetadata

logger = logging.getLogger(__name__)

TS_LANGUAGE = Language(tree_sitter_typescript.language_typescript())
TSX_LANGUAGE = Language(tree_sitter_typescript.language_tsx())

_TSX_SUFFIXES = (".tsx", ".jsx")


class DeclarationKind(Enum):
    """Structural variants the extractor handles."""

    FUNCTION = "function"
    CLASS = "class"
    METHOD = "method"
    INTERFACE = "interface"
    VARIABLE = "variable"


_NODE_KINDS: Dict[str, DeclarationKind] = {
    "function_declaration": DeclarationKind.FUNCTION,
    "generator_function_declaration": DeclarationKind.FUNCTION,
    "function_expression": DeclarationKind.FUNCTION,
    "function": DeclarationKind.FUNCTION,
    "function_signature": DeclarationKind.FUNCTION,
    "class_declaration": DeclarationKind.CLASS,
    "abstract_class_declaration": DeclarationKind.CLASS,
    "class": DeclarationKind.CLASS,
    "interface_declaration": DeclarationKind.INTERFACE,
    "lexical_declaration": DeclarationKind.VARIABLE,
    "variable_declaration": DeclarationKind.VARIABLE,
}

_METHOD_NODES = frozenset({"method_definition", "method_signature", "abstract_method_signature"})
_MODULE_NODES = frozenset({"module", "internal_module"})


def clean_comment(text: str) -> str:
    """Strip comment delimiters and JSDoc leading stars."""
    text = text.strip()
    if text.startswith("//"):
        return text[2:].strip()
    if text.startswith("/*"):
        text = text[2:]
        if text.endswith("*/"):
            text = text[:-2]
    lines = []
    for ln in text.splitlines():
        ln = ln.strip()
        if ln.startswith("*"):
            ln = ln[1:].strip()
        lines.append(ln)
    return "\n".join(lines).strip()


def dedupe_documents(documents: List[SymbolDocument]) -> List[SymbolDocument]:
    """Drop documents whose id was already seen, keeping the first."""
    seen: Set[str] = set()
    out: List[SymbolDocument] = []
    for doc in documents:
        if doc.id in seen:
            continue
        seen.add(doc.id)
        out.append(doc)
    return out


class _FileContext:
    """Per-file state shared by the node handlers."""

    def __init__(self, file_path: str, source: bytes, ref: PackageRef) -> None:
        self.file_path = file_path
        self.source = source
        self.ref = ref
        self.default_names: Set[str] = set()
        self.documents: List[SymbolDocument] = []

    def text(self, node: Optional[Node]) -> str:
        if node is None:
            return ""
        return self.source[node.start_byte:node.end_byte].decode("utf-8", errors="replace")

    def add(
        self,
        kind: SymbolKind,
        identifier: str,
        node: Node,
        export_kind: ExportKind,
        description: str,
        parameters: Optional[List[str]] = None,
        return_type: Optional[str] = None,
    ) -> None:
        ref = self.ref
        doc_id = f"{ref.name}@{ref.version}/{self.file_path}#{kind.value}_{identifier}_{node.start_byte}"
        meta = SymbolMetadata(
            name=ref.name,
            version=ref.version,
            kind=kind,
            filepath=self.file_path,
            export_kind=export_kind,
            description=description or None,
            parameters=parameters,
            return_type=return_type,
        )
        self.documents.append(SymbolDocument(id=doc_id, metadata=meta, content=self.text(node)))


class SymbolExtractor:
    """Turns declaration sources into SymbolDocuments."""

    def __init__(self) -> None:
        self._handlers: Dict[DeclarationKind, Callable[[_FileContext, Node, Node, ExportKind], None]] = {
            DeclarationKind.FUNCTION: self._on_function,
            DeclarationKind.CLASS: self._on_class,
            DeclarationKind.METHOD: self._on_method,
            DeclarationKind.INTERFACE: self._on_interface,
            DeclarationKind.VARIABLE: self._on_variable,
        }

    def extract(self, file_path: str, source_text: str, ref: PackageRef) -> List[SymbolDocument]:
        """
        Extract symbol documents from one source file.

        Failures are logged and yield an empty list so the remaining files of
        the package are still processed.

        Args:
            file_path: Path relative to the package root (used in ids).
            source_text: File content.
            ref: Owning package.

        Returns:
            Documents in source order, deduplicated by id.
        """
        if not source_text.strip():
            return []
        try:
            return self._extract(file_path, source_text, ref)
        except Exception as e:
            err = e if isinstance(e, ExtractionError) else ExtractionError(file_path, str(e))
            logger.error("%s", err)
            return []

    def _extract(self, file_path: str, source_text: str, ref: PackageRef) -> List[SymbolDocument]:
        language = TSX_LANGUAGE if file_path.lower().endswith(_TSX_SUFFIXES) else TS_LANGUAGE
        parser = Parser(language)
        source = source_text.encode("utf-8")
        tree = parser.parse(source)
        root = tree.root_node
        if root is None:
            raise ExtractionError(file_path, "parser returned no tree")
        if root.has_error:
            logger.warning("Syntax errors in %s; extracting well-formed declarations only", file_path)

        ctx = _FileContext(file_path, source, ref)
        for decl, anchor, export_kind in self._walk_statements(ctx, root):
            kind = _NODE_KINDS.get(decl.type)
            if kind is None:
                continue
            self._handlers[kind](ctx, decl, anchor, export_kind)

        return dedupe_documents(ctx.documents)

    # ------------------------------------------------------------------
    # Traversal

    def _default_export_names(self, ctx: _FileContext, container: Node) -> Set[str]:
        """Names exported via `export default X;` or `export = X;` directly in `container`."""
        names: Set[str] = set()
        for child in container.named_children:
            if child.type != "export_statement":
                continue
            tokens = {c.type for c in child.children}
            if "default" not in tokens and "=" not in tokens:
                continue
            for c in child.named_children:
                if c.type == "identifier":
                    names.add(ctx.text(c))
        return names

    def _walk_statements(self, ctx: _FileContext, container: Node) -> Iterator[Tuple[Node, Node, ExportKind]]:
        """
        Yield (declaration, anchor, export kind) for each top-level declaration.

        The anchor is the outermost wrapper statement; leading comments are
        attached to it.
        """
        defaults = self._default_export_names(ctx, container)
        for stmt in container.named_children:
            for decl, export_kind in self._unwrap(ctx, stmt, ExportKind.NAMED):
                if decl.type in _MODULE_NODES:
                    body = decl.child_by_field_name("body")
                    if body is not None:
                        yield from self._walk_statements(ctx, body)
                    continue
                # handlers run between yields, scoped to this container
                ctx.default_names = defaults
                yield decl, stmt, export_kind

    def _unwrap(self, ctx: _FileContext, node: Node, export_kind: ExportKind) -> Iterator[Tuple[Node, ExportKind]]:
        if node.type == "export_statement":
            is_default = any(c.type == "default" for c in node.children)
            inner_kind = ExportKind.DEFAULT if is_default else ExportKind.NAMED
            decl = node.child_by_field_name("declaration")
            if decl is not None:
                yield from self._unwrap(ctx, decl, inner_kind)
                return
            value = node.child_by_field_name("value")
            if value is not None and is_default and value.type in ("function_expression", "function", "class"):
                yield value, ExportKind.DEFAULT
            return
        if node.type == "ambient_declaration":
            for child in node.named_children:
                yield from self._unwrap(ctx, child, export_kind)
            return
        if node.type == "expression_statement":
            for child in node.named_children:
                if child.type in _MODULE_NODES:
                    yield child, export_kind
            return
        if node.type == "statement_block":
            # `declare global { ... }`
            for child in node.named_children:
                yield from self._unwrap(ctx, child, export_kind)
            return
        yield node, export_kind

    # ------------------------------------------------------------------
    # Helpers

    def _leading_comments(self, ctx: _FileContext, node: Node) -> str:
        """Comment block immediately preceding `node` (trailing comments excluded)."""
        comments: List[str] = []
        prev = node.prev_sibling
        while prev is not None and prev.type == "comment":
            before = prev.prev_sibling
            if before is not None and before.type != "comment" and before.end_point[0] == prev.start_point[0]:
                break
            comments.append(clean_comment(ctx.text(prev)))
            prev = before
        comments.reverse()
        return "\n".join(c for c in comments if c)

    def _parameters(self, ctx: _FileContext, node: Node) -> List[str]:
        params = node.child_by_field_name("parameters")
        if params is None:
            return []
        names: List[str] = []
        for p in params.named_children:
            if p.type == "comment":
                continue
            pattern = p.child_by_field_name("pattern")
            if pattern is None:
                pattern = p
            if pattern.type == "this":
                continue
            if pattern.type == "rest_pattern" and pattern.named_children:
                pattern = pattern.named_children[0]
            if pattern.type == "assignment_pattern":
                left = pattern.child_by_field_name("left")
                if left is not None:
                    pattern = left
            names.append(ctx.text(pattern))
        return names

    def _return_type(self, ctx: _FileContext, node: Node) -> Optional[str]:
        rt = node.child_by_field_name("return_type")
        if rt is None:
            return None
        return ctx.text(rt).lstrip(":").strip() or None

    def _export_kind(self, ctx: _FileContext, name: str, export_kind: ExportKind) -> ExportKind:
        if name and name in ctx.default_names:
            return ExportKind.DEFAULT
        return export_kind

    # ------------------------------------------------------------------
    # Handlers (one per DeclarationKind)

    def _on_function(self, ctx: _FileContext, node: Node, anchor: Node, export_kind: ExportKind) -> None:
        name = ctx.text(node.child_by_field_name("name"))
        ctx.add(
            SymbolKind.FUNCTION,
            name or f"anonymous_{node.start_byte}",
            node,
            self._export_kind(ctx, name, export_kind),
            self._leading_comments(ctx, anchor),
            parameters=self._parameters(ctx, node),
            return_type=self._return_type(ctx, node),
        )

    def _on_class(self, ctx: _FileContext, node: Node, anchor: Node, export_kind: ExportKind) -> None:
        name = ctx.text(node.child_by_field_name("name"))
        class_name = name or f"anonymous_{node.start_byte}"
        ctx.add(
            SymbolKind.CLASS,
            class_name,
            node,
            self._export_kind(ctx, name, export_kind),
            self._leading_comments(ctx, anchor),
        )
        body = node.child_by_field_name("body")
        if body is None:
            return
        for member in body.named_children:
            if member.type in _METHOD_NODES:
                self._handlers[DeclarationKind.METHOD](ctx, member, node, ExportKind.NAMED)

    def _on_method(self, ctx: _FileContext, member: Node, owner: Node, export_kind: ExportKind) -> None:
        class_name = ctx.text(owner.child_by_field_name("name")) or f"anonymous_{owner.start_byte}"
        method = ctx.text(member.child_by_field_name("name"))
        ctx.add(
            SymbolKind.FUNCTION,
            f"{class_name}.{method}",
            member,
            export_kind,
            self._leading_comments(ctx, member),
            parameters=self._parameters(ctx, member),
            return_type=self._return_type(ctx, member),
        )

    def _on_interface(self, ctx: _FileContext, node: Node, anchor: Node, export_kind: ExportKind) -> None:
        name = ctx.text(node.child_by_field_name("name"))
        ctx.add(
            SymbolKind.INTERFACE,
            name,
            node,
            self._export_kind(ctx, name, export_kind),
            self._leading_comments(ctx, anchor),
        )

    def _on_variable(self, ctx: _FileContext, node: Node, anchor: Node, export_kind: ExportKind) -> None:
        is_const = any(c.type == "const" for c in node.children)
        description = self._leading_comments(ctx, anchor)
        for decl in node.named_children:
            if decl.type != "variable_declarator":
                continue
            name_node = decl.child_by_field_name("name")
            if name_node is None or name_node.type != "identifier":
                continue
            name = ctx.text(name_node)
            value = decl.child_by_field_name("value")
            if value is not None and value.type == "object":
                kind = SymbolKind.OBJECT
            elif value is None and is_const and decl.child_by_field_name("type") is not None:
                kind = SymbolKind.CONSTANT
            else:
                continue
            ctx.add(kind, name, decl, self._export_kind(ctx, name, export_kind), description)
