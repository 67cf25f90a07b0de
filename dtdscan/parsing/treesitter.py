from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import tree_sitter_c_sharp
from tree_sitter import Language, Node, Parser

from dtdscan.analysis.types import CSHARP_KEYWORD_TYPES, TypeSystem
from dtdscan.errors import ParseError
from dtdscan.parsing.base import ParsedFile

logger = logging.getLogger(__name__)

CSHARP_LANGUAGE = Language(tree_sitter_c_sharp.language())

LANGUAGE_EXTENSIONS = {
    "csharp": {".cs"},
    "vbnet": {".vb"},
}


def language_for_path(path: str) -> Optional[str]:
    ext = Path(path).suffix.lower()
    for name, extensions in LANGUAGE_EXTENSIONS.items():
        if ext in extensions:
            return name
    return None


def parse_csharp(source: str, path: str = "<unknown>") -> ParsedFile:
    """Parse C# source with tree-sitter and collect the unit's using directives."""
    parser = Parser(CSHARP_LANGUAGE)
    try:
        tree = parser.parse(source.encode("utf-8"))
    except ValueError as exc:
        raise ParseError(str(exc), path=path) from exc
    type_system = TypeSystem(keyword_types=CSHARP_KEYWORD_TYPES)
    parsed = ParsedFile(path=path, language="csharp", source=source, root=tree.root_node,
                        type_system=type_system)
    _collect_declarations(parsed)
    if tree.root_node.has_error:
        parsed.errors.append(f"{path}: syntax errors present")
        logger.debug("%s: tree-sitter reported syntax errors", path)
    return parsed


def node_text(node: Optional[Node]) -> str:
    if node is None or node.text is None:
        return ""
    return node.text.decode("utf-8", errors="replace")


def _collect_declarations(parsed: ParsedFile) -> None:
    """
    Pre-pass over the unit: register using directives, enclosing namespaces
    and every class declared in the file, with its base class when given.
    """
    types = parsed.type_system
    pending_bases = []

    def visit(node: Node, namespace: str) -> None:
        if node.type == "using_directive":
            if not any(child.type == "=" for child in node.children):
                name = _last_name_child(node)
                if name is not None:
                    types.add_import(node_text(name))
            return
        if node.type in ("namespace_declaration", "file_scoped_namespace_declaration"):
            name = node_text(node.child_by_field_name("name"))
            namespace = f"{namespace}.{name}" if namespace else name
            types.add_import(namespace)
        elif node.type in ("class_declaration", "struct_declaration", "record_declaration",
                           "interface_declaration", "enum_declaration"):
            name = node_text(node.child_by_field_name("name"))
            if name:
                full_name = f"{namespace}.{name}" if namespace else name
                types.declare_type(full_name, is_enum=node.type == "enum_declaration")
                base_list = next((c for c in node.children if c.type == "base_list"), None)
                if base_list is not None and base_list.named_children:
                    pending_bases.append((full_name, node_text(base_list.named_children[0])))
                namespace = full_name
        for child in node.children:
            visit(child, namespace)

    visit(parsed.root, "")
    for full_name, base in pending_bases:
        types.set_base(full_name, types.resolve(base).full_name)


def _last_name_child(node: Node) -> Optional[Node]:
    for child in reversed(node.named_children):
        if child.type in ("qualified_name", "identifier", "alias_qualified_name"):
            return child
    return None
