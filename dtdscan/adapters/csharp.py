"""
C# grammar adapter.

Maps tree-sitter object creations, including target-typed ``new(...)``, to construction
sites and resolves argument types from the declarations in scope.
"""

from typing import Optional, Sequence

from tree_sitter import Node

from dtdscan.adapters import register_adapter
from dtdscan.adapters.base import GrammarAdapter
from dtdscan.analysis.model import ConstructionSite, Span, TypeRef
from dtdscan.analysis.types import Scope
from dtdscan.errors import MalformedConstructionExpression
from dtdscan.parsing.base import ParsedFile
from dtdscan.parsing.treesitter import node_text, parse_csharp

TYPE_DECLARATIONS = {
    "class_declaration",
    "struct_declaration",
    "record_declaration",
    "interface_declaration",
}

METHOD_LIKE = {
    "method_declaration",
    "constructor_declaration",
    "destructor_declaration",
    "operator_declaration",
    "conversion_operator_declaration",
    "local_function_statement",
}

FUNCTION_SCOPES = METHOD_LIKE | {
    "lambda_expression",
    "anonymous_method_expression",
    "accessor_declaration",
}

BLOCK_SCOPES = {
    "block",
    "catch_clause",
    "for_statement",
    "foreach_statement",
    "using_statement",
    "switch_section",
}

CONSTRUCTIONS = {
    "object_creation_expression",
    # C# 9 target-typed new(...)
    "implicit_object_creation_expression",
}

STRING_LITERALS = {
    "string_literal",
    "verbatim_string_literal",
    "raw_string_literal",
    "interpolated_string_expression",
}

LITERAL_TYPES = {
    "character_literal": "System.Char",
    "integer_literal": "System.Int32",
    "real_literal": "System.Double",
    "boolean_literal": "System.Boolean",
}

STATIC_TARGETS = {
    "identifier",
    "qualified_name",
    "generic_name",
    "alias_qualified_name",
    "member_access_expression",
}


@register_adapter("csharp")
class CSharpAdapter(GrammarAdapter):

    @property
    def language(self) -> str:
        return "csharp"

    def parse(self, source: str, path: str = "<unknown>") -> ParsedFile:
        return parse_csharp(source, path)

    def children(self, node: Node) -> Sequence[Node]:
        return node.children

    def is_construction(self, node: Node) -> bool:
        return node.type in CONSTRUCTIONS

    def member_name(self, node: Node, unit: ParsedFile) -> Optional[str]:
        if node.type in METHOD_LIKE or node.type in ("property_declaration", "event_declaration"):
            return node_text(node.child_by_field_name("name")) or None
        if node.type == "indexer_declaration":
            return "this[]"
        if node.type == "accessor_declaration":
            keyword = node_text(node.child_by_field_name("name")) or _accessor_keyword(node)
            owner = _accessor_owner(node)
            owner_name = node_text(owner.child_by_field_name("name")) if owner is not None else ""
            if owner is not None and owner.type == "indexer_declaration":
                owner_name = "Item"
            return f"{keyword}_{owner_name}" if owner_name else keyword
        if node.type in ("field_declaration", "event_field_declaration"):
            declarator = _first_declarator(node)
            if declarator is not None:
                return _declarator_name(declarator) or None
        return None

    def bind(self, node: Node, scope: Scope, unit: ParsedFile) -> Scope:
        kind = node.type
        if kind in TYPE_DECLARATIONS:
            return self._bind_type(node, scope, unit)
        if kind in FUNCTION_SCOPES:
            inner = scope.child()
            if kind == "local_function_statement":
                scope.declare_method(node_text(node.child_by_field_name("name")),
                                     self._return_type(node, unit))
            self._bind_parameters(node, inner, unit)
            if kind == "accessor_declaration":
                owner = _accessor_owner(node)
                if owner is not None and owner.child_by_field_name("type") is not None:
                    inner.declare("value", unit.type_system.resolve(
                        node_text(owner.child_by_field_name("type"))))
            return inner
        if kind == "variable_declaration":
            self._bind_variables(node, scope, unit)
            return scope
        if kind == "catch_declaration":
            name = node.child_by_field_name("name")
            if name is not None:
                scope.declare(node_text(name), unit.type_system.resolve(
                    node_text(node.child_by_field_name("type"))))
            return scope
        if kind == "declaration_expression":
            name = node.child_by_field_name("name")
            if name is not None:
                scope.declare(node_text(name), self._declared_type(node, None, scope, unit))
            return scope
        if kind in BLOCK_SCOPES:
            inner = scope.child()
            if kind == "foreach_statement":
                left = node.child_by_field_name("left")
                if left is not None and left.type == "identifier":
                    inner.declare(node_text(left), self._declared_type(node, None, scope, unit))
            return inner
        return scope

    def to_site(self, node: Node, scope: Scope, member: Optional[str], unit: ParsedFile) -> ConstructionSite:
        type_ref = self._constructed_type(node, scope, unit)
        if type_ref is None:
            raise MalformedConstructionExpression(
                f"object creation at line {node.start_point[0] + 1} has no type"
            )
        arguments = node.child_by_field_name("arguments")
        if arguments is None:
            arguments = next((c for c in node.named_children if c.type == "argument_list"), None)
        argument_types = []
        if arguments is not None:
            for argument in arguments.named_children:
                if argument.type != "argument":
                    continue
                expression = argument.named_children[-1] if argument.named_children else None
                argument_types.append(self.expression_type(expression, scope, unit))
        return ConstructionSite(
            type_name=type_ref.full_name,
            argument_types=tuple(argument_types),
            span=_span(node, unit),
            enclosing_member=member,
        )

    def _constructed_type(self, node: Node, scope: Scope, unit: ParsedFile) -> Optional[TypeRef]:
        if node.type == "implicit_object_creation_expression":
            return self._target_type(node, scope, unit)
        type_node = node.child_by_field_name("type")
        return unit.type_system.resolve(node_text(type_node)) if type_node is not None else None

    def _target_type(self, node: Node, scope: Scope, unit: ParsedFile) -> Optional[TypeRef]:
        """Type a target-typed ``new(...)`` takes from its declaration or assignment."""
        parent = node.parent
        if parent is not None and parent.type == "equals_value_clause":
            parent = parent.parent
        if parent is None:
            return None
        if parent.type == "variable_declarator":
            declaration = parent.parent
            type_node = declaration.child_by_field_name("type") if declaration is not None else None
            if type_node is None or type_node.type == "implicit_type" or node_text(type_node) == "var":
                return None
            return unit.type_system.resolve(node_text(type_node))
        if parent.type == "assignment_expression" and parent.child_by_field_name("right") == node:
            return self.expression_type(parent.child_by_field_name("left"), scope, unit)
        return None

    def expression_type(self, node: Optional[Node], scope: Scope, unit: ParsedFile) -> Optional[TypeRef]:
        """Static type of an expression, or None when it cannot be determined."""
        if node is None:
            return None
        types = unit.type_system
        kind = node.type
        if kind in STRING_LITERALS:
            return TypeRef("System.String")
        if kind in LITERAL_TYPES:
            return TypeRef(LITERAL_TYPES[kind])
        if kind == "identifier":
            return scope.lookup(node_text(node))
        if kind == "this_expression":
            return scope.owner
        if kind in ("parenthesized_expression", "checked_expression"):
            inner = node.named_children
            return self.expression_type(inner[0], scope, unit) if inner else None
        if kind in ("object_creation_expression", "cast_expression"):
            type_node = node.child_by_field_name("type")
            return types.resolve(node_text(type_node)) if type_node is not None else None
        if kind in ("as_expression", "binary_expression") and _has_token(node, "as"):
            right = node.child_by_field_name("right")
            return types.resolve(node_text(right)) if right is not None else None
        if kind == "conditional_expression":
            return self.expression_type(node.child_by_field_name("consequence"), scope, unit)
        if kind == "member_access_expression":
            return self._member_access_type(node, scope, unit)
        if kind == "invocation_expression":
            function = node.child_by_field_name("function")
            if function is None:
                return None
            if function.type == "identifier":
                return scope.lookup_method(node_text(function))
            if function.type == "generic_name":
                return scope.lookup_method(node_text(function.named_children[0]))
            if function.type == "member_access_expression":
                return self._member_access_type(function, scope, unit)
        return None

    def _member_access_type(self, node: Node, scope: Scope, unit: ParsedFile) -> Optional[TypeRef]:
        target = node.child_by_field_name("expression")
        name = node_text(node.child_by_field_name("name"))
        if target is None or not name:
            return None
        if target.type == "this_expression":
            declared = scope.lookup(name)
            if declared is not None:
                return declared
            return scope.lookup_method(name)
        owner = None
        text = node_text(target)
        # XmlReader.Create / System.Xml.XmlSpace.Preserve: the target names a type
        if target.type in STATIC_TARGETS and not scope.is_declared(text.split(".")[0].strip()):
            owner = unit.type_system.lookup_type(text)
        if owner is None:
            owner = self.expression_type(target, scope, unit)
        if owner is None:
            return None
        return unit.type_system.member_type(owner, name)

    def _bind_type(self, node: Node, scope: Scope, unit: ParsedFile) -> Scope:
        types = unit.type_system
        owner = types.lookup_type(node_text(node.child_by_field_name("name")))
        inner = scope.child(owner=owner)
        body = node.child_by_field_name("body")
        if body is None:
            body = next((c for c in node.named_children if c.type == "declaration_list"), None)
        if body is None:
            return inner
        for member in body.named_children:
            if member.type in ("field_declaration", "event_field_declaration"):
                declaration = next((c for c in member.named_children if c.type == "variable_declaration"), None)
                if declaration is not None:
                    self._bind_variables(declaration, inner, unit)
            elif member.type in ("property_declaration", "event_declaration"):
                name = member.child_by_field_name("name")
                type_node = member.child_by_field_name("type")
                if name is not None and type_node is not None:
                    inner.declare(node_text(name), types.resolve(node_text(type_node)))
            elif member.type == "method_declaration":
                inner.declare_method(node_text(member.child_by_field_name("name")),
                                     self._return_type(member, unit))
        return inner

    def _bind_parameters(self, node: Node, scope: Scope, unit: ParsedFile) -> None:
        parameters = node.child_by_field_name("parameters")
        if parameters is None:
            return
        if parameters.type == "identifier":
            # x => ... : implicitly typed lambda parameter
            scope.declare(node_text(parameters), None)
            return
        for parameter in parameters.named_children:
            if parameter.type not in ("parameter", "identifier"):
                continue
            if parameter.type == "identifier":
                scope.declare(node_text(parameter), None)
                continue
            name = parameter.child_by_field_name("name")
            type_node = parameter.child_by_field_name("type")
            if name is None:
                continue
            type_ref = unit.type_system.resolve(node_text(type_node)) if type_node is not None else None
            scope.declare(node_text(name), type_ref)

    def _bind_variables(self, declaration: Node, scope: Scope, unit: ParsedFile) -> None:
        for declarator in declaration.named_children:
            if declarator.type != "variable_declarator":
                continue
            name = _declarator_name(declarator)
            if name:
                scope.declare(name, self._declared_type(declaration, declarator, scope, unit))

    def _declared_type(self, declaration: Node, declarator: Optional[Node], scope: Scope,
                       unit: ParsedFile) -> Optional[TypeRef]:
        type_node = declaration.child_by_field_name("type")
        if type_node is None:
            return None
        if type_node.type == "implicit_type" or node_text(type_node) == "var":
            if declarator is None:
                return None
            return self.expression_type(_declarator_value(declarator), scope, unit)
        return unit.type_system.resolve(node_text(type_node))

    def _return_type(self, node: Node, unit: ParsedFile) -> Optional[TypeRef]:
        type_node = node.child_by_field_name("returns") or node.child_by_field_name("type")
        if type_node is None or node_text(type_node) == "void":
            return None
        return unit.type_system.resolve(node_text(type_node))


def _span(node: Node, unit: ParsedFile) -> Span:
    start_row, start_col = node.start_point
    end_row, end_col = node.end_point
    return Span(
        start_line=start_row + 1,
        start_column=_column(unit, start_row, start_col),
        end_line=end_row + 1,
        end_column=_column(unit, end_row, end_col),
    )


def _column(unit: ParsedFile, row: int, byte_column: int) -> int:
    """tree-sitter columns are byte offsets; diagnostics use characters."""
    line = unit.line_text(row + 1)
    if line.isascii():
        return byte_column + 1
    return len(line.encode("utf-8")[:byte_column].decode("utf-8", errors="ignore")) + 1


def _has_token(node: Node, token: str) -> bool:
    return any(not child.is_named and child.type == token for child in node.children)


def _accessor_keyword(node: Node) -> str:
    for child in node.children:
        if child.type in ("get", "set", "init", "add", "remove"):
            return child.type
    return "accessor"


def _accessor_owner(node: Node) -> Optional[Node]:
    parent = node.parent
    while parent is not None and parent.type == "accessor_list":
        parent = parent.parent
    return parent


def _first_declarator(node: Node) -> Optional[Node]:
    for child in node.named_children:
        if child.type == "variable_declaration":
            for declarator in child.named_children:
                if declarator.type == "variable_declarator":
                    return declarator
    return None


def _declarator_name(declarator: Node) -> str:
    name = declarator.child_by_field_name("name")
    if name is None:
        name = next((c for c in declarator.named_children if c.type == "identifier"), None)
    return node_text(name)


def _declarator_value(declarator: Node) -> Optional[Node]:
    seen_equals = False
    for child in declarator.children:
        if child.type == "equals_value_clause":
            return child.named_children[0] if child.named_children else None
        if seen_equals and child.is_named:
            return child
        if child.type == "=":
            seen_equals = True
    return None
