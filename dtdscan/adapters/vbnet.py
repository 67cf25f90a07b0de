"""
Visual Basic grammar adapter.

Works on the ASTNode trees produced by the hand-written parser; names are
compared case-insensitively throughout.
"""

from typing import Optional, Sequence

from dtdscan.adapters import register_adapter
from dtdscan.adapters.base import GrammarAdapter
from dtdscan.analysis.model import ConstructionSite, Span, TypeRef
from dtdscan.analysis.types import Scope
from dtdscan.errors import MalformedConstructionExpression
from dtdscan.parsing.base import ASTNode, ParsedFile
from dtdscan.parsing.vbnet import TYPE_BLOCKS, parse_vbnet

BLOCK_SCOPES = {"block", "select", "case", "with", "synclock", "if", "try", "finally", "while", "do"}


@register_adapter("vbnet")
class VisualBasicAdapter(GrammarAdapter):

    @property
    def language(self) -> str:
        return "vbnet"

    def parse(self, source: str, path: str = "<unknown>") -> ParsedFile:
        return parse_vbnet(source, path)

    def children(self, node: ASTNode) -> Sequence[ASTNode]:
        return node.children

    def is_construction(self, node: ASTNode) -> bool:
        return node.type == "object_creation"

    def member_name(self, node: ASTNode, unit: ParsedFile) -> Optional[str]:
        if node.type in ("method", "property", "event"):
            return node.value
        if node.type == "accessor":
            owner = node.attributes.get("owner")
            return f"{node.value}_{owner}" if owner else node.value
        if node.type == "field":
            declarators = node.attributes.get("declarators") or []
            return declarators[0]["name"] if declarators else None
        return None

    def bind(self, node: ASTNode, scope: Scope, unit: ParsedFile) -> Scope:
        kind = node.type
        types = unit.type_system
        if kind in TYPE_BLOCKS:
            return self._bind_type(node, scope, unit)
        if kind in ("method", "lambda", "accessor"):
            inner = scope.child()
            parameters = node.attributes.get("parameters") or []
            for name, type_name in parameters:
                inner.declare(name, types.resolve(type_name) if type_name else None)
            if kind == "accessor" and node.value == "set" and not parameters:
                owner_type = node.attributes.get("owner_type")
                inner.declare("value", types.resolve(owner_type) if owner_type else None)
            return inner
        if kind in ("local_declaration", "field"):
            self._bind_declarators(node, scope, scope, unit)
            return scope
        if kind in ("for", "for_each"):
            inner = scope.child()
            type_name = node.attributes.get("type_name")
            inner.declare(node.attributes["variable"], types.resolve(type_name) if type_name else None)
            return inner
        if kind == "catch":
            inner = scope.child()
            if node.attributes.get("variable"):
                type_name = node.attributes.get("type_name") or "System.Exception"
                inner.declare(node.attributes["variable"], types.resolve(type_name))
            return inner
        if kind == "using":
            inner = scope.child()
            self._bind_declarators(node, inner, scope, unit)
            return inner
        if kind in BLOCK_SCOPES:
            return scope.child()
        return scope

    def to_site(self, node: ASTNode, scope: Scope, member: Optional[str], unit: ParsedFile) -> ConstructionSite:
        type_name = node.attributes.get("type_name")
        if not type_name:
            raise MalformedConstructionExpression(
                f"object creation at line {node.start_line} has no type"
            )
        argument_types = tuple(
            self.expression_type(argument, scope, unit)
            for argument in node.attributes.get("arguments") or []
        )
        return ConstructionSite(
            type_name=unit.type_system.resolve(type_name).full_name,
            argument_types=argument_types,
            span=Span(node.start_line, node.start_column, node.end_line, node.end_column),
            enclosing_member=member,
        )

    def expression_type(self, node: Optional[ASTNode], scope: Scope, unit: ParsedFile) -> Optional[TypeRef]:
        """Static type of an expression, or None when it cannot be determined."""
        if node is None:
            return None
        types = unit.type_system
        kind = node.type
        if kind == "literal":
            literal_type = node.attributes.get("literal_type")
            return TypeRef(literal_type) if literal_type else None
        if kind == "name":
            if scope.is_declared(node.value):
                return scope.lookup(node.value)
            # parameterless call written without parentheses
            return scope.lookup_method(node.value)
        if kind == "me":
            return scope.owner
        if kind == "parenthesized":
            return self.expression_type(node.children[0], scope, unit) if node.children else None
        if kind in ("object_creation", "array_creation", "conversion"):
            type_name = node.attributes.get("type_name")
            return types.resolve(type_name) if type_name else None
        if kind == "typeof":
            return TypeRef("System.Boolean")
        if kind == "ternary":
            return self.expression_type(node.attributes.get("result"), scope, unit)
        if kind == "member_access":
            return self._member_access_type(node, scope, unit)
        if kind == "invocation":
            target = node.attributes.get("target")
            if target is None:
                return None
            if target.type == "name":
                if scope.is_declared(target.value):
                    return None
                return scope.lookup_method(target.value)
            if target.type == "member_access":
                return self._member_access_type(target, scope, unit)
        return None

    def _member_access_type(self, node: ASTNode, scope: Scope, unit: ParsedFile) -> Optional[TypeRef]:
        target = node.attributes.get("target")
        name = node.value
        if target is None or not name:
            return None
        if target.type == "me":
            if scope.is_declared(name):
                return scope.lookup(name)
            return scope.lookup_method(name)
        owner = None
        text = target.value if target.type == "name" else target.attributes.get("qualified")
        # XmlReader.Create / XmlSpace.Preserve: the target names a type
        if text and not scope.is_declared(text.split(".")[0]):
            owner = unit.type_system.lookup_type(text)
        if owner is None:
            owner = self.expression_type(target, scope, unit)
        if owner is None:
            return None
        return unit.type_system.member_type(owner, name)

    def _bind_type(self, node: ASTNode, scope: Scope, unit: ParsedFile) -> Scope:
        types = unit.type_system
        inner = scope.child(owner=types.lookup_type(node.value))
        for member in node.children:
            if member.type == "field":
                for declarator in member.attributes.get("declarators") or []:
                    if declarator["type"]:
                        inner.declare(declarator["name"], types.resolve(declarator["type"]))
            elif member.type in ("property", "event"):
                type_name = member.attributes.get("type_name")
                inner.declare(member.value, types.resolve(type_name) if type_name else None)
            elif member.type == "method" and member.value != ".ctor":
                return_type = member.attributes.get("return_type")
                inner.declare_method(member.value, types.resolve(return_type) if return_type else None)
        return inner

    def _bind_declarators(self, node: ASTNode, target: Scope, lookup: Scope, unit: ParsedFile) -> None:
        types = unit.type_system
        for declarator in node.attributes.get("declarators") or []:
            if declarator["type"]:
                declared = types.resolve(declarator["type"])
            else:
                # Option Infer: the initializer's type
                declared = self.expression_type(declarator["initializer"], lookup, unit)
            target.declare(declarator["name"], declared)
