"""
Tests for type resolution and lexical scopes.
"""

import os
import sys

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dtdscan.analysis.model import TypeRef
from dtdscan.analysis.types import CSHARP_KEYWORD_TYPES, VB_KEYWORD_TYPES, Scope, TypeSystem


class TestTypeSystem:
    """Tests for the per-unit type system."""

    def test_resolve_through_imports(self):
        """Test simple names resolve against imported namespaces."""
        types = TypeSystem(imports=["System.Xml"])
        assert types.resolve("XmlReader") == TypeRef("System.Xml.XmlReader")
        assert types.resolve("System.Xml.XmlReader") == TypeRef("System.Xml.XmlReader")

    def test_unknown_type_is_opaque(self):
        """Test unknown names still resolve to the written name."""
        types = TypeSystem()
        assert types.resolve("Contoso.Widget") == TypeRef("Contoso.Widget")
        assert types.lookup_type("Contoso.Widget") is None

    def test_keyword_types(self):
        """Test language keywords map to framework types."""
        assert TypeSystem(keyword_types=CSHARP_KEYWORD_TYPES).resolve("string") == TypeRef("System.String")
        vb = TypeSystem(keyword_types=VB_KEYWORD_TYPES, ignore_case=True)
        assert vb.resolve("Integer") == TypeRef("System.Int32")
        assert vb.resolve("STRING") == TypeRef("System.String")

    def test_decorations_stripped(self):
        """Test generic arguments, nullable markers and array ranks."""
        types = TypeSystem(imports=["System.Xml"], keyword_types=VB_KEYWORD_TYPES, ignore_case=True)
        assert types.resolve("String()") == TypeRef("System.String[]")
        assert types.resolve("List(Of String)") == TypeRef("List")
        assert types.resolve("XmlSpace?") == TypeRef("System.Xml.XmlSpace")
        assert types.resolve("Global.System.Xml.XmlReader") == TypeRef("System.Xml.XmlReader")

    def test_case_insensitive_lookup(self):
        """Test Visual Basic lookups ignore case and return the canonical name."""
        types = TypeSystem(imports=["system.xml.xpath"], ignore_case=True)
        assert types.resolve("xpathdocument") == TypeRef("System.Xml.XPath.XPathDocument")

    def test_compatibility(self):
        """Test assignability follows the base type chain."""
        types = TypeSystem()
        assert types.is_compatible(TypeRef("System.Xml.XmlReader"), "System.Xml.XmlReader")
        assert types.is_compatible(TypeRef("System.Xml.XmlTextReader"), "System.Xml.XmlReader")
        assert not types.is_compatible(TypeRef("System.String"), "System.Xml.XmlReader")
        assert not types.is_compatible(TypeRef("System.Xml.XmlReader"), "System.Xml.XmlTextReader")

    def test_declared_types(self):
        """Test classes declared in the unit take part in compatibility."""
        types = TypeSystem(imports=["System.Xml"])
        types.declare_type("Contoso.SafeReader")
        types.set_base("Contoso.SafeReader", types.resolve("XmlTextReader").full_name)
        assert types.resolve("SafeReader") == TypeRef("Contoso.SafeReader")
        assert types.ancestors("Contoso.SafeReader") == [
            "System.Xml.XmlTextReader",
            "System.Xml.XmlReader",
            "System.Object",
        ]

    def test_member_types(self):
        """Test factory results and enum members."""
        types = TypeSystem()
        reader = types.member_type(TypeRef("System.Xml.XmlReader"), "Create")
        assert reader == TypeRef("System.Xml.XmlReader")
        space = types.member_type(TypeRef("System.Xml.XmlSpace"), "Preserve")
        assert space == TypeRef("System.Xml.XmlSpace")
        assert types.member_type(TypeRef("System.Xml.XmlReader"), "Missing") is None


class TestScope:
    """Tests for lexical scopes."""

    def test_nested_lookup(self):
        """Test inner scopes see outer declarations and shadow them."""
        outer = Scope()
        outer.declare("path", TypeRef("System.String"))
        inner = outer.child()
        inner.declare("reader", TypeRef("System.Xml.XmlReader"))
        assert inner.lookup("path") == TypeRef("System.String")
        assert inner.lookup("reader") == TypeRef("System.Xml.XmlReader")
        assert outer.lookup("reader") is None
        inner.declare("path", None)
        assert inner.is_declared("path")
        assert inner.lookup("path") is None

    def test_ignore_case_is_inherited(self):
        """Test case-insensitive scopes stay case-insensitive."""
        scope = Scope(ignore_case=True).child()
        scope.declare("Reader", TypeRef("System.Xml.XmlReader"))
        assert scope.lookup("READER") == TypeRef("System.Xml.XmlReader")

    def test_owner_and_methods(self):
        """Test the enclosing type and its methods are visible from nested scopes."""
        owner = TypeRef("Loader")
        class_scope = Scope().child(owner=owner)
        class_scope.declare_method("Open", TypeRef("System.Xml.XmlReader"))
        body = class_scope.child().child()
        assert body.owner == owner
        assert body.lookup_method("Open") == TypeRef("System.Xml.XmlReader")
        assert body.lookup_method("Close") is None
