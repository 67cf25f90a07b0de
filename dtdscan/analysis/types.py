"""
Static type information used by the safety classifier.

The classifier only needs one predicate, ``is_compatible(actual, required)``.
This module supplies it from a small catalog of framework types plus the
classes a unit declares itself, and provides the lexical scopes the front
ends use to bind locals, parameters and fields.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from dtdscan.analysis.model import TypeRef

logger = logging.getLogger(__name__)

OBJECT = "System.Object"


@dataclass(frozen=True)
class TypeInfo:
    """Catalog entry for a framework type."""
    full_name: str
    base: Optional[str] = OBJECT
    is_enum: bool = False
    # member name -> fully qualified type of the field/property/method result
    members: Mapping[str, str] = field(default_factory=dict)


def _types(*infos: TypeInfo) -> Dict[str, TypeInfo]:
    return {info.full_name: info for info in infos}


CATALOG: Dict[str, TypeInfo] = _types(
    TypeInfo(OBJECT, base=None),
    TypeInfo("System.String", members={
        "Format": "System.String",
        "Concat": "System.String",
        "Empty": "System.String",
        "Trim": "System.String",
    }),
    TypeInfo("System.Char"),
    TypeInfo("System.Boolean"),
    TypeInfo("System.Byte"),
    TypeInfo("System.Int16"),
    TypeInfo("System.Int32"),
    TypeInfo("System.Int64"),
    TypeInfo("System.Single"),
    TypeInfo("System.Double"),
    TypeInfo("System.Decimal"),
    TypeInfo("System.DateTime"),
    TypeInfo("System.Uri"),
    TypeInfo("System.Exception"),
    TypeInfo("System.Threading.Tasks.Task", members={"Run": "System.Threading.Tasks.Task"}),
    TypeInfo("System.IO.Stream"),
    TypeInfo("System.IO.FileStream", base="System.IO.Stream"),
    TypeInfo("System.IO.MemoryStream", base="System.IO.Stream"),
    TypeInfo("System.IO.TextReader"),
    TypeInfo("System.IO.StringReader", base="System.IO.TextReader"),
    TypeInfo("System.IO.StreamReader", base="System.IO.TextReader"),
    TypeInfo("System.IO.File", members={
        "OpenRead": "System.IO.FileStream",
        "OpenText": "System.IO.StreamReader",
        "ReadAllText": "System.String",
    }),
    TypeInfo("System.IO.Path", members={
        "Combine": "System.String",
        "GetFullPath": "System.String",
    }),
    TypeInfo("System.Xml.XmlReader", members={"Create": "System.Xml.XmlReader"}),
    TypeInfo("System.Xml.XmlTextReader", base="System.Xml.XmlReader"),
    TypeInfo("System.Xml.XmlValidatingReader", base="System.Xml.XmlReader"),
    TypeInfo("System.Xml.XmlNodeReader", base="System.Xml.XmlReader"),
    TypeInfo("System.Xml.XmlDictionaryReader", base="System.Xml.XmlReader"),
    TypeInfo("System.Xml.XmlReaderSettings"),
    TypeInfo("System.Xml.XmlResolver"),
    TypeInfo("System.Xml.XmlUrlResolver", base="System.Xml.XmlResolver"),
    TypeInfo("System.Xml.XmlSecureResolver", base="System.Xml.XmlResolver"),
    TypeInfo("System.Xml.XmlDocument", members={"CreateNavigator": "System.Xml.XPath.XPathNavigator"}),
    TypeInfo("System.Xml.XmlSpace", base="System.Enum", is_enum=True),
    TypeInfo("System.Xml.DtdProcessing", base="System.Enum", is_enum=True),
    TypeInfo("System.Enum"),
    TypeInfo("System.Xml.XPath.XPathNavigator"),
    TypeInfo("System.Xml.XPath.XPathDocument", members={
        "CreateNavigator": "System.Xml.XPath.XPathNavigator",
    }),
)

CSHARP_KEYWORD_TYPES: Dict[str, str] = {
    "object": OBJECT,
    "string": "System.String",
    "char": "System.Char",
    "bool": "System.Boolean",
    "byte": "System.Byte",
    "short": "System.Int16",
    "int": "System.Int32",
    "long": "System.Int64",
    "float": "System.Single",
    "double": "System.Double",
    "decimal": "System.Decimal",
}

VB_KEYWORD_TYPES: Dict[str, str] = {
    "object": OBJECT,
    "string": "System.String",
    "char": "System.Char",
    "boolean": "System.Boolean",
    "byte": "System.Byte",
    "short": "System.Int16",
    "integer": "System.Int32",
    "long": "System.Int64",
    "single": "System.Single",
    "double": "System.Double",
    "decimal": "System.Decimal",
    "date": "System.DateTime",
}


class TypeSystem:
    """
    Per-unit view over the catalog.

    Resolves written type names against the unit's imports and declared
    classes, and answers assignability questions for the classifier.
    """

    def __init__(
        self,
        imports: Iterable[str] = (),
        keyword_types: Optional[Mapping[str, str]] = None,
        ignore_case: bool = False,
        catalog: Optional[Mapping[str, TypeInfo]] = None,
    ):
        self.ignore_case = ignore_case
        self._catalog: Dict[str, TypeInfo] = dict(catalog if catalog is not None else CATALOG)
        self._keyword_types = {self._key(k): v for k, v in (keyword_types or {}).items()}
        self._imports: List[str] = []
        self._declared_simple: Dict[str, str] = {}
        self._index: Dict[str, str] = {}
        for name in self._catalog:
            self._index[self._key(name)] = name
        for namespace in imports:
            self.add_import(namespace)

    def _key(self, name: str) -> str:
        return name.lower() if self.ignore_case else name

    def add_import(self, namespace: str) -> None:
        namespace = namespace.strip()
        if namespace and namespace not in self._imports:
            self._imports.append(namespace)

    @property
    def imports(self) -> Tuple[str, ...]:
        return tuple(self._imports)

    def declare_type(self, full_name: str, base: Optional[str] = None, is_enum: bool = False) -> TypeRef:
        """Register a type declared in the unit being analyzed."""
        self._catalog[full_name] = TypeInfo(full_name, base=base or OBJECT, is_enum=is_enum)
        self._index[self._key(full_name)] = full_name
        self._declared_simple[self._key(full_name.rsplit(".", 1)[-1])] = full_name
        return TypeRef(full_name)

    def set_base(self, full_name: str, base: str) -> None:
        info = self._catalog.get(full_name)
        if info is not None:
            self._catalog[full_name] = TypeInfo(full_name, base=base, is_enum=info.is_enum,
                                                members=info.members)

    def lookup_type(self, name: str) -> Optional[TypeRef]:
        """Return the type a written name refers to, or None if it names no known type."""
        name = name.strip()
        if name.startswith("global::"):
            name = name[len("global::"):]
        elif self.ignore_case and name.lower().startswith("global."):
            name = name[len("global."):]
        key = self._key(name)
        if key in self._keyword_types:
            return TypeRef(self._keyword_types[key])
        if "." not in name and key in self._declared_simple:
            return TypeRef(self._declared_simple[key])
        if key in self._index:
            return TypeRef(self._index[key])
        for namespace in self._imports:
            candidate = self._key(f"{namespace}.{name}")
            if candidate in self._index:
                return TypeRef(self._index[candidate])
        return None

    def resolve(self, name: str) -> TypeRef:
        """
        Resolve a type name written in source.

        Unknown names still resolve to an opaque TypeRef: the type was
        spelled out, it just is not one the catalog knows about.
        """
        name = _strip_type_decorations(name)
        if name.endswith("[]"):
            return TypeRef(self.resolve(name[:-2]).full_name + "[]")
        found = self.lookup_type(name)
        return found if found is not None else TypeRef(name)

    def ancestors(self, full_name: str) -> List[str]:
        chain = []
        seen = {full_name}
        info = self._catalog.get(full_name)
        while info is not None and info.base and info.base not in seen:
            chain.append(info.base)
            seen.add(info.base)
            info = self._catalog.get(info.base)
        return chain

    def is_compatible(self, actual: TypeRef, required: str) -> bool:
        """True if a value of type ``actual`` can be passed where ``required`` is expected."""
        if actual.full_name == required:
            return True
        if self.ignore_case and actual.full_name.lower() == required.lower():
            return True
        return required in self.ancestors(actual.full_name)

    def is_enum(self, type_ref: TypeRef) -> bool:
        info = self._catalog.get(type_ref.full_name)
        return bool(info and info.is_enum)

    def member_type(self, owner: TypeRef, member: str) -> Optional[TypeRef]:
        """Type of a member of ``owner`` (enum field, property or method result)."""
        if self.is_enum(owner):
            return owner
        for type_name in [owner.full_name] + self.ancestors(owner.full_name):
            info = self._catalog.get(type_name)
            if info is None:
                continue
            for name, result in info.members.items():
                if self._key(name) == self._key(member):
                    return TypeRef(result)
        return None


def _strip_type_decorations(name: str) -> str:
    name = "".join(name.split())
    suffix = ""
    while name.endswith("[]") or name.endswith("()"):
        suffix += "[]"
        name = name[:-2]
    name = name.rstrip("?")
    # List<T> and List(Of T) both resolve to List
    for opener in ("<", "(of"):
        idx = name.lower().find(opener)
        if idx > 0:
            name = name[:idx]
            break
    return name + suffix


class Scope:
    """
    A lexical scope mapping local names to their static types.

    ``owner`` is the type of the enclosing class, used for ``this``/``Me``
    and for calls to methods declared on that class.
    """

    def __init__(self, parent: Optional["Scope"] = None, ignore_case: bool = False,
                 owner: Optional[TypeRef] = None):
        self.parent = parent
        self.ignore_case = parent.ignore_case if parent is not None else ignore_case
        self._owner = owner
        self._variables: Dict[str, Optional[TypeRef]] = {}
        self._methods: Dict[str, Optional[TypeRef]] = {}

    def _key(self, name: str) -> str:
        return name.lower() if self.ignore_case else name

    def child(self, owner: Optional[TypeRef] = None) -> "Scope":
        return Scope(self, owner=owner)

    @property
    def owner(self) -> Optional[TypeRef]:
        scope: Optional[Scope] = self
        while scope is not None:
            if scope._owner is not None:
                return scope._owner
            scope = scope.parent
        return None

    def declare(self, name: str, type_ref: Optional[TypeRef]) -> None:
        self._variables[self._key(name)] = type_ref

    def declare_method(self, name: str, return_type: Optional[TypeRef]) -> None:
        self._methods[self._key(name)] = return_type

    def is_declared(self, name: str) -> bool:
        key = self._key(name)
        scope: Optional[Scope] = self
        while scope is not None:
            if key in scope._variables:
                return True
            scope = scope.parent
        return False

    def lookup(self, name: str) -> Optional[TypeRef]:
        key = self._key(name)
        scope: Optional[Scope] = self
        while scope is not None:
            if key in scope._variables:
                return scope._variables[key]
            scope = scope.parent
        return None

    def lookup_method(self, name: str) -> Optional[TypeRef]:
        key = self._key(name)
        scope: Optional[Scope] = self
        while scope is not None:
            if key in scope._methods:
                return scope._methods[key]
            scope = scope.parent
        return None
