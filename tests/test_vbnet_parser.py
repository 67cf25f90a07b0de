"""
Tests for the Visual Basic tokenizer and parser.
"""

import os
import sys

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dtdscan.core.engine import ScanEngine
from dtdscan.parsing.vbnet import VisualBasicParser, parse_vbnet, tokenize


def kinds(source):
    return [(token.kind, token.text) for token in tokenize(source) if token.kind not in ("eof",)]


class TestTokenizer:
    """Tests for VB tokenization."""

    def test_string_with_doubled_quotes(self):
        """Test that "" inside a string literal is an escaped quote."""
        tokens = kinds('Dim s = "a ""quoted"" b"')
        assert ("string", '"a ""quoted"" b"') in tokens

    def test_comments_are_skipped(self):
        """Test apostrophe and REM comments produce no tokens."""
        tokens = kinds("Dim x = 1 ' trailing comment\nREM whole line\n")
        texts = [text for _, text in tokens]
        assert "trailing" not in texts
        assert "whole" not in texts
        assert texts[:4] == ["Dim", "x", "=", "1"]

    def test_explicit_line_continuation(self):
        """Test ' _' joins physical lines without a newline token."""
        tokens = tokenize("Call Foo(a, _\n    b)\n")
        names = [t for t in tokens if t.kind == "name"]
        assert [t.text for t in names] == ["Call", "Foo", "a", "b"]
        assert not any(t.kind == "newline" for t in tokens[:tokens.index(names[-1])])
        assert (names[-1].line, names[-1].column) == (2, 5)

    def test_colon_separates_statements(self):
        """Test ':' acts as a statement separator but ':=' does not."""
        tokens = kinds("a = 1 : b = 2\nFoo(name:=x)")
        assert ("newline", ":") in tokens
        assert ("op", ":=") in tokens

    def test_positions_are_one_based(self):
        """Test token columns count characters from 1."""
        tokens = tokenize("    Dim doc As New XPathDocument(path)")
        new = next(t for t in tokens if t.word == "new")
        assert (new.line, new.column) == (1, 16)

    def test_escaped_identifier(self):
        """Test [bracketed] names are identifiers, not keywords."""
        tokens = tokenize("Dim [Next] = 1")
        escaped = tokens[1]
        assert escaped.text == "Next"
        assert escaped.escaped
        assert escaped.word == ""


class TestParser:
    """Tests for VB parse trees."""

    def test_object_creation_span(self):
        """Test 'As New T(args)' yields an object_creation node at 'New'."""
        source = (
            "Module M\n"
            "    Sub Main()\n"
            "        Dim doc As New XPathDocument(path)\n"
            "    End Sub\n"
            "End Module\n"
        )
        unit = parse_vbnet(source, "M.vb")
        creation = unit.root.find_first("object_creation")
        assert creation.value == "XPathDocument"
        assert (creation.start_line, creation.start_column) == (3, 20)
        assert (creation.end_line, creation.end_column) == (3, 43)
        assert len(creation.attributes["arguments"]) == 1
        assert unit.errors == []

    def test_declarations_structure(self):
        """Test namespaces, classes, methods and properties nest correctly."""
        source = """
Imports System.Xml

Namespace Contoso
    Public Class Loader
        Inherits Object
        Private m_path As String = "a.xml"
        Public Property Name As String
        Public ReadOnly Property Path() As String
            Get
                Return m_path
            End Get
        End Property
        Public Sub New()
        End Sub
        Public Function Load() As XmlReader
            Return XmlReader.Create(m_path)
        End Function
    End Class
End Namespace
"""
        unit = parse_vbnet(source, "Loader.vb")
        assert unit.errors == []
        namespace = unit.root.find_first("namespace")
        assert namespace.value == "Contoso"
        loader = namespace.find_first("class")
        assert loader.value == "Loader"
        assert loader.attributes["base"] == "Object"
        methods = [m.value for m in loader.get_children_of_type("method")]
        assert methods == [".ctor", "Load"]
        properties = loader.get_children_of_type("property")
        assert [p.value for p in properties] == ["Name", "Path"]
        accessor = properties[1].find_first("accessor")
        assert accessor.value == "get"
        assert accessor.attributes["owner"] == "Path"
        assert unit.type_system.imports == ("System.Xml", "Contoso")
        assert unit.type_system.lookup_type("Loader").full_name == "Contoso.Loader"

    def test_keywords_are_case_insensitive(self):
        """Test upper and lower case keywords parse the same."""
        source = "CLASS C\nSUB M()\ndim d as new XPathDocument(x)\nEND SUB\nend class\n"
        unit = parse_vbnet(source)
        assert unit.errors == []
        assert unit.root.find_first("object_creation").start_line == 3

    def test_multiline_lambda_in_argument_list(self):
        """Test a multi-line lambda closes with End Function inside the call."""
        source = (
            "Class C\n"
            "    Async Function Run() As Task\n"
            "        Await Task.Run(Function()\n"
            "            Dim doc As New XPathDocument(path)\n"
            "            Return doc\n"
            "        End Function)\n"
            "    End Function\n"
            "End Class\n"
        )
        unit = parse_vbnet(source)
        assert unit.errors == []
        lam = unit.root.find_first("lambda")
        assert lam.attributes["multiline"] is True
        assert lam.attributes["kind"] == "function"
        assert lam.find_first("object_creation").start_line == 4

    def test_single_line_lambda(self):
        """Test a single-line lambda body is an expression."""
        unit = parse_vbnet("Module M\n    Dim f = Function(x As String) New XPathDocument(x)\nEnd Module\n")
        assert unit.errors == []
        lam = unit.root.find_first("lambda")
        assert lam.attributes["multiline"] is False
        assert lam.attributes["parameters"] == [("x", "String")]
        assert lam.children[0].type == "object_creation"

    def test_statement_recovery(self):
        """Test a bad statement becomes an error node and parsing continues."""
        source = (
            "Class C\n"
            "    Sub M()\n"
            "        Dim = = =\n"
            "        Dim doc As New XPathDocument(x)\n"
            "    End Sub\n"
            "End Class\n"
        )
        parser = VisualBasicParser(source, "C.vb")
        root = parser.parse()
        assert len(parser.errors) == 1
        assert parser.errors[0].startswith("C.vb:3:")
        assert root.find_first("error").start_line == 3
        assert root.find_first("object_creation").start_line == 4
        assert root.find_first("class").value == "C"

    def test_array_creation_is_not_object_creation(self):
        """Test 'New T() {...}' is an array creation."""
        unit = parse_vbnet('Module M\n    Dim names = New String() {"a", "b"}\nEnd Module\n')
        assert unit.errors == []
        assert unit.root.find_first("object_creation") is None
        assert unit.root.find_first("array_creation").attributes["type_name"] == "String()"


STATEMENTS = """
Imports System.IO
Imports System.Xml
Imports System.Xml.XPath

Module Loader
    Sub LoadAll(paths As String(), name As String)
        For Each p As String In paths
            Dim a As New XPathDocument(p)
        Next
        Using reader As XmlReader = XmlReader.Create(name)
            Dim b As New XPathDocument(reader)
        End Using
        Select Case name
            Case "x", "y"
                Dim c = New XPathDocument(name)
            Case Else
        End Select
        While name IsNot Nothing
            Dim d As New XPathDocument(name) : Exit While
        End While
        If name.Length > 0 Then Call New XPathDocument(name).CreateNavigator()
        For i As Integer = 0 To 10 Step 2
            SyncLock name
                With name
                    Do While i < 5
                        Dim e As New XPathDocument(.Trim())
                    Loop
                End With
            End SyncLock
        Next i
    End Sub
End Module
"""


class TestStatements:
    """Tests for statement blocks reaching every construction."""

    def test_block_statements(self):
        """Test constructions inside loops, Using, Select and single-line If."""
        unit = parse_vbnet(STATEMENTS, "Loader.vb")
        assert unit.errors == []
        creations = [node.start_line for node in unit.root.find_all("object_creation")]
        assert creations == [9, 12, 16, 20, 22, 27]

    def test_block_statement_diagnostics(self):
        """Test the reader-typed Using variable is the only safe construction."""
        report = ScanEngine().scan_source(STATEMENTS, "vbnet", "Loader.vb")
        lines = [d.location.line for d in report.diagnostics]
        # line 27 passes a With member whose type is unknown
        assert lines == [9, 16, 20, 22]
        assert all(d.member == "LoadAll" for d in report.diagnostics)
