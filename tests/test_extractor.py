"""Tests for regex dependency extraction from Apex and LWC sources."""

import pytest

from salesforce_samples import MY_HANDLER, MY_TRIGGER
from sfgraph.extractor import (
    DependencyExtractor,
    context_lines,
    extract_methods,
    extract_properties,
    find_method_boundaries,
    is_abstract,
    is_in_comment_or_string,
    is_interface,
)
from sfgraph.models import LINK_TYPES, DependencyCandidate, DependencyLink

extractor = DependencyExtractor()


def _by_type(candidates, link_type):
    return [c for c in candidates if c.link.type == link_type]


class TestApexExtraction:
    """Tests for inheritance, calls and references in Apex classes."""

    def test_extends_link(self, apex_node):
        """The parent class becomes an 'extends' link."""
        node = apex_node("Foo.cls")
        candidates = extractor.extract("public class Foo extends Bar {\n}\n", node)

        extends = _by_type(candidates, "extends")
        assert len(extends) == 1
        assert extends[0].target_class == "Bar"
        assert extends[0].link.source == node.id
        assert extends[0].link.target == "r:Bar"
        assert extends[0].link.strength == 9

    def test_generic_parent_is_stripped(self, apex_node):
        """Generic arguments are dropped from the parent name."""
        candidates = extractor.extract("public class Foo extends Base<String> {}", apex_node("Foo.cls"))
        assert _by_type(candidates, "extends")[0].target_class == "Base"

    def test_implements_each_interface(self, apex_node):
        """Each implemented interface gets its own link."""
        content = "public class Job implements Queueable, Finalizer {\n}\n"
        candidates = extractor.extract(content, apex_node("Job.cls"))

        implements = _by_type(candidates, "implements")
        assert sorted(c.target_class for c in implements) == ["Finalizer", "Queueable"]
        assert all(c.link.strength == 8 for c in implements)

    def test_soql_query_targets_object(self, apex_node):
        """SOQL queries link to the queried object."""
        content = "public class Repo {\n    public List<Account> load() {\n        return [SELECT Id FROM Account];\n    }\n}\n"
        candidates = extractor.extract(content, apex_node("Repo.cls"))

        soql = _by_type(candidates, "soql-query")
        assert len(soql) == 1
        assert soql[0].target_class == "Account"
        assert soql[0].link.target_method == "SOQL_Query"
        assert soql[0].link.line_number == 3
        assert soql[0].link.source_method == "load"

    def test_method_call_details(self, apex_node):
        """Method calls record source method, target method and line."""
        node = apex_node("MyHandler.cls")
        candidates = extractor.extract(MY_HANDLER, node)

        call = _by_type(candidates, "method-call")[0]
        assert call.target_class == "AuditLog"
        assert call.link.target_method == "record"
        assert call.link.source_method == "run"
        assert call.link.details == "run calls AuditLog.record"
        assert call.link.line_number == 4
        assert call.link.code_snippet == "AuditLog.record(rows.size());"
        assert call.link.file_name == "MyHandler.cls"
        assert call.link.target_file_name == "AuditLog.cls"
        assert "> 4: AuditLog.record(rows.size());" in call.link.context_lines

    def test_trigger_call_and_comment_exclusion(self, apex_node):
        """Commented calls in a trigger are skipped."""
        node = apex_node("MyTrigger.trigger", path="force-app/main/default/triggers/MyTrigger.trigger")
        candidates = extractor.extract(MY_TRIGGER, node)

        calls = _by_type(candidates, "method-call")
        assert [c.target_class for c in calls] == ["MyHandler"]
        assert calls[0].link.target_method == "run"
        assert calls[0].link.details == "unknown calls MyHandler.run"
        assert not [c for c in candidates if c.target_class == "OldClass"]

        context = _by_type(candidates, "trigger-context")
        assert context[0].target_class == "Trigger"
        assert context[0].link.target_method == "new"

    def test_call_inside_string_is_ignored(self, apex_node):
        """Calls inside string literals are skipped."""
        content = "public class Foo {\n    String s = 'Helper.run()';\n}\n"
        candidates = extractor.extract(content, apex_node("Foo.cls"))
        assert not [c for c in candidates if c.target_class == "Helper"]

    def test_system_classes_only_through_system_rules(self, apex_node):
        """Platform classes only appear through rules that allow them."""
        content = (
            "public class Foo {\n"
            "    public void go() {\n"
            "        System.debug('x');\n"
            "        Database.insert(records);\n"
            "        String.isBlank(value);\n"
            "    }\n"
            "}\n"
        )
        candidates = extractor.extract(content, apex_node("Foo.cls"))

        assert [c.target_class for c in _by_type(candidates, "system-method")] == ["System"]
        database = _by_type(candidates, "database-operation")
        assert database[0].target_class == "Database"
        assert database[0].link.target_method == "insert"
        assert not _by_type(candidates, "method-call")
        assert not [c for c in candidates if c.target_class == "String"]

    def test_type_references_skip_self_and_primitives(self, apex_node):
        """Type references skip the class itself and built-in types."""
        content = (
            "public class Foo {\n"
            "    private Invoice current;\n"
            "    public Foo(Customer owner) {\n"
            "        Map<Id, Payment> byId = new Map<Id, Payment>();\n"
            "        Foo other = new Foo(null);\n"
            "    }\n"
            "}\n"
        )
        candidates = extractor.extract(content, apex_node("Foo.cls"))

        references = {c.target_class for c in _by_type(candidates, "references")}
        assert {"Invoice", "Customer", "Payment"} <= references
        assert "Foo" not in references
        assert "Map" not in references
        assert "Id" not in references

    def test_method_level_can_be_disabled(self, apex_node):
        """Disabling method-level analysis drops call links."""
        candidates = extractor.extract(MY_HANDLER, apex_node("MyHandler.cls"), include_method_level=False)
        assert not _by_type(candidates, "method-call")
        assert not _by_type(candidates, "soql-query")
        assert _by_type(candidates, "references")

    def test_non_code_files_have_no_dependencies(self, apex_node):
        """Markup files yield nothing."""
        node = apex_node("app.html", path="force-app/main/default/lwc/app/app.html", node_type="lwc")
        assert extractor.extract("<template><c-child></c-child></template>", node) == []


class TestDeduplication:
    """Tests for the (target, type) merge rule."""

    def test_strongest_candidate_wins(self):
        """Duplicates keep the strongest link per target and type."""
        weak = DependencyCandidate("Helper", "r:Helper", DependencyLink("a", "r:Helper", "references", 4))
        strong = DependencyCandidate("Helper", "r:Helper", DependencyLink("a", "r:Helper", "references", 5))
        other = DependencyCandidate("Helper", "r:Helper", DependencyLink("a", "r:Helper", "method-call", 6))

        result = DependencyExtractor.deduplicate([weak, strong, other])

        assert len(result) == 2
        assert {c.link.strength for c in result if c.link.type == "references"} == {5}

    def test_repeated_calls_collapse(self, apex_node):
        """Repeated calls to one class collapse into one link."""
        content = "public class Foo {\n    public void go() {\n        Helper.a();\n        Helper.b();\n    }\n}\n"
        candidates = extractor.extract(content, apex_node("Foo.cls"))
        assert len(_by_type(candidates, "method-call")) == 1


class TestLwcExtraction:
    """Tests for Lightning Web Component module imports."""

    CONTENT = (
        "import { LightningElement, wire } from 'lwc';\n"
        "import getAccounts from '@salesforce/apex/AccountController.getAccounts';\n"
        "import childCard from 'c/childCard';\n"
        "// import legacy from 'c/legacyCard';\n"
        "export default class AccountList extends LightningElement {\n"
        "    @wire(getAccounts) accounts;\n"
        "}\n"
    )

    def test_imports_and_wire(self, apex_node):
        """LWC imports, Apex imports and wire adapters are all linked."""
        node = apex_node(
            "accountList.js", path="force-app/main/default/lwc/accountList/accountList.js", node_type="lwc"
        )
        candidates = extractor.extract(self.CONTENT, node)

        imperative = _by_type(candidates, "imperative-apex")
        assert imperative[0].target_class == "AccountController"
        assert imperative[0].link.target_method == "getAccounts"
        assert imperative[0].link.strength == 10
        assert imperative[0].link.details == "Imports AccountController.getAccounts"

        imports = _by_type(candidates, "import")
        assert [c.target_id for c in imports] == ["r:lwc/childCard"]
        assert imports[0].link.strength == 9

        wire = _by_type(candidates, "wire")
        assert wire[0].target_class == "AccountController"
        assert wire[0].link.strength == 10


class TestReverseReferences:
    """Tests for the dependents check."""

    def test_classifies_references(self, apex_node):
        """Mentions are classified as extends, method-call or references."""
        target = apex_node("MyHandler.cls")
        content = (
            "public class Special extends MyHandler {\n"
            "    // MyHandler is great\n"
            "    void go() { MyHandler.run(null); }\n"
            "    MyHandler field;\n"
            "}\n"
        )
        links = extractor.find_references_to(content, "MyHandler", target, "r:Special.cls", "Special.cls")

        assert [link.type for link in links] == ["extends", "method-call", "references"]
        assert [link.strength for link in links] == [9, 5, 5]
        assert links[1].details == "Calls MyHandler.run()"
        assert all(link.target == target.id for link in links)
        assert links[0].target_file_name == "MyHandler.cls"

    def test_word_boundary(self, apex_node):
        """Longer names containing the target are not matches."""
        target = apex_node("MyHandler.cls")
        links = extractor.find_references_to(
            "MyHandlerTest.go();", "MyHandler", target, "r:x", "x.cls"
        )
        assert links == []


class TestHelpers:
    """Tests for metadata and text helpers."""

    def test_methods_and_properties(self):
        """Declared methods and properties are listed."""
        content = (
            "public abstract class Shape {\n"
            "    public static final Integer SIDES = 0;\n"
            "    private List<String> tags;\n"
            "    public abstract Decimal area();\n"
            "    public String describe(String prefix) {\n"
            "        return prefix;\n"
            "    }\n"
            "}\n"
        )
        assert extract_methods(content) == ["area", "describe"]
        assert extract_properties(content) == ["SIDES", "tags"]
        assert is_abstract(content)
        assert not is_interface(content)
        assert is_interface("public interface Greeter { void greet(); }")

    def test_method_boundaries(self):
        """Method spans cover the opening to the closing brace."""
        content = MY_HANDLER
        assert find_method_boundaries(content) == [("run", 2, 5)]

    def test_context_lines(self):
        """Context is two lines either side of the match."""
        lines = ["a", "b", "c", "d", "e", "f"]
        assert context_lines(lines, 0) == ["> 1: a", "  2: b", "  3: c"]
        assert context_lines(lines, 3) == ["  2: b", "  3: c", "> 4: d", "  5: e", "  6: f"]

    def test_comment_or_string(self):
        """Positions inside comments and strings are detected."""
        line = "x = 'a // b'; // Helper.run()"
        assert is_in_comment_or_string(line, line.index("Helper"))
        assert is_in_comment_or_string(line, line.index("a //"))
        assert not is_in_comment_or_string(line, 0)
        assert is_in_comment_or_string(" * Helper.run()", 3)


class TestLinkTypes:
    """Links only carry types from the closed set."""

    def test_extracted_types_are_known(self, apex_node):
        """Every rule emits a known link type."""
        candidates = extractor.extract(MY_HANDLER, apex_node("MyHandler.cls"))
        trigger = apex_node("MyTrigger.trigger", path="force-app/main/default/triggers/MyTrigger.trigger")
        candidates += extractor.extract(MY_TRIGGER, trigger)

        assert candidates
        assert {c.link.type for c in candidates} <= set(LINK_TYPES)

    def test_unknown_type_is_rejected(self):
        """Constructing a link with an unknown type fails."""
        with pytest.raises(ValueError):
            DependencyLink("a", "b", "calls", 5)
