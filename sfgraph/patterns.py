"""Salesforce dependency pattern catalog and extraction rule tables.

Two tables live here:

* ``SALESFORCE_DEPENDENCY_PATTERNS``: what to look for with GitHub code
  search, ranked by priority. Only critical/high entries are searched.
* ``CALL_RULES`` / ``TYPE_REFERENCE_RULES``: line-level regex rules the
  extractor applies to file content. New Salesforce constructs are added
  by appending a :class:`PatternRule`; the extractor does not change.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from re import Match, Pattern
from typing import Callable, List, Optional, Tuple


@dataclass(frozen=True)
class DependencyPattern:
    type: str
    priority: str
    patterns: Tuple[str, ...]
    search_query: str
    description: str


SALESFORCE_DEPENDENCY_PATTERNS: List[DependencyPattern] = [
    DependencyPattern(
        type="Apex Class",
        priority="critical",
        patterns=(
            r"extends\s+([A-Za-z_][A-Za-z0-9_]*)",
            r"implements\s+([A-Za-z_][A-Za-z0-9_,\s]*)",
            r"new\s+([A-Za-z_][A-Za-z0-9_]*)\s*\(",
        ),
        search_query="extension:cls",
        description="Critical Apex class dependencies and inheritance",
    ),
    DependencyPattern(
        type="Lightning Component",
        priority="critical",
        patterns=(
            r"<c:([A-Za-z_][A-Za-z0-9_]*)",
            r"<lightning:([A-Za-z_][A-Za-z0-9_]*)",
            r'implements="([^"]*)"',
        ),
        search_query="extension:cmp OR extension:js",
        description="Lightning Web Components and Aura components",
    ),
    DependencyPattern(
        type="Custom Objects/Fields",
        priority="high",
        patterns=(r"[A-Za-z_][A-Za-z0-9_]*__c", r"[A-Za-z_][A-Za-z0-9_]*__r"),
        search_query="extension:object OR extension:field",
        description="Custom objects, fields, and relationships",
    ),
    DependencyPattern(
        type="Flows/Process Builder",
        priority="high",
        patterns=(r"Flow\.Interview\.[A-Za-z_][A-Za-z0-9_]*", r"Process\.[A-Za-z_][A-Za-z0-9_]*"),
        search_query="extension:flow",
        description="Salesforce Flow and Process Builder dependencies",
    ),
    DependencyPattern(
        type="Triggers",
        priority="critical",
        patterns=(r"trigger\s+([A-Za-z_][A-Za-z0-9_]*)\s+on\s+([A-Za-z_][A-Za-z0-9_]*)",),
        search_query="extension:trigger",
        description="Apex triggers and their target objects",
    ),
    DependencyPattern(
        type="Test Classes",
        priority="medium",
        patterns=(r"@IsTest", r"Test\.startTest\(\)", r"System\.runAs\("),
        search_query="extension:cls @IsTest",
        description="Test classes and test coverage",
    ),
    DependencyPattern(
        type="Batch/Scheduled Jobs",
        priority="high",
        patterns=(r"implements\s+Database\.Batchable", r"implements\s+Schedulable", r"System\.schedule\("),
        search_query="Batchable OR Schedulable",
        description="Batch jobs and scheduled processes",
    ),
    DependencyPattern(
        type="REST/SOAP APIs",
        priority="high",
        patterns=(r"@RestResource", r"@HttpGet", r"@HttpPost", r"webservice\s+static"),
        search_query="@RestResource OR webservice",
        description="REST and SOAP API endpoints",
    ),
]

PRIORITY_STRENGTH = {"critical": 1.0, "high": 0.8, "medium": 0.6, "low": 0.4}


def search_patterns() -> List[DependencyPattern]:
    """Catalog entries worth a code-search round trip."""
    return [p for p in SALESFORCE_DEPENDENCY_PATTERNS if p.priority in ("critical", "high")]


def priority_strength(priority: str) -> float:
    return PRIORITY_STRENGTH.get(priority, 0.5)


def link_type_for_pattern(pattern_type: str, hit_path: str) -> Optional[str]:
    """Relationship implied by a search hit for a catalog entry."""
    if pattern_type == "Apex Class":
        return "tests" if "test" in hit_path.lower() else "references"
    if pattern_type == "Lightning Component":
        return "wire"
    if pattern_type == "Triggers":
        return "trigger-context"
    if pattern_type == "Custom Objects/Fields":
        return "schema-reference"
    return "references"


# ---------------------------------------------------------------------------
# Content extraction rules
# ---------------------------------------------------------------------------

Extractor = Callable[[Match[str]], Tuple[str, str]]


def _class_and_member(match: Match[str]) -> Tuple[str, str]:
    return match.group(1), match.group(2) if match.lastindex and match.lastindex >= 2 else match.group(1)


@dataclass(frozen=True)
class PatternRule:
    """One regex that turns a source line into a typed dependency.

    ``extract`` maps a match to ``(class_name, member_name)``; the default
    reads groups 1 and 2. ``allow_system`` keeps platform classes such as
    ``Database`` that are otherwise filtered out.
    """

    link_type: str
    regex: Pattern[str]
    strength: float
    extract: Extractor = field(default=_class_and_member)
    allow_system: bool = False

    def matches(self, line: str):
        return self.regex.finditer(line)


CALL_RULES: List[PatternRule] = [
    PatternRule(
        "method-call",
        re.compile(r"\b([A-Z][A-Za-z0-9_]*)\s*\.\s*([a-z][A-Za-z0-9_]*)\s*\("),
        strength=6,
    ),
    PatternRule(
        "soql-query",
        re.compile(r"\[\s*SELECT\s+.*?\s+FROM\s+([A-Z][A-Za-z0-9_]*(?:__c)?)\b", re.IGNORECASE),
        strength=7,
        extract=lambda m: (m.group(1), "SOQL_Query"),
    ),
    PatternRule(
        "database-operation",
        re.compile(r"\bDatabase\s*\.\s*(insert|update|delete|upsert|query|queryLocator)\s*\("),
        strength=6,
        extract=lambda m: ("Database", m.group(1)),
        allow_system=True,
    ),
    PatternRule(
        "schema-reference",
        re.compile(r"\bSchema\s*\.\s*SObjectType\s*\.\s*([A-Z][A-Za-z0-9_]*(?:__c)?)\b"),
        strength=6,
        extract=lambda m: (m.group(1), "SObjectType"),
    ),
    PatternRule(
        "field-reference",
        re.compile(r"\b([A-Z][A-Za-z0-9_]*(?:__c)?)\s*\.\s*([A-Z][A-Za-z0-9_]*(?:__c)?)\b"),
        strength=4,
    ),
    PatternRule(
        "trigger-context",
        re.compile(r"\bTrigger\s*\.\s*(new|old|newMap|oldMap|isInsert|isUpdate|isDelete|isBefore|isAfter)\b"),
        strength=7,
        extract=lambda m: ("Trigger", m.group(1)),
    ),
    PatternRule(
        "system-method",
        re.compile(r"\b(System|UserInfo|Schema|Limits|Test|PageReference)\s*\.\s*([a-zA-Z][A-Za-z0-9_]*)\s*\("),
        strength=3,
        allow_system=True,
    ),
    PatternRule(
        "custom-settings",
        re.compile(r"\b([A-Z][A-Za-z0-9_]*(?:__c|__mdt))\s*\.\s*(getInstance|getValues|getAll)\s*\("),
        strength=6,
    ),
    PatternRule(
        "wire-service",
        re.compile(r"@wire\s*\(\s*([A-Za-z][A-Za-z0-9_]*)"),
        strength=8,
    ),
    PatternRule(
        "imperative-apex",
        re.compile(r"import\s+([A-Za-z][A-Za-z0-9_]*)\s+from\s+['\"]@salesforce/apex/([A-Z][A-Za-z0-9_]*)"),
        strength=10,
        extract=lambda m: (m.group(2), m.group(1)),
    ),
]

# Static member access: ``Foo.bar;`` ``Foo.CONSTANT,``
STATIC_REFERENCE = re.compile(r"\b([A-Z][A-Za-z0-9_]*)\s*\.\s*([a-zA-Z][A-Za-z0-9_]*)\s*(?:\(|;|,|\s)")

TYPE_REFERENCE_RULES: List[Pattern[str]] = [
    # Method parameters: (Type param)
    re.compile(r"\(\s*([A-Z][A-Za-z0-9_]*)\s+\w+"),
    # Return types: Type methodName(
    re.compile(r"\b([A-Z][A-Za-z0-9_]*)\s+\w+\s*\("),
    # Declarations: Type name; / Type name =
    re.compile(r"\b([A-Z][A-Za-z0-9_]*)\s+\w+\s*[;=]"),
    # Generic arguments: List<Type>, Map<Id, Type>
    re.compile(r"[<,]\s*([A-Z][A-Za-z0-9_]*)\s*(?=[>,])"),
    # Casts: (Type)
    re.compile(r"\(\s*([A-Z][A-Za-z0-9_]*)\s*\)"),
    # Construction: new Type
    re.compile(r"\bnew\s+([A-Z][A-Za-z0-9_]*)"),
]

EXTENDS_PATTERN = re.compile(r"\b(?:class|interface)\s+\w+\s+extends\s+([A-Za-z0-9_.<>]+)")
IMPLEMENTS_PATTERN = re.compile(r"\bimplements\s+([\w\s,.<>]+?)(?:\s*\{|$)", re.MULTILINE)

METHOD_DECLARATION = re.compile(
    r"\b(?:public|private|protected|global)\s+"
    r"(?:(?:static|override|virtual|abstract|final|testMethod|webservice)\s+)*"
    r"(?:[\w.]+(?:<[^()]*?>)?(?:\[\])?\s+)?(\w+)\s*\([^)]*\)"
)
FIELD_DECLARATION = re.compile(
    r"\b(?:public|private|protected|global)\s+(?:static\s+)?(?:final\s+)?(\w+(?:<[^>]+>)?)\s+(\w+)\s*[;={]"
)
INTERFACE_DECLARATION = re.compile(r"\binterface\s+\w+")
ABSTRACT_DECLARATION = re.compile(r"\babstract\s+class")

# LWC module syntax
ES_IMPORT = re.compile(r"import\s+(?:\{[^}]+\}|\w+)\s+from\s+['\"]([^'\"]+)['\"]")
WIRE_DECORATOR = re.compile(r"@wire\s*\(\s*(\w+)(?:\s*,\s*\{[^}]+\})?\s*\)")
