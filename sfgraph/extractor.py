"""Regex-based dependency extraction from Apex and LWC source text."""

from __future__ import annotations

import re
from bisect import bisect_right
from typing import Dict, List, Optional, Tuple

from .models import DependencyCandidate, DependencyLink, DependencyNode
from .patterns import (
    ABSTRACT_DECLARATION,
    CALL_RULES,
    ES_IMPORT,
    EXTENDS_PATTERN,
    FIELD_DECLARATION,
    IMPLEMENTS_PATTERN,
    INTERFACE_DECLARATION,
    METHOD_DECLARATION,
    STATIC_REFERENCE,
    TYPE_REFERENCE_RULES,
    WIRE_DECORATOR,
    PatternRule,
)
from .salesforce import extract_identifier, is_primitive_type, is_system_class

METHOD_BLOCK = re.compile(METHOD_DECLARATION.pattern + r"\s*\{")
APEX_IMPORT = re.compile(r"import\s+(\w+)\s+from\s+['\"]@salesforce/apex/([\w.]+)['\"]")

MethodBoundary = Tuple[str, int, int]


def is_in_comment_or_string(line: str, position: int) -> bool:
    """True when *position* of *line* sits in a ``//`` comment or a string.

    Lines that open or continue a ``/* ... */`` block (leading ``/*`` or
    ``*``) count as comments. Only the current line is inspected.
    """
    stripped = line.lstrip()
    if stripped.startswith(("/*", "*")):
        return True

    quote: Optional[str] = None
    i = 0
    limit = min(position, len(line))
    while i < limit:
        char = line[i]
        if quote:
            if char == "\\":
                i += 2
                continue
            if char == quote:
                quote = None
        elif char in ("'", '"'):
            quote = char
        elif char == "/" and line[i + 1:i + 2] == "/":
            return True
        i += 1
    return quote is not None


def context_lines(lines: List[str], index: int, size: int = 2) -> List[str]:
    """Numbered lines around *index*, the hit marked with ``>``."""
    start = max(0, index - size)
    end = min(len(lines) - 1, index + size)
    return [
        f"{'> ' if i == index else '  '}{i + 1}: {lines[i].strip()}"
        for i in range(start, end + 1)
    ]


def find_method_boundaries(content: str) -> List[MethodBoundary]:
    """``(name, first_line, last_line)`` for every method body, 1-based."""
    boundaries: List[MethodBoundary] = []
    for match in METHOD_BLOCK.finditer(content):
        depth = 1
        i = match.end()
        while i < len(content) and depth > 0:
            if content[i] == "{":
                depth += 1
            elif content[i] == "}":
                depth -= 1
            i += 1
        start_line = content.count("\n", 0, match.start()) + 1
        end_line = content.count("\n", 0, i) + 1
        boundaries.append((match.group(1), start_line, end_line))
    return boundaries


def enclosing_method(boundaries: List[MethodBoundary], line_number: int) -> Optional[str]:
    best: Optional[MethodBoundary] = None
    for boundary in boundaries:
        _, start, end = boundary
        if start <= line_number <= end and (best is None or start >= best[1]):
            best = boundary
    return best[0] if best else None


def extract_methods(content: str) -> List[str]:
    methods: List[str] = []
    for match in METHOD_DECLARATION.finditer(content):
        name = match.group(1)
        if name in ("class", "interface") or name in methods:
            continue
        methods.append(name)
    return methods


def extract_properties(content: str) -> List[str]:
    properties: List[str] = []
    for match in FIELD_DECLARATION.finditer(content):
        name = match.group(2)
        if name not in properties:
            properties.append(name)
    return properties


def is_interface(content: str) -> bool:
    return bool(INTERFACE_DECLARATION.search(content))


def is_abstract(content: str) -> bool:
    return bool(ABSTRACT_DECLARATION.search(content))


class _LineIndex:
    """Maps absolute offsets in a text to (line index, column)."""

    def __init__(self, content: str):
        self.lines = content.split("\n")
        self._starts = [0]
        for line in self.lines[:-1]:
            self._starts.append(self._starts[-1] + len(line) + 1)

    def locate(self, offset: int) -> Tuple[int, int]:
        index = bisect_right(self._starts, offset) - 1
        return index, offset - self._starts[index]

    def excluded(self, offset: int) -> bool:
        index, column = self.locate(offset)
        return is_in_comment_or_string(self.lines[index], column)


class DependencyExtractor:
    """Turn one file's content into dependency candidates.

    Candidate targets are placeholder ids (``<repo>:<Class>``); the analyzer
    retargets a link once it finds the class file.
    """

    def __init__(self, rules: Optional[List[PatternRule]] = None):
        self.rules = list(CALL_RULES if rules is None else rules)

    def extract(
        self,
        content: str,
        node: DependencyNode,
        include_method_level: bool = True,
    ) -> List[DependencyCandidate]:
        if node.type in ("apex", "test"):
            candidates = self._extract_apex(content, node, include_method_level)
        elif node.path.endswith(".js"):
            candidates = self._extract_lwc(content, node)
        else:
            candidates = []
        return self.deduplicate(candidates)

    @staticmethod
    def deduplicate(candidates: List[DependencyCandidate]) -> List[DependencyCandidate]:
        """One candidate per ``(target_class, link type)``, strongest wins."""
        best: Dict[Tuple[str, str], DependencyCandidate] = {}
        for candidate in candidates:
            key = (candidate.target_class, candidate.link.type)
            current = best.get(key)
            if current is None or candidate.link.strength > current.link.strength:
                best[key] = candidate
        return list(best.values())

    # ------------------------------------------------------------------
    # Apex
    # ------------------------------------------------------------------

    def _extract_apex(self, content: str, node: DependencyNode, include_method_level: bool) -> List[DependencyCandidate]:
        self_name = extract_identifier(node.name)
        index = _LineIndex(content)
        candidates: List[DependencyCandidate] = []

        extends = EXTENDS_PATTERN.search(content)
        if extends and not index.excluded(extends.start(1)):
            parent = extends.group(1).split("<", 1)[0]
            candidates.append(self._candidate(node, parent, "extends", 9, details=f"Extends {parent}"))

        implements = IMPLEMENTS_PATTERN.search(content)
        if implements and not index.excluded(implements.start(1)):
            for name in implements.group(1).split(","):
                interface = name.strip().split("<", 1)[0]
                if interface:
                    candidates.append(
                        self._candidate(node, interface, "implements", 8, details=f"Implements {interface}")
                    )

        if include_method_level:
            candidates.extend(self._extract_calls(index, node, self_name))

        candidates.extend(self._extract_static_references(index, node, self_name))
        candidates.extend(self._extract_type_references(index, node, self_name))
        return candidates

    def _extract_calls(self, index: _LineIndex, node: DependencyNode, self_name: str) -> List[DependencyCandidate]:
        boundaries = find_method_boundaries("\n".join(index.lines))
        candidates: List[DependencyCandidate] = []

        for line_index, line in enumerate(index.lines):
            for rule in self.rules:
                for match in rule.matches(line):
                    if is_in_comment_or_string(line, match.start()):
                        continue
                    class_name, member = rule.extract(match)
                    if class_name == self_name:
                        continue
                    if is_system_class(class_name) and not rule.allow_system:
                        continue

                    line_number = line_index + 1
                    source_method = enclosing_method(boundaries, line_number)
                    candidates.append(self._candidate(
                        node,
                        class_name,
                        rule.link_type,
                        rule.strength,
                        source_method=source_method,
                        target_method=member,
                        details=f"{source_method or 'unknown'} calls {class_name}.{member}",
                        line_number=line_number,
                        code_snippet=line.strip(),
                        context=context_lines(index.lines, line_index),
                    ))
        return candidates

    def _extract_static_references(self, index: _LineIndex, node: DependencyNode, self_name: str) -> List[DependencyCandidate]:
        candidates = []
        for line_index, line in enumerate(index.lines):
            for match in STATIC_REFERENCE.finditer(line):
                class_name, member = match.group(1), match.group(2)
                if class_name == self_name or is_system_class(class_name):
                    continue
                if is_in_comment_or_string(line, match.start()):
                    continue
                candidates.append(self._candidate(
                    node, class_name, "references", 5,
                    target_method=member,
                    details=f"References {class_name}.{member}",
                    line_number=line_index + 1,
                    code_snippet=line.strip(),
                ))
        return candidates

    def _extract_type_references(self, index: _LineIndex, node: DependencyNode, self_name: str) -> List[DependencyCandidate]:
        candidates = []
        seen = set()
        for line_index, line in enumerate(index.lines):
            for pattern in TYPE_REFERENCE_RULES:
                for match in pattern.finditer(line):
                    type_name = match.group(1)
                    if type_name in seen or type_name == self_name:
                        continue
                    if is_system_class(type_name) or is_primitive_type(type_name):
                        continue
                    if is_in_comment_or_string(line, match.start(1)):
                        continue
                    seen.add(type_name)
                    candidates.append(self._candidate(
                        node, type_name, "references", 4,
                        details=f"Uses type {type_name}",
                        line_number=line_index + 1,
                        code_snippet=line.strip(),
                    ))
        return candidates

    # ------------------------------------------------------------------
    # Lightning Web Components
    # ------------------------------------------------------------------

    def _extract_lwc(self, content: str, node: DependencyNode) -> List[DependencyCandidate]:
        index = _LineIndex(content)
        candidates: List[DependencyCandidate] = []

        for match in ES_IMPORT.finditer(content):
            if index.excluded(match.start()):
                continue
            module = match.group(1)
            line_index, _ = index.locate(match.start())

            if module.startswith("@salesforce/apex/"):
                class_name, _, method = module[len("@salesforce/apex/"):].partition(".")
                candidates.append(self._candidate(
                    node, class_name, "imperative-apex", 10,
                    target_method=method or None,
                    details=f"Imports {class_name}.{method}" if method else f"Imports {class_name}",
                    line_number=line_index + 1,
                    code_snippet=index.lines[line_index].strip(),
                ))
            elif module.startswith("c/"):
                component = module[2:]
                candidates.append(self._candidate(
                    node, component, "import", 9,
                    target_id=f"{node.repo}:lwc/{component}",
                    details=f"Imports component {component}",
                    line_number=line_index + 1,
                    code_snippet=index.lines[line_index].strip(),
                    target_file_name=f"{component}.js",
                ))

        apex_imports = {}
        for match in APEX_IMPORT.finditer(content):
            class_name, _, method = match.group(2).partition(".")
            apex_imports[match.group(1)] = (class_name, method)

        for match in WIRE_DECORATOR.finditer(content):
            resolved = apex_imports.get(match.group(1))
            if resolved is None or index.excluded(match.start()):
                continue
            class_name, method = resolved
            line_index, _ = index.locate(match.start())
            candidates.append(self._candidate(
                node, class_name, "wire", 10,
                target_method=method or None,
                details=f"Wires {class_name}.{method}",
                line_number=line_index + 1,
                code_snippet=index.lines[line_index].strip(),
            ))
        return candidates

    # ------------------------------------------------------------------
    # Reverse check (dependents)
    # ------------------------------------------------------------------

    def find_references_to(
        self,
        content: str,
        target_name: str,
        target_node: DependencyNode,
        source_id: str,
        file_name: str,
    ) -> List[DependencyLink]:
        """Links from *source_id* to *target_node*, one per textual mention."""
        index = _LineIndex(content)
        pattern = re.compile(rf"\b{re.escape(target_name)}\b")
        call_pattern = re.compile(rf"{re.escape(target_name)}\.(\w+)\s*\(")
        links: List[DependencyLink] = []

        for match in pattern.finditer(content):
            if index.excluded(match.start()):
                continue
            line_index, _ = index.locate(match.start())
            line = index.lines[line_index]

            link_type, strength, details = "references", 5, f"References {target_name}"
            if f"extends {target_name}" in line:
                link_type, strength, details = "extends", 9, f"Extends {target_name}"
            elif "implements" in line:
                link_type, strength, details = "implements", 8, f"Implements {target_name}"
            elif f"{target_name}." in line:
                link_type = "method-call"
                call = call_pattern.search(line)
                if call:
                    details = f"Calls {target_name}.{call.group(1)}()"

            links.append(DependencyLink(
                source=source_id,
                target=target_node.id,
                type=link_type,
                strength=strength,
                details=details,
                line_number=line_index + 1,
                code_snippet=line.strip(),
                context_lines=context_lines(index.lines, line_index),
                file_name=file_name,
                target_file_name=target_node.name,
            ))
        return links

    # ------------------------------------------------------------------

    @staticmethod
    def _candidate(
        node: DependencyNode,
        target_class: str,
        link_type: str,
        strength: float,
        target_id: Optional[str] = None,
        source_method: Optional[str] = None,
        target_method: Optional[str] = None,
        details: Optional[str] = None,
        line_number: Optional[int] = None,
        code_snippet: Optional[str] = None,
        context: Optional[List[str]] = None,
        target_file_name: Optional[str] = None,
    ) -> DependencyCandidate:
        target_id = target_id or f"{node.repo}:{target_class}"
        link = DependencyLink(
            source=node.id,
            target=target_id,
            type=link_type,
            strength=strength,
            source_method=source_method,
            target_method=target_method,
            details=details,
            line_number=line_number,
            code_snippet=code_snippet,
            context_lines=context,
            file_name=node.name,
            target_file_name=target_file_name or f"{target_class}.cls",
        )
        return DependencyCandidate(target_class=target_class, target_id=target_id, link=link)
