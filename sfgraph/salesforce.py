"""Salesforce project layout knowledge: file kinds, folders and platform names."""

from __future__ import annotations

import re
from typing import List, Optional, Set, Tuple

SALESFORCE_SOURCE_DIRS = (
    "force-app/main/default/classes/",
    "force-app/main/default/lwc/",
    "force-app/main/default/triggers/",
    "force-app/main/default/aura/",
    "force-app/main/default/components/",
    "src/classes/",
    "src/lwc/",
    "src/triggers/",
    "src/aura/",
    "src/components/",
    "force-app/test/",
    "src/test/",
)

SALESFORCE_EXTENSIONS = (
    ".cls", ".trigger", ".js", ".html", ".css", ".xml",
    ".cmp", ".evt", ".app", ".intf",
)

# Folders walked by the directory-listing fallback (no tree API).
LEGACY_LISTING_DIRS = (
    "force-app/main/default/classes",
    "force-app/main/default/lwc",
    "force-app/main/default/triggers",
    "force-app/main/default/aura",
    "src/classes",
    "src/lwc",
    "src/triggers",
    "src/aura",
)

SYSTEM_CLASSES: Set[str] = {
    "System", "String", "Integer", "Decimal", "Double", "Long", "Boolean",
    "Date", "Datetime", "Time", "Blob", "List", "Set", "Map", "Database",
    "Schema", "SObject", "ApexPages", "Visualforce", "UserInfo", "Test",
    "JSON", "JSONParser", "XMLNode", "Dom", "Http", "HttpRequest",
    "HttpResponse", "Limits", "Math", "Pattern", "Matcher", "Exception",
    "DmlException", "QueryException", "Id", "Url", "PageReference", "Site",
    "Crypto", "EncodingUtil", "Messaging", "Network", "ConnectApi",
    "Process", "QuickAction", "Reports", "Wave", "Object", "Void",
}

# Targets recorded by rules for platform constructs; never files in a repository.
PLATFORM_TARGETS: Set[str] = {"Trigger"}

PRIMITIVE_TYPES: Set[str] = {"void", "int", "long", "double", "boolean", "decimal"}

_IDENTIFIER_SUFFIX = re.compile(r"\.(cls|trigger|cmp|js|css|xml)$", re.IGNORECASE)


def is_system_class(name: str) -> bool:
    return name in SYSTEM_CLASSES


def needs_file_lookup(name: str) -> bool:
    """False for platform classes and dotted names such as ``Database.Batchable``."""
    return not (name in SYSTEM_CLASSES or name in PLATFORM_TARGETS or "." in name)


def is_primitive_type(name: str) -> bool:
    return name.lower() in PRIMITIVE_TYPES


def parse_repository_name(repo_input: str, default_org: str) -> Tuple[str, str]:
    """Split ``"org/repo"`` or pair a bare ``"repo"`` with *default_org*."""
    if "/" in repo_input:
        org, repo = repo_input.split("/", 1)
        return org, repo
    return default_org, repo_input


def base_name(path: str) -> str:
    return path.rsplit("/", 1)[-1] or path


def extract_identifier(path: str) -> str:
    """Class or component name for a source path (``classes/Foo.cls`` -> ``Foo``)."""
    return _IDENTIFIER_SUFFIX.sub("", base_name(path))


def strip_apex_extension(name: str) -> str:
    return re.sub(r"\.(cls|trigger)$", "", name)


def detect_file_type(file_name: str, file_path: str) -> str:
    """Classify a file as ``apex``, ``lwc``, ``test`` or ``other``.

    Test detection wins over everything else, so ``AccountServiceTest.cls``
    is a test and not an Apex class.
    """
    lower_name = file_name.lower()
    lower_path = file_path.lower()

    if "test" in lower_name or "/test/" in lower_path or "/tests/" in lower_path:
        return "test"

    if lower_name.endswith((".cls", ".trigger")):
        return "apex"

    if "/lwc/" in lower_path or "/aura/" in lower_path:
        if lower_name.endswith((".js", ".html", ".css", ".xml")):
            return "lwc"

    if lower_name.endswith((".cmp", ".evt", ".app", ".intf")):
        return "lwc"

    return "other"


def infer_salesforce_type(file_path: str, pattern_type: Optional[str] = None) -> str:
    """Coarse type for a code-search hit, where only the path is known."""
    extension = file_path.rsplit(".", 1)[-1].lower() if "." in file_path else ""
    if extension == "cls":
        if "test" in file_path.lower() or pattern_type == "Test Classes":
            return "test"
        return "apex"
    if extension in ("js", "cmp"):
        return "lwc"
    return "other"


def is_salesforce_file(path: str) -> bool:
    return any(sf_dir in path for sf_dir in SALESFORCE_SOURCE_DIRS) and path.endswith(SALESFORCE_EXTENSIONS)


def candidate_paths(name: str) -> List[str]:
    """Conventional locations of a class, trigger or LWC bundle called *name*."""
    clean = strip_apex_extension(name)
    return [
        f"force-app/main/default/classes/{clean}.cls",
        f"force-app/main/default/triggers/{clean}.trigger",
        f"force-app/main/default/lwc/{clean}/{clean}.js",
        f"src/classes/{clean}.cls",
        f"src/triggers/{clean}.trigger",
        f"src/lwc/{clean}/{clean}.js",
    ]
