"""Static safety policy applied to check units before they may run.

Script units are parsed, never executed, and walked with an AST visitor that
records every reference to a deny-listed capability. Declarative units must
name a registered check kind with valid params. Any finding rejects the unit.
"""

import ast
import json
import logging

from pydantic import ValidationError

from assessor.errors import PolicyFinding, PolicyViolationError
from assessor.models.enums import UnitFormat
from assessor.sandbox.kinds import CHECK_KINDS

logger = logging.getLogger(__name__)

PROCESS_SPAWN = "process_spawn"
FILESYSTEM = "filesystem"
NETWORK = "network"
CODE_LOADING = "code_loading"
INTROSPECTION = "introspection"
UNLISTED_MODULE = "unlisted_module"
STRUCTURE = "structure"
SIZE = "size"

CHECK_FUNCTION = "check"

DENIED_MODULES: dict[str, str] = {
    **dict.fromkeys(
        ["subprocess", "os", "pty", "multiprocessing", "signal", "ctypes", "cffi", "concurrent", "threading", "_thread"],
        PROCESS_SPAWN,
    ),
    **dict.fromkeys(
        ["io", "pathlib", "shutil", "tempfile", "glob", "fileinput", "sqlite3", "pickle", "shelve", "mmap", "zipfile", "tarfile"],
        FILESYSTEM,
    ),
    **dict.fromkeys(
        ["socket", "ssl", "http", "urllib", "urllib3", "requests", "httpx", "aiohttp", "ftplib", "smtplib", "asyncio", "xmlrpc", "boto3", "botocore", "select", "selectors"],
        NETWORK,
    ),
    **dict.fromkeys(
        ["importlib", "runpy", "zipimport", "pkgutil", "marshal", "code", "codeop", "typing"],
        CODE_LOADING,
    ),
    **dict.fromkeys(["sys", "inspect", "gc", "builtins", "types", "traceback", "ast", "string"], INTROSPECTION),
}

DENIED_CALLS: dict[str, str] = {
    "open": FILESYSTEM,
    "eval": CODE_LOADING,
    "exec": CODE_LOADING,
    "compile": CODE_LOADING,
    "__import__": CODE_LOADING,
    "breakpoint": CODE_LOADING,
    "input": FILESYSTEM,
    "getattr": INTROSPECTION,
    "setattr": INTROSPECTION,
    "delattr": INTROSPECTION,
    "globals": INTROSPECTION,
    "locals": INTROSPECTION,
    "vars": INTROSPECTION,
    "dir": INTROSPECTION,
    "type": INTROSPECTION,
    "object": INTROSPECTION,
    "memoryview": INTROSPECTION,
}

# Frames, code objects, generators, coroutines and tracebacks lead back to
# interpreter state outside the unit
DENIED_ATTRIBUTE_PREFIXES = ("f_", "gi_", "cr_", "ag_", "tb_", "co_", "func_")

# String formatting resolves attribute and item paths written inside the
# format string itself, where the syntax tree cannot see them
DENIED_ATTRIBUTES = frozenset({"format", "format_map", "vformat", "get_field", "get_value", "mro"})


def is_denied_attribute(name: str) -> bool:
    return name.startswith("_") or name.startswith(DENIED_ATTRIBUTE_PREFIXES) or name in DENIED_ATTRIBUTES


class UnitSafetyVisitor(ast.NodeVisitor):
    """Collects policy findings from a check unit's syntax tree."""

    def __init__(self, allowed_modules: frozenset[str]):
        self.allowed_modules = allowed_modules
        self.findings: list[PolicyFinding] = []

    def _record(self, node: ast.AST, category: str, message: str) -> None:
        self.findings.append(PolicyFinding(category, message, getattr(node, "lineno", None)))

    def _check_module(self, node: ast.AST, module: str) -> None:
        root = module.split(".")[0]
        if root in self.allowed_modules:
            return
        category = DENIED_MODULES.get(root, UNLISTED_MODULE)
        self._record(node, category, f"import of '{module}' is not allowed")

    def visit_Import(self, node: ast.Import) -> None:
        for alias in node.names:
            self._check_module(node, alias.name)
        self.generic_visit(node)

    def visit_ImportFrom(self, node: ast.ImportFrom) -> None:
        if node.level:
            self._record(node, CODE_LOADING, "relative imports are not allowed")
        else:
            self._check_module(node, node.module or "")
        for alias in node.names:
            if alias.name.startswith("_"):
                self._record(node, INTROSPECTION, f"import of private name '{alias.name}' is not allowed")
        self.generic_visit(node)

    def visit_Name(self, node: ast.Name) -> None:
        if node.id in DENIED_CALLS:
            self._record(node, DENIED_CALLS[node.id], f"use of '{node.id}' is not allowed")
        elif node.id.startswith("__"):
            self._record(node, INTROSPECTION, f"use of '{node.id}' is not allowed")
        self.generic_visit(node)

    def visit_Attribute(self, node: ast.Attribute) -> None:
        if is_denied_attribute(node.attr):
            self._record(node, INTROSPECTION, f"access to attribute '{node.attr}' is not allowed")
        self.generic_visit(node)

    def visit_MatchClass(self, node: ast.MatchClass) -> None:
        # Keyword patterns read attributes by name
        for attr in node.kwd_attrs:
            if is_denied_attribute(attr):
                self._record(node, INTROSPECTION, f"access to attribute '{attr}' is not allowed")
        self.generic_visit(node)

    def visit_Global(self, node: ast.Global) -> None:
        self._record(node, INTROSPECTION, "global statements are not allowed")
        self.generic_visit(node)

    def visit_AsyncFunctionDef(self, node: ast.AsyncFunctionDef) -> None:
        self._record(node, STRUCTURE, "async functions are not supported")
        self.generic_visit(node)


class SafetyPolicy:
    """Admission policy for check units.

    Args:
        allowed_modules: Modules script units may import
        max_unit_bytes: Largest unit content admitted
    """

    def __init__(self, allowed_modules: list[str], max_unit_bytes: int):
        self.allowed_modules = frozenset(allowed_modules)
        self.max_unit_bytes = max_unit_bytes

    def validate(self, unit_ref: str, source: bytes) -> UnitFormat:
        """Validate unit content, returning its format.

        Raises:
            PolicyViolationError: If the unit must not be executed
        """
        unit_format = UnitFormat.from_ref(unit_ref)
        if unit_format is None:
            raise PolicyViolationError(
                unit_ref,
                [PolicyFinding(STRUCTURE, "unit must be a .py script or a .json declaration")],
            )
        if len(source) > self.max_unit_bytes:
            raise PolicyViolationError(
                unit_ref,
                [PolicyFinding(SIZE, f"{len(source)} bytes exceeds limit of {self.max_unit_bytes}")],
            )

        if unit_format is UnitFormat.SCRIPT:
            findings = self.script_findings(source)
        else:
            findings = self.declaration_findings(source)

        if findings:
            logger.warning(f"Check unit {unit_ref} rejected with {len(findings)} finding(s)")
            raise PolicyViolationError(unit_ref, findings)

        logger.info(f"Check unit {unit_ref} admitted as {unit_format.value}")
        return unit_format

    def script_findings(self, source: bytes) -> list[PolicyFinding]:
        try:
            tree = ast.parse(source.decode("utf-8"), mode="exec")
        except (SyntaxError, UnicodeDecodeError, ValueError) as e:
            return [PolicyFinding(STRUCTURE, f"unit does not parse: {e}", getattr(e, "lineno", None))]

        visitor = UnitSafetyVisitor(self.allowed_modules)
        visitor.visit(tree)
        findings = list(visitor.findings)

        has_check = any(
            isinstance(node, ast.FunctionDef) and node.name == CHECK_FUNCTION for node in tree.body
        )
        if not has_check:
            findings.append(
                PolicyFinding(STRUCTURE, f"unit must define a top-level '{CHECK_FUNCTION}(ctx)' function")
            )
        return findings

    def declaration_findings(self, source: bytes) -> list[PolicyFinding]:
        try:
            declaration = json.loads(source.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            return [PolicyFinding(STRUCTURE, f"declaration is not valid JSON: {e}")]

        if not isinstance(declaration, dict):
            return [PolicyFinding(STRUCTURE, "declaration must be a JSON object")]
        unexpected = set(declaration) - {"kind", "params"}
        if unexpected:
            return [PolicyFinding(STRUCTURE, f"unexpected declaration keys: {sorted(unexpected)}")]

        kind = declaration.get("kind")
        kind_class = CHECK_KINDS.get(kind) if isinstance(kind, str) else None
        if kind_class is None:
            return [PolicyFinding(STRUCTURE, f"unknown check kind '{kind}'")]

        try:
            kind_class.Params.model_validate(declaration.get("params") or {})
        except ValidationError as e:
            return [
                PolicyFinding(STRUCTURE, f"invalid params for '{kind_class.name}': {err['msg']}")
                for err in e.errors()
            ]
        return []
