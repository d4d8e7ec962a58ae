"""
Architecture boundaries.

1. lease_kernel/domain/** may NOT import SQLAlchemy, the db or models
   packages, or services. The domain is a pure functional core.

2. lease_kernel/** may NOT import lease_config. The kernel never depends
   upward; lease_config.bridges wires configuration into kernel objects.

3. The kernel invariants declaration is complete and non-empty.

4. Every name a kernel package lists in __all__ is importable.

These tests read source code via AST -- they cannot break anything.
"""

import ast
import importlib
from pathlib import Path

import pytest

from lease_kernel.invariants import (
    ALL_KERNEL_INVARIANTS,
    FORBIDDEN_DOMAIN_IMPORTS,
    KernelInvariant,
)

ROOT = Path(__file__).resolve().parents[2]
KERNEL = ROOT / "lease_kernel"
DOMAIN = KERNEL / "domain"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _python_files(root: Path) -> list[Path]:
    return sorted(root.rglob("*.py"))


def _extract_imports(path: Path) -> list[tuple[int, str]]:
    """Extract (line_number, module_string) for all imports in a file."""
    tree = ast.parse(path.read_text(), filename=str(path))
    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom):
            if node.module:
                results.append((node.lineno, node.module))
    return results


def _matches(module: str, prefix: str) -> bool:
    return module == prefix or module.startswith(prefix + ".")


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestDomainPurity:
    def test_domain_files_found(self):
        assert len(_python_files(DOMAIN)) >= 8

    def test_domain_has_no_forbidden_imports(self):
        violations = []
        for path in _python_files(DOMAIN):
            for lineno, module in _extract_imports(path):
                for forbidden in FORBIDDEN_DOMAIN_IMPORTS:
                    if _matches(module, forbidden):
                        violations.append(f"{path.relative_to(ROOT)}:{lineno} imports {module}")
        assert not violations, "\n".join(violations)


class TestKernelNoUpwardDependencies:
    def test_kernel_does_not_import_config(self):
        violations = []
        for path in _python_files(KERNEL):
            for lineno, module in _extract_imports(path):
                if _matches(module, "lease_config"):
                    violations.append(f"{path.relative_to(ROOT)}:{lineno} imports {module}")
        assert not violations, "\n".join(violations)


class TestInvariantsDeclaration:
    def test_invariants_declared(self):
        assert ALL_KERNEL_INVARIANTS == frozenset(KernelInvariant)
        assert len(ALL_KERNEL_INVARIANTS) >= 6

    def test_every_invariant_documented(self):
        source = (KERNEL / "invariants.py").read_text()
        for invariant in KernelInvariant:
            assert invariant.name in source


class TestPackageExports:
    @pytest.mark.parametrize(
        "package",
        [
            "lease_kernel.db",
            "lease_kernel.domain",
            "lease_kernel.models",
            "lease_kernel.services",
            "lease_config",
        ],
    )
    def test_all_names_resolve(self, package):
        module = importlib.import_module(package)
        missing = [name for name in module.__all__ if not hasattr(module, name)]
        assert not missing, f"{package} exports undefined names: {missing}"

    def test_db_exports_no_uuid_alias(self):
        db = importlib.import_module("lease_kernel.db")
        assert "UUID" not in db.__all__
        assert not hasattr(importlib.import_module("lease_kernel.db.base"), "UUID")
