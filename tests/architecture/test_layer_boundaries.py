"""
Layer boundaries.

1. asset_kernel/** may NOT import asset_config, asset_modules or
   asset_services.  The kernel never depends upward.
2. asset_modules/** may NOT import asset_services.
3. asset_config/** may only depend on the kernel's logging.
4. Module ORM classes (asset_modules.*.orm) are private to asset_modules;
   services read through selectors.

These tests read source code via AST -- they cannot break anything.
"""

import ast
from pathlib import Path

ROOT = Path(__file__).parents[2]


def _python_files(package: str) -> list[Path]:
    return sorted((ROOT / package).rglob("*.py"))


def _extract_imports(path: Path) -> list[tuple[int, str]]:
    """(line_number, module) for every import in ``path``."""
    tree = ast.parse(path.read_text(), filename=str(path))
    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom):
            if node.module and node.level == 0:
                results.append((node.lineno, node.module))
    return results


def _violations(package: str, forbidden: tuple[str, ...]) -> list[str]:
    found = []
    for path in _python_files(package):
        for lineno, module in _extract_imports(path):
            for prefix in forbidden:
                if module == prefix or module.startswith(f"{prefix}."):
                    found.append(f"  {path.relative_to(ROOT)}:{lineno} imports '{module}'")
    return found


class TestNoUpwardDependencies:

    def test_packages_exist(self):
        for package in ("asset_kernel", "asset_config", "asset_modules", "asset_services"):
            assert _python_files(package), f"{package} not found under {ROOT}"

    def test_kernel(self):
        violations = _violations(
            "asset_kernel", ("asset_config", "asset_modules", "asset_services"),
        )
        assert not violations, (
            "asset_kernel/** must not import upward packages:\n" + "\n".join(violations)
        )

    def test_modules(self):
        violations = _violations("asset_modules", ("asset_services",))
        assert not violations, (
            "asset_modules/** must not import asset_services:\n" + "\n".join(violations)
        )

    def test_config(self):
        violations = _violations("asset_config", ("asset_modules", "asset_services"))
        assert not violations, (
            "asset_config/** must not import modules or services:\n" + "\n".join(violations)
        )

    def test_config_uses_only_kernel_logging(self):
        kernel_imports = {
            module
            for path in _python_files("asset_config")
            for _, module in _extract_imports(path)
            if module.startswith("asset_kernel")
        }
        assert kernel_imports <= {"asset_kernel.logging_config"}


class TestOrmImportGate:

    def test_services_do_not_import_module_orm(self):
        violations = [
            f"  {path.relative_to(ROOT)}:{lineno} imports '{module}'"
            for path in _python_files("asset_services")
            for lineno, module in _extract_imports(path)
            if module.startswith("asset_modules.") and module.endswith(".orm")
        ]
        assert not violations, (
            "asset_services/** must read through selectors, not ORM classes:\n"
            + "\n".join(violations)
        )
