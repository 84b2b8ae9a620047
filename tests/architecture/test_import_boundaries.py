"""
Import-boundary enforcement.

1. Engine purity      -- dairy_engines/** may not import the DB, ORM,
                         kernel services, modules or config layers.
2. Engine no-impure   -- dairy_engines/** may not read the wall clock or
                         the environment.
3. Kernel isolation   -- dairy_kernel/** may not import engines, modules
                         or config.
4. Module isolation   -- dairy_modules/** may not import dairy_config.

All scanning is done via AST; these tests are read-only.
"""

import ast
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]


def _python_files(package: str) -> list[Path]:
    return sorted((ROOT / package).rglob("*.py"))


def _extract_imports(filepath: Path) -> list[tuple[int, str]]:
    """Return (line_number, module_string) for every import in *filepath*."""
    tree = ast.parse(filepath.read_text(), filename=str(filepath))
    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom):
            if node.module:
                results.append((node.lineno, node.module))
    return results


def _extract_attribute_calls(filepath: Path) -> list[tuple[int, str]]:
    """Return (line_number, 'receiver.attr') for two-level attribute references."""
    tree = ast.parse(filepath.read_text(), filename=str(filepath))
    return [
        (node.lineno, f"{node.value.id}.{node.attr}")
        for node in ast.walk(tree)
        if isinstance(node, ast.Attribute) and isinstance(node.value, ast.Name)
    ]


def _matches_any(module: str, prefixes: tuple[str, ...]) -> bool:
    return any(module == p or module.startswith(f"{p}.") for p in prefixes)


def _violations(package: str, forbidden: tuple[str, ...]) -> list[str]:
    return [
        f"  {path.relative_to(ROOT)}:{lineno} imports '{module}'"
        for path in _python_files(package)
        for lineno, module in _extract_imports(path)
        if _matches_any(module, forbidden)
    ]


class TestEnginePurity:

    FORBIDDEN_PREFIXES = (
        "sqlalchemy",
        "sqlite3",
        "dairy_kernel.db",
        "dairy_kernel.models",
        "dairy_kernel.services",
        "dairy_modules",
        "dairy_config",
    )

    def test_engine_files_have_no_forbidden_imports(self):
        violations = _violations("dairy_engines", self.FORBIDDEN_PREFIXES)
        assert not violations, (
            "Engine purity violation: dairy_engines/** must not import the DB, "
            "ORM, kernel services, modules or config:\n" + "\n".join(violations)
        )


class TestEngineNoImpureFunctions:

    IMPURE = {"datetime.now", "datetime.utcnow", "date.today", "time.time", "os.environ", "os.getenv"}

    def test_engines_take_time_as_input(self):
        violations = [
            f"  {path.relative_to(ROOT)}:{lineno} uses {call}"
            for path in _python_files("dairy_engines")
            for lineno, call in _extract_attribute_calls(path)
            if call in self.IMPURE
        ]
        assert not violations, "Engines must receive dates as arguments:\n" + "\n".join(violations)


class TestKernelIsolation:

    def test_kernel_does_not_import_upper_layers(self):
        violations = _violations("dairy_kernel", ("dairy_engines", "dairy_modules", "dairy_config"))
        assert not violations, "dairy_kernel/** imports an upper layer:\n" + "\n".join(violations)


class TestModuleIsolation:

    def test_modules_do_not_import_config_layer(self):
        violations = _violations("dairy_modules", ("dairy_config",))
        assert not violations, "dairy_modules/** imports dairy_config:\n" + "\n".join(violations)
