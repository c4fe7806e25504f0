"""
Import-boundary enforcement.

1. Domain purity        -- groupbuy_kernel/domain/** may not import the ORM,
                           db, models, services, selectors or outer packages
                           (TYPE_CHECKING-only imports are allowed).
2. Kernel no-impure     -- groupbuy_kernel/** may not read the wall clock or
                           the environment outside SystemClock.
3. Kernel independence  -- groupbuy_kernel/** may not import groupbuy_services
                           or groupbuy_config.
4. Selector read-only   -- selectors may not import services.
5. Config centralisation -- outside groupbuy_config, only the package
                           entrypoint may be imported.

All scanning is done via AST; these tests are read-only.
"""

import ast
import glob
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _python_files(root: str) -> list[str]:
    """Return all .py files under *root* (relative to the repo), sorted."""
    return sorted(
        str(Path(p).relative_to(ROOT))
        for p in glob.glob(f"{ROOT / root}/**/*.py", recursive=True)
    )


def _parse(filepath: str) -> ast.AST | None:
    try:
        return ast.parse((ROOT / filepath).read_text(encoding="utf-8"), filename=filepath)
    except (SyntaxError, UnicodeDecodeError):
        return None


def _type_checking_nodes(tree: ast.AST) -> set[int]:
    """ids of import nodes nested under ``if TYPE_CHECKING:``."""
    skipped: set[int] = set()
    for node in ast.walk(tree):
        if (
            isinstance(node, ast.If)
            and isinstance(node.test, ast.Name)
            and node.test.id == "TYPE_CHECKING"
        ):
            for child in ast.walk(node):
                skipped.add(id(child))
    return skipped


def _extract_imports(filepath: str) -> list[tuple[int, str]]:
    """Return (line_number, module_string) for every runtime import."""
    tree = _parse(filepath)
    if tree is None:
        return []
    skipped = _type_checking_nodes(tree)

    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if id(node) in skipped:
            continue
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom):
            if node.module:
                results.append((node.lineno, node.module))
    return results


def _extract_attribute_calls(filepath: str) -> list[tuple[int, str]]:
    """Return (line_number, 'receiver.attr') for two-level attribute references."""
    tree = _parse(filepath)
    if tree is None:
        return []
    return [
        (node.lineno, f"{node.value.id}.{node.attr}")
        for node in ast.walk(tree)
        if isinstance(node, ast.Attribute) and isinstance(node.value, ast.Name)
    ]


def _matches_any(module: str, prefixes: tuple[str, ...]) -> bool:
    """True if *module* equals or is a child of any prefix."""
    for prefix in prefixes:
        if module == prefix or module.startswith(f"{prefix}."):
            return True
    return False


def _violations(root: str, forbidden: tuple[str, ...]) -> list[str]:
    found: list[str] = []
    for filepath in _python_files(root):
        for lineno, module in _extract_imports(filepath):
            if _matches_any(module, forbidden):
                found.append(f"  {filepath}:{lineno} imports '{module}'")
    return found


# ---------------------------------------------------------------------------
# 1. Domain purity
# ---------------------------------------------------------------------------

class TestDomainPurity:
    FORBIDDEN_PREFIXES = (
        "sqlalchemy",
        "psycopg2",
        "sqlite3",
        "groupbuy_kernel.db",
        "groupbuy_kernel.models",
        "groupbuy_kernel.services",
        "groupbuy_kernel.selectors",
        "groupbuy_services",
        "groupbuy_config",
    )

    def test_domain_has_no_forbidden_imports(self):
        violations = _violations("groupbuy_kernel/domain", self.FORBIDDEN_PREFIXES)
        assert not violations, (
            "Domain purity violation -- groupbuy_kernel/domain/** must stay "
            "free of persistence and outer layers:\n" + "\n".join(violations)
        )


# ---------------------------------------------------------------------------
# 2. Kernel no-impure
# ---------------------------------------------------------------------------

class TestKernelNoImpureFunctions:
    FORBIDDEN_CALLS = frozenset({
        "datetime.now",
        "datetime.utcnow",
        "date.today",
        "time.time",
        "os.environ",
        "os.getenv",
    })

    # SystemClock is the one sanctioned wall-clock read.
    ALLOWED_FILES = frozenset({"groupbuy_kernel/domain/clock.py"})

    def test_no_impure_calls_in_kernel(self):
        violations: list[str] = []
        for filepath in _python_files("groupbuy_kernel"):
            normalised = filepath.replace("\\", "/")
            if normalised in self.ALLOWED_FILES:
                continue
            for lineno, qualname in _extract_attribute_calls(filepath):
                if qualname in self.FORBIDDEN_CALLS:
                    violations.append(f"  {filepath}:{lineno} calls '{qualname}'")

        assert not violations, (
            "Kernel impurity violation -- use the injected Clock and "
            "groupbuy_config instead:\n" + "\n".join(violations)
        )

    def test_services_and_selectors_do_not_read_time_directly(self):
        violations: list[str] = []
        for root in ("groupbuy_kernel/services", "groupbuy_kernel/selectors", "groupbuy_services"):
            for filepath in _python_files(root):
                for lineno, qualname in _extract_attribute_calls(filepath):
                    if qualname in ("datetime.now", "datetime.utcnow"):
                        violations.append(f"  {filepath}:{lineno} calls '{qualname}'")
        assert not violations, "\n".join(violations)


# ---------------------------------------------------------------------------
# 3. Kernel independence
# ---------------------------------------------------------------------------

class TestKernelIndependence:
    def test_kernel_does_not_import_outer_packages(self):
        violations = _violations("groupbuy_kernel", ("groupbuy_services", "groupbuy_config"))
        assert not violations, (
            "Kernel boundary violation -- groupbuy_kernel/** must not depend "
            "on the service or config packages:\n" + "\n".join(violations)
        )


# ---------------------------------------------------------------------------
# 4. Selectors are read-only
# ---------------------------------------------------------------------------

class TestSelectorBoundary:
    def test_selectors_do_not_import_services(self):
        violations = _violations(
            "groupbuy_kernel/selectors",
            ("groupbuy_kernel.services", "groupbuy_services"),
        )
        assert not violations, "\n".join(violations)


# ---------------------------------------------------------------------------
# 5. Config centralisation
# ---------------------------------------------------------------------------

class TestConfigCentralization:
    """Outside groupbuy_config, code imports only ``groupbuy_config`` itself."""

    def test_no_config_submodule_imports(self):
        violations: list[str] = []
        for root in ("groupbuy_kernel", "groupbuy_services"):
            for filepath in _python_files(root):
                for lineno, module in _extract_imports(filepath):
                    if module.startswith("groupbuy_config."):
                        violations.append(f"  {filepath}:{lineno} imports '{module}'")
        assert not violations, (
            "Config centralisation violation -- import from groupbuy_config, "
            "not its sub-modules:\n" + "\n".join(violations)
        )

    def test_scanned_trees_exist(self):
        for root in ("groupbuy_kernel", "groupbuy_services", "groupbuy_config"):
            assert _python_files(root), f"no python files found under {root}"
