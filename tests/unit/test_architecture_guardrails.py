from __future__ import annotations

# ==============================
# Tests: Architecture Guardrails
# ==============================

import ast
from pathlib import Path
from typing import Iterable, List, Sequence, Tuple

REPO_ROOT = Path(__file__).resolve().parents[2]
PACKAGE_ROOT = REPO_ROOT / "agentloop"


def _iter_python_files(root: Path) -> Iterable[Path]:
    for path in root.rglob("*.py"):
        if path.is_file() and "__pycache__" not in path.parts:
            yield path


def _is_type_checking_block(node: ast.AST) -> bool:
    return isinstance(node, ast.If) and isinstance(node.test, ast.Name) and node.test.id == "TYPE_CHECKING"


def _runtime_imports(path: Path) -> List[str]:
    """Imported module names, skipping `if TYPE_CHECKING:` blocks."""
    tree = ast.parse(path.read_text(encoding="utf-8"), filename=str(path))
    imports: List[str] = []
    stack: List[ast.AST] = [tree]
    while stack:
        node = stack.pop()
        if _is_type_checking_block(node):
            continue
        if isinstance(node, ast.Import):
            imports.extend(alias.name for alias in node.names)
        elif isinstance(node, ast.ImportFrom) and node.module:
            imports.append(node.module)
        stack.extend(ast.iter_child_nodes(node))
    return imports


def _offenders(root: Path, forbidden: Sequence[str]) -> List[Tuple[str, str]]:
    found: List[Tuple[str, str]] = []
    for path in _iter_python_files(root):
        for module in _runtime_imports(path):
            if any(module == prefix or module.startswith(prefix + ".") for prefix in forbidden):
                found.append((str(path.relative_to(REPO_ROOT)), module))
    return found


def _fail(label: str, offenders: List[Tuple[str, str]]) -> str:
    details = "\n".join(f"{path}: {module}" for path, module in sorted(offenders))
    return f"{label}:\n{details}"


def test_contracts_do_not_import_runtime_layers() -> None:
    offenders = _offenders(
        PACKAGE_ROOT / "contracts",
        ("agentloop.orchestrator", "agentloop.models", "agentloop.agents", "agentloop.governance", "gateway"),
    )
    assert not offenders, _fail("contracts/ must stay dependency-free", offenders)


def test_agents_and_tools_do_not_import_providers() -> None:
    offenders = _offenders(PACKAGE_ROOT / "agents", ("agentloop.models",))
    offenders += _offenders(PACKAGE_ROOT / "tools", ("agentloop.models", "agentloop.orchestrator.engine"))
    assert not offenders, _fail("agents/ and tools/ must not reach the generation backend", offenders)


def test_engine_packages_do_not_import_gateway() -> None:
    offenders = _offenders(PACKAGE_ROOT, ("gateway", "fastapi"))
    assert not offenders, _fail("agentloop/ must not depend on the gateway", offenders)


def test_only_loader_reads_environment() -> None:
    readers: List[str] = []
    for path in _iter_python_files(PACKAGE_ROOT):
        source = path.read_text(encoding="utf-8")
        if "os.environ" in source or "os.getenv" in source:
            readers.append(str(path.relative_to(REPO_ROOT)))
    assert readers == [str(Path("agentloop") / "config" / "loader.py")]


def test_tool_handlers_invoked_only_by_dispatcher() -> None:
    callers: List[str] = []
    for path in _iter_python_files(PACKAGE_ROOT):
        tree = ast.parse(path.read_text(encoding="utf-8"), filename=str(path))
        for node in ast.walk(tree):
            if (
                isinstance(node, ast.Call)
                and isinstance(node.func, ast.Attribute)
                and node.func.attr == "handler"
            ):
                callers.append(str(path.relative_to(REPO_ROOT)))
    assert not callers, f"tool.handler(...) called outside the dispatcher: {callers}"
