"""AST-based import boundary and structural rule checker for colorwall.

Enforces the one-way import layering of the package:

  core/       -> io/ (annotations only), stdlib, third-party
  io/         -> core/ (errors and types), stdlib, third-party
  synthetic/  -> core/, io/
  engine/     -> core/, io/
  cli         -> engine/, synthetic/

Usage::

    python tools/import_boundary_checker.py [--verbose] [file1.py file2.py ...]

If no file arguments are given, scans all of ``src/colorwall/``.
Exit 0 if all checks pass; exit 1 if any violations are found.

Rule IDs
--------
- IB-001  File in ``core/``, ``io/`` or ``synthetic/`` imports ``colorwall.engine``
          or ``colorwall.cli`` at runtime
- IB-002  File in ``engine/`` imports ``colorwall.cli``
- IB-003  TYPE_CHECKING backdoor: ``core/``, ``io/`` or ``synthetic/`` file
          imports ``colorwall.engine`` or ``colorwall.cli`` under
          ``if TYPE_CHECKING:``
- IB-004  File in ``core/`` or ``io/`` imports ``colorwall.synthetic``
- SR-001  Stage ``run()`` method in ``core/`` writes text or bytes directly
          (``open()``, ``Path.write_*``); artifacts belong to observers
"""

from __future__ import annotations

import argparse
import ast
import sys
from dataclasses import dataclass, field
from pathlib import Path

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_SRC_ROOT = Path("src/colorwall")

_LOWER_LAYERS = {"core", "io", "synthetic"}

_FORBIDDEN_IN_LOWER = ("colorwall.engine", "colorwall.cli")
_FORBIDDEN_IN_ENGINE = ("colorwall.cli",)
_FORBIDDEN_SIMULATION = ("colorwall.synthetic",)

_PATH_IO_METHODS = frozenset(["write_text", "write_bytes", "open"])


# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------


@dataclass
class Violation:
    """A single rule violation."""

    filepath: Path
    line: int
    rule_id: str
    description: str

    def __str__(self) -> str:
        return f"{self.filepath}:{self.line}: {self.rule_id} {self.description}"


@dataclass
class CheckResult:
    """Accumulated violations from checking one or more files."""

    violations: list[Violation] = field(default_factory=list)

    def add(self, filepath: Path, line: int, rule_id: str, description: str) -> None:
        self.violations.append(Violation(filepath, line, rule_id, description))


# ---------------------------------------------------------------------------
# AST helpers
# ---------------------------------------------------------------------------


def _is_type_checking_block(node: ast.AST) -> bool:
    """Return True if *node* is an ``if TYPE_CHECKING:`` guard."""
    if not isinstance(node, ast.If):
        return False
    test = node.test
    if isinstance(test, ast.Name):
        return test.id == "TYPE_CHECKING"
    if isinstance(test, ast.Attribute):
        return test.attr == "TYPE_CHECKING"
    return False


def _imported_modules(node: ast.AST) -> list[tuple[int, str]]:
    if isinstance(node, ast.Import):
        return [(node.lineno, alias.name) for alias in node.names]
    if isinstance(node, ast.ImportFrom) and node.module:
        return [(node.lineno, node.module)]
    return []


def _collect_imports(
    tree: ast.Module,
) -> tuple[list[tuple[int, str]], list[tuple[int, str]]]:
    """Split imports into ``(runtime, type_checking)`` lists of (line, module)."""
    guarded: set[int] = set()
    type_checking: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if _is_type_checking_block(node):
            for child in ast.walk(node):
                for line, module in _imported_modules(child):
                    guarded.add(line)
                    type_checking.append((line, module))

    runtime = [
        (line, module)
        for node in ast.walk(tree)
        for line, module in _imported_modules(node)
        if line not in guarded
    ]
    return runtime, type_checking


def _matches(module: str, prefixes: tuple[str, ...]) -> bool:
    return any(module == p or module.startswith(p + ".") for p in prefixes)


def _classify_file(filepath: Path, src_root: Path) -> str | None:
    """Return the layer of *filepath*, or None if it is outside src/colorwall."""
    try:
        rel = filepath.resolve().relative_to(src_root.resolve())
    except ValueError:
        return None
    if not rel.parts:
        return None
    top = rel.parts[0]
    if top == "cli.py":
        return "cli"
    if top in _LOWER_LAYERS or top == "engine":
        return top
    return "other"


# ---------------------------------------------------------------------------
# Rule checkers
# ---------------------------------------------------------------------------


def _check_import_boundaries(
    filepath: Path, tree: ast.Module, layer: str, result: CheckResult
) -> None:
    runtime, type_checking = _collect_imports(tree)

    if layer in _LOWER_LAYERS:
        for line, module in runtime:
            if _matches(module, _FORBIDDEN_IN_LOWER):
                result.add(filepath, line, "IB-001", f"{layer}/ imports '{module}'")
            if layer != "synthetic" and _matches(module, _FORBIDDEN_SIMULATION):
                result.add(filepath, line, "IB-004", f"{layer}/ imports '{module}'")
        for line, module in type_checking:
            if _matches(module, _FORBIDDEN_IN_LOWER):
                result.add(
                    filepath,
                    line,
                    "IB-003",
                    f"'{module}' imported under TYPE_CHECKING in {layer}/",
                )

    elif layer == "engine":
        for line, module in runtime + type_checking:
            if _matches(module, _FORBIDDEN_IN_ENGINE):
                result.add(filepath, line, "IB-002", f"engine/ imports '{module}'")


def _check_stage_run_io(filepath: Path, tree: ast.Module, result: CheckResult) -> None:
    for node in ast.walk(tree):
        if not (isinstance(node, ast.FunctionDef) and node.name == "run"):
            continue
        for child in ast.walk(node):
            if not isinstance(child, ast.Call):
                continue
            func = child.func
            if isinstance(func, ast.Name) and func.id == "open":
                result.add(filepath, child.lineno, "SR-001", "open() inside stage run()")
            elif isinstance(func, ast.Attribute) and func.attr in _PATH_IO_METHODS:
                result.add(
                    filepath, child.lineno, "SR-001", f"Path.{func.attr}() inside stage run()"
                )


def check_file(filepath: Path, src_root: Path, result: CheckResult) -> None:
    """Run all applicable rules against a single Python file."""
    try:
        tree = ast.parse(filepath.read_text(encoding="utf-8"), filename=str(filepath))
    except (OSError, UnicodeDecodeError, SyntaxError) as exc:
        print(f"WARNING: could not parse {filepath}: {exc}", file=sys.stderr)
        return

    layer = _classify_file(filepath, src_root)
    if layer is None or layer == "other":
        return
    _check_import_boundaries(filepath, tree, layer, result)
    if layer == "core":
        _check_stage_run_io(filepath, tree, result)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def _collect_files(paths: list[Path]) -> list[Path]:
    """Expand directories to a de-duplicated list of .py files."""
    files: list[Path] = []
    seen: set[Path] = set()
    for p in paths:
        candidates = sorted(p.rglob("*.py")) if p.is_dir() else [p]
        for c in candidates:
            if c.suffix == ".py" and c.resolve() not in seen:
                seen.add(c.resolve())
                files.append(c)
    return files


def main(argv: list[str] | None = None) -> int:
    """Run the checker and return an exit code (0 clean, 1 violations)."""
    parser = argparse.ArgumentParser(
        description="colorwall import boundary checker",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("files", nargs="*", type=Path, help="Files or directories to check.")
    parser.add_argument("--verbose", "-v", action="store_true", help="List checked files.")
    parser.add_argument(
        "--src-root",
        type=Path,
        default=None,
        help="Path to src/colorwall/. Auto-detected relative to this script.",
    )
    args = parser.parse_args(argv)

    if args.src_root is not None:
        src_root = args.src_root.resolve()
    else:
        src_root = (Path(__file__).resolve().parent.parent / _SRC_ROOT).resolve()
    if not src_root.exists():
        print(f"ERROR: src/colorwall root not found at {src_root}", file=sys.stderr)
        return 1

    targets = _collect_files(args.files or [src_root])
    if args.verbose:
        print(f"Checking {len(targets)} file(s) under {src_root}")

    result = CheckResult()
    for filepath in targets:
        check_file(filepath, src_root, result)

    for violation in sorted(result.violations, key=lambda v: (str(v.filepath), v.line)):
        print(violation)

    if not result.violations:
        print("import-boundary: OK, no violations found")
        return 0
    print(f"import-boundary: {len(result.violations)} violation(s) found")
    return 1


if __name__ == "__main__":
    sys.exit(main())
