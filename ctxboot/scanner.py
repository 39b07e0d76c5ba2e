"""Discovery of component classes marked with a ``# ctxboot:component`` comment."""

from __future__ import annotations

import ast
import keyword
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, Sequence

logger = logging.getLogger(__name__)

COMPONENT_MARKER = "ctxboot:component"


class ScanError(Exception):
    """The sources cannot be turned into a consistent set of components."""


@dataclass(frozen=True)
class Dependency:
    """A field of a component that is filled from the context."""

    name: str
    package: str
    file: Path

    @property
    def qualified_name(self) -> str:
        return f"{self.package}.{self.name}"


@dataclass(frozen=True)
class Component:
    """A class found in the sources that the context should hold."""

    name: str
    package: str
    file: Path
    dependencies: tuple[Dependency, ...] = ()
    alias: str = ""

    @property
    def qualified_name(self) -> str:
        return f"{self.package}.{self.name}"


def find_module_root(directory) -> Path:
    """Return the top-level package directory that contains *directory*."""
    current = Path(directory).resolve()
    if not (current / "__init__.py").is_file():
        raise ScanError(f"__init__.py not found in {current}")
    while current.parent != current and (current.parent / "__init__.py").is_file():
        current = current.parent
    return current


def read_module_path(root) -> str:
    """Return the import name of the top-level package at *root*."""
    name = Path(root).resolve().name
    if not name.isidentifier() or keyword.iskeyword(name):
        raise ScanError(f"{name!r} is not a valid package name")
    return name


def has_component_annotation(comments: Iterable[str]) -> bool:
    """Whether any of the comment lines carries the component marker."""
    return any(
        comment.lstrip().startswith("#") and COMPONENT_MARKER in comment
        for comment in comments
    )


def _leading_comments(lines: Sequence[str], first_line: int) -> list[str]:
    """The comment block directly above the 1-based *first_line*."""
    block: list[str] = []
    for line in reversed(lines[: first_line - 1]):
        if not line.strip().startswith("#"):
            break
        block.append(line)
    block.reverse()
    return block


def _package_of(path: Path) -> str:
    return path.parent.name if path.name == "__init__.py" else path.stem


def _dotted(node: ast.AST) -> list[str] | None:
    if isinstance(node, ast.Name):
        return [node.id]
    if isinstance(node, ast.Attribute):
        head = _dotted(node.value)
        return None if head is None else [*head, node.attr]
    return None


def _is_inject(node: ast.AST) -> bool:
    if isinstance(node, ast.Call):
        node = node.func
    parts = _dotted(node)
    return bool(parts) and parts[-1] == "Inject"


def _injected_type(annotation: ast.AST) -> list[str] | None:
    """The dotted name of ``T`` in ``Annotated[T, Inject]``, if that is the form."""
    if isinstance(annotation, ast.Constant) and isinstance(annotation.value, str):
        try:
            annotation = ast.parse(annotation.value, mode="eval").body
        except SyntaxError:
            return None
    if not isinstance(annotation, ast.Subscript):
        return None
    origin = _dotted(annotation.value)
    if not origin or origin[-1] != "Annotated":
        return None
    args = annotation.slice
    if not isinstance(args, ast.Tuple) or len(args.elts) < 2:
        return None
    base, *metadata = args.elts
    if not any(_is_inject(item) for item in metadata):
        return None
    return _dotted(base)


def _import_table(tree: ast.Module) -> tuple[dict[str, str], dict[str, str]]:
    """Return lookups of imported names to source modules and of aliases to modules."""
    names: dict[str, str] = {}
    modules: dict[str, str] = {}
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                if alias.asname:
                    modules[alias.asname] = alias.name.rsplit(".", 1)[-1]
                else:
                    top = alias.name.split(".", 1)[0]
                    modules[top] = top
        elif isinstance(node, ast.ImportFrom):
            source = node.module.rsplit(".", 1)[-1] if node.module else None
            for alias in node.names:
                local = alias.asname or alias.name
                modules[local] = alias.name
                if source:
                    names[local] = source
    return names, modules


def _dependency(
    parts: list[str],
    package: str,
    path: Path,
    names: dict[str, str],
    modules: dict[str, str],
) -> Dependency:
    name = parts[-1]
    qualifier = parts[:-1]
    if not qualifier:
        dep_package = names.get(name, package)
    elif len(qualifier) == 1:
        dep_package = modules.get(qualifier[0], qualifier[0])
    else:
        dep_package = qualifier[-1]
    return Dependency(name=name, package=dep_package, file=path)


def _scan_source(path: Path) -> list[Component] | None:
    """Components of the file at *path*, or None if it cannot be parsed."""
    try:
        source = path.read_text(encoding="utf-8")
        tree = ast.parse(source, filename=str(path))
    except (SyntaxError, UnicodeDecodeError) as err:
        logger.warning("Warning: Failed to parse file %s: %s", path, err)
        return None

    lines = source.splitlines()
    package = _package_of(path)
    names, modules = _import_table(tree)
    components: list[Component] = []

    for node in tree.body:
        if not isinstance(node, ast.ClassDef):
            continue
        first = min([node.lineno, *(d.lineno for d in node.decorator_list)])
        if not has_component_annotation(_leading_comments(lines, first)):
            continue
        if node.name.startswith("_"):
            raise ScanError(
                f"Component {node.name} must be public (must not start with an underscore)"
            )
        logger.info("Found component: %s in file %s", node.name, path)

        dependencies = tuple(
            _dependency(parts, package, path, names, modules)
            for stmt in node.body
            if isinstance(stmt, ast.AnnAssign) and isinstance(stmt.target, ast.Name)
            for parts in [_injected_type(stmt.annotation)]
            if parts
        )
        if dependencies:
            logger.info(
                "Component %s has dependencies: %s",
                node.name,
                [d.qualified_name for d in dependencies],
            )
        components.append(
            Component(name=node.name, package=package, file=path, dependencies=dependencies)
        )

    if components:
        logger.info("Found %d components in file %s", len(components), path)
    else:
        logger.info("No components found in file %s", path)
    return components


def scan_file(path) -> list[Component]:
    """Return the components declared at the top level of one Python file."""
    return _scan_source(Path(path)) or []


def _walk(directory: Path) -> Iterator[Path]:
    logger.info("Checking directory: %s", directory)
    for entry in sorted(directory.iterdir(), key=lambda p: p.name):
        if entry.is_dir():
            yield from _walk(entry)
        elif entry.suffix == ".py":
            yield entry


def scan_directory(package_dir) -> list[Component]:
    """Return the components of every Python file under *package_dir*, in path order."""
    root = Path(package_dir)
    if not root.is_dir():
        raise ScanError(f"not a directory: {root}")

    components: list[Component] = []
    parsed = 0
    for path in _walk(root):
        logger.info("Scanning file: %s", path)
        found = _scan_source(path)
        if found is None:
            continue
        parsed += 1
        components.extend(found)

    if not parsed:
        raise ScanError("No Python files found in the specified directory")
    logger.info("Total components found: %d", len(components))
    return components


def sort_by_dependencies(components: Sequence[Component]) -> list[Component]:
    """Order components so that each comes after the components it depends on."""
    by_name = {c.qualified_name: c for c in components}
    graph = {
        c.qualified_name: [d.qualified_name for d in c.dependencies] for c in components
    }
    visited: set[str] = set()
    in_progress: set[str] = set()
    ordered: list[Component] = []

    def visit(name: str) -> bool:
        if name in in_progress:
            return False
        if name in visited:
            return True
        in_progress.add(name)
        if not all(visit(dep) for dep in graph.get(name, ())):
            return False
        in_progress.discard(name)
        visited.add(name)
        if name in by_name:
            ordered.append(by_name[name])
        return True

    for component in components:
        if not visit(component.qualified_name):
            raise ScanError(
                f"Cyclic dependency detected involving component {component.qualified_name}"
            )
    return ordered