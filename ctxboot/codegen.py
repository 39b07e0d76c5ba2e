"""Generation of a registration module for the scanned components."""

from __future__ import annotations

import argparse
import logging
import re
from collections import Counter
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Sequence

from ctxboot.scanner import (
    Component,
    ScanError,
    find_module_root,
    read_module_path,
    scan_directory,
    sort_by_dependencies,
)

logger = logging.getLogger(__name__)

GENERATED_FILENAME = "ctxboot_context.py"
HEADER = "# Code generated by ctxboot; DO NOT EDIT."


@dataclass(frozen=True)
class Import:
    """A module import line of the generated code."""

    path: str
    alias: str


def _import_path(file, module_root, module_path: str) -> str:
    root = Path(module_root).resolve()
    try:
        relative = Path(file).resolve().relative_to(root)
    except ValueError as err:
        raise ScanError(f"{file} is outside the package {root}") from err
    parts = list(relative.with_suffix("").parts)
    if parts and parts[-1] == "__init__":
        parts.pop()
    return ".".join([module_path, *parts])


def collect_imports(
    components: Sequence[Component], module_root, module_path: str
) -> list[Import]:
    """One import per module holding components, with aliases kept unique."""
    aliases: dict[str, str] = {}
    uses: Counter[str] = Counter()
    for component in components:
        path = _import_path(component.file, module_root, module_path)
        if path in aliases:
            continue
        base = path.rsplit(".", 1)[-1]
        uses[base] += 1
        aliases[path] = base if uses[base] == 1 else f"{base}{uses[base]}"
    return sorted((Import(p, a) for p, a in aliases.items()), key=lambda i: i.path)


def _snake_case(name: str) -> str:
    return re.sub(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])", "_", name).lower()


def render_registration(
    components: Sequence[Component], imports: Sequence[Import]
) -> str:
    """Source of a module whose context starts with every component registered."""
    lines = [
        HEADER,
        '"""Registration of the scanned components."""',
        "",
        "from ctxboot.container import ComponentContext as _ComponentContextBase",
    ]
    lines += [f"import {imp.path} as {imp.alias}" for imp in imports]
    lines += [
        "",
        "",
        "class ComponentContext(_ComponentContextBase):",
        '    """Component context that starts with every scanned component registered."""',
        "",
        "    def __init__(self) -> None:",
        "        super().__init__()",
        "        self._register_scanned_components()",
        "",
        "    def _register_scanned_components(self) -> None:",
        '        """Register every scanned component, one instance each."""',
    ]
    references = [
        (component, f"{component.alias or component.package}.{component.name}")
        for component in components
    ]
    for _, ref in references:
        lines.append(f"        # Register {ref}")
        lines.append(f"        self.set_component({ref}, {ref}())")
    for component, ref in references:
        lines += [
            "",
            f"    def get_{_snake_case(component.name)}(self) -> {ref}:",
            f'        """Return the {component.name} component."""',
            f"        return self.get_component({ref})",
        ]
    lines += [
        "",
        "",
        "def new_component_context() -> ComponentContext:",
        '    """Create a context with every scanned component registered."""',
        "    return ComponentContext()",
        "",
    ]
    return "\n".join(lines)


def generate(package_dir) -> Path:
    """Scan *package_dir* and write its registration module; return its path."""
    package_dir = Path(package_dir)
    logger.info("Starting scan from directory: %s", package_dir)
    module_root = find_module_root(package_dir)
    logger.info("Found module root: %s", module_root)
    module_path = read_module_path(module_root)

    components = scan_directory(package_dir)
    ordered = sort_by_dependencies(components)
    logger.info("Sorted components: %s", [c.qualified_name for c in ordered])

    imports = collect_imports(components, module_root, module_path)
    alias_of = {imp.path: imp.alias for imp in imports}
    components = [
        replace(c, alias=alias_of[_import_path(c.file, module_root, module_path)])
        for c in components
    ]

    output = package_dir / GENERATED_FILENAME
    output.write_text(render_registration(components, imports), encoding="utf-8")
    return output


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        prog="ctxboot", description="Generate component registration code."
    )
    parser.add_argument("package_dir", help="directory of the package to scan")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(message)s")
    logger.info("Starting ctxboot code generation tool...")
    try:
        output = generate(args.package_dir)
    except (ScanError, OSError) as err:
        logger.error("Code generation failed: %s", err)
        return 1
    logger.info("Successfully generated registration code in %s", output)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())