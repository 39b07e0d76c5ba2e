import textwrap
from pathlib import Path

import pytest

from ctxboot.scanner import (
    Component,
    Dependency,
    ScanError,
    find_module_root,
    has_component_annotation,
    read_module_path,
    scan_directory,
    scan_file,
    sort_by_dependencies,
)


def _write(path: Path, text: str = "") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(text), encoding="utf-8")
    return path


def test_find_module_root_climbs_to_top_package(tmp_path):
    _write(tmp_path / "app" / "__init__.py")
    _write(tmp_path / "app" / "sub" / "__init__.py")
    assert find_module_root(tmp_path / "app" / "sub") == (tmp_path / "app").resolve()


def test_find_module_root_without_package_raises(tmp_path):
    with pytest.raises(ScanError):
        find_module_root(tmp_path)


def test_read_module_path_is_directory_name(tmp_path):
    (tmp_path / "app").mkdir()
    assert read_module_path(tmp_path / "app") == "app"


def test_read_module_path_rejects_invalid_name(tmp_path):
    (tmp_path / "my-app").mkdir()
    with pytest.raises(ScanError):
        read_module_path(tmp_path / "my-app")


@pytest.mark.parametrize(
    "comments, expected",
    [
        (["# ctxboot:component"], True),
        (["#ctxboot:component"], True),
        (["# A service.", "#", "# ctxboot:component"], True),
        (["# nothing here"], False),
        ([], False),
    ],
)
def test_has_component_annotation(comments, expected):
    assert has_component_annotation(comments) is expected


def test_scan_file_finds_component_and_dependencies(tmp_path):
    path = _write(
        tmp_path / "app" / "services.py",
        """
        from typing import Annotated
        from ctxboot.container import Inject
        from app.repo import UserRepository
        import app.database as db

        # A service.
        #
        # ctxboot:component
        class UserService:
            repo: Annotated[UserRepository, Inject]
            store: Annotated[db.Store, Inject]
            plain: int = 0


        class NotAComponent:
            pass
        """,
    )
    components = scan_file(path)
    assert [c.name for c in components] == ["UserService"]
    service = components[0]
    assert service.package == "services"
    assert service.file == path
    assert service.dependencies == (
        Dependency("UserRepository", "repo", path),
        Dependency("Store", "database", path),
    )


def test_scan_file_string_annotation_uses_own_package(tmp_path):
    path = _write(
        tmp_path / "store.py",
        """
        # ctxboot:component
        class Cache:
            backend: "Annotated[Backend, Inject()]"
        """,
    )
    [cache] = scan_file(path)
    assert cache.dependencies == (Dependency("Backend", "store", path),)


def test_blank_line_separates_comment_from_class(tmp_path):
    path = _write(
        tmp_path / "mod.py",
        """
        # ctxboot:component

        class Loose:
            pass
        """,
    )
    assert scan_file(path) == []


def test_comment_above_decorator_marks_component(tmp_path):
    path = _write(
        tmp_path / "mod.py",
        """
        from dataclasses import dataclass

        # ctxboot:component
        @dataclass
        class Config:
            name: str = ""
        """,
    )
    assert [c.name for c in scan_file(path)] == ["Config"]


def test_private_component_raises(tmp_path):
    path = _write(
        tmp_path / "mod.py",
        """
        # ctxboot:component
        class _Hidden:
            pass
        """,
    )
    with pytest.raises(ScanError):
        scan_file(path)


def test_unparsable_file_yields_nothing(tmp_path):
    path = _write(tmp_path / "broken.py", "class (:\n")
    assert scan_file(path) == []


def test_scan_directory_walks_in_path_order(tmp_path):
    root = tmp_path / "app"
    _write(root / "__init__.py")
    _write(root / "b.py", "# ctxboot:component\nclass B:\n    pass\n")
    _write(root / "a" / "x.py", "# ctxboot:component\nclass X:\n    pass\n")
    _write(root / "notes.txt", "# ctxboot:component\n")
    components = scan_directory(root)
    assert [c.name for c in components] == ["X", "B"]
    assert [c.package for c in components] == ["x", "b"]


def test_scan_directory_without_python_files_raises(tmp_path):
    _write(tmp_path / "readme.txt", "text")
    with pytest.raises(ScanError):
        scan_directory(tmp_path)


def test_scan_directory_missing_raises(tmp_path):
    with pytest.raises(ScanError):
        scan_directory(tmp_path / "absent")


def _component(name, *deps):
    file = Path("m.py")
    return Component(
        name=name,
        package="m",
        file=file,
        dependencies=tuple(Dependency(d, "m", file) for d in deps),
    )


def test_sort_puts_dependencies_first():
    service = _component("Service", "Repo")
    repo = _component("Repo", "Db")
    db = _component("Db")
    ordered = sort_by_dependencies([service, repo, db])
    assert ordered == [db, repo, service]


def test_sort_ignores_unknown_dependencies():
    lone = _component("Lone", "Missing")
    assert sort_by_dependencies([lone]) == [lone]


def test_sort_detects_cycles():
    first = _component("First", "Second")
    second = _component("Second", "First")
    with pytest.raises(ScanError):
        sort_by_dependencies([first, second])