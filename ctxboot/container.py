"""Type-keyed component registry with annotation-driven field injection."""

from __future__ import annotations

import ast
import inspect
import threading
import typing
from dataclasses import dataclass
from typing import Annotated, Any


class Inject:
    """Marks a field to be filled from the context: ``Annotated[T, Inject]``."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "Inject()"


class ComponentError(Exception):
    """Base error for component registration, lookup and injection."""


class ComponentNotFoundError(ComponentError, LookupError):
    """No registered component matches the requested type."""


class AmbiguousComponentError(ComponentError):
    """More than one registered component implements the requested interface."""


class CircularDependencyError(ComponentError):
    """Components depend on each other so that none can be initialized first."""


@dataclass(frozen=True, repr=False)
class _Unresolved:
    """A type named in a string annotation that no known class matches."""

    name: str

    def __repr__(self) -> str:
        return self.name


def _type_name(typ: Any) -> str:
    return getattr(typ, "__qualname__", None) or repr(typ)


def _is_protocol(typ: Any) -> bool:
    return isinstance(typ, type) and bool(getattr(typ, "_is_protocol", False))


def _is_interface(typ: Any) -> bool:
    return _is_protocol(typ) or (isinstance(typ, type) and inspect.isabstract(typ))


def _protocol_members(proto: type) -> set[str]:
    names: set[str] = set()
    for base in proto.__mro__:
        if base in (object, typing.Protocol, typing.Generic) or not _is_protocol(base):
            continue
        names.update(name for name in vars(base) if not name.startswith("_"))
        annotations = base.__dict__.get("__annotations__", {})
        names.update(name for name in annotations if not name.startswith("_"))
    return names


def _satisfies(instance: Any, typ: type) -> bool:
    """Whether *instance* can stand where *typ* is expected."""
    try:
        if isinstance(instance, typ):
            return True
    except TypeError:
        pass
    if _is_protocol(typ):
        return all(hasattr(instance, name) for name in _protocol_members(typ))
    return False


_BUILTIN_TYPES: dict[str, Any] = {
    t.__name__: t
    for t in (
        int, float, complex, str, bytes, bytearray, bool,
        list, dict, tuple, set, frozenset, object, type,
    )
}

_ANNOTATED_NAMES = {"Annotated", "typing.Annotated", "typing_extensions.Annotated"}


def _dotted(node: ast.AST) -> str | None:
    """The dotted name an expression spells, if it is one."""
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        prefix = _dotted(node.value)
        return f"{prefix}.{node.attr}" if prefix else None
    return None


def _is_inject_marker(node: ast.AST, namespace: dict[str, Any]) -> bool:
    if isinstance(node, ast.Call) and not node.args and not node.keywords:
        node = node.func
    name = _dotted(node)
    if name is None:
        return False
    return name == "Inject" or name.endswith(".Inject") or namespace.get(name) is Inject


def _resolve_type(node: ast.AST, namespace: dict[str, Any]) -> Any:
    if isinstance(node, ast.Constant) and isinstance(node.value, str):
        return _resolve_type(_parse(node.value), namespace)
    name = _dotted(node)
    if name is None:
        return _Unresolved(ast.unparse(node))
    return namespace.get(name, _Unresolved(name))


def _parse(text: str) -> ast.AST:
    try:
        return ast.parse(text, mode="eval").body
    except SyntaxError as err:
        raise ComponentError(f"invalid annotation {text!r}") from err


def _inject_type_from_node(node: ast.AST, namespace: dict[str, Any]) -> Any:
    """The injected type of a string annotation, or None if it is not injected."""
    if isinstance(node, ast.Constant) and isinstance(node.value, str):
        return _inject_type_from_node(_parse(node.value), namespace)
    if not isinstance(node, ast.Subscript):
        return None
    head = _dotted(node.value)
    if head is None or (head not in _ANNOTATED_NAMES and namespace.get(head) is not Annotated):
        return None
    index = node.slice
    if not isinstance(index, ast.Tuple) or len(index.elts) < 2:
        return None
    base, *metadata = index.elts
    if not any(_is_inject_marker(m, namespace) for m in metadata):
        return None
    return _resolve_type(base, namespace)


def _namespace(cls: type, components: dict[type, Any]) -> dict[str, Any]:
    """Names that string annotations of *cls* may refer to."""
    namespace: dict[str, Any] = dict(_BUILTIN_TYPES)
    namespace.update({"Annotated": Annotated, "Inject": Inject, "typing.Annotated": Annotated})
    known = [cls, *components, *(type(inst) for inst in components.values())]
    for typ in known:
        for klass in getattr(typ, "__mro__", ()):
            namespace.setdefault(klass.__name__, klass)
            namespace.setdefault(klass.__qualname__, klass)
            namespace.setdefault(f"{klass.__module__}.{klass.__qualname__}", klass)
    for klass in reversed(cls.__mro__):
        namespace.update(
            {name: value for name, value in vars(klass).items() if isinstance(value, type)}
        )
    return namespace


def _own_annotations(cls: type) -> dict[str, Any]:
    annotations = cls.__dict__.get("__annotations__")
    if annotations is None and "__annotate__" in cls.__dict__:
        annotations = cls.__annotations__
    return dict(annotations or {})


def _inject_fields(cls: type, namespace: dict[str, Any]) -> list[tuple[str, Any]]:
    """The (name, type) pairs of the fields of *cls* marked with Inject."""
    fields: dict[str, Any] = {}
    for base in reversed(cls.__mro__):
        if base is object:
            continue
        try:
            annotations = _own_annotations(base)
        except Exception as err:
            raise ComponentError(
                f"cannot resolve annotations of {_type_name(cls)}: {err}"
            ) from err
        for name, hint in annotations.items():
            if isinstance(hint, str):
                field_type = _inject_type_from_node(_parse(hint), namespace)
            elif typing.get_origin(hint) is Annotated:
                field_base, *metadata = typing.get_args(hint)
                marked = any(m is Inject or isinstance(m, Inject) for m in metadata)
                field_type = field_base if marked else None
            else:
                field_type = None
            if field_type is None:
                fields.pop(name, None)
            else:
                fields[name] = field_type
    return list(fields.items())


class ComponentContext:
    """Holds one instance per type and wires their injected fields."""

    def __init__(self) -> None:
        self._components: dict[type, Any] = {}
        self._lock = threading.RLock()

    def get_component(self, typ: type) -> Any:
        """Return the component stored for *typ*, or the single one implementing it."""
        with self._lock:
            if typ in self._components:
                return self._components[typ]
            if _is_interface(typ):
                candidates = [
                    key
                    for key, instance in self._components.items()
                    if _satisfies(instance, typ)
                ]
                if not candidates:
                    raise ComponentNotFoundError(
                        f"no component found that implements interface: {_type_name(typ)}"
                    )
                if len(candidates) > 1:
                    names = " ".join(_type_name(c) for c in candidates)
                    raise AmbiguousComponentError(
                        f"multiple components implement interface {_type_name(typ)}: [{names}]"
                    )
                return self._components[candidates[0]]
        raise ComponentNotFoundError(f"component not found: {_type_name(typ)}")

    def set_component(self, typ: type, instance: Any) -> None:
        """Store *instance* under *typ*, replacing any earlier one."""
        if instance is None:
            raise ComponentError("cannot store nil component")
        if not isinstance(typ, type):
            raise TypeError(f"component type must be a class, not {typ!r}")
        if not _satisfies(instance, typ):
            raise ComponentError(
                f"instance type {_type_name(type(instance))} is not assignable to {_type_name(typ)}"
            )
        with self._lock:
            self._components[typ] = instance

    def register_component(self, instance: Any) -> None:
        """Store *instance* under its own class."""
        if instance is None:
            raise ComponentError("cannot register nil component")
        self.set_component(type(instance), instance)

    def initialize_components(self) -> None:
        """Inject dependencies into every component, dependencies first."""
        with self._lock:
            components = dict(self._components)

        fields_of = {
            typ: _inject_fields(type(inst), _namespace(type(inst), components))
            for typ, inst in components.items()
        }
        initialized: set[type] = set()

        while len(initialized) < len(components):
            progress = False
            for typ, instance in components.items():
                if typ in initialized:
                    continue
                fields = fields_of[typ]
                if any(ft in components and ft not in initialized for _, ft in fields):
                    continue
                self._inject(typ, instance, fields)
                initialized.add(typ)
                progress = True
            if not progress:
                pending = " ".join(
                    _type_name(typ) for typ in components if typ not in initialized
                )
                raise CircularDependencyError(
                    f"circular dependency detected among: [{pending}]"
                )

    def _inject(self, typ: type, instance: Any, fields: list[tuple[str, Any]]) -> None:
        prefix = f"failed to initialize component {_type_name(typ)}"
        for name, field_type in fields:
            try:
                component = self.get_component(field_type)
            except ComponentNotFoundError as err:
                raise ComponentNotFoundError(
                    f"{prefix}: failed to inject field {name}: {err}"
                ) from err
            try:
                setattr(instance, name, component)
            except AttributeError as err:
                raise ComponentError(
                    f"{prefix}: failed to inject field {name}: {err}"
                ) from err