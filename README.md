# ctxboot

`ctxboot` is a small dependency-injection toolkit. It provides:

- `ctxboot.container.ComponentContext`, which holds one instance per component
  type. It fills in fields marked with `Inject`, and it resolves abstract
  classes and protocols to the single registered component that implements
  them.
- A code generator (`ctxboot.codegen`, command `ctxboot`). It scans a package
  for classes marked as components and writes a registration module for them.
- A demo (`ctxboot.demo`, command `ctxboot-demo`) that wires a few sample
  components together.

No third-party libraries are needed.

## Installation

```
pip install ctxboot
```

To install with the test dependencies:

```
pip install "ctxboot[test]"
```

## The component context

```python
from typing import Annotated

from ctxboot.container import ComponentContext, Inject


class Clock:
    def now(self) -> str:
        return "12:00"


class Greeter:
    clock: Annotated[Clock, Inject]

    def greet(self) -> str:
        return f"Hello, it is {self.clock.now()}"


context = ComponentContext()
context.register_component(Clock())    # stored under its own class
context.register_component(Greeter())
context.initialize_components()        # sets Greeter.clock

print(context.get_component(Greeter).greet())
```

The context has these methods:

- `set_component(typ, instance)` stores `instance` under the class `typ` and
  replaces any earlier entry. The instance must be an instance of `typ`, or
  have the members that the protocol `typ` declares. If `typ` is not a class,
  a `TypeError` is raised.
- `register_component(instance)` stores `instance` under `type(instance)`.
- `get_component(typ)` returns the component stored for exactly `typ`. If
  there is no such entry and `typ` is an abstract class or a
  `typing.Protocol`, it returns the one registered component that satisfies
  `typ`.
- `initialize_components()` sets every field annotated as
  `Annotated[T, Inject]` on each registered component, including fields
  inherited from base classes and string annotations. A component is handled
  only after the components it depends on have been handled. The value set is
  whatever `get_component(T)` returns.

Access to the context is guarded by a lock, so it can be shared between
threads.

### Errors

Every error derives from `ComponentError`:

| Exception                 | Raised when                                                                  |
|---------------------------|------------------------------------------------------------------------------|
| `ComponentError`          | storing `None`, storing an instance that does not match its type, or a field that cannot be set |
| `ComponentNotFoundError`  | no component matches the requested type, including a missing injected dependency (it is also a `LookupError`) |
| `AmbiguousComponentError` | more than one component satisfies the requested abstract class or protocol    |
| `CircularDependencyError` | components depend on each other in a cycle during `initialize_components()`  |

## Generating registration code

To mark a class as a component, put a comment containing `ctxboot:component`
directly above it (above any decorators). Inject its dependencies with
`Annotated[T, Inject]`:

```python
# ctxboot:component
class UserService:
    repo: Annotated[UserRepository, Inject]
```

Then run the generator on a package directory, meaning a directory that holds
an `__init__.py`:

```
ctxboot path/to/package
```

The generator does the following:

1. It finds the top-level package that contains the directory by walking up
   while the parent directories hold an `__init__.py`.
2. It scans every `.py` file beneath the directory in path order. Files that
   cannot be parsed are logged and skipped.
3. It checks the dependencies between components. A cycle stops generation,
   and so does a component whose name starts with an underscore.
4. It writes `ctxboot_context.py` into the directory.

The command exits with status 1 on these errors.

The generated module imports every module that holds components. When the same
module name occurs more than once, it gives the repeats numbered aliases. The
module defines:

- a `ComponentContext` subclass that registers one fresh instance of every
  component when it is created,
- a `get_<snake_case_name>()` method for each component,
- a `new_component_context()` function.

The same steps are available from Python:

- `ctxboot.codegen.generate(package_dir)` writes the module and returns its
  path.
- `collect_imports` and `render_registration` build the pieces of the module.
- `ctxboot.scanner` provides `scan_file`, `scan_directory`,
  `sort_by_dependencies`, `find_module_root`, `read_module_path` and
  `has_component_annotation`. It also provides the `Component` and
  `Dependency` records and `ScanError`.

## Demo

```
ctxboot-demo
```

The demo builds a context from the sample components in `ctxboot.demo`. It
then does the following:

- It resolves a `UserService`, which gets a `UserRepository` injected, which
  in turn gets the abstract `Database` resolved to `DatabaseImpl`.
- It finds `EnglishGreeter` through the `Greeter` protocol.
- It registers configuration objects, a `datetime` and a `logging.Logger` by
  hand, and prints each one it retrieves.

`ctxboot.demo.build_context()` returns a context that holds a fresh instance
of every sample component.