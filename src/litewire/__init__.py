"""Minimal dependency injection by parameter name.

Register values or lazily invoked factories with a named injector, then invoke
functions whose parameters are looked up by name in the injector and, for public
entries, in the injectors it imports.

Exports:
- `Injector`: Named container; calling it invokes a function with injected arguments.
- `create`: Build an injector from a name and optional imports.
- `map_invoke`: Invoke one function against several injectors.
- `InjectionError` / `ErrorCode`: Error raised (or handed to ``on_error``) on failure.
- `normalize`: Canonical form of a dependency name.
"""

from ._errors import ErrorCode, InjectionError
from ._injector import Injector, Registration, create, map_invoke
from ._names import normalize


__all__ = ["ErrorCode", "InjectionError", "Injector", "Registration", "create", "map_invoke", "normalize"]
