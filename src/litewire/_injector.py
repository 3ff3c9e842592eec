from __future__ import annotations

import inspect
import itertools
import logging
import threading
from typing import TYPE_CHECKING, Any

from ._errors import ErrorCode, InjectionError, report
from ._loader import load as load_module
from ._loader import resolve_path_spec
from ._names import normalize, normalize_injector_name


logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

    from ._errors import OnError
    from ._loader import Loaded, PathSpec

# Name every injector registers itself under
SELF_NAME = "di"

_NOT_INJECTED = (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD)

# Held while any factory resolves, across all injectors
_resolution_lock = threading.RLock()


class _FactoryCell:
    """Lazily computed entry: resolved once through the owning injector, then memoized."""

    def __init__(self, fn: Callable[..., Any], origin: str | None = None) -> None:
        self.fn = fn
        self.origin = origin
        self._resolving = False
        self._resolved = False
        self._value: Any = None

    def resolve(self, injector: Injector, on_error: OnError) -> tuple[bool, Any]:
        """Return ``(resolved, value)``. A failed resolution is not memoized."""
        with _resolution_lock:
            if self._resolved:
                return True, self._value

            if self._resolving:
                # re-entered from its own dependencies
                return False, None

            self._resolving = True
            try:
                called, value = injector._call(self.fn, None, on_error, self.origin)  # noqa: SLF001
            finally:
                self._resolving = False

            if not called:
                return False, None

            self._value = value
            self._resolved = True
            return True, value


class Registration:
    """Builder returned by `Injector.register`; every method chains."""

    def __init__(self, injector: Injector, name: str, on_error: OnError = None) -> None:
        self.injector = injector
        self.name = normalize(name)
        self._on_error = on_error

    def public(self) -> Registration:
        """Make the name visible to injectors importing this one."""
        self.injector._set_public(self.name)  # noqa: SLF001
        return self

    def value(self, value: object) -> Registration:
        self.injector._store(self.name, value)  # noqa: SLF001
        return self

    def factory(self, fn: Callable[..., Any], *, origin: str | None = None) -> Registration:
        """Register `fn` to be invoked with injected arguments on first request.

        Its return value replaces the entry, so `fn` runs at most once.
        """
        if not callable(fn):
            error = InjectionError(
                self.injector.name,
                f'"{self.name}" was defined as factory but is not callable',
                ErrorCode.NOT_A_FUNCTION,
                origin=origin,
            )
            report(error, self._on_error)
            return self

        self.injector._store(self.name, _FactoryCell(fn, origin))  # noqa: SLF001
        return self

    def load(self, path_spec: PathSpec) -> Registration:
        """Load `path_spec`; register a callable as factory, anything else as value."""
        loaded = self.injector._load(path_spec, self._on_error)  # noqa: SLF001
        if loaded is None:
            return self
        if callable(loaded.value):
            return self.factory(loaded.value, origin=loaded.origin)
        return self.value(loaded.value)

    def load_value(self, path_spec: PathSpec) -> Registration:
        loaded = self.injector._load(path_spec, self._on_error)  # noqa: SLF001
        if loaded is not None:
            self.value(loaded.value)
        return self

    def load_factory(self, path_spec: PathSpec) -> Registration:
        loaded = self.injector._load(path_spec, self._on_error)  # noqa: SLF001
        if loaded is not None:
            self.factory(loaded.value, origin=loaded.origin)
        return self

    def get(self) -> Any:
        """Resolve the registered name right away."""
        return self.injector.get(self.name, on_error=self._on_error)


class Injector:
    """Named container of dependencies, resolved by parameter name.

    - register values or lazily invoked factories
    - invoke functions with arguments looked up by parameter name
    - import other injectors to fall back on their public entries.
    """

    def __init__(self, name: object = "", imports: Injector | Iterable[Injector | None] | None = None) -> None:
        self._name = normalize_injector_name(name)
        self._registry: dict[str, Any] = {}
        self._public: set[str] = set()
        self._names: dict[str, None] = {}  # insertion-ordered set, for diagnostics
        self._revisions: dict[str, int] = {}  # registration sequence number per key
        self._sequence = itertools.count()
        self._imports: list[Injector] = []
        self._import_cache: dict[str, Any] = {}
        self._lock = threading.RLock()
        self._pending = threading.local()  # keys being looked up through imports, per thread

        self.import_injectors(imports)
        self.register(SELF_NAME).value(self)

    @property
    def name(self) -> str:
        return self._name

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._name!r})"

    def __call__(
        self,
        fn: Callable[..., Any],
        custom: Mapping[str, Any] | None = None,
        on_error: OnError = None,
    ) -> Any:
        return self.invoke(fn, custom, on_error)

    # Registration

    def register(self, name: object, on_error: OnError = None) -> Registration:
        return Registration(self, str(name), on_error)

    def _store(self, key: str, entry: object) -> None:
        with self._lock:
            self._registry[key] = entry
            self._names[key] = None
            self._revisions[key] = next(self._sequence)
        logger.debug("Registered %r in injector %r", key, self._name)

    def _set_public(self, key: str) -> None:
        with self._lock:
            self._public.add(key)

    def _load(self, path_spec: PathSpec, on_error: OnError) -> Loaded | None:
        try:
            return load_module(path_spec)
        except Exception as exc:  # noqa: BLE001
            target = _describe_path_spec(path_spec)
            error = InjectionError(
                self._name,
                f'could not load "{target}": {exc}',
                ErrorCode.COULD_NOT_LOAD,
                origin=target,
            )
            error.__cause__ = exc
            report(error, on_error)
            return None

    # Resolution

    def get(self, name: object, public_only: bool = False, on_error: OnError = None) -> Any:
        """Resolve `name` locally, then through imports. ``None`` means not found.

        A factory entry is invoked on first request and replaced by its result.
        Imports only ever expose their public entries.
        """
        key = normalize(name)

        local = self._local_key(key, public_only)
        if local is not None:
            entry = self._registry[local]
            if isinstance(entry, _FactoryCell):
                return self._resolve_factory(local, entry, on_error)
            return entry

        cached = self._import_cache.get(key)
        if cached is not None:
            return cached

        return self._get_imported(key, on_error)

    def _get_imported(self, key: str, on_error: OnError) -> Any:
        # injectors importing each other would otherwise recurse forever on a miss
        pending: set[str] = self._pending.__dict__.setdefault("keys", set())
        if key in pending:
            return None

        pending.add(key)
        try:
            for imported in list(self._imports):
                dependency = imported.get(key, True, on_error)
                if dependency is not None:
                    with self._lock:
                        self._import_cache[key] = dependency
                    return dependency
        finally:
            pending.discard(key)

        return None

    def require(self, name: object, on_error: OnError = None) -> Any:
        """Like `get`, but a name that cannot be resolved is an error."""
        dependency = self.get(name, False, on_error)
        if dependency is None:
            error = InjectionError(
                self._name,
                f'"{name}" required, but not registered',
                ErrorCode.DEPENDENCY_NOT_FOUND,
            )
            report(error, on_error)
            return None
        return dependency

    def _local_key(self, key: str, public_only: bool) -> str | None:
        candidates = [key]
        # "<injector name><name>" addresses "<name>" of this injector
        if self._name and key.startswith(self._name) and len(key) > len(self._name):
            candidates.append(key[len(self._name) :])

        found = [c for c in candidates if c in self._registry and (not public_only or c in self._public)]
        # the most recent registration answers, as if stored under both keys
        return max(found, key=self._revisions.__getitem__, default=None)

    def _resolve_factory(self, key: str, cell: _FactoryCell, on_error: OnError) -> Any:
        resolved, value = cell.resolve(self, on_error)
        if not resolved:
            return None

        with self._lock:
            # replace the cell by its result unless re-registered meanwhile
            if self._registry.get(key) is cell:
                self._registry[key] = value
        logger.debug("Resolved factory %r in injector %r", key, self._name)
        return value

    # Invocation

    def invoke(
        self,
        fn: Callable[..., Any],
        custom: Mapping[str, Any] | None = None,
        on_error: OnError = None,
    ) -> Any:
        """Call `fn`, injecting each parameter by name.

        Resolution precedence per parameter:
        1. entry of `custom` under the exact parameter name (``None`` included)
        2. registered or imported dependency
        3. the parameter's default
        4. error, listing every unresolved parameter.
        """
        return self._call(fn, custom, on_error, None)[1]

    def _call(
        self,
        fn: Callable[..., Any],
        custom: Mapping[str, Any] | None,
        on_error: OnError,
        origin: str | None,
    ) -> tuple[bool, Any]:
        """Return ``(called, result)``; `called` is false when `fn` could not be invoked."""
        if not callable(fn):
            error = InjectionError(self._name, f"{fn!r} is not callable", ErrorCode.NOT_A_FUNCTION, origin=origin)
            report(error, on_error)
            return False, None

        try:
            params = inspect.signature(fn).parameters
        except (TypeError, ValueError) as exc:
            error = InjectionError(
                self._name,
                f"cannot read the parameters of {fn!r}: {exc}",
                ErrorCode.NOT_A_FUNCTION,
                origin=origin,
            )
            error.__cause__ = exc
            report(error, on_error)
            return False, None

        args: list[Any] = []
        kwargs: dict[str, Any] = {}
        missing: list[str] = []

        for name, p in params.items():
            if p.kind in _NOT_INJECTED:
                continue

            if custom and name in custom:
                value = custom[name]
            else:
                value = self.get(name, False, on_error)
                if value is None:
                    if p.default is inspect.Parameter.empty:
                        missing.append(name)
                        continue
                    value = p.default

            if p.kind is inspect.Parameter.KEYWORD_ONLY:
                kwargs[name] = value
            else:
                args.append(value)

        if missing:
            error = InjectionError(
                self._name,
                f'could not inject "{", ".join(missing)}" (either missing or not public if imported)',
                ErrorCode.DEPENDENCY_NOT_FOUND,
                context=fn,
                origin=origin,
            )
            report(error, on_error)
            return False, None

        return True, fn(*args, **kwargs)

    def invoke_file(
        self,
        path_spec: PathSpec,
        custom: Mapping[str, Any] | None = None,
        on_error: OnError = None,
    ) -> Any:
        """Load a callable from `path_spec` and invoke it."""
        loaded = self._load(path_spec, on_error)
        if loaded is None:
            return None

        if not callable(loaded.value):
            error = InjectionError(
                self._name,
                f'"{_describe_path_spec(path_spec)}" does not provide a callable',
                ErrorCode.NOT_A_FUNCTION,
                origin=loaded.origin,
            )
            report(error, on_error)
            return None

        return self._call(loaded.value, custom, on_error, loaded.origin)[1]

    def callback(
        self,
        fn: Callable[..., Any],
        custom: Mapping[str, Any] | None = None,
        on_error: OnError = None,
    ) -> Callable[[], Any]:
        """Defer `invoke`: dependencies are resolved when the returned callable runs."""

        def deferred() -> Any:
            return self.invoke(fn, custom, on_error)

        return deferred

    # Composition

    def import_injectors(self, imports: Injector | Iterable[Injector | None] | None) -> Injector:
        """Fall back on the public entries of `imports`, in order, on local miss."""
        with self._lock:
            for candidate in _as_list(imports):
                if isinstance(candidate, Injector) and candidate is not self and candidate not in self._imports:
                    self._imports.append(candidate)
                    self._import_cache.clear()
                    logger.debug("Injector %r imports %r", self._name, candidate.name)
        return self

    def new_child(self, name: object = "", imports: Injector | Iterable[Injector | None] | None = None) -> Injector:
        """New injector importing this one first, then `imports`."""
        return type(self)(name, [self, *_as_list(imports)])

    # Introspection

    def get_import_names(self) -> list[str]:
        return [imported.name for imported in self._imports]

    def describe(self, inherited: bool = False, processed: set[str] | None = None) -> str:
        """Render names of this injector and its imports as an indented tree.

        Imported injectors only list their public names. An injector whose name is
        already in `processed` renders as an empty string.
        """
        processed = set() if processed is None else processed
        if self._name in processed:
            return ""
        processed.add(self._name)

        lines: list[str] = []
        if not inherited:
            lines += [f"Dependency Injector: {self._name}", ""]

        lines.append(f"  {self._name}" + (" (inherited)" if inherited else ""))
        lines.append("    public")
        lines += [f"      {name}" for name in self._names if name in self._public]

        if not inherited:
            lines.append("    private")
            lines += [f"      {name}" for name in self._names if name not in self._public]

        for imported in self._imports:
            text = imported.describe(True, processed)
            if text:
                lines.append(text)

        return "\n".join(lines) + ("" if inherited else "\n")

    def show_dependencies(self, write: Callable[[str], object] = print) -> None:
        write(self.describe())


def create(name: object = "", imports: Injector | Iterable[Injector | None] | None = None) -> Injector:
    return Injector(name, imports)


def map_invoke(injectors: Iterable[Injector], fn: Callable[..., Any]) -> list[Any]:
    """Invoke `fn` against each injector, collecting the results in order."""
    return [injector.invoke(fn) for injector in injectors]


def _describe_path_spec(path_spec: PathSpec) -> str:
    try:
        return resolve_path_spec(path_spec)
    except TypeError:
        return repr(path_spec)


def _as_list(imports: Injector | Iterable[Injector | None] | None) -> list[Injector | None]:
    if imports is None:
        return []
    if isinstance(imports, Injector):
        return [imports]
    return list(imports)
