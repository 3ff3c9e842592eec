"""Load a value or a callable from a Python module given by path or dotted name."""

from __future__ import annotations

import hashlib
import importlib
import importlib.util
import logging
import os
import sys
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any


logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import ModuleType

    PathSpec = str | os.PathLike[str] | Sequence[str | os.PathLike[str]]

# Module attribute picked up when no explicit ``:attribute`` is given
EXPORTS_ATTRIBUTE = "exports"

_modules: dict[str, ModuleType] = {}
_lock = threading.RLock()


@dataclass(frozen=True)
class Loaded:
    value: Any
    origin: str  # file the value came from, or the requested target for modules without one


def resolve_path_spec(path_spec: PathSpec) -> str:
    """Join a sequence of path parts; pass a single path through."""
    if isinstance(path_spec, (str, os.PathLike)):
        return os.fspath(path_spec)
    return os.path.join(*(os.fspath(part) for part in path_spec))


def load(path_spec: PathSpec) -> Loaded:
    """Load ``<file-or-module>[:<attribute>]``.

    - ``"services/db.py"`` / ``["services", "db.py"]``: load the file.
    - ``"myapp.services.db"``: import the module.
    - ``"myapp.services.db:make_db"``: take an attribute of the module.

    Without an explicit attribute, the module's ``exports`` attribute is used when it
    exists, otherwise the module itself. Any failure propagates unchanged.
    """
    target = resolve_path_spec(path_spec)
    location, attribute = _split_attribute(target)

    module = _load_file(location) if _is_file_location(location) else importlib.import_module(location)

    if attribute is None:
        value = getattr(module, EXPORTS_ATTRIBUTE, module)
    else:
        value = module
        for part in attribute.split("."):
            value = getattr(value, part)

    origin = getattr(module, "__file__", None) or target
    return Loaded(value=value, origin=origin)


def _split_attribute(target: str) -> tuple[str, str | None]:
    location, sep, attribute = target.rpartition(":")
    # "C:\\x.py" has a colon too, but what follows it is no attribute path
    if sep and location and all(part.isidentifier() for part in attribute.split(".")):
        return location, attribute
    return target, None


def _is_file_location(location: str) -> bool:
    return location.endswith(".py") or os.sep in location or (os.altsep is not None and os.altsep in location)


def _load_file(location: str) -> ModuleType:
    path = os.path.abspath(location)

    with _lock:
        module = _modules.get(path)
        if module is not None:
            return module

        if not os.path.isfile(path):
            msg = f"No such file: {path!r}"
            raise FileNotFoundError(msg)

        module_name = _module_name_for(path)
        spec = importlib.util.spec_from_file_location(module_name, path)
        if spec is None or spec.loader is None:
            msg = f"Cannot load {path!r} as a Python module"
            raise ImportError(msg, path=path)

        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except BaseException:
            sys.modules.pop(module_name, None)
            raise

        _modules[path] = module
        logger.debug("Loaded %s as module %s", path, module_name)
        return module


def _module_name_for(path: str) -> str:
    stem = os.path.splitext(os.path.basename(path))[0]
    digest = hashlib.sha1(path.encode("utf-8"), usedforsecurity=False).hexdigest()[:12]
    return f"_litewire_{stem}_{digest}"
