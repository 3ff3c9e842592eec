from __future__ import annotations

import re


_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]+")
_LEADING_DIGITS = re.compile(r"^[0-9]+")


def normalize(raw: object) -> str:
    """Canonical lookup key for a dependency name.

    Every character outside ``[a-zA-Z0-9]`` is dropped and the rest is lower-cased,
    so ``"fooDi"``, ``"foo_di"`` and ``"FOO-DI"`` all map to ``"foodi"``.
    """
    return _NON_ALNUM.sub("", str(raw)).lower()


def normalize_injector_name(raw: object) -> str:
    """Like `normalize`, but also drops a leading run of digits.

    Injector names are used as lookup prefixes inside parameter names, and a
    Python identifier cannot start with a digit.
    """
    return _LEADING_DIGITS.sub("", normalize(raw))
