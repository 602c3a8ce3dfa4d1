"""Import resolution: ``"module:qualname"`` strings back to objects.

Used to rehydrate a cached route table, whose handlers and route
middlewares are stored as references rather than objects.
"""

import importlib
from typing import Any


def import_ref(ref: str) -> Any:
    """Resolve ``"package.module:Outer.inner"`` to the named object.

    Raises:
        ValueError: If *ref* has no ``:`` or names a function-local object.
        ModuleNotFoundError: If the module cannot be imported.
        AttributeError: If an attribute along the qualname does not exist.

    """
    module_path, _, qualname = ref.partition(":")
    if not module_path or not qualname:
        msg = f"Import reference {ref!r} must look like 'module:qualname'"
        raise ValueError(msg)
    if "<locals>" in qualname:
        msg = f"Import reference {ref!r} points inside a function and cannot be imported"
        raise ValueError(msg)

    obj: Any = importlib.import_module(module_path)
    for part in qualname.split("."):
        obj = getattr(obj, part)
    return obj


def is_importable_ref(ref: str) -> bool:
    """Whether *ref* could round-trip through ``import_ref()``."""
    return "<locals>" not in ref and not ref.startswith("__main__:")


def callable_ref(obj: Any) -> str:
    """Importable ``module:qualname`` reference of a function or class."""
    return f"{obj.__module__}:{obj.__qualname__}"
