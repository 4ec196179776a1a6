"""Router import resolution for ``waypoint run`` and ``waypoint routes``."""

import importlib

from waypoint.app import Router


def resolve_router(import_string: str) -> Router:
    """Resolve ``"module:attribute"`` to a :class:`Router`.

    The attribute defaults to ``router`` (``"myapp"`` resolves to
    ``myapp.router``). A callable that is not a Router is treated as a
    factory and called with no arguments.

    Raises:
        ModuleNotFoundError: If the module cannot be imported.
        AttributeError: If the attribute does not exist on the module.
        TypeError: If the result is not a Router, or the factory raised.
    """
    module_path, _, attr_name = import_string.partition(":")
    if not attr_name:
        attr_name = "router"

    module = importlib.import_module(module_path)
    obj = getattr(module, attr_name)

    if callable(obj) and not isinstance(obj, Router):
        try:
            obj = obj()
        except Exception as exc:
            msg = f"Factory function {import_string!r} raised an error: {exc}"
            raise TypeError(msg) from exc

    if not isinstance(obj, Router):
        msg = f"{import_string!r} resolved to {type(obj).__name__}, not a waypoint.Router"
        raise TypeError(msg)

    return obj
