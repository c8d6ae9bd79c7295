"""Collaborator import resolution: ``"module:attribute"`` to ``Collaborators``.

The CLI does not know the editor, proxies or static assets it fronts; the
surrounding application hands them over through an import string.
"""

import importlib

from doorway.pipeline import Collaborators


def resolve_collaborators(import_string: str | None) -> Collaborators:
    """Resolve an import string to a ``Collaborators`` instance.

    Accepts ``"module:attribute"``. When the attribute is omitted it
    defaults to ``collaborators``. A callable that is not already a
    ``Collaborators`` is called as a factory. ``None`` resolves to an
    empty ``Collaborators`` (only the built-in routes are mounted).

    Raises:
        ModuleNotFoundError: If the module cannot be imported.
        AttributeError: If the attribute does not exist on the module.
        TypeError: If the resolved object is not a ``Collaborators``.
    """
    if import_string is None:
        return Collaborators()

    module_path, _, attr_name = import_string.partition(":")
    if not attr_name:
        attr_name = "collaborators"

    module = importlib.import_module(module_path)
    obj = getattr(module, attr_name)

    if callable(obj) and not isinstance(obj, Collaborators):
        try:
            obj = obj()
        except Exception as exc:
            msg = f"Factory function {import_string!r} raised an error: {exc}"
            raise TypeError(msg) from exc

    if not isinstance(obj, Collaborators):
        msg = f"{import_string!r} resolved to {type(obj).__name__}, not doorway.Collaborators"
        raise TypeError(msg)

    return obj
