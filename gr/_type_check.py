"""
Type checking decorator for gr.

Checks call arguments against type hints at runtime. Off by default; the test
suite turns it on by exporting GR_TYPECHECK=1 before gr is first imported.
"""

import functools
import inspect
import os
from pathlib import Path
from typing import get_type_hints, get_origin, get_args, Union


TYPECHECK_ENABLED = os.environ.get("GR_TYPECHECK", "") not in ("", "0")


def _type_name(expected_type) -> str:
    return getattr(expected_type, "__name__", str(expected_type))


def _check_type(value, expected_type, param_name: str):
    """Raise TypeError if value does not match expected_type."""
    if expected_type is inspect.Parameter.empty:
        return

    origin = get_origin(expected_type)

    if value is None:
        if expected_type is type(None):
            return
        if origin is Union and type(None) in get_args(expected_type):
            return
        raise TypeError(f"Parameter '{param_name}' expected {_type_name(expected_type)}, got None")

    if origin is None:
        if not isinstance(expected_type, type):
            return  # TypeVar, Any, forward references
        if expected_type is Path:
            # Path-typed parameters also take plain strings
            if not isinstance(value, (Path, str)):
                raise TypeError(f"Parameter '{param_name}' expected Path, got {type(value).__name__}")
        elif expected_type is float:
            if not isinstance(value, (int, float)) or isinstance(value, bool):
                raise TypeError(f"Parameter '{param_name}' expected float, got {type(value).__name__}")
        elif not isinstance(value, expected_type):
            raise TypeError(
                f"Parameter '{param_name}' expected {expected_type.__name__}, got {type(value).__name__}"
            )

    elif origin in (list, tuple, set, frozenset):
        if not isinstance(value, origin):
            raise TypeError(f"Parameter '{param_name}' expected {origin.__name__}, got {type(value).__name__}")
        args = get_args(expected_type)
        if origin is list and args and isinstance(args[0], type):
            for i, elem in enumerate(value):
                if not isinstance(elem, args[0]):
                    raise TypeError(
                        f"Parameter '{param_name}[{i}]' expected {args[0].__name__}, "
                        f"got {type(elem).__name__}"
                    )

    elif origin is dict:
        if not isinstance(value, dict):
            raise TypeError(f"Parameter '{param_name}' expected dict, got {type(value).__name__}")
        args = get_args(expected_type)
        if len(args) == 2 and all(isinstance(a, type) for a in args):
            key_type, value_type = args
            for k, v in value.items():
                if not isinstance(k, key_type) or not isinstance(v, value_type):
                    raise TypeError(
                        f"Parameter '{param_name}[{k!r}]' expected {key_type.__name__} -> "
                        f"{value_type.__name__}, got {type(k).__name__} -> {type(v).__name__}"
                    )

    elif origin is Union:
        args = get_args(expected_type)
        for arg in args:
            if arg is type(None):
                continue
            try:
                _check_type(value, arg, param_name)
                return
            except TypeError:
                continue
        type_names = [_type_name(a) for a in args if a is not type(None)]
        raise TypeError(
            f"Parameter '{param_name}' expected one of {type_names}, got {type(value).__name__}"
        )


def typecheck(func):
    """Decorator that checks function argument types against type hints.

    Returns the function unchanged unless type checking is enabled.
    """
    if not TYPECHECK_ENABLED:
        return func

    sig = inspect.signature(func)

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            hints = get_type_hints(func)
        except Exception:
            # Unresolvable forward references: skip checking
            return func(*args, **kwargs)

        bound = sig.bind(*args, **kwargs)
        for param_name, value in bound.arguments.items():
            if param_name in hints:
                _check_type(value, hints[param_name], param_name)

        return func(*args, **kwargs)

    return wrapper


def typecheck_methods(cls):
    """Class decorator that applies typecheck to __init__ and all public methods."""
    if not TYPECHECK_ENABLED:
        return cls

    for name, method in list(vars(cls).items()):
        if not inspect.isfunction(method):
            continue
        if name.startswith('_') and name != '__init__':
            continue
        setattr(cls, name, typecheck(method))

    return cls
