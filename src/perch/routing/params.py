"""Path parameter conversion.

Route parameters are declared through handler annotations. Only
``str``, ``int`` and ``float`` are supported.
"""

import re

from perch.errors import RouteParameterError

# type name -> (full-match regex, python type)
CONVERTERS: dict[str, tuple[re.Pattern[str], type]] = {
    "str": (re.compile(r"[^/]+"), str),
    "int": (re.compile(r"[+-]?\d+"), int),
    "float": (re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)"), float),
}

TYPE_NAMES: dict[type, str] = {target: name for name, (_, target) in CONVERTERS.items()}


def convert_param(name: str, value: str, param_type: str) -> str | int | float:
    """Convert a captured path segment to its declared type.

    Raises ``RouteParameterError`` (an HTTP 400) when the segment does
    not parse. Raises ``KeyError`` if *param_type* is not a converter.
    """
    pattern, target_type = CONVERTERS[param_type]
    if not pattern.fullmatch(value):
        raise RouteParameterError(name, value, param_type)
    return target_type(value)


def convert_params(
    raw_params: dict[str, str],
    param_types: dict[str, str],
) -> dict[str, str | int | float]:
    """Convert every captured parameter, in binding order."""
    return {
        name: convert_param(name, value, param_types.get(name, "str"))
        for name, value in raw_params.items()
    }
