"""Path parameter patterns.

Built-in converters for route path segments like ``{id:int}``. Values
stay strings; ``path`` binds the rest of the path as a list of segments.
"""

# Regex pattern for each single-segment converter
CONVERTERS: dict[str, str] = {
    "str": r"[^/]+",
    "int": r"\d+",
    "float": r"\d+(?:\.\d+)?",
}

# Converter name that consumes the remaining segments
WILDCARD = "path"


def is_wildcard(value: object) -> bool:
    """True if a bound route parameter came from a wildcard segment."""
    return isinstance(value, list)
