"""Path parameter patterns.

Built-in converters for route path segments like ``{port:int}``. The
pattern decides whether a segment matches; handlers receive the captured
string, converted to their parameter annotation when they declare one.
"""

# (regex_pattern, python_type) for each supported converter
CONVERTERS: dict[str, tuple[str, type]] = {
    "str": (r"[^/]+", str),
    "int": (r"\d+", int),
    "path": (r".+", str),
}
