"""Helpers for GDB value strings: splitting, counting, container detection.

Values arrive as C-like text ("{1, 2, 3}", "std::vector of length 3, capacity 4
= {1, 2, 3}", "0x4005d0 \"hi, there\""). The scanner here only has to find the
top-level elements of a brace-delimited value without splitting inside quotes
or nested braces.
"""

from __future__ import annotations

import re

from cp_debugger.bridge.types import Variable, VariableScope
from cp_debugger.constants import CONTAINER_TYPES, MAX_CHILDREN

_ARRAY_LEN_RE = re.compile(r"\[(\d+)\]")
_SIZE_RE = re.compile(r"size=(\d+)")
# libstdc++ pretty-printer headers
_LENGTH_RE = re.compile(r"(?:of length|with) (\d+)(?: elements)?")
_OPEN = "{(["
_CLOSE = "})]"


def split_top_level(content: str, sep: str = ",") -> list[str]:
    """Split on sep where it is not nested in brackets or inside quotes."""
    out: list[str] = []
    buf: list[str] = []
    depth = 0
    quote: str | None = None
    esc = False

    for ch in content:
        if quote is not None:
            buf.append(ch)
            if esc:
                esc = False
            elif ch == "\\":
                esc = True
            elif ch == quote:
                quote = None
            continue

        if ch in ('"', "'"):
            quote = ch
            buf.append(ch)
            continue

        if ch in _OPEN:
            depth += 1
        elif ch in _CLOSE:
            depth = max(0, depth - 1)

        if ch == sep and depth == 0:
            out.append("".join(buf).strip())
            buf = []
        else:
            buf.append(ch)

    tail = "".join(buf).strip()
    if tail:
        out.append(tail)
    return out


def brace_body(value: str) -> str | None:
    """Return the text inside the outermost {...} of a value, if it has one.

    Accepts bare "{...}" and pretty-printer output of the form "<header> = {...}".
    """
    value = value.strip()
    if not value.endswith("}"):
        return None
    if value.startswith("{"):
        return value[1:-1]
    idx = value.find(" = {")
    if idx >= 0:
        return value[idx + 4 : -1]
    return None


def split_elements(value: str) -> list[str] | None:
    """Top-level elements of a brace-delimited value, or None if it isn't one."""
    body = brace_body(value)
    if body is None:
        return None
    return split_top_level(body)


def is_container_type(type_name: str) -> bool:
    return any(c in type_name for c in CONTAINER_TYPES)


def is_array_value(type_name: str, value: str) -> bool:
    return (
        "[" in type_name
        or "*" in type_name
        or (value.strip().startswith("{") and value.strip().endswith("}"))
    )


def element_count(type_name: str, value: str) -> int | None:
    """Best guess at how many elements a value holds.

    Order of preference: [N] in the type, a size token in the value, the number
    of top-level elements of a brace-delimited value. None when unknown.
    """
    match = _ARRAY_LEN_RE.search(type_name)
    if match:
        return int(match.group(1))

    match = _SIZE_RE.search(value) or _LENGTH_RE.search(value)
    if match:
        return int(match.group(1))

    elements = split_elements(value)
    if elements is not None:
        return len(elements)
    return None


def _first_template_arg(type_name: str) -> str | None:
    start = type_name.find("<")
    if start < 0:
        return None
    depth = 0
    for i in range(start + 1, len(type_name)):
        ch = type_name[i]
        if ch == "<":
            depth += 1
        elif ch == ">":
            if depth == 0:
                return type_name[start + 1 : i].strip()
            depth -= 1
        elif ch == "," and depth == 0:
            return type_name[start + 1 : i].strip()
    return None


def element_type(type_name: str) -> str:
    """Infer the element type of a container, array or pointer type."""
    arg = _first_template_arg(type_name)
    if arg:
        return arg
    if "[" in type_name:
        return _ARRAY_LEN_RE.sub("", type_name).replace("[]", "").strip()
    if "*" in type_name:
        return type_name.replace("*", "", 1).strip()
    return "unknown"


def variable_scope(name: str, type_name: str) -> VariableScope:
    """Rough local/global split: qualified names and static types are global."""
    if name.startswith("::") or "static" in type_name:
        return VariableScope.GLOBAL
    return VariableScope.LOCAL


def build_children(
    value: str, type_name: str, max_children: int = MAX_CHILDREN
) -> list[Variable]:
    """One level of indexed children from a brace-delimited value.

    Returns at most max_children elements plus a placeholder trailer naming how
    many were left out. Non-brace values give an empty list.
    """
    elements = split_elements(value)
    if not elements:
        return []

    child_type = element_type(type_name)
    children = [
        Variable(
            name=f"[{i}]",
            value=element,
            type=child_type,
            scope=VariableScope.ELEMENT,
        )
        for i, element in enumerate(elements[:max_children])
    ]
    if len(elements) > max_children:
        children.append(
            Variable(
                name="...",
                value=f"{len(elements) - max_children} more elements",
                scope=VariableScope.ELEMENT,
                placeholder=True,
            )
        )
    return children


def make_variable(
    name: str,
    value: str,
    type_name: str = "",
    scope: VariableScope | None = None,
    max_children: int = MAX_CHILDREN,
) -> Variable:
    """Build a Variable with container/array flags and eager children."""
    if scope is None:
        scope = variable_scope(name, type_name)
    is_container = is_container_type(type_name)
    is_array = is_array_value(type_name, value)
    children = None
    if is_container or is_array:
        children = build_children(value, type_name, max_children)
    return Variable(
        name=name,
        value=value,
        type=type_name,
        scope=scope,
        children=children,
        is_container=is_container,
        is_array=is_array,
        element_count=element_count(type_name, value),
    )
