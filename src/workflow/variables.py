"""Variable scopes and template resolution.

A run threads a :class:`VariableContext` through the step tree. The context is
an immutable chain of frames; containers push a child frame for their nested
steps and never touch the frames they were given.

Two placeholder syntaxes are understood:

- ``{{scope.path}}`` looks a dotted path up in the scope chain, innermost
  frame first. Bracket indices are accepted (``pathResults[0].id``).
- ``{name}`` is the legacy form and only sees named result variables, never
  ``trigger`` or the iterator bindings.

Misses never raise. The placeholder is left in the text and reported.
"""

import json
import re
from typing import Any, Dict, Iterable, List, Mapping, NamedTuple, Optional, Tuple, Union

from src.utils.config import (
    CURRENT_INDEX_SCOPE,
    CURRENT_ITEM_SCOPE,
    RESERVED_SCOPE_NAMES,
    TRIGGER_SCOPE,
)

# {{ path }} first so the legacy branch never sees a double-braced placeholder
TEMPLATE_PATTERN = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}|\{(\w+)\}")

_SEGMENT_PATTERN = re.compile(r"([^\[\]]*)((?:\[\d+\])*)")
_INDEX_PATTERN = re.compile(r"\[(\d+)\]")

_MISSING = object()

PathSegment = Union[str, int]


class VariableContext:
    """Immutable chain of variable frames (outermost first)"""

    __slots__ = ("_frames",)

    def __init__(self, frames: Optional[Iterable[Mapping[str, Any]]] = None):
        frames = tuple(dict(frame) for frame in frames) if frames else ()
        self._frames: Tuple[Dict[str, Any], ...] = frames or ({},)

    @classmethod
    def for_trigger(cls, trigger: Optional[Mapping[str, Any]] = None,
                    **variables: Any) -> "VariableContext":
        """Root context of a run: the trigger payload plus any seed variables"""
        frame = dict(variables)
        frame[TRIGGER_SCOPE] = dict(trigger or {})
        return cls([frame])

    @property
    def frames(self) -> Tuple[Mapping[str, Any], ...]:
        return self._frames

    @property
    def depth(self) -> int:
        return len(self._frames)

    def child(self, **bindings: Any) -> "VariableContext":
        """New context with an extra innermost frame"""
        return VariableContext(self._frames + (bindings,))

    def with_binding(self, name: str, value: Any) -> "VariableContext":
        """New context with ``name`` bound in the innermost frame"""
        innermost = dict(self._frames[-1])
        innermost[name] = value
        return VariableContext(self._frames[:-1] + (innermost,))

    def get(self, name: str, default: Any = None) -> Any:
        value = self._find(name)
        return default if value is _MISSING else value

    def _find(self, name: str) -> Any:
        for frame in reversed(self._frames):
            if name in frame:
                return frame[name]
        return _MISSING

    def __contains__(self, name: str) -> bool:
        return self._find(name) is not _MISSING

    def flatten(self) -> Dict[str, Any]:
        """All visible bindings, inner frames shadowing outer ones"""
        merged: Dict[str, Any] = {}
        for frame in self._frames:
            merged.update(frame)
        return merged

    def result_variables(self) -> Dict[str, Any]:
        """Visible bindings minus the reserved scopes (what ``{name}`` can see)"""
        return {k: v for k, v in self.flatten().items() if k not in RESERVED_SCOPE_NAMES}

    @property
    def current_item(self) -> Any:
        return self.get(CURRENT_ITEM_SCOPE)

    @property
    def current_index(self) -> Optional[int]:
        return self.get(CURRENT_INDEX_SCOPE)

    def __repr__(self) -> str:
        names = [sorted(frame) for frame in self._frames]
        return f"VariableContext(frames={names})"


class RenderResult(NamedTuple):
    text: str
    unresolved: List[str]


def parse_path(path: str) -> List[PathSegment]:
    """Split ``a.b[0].c`` into ``['a', 'b', 0, 'c']``. Malformed paths give []."""
    if not path or not path.strip():
        return []

    segments: List[PathSegment] = []
    for part in path.strip().split("."):
        match = _SEGMENT_PATTERN.fullmatch(part)
        if not match or (not match.group(1) and not match.group(2)):
            return []
        name, indexes = match.groups()
        if name:
            segments.append(name)
        segments.extend(int(index) for index in _INDEX_PATTERN.findall(indexes))
    return segments


def _step_into(value: Any, segment: PathSegment) -> Any:
    if isinstance(value, (list, tuple)):
        if isinstance(segment, str):
            if not segment.isdigit():
                return _MISSING
            segment = int(segment)
        return value[segment] if 0 <= segment < len(value) else _MISSING

    if isinstance(value, Mapping):
        key = segment if isinstance(segment, str) else str(segment)
        return value.get(key, _MISSING)

    return _MISSING


def lookup_in(value: Any, path: Union[str, List[PathSegment]]) -> Any:
    """Walk ``path`` inside an already resolved value. Misses give None."""
    segments = parse_path(path) if isinstance(path, str) else path
    for segment in segments:
        value = _step_into(value, segment)
        if value is _MISSING or value is None:
            return None
    return value


def lookup(path: str, context: VariableContext) -> Any:
    """Raw value at ``path``, or None when any segment is missing"""
    segments = parse_path(path)
    if not segments or not isinstance(segments[0], str):
        return None

    root = context._find(segments[0])
    if root is _MISSING:
        return None
    return lookup_in(root, segments[1:])


def stringify(value: Any) -> str:
    """Text form of a resolved value as it appears in rendered templates"""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, default=str)
    return str(value)


def resolve(path: str, context: VariableContext) -> Optional[str]:
    """Stringified value at ``path``, or None on a miss"""
    value = lookup(path, context)
    return None if value is None else stringify(value)


def resolve_legacy(name: str, context: VariableContext) -> Optional[str]:
    """``{name}`` lookup: named result variables only"""
    if name in RESERVED_SCOPE_NAMES:
        return None
    value = context.get(name)
    return None if value is None else stringify(value)


def render(template: str, context: VariableContext) -> RenderResult:
    """Substitute every placeholder in one pass"""
    if not template:
        return RenderResult(template or "", [])

    unresolved: List[str] = []

    def replacer(match: "re.Match[str]") -> str:
        path, legacy_name = match.groups()
        if path is not None:
            value = resolve(path, context)
        else:
            value = resolve_legacy(legacy_name, context)

        if value is None:
            unresolved.append(path if path is not None else legacy_name)
            return match.group(0)
        return value

    return RenderResult(TEMPLATE_PATTERN.sub(replacer, template), unresolved)


def render_text(template: str, context: VariableContext) -> str:
    return render(template, context).text


def resolve_value(value: Any, context: VariableContext,
                  unresolved: Optional[List[str]] = None) -> Any:
    """Render every string inside nested dicts and lists.

    Misses are appended to ``unresolved`` when a list is given.
    """
    if isinstance(value, str):
        result = render(value, context)
        if unresolved is not None:
            unresolved.extend(result.unresolved)
        return result.text
    if isinstance(value, Mapping):
        return {key: resolve_value(item, context, unresolved) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [resolve_value(item, context, unresolved) for item in value]
    return value


def strip_placeholder(reference: str) -> str:
    """``{{a.b}}`` / ``{a}`` / ``a.b`` -> ``a.b``"""
    reference = (reference or "").strip()
    match = TEMPLATE_PATTERN.fullmatch(reference)
    if match:
        return match.group(1) or match.group(2)
    return reference


def find_placeholders(text: str) -> List[str]:
    """Paths and legacy names referenced by ``text``, in order, without duplicates"""
    if not text:
        return []
    names: List[str] = []
    for path, legacy_name in TEMPLATE_PATTERN.findall(text):
        name = path or legacy_name
        if name not in names:
            names.append(name)
    return names
