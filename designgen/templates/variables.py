"""Evaluates compiled variable tables into flat rendering contexts."""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Dict, List, Mapping, Optional

from ..models import NOT_FOUND, GenerationWarning, Value, WarningKind, is_missing

if TYPE_CHECKING:  # pragma: no cover - typing aid
    from ..context.builder import ContextObject


@dataclass(frozen=True)
class VariableExpression:
    """``path``, ``'literal'`` or ``path || 'literal'`` from a variable table."""

    path: Optional[str] = None
    literal: Optional[str] = None


def _unquote(text: str) -> Optional[str]:
    if len(text) >= 2 and text[0] == text[-1] and text[0] in ("'", '"'):
        return text[1:-1]
    return None


def parse_variable(expression: str) -> VariableExpression:
    text = str(expression).strip()
    literal = _unquote(text)
    if literal is not None:
        return VariableExpression(literal=literal)
    path, separator, fallback = text.partition("||")
    if separator:
        return VariableExpression(path=path.strip() or None, literal=_unquote(fallback.strip()))
    return VariableExpression(path=text or None)


def build_rendering_context(
    variables: Mapping[str, str],
    context: "ContextObject",
    *,
    warnings: Optional[List[GenerationWarning]] = None,
) -> Mapping[str, Value]:
    """Evaluate every entry of ``variables`` against ``context``.

    Paths the context does not know resolve to ``NOT_FOUND`` and are reported as
    unresolved-variable warnings, so the renderer always sees a defined value.
    """
    resolved: Dict[str, Value] = {}
    for name, raw_expression in variables.items():
        expression = parse_variable(raw_expression)
        value: Optional[Value] = None
        if expression.path:
            value = context.lookup(expression.path)
            if value is None:
                if warnings is not None:
                    warnings.append(
                        GenerationWarning(
                            WarningKind.UNRESOLVED_VARIABLE,
                            f"variable '{name}' references unknown path '{expression.path}'",
                        )
                    )
                value = NOT_FOUND
        if expression.literal is not None and (value is None or is_missing(value)):
            value = expression.literal
        resolved[name] = NOT_FOUND if value is None else value
    return MappingProxyType(resolved)


def referenced_path(expression: str) -> Optional[str]:
    return parse_variable(expression).path


__all__ = [
    "VariableExpression",
    "build_rendering_context",
    "parse_variable",
    "referenced_path",
]
