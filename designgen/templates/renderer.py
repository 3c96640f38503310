"""Jinja2-backed renderer for designgen section bodies.

Section bodies are Jinja2 templates with a few additions:

* ``{{ name || 'literal' }}`` falls back to the literal when ``name`` is missing,
  blank or ``NOT_FOUND``; it is rewritten to the ``fallback`` filter before parsing
* ``NOT_FOUND`` and blank strings are falsy inside ``{% if %}`` blocks
* filters ``join``, ``length``, ``lowercase``, ``uppercase``, ``capitalize``,
  ``replace``, ``default``, ``confidence``, ``multiply`` and ``first`` accept any
  context value and degrade instead of raising

Rendering never raises. Unknown references render as ``[unresolved: name]`` and
syntax errors as ``[template error: ...]``; both are recorded as warnings.
"""

from __future__ import annotations

import math
import re
from contextvars import ContextVar
from functools import lru_cache, wraps
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping, Optional

from jinja2 import ChainableUndefined, Environment, Template, TemplateError, TemplateSyntaxError, Undefined

from ..logging import get_logger
from ..models import GenerationWarning, Value, WarningKind, coerce_value, is_missing

if TYPE_CHECKING:  # pragma: no cover - typing aid
    from .store import CompiledTemplate

logger = get_logger("templates.renderer")

_OUTPUT_TAG = re.compile(r"\{\{.*?\}\}", re.DOTALL)
_FALLBACK_OPERATOR = re.compile(r"\|\|\s*('[^']*'|\"[^\"]*\")")

_active_warnings: ContextVar[Optional[List[GenerationWarning]]] = ContextVar(
    "designgen_render_warnings", default=None
)


def _record(kind: WarningKind, message: str) -> None:
    warnings = _active_warnings.get()
    if warnings is None:
        return
    warning = GenerationWarning(kind, message)
    if warning not in warnings:
        warnings.append(warning)


class UnresolvedReference(ChainableUndefined):
    """Undefined value that renders a diagnostic instead of an empty string."""

    __slots__ = ()

    def __str__(self) -> str:
        name = self._undefined_name or "expression"
        _record(WarningKind.UNRESOLVED_VARIABLE, f"'{name}' is not defined")
        return f"[unresolved: {name}]"


class MissingText(str):
    """A ``NOT_FOUND`` or blank string: renders as itself, tests false."""

    def __bool__(self) -> bool:
        return False


def _prepare(value: Any) -> Any:
    value = coerce_value(value)
    if isinstance(value, str) and value and is_missing(value):
        return MissingText(value)
    return value


# ----------------------------------------------------------------------
# Filters


def _format(value: Any) -> str:
    if isinstance(value, Undefined):
        return str(value)
    if isinstance(value, (tuple, list)):
        return ", ".join(str(item) for item in value)
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _to_number(value: Value) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip().rstrip("%"))
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _map_text(value: Value, transform: Callable[[str], str]) -> Value:
    if isinstance(value, tuple):
        return tuple(transform(item) for item in value)
    return transform(_format(value))


def _context_filter(func: Callable[..., Value], *, on_missing: bool = False) -> Callable[..., Any]:
    """Adapt ``func`` to Jinja2: coerce input, skip unknowns and never raise."""

    @wraps(func)
    def wrapper(value: Any, *args: Any) -> Any:
        if isinstance(value, Undefined):
            return value
        value = coerce_value(value)
        if is_missing(value) and not on_missing:
            return value
        try:
            return func(value, *args)
        except (TypeError, ValueError, OverflowError) as exc:
            _record(WarningKind.TEMPLATE_SYNTAX, f"filter '{func.__name__}' could not be applied: {exc}")
            return value

    return wrapper


def join(value: Value, separator: Any = ", ") -> Value:
    items = value if isinstance(value, tuple) else (_format(value),)
    return str(separator).join(items)


def length(value: Value) -> Value:
    if is_missing(value):
        return 0
    if isinstance(value, (tuple, str)):
        return len(value)
    return 1


def lowercase(value: Value) -> Value:
    return _map_text(value, str.lower)


def uppercase(value: Value) -> Value:
    return _map_text(value, str.upper)


def capitalize(value: Value) -> Value:
    return _map_text(value, lambda text: text[:1].upper() + text[1:])


def replace(value: Value, *args: Any) -> Value:
    if len(args) >= 2:
        old, new = str(args[0]), str(args[1])
    else:
        old, new = " ", str(args[0]) if args else "-"
    return _map_text(value, lambda text: text.replace(old, new))


def confidence(value: Value) -> Value:
    number = _to_number(value)
    if number is None:
        return value
    return f"{round(number * 100)}%"


def multiply(value: Value, factor: Any = 100) -> Value:
    number = _to_number(value)
    multiplier = _to_number(factor)
    if number is None or multiplier is None:
        return value
    product = number * multiplier
    return int(round(product)) if math.isfinite(product) else value


def first(value: Value) -> Value:
    if isinstance(value, tuple):
        return value[0] if value else ()
    return value


def fallback(value: Any, literal: Any = "") -> Any:
    """Return ``literal`` when ``value`` is unknown, blank, empty or ``NOT_FOUND``."""
    if isinstance(value, Undefined) or is_missing(coerce_value(value)):
        return literal
    return value


FILTERS: Dict[str, Callable[..., Any]] = {
    "join": _context_filter(join),
    "length": _context_filter(length, on_missing=True),
    "lowercase": _context_filter(lowercase),
    "uppercase": _context_filter(uppercase),
    "capitalize": _context_filter(capitalize),
    "replace": _context_filter(replace),
    "default": fallback,
    "fallback": fallback,
    "confidence": _context_filter(confidence),
    "multiply": _context_filter(multiply),
    "first": _context_filter(first),
}


def _create_env() -> Environment:
    env = Environment(
        autoescape=False,
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
        undefined=UnresolvedReference,
        finalize=_format,
    )
    env.filters.update(FILTERS)
    return env


_ENV = _create_env()


# ----------------------------------------------------------------------
# Compilation and rendering


def rewrite_fallbacks(source: str) -> str:
    """Turn ``{{ x || 'lit' }}`` into ``{{ x | fallback('lit') }}``."""
    return _OUTPUT_TAG.sub(lambda match: _FALLBACK_OPERATOR.sub(r"| fallback(\1)", match.group(0)), source)


@lru_cache(maxsize=512)
def compile_template(source: str) -> Template:
    """Compile ``source``; raises :class:`jinja2.TemplateSyntaxError`."""
    return _ENV.from_string(rewrite_fallbacks(source))


def render_text(
    source: str,
    context: Mapping[str, Any],
    *,
    warnings: Optional[List[GenerationWarning]] = None,
) -> str:
    """Render a single template body against a flat rendering context."""
    token = _active_warnings.set(warnings)
    try:
        try:
            template = compile_template(source)
        except TemplateSyntaxError as exc:
            message = exc.message or "invalid template"
            logger.warning("Template syntax error: %s", message)
            _record(WarningKind.TEMPLATE_SYNTAX, message)
            return f"[template error: {message}]"
        try:
            return template.render({key: _prepare(value) for key, value in context.items()})
        except (TemplateError, ArithmeticError, TypeError, ValueError) as exc:
            logger.warning("Template evaluation failed: %s", exc)
            _record(WarningKind.TEMPLATE_SYNTAX, str(exc))
            return f"[template error: {exc}]"
    finally:
        _active_warnings.reset(token)


class TemplateRenderer:
    """Renders compiled templates section by section."""

    SECTION_SEPARATOR = "\n\n"

    def render(
        self,
        compiled: "CompiledTemplate",
        context: Mapping[str, Any],
        *,
        warnings: Optional[List[GenerationWarning]] = None,
    ) -> str:
        rendered: List[str] = []
        for section in compiled.sections:
            text = render_text(section.body, context, warnings=warnings).strip("\n").rstrip()
            if text.strip():
                rendered.append(text)
        return self.SECTION_SEPARATOR.join(rendered)

    def render_text(
        self,
        source: str,
        context: Mapping[str, Any],
        *,
        warnings: Optional[List[GenerationWarning]] = None,
    ) -> str:
        return render_text(source, context, warnings=warnings)


__all__ = [
    "FILTERS",
    "MissingText",
    "TemplateRenderer",
    "TemplateSyntaxError",
    "UnresolvedReference",
    "compile_template",
    "render_text",
    "rewrite_fallbacks",
]
