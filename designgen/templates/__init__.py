"""Template storage, inheritance and rendering."""

from .renderer import TemplateRenderer, TemplateSyntaxError, render_text
from .store import (
    CompiledTemplate,
    DirectoryTemplateLoader,
    MappingTemplateLoader,
    TemplateCycleError,
    TemplateResolutionError,
    TemplateStore,
)
from .variables import build_rendering_context

__all__ = [
    "CompiledTemplate",
    "DirectoryTemplateLoader",
    "MappingTemplateLoader",
    "TemplateCycleError",
    "TemplateRenderer",
    "TemplateResolutionError",
    "TemplateStore",
    "TemplateSyntaxError",
    "build_rendering_context",
    "render_text",
]
