"""Collaborator interfaces for mailqa.

Protocols:
    TemplateCompiler: Compile template source to HTML.
    RenderService, RenderSession: Browser rendering.
    TextCompletion: Language-model completions.
"""

from mailqa_core.interfaces.completion import TextCompletion
from mailqa_core.interfaces.compiler import TemplateCompiler
from mailqa_core.interfaces.renderer import RenderService, RenderSession

__all__ = [
    "RenderService",
    "RenderSession",
    "TemplateCompiler",
    "TextCompletion",
]
