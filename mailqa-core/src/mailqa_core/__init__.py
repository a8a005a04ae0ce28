"""Core types and algorithms for the mailqa email-template QA pipeline.

This package holds everything the other mailqa packages share: the error
hierarchy, value types, collaborator protocols, HTML inspection helpers,
and the pixel-level image differ.
"""

from mailqa_core.errors import (
    AIResponseParseError,
    ArtifactError,
    CompilationError,
    ConfigError,
    MailqaError,
    ProviderError,
    ProviderErrorKind,
    RenderError,
    RunBusyError,
)
from mailqa_core.imagediff import DiffOptions, ImageDiffResult, diff_files, diff_images

__all__ = [
    # Errors
    "AIResponseParseError",
    "ArtifactError",
    "CompilationError",
    "ConfigError",
    "MailqaError",
    "ProviderError",
    "ProviderErrorKind",
    "RenderError",
    "RunBusyError",
    # Image diff
    "DiffOptions",
    "ImageDiffResult",
    "diff_files",
    "diff_images",
]
