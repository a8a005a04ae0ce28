"""Browser renderer interfaces.

The renderer is a scoped resource: a RenderService opens a RenderSession
which must be closed (via ``async with``) even when the run aborts.

Protocols:
    RenderSession: Render HTML to screenshots and visible text.
    RenderService: Open render sessions.
"""

# pylint: disable=unnecessary-ellipsis  # Ellipsis required for Protocol method stubs

from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from pathlib import Path
from typing import Protocol


class RenderSession(Protocol):
    """Protocol for an open browser render surface."""

    async def screenshot(self, html: str, path: Path) -> Path:
        """Render HTML and write a full-page PNG screenshot.

        Rendering waits until the network is idle so screenshots are stable.

        Args:
            html: Document to render.
            path: Destination PNG path.

        Returns:
            The path written.
        """
        ...

    async def visible_text(self, html: str) -> str:
        """Return the visible text of the rendered document body."""
        ...


class RenderService(Protocol):
    """Protocol for a browser engine that hands out render sessions."""

    def session(self) -> AbstractAsyncContextManager[RenderSession]:
        """Open a render session; closing the context releases the browser."""
        ...
