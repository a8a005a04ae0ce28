"""Playwright browser renderer.

One Chromium instance is launched per run and reused for every screenshot;
the session context manager closes it even when the run aborts.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page, async_playwright

from mailqa_core.errors import RenderError

from mailqa_runner.config import RenderSettings

logger = logging.getLogger(__name__)


class PlaywrightSession:
    """RenderSession over a single Playwright page.

    Args:
        page: Open page reused for every render.
        full_page: Capture the full scrollable page.
    """

    def __init__(self, page: Page, full_page: bool = True) -> None:
        self._page = page
        self._full_page = full_page

    async def _load(self, html: str) -> None:
        await self._page.set_content(html, wait_until="networkidle")

    async def screenshot(self, html: str, path: Path) -> Path:
        """Render HTML and write a PNG screenshot.

        Raises:
            RenderError: If the page cannot be rendered.
        """
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            await self._load(html)
            await self._page.screenshot(path=str(path), full_page=self._full_page)
        except PlaywrightError as exc:
            raise RenderError(f"Screenshot failed for {path.name}: {exc}") from exc
        return path

    async def visible_text(self, html: str) -> str:
        """Return the rendered body text.

        Raises:
            RenderError: If the page cannot be rendered.
        """
        try:
            await self._load(html)
            return await self._page.inner_text("body")
        except PlaywrightError as exc:
            raise RenderError(f"Text extraction failed: {exc}") from exc


class PlaywrightRenderer:
    """RenderService launching headless Chromium.

    Args:
        settings: Viewport and capture settings.
    """

    def __init__(self, settings: RenderSettings | None = None) -> None:
        self._settings = settings or RenderSettings()

    @asynccontextmanager
    async def session(self) -> AsyncIterator[PlaywrightSession]:
        """Launch a browser for the duration of the context."""
        async with async_playwright() as pw:
            try:
                browser = await pw.chromium.launch(headless=True)
            except PlaywrightError as exc:
                raise RenderError(f"Cannot launch Chromium: {exc}") from exc
            logger.info("Launched Chromium for rendering")
            try:
                page = await browser.new_page(
                    viewport={
                        "width": self._settings.viewport_width,
                        "height": self._settings.viewport_height,
                    }
                )
                yield PlaywrightSession(page, full_page=self._settings.full_page)
            finally:
                await browser.close()
                logger.info("Closed Chromium")
