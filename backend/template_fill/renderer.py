"""
HTML -> PDF rendering through a headless browser.

The renderer is injected into the fill service so tests and alternative
engines can replace it. The Playwright implementation bounds the number of
live browsers with a semaphore; a request that cannot get a slot in time, or
whose page does not finish in time, fails with a retryable RenderError.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Optional

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from .deadline import Deadline
from .errors import RenderError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RenderOptions:
    format: str = "A4"
    print_background: bool = True
    margin: Dict[str, str] = field(
        default_factory=lambda: {"top": "20mm", "right": "15mm", "bottom": "20mm", "left": "15mm"}
    )


class BaseRenderer(ABC):
    """Turns a complete HTML document into PDF bytes."""

    @abstractmethod
    def render_html_to_pdf(
        self,
        html: str,
        options: Optional[RenderOptions] = None,
        deadline: Optional[Deadline] = None,
    ) -> bytes:
        """Render ``html``.

        Raises:
            RenderError: when the engine crashes or times out.
        """
        ...


class PlaywrightRenderer(BaseRenderer):
    """Headless Chromium via Playwright, one browser per render."""

    def __init__(
        self,
        max_concurrent: int = 2,
        queue_timeout_ms: int = 30000,
        render_timeout_ms: int = 60000,
        executable_path: Optional[str] = None,
    ):
        self.max_concurrent = max_concurrent
        self.queue_timeout_ms = queue_timeout_ms
        self.render_timeout_ms = render_timeout_ms
        self.executable_path = executable_path
        self._slots = threading.BoundedSemaphore(max_concurrent)

    def _budget(self, limit_ms: int, deadline: Optional[Deadline]) -> int:
        if deadline is None:
            return limit_ms
        return min(limit_ms, deadline.remaining_ms())

    def render_html_to_pdf(
        self,
        html: str,
        options: Optional[RenderOptions] = None,
        deadline: Optional[Deadline] = None,
    ) -> bytes:
        options = options or RenderOptions()
        if deadline is not None:
            deadline.check("render")

        queue_timeout_ms = self._budget(self.queue_timeout_ms, deadline)
        if not self._slots.acquire(timeout=queue_timeout_ms / 1000.0):
            raise RenderError(
                "Render queue is full; retry shortly.",
                details=f"no renderer slot within {queue_timeout_ms} ms (max {self.max_concurrent})",
                retryable=True,
            )

        timeout_ms = max(1, self._budget(self.render_timeout_ms, deadline))
        try:
            return self._render(html, options, timeout_ms)
        except PlaywrightTimeoutError as exc:
            logger.warning("Render timed out after %d ms", timeout_ms)
            raise RenderError(
                "Le rendu PDF a dépassé le délai imparti",
                details=f"render_timeout: {exc}",
                retryable=True,
            ) from exc
        except PlaywrightError as exc:
            logger.error("Render failed: %s", exc, exc_info=True)
            raise RenderError("Erreur lors de la génération du PDF", details=str(exc)) from exc
        finally:
            self._slots.release()

    def _render(self, html: str, options: RenderOptions, timeout_ms: int) -> bytes:
        with sync_playwright() as p:
            browser = p.chromium.launch(
                headless=True,
                executable_path=self.executable_path,
                args=["--no-sandbox", "--disable-setuid-sandbox"],
                timeout=timeout_ms,
            )
            try:
                page = browser.new_page()
                page.set_default_timeout(timeout_ms)
                page.set_content(html, wait_until="networkidle", timeout=timeout_ms)
                return page.pdf(
                    format=options.format,
                    print_background=options.print_background,
                    margin=options.margin,
                )
            finally:
                browser.close()
