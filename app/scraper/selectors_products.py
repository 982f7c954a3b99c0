from __future__ import annotations

"""Ordered selector candidates used to read product pages."""

from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class ExtractionRules:
    """Selector hints for product detail pages.

    Every tuple is ordered: the first candidate that matches wins. The
    product selectors are only used to decide when the page has rendered
    enough to be read; a page where none of them becomes visible is treated
    as a CAPTCHA wall, a dead link or a redesign.
    """

    ready_selector: str = "body"
    product_selectors: Tuple[str, ...] = (
        'h1[automation-id="productName"]',
        ".product-title",
        "h1",
    )
    name_selectors: Tuple[str, ...] = (
        'h1[automation-id="productName"]',
        ".product-title",
        "h1",
    )
    out_of_stock_selectors: Tuple[str, ...] = (
        '[automation-id="outOfStockMessage"]',
        ".out-of-stock-msg",
        ".oos-overlay",
    )
    image_selectors: Tuple[str, ...] = (
        'img[automation-id="productImage"]',
        'meta[property="og:image"]',
        ".product-image img",
    )
    image_attributes: Tuple[str, ...] = ("src", "content", "data-src")

    @property
    def product_locator(self) -> str:
        """Single CSS selector list matching any product-identifying element."""

        return ", ".join(self.product_selectors)


DEFAULT_RULES = ExtractionRules()

__all__ = ["ExtractionRules", "DEFAULT_RULES"]
