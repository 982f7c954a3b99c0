"""Records produced by scrape attempts and stored in the products table."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Union


def utc_now() -> datetime:
    """Return the current UTC time truncated to whole seconds."""

    return datetime.now(timezone.utc).replace(microsecond=0)


@dataclass
class Product:
    """Latest known state for one product URL.

    ``price`` is part of the stored schema but is never filled in by the
    extractor, so it always carries its default.
    """

    url: str
    name: str = ""
    in_stock: bool = True
    price: float = 0.0
    image_url: str = ""
    updated_at: datetime = field(default_factory=utc_now)
    id: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["updated_at"] = self.updated_at.isoformat()
        return payload


@dataclass(frozen=True)
class AttemptSuccess:
    url: str
    name: str
    in_stock: bool
    image_url: str = ""

    def to_product(self, *, updated_at: datetime | None = None) -> Product:
        return Product(
            url=self.url,
            name=self.name,
            in_stock=self.in_stock,
            image_url=self.image_url,
            updated_at=updated_at or utc_now(),
        )


@dataclass(frozen=True)
class AttemptFailure:
    url: str
    reason: str
    detail: str = ""


AttemptResult = Union[AttemptSuccess, AttemptFailure]

__all__ = ["Product", "AttemptSuccess", "AttemptFailure", "AttemptResult", "utc_now"]
