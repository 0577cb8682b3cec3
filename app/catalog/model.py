from __future__ import annotations
from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True)
class Product:
    """Read view of a catalog entry; the catalog itself is managed elsewhere."""

    id: UUID
    title: str
    price_cents: int
    is_active: bool = True
    instructions: tuple[str, ...] = ()
    total_sold: int = 0
    total_revenue_cents: int = 0
