"""Stock aggregation for product documents.

``total_stock`` is never authoritative. It is derived from the leaf
counters (per-size ``stock`` for size-keyed kinds, per-variation
``stock`` for the direct-stock kind) and recomputed before every write
that touches stock.
"""

from typing import Any, Iterable

from .models import Product


def _leaf_value(value: Any) -> int:
    # Missing or null counters count as empty.
    if value is None:
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def variation_stock(variation: dict[str, Any]) -> int:
    """Sum the leaf counters of one variation document."""
    sizes = variation.get("sizes")
    if sizes is not None:
        return sum(_leaf_value(s.get("stock")) for s in sizes if s)
    return _leaf_value(variation.get("stock"))


def compute_total_stock(variations: Iterable[dict[str, Any]] | None, is_active: bool = True) -> int:
    if not is_active:
        return 0
    return sum(variation_stock(v) for v in variations or [] if v)


def recompute_document(doc: dict[str, Any]) -> dict[str, Any]:
    """Set ``total_stock`` on a raw product document in place."""
    doc["total_stock"] = compute_total_stock(doc.get("variations"), doc.get("is_active", True))
    return doc


def recompute_total_stock(product: Product) -> int:
    """Set ``total_stock`` on a Product in place and return it."""
    product.total_stock = compute_total_stock(
        [v.to_dict() for v in product.variations], product.is_active
    )
    return product.total_stock
