"""Product kind registry.

The registry maps each product type tag to the collection holding that
kind and to its stock shape. It is built once at startup and passed to
the stores and to the inventory engine.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from .errors import UnknownProductKindError
from .models import ProductKind


class StockShape(str, Enum):
    SIZED = "sized"  # variations[].sizes[].stock
    DIRECT = "direct"  # variations[].stock


@dataclass(frozen=True)
class KindSpec:
    kind: ProductKind
    collection: str
    shape: StockShape


@dataclass(frozen=True)
class SizedStockLine:
    """An order line against a size-keyed product."""

    collection: str
    product_id: str
    variation_index: int
    size: str
    quantity: int


@dataclass(frozen=True)
class DirectStockLine:
    """An order line against a direct-stock product."""

    collection: str
    product_id: str
    variation_index: int
    quantity: int


StockLine = SizedStockLine | DirectStockLine


class ProductRegistry:
    """Explicit kind -> collection mapping."""

    def __init__(self, specs: Mapping[ProductKind, KindSpec]):
        self._specs = dict(specs)

    @property
    def kinds(self) -> list[ProductKind]:
        return list(self._specs)

    def resolve(self, kind: str | ProductKind) -> KindSpec:
        """
        Look up the registered kind for a product type tag.

        Raises:
            UnknownProductKindError: If the tag is not registered.
        """
        try:
            key = ProductKind(kind)
        except ValueError:
            raise UnknownProductKindError(str(kind))
        spec = self._specs.get(key)
        if spec is None:
            raise UnknownProductKindError(key.value)
        return spec

    def collection_for(self, kind: str | ProductKind) -> str:
        return self.resolve(kind).collection

    def is_sized(self, kind: str | ProductKind) -> bool:
        return self.resolve(kind).shape is StockShape.SIZED

    def stock_line(self, item: Mapping[str, Any]) -> StockLine:
        """
        Turn an order item into the stock line to decrement.

        Raises:
            UnknownProductKindError: If the item's product type is not registered.
        """
        spec = self.resolve(item["product_type"])
        if spec.shape is StockShape.SIZED:
            return SizedStockLine(
                collection=spec.collection,
                product_id=item["product_id"],
                variation_index=item["variation_index"],
                size=item.get("size") or "",
                quantity=item["quantity"],
            )
        return DirectStockLine(
            collection=spec.collection,
            product_id=item["product_id"],
            variation_index=item["variation_index"],
            quantity=item["quantity"],
        )


def build_product_registry() -> ProductRegistry:
    """Build the registry for the four product kinds."""
    return ProductRegistry(
        {
            ProductKind.CLOTH: KindSpec(ProductKind.CLOTH, "cloths", StockShape.SIZED),
            ProductKind.SHOE: KindSpec(ProductKind.SHOE, "shoes", StockShape.SIZED),
            ProductKind.JERSEY: KindSpec(ProductKind.JERSEY, "jerseys", StockShape.SIZED),
            ProductKind.CAP: KindSpec(ProductKind.CAP, "caps", StockShape.DIRECT),
        }
    )
