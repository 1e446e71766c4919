"""Product storage for storefront."""

import logging
from typing import Any

from .catalog import KindSpec, ProductRegistry, StockShape
from .database import Database
from .errors import InvalidProductError, ProductNotFoundError, VariationNotFoundError
from .models import Product, ProductKind, Variation, _generate_id, _utc_now
from .stock import recompute_document, recompute_total_stock

logger = logging.getLogger(__name__)

MAX_VARIATIONS = 4


def validate_variations(spec: KindSpec, variations: list[Variation]) -> None:
    """
    Check variations against the catalog rules for a product kind.

    Raises:
        InvalidProductError: If any rule is broken.
    """
    if not 1 <= len(variations) <= MAX_VARIATIONS:
        raise InvalidProductError(
            f"a product needs between 1 and {MAX_VARIATIONS} variations, got {len(variations)}"
        )

    seen: set[int] = set()
    for variation in variations:
        idx = variation.variation_index
        if idx < 1:
            raise InvalidProductError(f"variation_index must be 1 or more, got {idx}")
        if idx in seen:
            raise InvalidProductError(f"duplicate variation_index {idx}")
        seen.add(idx)

        if spec.shape is StockShape.SIZED:
            if variation.sizes is None or variation.stock is not None:
                raise InvalidProductError(
                    f"{spec.kind.value} variation {idx} must list sizes, not a direct stock count"
                )
            labels: set[str] = set()
            for entry in variation.sizes:
                if not entry.size:
                    raise InvalidProductError(f"variation {idx} has an empty size label")
                if entry.size in labels:
                    raise InvalidProductError(f"variation {idx} lists size '{entry.size}' twice")
                labels.add(entry.size)
                if entry.stock < 0:
                    raise InvalidProductError(
                        f"variation {idx} size '{entry.size}' has negative stock"
                    )
        else:
            if variation.stock is None or variation.sizes is not None:
                raise InvalidProductError(
                    f"{spec.kind.value} variation {idx} must carry a stock count, not sizes"
                )
            if variation.stock < 0:
                raise InvalidProductError(f"variation {idx} has negative stock")


class ProductStore:
    """Manages catalog products across the per-kind collections."""

    def __init__(self, db: Database, registry: ProductRegistry):
        self.db = db
        self.registry = registry

    def create_product(
        self,
        kind: str | ProductKind,
        name: str,
        price: float,
        variations: list[Variation],
        description: str | None = None,
        is_active: bool = True,
    ) -> Product:
        """
        Create a product.

        Raises:
            UnknownProductKindError: If kind is not registered.
            InvalidProductError: If the product breaks the catalog rules.
        """
        spec = self.registry.resolve(kind)
        if not name or not name.strip():
            raise InvalidProductError("name is required")
        if price < 0:
            raise InvalidProductError("price must not be negative")
        validate_variations(spec, variations)

        now = _utc_now()
        product = Product(
            id=_generate_id(),
            kind=spec.kind.value,
            name=name.strip(),
            price=price,
            description=description,
            variations=sorted(variations, key=lambda v: v.variation_index),
            is_active=is_active,
            created_at=now,
            updated_at=now,
        )
        recompute_total_stock(product)
        self.db.insert_one(spec.collection, product.to_dict())
        logger.info("Created %s product %s (total_stock=%d)", spec.kind.value, product.id, product.total_stock)
        return product

    def get_product(self, kind: str | ProductKind, product_id: str) -> Product:
        """
        Get a product by kind and ID.

        Raises:
            ProductNotFoundError: If product doesn't exist.
        """
        spec = self.registry.resolve(kind)
        doc = self.db.get(spec.collection, product_id)
        if doc is None:
            raise ProductNotFoundError(product_id, spec.kind.value)
        return Product.from_dict(doc)

    def find_product(self, product_id: str) -> Product:
        """
        Get a product by ID without knowing its kind.

        Raises:
            ProductNotFoundError: If no collection holds the ID.
        """
        with self.db.transaction() as session:
            for kind in self.registry.kinds:
                doc = session.get(self.registry.collection_for(kind), product_id)
                if doc is not None:
                    return Product.from_dict(doc)
        raise ProductNotFoundError(product_id)

    def list_products(
        self,
        kind: str | ProductKind | None = None,
        include_inactive: bool = False,
    ) -> list[Product]:
        """List products, newest first."""
        kinds = [self.registry.resolve(kind).kind] if kind else self.registry.kinds
        products: list[Product] = []
        with self.db.transaction() as session:
            for k in kinds:
                for doc in session.find(self.registry.collection_for(k)):
                    if include_inactive or doc.get("is_active", True):
                        products.append(Product.from_dict(doc))
        products.sort(key=lambda p: p.created_at, reverse=True)
        return products

    def _update(self, kind: str | ProductKind, product_id: str, apply: Any) -> Product:
        """Apply a change to one product document, then recompute its total."""
        spec = self.registry.resolve(kind)

        def mutation(doc: dict[str, Any]) -> bool:
            apply(doc)
            recompute_document(doc)
            doc["updated_at"] = _utc_now()
            return True

        with self.db.transaction() as session:
            if session.update_one(spec.collection, product_id, mutation) == 0:
                raise ProductNotFoundError(product_id, spec.kind.value)
            return Product.from_dict(session.get(spec.collection, product_id))

    def update_product(
        self,
        kind: str | ProductKind,
        product_id: str,
        name: str | None = None,
        price: float | None = None,
        description: str | None = None,
        variations: list[Variation] | None = None,
    ) -> Product:
        """
        Update product fields. ``variations`` replaces the full list.

        Raises:
            ProductNotFoundError: If product doesn't exist.
            InvalidProductError: If the update breaks the catalog rules.
        """
        spec = self.registry.resolve(kind)
        if variations is not None:
            validate_variations(spec, variations)
        if price is not None and price < 0:
            raise InvalidProductError("price must not be negative")
        if name is not None and not name.strip():
            raise InvalidProductError("name must not be empty")

        def apply(doc: dict[str, Any]) -> None:
            if name is not None:
                doc["name"] = name.strip()
            if price is not None:
                doc["price"] = price
            if description is not None:
                doc["description"] = description
            if variations is not None:
                ordered = sorted(variations, key=lambda v: v.variation_index)
                doc["variations"] = [v.to_dict() for v in ordered]

        return self._update(spec.kind, product_id, apply)

    def quick_restock(
        self,
        kind: str | ProductKind,
        product_id: str,
        variation_index: int,
        stock: int,
        size: str | None = None,
    ) -> Product:
        """
        Set a single leaf stock counter.

        Raises:
            ProductNotFoundError: If product doesn't exist.
            VariationNotFoundError: If the variation (or size) doesn't exist.
            InvalidProductError: If stock is negative or size is missing for a sized kind.
        """
        spec = self.registry.resolve(kind)
        if stock < 0:
            raise InvalidProductError("stock must not be negative")
        if spec.shape is StockShape.SIZED and not size:
            raise InvalidProductError(f"size is required to restock a {spec.kind.value}")

        def apply(doc: dict[str, Any]) -> None:
            for variation in doc.get("variations", []):
                if variation.get("variation_index") != variation_index:
                    continue
                if spec.shape is StockShape.DIRECT:
                    variation["stock"] = stock
                    return
                for entry in variation.get("sizes") or []:
                    if entry.get("size") == size:
                        entry["stock"] = stock
                        return
                raise VariationNotFoundError(product_id, variation_index, size)
            raise VariationNotFoundError(product_id, variation_index)

        product = self._update(spec.kind, product_id, apply)
        logger.info(
            "Restocked %s %s variation %d%s to %d (total_stock=%d)",
            spec.kind.value,
            product_id,
            variation_index,
            f" size {size}" if size else "",
            stock,
            product.total_stock,
        )
        return product

    def set_active(self, kind: str | ProductKind, product_id: str, is_active: bool) -> Product:
        """Activate or deactivate a product. Leaf counters are left untouched."""

        def apply(doc: dict[str, Any]) -> None:
            doc["is_active"] = is_active

        return self._update(kind, product_id, apply)

    def delete_product(self, kind: str | ProductKind, product_id: str) -> Product:
        """
        Delete a product.

        Raises:
            ProductNotFoundError: If product doesn't exist.
        """
        spec = self.registry.resolve(kind)
        with self.db.transaction() as session:
            doc = session.get(spec.collection, product_id)
            if doc is None:
                raise ProductNotFoundError(product_id, spec.kind.value)
            session.delete_one(spec.collection, product_id)
        return Product.from_dict(doc)
