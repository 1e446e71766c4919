"""Tests for stock aggregation."""

import random

from storefront.models import Product, SizeStock, Variation
from storefront.stock import (
    compute_total_stock,
    recompute_document,
    recompute_total_stock,
    variation_stock,
)


class TestVariationStock:
    def test_sized_variation_sums_sizes(self):
        assert variation_stock({"sizes": [{"size": "M", "stock": 5}, {"size": "L", "stock": 2}]}) == 7

    def test_direct_variation(self):
        assert variation_stock({"stock": 4}) == 4

    def test_missing_and_null_counters_count_as_zero(self):
        assert variation_stock({}) == 0
        assert variation_stock({"stock": None}) == 0
        assert variation_stock({"sizes": [{"size": "M"}, {"size": "L", "stock": None}]}) == 0

    def test_empty_sizes(self):
        assert variation_stock({"sizes": []}) == 0


class TestComputeTotalStock:
    def test_sums_every_variation(self):
        variations = [
            {"sizes": [{"size": "M", "stock": 5}, {"size": "L", "stock": 2}]},
            {"sizes": [{"size": "M", "stock": 4}]},
        ]
        assert compute_total_stock(variations) == 11

    def test_inactive_product_is_zero(self):
        assert compute_total_stock([{"stock": 9}], is_active=False) == 0

    def test_no_variations(self):
        assert compute_total_stock(None) == 0
        assert compute_total_stock([]) == 0

    def test_matches_leaf_sum_for_random_documents(self):
        rng = random.Random(1234)
        for _ in range(200):
            sized = rng.random() < 0.75
            variations = []
            expected = 0
            for idx in range(1, rng.randint(1, 4) + 1):
                if sized:
                    sizes = []
                    for label in rng.sample(["XS", "S", "M", "L", "XL"], rng.randint(0, 5)):
                        stock = rng.randint(0, 50)
                        expected += stock
                        sizes.append({"size": label, "stock": stock})
                    variations.append({"variation_index": idx, "sizes": sizes})
                else:
                    stock = rng.randint(0, 50)
                    expected += stock
                    variations.append({"variation_index": idx, "stock": stock})

            doc = recompute_document({"variations": variations, "is_active": True})
            assert doc["total_stock"] == expected


class TestRecomputeTotalStock:
    def test_sets_field_on_product(self):
        product = Product(
            id="p1",
            kind="jersey",
            name="Home Kit",
            price=20000.0,
            variations=[Variation(1, "Blue", sizes=[SizeStock("S", 1), SizeStock("M", 3)])],
            total_stock=999,
        )

        assert recompute_total_stock(product) == 4
        assert product.total_stock == 4

    def test_deactivation_zeroes_total(self):
        product = Product(
            id="p1",
            kind="cap",
            name="Cap",
            price=5000.0,
            variations=[Variation(1, "Navy", stock=3)],
            is_active=False,
        )

        assert recompute_total_stock(product) == 0
