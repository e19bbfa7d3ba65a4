import pytest

from pointsapi.core.exceptions import ItemUnavailableError, NotFoundError
from pointsapi.models.inventory import ItemCategory, ItemRarity
from pointsapi.schemas.shop import CatalogItem
from pointsapi.services.catalog import SHOP_CATALOG, Catalog


def make_item(item_id="sample", base_price=200, discount_percent=None, is_available=True):
    return CatalogItem(
        item_id=item_id,
        name="샘플",
        base_price=base_price,
        discount_percent=discount_percent,
        category=ItemCategory.BOOST,
        icon="🚀",
        rarity=ItemRarity.COMMON,
        is_available=is_available,
    )


class TestFinalPrice:
    """할인 적용가 계산"""

    def test_discount_applied(self):
        assert Catalog.final_price(make_item(base_price=200, discount_percent=20)) == 160

    @pytest.mark.parametrize("discount", [None, 0])
    def test_no_discount_returns_base_price(self, discount):
        assert Catalog.final_price(make_item(base_price=200, discount_percent=discount)) == 200

    def test_result_is_floored(self):
        # 750 * 0.85 = 637.5
        assert Catalog.final_price(make_item(base_price=750, discount_percent=15)) == 637

    def test_full_discount_is_free(self):
        assert Catalog.final_price(make_item(base_price=300, discount_percent=100)) == 0

    def test_discount_out_of_range_rejected(self):
        with pytest.raises(ValueError):
            make_item(discount_percent=120)


class TestCatalogLookup:
    def test_default_catalog_contents(self):
        catalog = Catalog()

        boost = catalog.get("post_boost_3days")
        assert len(SHOP_CATALOG) == 7
        assert boost.metadata == {"durationDays": 3, "effect": "pin_post"}
        assert catalog.final_price(boost) == 160

    def test_unknown_item(self):
        assert Catalog().get("nope") is None
        with pytest.raises(NotFoundError):
            Catalog().ensure_purchasable("nope")

    def test_unavailable_item(self):
        catalog = Catalog([make_item("retired", is_available=False)])

        with pytest.raises(ItemUnavailableError):
            catalog.ensure_purchasable("retired")

    def test_ensure_purchasable_returns_final_price(self):
        catalog = Catalog([make_item("boost", base_price=200, discount_percent=20)])

        item, price = catalog.ensure_purchasable("boost")

        assert item.item_id == "boost"
        assert price == 160

    def test_list_available_filters(self):
        catalog = Catalog()

        boosts = catalog.list_available(ItemCategory.BOOST)

        assert {item.item_id for item in boosts} == {"post_boost_3days", "highlight_comment"}
        assert len(catalog.list_available()) == 7

    def test_snapshot_includes_final_price(self):
        view = Catalog().snapshot(Catalog().get("team_supporter_badge"))

        assert view.base_price == 750
        assert view.final_price == 637
