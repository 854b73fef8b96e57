"""
Tests for catalog walking and card parsing.
"""
import pytest

from conftest import FakeClient, make_card


def page(cards, updated_at='2024-05-01T10:00:00Z', nm_id=None):
    from cargo_pricer.models import CardsPage, Cursor

    if nm_id is None:
        nm_id = cards[-1].nm_id if cards else 0
    return CardsPage(cards=cards, cursor=Cursor(updated_at=updated_at, nm_id=nm_id))


class TestWalkCatalog:
    """Cursor pagination until the source signals end of data."""

    def test_decreasing_pages_terminate_on_empty(self):
        from cargo_pricer.catalog import walk_catalog

        client = FakeClient(card_pages=[
            page([make_card(i, f'box_{i}_1') for i in range(1, 4)]),
            page([make_card(i, f'box_{i}_1') for i in range(4, 6)]),
            page([make_card(6, 'box_6_1')]),
        ])
        walk = walk_catalog(client.get_cards_page, [3979], limit=3)

        assert [c.nm_id for c in walk.cards] == [1, 2, 3, 4, 5, 6]
        assert walk.complete
        assert walk.pages == 4
        assert len(client.card_requests) == 4

    def test_cursor_carried_between_requests(self):
        from cargo_pricer.catalog import walk_catalog

        client = FakeClient(card_pages=[
            page([make_card(10, 'box_10_1')], updated_at='2024-05-02T00:00:00Z'),
        ])
        walk_catalog(client.get_cards_page, [3979, 12], limit=100)

        first, second = client.card_requests
        assert first.updated_at is None and first.last_nm_id is None
        assert second.updated_at == '2024-05-02T00:00:00Z'
        assert second.last_nm_id == 10
        assert second.category_ids == [3979, 12]

    def test_exhausted_cursor_stops(self):
        """Empty timestamp or zero id ends the walk without another request."""
        from cargo_pricer.catalog import walk_catalog

        client = FakeClient(card_pages=[
            page([make_card(1, 'box_1_1')], updated_at=''),
        ])
        walk = walk_catalog(client.get_cards_page, [3979])

        assert len(walk.cards) == 1
        assert len(client.card_requests) == 1
        assert walk.complete

        client = FakeClient(card_pages=[page([make_card(1, 'box_1_1')], nm_id=0)])
        walk_catalog(client.get_cards_page, [3979])
        assert len(client.card_requests) == 1

    def test_empty_catalog(self):
        from cargo_pricer.catalog import walk_catalog

        walk = walk_catalog(FakeClient().get_cards_page, [3979])
        assert walk.cards == []
        assert walk.complete

    def test_error_keeps_collected_cards(self):
        """An upstream failure mid-walk is reported, not raised."""
        from cargo_pricer.catalog import walk_catalog

        client = FakeClient(
            card_pages=[page([make_card(1, 'box_1_1'), make_card(2, 'box_2_1')])],
            fail_cards_after=1,
        )
        walk = walk_catalog(client.get_cards_page, [3979])

        assert [c.nm_id for c in walk.cards] == [1, 2]
        assert not walk.complete
        assert 'timeout' in walk.error

    def test_duplicate_cards_collapsed(self):
        """A card repeated across pages is kept once, latest copy wins."""
        from cargo_pricer.catalog import walk_catalog

        client = FakeClient(card_pages=[
            page([make_card(1, 'box_1_1'), make_card(2, 'box_2_1')]),
            page([make_card(2, 'box_2_1', title='Новая'), make_card(3, 'box_3_1')]),
        ])
        walk = walk_catalog(client.get_cards_page, [3979])

        assert [c.nm_id for c in walk.cards] == [1, 2, 3]
        assert walk.cards[1].title == 'Новая'


class TestSingleSku:

    def test_exactly_one(self):
        from cargo_pricer.catalog import single_sku

        assert single_sku(make_card(1, 'box_1_1', skus=['204001'])) == '204001'

    def test_none_or_many_is_integrity_fault(self):
        from cargo_pricer.catalog import single_sku
        from cargo_pricer.models import SkuIntegrityError

        with pytest.raises(SkuIntegrityError):
            single_sku(make_card(1, 'box_1_1', skus=[]))
        with pytest.raises(SkuIntegrityError):
            single_sku(make_card(1, 'box_1_1', skus=['a', 'b']))


class TestCardsPayload:
    """Request body and card parsing for the cards list endpoint."""

    def test_first_page_payload(self):
        from cargo_pricer.models import CardsPageRequest

        payload = CardsPageRequest(category_ids=[3979], limit=100).to_payload()
        assert payload == {'settings': {
            'cursor': {'limit': 100},
            'filter': {'withPhoto': 1, 'objectIDs': [3979]},
        }}

    def test_next_page_payload(self):
        from cargo_pricer.models import CardsPageRequest

        payload = CardsPageRequest(category_ids=[1, 2], updated_at='2024-05-01T10:00:00Z',
                                   last_nm_id=555).to_payload()
        assert payload['settings']['cursor'] == {
            'limit': 100, 'updatedAt': '2024-05-01T10:00:00Z', 'nmID': 555,
        }

    def test_card_from_api_flattens_skus(self):
        from cargo_pricer.models import ProductCard

        card = ProductCard.from_api({
            'nmID': 123, 'vendorCode': 'box_4821_3', 'title': 'Коробка',
            'updatedAt': '2024-05-01T10:00:00Z',
            'dimensions': {'width': 20, 'height': 10, 'length': 30},
            'sizes': [{'skus': ['2040001']}],
        })
        assert card.nm_id == 123
        assert card.dimensions.width == 20
        assert card.dimensions.length == 30
        assert card.skus == ['2040001']

    def test_card_from_api_missing_fields(self):
        from cargo_pricer.models import ProductCard

        card = ProductCard.from_api({'nmID': 5})
        assert card.vendor_code == ''
        assert card.dimensions.width == 0
        assert card.skus == []
