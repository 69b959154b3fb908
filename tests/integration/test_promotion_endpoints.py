"""
Integration tests for promotion preview/apply through the HTTP API.
"""
import pytest
from decimal import Decimal

from promoquote.exceptions import CatalogUnavailableError
from promoquote.models import PromotionRedemption
from promoquote.services import promotion_quote_service


def items_for(product, quantity=2, price=100, tax=20):
    return [{'product_id': product.id, 'quantity': quantity, 'unit_price_ht': price, 'tax_rate': tax}]


@pytest.fixture
def product(make_product):
    return make_product(100, tax_rate=20)


def _failing_catalog(session):
    raise CatalogUnavailableError('database is down')


class TestTransientPreview:
    """POST /quotes/promotions/preview and /apply."""

    def test_order_percent_preview(self, client, product, make_promotion):
        make_promotion(name='Ten off', priority=1)

        response = client.post('/quotes/promotions/preview', json={'items': items_for(product)})

        assert response.status_code == 200
        data = response.get_json()
        assert data['subtotal'] == 200.0
        assert data['tax_total'] == 40.0
        assert data['grand_total'] == 240.0
        assert data['discount_total'] == 20.0
        assert data['grand_total_after'] == 220.0
        assert data['lines_total_discounts'] == [20.0]
        applied = data['applied_promotions'][0]
        assert applied['name'] == 'Ten off'
        assert applied['promotion_code_id'] is None
        assert applied['lines_breakdown'] == [{'index': 0, 'amount': 20.0}]
        assert applied['hint'] == {'type': 'percent', 'value': 10.0}

    def test_transient_apply_matches_preview(self, client, product, make_promotion):
        make_promotion(priority=10, actions=[{'action_type': 'fixed', 'value': Decimal('15')}])
        make_promotion(priority=5)
        body = {'items': items_for(product), 'client_id': None}

        preview = client.post('/quotes/promotions/preview', json=body).get_json()
        applied = client.post('/quotes/promotions/apply', json=body).get_json()

        assert preview == applied
        assert preview['discount_total'] == 33.5

    def test_unknown_code_still_applies_code_free_promotions(self, client, product, make_promotion):
        make_promotion(name='Gated', codes=['WINTER5'], actions=[{'action_type': 'percent', 'value': Decimal('50')}])
        make_promotion(name='Open')

        response = client.post('/quotes/promotions/preview',
                               json={'code': 'SUMMER10', 'items': items_for(product)})

        assert response.status_code == 200
        data = response.get_json()
        assert 'error' not in data
        assert [p['name'] for p in data['applied_promotions']] == ['Open']
        assert data['discount_total'] == 20.0

    def test_matching_code_unlocks_promotion(self, client, product, make_promotion):
        promotion = make_promotion(name='Gated', codes=['SUMMER10'])

        data = client.post('/quotes/promotions/preview',
                           json={'code': 'summer10', 'items': items_for(product)}).get_json()

        assert data['applied_promotions'][0]['promotion_code_id'] == promotion.codes[0].id

    def test_category_promotion(self, client, category, make_product, make_promotion):
        plain = make_product(100)
        in_category = make_product(50, category=category)
        make_promotion(type='category', apply_scope='category', categories=[category],
                       actions=[{'action_type': 'percent', 'value': Decimal('20')}])

        data = client.post('/quotes/promotions/preview', json={'items': [
            {'product_id': plain.id, 'quantity': 1, 'unit_price_ht': 100, 'tax_rate': 20},
            {'product_id': in_category.id, 'quantity': 1, 'unit_price_ht': 50, 'tax_rate': 20},
        ]}).get_json()

        assert data['lines_total_discounts'] == [0.0, 10.0]

    def test_degrades_when_catalog_unavailable(self, client, product, make_promotion, monkeypatch):
        make_promotion()
        monkeypatch.setattr(promotion_quote_service, 'load_promotion_rules', _failing_catalog)

        response = client.post('/quotes/promotions/preview', json={'items': items_for(product)})

        assert response.status_code == 200
        data = response.get_json()
        assert data['error'] == 'promotion_evaluation_failed'
        assert 'unavailable' in data['message'] or 'down' in data['message']
        assert data['discount_total'] == 0.0
        assert data['subtotal'] == 0.0
        assert data['applied_promotions'] == []
        assert data['lines_total_discounts'] == []

    @pytest.mark.parametrize('item', [
        {'quantity': 0, 'unit_price_ht': 10},
        {'quantity': -1, 'unit_price_ht': 10},
        {'quantity': 1, 'unit_price_ht': -5},
        {'quantity': 1, 'unit_price_ht': 10, 'tax_rate': 150},
        {'quantity': 'abc', 'unit_price_ht': 10},
    ])
    def test_invalid_items_are_rejected(self, client, product, item):
        item['product_id'] = product.id

        response = client.post('/quotes/promotions/preview', json={'items': [item]})

        assert response.status_code == 400
        assert response.get_json()['status'] == 'error'

    def test_unknown_product_is_rejected(self, client, product):
        response = client.post('/quotes/promotions/preview', json={'items': [
            {'product_id': product.id + 999, 'quantity': 1, 'unit_price_ht': 10}
        ]})

        assert response.status_code == 400

    def test_code_length_follows_config(self, app, client, product, monkeypatch):
        monkeypatch.setitem(app.config, 'PROMO_CODE_MAX_LENGTH', 8)

        too_long = client.post('/quotes/promotions/preview',
                               json={'code': 'SUMMER2024', 'items': items_for(product)})
        admin = client.post('/promotions', json={
            'name': 'Long code', 'type': 'order', 'apply_scope': 'order',
            'actions': [{'action_type': 'percent', 'value': 10}], 'code': 'SUMMER2024',
        })

        assert too_long.status_code == 400
        assert admin.status_code == 400

    def test_empty_items_are_rejected(self, client):
        response = client.post('/quotes/promotions/preview', json={'items': []})

        assert response.status_code == 400


class TestQuotePromotions:
    """Preview and apply against persisted quotes."""

    def _create_quote(self, client, product, **extra):
        body = {'items': [{'product_id': product.id, 'quantity': 2}], **extra}
        response = client.post('/quotes', json=body)
        assert response.status_code == 201
        return response.get_json()

    def test_apply_equals_preview(self, client, product, make_promotion):
        make_promotion(priority=20, actions=[{'action_type': 'percent', 'value': Decimal('10'),
                                              'max_discount_amount': Decimal('15')}])
        make_promotion(priority=10, codes=['EXTRA'], actions=[{'action_type': 'fixed', 'value': Decimal('7.77')}])
        quote = self._create_quote(client, product)

        preview = client.post(f"/quotes/{quote['id']}/promotions/preview", json={'code': 'extra'}).get_json()
        applied = client.post(f"/quotes/{quote['id']}/promotions/apply", json={'code': 'extra'}).get_json()
        stored = client.get(f"/quotes/{quote['id']}").get_json()

        assert preview == applied
        assert preview['discount_total'] == 22.77
        assert stored['discount_total'] == preview['discount_total']
        assert stored['applied_promotions'] == preview['applied_promotions']
        assert [l['discount_amount'] for l in stored['lines']] == preview['lines_total_discounts']
        # 200 HT - 22.77, tax recomputed at 20%
        assert stored['subtotal_ht'] == 177.23
        assert stored['total_tax'] == 35.45
        assert stored['total_ttc'] == 212.68

    def test_apply_without_code_drops_gated_promotion(self, client, product, make_promotion):
        make_promotion(codes=['EXTRA'])
        quote = self._create_quote(client, product, promo_code='EXTRA')
        assert quote['discount_total'] == 20.0

        data = client.post(f"/quotes/{quote['id']}/promotions/apply", json={}).get_json()

        assert data['discount_total'] == 0.0
        assert client.get(f"/quotes/{quote['id']}").get_json()['applied_promotions'] == []

    def test_apply_propagates_catalog_failure(self, client, product, make_promotion, monkeypatch):
        make_promotion()
        quote = self._create_quote(client, product)
        monkeypatch.setattr(promotion_quote_service, 'load_promotion_rules', _failing_catalog)

        response = client.post(f"/quotes/{quote['id']}/promotions/apply", json={})

        assert response.status_code == 503
        assert response.get_json()['status'] == 'error'
        monkeypatch.undo()
        assert client.get(f"/quotes/{quote['id']}").get_json()['discount_total'] == 20.0

    def test_unknown_quote(self, client):
        response = client.post('/quotes/4242/promotions/preview', json={})

        assert response.status_code == 404


class TestRedemptionLimits:
    """Codes with max_redemptions / max_per_user."""

    def test_global_limit_counts_other_quotes_only(self, client, session, product, make_promotion):
        make_promotion(codes=[{'code': 'ONCE', 'max_redemptions': 1}])
        body = {'items': [{'product_id': product.id, 'quantity': 2}], 'promo_code': 'ONCE'}

        first = client.post('/quotes', json=body).get_json()
        assert first['discount_total'] == 20.0
        assert session.query(PromotionRedemption).count() == 1

        # Re-applying the same quote does not count against itself
        again = client.post(f"/quotes/{first['id']}/promotions/apply", json={'code': 'ONCE'}).get_json()
        assert again['discount_total'] == 20.0
        assert session.query(PromotionRedemption).count() == 1

        # Any other cart sees the code as exhausted
        preview = client.post('/quotes/promotions/preview',
                              json={'code': 'ONCE', 'items': items_for(product)}).get_json()
        assert preview['discount_total'] == 0.0

        second = client.post('/quotes', json=body).get_json()
        assert second['discount_total'] == 0.0

    def test_per_user_limit(self, client, product, make_client, make_promotion):
        make_promotion(codes=[{'code': 'WELCOME', 'max_per_user': 1}])
        alice, bob = make_client('Alice'), make_client('Bob')
        body = {'items': [{'product_id': product.id, 'quantity': 2}], 'promo_code': 'WELCOME'}

        assert client.post('/quotes', json={**body, 'client_id': alice.id}).get_json()['discount_total'] == 20.0
        assert client.post('/quotes', json={**body, 'client_id': alice.id}).get_json()['discount_total'] == 0.0
        assert client.post('/quotes', json={**body, 'client_id': bob.id}).get_json()['discount_total'] == 20.0


class TestMetrics:
    """GET /metrics."""

    def test_promotion_counters_exposed(self, client, product, make_promotion):
        make_promotion()
        client.post('/quotes/promotions/preview', json={'items': items_for(product)})

        response = client.get('/metrics')

        assert response.status_code == 200
        body = response.get_data(as_text=True)
        assert 'promotion_evaluations_total' in body
        assert 'promotion_discount_amount_total' in body
