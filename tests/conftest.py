import pytest
from decimal import Decimal
import uuid

from promoquote import create_app
from promoquote.database import create_all, drop_all, get_session
from promoquote.models import (
    Category, Product, Client, Promotion, PromotionAction, PromotionCode
)


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing (in-memory SQLite)."""
    app = create_app('config.TestConfig')
    app.config['TESTING'] = True
    with app.app_context():
        yield app


@pytest.fixture(scope='function')
def session(app):
    """Fresh schema for every test."""
    create_all()
    session = get_session()
    yield session
    session.rollback()
    session.remove()
    drop_all()


@pytest.fixture(scope='function')
def client(app, session):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def category(session):
    category = Category(name=f'Category {str(uuid.uuid4())[:8]}')
    session.add(category)
    session.commit()
    return category


@pytest.fixture(scope='function')
def make_product(session):
    """Factory for products: make_product(price, tax_rate=20, category=None)."""
    def _make(price, tax_rate='20', category=None, name=None, active=True):
        product = Product(
            name=name or f'Product {str(uuid.uuid4())[:8]}',
            sku=str(uuid.uuid4())[:12],
            sale_price=Decimal(str(price)),
            tax_rate=Decimal(str(tax_rate)),
            category_id=category.id if category else None,
            active=active,
        )
        session.add(product)
        session.commit()
        return product
    return _make


@pytest.fixture(scope='function')
def make_client(session):
    def _make(name='Client'):
        client = Client(name=name, email=f'{uuid.uuid4().hex[:8]}@example.com', active=True)
        session.add(client)
        session.commit()
        return client
    return _make


@pytest.fixture(scope='function')
def make_promotion(session):
    """
    Factory for persisted promotions.

    actions is a list of PromotionAction kwargs; codes a list of
    PromotionCode kwargs (or plain code strings).
    """
    def _make(name='Promo', type='order', apply_scope='order', actions=None, codes=None,
              categories=(), products=(), **fields):
        promotion = Promotion(name=name, type=type, apply_scope=apply_scope, **fields)
        for action in actions or [{'action_type': 'percent', 'value': Decimal('10')}]:
            promotion.actions.append(PromotionAction(**action))
        for code in codes or []:
            if isinstance(code, str):
                code = {'code': code}
            promotion.codes.append(PromotionCode(**code))
        promotion.categories = list(categories)
        promotion.products = list(products)
        session.add(promotion)
        session.commit()
        return promotion
    return _make
