"""Models package - exports all SQLAlchemy models."""
# Catalog Models
from promoquote.models.category import Category
from promoquote.models.product import Product
from promoquote.models.client import Client

# Quote Models
from promoquote.models.quote import Quote, QuoteStatus
from promoquote.models.quote_line import QuoteLine

# Promotion Models
from promoquote.models.promotion import Promotion, promotion_category, promotion_product
from promoquote.models.promotion_action import PromotionAction
from promoquote.models.promotion_code import PromotionCode, normalize_promo_code
from promoquote.models.promotion_redemption import PromotionRedemption

__all__ = [
    # Catalog
    'Category', 'Product', 'Client',
    # Quotes
    'Quote', 'QuoteStatus', 'QuoteLine',
    # Promotions
    'Promotion', 'promotion_category', 'promotion_product',
    'PromotionAction',
    'PromotionCode', 'normalize_promo_code',
    'PromotionRedemption',
]
