"""Product model."""
from sqlalchemy import Column, BigInteger, String, Boolean, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from promoquote.database import Base, BigIntPK
from promoquote.promotions.money import round_money, to_decimal


class Product(Base):
    """
    Sellable product.

    sale_price is HT. Quote lines default their unit price and tax rate to the
    product values when the caller does not send them.
    """

    __tablename__ = 'product'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    sku = Column(String(64), nullable=True, unique=True)
    name = Column(String, nullable=False)
    category_id = Column(BigInteger, ForeignKey('category.id'), nullable=True, index=True)
    active = Column(Boolean, nullable=False, default=True)
    sale_price = Column(Numeric(10, 2), nullable=False)
    tax_rate = Column(Numeric(5, 2), nullable=False, default=0, server_default='0')  # percent
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    category = relationship('Category', foreign_keys=[category_id], back_populates='products')
    promotions = relationship('Promotion', secondary='promotion_product', back_populates='products')

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', sku='{self.sku}')>"

    @property
    def sale_price_ttc(self):
        """Sale price including tax, rounded to cents."""
        price = to_decimal(self.sale_price or 0)
        rate = to_decimal(self.tax_rate or 0)
        return round_money(price + price * rate / 100)

    def to_dict(self):
        return {
            'id': self.id,
            'sku': self.sku,
            'name': self.name,
            'category_id': self.category_id,
            'sale_price': float(self.sale_price) if self.sale_price is not None else None,
            'tax_rate': float(self.tax_rate) if self.tax_rate is not None else None,
            'active': self.active,
        }
