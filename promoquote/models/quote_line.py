"""QuoteLine model for quote line items."""
from decimal import Decimal, ROUND_HALF_UP
from sqlalchemy import Column, BigInteger, Integer, String, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from promoquote.database import Base, BigIntPK


class QuoteLine(Base):
    """
    Quote Line.

    Stores a snapshot of product name, price and tax rate at the time the
    quote was written. sort_order is the line index used by the promotion
    engine's per-line breakdown.
    """

    __tablename__ = 'quote_line'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    quote_id = Column(BigInteger, ForeignKey('quote.id'), nullable=False)
    sort_order = Column(Integer, nullable=False, default=0)
    product_id = Column(BigInteger, ForeignKey('product.id'), nullable=False)
    product_name_snapshot = Column(String(200), nullable=False)
    quantity = Column(Numeric(12, 3), nullable=False)
    unit_price_ht = Column(Numeric(14, 2), nullable=False)
    tax_rate = Column(Numeric(5, 2), nullable=False, default=0)
    line_total_ht = Column(Numeric(14, 2), nullable=False)
    line_tax_amount = Column(Numeric(14, 2), nullable=False)
    line_total_ttc = Column(Numeric(14, 2), nullable=False)
    discount_amount = Column(Numeric(12, 2), nullable=False, default=0)

    # Relationships
    quote = relationship('Quote', back_populates='lines')
    product = relationship('Product', foreign_keys=[product_id])

    def __repr__(self):
        return f"<QuoteLine(id={self.id}, quote_id={self.quote_id}, product='{self.product_name_snapshot}', qty={self.quantity}, total_ht={self.line_total_ht})>"

    def compute_amounts(self):
        """Fill HT/tax/TTC line totals from quantity, unit price and tax rate."""
        cent = Decimal('0.01')
        total_ht = (Decimal(self.quantity) * Decimal(self.unit_price_ht)).quantize(cent, rounding=ROUND_HALF_UP)
        tax = (total_ht * Decimal(self.tax_rate) / Decimal('100')).quantize(cent, rounding=ROUND_HALF_UP)
        self.line_total_ht = total_ht
        self.line_tax_amount = tax
        self.line_total_ttc = total_ht + tax

    def to_dict(self):
        return {
            'id': self.id,
            'sort_order': self.sort_order,
            'product_id': self.product_id,
            'product_name': self.product_name_snapshot,
            'quantity': float(self.quantity),
            'unit_price_ht': float(self.unit_price_ht),
            'tax_rate': float(self.tax_rate),
            'line_total_ht': float(self.line_total_ht),
            'line_tax_amount': float(self.line_tax_amount),
            'line_total_ttc': float(self.line_total_ttc),
            'discount_amount': float(self.discount_amount or 0),
        }
