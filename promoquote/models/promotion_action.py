"""PromotionAction model."""
from sqlalchemy import Column, BigInteger, Integer, String, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from promoquote.database import Base, BigIntPK
from promoquote.promotions.rules import ActionKind


class PromotionAction(Base):
    """
    Promotion action (effect).

    value is a percentage for percent actions and a currency amount for
    fixed ones. BOGO actions use buy_qty/get_qty: in every group of
    buy_qty + get_qty units, get_qty units are free (bogo_free) or
    discounted by bogo_discount_value percent (bogo_percent).
    """

    __tablename__ = 'promotion_action'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    promotion_id = Column(BigInteger, ForeignKey('promotion.id', ondelete='CASCADE'), nullable=False)
    action_type = Column(String(20), nullable=False, default=ActionKind.PERCENT.value)
    value = Column(Numeric(12, 4), nullable=True)
    max_discount_amount = Column(Numeric(12, 2), nullable=True)
    buy_qty = Column(Integer, nullable=True)
    get_qty = Column(Integer, nullable=True)
    bogo_discount_value = Column(Numeric(12, 4), nullable=True)

    # Relationships
    promotion = relationship('Promotion', back_populates='actions')

    def __repr__(self):
        return f"<PromotionAction(id={self.id}, type='{self.action_type}', value={self.value})>"

    def to_dict(self):
        return {
            'id': self.id,
            'action_type': self.action_type,
            'value': float(self.value) if self.value is not None else None,
            'max_discount_amount': float(self.max_discount_amount) if self.max_discount_amount is not None else None,
            'buy_qty': self.buy_qty,
            'get_qty': self.get_qty,
            'bogo_discount_value': float(self.bogo_discount_value) if self.bogo_discount_value is not None else None,
        }
