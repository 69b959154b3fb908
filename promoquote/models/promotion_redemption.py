"""PromotionRedemption model (journal of applied promotions)."""
from sqlalchemy import Column, BigInteger, Numeric, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from promoquote.database import Base, BigIntPK


class PromotionRedemption(Base):
    """
    One promotion applied to one quote.

    Rows are the persisted redemption counters the engine queries through
    its ledger; they are rewritten every time a quote is re-applied.
    """

    __tablename__ = 'promotion_redemption'
    __table_args__ = (
        Index('ix_promotion_redemption_promotion_used', 'promotion_id', 'used_at'),
        Index('ix_promotion_redemption_code_client', 'promotion_code_id', 'client_id'),
    )

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    promotion_id = Column(BigInteger, ForeignKey('promotion.id', ondelete='CASCADE'), nullable=False)
    promotion_code_id = Column(BigInteger, ForeignKey('promotion_code.id', ondelete='SET NULL'), nullable=True)
    client_id = Column(BigInteger, ForeignKey('client.id', ondelete='SET NULL'), nullable=True)
    quote_id = Column(BigInteger, ForeignKey('quote.id', ondelete='CASCADE'), nullable=True)
    used_at = Column(DateTime, nullable=False, server_default=func.now())
    amount_discounted = Column(Numeric(12, 2), nullable=False, default=0)

    # Relationships
    promotion = relationship('Promotion')
    code = relationship('PromotionCode')

    def __repr__(self):
        return f"<PromotionRedemption(id={self.id}, promotion_id={self.promotion_id}, quote_id={self.quote_id}, amount={self.amount_discounted})>"
