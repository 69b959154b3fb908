"""PromotionCode model."""
from sqlalchemy import Column, BigInteger, Integer, String, Boolean, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship, validates
from promoquote.database import Base, BigIntPK
from promoquote.promotions.rules import normalize_promo_code


class PromotionCode(Base):
    """Redemption code gating a promotion."""

    __tablename__ = 'promotion_code'
    __table_args__ = (
        Index('ix_promotion_code_promotion_active', 'promotion_id', 'is_active'),
    )

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    promotion_id = Column(BigInteger, ForeignKey('promotion.id', ondelete='CASCADE'), nullable=False)
    code = Column(String(191), nullable=False, unique=True)
    max_redemptions = Column(Integer, nullable=True)
    max_per_user = Column(Integer, nullable=True)
    starts_at = Column(DateTime, nullable=True)
    ends_at = Column(DateTime, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    # Relationships
    promotion = relationship('Promotion', back_populates='codes')

    @validates('code')
    def _normalize_code(self, key, value):
        return normalize_promo_code(value)

    def __repr__(self):
        return f"<PromotionCode(id={self.id}, code='{self.code}', active={self.is_active})>"

    def to_dict(self):
        return {
            'id': self.id,
            'code': self.code,
            'max_redemptions': self.max_redemptions,
            'max_per_user': self.max_per_user,
            'starts_at': self.starts_at.isoformat() if self.starts_at else None,
            'ends_at': self.ends_at.isoformat() if self.ends_at else None,
            'is_active': self.is_active,
        }
