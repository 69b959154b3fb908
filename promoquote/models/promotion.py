"""Promotion model and its category/product targeting pivots."""
from sqlalchemy import (
    Column, BigInteger, Integer, SmallInteger, String, Text, Boolean, Numeric,
    DateTime, ForeignKey, Table, Index
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from promoquote.database import Base, BigIntPK
from promoquote.promotions.rules import PromotionType, ApplyScope


promotion_category = Table(
    'promotion_category',
    Base.metadata,
    Column('promotion_id', BigInteger, ForeignKey('promotion.id', ondelete='CASCADE'), primary_key=True),
    Column('category_id', BigInteger, ForeignKey('category.id', ondelete='CASCADE'), primary_key=True),
)

promotion_product = Table(
    'promotion_product',
    Base.metadata,
    Column('promotion_id', BigInteger, ForeignKey('promotion.id', ondelete='CASCADE'), primary_key=True),
    Column('product_id', BigInteger, ForeignKey('product.id', ondelete='CASCADE'), primary_key=True),
)


class Promotion(Base):
    """
    Promotion.

    days_of_week is a bitmask with bit 0 = Sunday ... bit 6 = Saturday;
    0 or NULL means every day. Soft-deleted promotions (deleted_at set)
    never reach the engine.
    """

    __tablename__ = 'promotion'
    __table_args__ = (
        Index('ix_promotion_active_priority', 'is_active', 'priority'),
        Index('ix_promotion_window', 'starts_at', 'ends_at'),
    )

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    type = Column(String(20), nullable=False, default=PromotionType.ORDER.value)
    apply_scope = Column(String(20), nullable=False, default=ApplyScope.ORDER.value)
    priority = Column(Integer, nullable=False, default=100)
    is_exclusive = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    starts_at = Column(DateTime, nullable=True)
    ends_at = Column(DateTime, nullable=True)
    days_of_week = Column(SmallInteger, nullable=True)
    min_subtotal = Column(Numeric(12, 2), nullable=True)
    min_quantity = Column(Integer, nullable=True)
    stop_further_processing = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    actions = relationship(
        'PromotionAction',
        back_populates='promotion',
        cascade='all, delete-orphan',
        order_by='PromotionAction.id',
    )
    codes = relationship(
        'PromotionCode',
        back_populates='promotion',
        cascade='all, delete-orphan',
        order_by='PromotionCode.id',
    )
    categories = relationship('Category', secondary=promotion_category, back_populates='promotions')
    products = relationship('Product', secondary=promotion_product, back_populates='promotions')

    def __repr__(self):
        return f"<Promotion(id={self.id}, name='{self.name}', type='{self.type}', priority={self.priority})>"

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'type': self.type,
            'apply_scope': self.apply_scope,
            'priority': self.priority,
            'is_exclusive': self.is_exclusive,
            'is_active': self.is_active,
            'starts_at': self.starts_at.isoformat() if self.starts_at else None,
            'ends_at': self.ends_at.isoformat() if self.ends_at else None,
            'days_of_week': self.days_of_week,
            'min_subtotal': float(self.min_subtotal) if self.min_subtotal is not None else None,
            'min_quantity': self.min_quantity,
            'stop_further_processing': self.stop_further_processing,
            'actions': [a.to_dict() for a in self.actions],
            'codes': [c.to_dict() for c in self.codes],
            'category_ids': sorted(c.id for c in self.categories),
            'product_ids': sorted(p.id for p in self.products),
            'categories': [c.to_dict() for c in sorted(self.categories, key=lambda c: c.id)],
            'products': [p.to_dict() for p in sorted(self.products, key=lambda p: p.id)],
        }
