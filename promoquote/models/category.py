"""Category model."""
from sqlalchemy import Column, String, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from promoquote.database import Base, BigIntPK


class Category(Base):
    """
    Product category.

    Category-scoped promotions target lines whose product belongs to one of
    the promotion's categories.
    """

    __tablename__ = 'category'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    products = relationship('Product', back_populates='category')
    promotions = relationship('Promotion', secondary='promotion_category', back_populates='categories')

    def __repr__(self):
        return f"<Category(id={self.id}, name='{self.name}')>"

    def to_dict(self):
        return {'id': self.id, 'name': self.name}
