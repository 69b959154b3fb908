"""Client model."""
from sqlalchemy import Column, String, Text, DateTime, Boolean
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from promoquote.database import Base, BigIntPK


class Client(Base):
    """Client a quote is issued to."""

    __tablename__ = 'client'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    notes = Column(Text, nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    quotes = relationship('Quote', back_populates='client')

    def __repr__(self):
        return f"<Client(id={self.id}, name='{self.name}')>"
