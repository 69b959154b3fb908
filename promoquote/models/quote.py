"""Quote model for devis/presupuestos."""
import enum
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from sqlalchemy import Column, BigInteger, String, Numeric, DateTime, Date, Text, JSON, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from promoquote.database import Base, BigIntPK

CENT = Decimal('0.01')


class QuoteStatus(enum.Enum):
    """Quote status enum."""
    DRAFT = "DRAFT"
    SENT = "SENT"
    ACCEPTED = "ACCEPTED"
    CANCELED = "CANCELED"


class Quote(Base):
    """
    Quote (devis).

    Holds the durable record of the last promotion evaluation:
    discount_total, applied_promotions (JSON snapshot) and the per-line
    discount_amount of its lines. Re-editing a quote re-runs the whole
    evaluation and overwrites these fields.
    """

    __tablename__ = 'quote'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    quote_number = Column(String(64), nullable=False, unique=True)
    client_id = Column(BigInteger, ForeignKey('client.id'), nullable=True)
    status = Column(String(20), nullable=False, default=QuoteStatus.DRAFT.value)
    currency_code = Column(String(3), nullable=False, default='EUR')
    valid_until = Column(Date, nullable=True)
    notes = Column(Text, nullable=True)
    subtotal_ht = Column(Numeric(14, 2), nullable=False, default=0)
    total_tax = Column(Numeric(14, 2), nullable=False, default=0)
    total_ttc = Column(Numeric(14, 2), nullable=False, default=0)
    discount_total = Column(Numeric(12, 2), nullable=False, default=0)
    applied_promotions = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    client = relationship('Client', back_populates='quotes')
    lines = relationship(
        'QuoteLine',
        back_populates='quote',
        cascade='all, delete-orphan',
        order_by='QuoteLine.sort_order',
    )

    def __repr__(self):
        return f"<Quote(id={self.id}, number='{self.quote_number}', status='{self.status}', total_ttc={self.total_ttc})>"

    @property
    def is_expired(self):
        """Check if quote is expired (calculated, not stored)."""
        if self.status in [QuoteStatus.DRAFT.value, QuoteStatus.SENT.value] and self.valid_until:
            return date.today() > self.valid_until
        return False

    @property
    def is_editable(self):
        """Only draft or sent quotes that are not expired can be edited."""
        return self.status in [QuoteStatus.DRAFT.value, QuoteStatus.SENT.value] and not self.is_expired

    @property
    def total_ttc_after_discount(self):
        """TTC total net of discount, never negative (display helper)."""
        ttc = Decimal(self.total_ttc or 0)
        discount = Decimal(self.discount_total or 0)
        return max(Decimal('0.00'), (ttc - discount).quantize(CENT, rounding=ROUND_HALF_UP))

    def calculate_totals_with_discount(self):
        """
        Recompute HT/tax/TTC net of discount_total.

        The discount reduces the HT base (clamped to [0, subtotal]); tax is
        recomputed with the weighted tax rate of the lines.
        """
        subtotal_ht = sum((Decimal(l.line_total_ht) for l in self.lines), Decimal('0.00'))
        total_tax = sum((Decimal(l.line_tax_amount) for l in self.lines), Decimal('0.00'))

        discount = max(Decimal('0.00'), min(Decimal(self.discount_total or 0), subtotal_ht))
        weighted_rate = (total_tax / subtotal_ht) if subtotal_ht > 0 else Decimal('0')

        new_subtotal = (subtotal_ht - discount).quantize(CENT, rounding=ROUND_HALF_UP)
        new_tax = (new_subtotal * weighted_rate).quantize(CENT, rounding=ROUND_HALF_UP)

        self.subtotal_ht = new_subtotal
        self.total_tax = new_tax
        self.total_ttc = (new_subtotal + new_tax).quantize(CENT, rounding=ROUND_HALF_UP)

    def to_dict(self):
        return {
            'id': self.id,
            'quote_number': self.quote_number,
            'client_id': self.client_id,
            'status': self.status,
            'currency_code': self.currency_code,
            'valid_until': self.valid_until.isoformat() if self.valid_until else None,
            'notes': self.notes,
            'subtotal_ht': float(self.subtotal_ht or 0),
            'total_tax': float(self.total_tax or 0),
            'total_ttc': float(self.total_ttc or 0),
            'discount_total': float(self.discount_total or 0),
            'applied_promotions': self.applied_promotions or [],
            'lines': [line.to_dict() for line in self.lines],
        }
