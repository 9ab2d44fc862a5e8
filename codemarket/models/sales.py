"""Sales aggregate model.

Per-seller, per-period revenue rollup read by reporting and payouts.
Keyed uniquely by (seller_id, period). revenue and sales_count only grow:
they are incremented in SQL by services/sales_aggregates.upsert_increment.
"""

import uuid

from codemarket.extensions import db


class SalesAggregate(db.Model):
    __tablename__ = "sales_aggregates"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    seller_id = db.Column(
        db.String(36), db.ForeignKey("seller_profiles.id"), nullable=False
    )
    period = db.Column(db.Date, nullable=False)  # first day of the bucket
    revenue = db.Column(db.BigInteger, default=0, nullable=False)  # minor units
    sales_count = db.Column(db.Integer, default=0, nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __table_args__ = (
        db.UniqueConstraint("seller_id", "period", name="uq_sales_seller_period"),
    )

    # --- Relationships ---
    seller = db.relationship("SellerProfile", back_populates="sales_aggregates")

    def to_dict(self):
        return {
            "period": self.period.isoformat(),
            "revenue": self.revenue,
            "salesCount": self.sales_count,
        }

    def __repr__(self):
        return f"<SalesAggregate seller={self.seller_id} {self.period} {self.revenue}/{self.sales_count}>"
