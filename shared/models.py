import uuid
from sqlalchemy import Column, String, UUID, DateTime, Integer, ForeignKey, Index
from shared.database import Base


class Company(Base):
    __tablename__ = "companies"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)


class Discount(Base):
    __tablename__ = "discounts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False, default="")


class DiscountAction(Base):
    """One interaction with a discount. Rows are append-only."""

    __tablename__ = "discount_actions"
    __table_args__ = (
        Index("ix_discount_actions_discount_occurred", "discount_id", "occurred_at"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    discount_id = Column(Integer, ForeignKey("discounts.id"), nullable=False)
    action = Column(String(32), nullable=False, index=True)
    occurred_at = Column(DateTime(timezone=True), nullable=False, index=True)
    user_id = Column(Integer, nullable=True, index=True)
    device_type = Column(String(50), nullable=True)
    city = Column(String(100), nullable=True)
    region = Column(String(100), nullable=True)
    age_group = Column(String(20), nullable=True)
    gender = Column(String(20), nullable=True)
