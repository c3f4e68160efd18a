"""SQLAlchemy models for registered assets and their ownership transfers.

Chain-reported integers (block numbers, timestamps) are stored as decimal
text so uint256 values survive without truncation.
"""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from registry_sync.common.models import Base, utcnow

UINT256_DIGITS = 78


class AssetModel(Base):
    __tablename__ = "assets"

    id: Mapped[str] = mapped_column(String(66), primary_key=True)
    owner: Mapped[str] = mapped_column(String(42), nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    origin_timestamp: Mapped[str] = mapped_column(String(UINT256_DIGITS), nullable=False)
    registered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    transfers: Mapped[list["TransferModel"]] = relationship(
        back_populates="asset", order_by="TransferModel.id"
    )


class TransferModel(Base):
    __tablename__ = "transfers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    asset_id: Mapped[str] = mapped_column(
        String(66), ForeignKey("assets.id"), nullable=False, index=True
    )
    from_owner: Mapped[str | None] = mapped_column(String(42), nullable=True, index=True)
    to_owner: Mapped[str] = mapped_column(String(42), nullable=False, index=True)
    block_number: Mapped[str] = mapped_column(String(UINT256_DIGITS), nullable=False)
    transaction_hash: Mapped[str] = mapped_column(String(66), nullable=False, unique=True)
    timestamp: Mapped[str] = mapped_column(String(UINT256_DIGITS), nullable=False)
    transferred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, index=True
    )

    asset: Mapped[AssetModel] = relationship(back_populates="transfers")
