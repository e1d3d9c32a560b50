"""NFT tier multipliers read by the reward calculator."""

from __future__ import annotations

from uuid import uuid4

from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from loyalvest_api.db.base import Base


class NftTier(Base):
    """Loyalty NFT tier (Bronze, Silver, Gold...) and its earning multiplier."""

    __tablename__ = "nft_tiers"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    slug = Column(String, nullable=False, unique=True, index=True)
    name = Column(String, nullable=False)
    multiplier = Column(Numeric(6, 3), nullable=False, default=1, server_default="1")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    holders = relationship("HolderNftTier", back_populates="tier")


class HolderNftTier(Base):
    """Current NFT tier held by a reward holder."""

    __tablename__ = "holder_nft_tiers"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    holder_id = Column(String, nullable=False, unique=True, index=True)
    tier_id = Column(UUID(as_uuid=True), ForeignKey("nft_tiers.id", ondelete="CASCADE"), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    tier = relationship("NftTier", back_populates="holders")


__all__ = ["HolderNftTier", "NftTier"]
