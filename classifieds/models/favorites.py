from datetime import datetime

from sqlalchemy import JSON, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import DateTime

from classifieds.models.base import Base, utcnow


class FavoritesRecord(Base):
    __tablename__ = "favorites"

    app_id: Mapped[str] = mapped_column(String(120), primary_key=True)
    identity_id: Mapped[str] = mapped_column(String, primary_key=True)

    # {listing_id: true}; a mapping rather than a list so a toggle touches one key
    listing_ids: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    # bumped on every write; a stale version means a concurrent toggle won
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
