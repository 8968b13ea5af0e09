from datetime import datetime

from sqlalchemy import BigInteger, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import DateTime

from classifieds.core.ids import gen_id

from classifieds.models.base import Base, utcnow


class Listing(Base):
    __tablename__ = "listings"
    __table_args__ = (
        # coarse predicates: category equality + price lower bound
        Index("ix_listings_app_category_price", "app_id", "category", "price"),
        Index("ix_listings_app_created_at", "app_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id("lst"))
    app_id: Mapped[str] = mapped_column(String(120), nullable=False)

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # smallest currency unit
    price: Mapped[int] = mapped_column(BigInteger, nullable=False)
    category: Mapped[str] = mapped_column(String(60), nullable=False)
    location: Mapped[str] = mapped_column(String(200), nullable=False, default="Unknown")
    image_url: Mapped[str] = mapped_column(Text, nullable=False)

    # identity that posted it; never reassigned
    owner_id: Mapped[str] = mapped_column(String, nullable=False, index=True)

    # assigned by the store on insert, only used for ordering
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
