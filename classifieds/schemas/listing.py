from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from classifieds.core.constants import CATEGORIES, MAX_PRICE


class ListingCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str = Field(default="", max_length=5000)
    price: int = Field(ge=0, le=MAX_PRICE, description="Price in the smallest currency unit.")
    category: str
    location: str | None = Field(default=None, max_length=200)
    image_url: str | None = Field(default=None, max_length=2000)

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str) -> str:
        v2 = v.strip()
        if not v2:
            raise ValueError("title must not be blank")
        return v2

    @field_validator("price", mode="before")
    @classmethod
    def parse_price(cls, v):
        # form input arrives as text; "5000" and "5000.0" are accepted, "5000.5" is not
        if isinstance(v, str):
            v = v.strip()
            try:
                return int(v)
            except ValueError:
                f = float(v)
                if not f.is_integer():
                    raise ValueError("price must be a whole number")
                return int(f)
        if isinstance(v, float) and v.is_integer():
            return int(v)
        return v

    @field_validator("category")
    @classmethod
    def known_category(cls, v: str) -> str:
        if v not in CATEGORIES:
            raise ValueError(f"category must be one of: {', '.join(CATEGORIES)}")
        return v

    @field_validator("location", "image_url")
    @classmethod
    def blank_is_absent(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        return v.strip()


class ListingOut(BaseModel):
    id: str
    title: str
    description: str
    price: int
    price_display: str
    category: str
    location: str
    image_url: str
    owner_id: str
    created_at: datetime
    is_saved: bool
    is_owner: bool


class CategoriesOut(BaseModel):
    all_categories: str
    categories: list[str]


class DashboardOut(BaseModel):
    my_ads: list[ListingOut]
    favorites: list[ListingOut]
    # tab badges
    my_ads_count: int
    favorites_count: int


class FavoritesOut(BaseModel):
    listing_ids: list[str]


class CommandOut(BaseModel):
    ok: bool
    message: str
    data: dict = Field(default_factory=dict)
