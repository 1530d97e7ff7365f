import math
from decimal import Decimal, InvalidOperation
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from app.utils.profiles import ProfileSnapshot
from .lifecycle import remaining_time, format_remaining, is_expired


Condition = Literal["new", "like-new", "good", "fair", "poor"]

CATEGORIES = ("Books", "Electronics", "Furniture", "Clothing", "Other")

# Stanford main quad
DEFAULT_LAT = 37.4275
DEFAULT_LNG = -122.1697


class Location(BaseModel):
    # Older rows store the coordinates as strings, or leave them null
    lat: float | str | None = DEFAULT_LAT
    lng: float | str | None = DEFAULT_LNG

    def coordinates(self) -> Optional[tuple[float, float]]:
        """Parsed (lat, lng), or None when they can't be placed on a map."""
        try:
            lat = float(self.lat)
            lng = float(self.lng)
        except (TypeError, ValueError):
            return None

        if not (math.isfinite(lat) and math.isfinite(lng)):
            return None
        if not (-90 <= lat <= 90 and -180 <= lng <= 180):
            return None
        return lat, lng


"""
listings/create + listings/update
"""


class ListingFormModel(BaseModel):
    title: str
    description: str
    price: str
    category: str = "Books"
    condition: Condition = "like-new"
    images: List[str] = Field(default_factory=list)
    location: Location = Field(default_factory=Location)

    @field_validator("title", "description")
    @classmethod
    def validate_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Field must not be blank.")
        return value

    @field_validator("price", mode="before")
    @classmethod
    def validate_price(cls, price) -> str:
        if isinstance(price, (int, float)) and not isinstance(price, bool):
            price = str(price)
        if not isinstance(price, str):
            raise ValueError("Price must be a decimal string.")

        price = price.strip().lstrip("$")
        try:
            amount = Decimal(price)
        except InvalidOperation:
            raise ValueError(f"Price must be a number (got {price!r}).")

        if not amount.is_finite() or amount < 0:
            raise ValueError("Price must be zero or more.")
        return price

    @field_validator("category")
    @classmethod
    def validate_category(cls, category: str) -> str:
        if category not in CATEGORIES:
            raise ValueError(f"Category must be one of: {', '.join(CATEGORIES)}.")
        return category

    @field_validator("location")
    @classmethod
    def validate_location(cls, location: Location) -> Location:
        if location.coordinates() is None:
            raise ValueError("Location must be a valid latitude/longitude pair.")
        return location

    def to_row(self) -> dict:
        lat, lng = self.location.coordinates()
        return {
            "title": self.title,
            "description": self.description,
            "price": self.price,
            "category": self.category,
            "condition": self.condition,
            # Single image in practice; only the first is ever shown
            "images": self.images[:1],
            "location": {"lat": lat, "lng": lng},
        }


"""
listings (read)
"""


class Listing(BaseModel):
    id: str
    user_id: str
    title: str
    description: str
    price: str
    category: str
    condition: Condition
    images: List[str] = Field(default_factory=list)
    location: Optional[Location] = None
    seller: ProfileSnapshot
    created_at: datetime
    expires_at: datetime

    @field_validator("price", mode="before")
    @classmethod
    def validate_price(cls, price):
        if isinstance(price, (int, float, Decimal)) and not isinstance(price, bool):
            return str(price)
        return price

    @field_validator("images", mode="before")
    @classmethod
    def validate_images(cls, images):
        return images or []

    @property
    def cover_image(self) -> Optional[str]:
        return self.images[0] if self.images else None

    def matches(self, query: str) -> bool:
        query = query.lower()
        return (
            query in self.title.lower()
            or query in self.description.lower()
            or query in self.category.lower()
        )


class TimeRemaining(BaseModel):
    hours: int
    minutes: int
    label: str
    expired: bool


class ListingResponseModel(Listing):
    time_remaining: TimeRemaining
    is_owner: bool = False

    @classmethod
    def from_listing(
        cls, listing: Listing, user_id: str | None = None, now: datetime | None = None
    ) -> "ListingResponseModel":
        remaining = remaining_time(listing.expires_at, now)
        return cls(
            **listing.model_dump(),
            time_remaining=TimeRemaining(
                hours=remaining.hours,
                minutes=remaining.minutes,
                label=format_remaining(remaining),
                expired=is_expired(listing.expires_at, now),
            ),
            is_owner=user_id is not None and listing.user_id == user_id,
        )


class ListingsResponseModel(BaseModel):
    listings: List[ListingResponseModel]


class MapMarker(BaseModel):
    id: str
    title: str
    price: str
    lat: float
    lng: float
    image: Optional[str] = None


class MapResponseModel(BaseModel):
    markers: List[MapMarker]


"""
listings/images
"""


class ImageUploadResponseModel(BaseModel):
    path: str
    url: str
