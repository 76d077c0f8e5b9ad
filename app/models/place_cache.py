# app/models/place_cache.py
from datetime import datetime

from sqlalchemy import JSON, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base


# places_cache 테이블. place_id 기준 upsert로만 기록한다.
class PlaceCacheRecord(Base):
    __tablename__ = "places_cache"

    place_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    search_query: Mapped[str | None] = mapped_column(String(400), index=True, nullable=True)

    name: Mapped[str] = mapped_column(String(200), index=True, nullable=False)
    formatted_address: Mapped[str] = mapped_column(Text, default="", nullable=False)
    lat: Mapped[float] = mapped_column(Float, nullable=False)
    lng: Mapped[float] = mapped_column(Float, nullable=False)
    rating: Mapped[float | None] = mapped_column(Float, nullable=True)
    user_ratings_total: Mapped[int | None] = mapped_column(Integer, nullable=True)
    price_level: Mapped[int | None] = mapped_column(Integer, nullable=True)
    types: Mapped[list] = mapped_column(JSON, default=list, nullable=False)

    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    cache_expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True, nullable=False)

    def __repr__(self):
        return f"<PlaceCacheRecord(place_id={self.place_id}, name={self.name})>"
