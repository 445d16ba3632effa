"""
SQLAlchemy ORM models for the entity store.

Tables:
- countries (countryShort primary key)
- states ((stateShort, countryShort) primary key)
- cities, zips, queries (surrogate ids, natural-key uniqueness; a city's
  state is not enforced so cities of unknown states can be stored)
- nav_sessions (the persisted cursor)
"""

from typing import Optional

from sqlalchemy import (
    Boolean,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

__all__ = [
    'Base',
    'CityRow',
    'CountryRow',
    'NavSessionRow',
    'QueryRow',
    'StateRow',
    'ZipRow',
]


class Base(DeclarativeBase):
    """Declarative base for all entity store tables."""


class CountryRow(Base):
    __tablename__ = "countries"

    country_short: Mapped[str] = mapped_column("countryShort", String(2), primary_key=True)
    country: Mapped[str] = mapped_column("country", Text, nullable=False)
    used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    external: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<CountryRow(countryShort='{self.country_short}', country='{self.country}')>"


class StateRow(Base):
    __tablename__ = "states"

    state_short: Mapped[str] = mapped_column("stateShort", Text, primary_key=True)
    country_short: Mapped[str] = mapped_column(
        "countryShort",
        String(2),
        ForeignKey("countries.countryShort", ondelete="CASCADE"),
        primary_key=True,
    )
    state: Mapped[str] = mapped_column("state", Text, nullable=False)
    used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    external: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("idx_states_countryShort", "countryShort"),
    )

    def __repr__(self) -> str:
        return f"<StateRow(stateShort='{self.state_short}', countryShort='{self.country_short}')>"


class CityRow(Base):
    __tablename__ = "cities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    city: Mapped[str] = mapped_column("city", Text, nullable=False)
    state_short: Mapped[str] = mapped_column("stateShort", Text, nullable=False)
    country_short: Mapped[str] = mapped_column(
        "countryShort",
        String(2),
        ForeignKey("countries.countryShort", ondelete="CASCADE"),
        nullable=False,
    )
    county: Mapped[Optional[str]] = mapped_column("county", Text, nullable=True)
    used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    external: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint("city", "stateShort", "countryShort", name="uq_cities_city_state_country"),
        Index("idx_cities_stateShort", "stateShort", "countryShort"),
        Index("idx_cities_countryShort", "countryShort"),
    )

    def __repr__(self) -> str:
        return f"<CityRow(id={self.id}, city='{self.city}', stateShort='{self.state_short}')>"


class ZipRow(Base):
    __tablename__ = "zips"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    zip: Mapped[str] = mapped_column("zip", Text, nullable=False)
    country_short: Mapped[str] = mapped_column(
        "countryShort",
        String(2),
        ForeignKey("countries.countryShort", ondelete="CASCADE"),
        nullable=False,
    )
    used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    external: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint("zip", "countryShort", name="uq_zips_zip_country"),
        Index("idx_zips_countryShort", "countryShort"),
    )

    def __repr__(self) -> str:
        return f"<ZipRow(id={self.id}, zip='{self.zip}', countryShort='{self.country_short}')>"


class QueryRow(Base):
    __tablename__ = "queries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    query: Mapped[str] = mapped_column("query", Text, nullable=False, unique=True)
    used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    external: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<QueryRow(id={self.id}, query='{self.query}')>"


class NavSessionRow(Base):
    __tablename__ = "nav_sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    format: Mapped[str] = mapped_column("format", Text, nullable=False)
    country_short: Mapped[str] = mapped_column(
        "countryShort",
        String(2),
        ForeignKey("countries.countryShort", ondelete="CASCADE"),
        nullable=False,
    )
    query_id: Mapped[Optional[int]] = mapped_column(
        "queryId", Integer, ForeignKey("queries.id", ondelete="SET NULL"), nullable=True
    )
    zip_id: Mapped[Optional[int]] = mapped_column(
        "zipId", Integer, ForeignKey("zips.id", ondelete="SET NULL"), nullable=True
    )
    city_id: Mapped[Optional[int]] = mapped_column(
        "cityId", Integer, ForeignKey("cities.id", ondelete="SET NULL"), nullable=True
    )
    state_short: Mapped[Optional[str]] = mapped_column("stateShort", Text, nullable=True)
    page: Mapped[Optional[str]] = mapped_column("page", Text, nullable=True)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    external: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("idx_nav_sessions_completed", "completed"),
    )

    def __repr__(self) -> str:
        return f"<NavSessionRow(id={self.id}, format='{self.format}', completed={self.completed})>"
