"""Catalog models: salons, their services and offers, and customer accounts."""

from typing_extensions import override

from sqlalchemy import BigInteger, Boolean, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class Salon(Base):
    __tablename__ = "salons"  # pyright: ignore[reportUnannotatedClassAttribute]

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    salon_id: Mapped[str] = mapped_column(String, unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    owner_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    location: Mapped[str | None] = mapped_column(String, nullable=True)

    # Minutes assumed for a service whose duration is unknown
    default_service_minutes: Mapped[float | None] = mapped_column(Float, nullable=True)

    @override
    def __repr__(self) -> str:
        return f"<Salon(salon_id={self.salon_id}, owner_id={self.owner_id})>"


class Service(Base):
    __tablename__ = "services"  # pyright: ignore[reportUnannotatedClassAttribute]

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    service_id: Mapped[str] = mapped_column(String, unique=True, nullable=False, index=True)
    salon_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    price: Mapped[float] = mapped_column(Float, nullable=False)
    duration: Mapped[int | None] = mapped_column(Integer, nullable=True)

    @override
    def __repr__(self) -> str:
        return f"<Service(service_id={self.service_id}, salon_id={self.salon_id})>"


class Offer(Base):
    """Percentage discount, valid between valid_from and valid_until (epoch ms)."""

    __tablename__ = "offers"  # pyright: ignore[reportUnannotatedClassAttribute]

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    offer_id: Mapped[str] = mapped_column(String, unique=True, nullable=False, index=True)
    salon_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    title: Mapped[str] = mapped_column(String, nullable=False)
    discount: Mapped[float] = mapped_column(Float, nullable=False)
    valid_from: Mapped[int] = mapped_column(BigInteger, nullable=False)
    valid_until: Mapped[int] = mapped_column(BigInteger, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    @override
    def __repr__(self) -> str:
        return f"<Offer(offer_id={self.offer_id}, discount={self.discount})>"


class Customer(Base):
    __tablename__ = "customers"  # pyright: ignore[reportUnannotatedClassAttribute]

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String, unique=True, nullable=False, index=True)
    name: Mapped[str | None] = mapped_column(String, nullable=True)
    loyalty_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    @override
    def __repr__(self) -> str:
        return f"<Customer(user_id={self.user_id}, loyalty_points={self.loyalty_points})>"
