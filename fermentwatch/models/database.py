"""SQLAlchemy models and async engine manager for FermentWatch."""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, String
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.ext.asyncio import (
    AsyncAttrs,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from fermentwatch.models.enums import ControlMode, DeviceKind, FermentationType


class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all ORM models."""


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(UTC)


class Device(Base):
    __tablename__ = "devices"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    kind: Mapped[DeviceKind] = mapped_column(
        SQLEnum(DeviceKind, name="device_kind_enum", native_enum=False), nullable=False
    )
    # Raw network address (host or host:port) for direct control
    address: Mapped[str | None] = mapped_column(String(255))
    ha_entity_id: Mapped[str | None] = mapped_column(String(255))


class Project(Base):
    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    fermentation_type: Mapped[FermentationType] = mapped_column(
        SQLEnum(FermentationType, name="fermentation_type_enum", native_enum=False),
        nullable=False,
        default=FermentationType.beer,
    )
    sensor_id: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("devices.id", ondelete="SET NULL")
    )
    outlet_id: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("devices.id", ondelete="SET NULL")
    )
    target_temperature: Mapped[float] = mapped_column(Float(), nullable=False)
    current_temperature: Mapped[float | None] = mapped_column(Float())
    outlet_active: Mapped[bool] = mapped_column(Boolean(), default=False, nullable=False)
    control_mode: Mapped[ControlMode] = mapped_column(
        SQLEnum(ControlMode, name="control_mode_enum", native_enum=False),
        default=ControlMode.automatic,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


# ============================================================================
# Global engine and session management
# ============================================================================

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


_db_logger = logging.getLogger(__name__)


def get_engine() -> AsyncEngine:
    """Get the global async engine."""
    global _engine
    if _engine is None:
        from fermentwatch.config import get_settings

        settings = get_settings()

        _db_logger.info(
            "Creating engine -> %s:%s/%s",
            settings.db_host,
            settings.db_port,
            settings.db_name,
        )

        _engine = create_async_engine(
            settings.database_url,
            echo=settings.debug,
            future=True,
            pool_pre_ping=True,
        )
    return _engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """Get the global session factory."""
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(get_engine(), expire_on_commit=False)
    return _session_factory


async def init_db(engine: AsyncEngine | None = None) -> None:
    """Initialize database - create all tables."""
    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    _db_logger.info("Database tables ensured")


async def close_db() -> None:
    """Close database connections."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
