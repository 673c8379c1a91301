"""ORM models for relay stations, their tokens and telemetry events."""

from __future__ import annotations

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)

from .database import Base


class RelayStationRow(Base):
    __tablename__ = "relay_stations"

    id = Column(Text, primary_key=True)
    name = Column(Text, nullable=False)
    description = Column(Text)
    api_url = Column(Text, nullable=False)
    adapter = Column(Text, nullable=False)
    auth_method = Column(Text, nullable=False)
    system_token = Column(Text, nullable=False)
    user_id = Column(Text)
    adapter_config = Column(Text)
    enabled = Column(Integer, nullable=False, default=1)
    created_at = Column(Integer, nullable=False)
    updated_at = Column(Integer, nullable=False)


class RelayStationTokenRow(Base):
    __tablename__ = "relay_station_tokens"

    id = Column(Text, primary_key=True)
    station_id = Column(
        Text, ForeignKey("relay_stations.id", ondelete="CASCADE"), nullable=False
    )
    name = Column(Text, nullable=False)
    token = Column(Text, nullable=False)
    user_id = Column(Text)
    enabled = Column(Integer, nullable=False, default=1)
    expires_at = Column(Integer)
    metadata_json = Column("metadata", Text)
    created_at = Column(Integer, nullable=False)

    __table_args__ = (
        Index("idx_station_tokens_station_id", "station_id"),
        Index("idx_station_tokens_enabled", "enabled"),
    )


class RelayEvent(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ts = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    level = Column(String(16), nullable=False)
    kind = Column(String(64), nullable=False)
    request_id = Column(String(64))
    station_id = Column(String(64))
    provider_id = Column(String(100))
    message = Column(String(512))
    meta = Column(Text)

    __table_args__ = (
        Index("ix_events_ts", "ts"),
        Index("ix_events_kind_ts", "kind", "ts"),
    )
