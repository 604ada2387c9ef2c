"""Location report model and derived presence views."""

import enum
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlmodel import Field, SQLModel

from beaconhub.beacons.models import BeaconTriple


class PresenceStatus(enum.StrEnum):
    active = "Active"
    away = "Away"


class LocationReport(SQLModel, table=True):
    """Append-only log of beacon sightings.

    ``nickname`` is deliberately not a foreign key: reports may arrive before
    registration and survive a user row moving to another nickname.
    """

    id: int | None = Field(default=None, primary_key=True)
    nickname: str = Field(index=True)
    beacon_uuid: str = ""
    beacon_major: str = ""
    beacon_minor: str = ""
    timestamp: str | None = None  # client clock, advisory only
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC), index=True)
    api_log_id: int | None = None

    @property
    def beacon(self) -> BeaconTriple:
        return BeaconTriple.of(self.beacon_uuid, self.beacon_major, self.beacon_minor)


@dataclass
class PresenceSnapshot:
    """Current status and location of one nickname."""

    nickname: str
    device_uuid: str | None
    status: PresenceStatus
    current_beacon: str
    last_seen: datetime | None
    latest_report: LocationReport | None = None
