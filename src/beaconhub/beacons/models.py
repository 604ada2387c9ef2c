"""Beacon directory model and the beacon identity triple."""

from dataclasses import dataclass

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

# Alias fallbacks
DISCONNECTED = "Disconnected"
OUTSIDE_RANGE = "Outside Range"
UNKNOWN = "Unknown"
UNKNOWN_BEACON = "Unknown Beacon"


class Beacon(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("uuid", "major", "minor"),)

    id: int | None = Field(default=None, primary_key=True)
    uuid: str = Field(index=True)
    major: str
    minor: str
    alias: str


@dataclass(frozen=True)
class BeaconTriple:
    """(uuid, major, minor) as reported by a client.

    Missing components are empty strings, never None. The all-empty triple
    means the client is not in range of any beacon.
    """

    uuid: str = ""
    major: str = ""
    minor: str = ""

    @classmethod
    def of(
        cls,
        uuid: str | None = None,
        major: str | None = None,
        minor: str | None = None,
    ) -> "BeaconTriple":
        return cls(uuid or "", major or "", minor or "")

    @property
    def is_empty(self) -> bool:
        return not (self.uuid or self.major or self.minor)
