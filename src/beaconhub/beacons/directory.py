"""Beacon lookups, alias resolution and administrative updates."""

import logging

from sqlmodel import Session, select

from beaconhub.beacons.models import DISCONNECTED, OUTSIDE_RANGE, Beacon, BeaconTriple
from beaconhub.database import commit
from beaconhub.errors import require

logger = logging.getLogger(__name__)

DEFAULT_BEACONS = [
    ("FDA50693-A4E2-4FB1-AFCF-C6EB07647825", "10001", "19645", "Office"),
    ("FDA50693-A4E2-4FB1-AFCF-C6EB07647825", "10001", "19646", "Next to the elevator"),
    ("D4F6A8C0-E2B4-4D6F-8A0C-2E4B6D8F0A2C", "10001", "5001", "본사 1층"),
    ("D4F6A8C0-E2B4-4D6F-8A0C-2E4B6D8F0A2C", "10001", "5002", "본사 2층"),
    ("D4F6A8C0-E2B4-4D6F-8A0C-2E4B6D8F0A2C", "10001", "5003", "본사 3층"),
    ("D4F6A8C0-E2B4-4D6F-8A0C-2E4B6D8F0A2C", "10001", "5004", "본사 4층"),
]


def find_beacon(session: Session, uuid: str, major: str, minor: str) -> Beacon | None:
    """Look up a beacon by its identity triple."""
    stmt = select(Beacon).where(
        Beacon.uuid == uuid,
        Beacon.major == major,
        Beacon.minor == minor,
    )
    return session.exec(stmt).first()


def resolve_alias(
    session: Session,
    triple: BeaconTriple,
    unregistered: str = OUTSIDE_RANGE,
) -> str:
    """Display name for a reported triple.

    Empty triples resolve to "Disconnected"; triples missing from the
    directory resolve to ``unregistered``.
    """
    if triple.is_empty:
        return DISCONNECTED
    beacon = find_beacon(session, triple.uuid, triple.major, triple.minor)
    if beacon is None:
        return unregistered
    return beacon.alias


def list_beacons(session: Session) -> list[Beacon]:
    stmt = select(Beacon).order_by(Beacon.uuid, Beacon.major, Beacon.minor)
    return list(session.exec(stmt).all())


def upsert_beacon(session: Session, uuid: str, major: str, minor: str, alias: str) -> Beacon:
    """Create a beacon or rename an existing one."""
    uuid = require(uuid, "uuid")
    major = require(major, "major")
    minor = require(minor, "minor")
    alias = require(alias, "alias")

    beacon = find_beacon(session, uuid, major, minor)
    if beacon is None:
        beacon = Beacon(uuid=uuid, major=major, minor=minor, alias=alias)
        session.add(beacon)
        logger.info("Registered beacon %s/%s/%s as %r", uuid, major, minor, alias)
    else:
        logger.info("Renamed beacon %s/%s/%s: %r -> %r", uuid, major, minor, beacon.alias, alias)
        beacon.alias = alias

    commit(session)
    session.refresh(beacon)
    return beacon


def seed_default_beacons(session: Session) -> int:
    """Insert the default beacon set. Existing aliases are left untouched.

    Returns the number of beacons inserted.
    """
    inserted = 0
    for uuid, major, minor, alias in DEFAULT_BEACONS:
        if find_beacon(session, uuid, major, minor) is None:
            session.add(Beacon(uuid=uuid, major=major, minor=minor, alias=alias))
            inserted += 1
    if inserted:
        commit(session)
        logger.info("Seeded %d default beacon(s)", inserted)
    return inserted
