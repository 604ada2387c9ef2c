"""Location report ingestion and presence snapshots."""

import logging

from sqlmodel import Session, col, select

from beaconhub.beacons.directory import resolve_alias
from beaconhub.beacons.models import OUTSIDE_RANGE, UNKNOWN, BeaconTriple
from beaconhub.database import commit
from beaconhub.errors import NotFoundError, require
from beaconhub.events.broker import EventSink, Topic
from beaconhub.locking import nickname_key, registry_locks
from beaconhub.presence.models import LocationReport, PresenceSnapshot, PresenceStatus
from beaconhub.users.models import User
from beaconhub.users.resolver import get_user, list_users

logger = logging.getLogger(__name__)


def report_location(
    session: Session,
    nickname: str | None,
    beacon: BeaconTriple | None = None,
    client_timestamp: str | None = None,
    api_log_id: int | None = None,
    events: EventSink | None = None,
) -> LocationReport:
    """Append a sighting for ``nickname``.

    A missing beacon records a disconnect. The nickname does not need a
    registered user; reports and registrations may arrive in either order.
    """
    nickname = require(nickname, "nickName")
    beacon = beacon or BeaconTriple()

    with registry_locks.hold(nickname_key(nickname)):
        report = LocationReport(
            nickname=nickname,
            beacon_uuid=beacon.uuid,
            beacon_major=beacon.major,
            beacon_minor=beacon.minor,
            timestamp=client_timestamp,
            api_log_id=api_log_id,
        )
        session.add(report)
        commit(session)
        session.refresh(report)

    logger.debug(
        "Report from %r: %s",
        nickname,
        "disconnected" if beacon.is_empty else f"{beacon.uuid}/{beacon.major}/{beacon.minor}",
    )
    if events is not None:
        events.publish(Topic.users())
        events.publish(Topic.history(nickname))
    return report


def get_latest_report(session: Session, nickname: str) -> LocationReport | None:
    """Most recent report by server creation time (id breaks ties)."""
    stmt = (
        select(LocationReport)
        .where(LocationReport.nickname == nickname)
        .order_by(col(LocationReport.created_at).desc(), col(LocationReport.id).desc())
        .limit(1)
    )
    return session.exec(stmt).first()


def _snapshot(session: Session, nickname: str, user: User | None) -> PresenceSnapshot:
    latest = get_latest_report(session, nickname)
    if latest is None:
        return PresenceSnapshot(
            nickname=nickname,
            device_uuid=user.device_uuid if user else None,
            status=PresenceStatus.away,
            current_beacon=UNKNOWN,
            last_seen=user.updated_at if user else None,
        )

    beacon = latest.beacon
    # No staleness check: the last report stands until another arrives.
    status = PresenceStatus.away if beacon.is_empty else PresenceStatus.active
    return PresenceSnapshot(
        nickname=nickname,
        device_uuid=user.device_uuid if user else None,
        status=status,
        current_beacon=resolve_alias(session, beacon, unregistered=OUTSIDE_RANGE),
        last_seen=latest.created_at,
        latest_report=latest,
    )


def get_presence_snapshot(session: Session, nickname: str) -> PresenceSnapshot:
    """Current status and location for one nickname.

    Raises NotFoundError if the nickname has neither a user nor any report.
    """
    user = get_user(session, nickname)
    snapshot = _snapshot(session, nickname, user)
    if user is None and snapshot.latest_report is None:
        raise NotFoundError(f"User {nickname} not found")
    return snapshot


def list_presence(session: Session) -> list[PresenceSnapshot]:
    """One snapshot per registered user, for the dashboard listing."""
    return [_snapshot(session, user.nickname, user) for user in list_users(session)]
