"""History queries over the location report log."""

import logging
import math
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta, tzinfo

from sqlalchemy import delete, func
from sqlmodel import Session, col, select

from beaconhub.beacons.directory import resolve_alias
from beaconhub.beacons.models import UNKNOWN_BEACON, BeaconTriple
from beaconhub.config import settings
from beaconhub.database import commit
from beaconhub.errors import ValidationError
from beaconhub.events.broker import EventSink, Topic
from beaconhub.locking import nickname_key, registry_locks
from beaconhub.presence.models import LocationReport

logger = logging.getLogger(__name__)


@dataclass
class HistoryEntry:
    report: LocationReport
    beacon_alias: str


@dataclass
class HistoryPage:
    items: list[HistoryEntry]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit)


def to_local(moment: datetime, tz: tzinfo | None = None) -> datetime:
    """Convert a stored timestamp to ``tz`` (None = server local zone).

    SQLite returns naive datetimes; they are UTC.
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.astimezone(tz)


def local_day_bounds(day: date, tz: tzinfo | None = None) -> tuple[datetime, datetime]:
    """Half-open UTC range [start, end) covering ``day`` in ``tz``.

    Bounds are naive UTC to compare against stored values. Days shortened or
    lengthened by a DST change keep their true length.
    """
    start = datetime.combine(day, time.min)
    end = datetime.combine(day + timedelta(days=1), time.min)
    if tz is None:
        start, end = start.astimezone(), end.astimezone()
    else:
        start, end = start.replace(tzinfo=tz), end.replace(tzinfo=tz)
    return (
        start.astimezone(UTC).replace(tzinfo=None),
        end.astimezone(UTC).replace(tzinfo=None),
    )


def _annotate(session: Session, reports: list[LocationReport]) -> list[HistoryEntry]:
    # Aliases reflect the directory as it is now, not when the report was filed.
    aliases: dict[BeaconTriple, str] = {}
    entries = []
    for report in reports:
        triple = report.beacon
        if triple not in aliases:
            aliases[triple] = resolve_alias(session, triple, unregistered=UNKNOWN_BEACON)
        entries.append(HistoryEntry(report=report, beacon_alias=aliases[triple]))
    return entries


def list_history(
    session: Session,
    nickname: str,
    day: date | None = None,
    page: int | None = None,
    limit: int | None = None,
    offset: int | None = None,
    all_reports: bool = False,
    tz: tzinfo | None = None,
) -> HistoryPage:
    """Reports for ``nickname``, newest first.

    ``all_reports`` returns everything; otherwise ``day`` selects one local
    calendar day, unpaged. Without either, results are paged by ``limit``
    (default from settings) and ``page`` (default 1), with an explicit
    ``offset`` taking precedence over the page-derived one.
    """
    page = page or 1
    limit = limit or settings.history_page_size
    if page < 1 or limit < 1 or (offset is not None and offset < 0):
        raise ValidationError("page and limit must be positive and offset non-negative")

    conditions = [col(LocationReport.nickname) == nickname]
    if day is not None and not all_reports:
        start, end = local_day_bounds(day, tz)
        conditions.append(col(LocationReport.created_at) >= start)
        conditions.append(col(LocationReport.created_at) < end)

    stmt = (
        select(LocationReport)
        .where(*conditions)
        .order_by(col(LocationReport.created_at).desc(), col(LocationReport.id).desc())
    )
    if not all_reports and day is None:
        skip = offset if offset is not None else (page - 1) * limit
        stmt = stmt.offset(skip).limit(limit)

    reports = list(session.exec(stmt).all())
    total = session.exec(
        select(func.count()).select_from(LocationReport).where(*conditions)
    ).one()

    return HistoryPage(
        items=_annotate(session, reports),
        total=total,
        page=page,
        limit=limit,
    )


def list_history_dates(session: Session, nickname: str, tz: tzinfo | None = None) -> list[date]:
    """Distinct local dates with at least one report, most recent first."""
    stmt = (
        select(LocationReport.created_at)
        .where(LocationReport.nickname == nickname)
        .order_by(col(LocationReport.created_at).desc())
    )
    days: list[date] = []
    seen: set[date] = set()
    for created_at in session.exec(stmt).all():
        day = to_local(created_at, tz).date()
        if day not in seen:
            seen.add(day)
            days.append(day)
    return days


def reset_history(session: Session, nickname: str, events: EventSink | None = None) -> int:
    """Delete every report for ``nickname``. Returns the number removed."""
    with registry_locks.hold(nickname_key(nickname)):
        result = session.exec(  # type: ignore[call-overload]
            delete(LocationReport).where(col(LocationReport.nickname) == nickname)
        )
        commit(session)

    removed = result.rowcount or 0
    logger.info("Reset history for %r (%d report(s))", nickname, removed)
    if events is not None:
        events.publish(Topic.history(nickname))
        events.publish(Topic.users())
    return removed
