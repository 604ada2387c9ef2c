"""REST API endpoints."""

import logging
from datetime import UTC, date, datetime
from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel
from sqlmodel import Session

from beaconhub.audit import get_api_log, record_api_call
from beaconhub.beacons.directory import list_beacons, upsert_beacon
from beaconhub.beacons.models import Beacon, BeaconTriple
from beaconhub.config import settings
from beaconhub.database import get_session
from beaconhub.errors import ValidationError
from beaconhub.events.broker import Broker, Topic, get_broker
from beaconhub.presence.history import (
    list_history,
    list_history_dates,
    reset_history,
)
from beaconhub.presence.models import LocationReport, PresenceSnapshot, PresenceStatus
from beaconhub.presence.store import get_presence_snapshot, list_presence, report_location
from beaconhub.users.resolver import delete_user, register_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


def _utc(moment: datetime | None) -> datetime | None:
    """Stored timestamps come back naive from SQLite; they are UTC."""
    if moment is not None and moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment


def _envelope(message: str, data: Any = None, code: int = 200) -> dict[str, Any]:
    return {
        "success": True,
        "code": code,
        "message": message,
        "data": data,
        "timestamp": datetime.now(UTC).isoformat(),
    }


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Request models
class RegisterUserRequest(CamelModel):
    device_uuid: str | None = None
    nick_name: str | None = None
    user_nick_name: str | None = None


class ReportLocationRequest(CamelModel):
    nick_name: str | None = None
    user_nick_name: str | None = None
    beacon_uuid: str | None = None
    beacon_major: str | None = None
    beacon_minor: str | None = None
    time_stamp: str | None = None

    @field_validator("beacon_major", "beacon_minor", "time_stamp", mode="before")
    @classmethod
    def stringify_numbers(cls, v: object) -> object:
        """Some clients send major/minor as JSON numbers."""
        if isinstance(v, int | float) and not isinstance(v, bool):
            return str(v)
        return v


class UpsertBeaconRequest(BaseModel):
    uuid: str
    major: str
    minor: str
    alias: str


# Response models
class BeaconResponse(BaseModel):
    uuid: str
    major: str
    minor: str
    alias: str

    @classmethod
    def from_beacon(cls, beacon: Beacon) -> "BeaconResponse":
        return cls(uuid=beacon.uuid, major=beacon.major, minor=beacon.minor, alias=beacon.alias)


class UserStatusResponse(CamelModel):
    nickname: str
    device_uuid: str | None
    last_seen: datetime | None
    current_beacon: str
    status: PresenceStatus

    @classmethod
    def from_snapshot(cls, snapshot: PresenceSnapshot) -> "UserStatusResponse":
        return cls(
            nickname=snapshot.nickname,
            device_uuid=snapshot.device_uuid,
            last_seen=_utc(snapshot.last_seen),
            current_beacon=snapshot.current_beacon,
            status=snapshot.status,
        )


class HistoryItem(CamelModel):
    id: int | None
    nickname: str
    beacon_uuid: str
    beacon_major: str
    beacon_minor: str
    timestamp: str | None
    created_at: datetime
    api_log_id: int | None
    beacon_alias: str

    @classmethod
    def from_report(cls, report: LocationReport, alias: str) -> "HistoryItem":
        return cls(
            id=report.id,
            nickname=report.nickname,
            beacon_uuid=report.beacon_uuid,
            beacon_major=report.beacon_major,
            beacon_minor=report.beacon_minor,
            timestamp=report.timestamp,
            created_at=_utc(report.created_at),
            api_log_id=report.api_log_id,
            beacon_alias=alias,
        )


class Pagination(CamelModel):
    total: int
    page: int
    limit: int
    total_pages: int


class HistoryResponse(CamelModel):
    data: list[HistoryItem]
    pagination: Pagination


def _audit(
    session: Session,
    request: Request,
    body: BaseModel,
    response_body: dict[str, Any],
) -> int | None:
    """Record the call if auditing is on. Returns the log id, if any."""
    if not settings.audit_enabled:
        return None
    entry = record_api_call(
        session.get_bind(),  # type: ignore[arg-type]
        method=request.method,
        url=request.url.path,
        request_headers=request.headers,
        request_body=body.model_dump(by_alias=True, exclude_unset=True),
        response_status=200,
        response_headers={"content-type": "application/json"},
        response_body=response_body,
    )
    return entry.id if entry is not None else None


# --- Mobile-facing endpoints ---


@router.get("/external/beacons")
def external_beacons(
    session: Session = Depends(get_session),
) -> dict[str, Any]:
    beacons = [BeaconResponse.from_beacon(b).model_dump() for b in list_beacons(session)]
    return _envelope("Beacons fetched successfully", beacons)


@router.post("/users")
def register(
    body: RegisterUserRequest,
    request: Request,
    session: Session = Depends(get_session),
    events: Broker = Depends(get_broker),
) -> dict[str, Any]:
    nickname = body.nick_name or body.user_nick_name
    if not body.device_uuid or not nickname:
        raise ValidationError("deviceUuid and nickName (or userNickName) are required")

    user = register_user(session, body.device_uuid, nickname, events=events)
    response_data = _envelope(
        "User registered successfully",
        {"nickName": user.nickname, "deviceUuid": user.device_uuid},
    )
    _audit(session, request, body, response_data)
    return response_data


@router.post("/locations/report")
def report(
    body: ReportLocationRequest,
    request: Request,
    session: Session = Depends(get_session),
    events: Broker = Depends(get_broker),
) -> dict[str, Any]:
    nickname = body.nick_name or body.user_nick_name
    if not nickname:
        raise ValidationError("nickName or userNickName is required")

    response_data = _envelope("Location reported successfully", {"nickName": nickname})
    api_log_id = _audit(session, request, body, response_data)
    report_location(
        session,
        nickname,
        BeaconTriple.of(body.beacon_uuid, body.beacon_major, body.beacon_minor),
        client_timestamp=body.time_stamp,
        api_log_id=api_log_id,
        events=events,
    )
    return response_data


# --- Admin: users and presence ---


@router.get("/admin/users")
def admin_users(
    session: Session = Depends(get_session),
) -> list[UserStatusResponse]:
    return [UserStatusResponse.from_snapshot(s) for s in list_presence(session)]


@router.get("/admin/users/{nickname}/presence")
def admin_user_presence(
    nickname: str,
    session: Session = Depends(get_session),
) -> UserStatusResponse:
    return UserStatusResponse.from_snapshot(get_presence_snapshot(session, nickname))


@router.delete("/admin/users/{nickname}")
def admin_delete_user(
    nickname: str,
    session: Session = Depends(get_session),
    events: Broker = Depends(get_broker),
) -> dict[str, Any]:
    delete_user(session, nickname, events=events)
    return {
        "success": True,
        "message": f"User {nickname} and their history have been deleted successfully",
    }


# --- Admin: location history ---


@router.get("/admin/locations/{nickname}/dates")
def admin_history_dates(
    nickname: str,
    session: Session = Depends(get_session),
) -> list[date]:
    return list_history_dates(session, nickname, tz=settings.zone)


@router.get("/admin/locations/{nickname}")
def admin_history(
    nickname: str,
    day: date | None = Query(default=None, alias="date"),
    all_reports: bool = Query(default=False, alias="all"),
    limit: int | None = Query(default=None, ge=1),
    page: int | None = Query(default=None, ge=1),
    offset: int | None = Query(default=None, ge=0),
    session: Session = Depends(get_session),
) -> HistoryResponse:
    result = list_history(
        session,
        nickname,
        day=day,
        page=page,
        limit=limit,
        offset=offset,
        all_reports=all_reports,
        tz=settings.zone,
    )
    return HistoryResponse(
        data=[HistoryItem.from_report(e.report, e.beacon_alias) for e in result.items],
        pagination=Pagination(
            total=result.total,
            page=result.page,
            limit=result.limit,
            total_pages=result.total_pages,
        ),
    )


@router.delete("/admin/locations/{nickname}")
def admin_reset_history(
    nickname: str,
    session: Session = Depends(get_session),
    events: Broker = Depends(get_broker),
) -> dict[str, Any]:
    removed = reset_history(session, nickname, events=events)
    return {
        "success": True,
        "message": f"History for {nickname} has been reset successfully",
        "deleted": removed,
    }


# --- Admin: audit log and beacon directory ---


@router.get("/admin/logs/{log_id}")
def admin_log_detail(
    log_id: int,
    session: Session = Depends(get_session),
) -> dict[str, Any]:
    return get_api_log(session, log_id)


@router.get("/admin/beacons")
def admin_beacons(
    session: Session = Depends(get_session),
) -> list[BeaconResponse]:
    return [BeaconResponse.from_beacon(b) for b in list_beacons(session)]


@router.put("/admin/beacons")
def admin_upsert_beacon(
    request: UpsertBeaconRequest,
    session: Session = Depends(get_session),
    events: Broker = Depends(get_broker),
) -> BeaconResponse:
    beacon = upsert_beacon(session, request.uuid, request.major, request.minor, request.alias)
    # Aliases are resolved at query time, so every listing may have changed.
    events.publish(Topic.users())
    return BeaconResponse.from_beacon(beacon)
