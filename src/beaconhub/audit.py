"""Best-effort audit trail of mobile-facing API calls."""

import json
import logging
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.engine import Engine
from sqlmodel import Field, Session, SQLModel

from beaconhub.errors import NotFoundError

logger = logging.getLogger(__name__)


class ApiLog(SQLModel, table=True):
    """A recorded request/response pair. JSON payloads are stored as text."""

    id: int | None = Field(default=None, primary_key=True)
    method: str
    url: str
    request_headers: str = "{}"
    request_body: str = "null"
    response_status: int
    response_headers: str = "{}"
    response_body: str = "null"
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


def _dump(value: Any) -> str:
    if isinstance(value, Mapping):
        value = dict(value)
    return json.dumps(value, ensure_ascii=False, default=str)


def record_api_call(
    engine: Engine,
    method: str,
    url: str,
    request_headers: Mapping[str, str],
    request_body: Any,
    response_status: int,
    response_headers: Mapping[str, str],
    response_body: Any,
) -> ApiLog | None:
    """Persist an API call in its own session.

    Failures are logged and swallowed so the audited operation never fails
    because of its audit record. Returns None in that case.
    """
    try:
        with Session(engine) as session:
            entry = ApiLog(
                method=method,
                url=url,
                request_headers=_dump(request_headers),
                request_body=_dump(request_body),
                response_status=response_status,
                response_headers=_dump(response_headers),
                response_body=_dump(response_body),
            )
            session.add(entry)
            session.commit()
            session.refresh(entry)
            return entry
    except Exception:
        logger.exception("Failed to log API call %s %s", method, url)
        return None


def get_api_log(session: Session, log_id: int) -> dict[str, Any]:
    """Return a log entry with its JSON payloads decoded."""
    entry = session.get(ApiLog, log_id)
    if entry is None:
        raise NotFoundError("Log not found")
    return {
        "id": entry.id,
        "method": entry.method,
        "url": entry.url,
        "requestHeaders": json.loads(entry.request_headers),
        "requestBody": json.loads(entry.request_body),
        "responseStatus": entry.response_status,
        "responseHeaders": json.loads(entry.response_headers),
        "responseBody": json.loads(entry.response_body),
        "createdAt": entry.created_at.isoformat(),
    }
