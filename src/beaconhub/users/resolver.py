"""Identity resolution: binding devices to nicknames.

A registration names a device and a nickname, either of which may already
belong to a user. The outcome is chosen from a fixed decision table:

=============  ======================  ==========
device owner   nickname owner          action
=============  ======================  ==========
user A         user B (B != A)         merge
user A         nobody, or A            rename
nobody         user B                  migrate
nobody         nobody                  create
=============  ======================  ==========
"""

import enum
import logging
from collections.abc import Hashable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime

from sqlalchemy import delete
from sqlmodel import Session, col, select

from beaconhub.database import commit
from beaconhub.errors import NotFoundError, require
from beaconhub.events.broker import EventSink, Topic
from beaconhub.locking import device_key, nickname_key, registry_locks
from beaconhub.presence.models import LocationReport
from beaconhub.users.models import User

logger = logging.getLogger(__name__)


class Reconciliation(enum.StrEnum):
    merge = "merge"
    rename = "rename"
    migrate = "migrate"
    create = "create"


def classify_registration(by_device: User | None, by_nickname: User | None) -> Reconciliation:
    """Pick the decision-table row for the current owners."""
    if by_device is not None:
        if by_nickname is not None and by_nickname.id != by_device.id:
            return Reconciliation.merge
        return Reconciliation.rename
    if by_nickname is not None:
        return Reconciliation.migrate
    return Reconciliation.create


def get_user(session: Session, nickname: str) -> User | None:
    return session.exec(select(User).where(User.nickname == nickname)).first()


def get_user_by_device(session: Session, device_uuid: str) -> User | None:
    return session.exec(select(User).where(User.device_uuid == device_uuid)).first()


def list_users(session: Session) -> list[User]:
    stmt = select(User).order_by(User.nickname)
    return list(session.exec(stmt).all())


def _row_keys(user: User | None) -> set[Hashable]:
    if user is None:
        return set()
    return {device_key(user.device_uuid), nickname_key(user.nickname)}


@contextmanager
def _hold_owners(
    session: Session,
    nickname: str,
    device_uuid: str | None = None,
) -> Iterator[tuple[User | None, User | None]]:
    """Yield the current owners of ``device_uuid`` and ``nickname``.

    Locks cover the requested keys and every key of the owning rows, so no
    other writer can touch those rows until the block exits. If an owner's
    keys change between attempts, the larger key set is taken and the rows
    are read again.
    """
    keys: set[Hashable] = {nickname_key(nickname)}
    if device_uuid is not None:
        keys.add(device_key(device_uuid))

    while True:
        with registry_locks.hold(*keys):
            # Rows may have changed while no lock was held
            session.expire_all()
            by_device = get_user_by_device(session, device_uuid) if device_uuid else None
            by_nickname = get_user(session, nickname)
            needed = keys | _row_keys(by_device) | _row_keys(by_nickname)
            if needed <= keys:
                yield by_device, by_nickname
                return
        keys = needed


def register_user(
    session: Session,
    device_uuid: str | None,
    nickname: str | None,
    events: EventSink | None = None,
) -> User:
    """Bind ``device_uuid`` and ``nickname`` to exactly one user.

    Afterwards exactly one user has the device and that same user has the
    nickname. Raises ValidationError for empty input and ConflictError if a
    concurrent writer outside this process wins a uniqueness race.
    """
    device_uuid = require(device_uuid, "deviceUuid")
    nickname = require(nickname, "nickName")

    with _hold_owners(session, nickname, device_uuid) as (by_device, by_nickname):
        logger.debug(
            "Registration %s/%r resolved as %s",
            device_uuid,
            nickname,
            classify_registration(by_device, by_nickname),
        )
        now = datetime.now(UTC)

        if by_device is not None and by_nickname is not None and by_nickname.id != by_device.id:
            # The nickname holder keeps its identity and takes over the
            # device; the row that held the device is absorbed.
            logger.info(
                "Merging %r (device %s) into %r", by_device.nickname, device_uuid, nickname
            )
            session.delete(by_device)
            session.flush()
            by_nickname.device_uuid = device_uuid
            by_nickname.updated_at = now
            user = by_nickname
        elif by_device is not None:
            if by_device.nickname != nickname:
                logger.info("Renaming %r to %r", by_device.nickname, nickname)
            by_device.nickname = nickname
            by_device.updated_at = now
            user = by_device
        elif by_nickname is not None:
            logger.info(
                "Moving %r from device %s to %s", nickname, by_nickname.device_uuid, device_uuid
            )
            by_nickname.device_uuid = device_uuid
            by_nickname.updated_at = now
            user = by_nickname
        else:
            user = User(device_uuid=device_uuid, nickname=nickname)
            session.add(user)
            logger.info("Registered %r on device %s", nickname, device_uuid)

        commit(session)
        session.refresh(user)

    if events is not None:
        events.publish(Topic.users())
    return user


def delete_user(session: Session, nickname: str, events: EventSink | None = None) -> int:
    """Delete a user and every report filed under its nickname.

    Returns the number of reports removed. Raises NotFoundError if the user
    does not exist.
    """
    with _hold_owners(session, nickname) as (_, user):
        if user is None:
            raise NotFoundError(f"User {nickname} not found")

        result = session.exec(  # type: ignore[call-overload]
            delete(LocationReport).where(col(LocationReport.nickname) == nickname)
        )
        session.delete(user)
        commit(session)

    removed = result.rowcount or 0
    logger.info("Deleted user %r and %d report(s)", nickname, removed)
    if events is not None:
        events.publish(Topic.history(nickname))
        events.publish(Topic.users())
    return removed
