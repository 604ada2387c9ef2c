"""Tests for history paging, date filtering and resets."""

from datetime import UTC, date, datetime, timedelta, timezone

import pytest

from beaconhub.beacons.models import DISCONNECTED, UNKNOWN_BEACON, Beacon
from beaconhub.errors import ValidationError
from beaconhub.events.broker import Topic
from beaconhub.presence.history import (
    list_history,
    list_history_dates,
    local_day_bounds,
    reset_history,
    to_local,
)

KST = timezone(timedelta(hours=9))
T0 = datetime(2026, 1, 5, 0, 0, tzinfo=UTC)


@pytest.fixture
def five_reports(add_report):
    """alice reports at T0 .. T0+4h; returned oldest first."""
    return [add_report("alice", T0 + timedelta(hours=i)) for i in range(5)]


class TestTimeHelpers:
    def test_naive_values_are_utc(self):
        local = to_local(datetime(2026, 1, 5, 16, 0), KST)
        assert local.date() == date(2026, 1, 6)

    def test_day_bounds_in_fixed_zone(self):
        start, end = local_day_bounds(date(2026, 1, 5), KST)
        assert start == datetime(2026, 1, 4, 15, 0)
        assert end == datetime(2026, 1, 5, 15, 0)


class TestPaging:
    def test_default_page(self, session, five_reports):
        page = list_history(session, "alice")
        assert [e.report.id for e in page.items] == [r.id for r in reversed(five_reports)]
        assert (page.total, page.page, page.limit) == (5, 1, 200)

    def test_second_page(self, session, five_reports):
        page = list_history(session, "alice", limit=2, page=2)
        # Items 3-4 of the newest-first list
        assert [e.report.id for e in page.items] == [five_reports[2].id, five_reports[1].id]
        assert page.total == 5
        assert page.total_pages == 3

    def test_offset_overrides_page(self, session, five_reports):
        page = list_history(session, "alice", limit=2, page=2, offset=1)
        assert [e.report.id for e in page.items] == [five_reports[3].id, five_reports[2].id]

    def test_all_ignores_paging(self, session, five_reports):
        page = list_history(session, "alice", limit=2, page=2, all_reports=True)
        assert len(page.items) == 5

    def test_only_requested_nickname(self, session, five_reports, add_report):
        add_report("bob", T0)
        assert list_history(session, "alice").total == 5
        assert list_history(session, "bob").total == 1

    def test_rejects_bad_window(self, session):
        with pytest.raises(ValidationError):
            list_history(session, "alice", offset=-1)

    def test_page_beyond_end_is_empty(self, session, five_reports):
        page = list_history(session, "alice", limit=2, page=10)
        assert page.items == []
        assert page.total == 5


class TestDateFilter:
    @pytest.fixture
    def spread(self, add_report):
        return {
            "jan4_late": add_report("alice", datetime(2026, 1, 4, 14, 0, tzinfo=UTC)),  # 01-04 23:00 KST
            "jan5_early": add_report("alice", datetime(2026, 1, 4, 16, 0, tzinfo=UTC)),  # 01-05 01:00 KST
            "jan5_late": add_report("alice", datetime(2026, 1, 5, 10, 0, tzinfo=UTC)),  # 01-05 19:00 KST
            "jan6": add_report("alice", datetime(2026, 1, 5, 15, 30, tzinfo=UTC)),  # 01-06 00:30 KST
        }

    def test_filters_to_local_day_and_ignores_paging(self, session, spread):
        page = list_history(session, "alice", day=date(2026, 1, 5), limit=1, page=5, tz=KST)

        assert [e.report.id for e in page.items] == [
            spread["jan5_late"].id,
            spread["jan5_early"].id,
        ]
        assert page.total == 2

    def test_all_takes_precedence_over_date(self, session, spread):
        page = list_history(session, "alice", day=date(2026, 1, 5), all_reports=True, tz=KST)
        assert page.total == 4

    def test_distinct_dates_newest_first(self, session, spread):
        assert list_history_dates(session, "alice", tz=KST) == [
            date(2026, 1, 6),
            date(2026, 1, 5),
            date(2026, 1, 4),
        ]

    def test_dates_follow_zone(self, session, spread):
        assert list_history_dates(session, "alice", tz=UTC) == [
            date(2026, 1, 5),
            date(2026, 1, 4),
        ]


class TestAliasAnnotation:
    def test_each_row_resolved(self, session, add_report):
        session.add(Beacon(uuid="U1", major="1", minor="1", alias="Lobby"))
        session.commit()
        add_report("alice", T0, "U1", "1", "1")
        add_report("alice", T0 + timedelta(minutes=1))
        add_report("alice", T0 + timedelta(minutes=2), "U9", "9", "9")

        aliases = [e.beacon_alias for e in list_history(session, "alice").items]
        assert aliases == [UNKNOWN_BEACON, DISCONNECTED, "Lobby"]

    def test_directory_edits_rewrite_history(self, session, add_report):
        beacon = Beacon(uuid="U1", major="1", minor="1", alias="Lobby")
        session.add(beacon)
        session.commit()
        add_report("alice", T0, "U1", "1", "1")

        beacon.alias = "Atrium"
        session.commit()
        assert list_history(session, "alice").items[0].beacon_alias == "Atrium"


class TestResetHistory:
    def test_removes_all_reports(self, session, sink, five_reports, add_report):
        add_report("bob", T0)

        assert reset_history(session, "alice", events=sink) == 5
        assert list_history(session, "alice").total == 0
        assert list_history_dates(session, "alice") == []
        assert list_history(session, "bob").total == 1
        assert sink.topics == [Topic.history("alice"), Topic.users()]

    def test_reset_unknown_nickname_is_noop(self, session):
        assert reset_history(session, "ghost") == 0
