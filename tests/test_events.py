"""
Karaoke Queue Service - Event Tests

Tests for the karaoke/services/events.py module. Validates:
- Creation as a draft owned by the admin's organization
- Date parsing and status validation
- Listing by organization / status, soonest first
- The most recent active event lookup
- Updates restricted to admins of the owning organization
"""

import pytest

from karaoke.auth import AuthenticatedPrincipal
from karaoke.errors import ForbiddenError, NotFoundError, ValidationError
from karaoke.models import EventStatus, Role
from karaoke.services import events
from tests.conftest import OTHER_ORG_ID, ORG_ID, make_event, run

ADMIN = AuthenticatedPrincipal(id="host-1", role=Role.ADMIN, org_id=ORG_ID)


class TestCreate:
    """Test event creation."""

    def test_draft_in_admin_org(self, db_path):
        event = run(events.create_event(ADMIN, "Friday Night", "2026-10-23T20:00:00Z", "Blue Room"))
        assert event.status is EventStatus.DRAFT
        assert event.org_id == ORG_ID
        assert event.created_by == "host-1"
        assert event.date == "2026-10-23T20:00:00+00:00"

    def test_requires_org(self, db_path):
        admin = AuthenticatedPrincipal(id="host-9", role=Role.ADMIN)
        with pytest.raises(ForbiddenError):
            run(events.create_event(admin, "x", "2026-10-23"))

    @pytest.mark.parametrize("date", ["", "next friday", None])
    def test_bad_date(self, db_path, date):
        with pytest.raises(ValidationError) as exc:
            run(events.create_event(ADMIN, "x", date))
        assert exc.value.field == "date"

    def test_blank_name(self, db_path):
        with pytest.raises(ValidationError):
            run(events.create_event(ADMIN, "  ", "2026-10-23"))


class TestReads:
    """Test event lookups."""

    def test_list_filters_by_org_and_status(self, db_path):
        make_event(status="active")
        make_event(status="draft")
        make_event(org_id=OTHER_ORG_ID)
        assert len(run(events.list_events(org_id=ORG_ID))) == 2
        assert len(run(events.list_events(org_id=ORG_ID, status="draft"))) == 1

    def test_list_bad_status(self, db_path):
        with pytest.raises(ValidationError):
            run(events.list_events(status="archived"))

    def test_active_event(self, db_path):
        make_event(status="draft")
        active = make_event(status="active")
        assert run(events.get_active_event(ORG_ID)).id == active["id"]

    def test_no_active_event(self, db_path):
        make_event(status="closed")
        with pytest.raises(NotFoundError):
            run(events.get_active_event(ORG_ID))


class TestUpdate:
    """Test event updates."""

    def test_update_fields(self, event):
        updated = run(events.update_event(event["id"], ADMIN, name="Saturday", status="closed"))
        assert updated.name == "Saturday"
        assert updated.status is EventStatus.CLOSED

    def test_nothing_to_update(self, event):
        with pytest.raises(ValidationError):
            run(events.update_event(event["id"], ADMIN))

    def test_other_org_forbidden(self, event):
        other = AuthenticatedPrincipal(id="host-2", role=Role.ADMIN, org_id=OTHER_ORG_ID)
        with pytest.raises(ForbiddenError):
            run(events.update_event(event["id"], other, name="Mine"))
