"""
Karaoke Queue Service - Events

Events are the aggregation root for requests and crates.  Plain CRUD plus
the org-ownership check used by every admin operation on an event.
"""

from datetime import datetime
from typing import Any, List, Optional

from karaoke import database
from karaoke.auth import AuthenticatedPrincipal
from karaoke.errors import ForbiddenError, NotFoundError, ValidationError
from karaoke.models import Event, EventStatus, Role
from karaoke.validation import optional_text, require_id, require_text


def _parse_status(value: Any) -> EventStatus:
    try:
        return EventStatus(value)
    except ValueError:
        raise ValidationError(
            "status must be one of: " + ", ".join(s.value for s in EventStatus),
            field="status",
        ) from None


def _parse_date(value: Any) -> str:
    text = require_text(value, "date")
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).isoformat()
    except ValueError:
        raise ValidationError("date must be an ISO-8601 date or datetime", field="date") from None


async def get_event(event_id: str) -> Event:
    require_id(event_id, "event_id")
    row = await database.get_event(event_id)
    if not row:
        raise NotFoundError("event", event_id)
    return Event.from_row(row)


def ensure_event_admin(event: Event, principal: AuthenticatedPrincipal) -> None:
    """Admins may only manage events that belong to their organization."""
    if principal.role is not Role.ADMIN:
        raise ForbiddenError("Admin access required")
    if principal.org_id != event.org_id:
        raise ForbiddenError(
            "Event belongs to another organization", {"event_id": event.id}
        )


async def get_event_for_admin(event_id: str, principal: AuthenticatedPrincipal) -> Event:
    event = await get_event(event_id)
    ensure_event_admin(event, principal)
    return event


async def create_event(
    principal: AuthenticatedPrincipal,
    name: Any,
    date: Any,
    venue: Any = None,
) -> Event:
    if not principal.org_id:
        raise ForbiddenError("An organization is required to create events")
    row = await database.insert_event(
        org_id=principal.org_id,
        name=require_text(name, "name"),
        date=_parse_date(date),
        venue=optional_text(venue, "venue"),
        created_by=principal.id,
        status=EventStatus.DRAFT.value,
    )
    return Event.from_row(row)


async def list_events(org_id: Optional[str] = None, status: Optional[str] = None) -> List[Event]:
    status_value = _parse_status(status).value if status else None
    rows = await database.list_events(org_id=org_id, status=status_value)
    return [Event.from_row(r) for r in rows]


async def get_active_event(org_id: Optional[str] = None) -> Event:
    row = await database.get_latest_active_event(org_id)
    if not row:
        raise NotFoundError("event")
    return Event.from_row(row)


async def update_event(
    event_id: str,
    principal: AuthenticatedPrincipal,
    name: Any = None,
    date: Any = None,
    venue: Any = None,
    status: Any = None,
) -> Event:
    await get_event_for_admin(event_id, principal)

    fields = {}
    if name is not None:
        fields["name"] = require_text(name, "name")
    if date is not None:
        fields["date"] = _parse_date(date)
    if venue is not None:
        fields["venue"] = optional_text(venue, "venue")
    if status is not None:
        fields["status"] = _parse_status(status).value
    if not fields:
        raise ValidationError("No fields to update")

    await database.update_event(event_id, **fields)
    return await get_event(event_id)
