"""
View logic for the citizen and admin dashboards.

Each function is one screen action: load a list, submit a form, or run a
single mutation. Failures follow one policy:

- form submissions return the backend message so the page can show it
  inline and keep the form filled in;
- list loads, toggles and deletes only log, and the caller keeps whatever
  it was already showing.

Every backend call can be tied to a ``ViewScope``. Closing the scope cancels
the calls still in flight and they resolve to None instead of results.
"""

import asyncio
import logging
from typing import Any, Awaitable, Iterable, List, Optional, Set

from .models import (Amenity, AmenityForm, Announcement, AnnouncementForm, Complaint,
                     ComplaintCreate, ComplaintStatus, ComplaintTriage, DashboardStats, Role)
from .store import BackendError, Store

logger = logging.getLogger(__name__)


class ViewScope:
    """Owns the in-flight backend calls of one rendered view."""

    def __init__(self):
        self._tasks: Set[asyncio.Future] = set()
        self.closed = False

    async def run(self, coro: Awaitable) -> Any:
        if self.closed:
            coro.close()
            return None
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            self._tasks.discard(task)
        if task.cancelled():
            return None
        return task.result()

    def close(self):
        self.closed = True
        for task in list(self._tasks):
            task.cancel()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        self.close()


class FormResult:
    def __init__(self, record=None, error: Optional[str] = None, missing: bool = False):
        self.record = record
        self.error = error
        self.missing = missing

    @property
    def ok(self) -> bool:
        return self.error is None and self.record is not None


async def _run(scope: Optional[ViewScope], coro: Awaitable):
    if scope is None:
        return await coro
    return await scope.run(coro)

async def _load(scope, what: str, query: Awaitable, model, previous: Optional[list],
                sort_key=None) -> list:
    fallback = previous if previous is not None else []
    try:
        result = await _run(scope, query)
    except BackendError as e:
        logger.error("Error loading %s: %s", what, e)
        return fallback
    if result is None:
        return fallback
    records = [model(**row) for row in result.rows]
    return sorted(records, key=sort_key) if sort_key else records

async def load_record(store: Store, table: str, record_id: str,
                      scope: Optional[ViewScope] = None) -> Optional[dict]:
    """One row by id, or None when it is missing or cannot be loaded."""
    try:
        return await _run(scope, store.table(table).get(record_id))
    except BackendError as e:
        logger.error("Error loading %s %s: %s", table, record_id, e)
        return None

def find_selected(records: Iterable, selected_id: Optional[str]):
    """The record an editor was opened on, or None for a create form."""
    if not selected_id:
        return None
    return next((r for r in records if r.id == selected_id), None)


# ---------------------------------------------------------------------------
# Citizen views
# ---------------------------------------------------------------------------
async def submit_complaint(store: Store, citizen_id: str, form: ComplaintCreate,
                           scope: Optional[ViewScope] = None) -> FormResult:
    row = form.model_dump(mode="json")
    # Owner and status are never taken from the form
    row["citizen_id"] = citizen_id
    row["status"] = ComplaintStatus.PENDING.value
    try:
        created = await _run(scope, store.complaints.insert(row))
    except BackendError as e:
        logger.error("Error submitting complaint: %s", e)
        return FormResult(error=e.message)
    return FormResult(record=Complaint(**created) if created else None)

async def load_citizen_complaints(store: Store, citizen_id: str, scope: Optional[ViewScope] = None,
                                  previous: Optional[list] = None) -> List[Complaint]:
    query = store.complaints.select({"citizen_id": citizen_id},
                                    order_by="created_at", descending=True)
    return await _load(scope, "complaints", query, Complaint, previous)

async def load_amenities(store: Store, scope: Optional[ViewScope] = None,
                         previous: Optional[list] = None) -> List[Amenity]:
    query = store.amenities.select(order_by="name")
    # Alphabetical regardless of case; Mongo orders names by raw bytes
    return await _load(scope, "amenities", query, Amenity, previous,
                       sort_key=lambda a: a.name.casefold())

async def load_active_announcements(store: Store, scope: Optional[ViewScope] = None,
                                    previous: Optional[list] = None) -> List[Announcement]:
    query = store.announcements.select({"is_active": True},
                                       order_by="created_at", descending=True)
    return await _load(scope, "announcements", query, Announcement, previous)


# ---------------------------------------------------------------------------
# Admin views
# ---------------------------------------------------------------------------
async def load_dashboard_stats(store: Store, scope: Optional[ViewScope] = None) -> Optional[DashboardStats]:
    """All four counters or none of them."""
    async def fetch():
        complaints, citizens, amenities, announcements = await asyncio.gather(
            store.complaints.select(columns=["status"], count=True),
            store.profiles.select({"role": Role.CITIZEN.value}, columns=["id"], count=True),
            store.amenities.select(columns=["id"], count=True),
            store.announcements.select({"is_active": True}, columns=["id"], count=True))
        statuses = [c.get("status") for c in complaints.rows]
        return DashboardStats(
            total_complaints=len(statuses),
            pending_complaints=statuses.count(ComplaintStatus.PENDING.value),
            in_progress_complaints=statuses.count(ComplaintStatus.IN_PROGRESS.value),
            resolved_complaints=statuses.count(ComplaintStatus.RESOLVED.value),
            total_citizens=citizens.count or 0,
            total_amenities=amenities.count or 0,
            active_announcements=announcements.count or 0)

    try:
        return await _run(scope, fetch())
    except BackendError as e:
        logger.error("Error loading stats: %s", e)
        return None

async def load_all_complaints(store: Store, scope: Optional[ViewScope] = None,
                              previous: Optional[list] = None) -> List[Complaint]:
    query = store.complaints.select(order_by="created_at", descending=True)
    return await _load(scope, "complaints", query, Complaint, previous)

async def load_all_announcements(store: Store, scope: Optional[ViewScope] = None,
                                 previous: Optional[list] = None) -> List[Announcement]:
    query = store.announcements.select(order_by="created_at", descending=True)
    return await _load(scope, "announcements", query, Announcement, previous)

async def update_complaint(store: Store, complaint_id: str, triage: ComplaintTriage,
                           scope: Optional[ViewScope] = None) -> FormResult:
    # No version check: the last write wins
    values = {"status": triage.status.value, "admin_response": triage.admin_response}
    try:
        row = await _run(scope, store.complaints.update(complaint_id, values))
    except BackendError as e:
        logger.error("Error updating complaint: %s", e)
        return FormResult(error=e.message)
    if row is None:
        return FormResult(error="Complaint not found", missing=True)
    return FormResult(record=Complaint(**row))

async def save_amenity(store: Store, form: AmenityForm, selected_id: Optional[str] = None,
                       scope: Optional[ViewScope] = None) -> FormResult:
    values = form.model_dump(mode="json")
    try:
        if selected_id:
            row = await _run(scope, store.amenities.update(selected_id, values))
            if row is None:
                return FormResult(error="Amenity not found", missing=True)
        else:
            row = await _run(scope, store.amenities.insert(values))
    except BackendError as e:
        logger.error("Error saving amenity: %s", e)
        return FormResult(error=e.message)
    return FormResult(record=Amenity(**row) if row else None)

async def delete_amenity(store: Store, amenity_id: str, scope: Optional[ViewScope] = None) -> bool:
    try:
        return bool(await _run(scope, store.amenities.delete(amenity_id)))
    except BackendError as e:
        logger.error("Error deleting amenity: %s", e)
        return False

async def save_announcement(store: Store, form: AnnouncementForm, publisher_id: str,
                            selected_id: Optional[str] = None,
                            scope: Optional[ViewScope] = None) -> FormResult:
    values = form.model_dump(mode="json")
    # An omitted is_active keeps the stored value on edit and publishes on create
    if values["is_active"] is None:
        del values["is_active"]
        if not selected_id:
            values["is_active"] = True
    try:
        if selected_id:
            row = await _run(scope, store.announcements.update(selected_id, values))
            if row is None:
                return FormResult(error="Announcement not found", missing=True)
        else:
            values["published_by"] = publisher_id
            row = await _run(scope, store.announcements.insert(values))
    except BackendError as e:
        logger.error("Error saving announcement: %s", e)
        return FormResult(error=e.message)
    return FormResult(record=Announcement(**row) if row else None)

async def delete_announcement(store: Store, announcement_id: str,
                              scope: Optional[ViewScope] = None) -> bool:
    try:
        return bool(await _run(scope, store.announcements.delete(announcement_id)))
    except BackendError as e:
        logger.error("Error deleting announcement: %s", e)
        return False

async def toggle_announcement(store: Store, announcement: Announcement,
                              scope: Optional[ViewScope] = None) -> Optional[Announcement]:
    try:
        row = await _run(scope, store.announcements.update(
            announcement.id, {"is_active": not announcement.is_active}))
    except BackendError as e:
        logger.error("Error toggling announcement: %s", e)
        return None
    return Announcement(**row) if row else None

async def toggle_announcement_by_id(store: Store, announcement_id: str,
                                    scope: Optional[ViewScope] = None) -> FormResult:
    try:
        row = await _run(scope, store.announcements.get(announcement_id))
    except BackendError as e:
        logger.error("Error toggling announcement: %s", e)
        return FormResult(error=e.message)
    if row is None:
        return FormResult(error="Announcement not found", missing=True)
    toggled = await toggle_announcement(store, Announcement(**row), scope)
    if toggled is None:
        return FormResult(error="Could not toggle announcement")
    return FormResult(record=toggled)
