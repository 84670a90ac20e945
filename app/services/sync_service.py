"""
Calendar Sync Service
Two-phase sync between the local event store and the user's primary Google calendar:
import (remote -> local) then export (local -> remote)
"""
import logging
from datetime import datetime
from typing import Optional

import httpx
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import AUTHENTICATION_ERRORS, AppError, AuthError, NotFoundError, PersistenceError
from ..models import Event, User
from ..sync_lock import SyncLockRegistry, get_sync_locks
from ..utils.datetime_utils import to_utc, utcnow
from .event_mapper import google_event_to_local, local_event_to_google
from .google_calendar_service import MAX_RESULTS, PRIMARY_CALENDAR, GoogleCalendarClient
from .token_provider import TokenProvider

logger = logging.getLogger(__name__)

SYNC_IN_PROGRESS = "Sync already in progress"


class SyncResult(BaseModel):
    success: bool = True
    imported: int = 0
    updated: int = 0
    deleted: int = 0
    exported: int = 0
    errors: list[str] = Field(default_factory=list)


class CalendarSyncService:
    """
    Sync orchestrator for one user.

    Existing local copies of remote events are never reconciled field by field
    on import; deletions are only detected inside the fetched time window.
    """

    def __init__(
        self,
        db: Session,
        user: Optional[User],
        client: Optional[GoogleCalendarClient] = None,
        locks: Optional[SyncLockRegistry] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.db = db
        self.user = user
        self.client = client or GoogleCalendarClient(
            TokenProvider(db, transport=transport), user, transport=transport
        )
        self.locks = locks or get_sync_locks()

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def sync_all_events(self) -> SyncResult:
        """Import from Google, then export local-only events"""
        if self.user is None:
            return SyncResult(success=False, errors=["Sync aborted: Not authenticated"])

        if not await self.locks.try_acquire(self.user.id):
            logger.info(f"⏭️ Sync already in progress for user {self.user.id}, skipping...")
            return SyncResult(errors=[SYNC_IN_PROGRESS])

        logger.info(f"🔄 Starting sync for user {self.user.id}")
        result = SyncResult()
        try:
            try:
                await self._run_import(result)
            except AUTHENTICATION_ERRORS as e:
                logger.warning(f"⚠️ Sync aborted for user {self.user.id}: {e.message}")
                result.success = False
                result.errors.append(f"Sync aborted: {e.message}")
                return result
            except (AppError, SQLAlchemyError) as e:
                self.db.rollback()
                result.success = False
                result.errors.append(f"Import failed: {str(e)}")

            await self._run_export(result)

            logger.info(
                f"✅ Sync complete for user {self.user.id}: imported={result.imported} "
                f"deleted={result.deleted} exported={result.exported} errors={len(result.errors)}"
            )
            return result
        finally:
            await self.locks.release(self.user.id)

    async def import_google_events(
        self, time_min: Optional[datetime] = None, time_max: Optional[datetime] = None
    ) -> SyncResult:
        """Import phase only; failures are reported in the result, never raised"""
        result = SyncResult()
        try:
            if self.user is None:
                raise AuthError()
            await self._run_import(result, time_min, time_max)
        except (AppError, SQLAlchemyError) as e:
            self.db.rollback()
            result.success = False
            result.errors.append(f"Import failed: {str(e)}")
        return result

    async def export_event_to_google(self, event_id: int) -> Event:
        """Create the remote copy of a local event, or update it when already linked"""
        event = self._get_owned_event(event_id)
        await self.push_event(event)
        return event

    async def push_event(self, event: Event) -> None:
        body = local_event_to_google(event)

        if event.google_event_id:
            await self.client.update_event(event.google_event_id, body, calendar_id=PRIMARY_CALENDAR)
            return

        created = await self.client.create_event(body, calendar_id=PRIMARY_CALENDAR)
        event.google_event_id = created["id"]
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"Failed to link event {event.id}: {str(e)}") from e

    async def delete_event_everywhere(self, event_id: int) -> None:
        """Delete remotely (best effort), then delete locally"""
        event = self._get_owned_event(event_id)

        if event.google_event_id:
            try:
                await self.client.delete_event(event.google_event_id, calendar_id=PRIMARY_CALENDAR)
            except AppError as e:
                # The local delete still goes ahead
                logger.error(f"❌ Failed to delete event {event.id} from Google Calendar: {e.message}")

        try:
            self.db.delete(event)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"Failed to delete event: {str(e)}") from e

        logger.info(f"🗑️ Event {event_id} deleted for user {self.user.id}")

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    async def _run_import(
        self,
        result: SyncResult,
        time_min: Optional[datetime] = None,
        time_max: Optional[datetime] = None,
    ) -> None:
        time_min = to_utc(time_min) or utcnow()
        time_max = to_utc(time_max)

        remote_events = await self.client.list_events(
            PRIMARY_CALENDAR, time_min=time_min, time_max=time_max
        )
        logger.info(f"📥 Fetched {len(remote_events)} events from Google Calendar for user {self.user.id}")

        remote_ids: set[str] = set()
        last_remote_start: Optional[datetime] = None
        for google_event in remote_events:
            google_event_id = google_event.get("id")
            if not google_event_id:
                continue
            remote_ids.add(google_event_id)

            try:
                values = google_event_to_local(google_event, self.user.id)
            except (KeyError, ValueError) as e:
                result.errors.append(f"Error processing event {google_event_id}: {str(e)}")
                continue
            last_remote_start = values["start_time"]

            if self._find_by_google_id(google_event_id):
                # Already imported; field-level drift is not reconciled
                continue

            if values["end_time"] <= values["start_time"]:
                result.errors.append(
                    f"Skipped event {google_event_id}: end time is not after start time"
                )
                continue

            try:
                self.db.add(Event(**values))
                self.db.commit()
                result.imported += 1
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"❌ Insert error for event {google_event_id}: {str(e)}")
                result.errors.append(f"Failed to insert event {google_event_id}: {str(e)}")

        # Linked local events missing from the fetched window were deleted remotely
        query = self.db.query(Event).filter(
            Event.user_id == self.user.id,
            Event.google_event_id.isnot(None),
            Event.status != "cancelled",
            Event.end_time > time_min,
        )
        if time_max is not None:
            query = query.filter(Event.start_time < time_max)
        if len(remote_events) >= MAX_RESULTS and last_remote_start is not None:
            # Only one page was fetched; nothing is known past its last event
            query = query.filter(Event.start_time <= last_remote_start)

        for local_event in query.all():
            if local_event.google_event_id in remote_ids:
                continue
            try:
                local_event.status = "cancelled"
                self.db.commit()
                result.deleted += 1
            except SQLAlchemyError as e:
                self.db.rollback()
                result.errors.append(f"Failed to cancel event {local_event.id}: {str(e)}")

    async def _run_export(self, result: SyncResult) -> None:
        try:
            local_only = (
                self.db.query(Event)
                .filter(
                    Event.user_id == self.user.id,
                    Event.google_event_id.is_(None),
                    Event.status != "cancelled",
                )
                .order_by(Event.start_time)
                .all()
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            result.errors.append(f"Export phase failed: {str(e)}")
            return

        if local_only:
            logger.info(f"📤 Exporting {len(local_only)} local events to Google for user {self.user.id}")

        for event in local_only:
            try:
                await self.push_event(event)
                result.exported += 1
            except AppError as e:
                result.errors.append(f"Failed to export event {event.id}: {e.message}")

    # ------------------------------------------------------------------

    def _find_by_google_id(self, google_event_id: str) -> Optional[Event]:
        return (
            self.db.query(Event)
            .filter(Event.user_id == self.user.id, Event.google_event_id == google_event_id)
            .first()
        )

    def _get_owned_event(self, event_id: int) -> Event:
        if self.user is None:
            raise AuthError()
        event = (
            self.db.query(Event)
            .filter(Event.id == event_id, Event.user_id == self.user.id)
            .first()
        )
        if not event:
            raise NotFoundError("Event not found")
        return event
