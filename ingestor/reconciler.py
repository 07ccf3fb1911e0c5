"""Reconciliation of normalized events against the carnival record store."""
import logging
import time
from typing import Callable, Dict, List, Optional

from processor.models import (
    MIN_TITLE_LENGTH,
    NormalisedEvent,
    NotificationIntent,
    StoredEvent,
    SyncResult,
)
from storage.event_store import DuplicateExternalIdError

logger = logging.getLogger(__name__)


TITLE_MATCH_LENGTH = 20
TITLE_MATCH_LIMIT = 25


class Reconciler:
    """
    Create-or-enrich reconciliation of scraped carnivals.

    Each event is matched by external id, falling back to a case-sensitive
    match on the first 20 characters of its title. Unmatched events are
    created and announced to subscribers. Matched records only have blank
    fields filled in and ``last_sync_at`` touched; with ``refresh_unclaimed``
    enabled, unclaimed records matched by external id also take the source's
    title, date, location and state.
    """

    def __init__(
        self,
        store,
        notifier,
        request_delay_ms: int = 2000,
        refresh_unclaimed: bool = False,
        system_user_id: str = 'system',
        clock: Callable[[], float] = time.time
    ):
        """
        Initialize the reconciler.

        Args:
            store: Record store (EventStore or compatible)
            notifier: Notifier with a notify(intent) method, or None
            request_delay_ms: Pause between two reconciled events
            refresh_unclaimed: Refresh source fields of unclaimed imports
            system_user_id: created_by_user_id recorded on created records
            clock: Source of epoch seconds
        """
        self.store = store
        self.notifier = notifier
        self.request_delay_ms = request_delay_ms
        self.refresh_unclaimed = refresh_unclaimed
        self.system_user_id = system_user_id
        self.clock = clock

    def reconcile(self, events: List[NormalisedEvent]) -> SyncResult:
        """
        Reconcile events in order.

        A failure on one event is recorded and the next event is processed.

        Args:
            events: Normalized events in source order

        Returns:
            SyncResult with per-outcome counts and error messages
        """
        result = SyncResult()
        logger.info(f"Reconciling {len(events)} events")

        for index, event in enumerate(events):
            if not event.title or len(event.title.strip()) < MIN_TITLE_LENGTH:
                result.skipped += 1
                logger.warning(f"Skipping event with short title: '{event.title}'")
                continue

            try:
                self._reconcile_one(event, result)
            except Exception as e:
                error_msg = f"Failed to reconcile '{event.title}': {e}"
                logger.error(error_msg, extra={'external_id': event.external_id})
                result.errors.append(error_msg)

            if index < len(events) - 1 and self.request_delay_ms > 0:
                time.sleep(self.request_delay_ms / 1000)

        logger.info(
            "Reconciliation complete",
            extra={
                'events_created': result.created,
                'events_updated': result.updated,
                'events_unchanged': result.unchanged,
                'events_skipped': result.skipped,
                'notifications_sent': result.notifications_sent,
                'notifications_failed': result.notifications_failed,
                'errors': len(result.errors),
            }
        )
        return result

    def _reconcile_one(self, event: NormalisedEvent, result: SyncResult) -> None:
        now = int(self.clock())
        existing = self.find_match(event)

        if existing is None:
            try:
                stored = self.store.create(event, self.system_user_id, now=now)
            except DuplicateExternalIdError:
                # Written concurrently by another writer; treat as found
                existing = self.store.find_by_external_id(event.external_id)
                if existing is None:
                    raise
            else:
                result.created += 1
                self._notify('new', stored, result)
                return

        self._update(existing, event, now, result)

    def find_match(self, event: NormalisedEvent) -> Optional[StoredEvent]:
        """
        Find the stored record an event corresponds to.

        Args:
            event: Normalized event

        Returns:
            Record with the same external id, else the earliest created
            record whose title contains the event title's first 20
            characters, else None. Title matches without an external id
            rank first and those holding a different external id rank last.
        """
        if event.external_id:
            found = self.store.find_by_external_id(event.external_id)
            if found:
                return found

        prefix = event.title[:TITLE_MATCH_LENGTH]
        candidates = self.store.find_by_title_prefix(prefix, TITLE_MATCH_LIMIT)
        if not candidates:
            return None

        def conflicts(candidate: StoredEvent) -> bool:
            return bool(candidate.external_id and event.external_id
                        and candidate.external_id != event.external_id)

        candidates = sorted(candidates, key=lambda candidate: (
            conflicts(candidate),
            candidate.external_id is not None,
            candidate.created_at,
            candidate.id,
        ))
        return candidates[0]

    def _update(
        self,
        existing: StoredEvent,
        event: NormalisedEvent,
        now: int,
        result: SyncResult
    ) -> None:
        partial = self._enrichment(existing, event)
        material_change = False

        if (self.refresh_unclaimed
                and not existing.is_claimed
                and existing.external_id
                and existing.external_id == event.external_id):
            refreshed = self._refresh(existing, event)
            material_change = any(
                field in refreshed for field in ('title', 'date', 'location_address')
            )
            partial.update(refreshed)

        changed = bool(partial)
        partial['last_sync_at'] = now

        try:
            updated = self.store.update(existing.id, partial)
        except DuplicateExternalIdError as e:
            logger.warning(
                f"External id {e.external_id} already held by another carnival; "
                f"leaving '{existing.title}' without it"
            )
            partial.pop('external_id', None)
            changed = len(partial) > 1
            updated = self.store.update(existing.id, partial)

        if changed:
            result.updated += 1
            logger.info(
                f"Updated carnival '{existing.title}'",
                extra={'event_id': existing.id, 'fields': sorted(partial)}
            )
        else:
            result.unchanged += 1
            logger.debug(f"Carnival '{existing.title}' unchanged")

        if material_change:
            self._notify('updated', updated, result)

    @staticmethod
    def _enrichment(existing: StoredEvent, event: NormalisedEvent) -> Dict[str, object]:
        partial = {}
        if existing.registration_url is None and event.registration_url:
            partial['registration_url'] = event.registration_url
        if existing.external_id is None and event.external_id:
            partial['external_id'] = event.external_id
        if not existing.schedule_details and event.schedule_details:
            partial['schedule_details'] = event.schedule_details
        return partial

    @staticmethod
    def _refresh(existing: StoredEvent, event: NormalisedEvent) -> Dict[str, object]:
        source = {
            'title': event.title,
            'date': event.date.isoformat(),
            'location_address': event.location_address,
            'state': event.state,
        }
        return {
            field: value for field, value in source.items()
            if getattr(existing, field) != value
        }

    def _notify(self, kind: str, stored: StoredEvent, result: SyncResult) -> None:
        if self.notifier is None:
            return
        try:
            summary = self.notifier.notify(NotificationIntent(kind=kind, event=stored))
        except Exception as e:
            result.notifications_failed += 1
            logger.error(
                f"Notifier failed for '{stored.title}': {e}",
                extra={'event_id': stored.id, 'kind': kind},
                exc_info=True
            )
            return
        result.notifications_sent += summary.sent
        result.notifications_failed += summary.failed
