"""
Recurrence Materializer

Turns recurrence templates into concrete occurrence rows for a forward
window. A run is idempotent: occurrences are keyed by
(template_id, occurrence_start), existing keys are skipped before insert
and the unique index catches whatever slips through a race.

Materialization is system work done on behalf of each template's creator;
it does not go through access control.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from app.core import ensure_utc, utcnow
from app.core.errors import DuplicateOccurrence, MalformedRecurrenceRule, StoreConflict, StoreError
from app.core.recurrence import occurrences_between, parse_rule
from app.models.event import Event
from app.repositories.store import EntityStore

logger = logging.getLogger(__name__)

DEFAULT_WINDOW = timedelta(days=30)
DEFAULT_SKEW = timedelta(minutes=5)


@dataclass
class TickReport:
    started_at: datetime
    window_start: datetime
    window_end: datetime
    templates_seen: int = 0
    created: int = 0
    duplicates: int = 0
    malformed: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    # Templates edited while being materialized; retried next tick
    superseded: List[str] = field(default_factory=list)
    stopped_early: bool = False

    def summary(self) -> str:
        return (
            f"templates={self.templates_seen} created={self.created} "
            f"duplicates={self.duplicates} malformed={len(self.malformed)} failed={len(self.failed)} "
            f"superseded={len(self.superseded)}"
            + (" (stopped early)" if self.stopped_early else "")
        )


def build_occurrence(template: Event, start: datetime, end: datetime) -> Event:
    return Event(
        title=template.title,
        description=template.description,
        type=template.type,
        team_id=template.team_id,
        creator_id=template.creator_id,
        start_date=start,
        end_date=end,
        is_recurring=False,
        recurrence="",
        template_id=template.id,
        occurrence_start=start,
    )


class RecurrenceMaterializer:
    def __init__(
        self,
        store: EntityStore,
        window: timedelta = DEFAULT_WINDOW,
        skew: timedelta = DEFAULT_SKEW,
    ):
        self.store = store
        self.window = window
        self.skew = skew

    async def run_tick(
        self,
        now: Optional[datetime] = None,
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> TickReport:
        """
        Materialize every template for the window [now - skew, now + window].

        ``should_stop`` is polled between templates; once it returns True the
        current template is finished and no further one is started. Failures
        are confined to the template that caused them.
        """
        now = ensure_utc(now) if now is not None else utcnow()
        report = TickReport(
            started_at=now,
            window_start=now - self.skew,
            window_end=now + self.window,
        )

        templates = await self.store.list_templates()
        for template in templates:
            if should_stop is not None and should_stop():
                report.stopped_early = True
                logger.info(f"Materialization stopped before template {template.id}")
                break

            report.templates_seen += 1
            try:
                await self.materialize_template(template, now, report)
            except MalformedRecurrenceRule as e:
                e.template_id = template.id
                report.malformed.append(template.id)
                logger.warning(f"Skipping template {template.id}: {e}")
            except StoreError as e:
                # Retried on the next tick, not here
                report.failed.append(template.id)
                logger.warning(f"Store error while materializing template {template.id}: {e}")
            except Exception:
                report.failed.append(template.id)
                logger.exception(f"Unexpected error while materializing template {template.id}")

        return report

    async def materialize_template(self, template: Event, now: datetime, report: TickReport) -> int:
        """
        Create the missing occurrences of one template. Returns how many were created.

        ``materialized_through`` is stamped only once the window holds at least
        one slot, and only if the template is unchanged since it was listed.
        If it was edited meanwhile, the rows created here are removed again and
        the next tick materializes the new version.
        """
        rule = parse_rule(template.recurrence)
        series_start = ensure_utc(template.start_date)
        duration = ensure_utc(template.end_date) - series_start

        slots = list(
            occurrences_between(
                rule,
                series_start,
                duration,
                window_start=report.window_start,
                window_end=report.window_end,
                now=now,
            )
        )
        if not slots:
            return 0

        # In-progress slots may start before the window
        lookup_start = min(report.window_start, slots[0][0])
        existing = await self.store.list_occurrences(template.id, lookup_start, report.window_end)
        taken = {ensure_utc(o.occurrence_start) for o in existing if o.occurrence_start is not None}

        created: List[Event] = []
        for start, end in slots:
            if start in taken:
                continue
            try:
                created.append(await self.store.create_occurrence(build_occurrence(template, start, end)))
            except DuplicateOccurrence:
                report.duplicates += 1
                continue
            taken.add(start)

        try:
            await self.store.update(
                template,
                {"materialized_through": report.window_end},
                expected={"updated_at": template.updated_at},
            )
        except StoreConflict:
            for occurrence in created:
                await self.store.delete(occurrence)
            report.superseded.append(template.id)
            logger.info(
                f"Template {template.id} changed during materialization; "
                f"discarded {len(created)} occurrence(s)"
            )
            return 0

        report.created += len(created)
        if created:
            logger.info(f"Template {template.id}: created {len(created)} occurrence(s) through {report.window_end}")
        return len(created)
