"""Recruiting event adapters.

Candidate, interview, job and application events carry their domain object
through as ``data`` unchanged. Each helper only accepts event names from its
own namespace.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from hookrelay.exceptions import ValidationError

if TYPE_CHECKING:
    from hookrelay.models import DeliveryResult
    from hookrelay.webhooks import WebhookDispatcher

CANDIDATE_EVENTS = frozenset({"candidate.created", "candidate.updated", "candidate.status_changed"})
INTERVIEW_EVENTS = frozenset({"interview.scheduled", "interview.completed", "interview.cancelled"})
JOB_EVENTS = frozenset({"job.created", "job.updated", "job.published", "job.closed"})
APPLICATION_EVENTS = frozenset(
    {"application.submitted", "application.reviewed", "evaluation.completed"}
)


class RecruitingEvents:
    """Trigger helpers for candidate, interview, job and application events.

    Raises ValidationError for an event outside the helper's family; that is
    a programming error in the caller, not a delivery failure.
    """

    def __init__(self, dispatcher: WebhookDispatcher) -> None:
        self._dispatcher = dispatcher

    async def _trigger(
        self,
        family: frozenset[str],
        company_id: str,
        event: str,
        data: Mapping[str, Any],
    ) -> list[DeliveryResult]:
        if event not in family:
            raise ValidationError("event", f"{event!r} is not one of {sorted(family)}")
        return await self._dispatcher.trigger_event(company_id, event, data)

    async def candidate_event(
        self, company_id: str, event: str, candidate: Mapping[str, Any]
    ) -> list[DeliveryResult]:
        return await self._trigger(CANDIDATE_EVENTS, company_id, event, candidate)

    async def interview_event(
        self, company_id: str, event: str, interview: Mapping[str, Any]
    ) -> list[DeliveryResult]:
        return await self._trigger(INTERVIEW_EVENTS, company_id, event, interview)

    async def job_event(
        self, company_id: str, event: str, job: Mapping[str, Any]
    ) -> list[DeliveryResult]:
        return await self._trigger(JOB_EVENTS, company_id, event, job)

    async def application_event(
        self, company_id: str, event: str, application: Mapping[str, Any]
    ) -> list[DeliveryResult]:
        return await self._trigger(APPLICATION_EVENTS, company_id, event, application)
