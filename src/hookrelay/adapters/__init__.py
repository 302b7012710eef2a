"""Event adapters that turn domain objects into webhook events."""

from .billing import BillingEvents, CompanyDirectory
from .recruiting import (
    APPLICATION_EVENTS,
    CANDIDATE_EVENTS,
    INTERVIEW_EVENTS,
    JOB_EVENTS,
    RecruitingEvents,
)

__all__ = [
    "APPLICATION_EVENTS",
    "CANDIDATE_EVENTS",
    "INTERVIEW_EVENTS",
    "JOB_EVENTS",
    "BillingEvents",
    "CompanyDirectory",
    "RecruitingEvents",
]
