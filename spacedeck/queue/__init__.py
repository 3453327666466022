"""Review queue: due-card selection and database-backed study sessions."""

from spacedeck.queue.selector import next_batch
from spacedeck.queue.session import remaining_quotas, start_of_day, study_session

__all__ = [
    "next_batch",
    "remaining_quotas",
    "start_of_day",
    "study_session",
]
