"""
Per-user implementation stats: how many planned actions get done, and what is next.
Feeds the /stats endpoint.
"""
from typing import Dict, List, Optional

from coachflow.models.entities import Action, Meeting
from coachflow.models.schemas import RecentMeeting, UpcomingAction, UserStatsResponse
from coachflow.pipeline.gateway import PersistenceGateway

PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}
OPEN_STATUSES = ("pending", "in_progress")


def sort_actions(actions: List[Action]) -> List[Action]:
    """High priority first, then earliest due date, then newest."""
    return sorted(
        actions,
        key=lambda a: (PRIORITY_ORDER.get(a.priority, 3), a.due_date, -a.created_at.timestamp()),
    )


def _advice_count(meeting: Meeting) -> int:
    return len((meeting.insights or {}).get("advice_given") or [])


def compute_user_stats(
    gateway: PersistenceGateway,
    user_id: str,
    recent_limit: int = 3,
    upcoming_limit: int = 5,
) -> UserStatsResponse:
    """Implementation rate and averages are whole percentages; an empty history yields zeros."""
    actions = gateway.list_user_actions(user_id)
    meetings = gateway.list_user_meetings(user_id)

    total = len(actions)
    completed = sum(1 for a in actions if a.status == "completed")
    rate = round(completed / total * 100) if total else 0
    avg_success = round(sum(a.success_probability for a in actions) / total * 100) if total else 0
    high_pending = sum(1 for a in actions if a.priority == "high" and a.status in OPEN_STATUSES)

    per_meeting: Dict[str, int] = {}
    for a in actions:
        per_meeting[a.meeting_id] = per_meeting.get(a.meeting_id, 0) + 1

    recent = [
        RecentMeeting(
            id=m.id,
            title=m.title,
            date=m.created_at.date().isoformat(),
            insights=_advice_count(m),
            actions=per_meeting.get(m.id, 0),
            status=m.processing_status.value,
        )
        for m in meetings[:recent_limit]
    ]

    upcoming = [
        UpcomingAction(
            id=a.id,
            title=a.title,
            due_date=_date_or_none(a),
            priority=a.priority,
            estimated_time=a.estimated_time,
        )
        for a in sort_actions([a for a in actions if a.status in OPEN_STATUSES])[:upcoming_limit]
    ]

    return UserStatsResponse(
        implementation_rate=rate,
        actions_completed=completed,
        total_actions=total,
        total_meetings=len(meetings),
        average_success_probability=avg_success,
        high_priority_pending=high_pending,
        recent_meetings=recent,
        upcoming_actions=upcoming,
    )


def _date_or_none(action: Action) -> Optional[str]:
    return action.due_date.date().isoformat() if action.due_date else None
