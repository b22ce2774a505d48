"""Deterministic action plan matching the mock insights."""
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from coachflow.extract.coerce import utcnow
from coachflow.models.schemas import ActionPlan


def mock_action_plan_dict(now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or utcnow()
    next_week = now + timedelta(days=7)
    two_weeks = now + timedelta(days=14)
    return {
        "immediate_actions": [
            {
                "id": "action-1",
                "title": "Set up weekly focus blocks",
                "description": "Block three 2-hour focus sessions every Monday morning, treat as non-negotiable meetings",
                "category": "time-management",
                "priority": "high",
                "complexity": "low",
                "estimated_time": 30,
                "due_date": next_week,
                "success_probability": 0.85,
                "barriers": ["People booking over blocks", "Feeling guilty about boundaries"],
                "motivation_level": 0.8,
            },
            {
                "id": "action-2",
                "title": "Implement coaching questions framework",
                "description": "Use 'What approaches have you considered?' before giving direct answers to team questions",
                "category": "leadership",
                "priority": "high",
                "complexity": "medium",
                "estimated_time": 120,
                "due_date": two_weeks,
                "success_probability": 0.73,
                "barriers": ["Feels slower than direct solutions", "Team pushback"],
                "motivation_level": 0.7,
            },
            {
                "id": "action-3",
                "title": "Track daily energy patterns",
                "description": "Monitor energy levels hourly for 2 weeks to identify peak performance times",
                "category": "personal",
                "priority": "medium",
                "complexity": "low",
                "estimated_time": 10,
                "due_date": two_weeks,
                "success_probability": 0.91,
                "barriers": ["Remembering to track", "Consistent measurement"],
                "motivation_level": 0.6,
            },
        ],
        "habit_formation": [
            {
                "habit": "Monday morning calendar blocking",
                "trigger": "Monday 8am calendar review",
                "reward": "Better strategic thinking capability",
                "frequency": "Weekly",
                "start_date": next_week,
            },
            {
                "habit": "Coaching question before solutions",
                "trigger": "Team member asks question",
                "reward": "Team growth and time savings",
                "frequency": "Daily",
                "start_date": now,
            },
        ],
        "scheduling_strategy": [
            {
                "action": "Calendar blocking session",
                "optimal_time": "Monday 8:00-8:30 AM",
                "duration": 30,
                "context": "Start of week, high energy, planning mindset",
            },
            {
                "action": "Energy tracking check-ins",
                "optimal_time": "Every 2 hours during work day",
                "duration": 2,
                "context": "Brief reflection on current energy and focus",
            },
        ],
        "risk_mitigation": [
            {
                "risk": "Team members booking over focus blocks",
                "probability": 0.7,
                "impact": "High - undermines entire strategy",
                "mitigation": "Book conference rooms, set blocks as 'busy', prepare standard responses",
            },
            {
                "risk": "Reverting to direct problem-solving under pressure",
                "probability": 0.8,
                "impact": "Medium - slows team development",
                "mitigation": "Practice coaching questions, set 5-minute rule before giving answers",
            },
        ],
    }


def generate_mock_action_plan(now: Optional[datetime] = None) -> ActionPlan:
    return ActionPlan.model_validate(mock_action_plan_dict(now))
