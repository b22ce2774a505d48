"""Deterministic insight set matching the mock transcript; used whenever the live LLM path is unavailable."""
from typing import Any, Dict

from coachflow.models.schemas import MeetingInsights

MOCK_INSIGHTS_CONFIDENCE = 0.89


def mock_insights_dict() -> Dict[str, Any]:
    """Fresh dict each call so callers can borrow sections without sharing state."""
    return {
        "advice_given": [
            {
                "id": "advice-1",
                "title": "Protect Calendar Time Like Client Meetings",
                "description": "Block focused work time and treat it as non-negotiable, just like client meetings",
                "category": "skills",
                "impact": "high",
                "complexity": "medium",
                "quote": "You need to start treating your focus blocks like you would treat a client meeting",
                "speaker": "Sarah (Mentor)",
                "timestamp": 120,
                "confidence": 0.95,
            },
            {
                "id": "advice-2",
                "title": "Coach Team Instead of Solving Problems",
                "description": "Ask 'What approaches have you considered?' instead of immediately providing solutions",
                "category": "leadership",
                "impact": "high",
                "complexity": "medium",
                "quote": "Try saying 'What approaches have you already considered?' or 'What would you do if I wasn't available?'",
                "speaker": "Sarah (Mentor)",
                "timestamp": 380,
                "confidence": 0.92,
            },
            {
                "id": "advice-3",
                "title": "Track Energy Levels for Optimal Scheduling",
                "description": "Monitor daily energy patterns and align important work with peak energy times",
                "category": "personal",
                "impact": "medium",
                "complexity": "low",
                "quote": "Track your energy levels throughout the day for the next two weeks",
                "speaker": "Sarah (Mentor)",
                "timestamp": 520,
                "confidence": 0.88,
            },
        ],
        "behavioral_patterns": [
            {
                "pattern": "People-pleasing tendency",
                "description": "Difficulty saying no to meeting requests, worried about seeming unresponsive",
                "frequency": 3,
                "confidence": 0.87,
            },
            {
                "pattern": "Reactive work style",
                "description": "Tends to jump in and solve problems immediately rather than coaching others",
                "frequency": 2,
                "confidence": 0.82,
            },
        ],
        "implementation_barriers": [
            {
                "type": "motivation",
                "description": "Fear of appearing difficult or unresponsive to colleagues",
                "severity": "medium",
                "suggestions": ["Frame boundaries as enabling better service", "Practice saying no professionally"],
            },
            {
                "type": "time",
                "description": "Feels faster to solve problems directly rather than coach team members",
                "severity": "medium",
                "suggestions": ["Set coaching time limits", "Create quick coaching templates"],
            },
        ],
        "success_metrics": [
            {
                "name": "Focus Time Protected",
                "description": "Number of focus blocks successfully protected per week",
                "measurement": "Hours of uninterrupted focus time",
                "timeline": "Weekly tracking",
            },
            {
                "name": "Team Self-Sufficiency",
                "description": "Reduction in questions that team members could solve themselves",
                "measurement": "Number of coaching conversations vs direct solutions",
                "timeline": "Monthly assessment",
            },
        ],
        "emotional_context": {
            "motivation": 0.8,
            "confidence": 0.6,
            "concerns": ["Appearing unresponsive", "Team members getting stuck"],
            "excitement": 0.7,
        },
        "priority_ranking": [
            {
                "action_id": "advice-1",
                "priority": 9,
                "reasoning": "High impact on overall productivity and strategic thinking time",
                "success_probability": 0.85,
            },
            {
                "action_id": "advice-2",
                "priority": 8,
                "reasoning": "Will scale impact and develop team capabilities",
                "success_probability": 0.73,
            },
            {
                "action_id": "advice-3",
                "priority": 6,
                "reasoning": "Good optimization but lower urgency than time management fixes",
                "success_probability": 0.91,
            },
        ],
        "confidence": MOCK_INSIGHTS_CONFIDENCE,
    }


def generate_mock_insights() -> MeetingInsights:
    return MeetingInsights.model_validate(mock_insights_dict())
