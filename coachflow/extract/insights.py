import logging
from typing import Any, Dict, Optional

from coachflow.core.config import Settings
from coachflow.core.openai_client import LLMService, OpenAILLMService
from coachflow.extract.coerce import safe_json_loads
from coachflow.extract.mock_data import generate_mock_insights
from coachflow.extract.normalizer import normalize_insights, salvage_insights
from coachflow.models.outcome import Degraded, Real, StageOutcome
from coachflow.models.schemas import MeetingInsights
from coachflow.prompts.loader import render_prompts

logger = logging.getLogger(__name__)


def interpret_insights(raw: str) -> StageOutcome[MeetingInsights]:
    """Turn raw LLM text into insights: JSON parse -> shape normalization -> text salvage -> mock, first that works wins.
    Real only when the model's JSON was understood and supplied its own advice."""
    data = safe_json_loads(raw)
    if data is None:
        salvaged = salvage_insights(raw)
        if salvaged is not None:
            logger.warning("insight_response_salvaged", extra={"advice_count": len(salvaged.advice_given)})
            return Degraded(salvaged, "salvaged_from_text")
        logger.warning("insight_response_unparsable", extra={"raw_preview": (raw or "")[:300]})
        return Degraded(generate_mock_insights(), "unparsable_json")

    normalized = normalize_insights(data)
    if normalized is None:
        logger.warning("insight_response_unrecognized_shape", extra={"keys": sorted(data)[:20] if isinstance(data, dict) else None})
        return Degraded(generate_mock_insights(), "unrecognized_shape")

    if normalized.filled_from_mock or normalized.dropped:
        logger.info(
            "insight_response_normalized",
            extra={"adapter": normalized.adapter, "filled_from_mock": normalized.filled_from_mock, "dropped": normalized.dropped},
        )
    if "advice_given" in normalized.filled_from_mock:
        return Degraded(normalized.insights, "no_valid_advice")
    return Real(normalized.insights)


class InsightExtractor:
    """Transcript -> MeetingInsights. extract() never raises; every failure ends in a Degraded outcome carrying mock or salvaged insights."""

    def __init__(self, settings: Settings, llm: Optional[LLMService] = None):
        self.settings = settings
        if llm is None and settings.llm_enabled:
            llm = OpenAILLMService(settings)
        self.llm = llm

    def extract(self, transcript: str, context: Optional[Dict[str, Any]] = None) -> StageOutcome[MeetingInsights]:
        if not self.settings.llm_enabled or self.llm is None:
            logger.info("insight_extraction_mock_mode")
            return Degraded(generate_mock_insights(), "no_credential")

        context = context or {}
        try:
            participants = context.get("participants") or []
            system_prompt, user_prompt = render_prompts(
                "extract_insights",
                self.settings.prompt_version,
                meeting_type=str(context.get("meeting_type") or "mentor_session"),
                participants=", ".join(participants) if participants else "Unknown",
                duration=str(context.get("duration") or "unknown"),
                transcript=transcript or "",
            )
            raw = self.llm.complete(
                system_prompt,
                user_prompt,
                output_schema=MeetingInsights.model_json_schema(),
                max_tokens=self.settings.llm_max_tokens,
                temperature=self.settings.llm_temperature,
            )
            return interpret_insights(raw)
        except Exception as e:
            logger.warning("insight_extraction_failed", exc_info=True, extra={"error": str(e)})
            return Degraded(generate_mock_insights(), "llm_error")
