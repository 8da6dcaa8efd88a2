"""Parse the JSON verdict embedded in an LLM scoring reply."""

import json
import re

from models.analysis import AnalysisResult, clamp_score
from utils.logger import get_logger

logger = get_logger(__name__)

_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")
DEFAULT_DESCRIPTION = "No description provided"


def extract_json_object(text: str) -> dict:
    """
    Return the first ``{...}`` span of ``text`` decoded as a JSON object.

    Raises:
        ValueError: If no object is present or it does not decode to a dict
    """
    match = _JSON_OBJECT_RE.search(text or "")
    if not match:
        raise ValueError("No JSON found in response")
    data = json.loads(match.group(0))
    if not isinstance(data, dict):
        raise ValueError("JSON payload is not an object")
    return data


def parse_analysis(text: str) -> AnalysisResult:
    """
    Turn a model reply into an AnalysisResult.

    Scores are clamped into [0, 1]. Anything unparseable yields the fallback
    result (0.5 / 0.3) with the parse failure recorded as reasoning; this
    function never raises.
    """
    try:
        data = extract_json_object(text)
    except ValueError as e:
        logger.warning(
            "Failed to parse analysis response",
            extra={"extra_fields": {"error": str(e), "response_preview": (text or "")[:120]}},
        )
        return AnalysisResult.fallback(reasoning=f"Failed to parse LLM response: {e}")

    description = data.get("description")
    reasoning = data.get("reasoning")
    return AnalysisResult(
        relevance_score=clamp_score(data.get("relevanceScore", data.get("relevance_score")), default=0.0),
        confidence_score=clamp_score(data.get("confidenceScore", data.get("confidence_score")), default=0.0),
        description=str(description) if description else DEFAULT_DESCRIPTION,
        reasoning=str(reasoning) if reasoning else None,
    )
