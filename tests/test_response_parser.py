import pytest

from models.analysis import FALLBACK_DESCRIPTION, AnalysisResult, clamp_score
from utils.response_parser import extract_json_object, parse_analysis


def test_parses_json_wrapped_in_prose():
    text = (
        "Here is my analysis:\n"
        '{"relevanceScore": 0.82, "confidenceScore": 0.6, '
        '"description": "Covers ownership directly", "reasoning": "Title matches"}\n'
        "Hope that helps!"
    )

    result = parse_analysis(text)

    assert result == AnalysisResult(0.82, 0.6, "Covers ownership directly", "Title matches")


def test_scores_are_clamped():
    result = parse_analysis('{"relevanceScore": 1.7, "confidenceScore": -2, "description": "x"}')

    assert result.relevance_score == 1.0
    assert result.confidence_score == 0.0


def test_snake_case_keys_are_accepted():
    result = parse_analysis('{"relevance_score": 0.4, "confidence_score": 0.9}')

    assert result.relevance_score == 0.4
    assert result.description == "No description provided"
    assert result.reasoning is None


def test_missing_scores_default_to_zero():
    result = parse_analysis('{"description": "no scores here"}')

    assert result.relevance_score == 0.0
    assert result.confidence_score == 0.0


@pytest.mark.parametrize("text", ["", "no json at all", "{not valid json}", "[1, 2, 3]", None])
def test_malformed_output_yields_fallback(text):
    result = parse_analysis(text)

    assert result.relevance_score == 0.5
    assert result.confidence_score == 0.3
    assert result.description == FALLBACK_DESCRIPTION
    assert result.reasoning.startswith("Failed to parse LLM response")


def test_extract_json_object_raises_without_object():
    with pytest.raises(ValueError):
        extract_json_object("plain text")


def test_clamp_score_handles_bad_values():
    assert clamp_score("0.25") == 0.25
    assert clamp_score("high") == 0.5
    assert clamp_score(float("nan"), default=0.1) == 0.1
    assert clamp_score(None, default=0.0) == 0.0
