"""
Tests for the Sentiment Analyzer

Validates that:
1. The rating heuristic maps 1-2 / 3 / 4-5 onto -0.5 / 0 / +0.5 and averages
2. Claude replies are parsed, de-fenced, range-checked and rounded
3. Every unusable reply or AI failure degrades to the rating heuristic
4. Empty input yields None without calling the AI service

Run with: pytest tests/test_sentiment_analyzer.py -v
"""

import pytest

from conftest import FakeCompletion, make_item
from feedback_health.services.sentiment import (
    SentimentAnalyzer,
    build_corpus,
    calculate_basic_sentiment,
    parse_sentiment,
)


# ===================================================================
# 1. Rating heuristic
# ===================================================================

class TestCalculateBasicSentiment:
    """Verify the rating-only fallback."""

    def test_mixed_ratings_average_to_zero(self):
        """Ratings [1, 2, 4, 5] map to [-0.5, -0.5, 0.5, 0.5], averaging 0.0."""
        items = [make_item(rating_value=r) for r in (1, 2, 4, 5)]
        assert calculate_basic_sentiment(items) == 0.0

    def test_all_positive(self):
        items = [make_item(rating_value=r) for r in (4, 5, 5)]
        assert calculate_basic_sentiment(items) == 0.5

    def test_neutral_rating(self):
        assert calculate_basic_sentiment([make_item(rating_value=3)]) == 0.0

    def test_rounds_to_two_decimals(self):
        items = [make_item(rating_value=r) for r in (1, 3, 3)]
        assert calculate_basic_sentiment(items) == -0.17

    def test_unrated_items_are_ignored(self):
        items = [make_item(rating_value=None), make_item(rating_value=5)]
        assert calculate_basic_sentiment(items) == 0.5

    def test_no_ratings_returns_none(self):
        assert calculate_basic_sentiment([make_item(rating_value=None)]) is None

    def test_empty_returns_none(self):
        assert calculate_basic_sentiment([]) is None


# ===================================================================
# 2. Parsing helpers
# ===================================================================

class TestParseSentiment:
    @pytest.mark.parametrize("reply,expected", [
        ("0.3", 0.3),
        ("  -0.75\n", -0.75),
        ("```\n0.5\n```", 0.5),
        ("```json\n1\n```", 1.0),
        ("-1", -1.0),
        ("0.3 because the tone is warm", 0.3),
        (".5", 0.5),
    ])
    def test_valid_replies(self, reply, expected):
        assert parse_sentiment(reply) == expected

    @pytest.mark.parametrize("reply", ["1.5", "-2", "1.5 overall", "positive", "", "nan", "Sentiment: 0.4"])
    def test_invalid_replies(self, reply):
        assert parse_sentiment(reply) is None


class TestBuildCorpus:
    def test_joins_responses_and_comments(self):
        items = [
            make_item(text_response="Great demo", comment_text="  "),
            make_item(text_response=None, comment_text="Needs more tests"),
        ]
        assert build_corpus(items) == "Great demo Needs more tests"

    def test_blank_text_gives_empty_corpus(self):
        assert build_corpus([make_item(text_response="   ")]) == ""


# ===================================================================
# 3. Analyzer flow
# ===================================================================

class TestSentimentAnalyzer:
    async def test_empty_input_returns_none_without_ai_call(self):
        completion = FakeCompletion("0.9")
        outcome = await SentimentAnalyzer(completion).analyze([])
        assert outcome.value is None
        assert outcome.source == "empty"
        assert completion.prompts == []

    async def test_no_text_uses_ratings_without_ai_call(self):
        completion = FakeCompletion("0.9")
        items = [make_item(rating_value=r) for r in (1, 2, 4, 5)]
        outcome = await SentimentAnalyzer(completion).analyze(items)
        assert outcome.value == 0.0
        assert outcome.source == "fallback"
        assert completion.prompts == []

    async def test_uses_ai_value_and_rounds(self):
        completion = FakeCompletion("0.456")
        items = [make_item(text_response="Really helpful reviews")]
        outcome = await SentimentAnalyzer(completion).analyze(items)
        assert outcome.value == 0.46
        assert outcome.source == "ai"
        assert "Really helpful reviews" in completion.prompts[0]

    async def test_reply_with_trailing_explanation_uses_leading_number(self):
        completion = FakeCompletion("0.3 - mostly appreciative")
        items = [make_item(text_response="Thanks for the help", rating_value=1)]
        outcome = await SentimentAnalyzer(completion).analyze(items)
        assert outcome.value == 0.3
        assert outcome.source == "ai"

    async def test_out_of_range_reply_falls_back(self):
        completion = FakeCompletion("3.5")
        items = [make_item(text_response="ok", rating_value=5)]
        outcome = await SentimentAnalyzer(completion).analyze(items)
        assert outcome.value == 0.5
        assert outcome.source == "fallback"

    async def test_ai_failure_falls_back(self, offline_completion):
        items = [make_item(text_response="ok", rating_value=1)]
        outcome = await SentimentAnalyzer(offline_completion).analyze(items)
        assert outcome.value == -0.5
        assert outcome.source == "fallback"

    async def test_ai_failure_without_ratings_gives_none(self, offline_completion):
        items = [make_item(text_response="ok", rating_value=None)]
        outcome = await SentimentAnalyzer(offline_completion).analyze(items)
        assert outcome.value is None
