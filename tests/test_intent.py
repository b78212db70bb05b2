"""Tests for intent classification."""

import pytest

from assistant.services.intent import CALENDAR_KEYWORDS, Intent, classify, matched_keyword


class TestClassify:
    """Tests for the keyword classifier."""

    @pytest.mark.parametrize(
        "message",
        [
            "Schedule a sync with the design team",
            "What do I have going on?",
            "Am I free on Thursday afternoon?",
            "Move my dentist visit",
            "show me everything next week",
        ],
    )
    def test_calendar_messages(self, message):
        """Test that calendar requests route to the calendar path."""
        assert classify(message) == Intent.CALENDAR

    @pytest.mark.parametrize(
        "message",
        [
            "Explain how photosynthesis works",
            "What is the capital of France?",
            "Write a haiku about autumn leaves",
            "",
        ],
    )
    def test_general_questions(self, message):
        """Test that messages with no calendar keyword route to QA."""
        assert classify(message) == Intent.QA

    def test_case_insensitive(self):
        """Test that keyword matching ignores case."""
        assert classify("CANCEL IT") == Intent.CALENDAR
        assert classify("cancel it") == Intent.CALENDAR

    def test_every_keyword_classifies_as_calendar(self):
        """Test that each keyword on its own is enough to select the calendar path."""
        for keyword in CALENDAR_KEYWORDS:
            assert classify(f"please {keyword.upper()} now") == Intent.CALENDAR

    def test_substring_match_inside_words(self):
        """Test that keywords match inside longer words (no word boundaries)."""
        assert matched_keyword("What is my home address?") == "add"
        assert classify("What is my home address?") == Intent.CALENDAR

    def test_first_keyword_in_list_order_wins(self):
        """Test that ties are broken by keyword list order, not message position."""
        assert matched_keyword("lunch meeting, then delete the old one") == "delete"

    def test_no_match_returns_none(self):
        """Test that matched_keyword reports no keyword for general questions."""
        assert matched_keyword("Tell me a joke") is None

    def test_deterministic(self):
        """Test that classification is a pure function of the message."""
        message = "Is there a zoom link for the standup?"
        assert {classify(message) for _ in range(10)} == {Intent.CALENDAR}

    def test_intent_values(self):
        """Test that intents serialize to their path names."""
        assert str(Intent.CALENDAR) == "calendar"
        assert str(Intent.QA) == "qa"
