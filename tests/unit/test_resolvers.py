"""
Unit tests for the deterministic party-info and guest-list resolvers.

Resolvers are pure: they only propose actions, so these tests never touch a
store or a turn state.
"""

from datetime import datetime, timezone

from party_wizard.domain.models import Guest
from party_wizard.workflows.common.types import TurnData
from party_wizard.workflows.steps.step1_party_info.trigger.resolver import (
    UNPARSEABLE_DATETIME,
    UNPARSEABLE_DATETIME_NAMED,
    extract_allow_contributions,
    extract_explicit_name,
    extract_location,
    resolve_party_info_turn,
)
from party_wizard.workflows.steps.step2_guests.trigger.resolver import (
    AMBIGUOUS_REMOVE_TEXT,
    MISSING_REMOVE_TEXT,
    parse_guest_entries,
    parse_remove_index,
    resolve_guests_turn,
)
from tests.fakes import REFERENCE, make_party_info


# ==============================================================================
# PARTY INFO
# ==============================================================================


class TestPartyInfoExtraction:
    def test_quoted_name(self):
        assert extract_explicit_name('a party called "Sam\'s 30th" on Saturday') == "Sam's 30th"

    def test_unquoted_name_is_trimmed_at_date_words(self):
        assert extract_explicit_name("call it Summer Bash on Saturday at 7pm") == "Summer Bash"

    def test_location_skips_time_phrases(self):
        assert extract_location("Saturday at 7pm at the park") == "the park"

    def test_bare_time_is_not_a_location(self):
        assert extract_location("Saturday at 7pm") is None

    def test_negative_contribution_wins(self):
        assert extract_allow_contributions("no potluck this time") is False
        assert extract_allow_contributions("it's a potluck") is True
        assert extract_allow_contributions("just a dinner") is None


class TestResolvePartyInfo:
    def test_name_and_date_confirms(self):
        outcome = resolve_party_info_turn(
            'Birthday party called "Sam\'s 30th" on Saturday at 7pm at the park, potluck',
            TurnData(),
            REFERENCE,
        )

        assert outcome.handled
        assert outcome.intent == "confirm-party-info"
        (action,) = outcome.actions
        assert action.type == "confirm-party-info"
        assert action.payload["name"] == "Sam's 30th"
        assert action.payload["resolved_date_time"] == datetime(2026, 2, 21, 19, 0, tzinfo=timezone.utc)
        assert action.payload["location"] == "the park"
        assert action.payload["allow_contributions"] is True

    def test_inferred_name_from_topic(self):
        outcome = resolve_party_info_turn(
            "I'm having a party this weekend, on Saturday, at 7pm", TurnData(), REFERENCE
        )

        assert outcome.intent == "confirm-party-info"
        assert outcome.actions[0].payload["name"] == "Party"

    def test_existing_info_fills_missing_fields(self):
        existing = TurnData(party_info=make_party_info(location="Home"))

        outcome = resolve_party_info_turn("actually make it next Saturday", existing, REFERENCE)

        payload = outcome.actions[0].payload
        assert payload["name"] == "Sam's 30th"
        assert payload["location"] == "Home"
        assert payload["resolved_date_time"] == datetime(2026, 2, 28, tzinfo=timezone.utc)

    def test_name_without_date_asks_for_date(self):
        outcome = resolve_party_info_turn("call it Summer Bash", TurnData(), REFERENCE)

        assert outcome.intent == "ask-missing-datetime"
        assert "Summer Bash" in outcome.assistant_text
        assert outcome.actions == ()

    def test_name_with_unparseable_date(self):
        outcome = resolve_party_info_turn("call it Summer Bash, Feb 30", TurnData(), REFERENCE)

        assert outcome.intent == "ask-unparseable-datetime"
        assert outcome.assistant_text == UNPARSEABLE_DATETIME_NAMED

    def test_date_without_name_asks_for_name(self):
        outcome = resolve_party_info_turn("Saturday at 7pm", TurnData(), REFERENCE)

        assert outcome.intent == "ask-missing-name"

    def test_unparseable_date_without_name(self):
        outcome = resolve_party_info_turn("Feb 30", TurnData(), REFERENCE)

        assert outcome.intent == "ask-unparseable-datetime"
        assert outcome.assistant_text == UNPARSEABLE_DATETIME

    def test_no_signal_is_unhandled(self):
        outcome = resolve_party_info_turn("hello there", TurnData(), REFERENCE)

        assert not outcome.handled
        assert outcome.reason == "no-signal"


# ==============================================================================
# GUESTS
# ==============================================================================


class TestGuestParsing:
    def test_multiline_list_accepts_bare_names(self):
        entries = parse_guest_entries("Pete\nRoss - ross@example.com\nDahn 555-123-4567")

        assert entries == [
            {"name": "Pete"},
            {"email": "ross@example.com", "name": "Ross"},
            {"phone": "555-123-4567", "name": "Dahn"},
        ]

    def test_comma_split_only_with_emails(self):
        entries = parse_guest_entries("add ann@example.com, bob@example.com")

        assert [entry["email"] for entry in entries] == ["ann@example.com", "bob@example.com"]

    def test_prose_is_not_a_guest(self):
        assert parse_guest_entries("I think that sounds good") == []

    def test_remove_index_is_one_based(self):
        assert parse_remove_index("remove #2") == 1
        assert parse_remove_index("remove the third one") == 2
        assert parse_remove_index("remove 1") == 0


class TestResolveGuests:
    def test_add_verb_with_name(self):
        outcome = resolve_guests_turn("add Pete", TurnData())

        assert outcome.intent == "add-guests"
        assert [action.payload for action in outcome.actions] == [{"name": "Pete"}]

    def test_add_several_preview_text(self):
        outcome = resolve_guests_turn("Pete\nRoss\nDahn\nMira", TurnData())

        assert len(outcome.actions) == 4
        assert outcome.assistant_text.startswith("Added Pete, Ross, Dahn and more")

    def test_remove_by_name(self):
        data = TurnData(guest_list=(Guest(name="Pete"), Guest(name="Ross")))

        outcome = resolve_guests_turn("remove Ross", data)

        assert outcome.intent == "remove-guest"
        assert outcome.actions[0].payload == {"index": 1}

    def test_ambiguous_remove_is_clarified(self):
        data = TurnData(guest_list=(Guest(name="Sam"), Guest(name="Sam")))

        outcome = resolve_guests_turn("remove Sam", data)

        assert outcome.intent == "clarify-remove-guest"
        assert outcome.assistant_text == AMBIGUOUS_REMOVE_TEXT
        assert outcome.actions == ()

    def test_missing_remove_target_is_clarified(self):
        outcome = resolve_guests_turn("remove Zed", TurnData(guest_list=(Guest(name="Pete"),)))

        assert outcome.assistant_text == MISSING_REMOVE_TEXT
        assert outcome.actions == ()

    def test_done_confirms(self):
        for text in ("that's all", "done", "nope"):
            outcome = resolve_guests_turn(text, TurnData())
            assert outcome.intent == "confirm-guest-list"
            assert outcome.actions[0].type == "confirm-guest-list"

    def test_contact_details_without_add_verb(self):
        outcome = resolve_guests_turn("pete@example.com", TurnData())

        assert outcome.intent == "add-guests"
        assert outcome.actions[0].payload == {"email": "pete@example.com"}

    def test_unrelated_text_is_unhandled(self):
        outcome = resolve_guests_turn("what do you think about themes?", TurnData())

        assert not outcome.handled
