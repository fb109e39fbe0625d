"""Unit tests for utterance signals."""
import pytest

from app.services.agent.signals import (
    announces_availability_check,
    conversation_signals,
    extract_party_size,
    is_affirmative,
    is_explicit_handoff_request,
    is_negative,
    signals_misunderstanding,
)


class TestPartySize:
    """Test party size extraction from German speech."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("Einen Tisch für 4 Personen", 4),
            ("für vier bitte", 4),
            ("wir sind zu sechst", 6),
            ("Wir sind 3", 3),
            ("zwei Leute", 2),
            ("für fünf Gäste", 5),
        ],
    )
    def test_extracts(self, text, expected):
        assert extract_party_size(text) == expected

    @pytest.mark.parametrize("text", ["für 19 Uhr", "für 19:30", "Hallo", "", None])
    def test_ignores_clock_times_and_noise(self, text):
        assert extract_party_size(text) is None


class TestConversationSignals:
    """Test the "enough to check availability" signal."""

    def test_all_inputs_across_turns(self):
        signals = conversation_signals(["Freitag bitte", "um 19:30", "wir sind 4 Personen"])

        assert signals.has_date
        assert signals.has_time
        assert signals.has_party_size
        assert signals.has_availability_inputs

    def test_missing_party_size(self):
        signals = conversation_signals(["morgen um 20 Uhr"])

        assert signals.has_date and signals.has_time
        assert not signals.has_availability_inputs

    def test_name_detection(self):
        assert conversation_signals(["Mein Name ist Weber"]).has_name


class TestReplySignals:
    """Test assistant and caller intent markers."""

    def test_announces_check(self):
        assert announces_availability_check("Ich prüfe kurz, ob ein Tisch frei ist.")
        assert not announces_availability_check("Für wie viele Personen?")
        assert not announces_availability_check(None)

    def test_misunderstanding_marker(self):
        assert signals_misunderstanding("Entschuldigung, das habe ich nicht verstanden.")
        assert not signals_misunderstanding("Gerne, für wann?")

    @pytest.mark.parametrize(
        "text",
        ["Kann ich mit einem Mitarbeiter sprechen?", "Bitte verbinden Sie mich", "Leiten Sie mich weiter, weiterleiten bitte"],
    )
    def test_explicit_handoff(self, text):
        assert is_explicit_handoff_request(text)

    def test_regular_request_is_not_handoff(self):
        assert not is_explicit_handoff_request("Ich möchte einen Tisch reservieren")

    def test_yes_no(self):
        assert is_affirmative("Ja, gerne")
        assert is_negative("Nein danke")
        assert is_negative("Lieber nicht")
        assert not is_negative("Warum nicht")
        assert not is_affirmative("Hmm")
