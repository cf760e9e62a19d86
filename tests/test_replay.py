"""
Tests for conversation replay.
"""

from atelier_bot.core.orders.models import ChatMessage, MessageRole
from atelier_bot.core.orders.replay import apply_turn, build_state

from conftest import assistant, user


class TestBuildState:
    def test_deterministic(self):
        conversation = [
            user("30 tricouri roșii si 20 negre", "m1"),
            assistant("Pentru cele 30 tricouri ROȘU, ce mărimi dorești?", "a1"),
            user("10 M 20 L", "m2"),
            user("20 XL", "m3"),
        ]
        assert build_state(conversation).to_dict() == build_state(conversation).to_dict()

    def test_edited_total_replays_sizes(self):
        state = build_state([
            user("50 roșii", "m1"),
            user("10 M", "m2"),
            user("20 L", "m3"),
        ])

        variant = state.find_variant("Roșu")
        assert variant.total_quantity == 50
        assert variant.quantities_per_size == {"M": 10, "L": 20}
        assert not variant.is_complete
        assert variant.remaining == 20

    def test_assistant_turn_sets_last_question(self):
        state = build_state([
            user("30 negre", "m1"),
            assistant("Ce cantitate pe mărimea XL?", "a1"),
            user("15", "m2"),
        ])
        assert state.find_variant("Negru").quantities_per_size == {"XL": 15}
        assert state.last_question == "Ce cantitate pe mărimea XL?"

    def test_rejected_message_is_skipped(self):
        state = build_state([
            user("40 albe", "m1"),
            user("10 S 30 L", "m2"),
            user("restul M", "m3"),
            user("fara personalizare", "m4"),
        ])

        variant = state.find_variant("Alb")
        assert variant.quantities_per_size == {"S": 10, "L": 30}
        assert variant.personalization.decided

    def test_accepts_message_objects(self):
        messages = [ChatMessage(role=MessageRole.USER, content="20 gri")]
        assert build_state(messages).find_variant("Gri").total_quantity == 20

    def test_empty_history(self):
        assert build_state([]).variants == []


class TestApplyTurn:
    def test_system_turn_has_no_outcome(self):
        state = build_state([user("20 gri", "m1")])
        message = ChatMessage(role=MessageRole.SYSTEM, content="Comanda a fost corectată")

        new_state, outcome = apply_turn(state, message)

        assert outcome is None
        assert new_state.last_question == "Comanda a fost corectată"
        assert state.last_question is None
