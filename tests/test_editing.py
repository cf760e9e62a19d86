"""
Tests for message editing with replay and audit.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest

from atelier_bot.core.orders.editing import EditRequest, Identity
from atelier_bot.core.orders.replay import build_state

from conftest import assistant, user


SCENARIO = [
    user("30 roșii", "m1"),
    assistant("Pentru cele 30 bucăți ROȘU, ce mărimi dorești? (ex: 10 M, 15 L, 5 XL)", "a1"),
    user("10 M", "m2"),
    assistant("Mai lipsesc 20 bucăți pentru ROȘU. Pe ce mărimi?", "a2"),
    user("20 L", "m3"),
]

SHORT_SCENARIO = [
    user("30 roșii", "m1"),
    assistant("Pentru cele 30 bucăți ROȘU, ce mărimi dorești? (ex: 10 M, 15 L, 5 XL)", "a1"),
]

REST_SCENARIO = [
    user("40 albe", "m1"),
    user("10 S", "m2"),
    user("restul L", "m3"),
]


def request(order_id: str, message_id: str, new_text: str, user_id: str = "1001") -> EditRequest:
    return EditRequest(order_id=order_id, message_id=message_id, new_text=new_text, user_id=user_id)


async def events(audit, order_id: str) -> list[str]:
    entries = await audit.filter({"order_id": order_id}, sort="id", limit=100)
    return [e["event"] for e in entries]


# =============================================================================
# SUCCESS
# =============================================================================

class TestEditSuccess:
    @pytest.mark.asyncio
    async def test_edit_total_replays_following_messages(self, editor, orders, audit, owner, make_order):
        order_id = await make_order(SCENARIO)

        response = await editor.edit_message(request(order_id, "m1", "50 roșii"), owner)

        assert response.status_code == 200
        assert response.body["ok"] is True
        variant = response.body["order_state"]["variants"][0]
        assert variant["total_quantity"] == 50
        assert variant["quantities_per_size"] == {"M": 10, "L": 20}
        assert variant["is_complete"] is False
        assert variant["remaining"] == 20

        stored = await orders.read(order_id)
        assert stored.order_state == response.body["order_state"]
        assert stored.locked_for_edit is False
        edited = stored.conversation[0]
        assert edited["content"] == "50 roșii"
        assert edited["original_content"] == "30 roșii"
        assert edited["edited_by"] == "1001"
        assert edited["edited_at"] is not None
        # Later turns are kept verbatim
        assert stored.conversation[1:] == SCENARIO[1:]

        assert await events(audit, order_id) == ["edit_attempt", "edit_success"]

    @pytest.mark.asyncio
    async def test_replay_logs_cover_user_messages(self, editor, owner, make_order):
        order_id = await make_order(SCENARIO)

        response = await editor.edit_message(request(order_id, "m2", "15 M"), owner)

        logs = response.body["replay_logs"]
        assert [entry["message_id"] for entry in logs] == ["m2", "m3"]
        assert logs[0]["idx"] == 2
        assert logs[0]["target_variant"] == "Roșu"
        assert logs[0]["merged_quantities_after"][0]["quantities"] == {"M": 15}
        assert logs[1]["last_question"] == "Mai lipsesc 20 bucăți pentru ROȘU. Pe ce mărimi?"
        assert response.body["order_state"]["variants"][0]["error"] == "over_capacity"

    @pytest.mark.asyncio
    async def test_messages_before_edited_one_are_untouched(self, editor, orders, owner, make_order):
        order_id = await make_order(SCENARIO)

        response = await editor.edit_message(request(order_id, "m2", "5 M"), owner)

        assert response.status_code == 200
        stored = await orders.read(order_id)
        assert stored.conversation[:2] == SCENARIO[:2]
        assert build_state(stored.conversation[:2]) == build_state(SCENARIO[:2])
        assert response.body["replay_logs"][0]["merged_quantities_before"] == [
            {"color": "Roșu", "quantities": {}, "assigned": 0}
        ]
        variant = response.body["order_state"]["variants"][0]
        assert variant["total_quantity"] == 30
        assert variant["quantities_per_size"] == {"M": 5, "L": 20}

    @pytest.mark.asyncio
    async def test_admin_can_edit_any_order(self, editor, admin, make_order):
        order_id = await make_order(SCENARIO)

        response = await editor.edit_message(
            request(order_id, "m3", "20 XL", user_id=admin.user_id), admin
        )

        assert response.status_code == 200
        assert response.body["order_state"]["variants"][0]["quantities_per_size"] == {"M": 10, "XL": 20}

    @pytest.mark.asyncio
    async def test_second_edit_keeps_first_original(self, editor, orders, owner, make_order):
        order_id = await make_order(SCENARIO)

        await editor.edit_message(request(order_id, "m1", "50 roșii"), owner)
        await editor.edit_message(request(order_id, "m1", "40 roșii"), owner)

        stored = await orders.read(order_id)
        assert stored.conversation[0]["content"] == "40 roșii"
        assert stored.conversation[0]["original_content"] == "30 roșii"

    @pytest.mark.asyncio
    async def test_audit_failure_does_not_abort(self, editor, audit, owner, make_order):
        order_id = await make_order(SCENARIO)

        with patch.object(audit, "create", AsyncMock(side_effect=RuntimeError("disk full"))):
            response = await editor.edit_message(request(order_id, "m1", "50 roșii"), owner)

        assert response.status_code == 200


# =============================================================================
# FAILURES
# =============================================================================

class TestEditFailures:
    @pytest.mark.asyncio
    async def test_missing_fields(self, editor, owner):
        response = await editor.edit_message(EditRequest(order_id="X", message_id="m1"), owner)

        assert response.status_code == 400
        assert response.body["error"] == "bad_request"

    @pytest.mark.asyncio
    async def test_order_not_found(self, editor, audit, owner):
        response = await editor.edit_message(request("MISSING", "m1", "50 roșii"), owner)

        assert response.status_code == 404
        assert await events(audit, "MISSING") == ["edit_failed"]

    @pytest.mark.asyncio
    async def test_message_not_found_releases_lock(self, editor, orders, owner, make_order):
        order_id = await make_order(SCENARIO)

        response = await editor.edit_message(request(order_id, "nope", "50 roșii"), owner)

        assert response.status_code == 404
        assert (await orders.read(order_id)).locked_for_edit is False

    @pytest.mark.asyncio
    async def test_unauthorized_is_audited(self, editor, orders, audit, make_order):
        order_id = await make_order(SCENARIO)
        intruder = Identity(user_id="666")

        response = await editor.edit_message(
            request(order_id, "m1", "500 roșii", user_id="666"), intruder
        )

        assert response.status_code == 403
        assert response.body["error"] == "unauthorized"
        entries = await audit.filter({"order_id": order_id})
        assert entries[0]["event"] == "edit_attempt"
        assert entries[0]["error"] == "unauthorized"
        assert (await orders.read(order_id)).conversation == SCENARIO

    @pytest.mark.asyncio
    async def test_client_cannot_act_as_owner(self, editor, make_order):
        order_id = await make_order(SCENARIO)

        response = await editor.edit_message(
            request(order_id, "m1", "50 roșii", user_id="1001"), Identity(user_id="666")
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_locked_order_conflict(self, editor, orders, audit, owner, make_order):
        order_id = await make_order(SCENARIO)
        await orders.try_lock(order_id, "9000")

        response = await editor.edit_message(request(order_id, "m1", "50 roșii"), owner)

        assert response.status_code == 409
        assert response.body["error"] == "conflict"
        # The other holder keeps its lock
        stored = await orders.read(order_id)
        assert stored.locked_for_edit is True
        assert stored.locked_by == "9000"
        assert await events(audit, order_id) == ["edit_failed"]

    @pytest.mark.asyncio
    async def test_reparse_failure_leaves_order_untouched(self, editor, orders, audit, owner, make_order):
        order_id = await make_order(REST_SCENARIO)
        before = await orders.read(order_id)

        response = await editor.edit_message(request(order_id, "m2", "40 S"), owner)

        assert response.status_code == 400
        assert response.body["error"] == "reparse_failed"
        diagnostics = response.body["diagnostics"]
        assert diagnostics["reason"] == "over_capacity"
        assert diagnostics["failed_at"] == 2
        assert diagnostics["failed_message"] == "restul L"
        assert [entry["message_id"] for entry in diagnostics["replay_logs"]] == ["m2"]

        after = await orders.read(order_id)
        assert after.conversation == before.conversation
        assert after.order_state == before.order_state
        assert after.locked_for_edit is False

        entries = await audit.filter({"order_id": order_id})
        assert entries[0]["event"] == "edit_failed"
        assert entries[0]["diagnostics"]["failed_at"] == 2

    @pytest.mark.asyncio
    async def test_unlock_failure_is_critical(self, editor, orders, audit, owner, make_order, caplog):
        order_id = await make_order(REST_SCENARIO)

        with patch.object(orders, "unlock", AsyncMock(side_effect=RuntimeError("db down"))):
            with caplog.at_level(logging.CRITICAL, logger="atelier_bot.core.orders.editing"):
                response = await editor.edit_message(request(order_id, "m2", "40 S"), owner)

        assert response.status_code == 400
        assert response.body["diagnostics"]["lock_released"] is False
        assert any(record.levelno == logging.CRITICAL for record in caplog.records)
        assert "unlock_failed" in await events(audit, order_id)
        assert (await orders.read(order_id)).locked_for_edit is True


# =============================================================================
# CONCURRENT WRITERS
# =============================================================================

class TestConcurrentEdits:
    @pytest.mark.asyncio
    async def test_overlapping_edits_single_winner(self, editor, orders, owner, admin, make_order):
        order_id = await make_order(SCENARIO)
        real_read = orders.read
        first_holds_lock = asyncio.Event()
        second_done = asyncio.Event()

        async def read_pausing_lock_holder(key):
            record = await real_read(key)
            if record is not None and record.locked_for_edit and not first_holds_lock.is_set():
                first_holds_lock.set()
                await second_done.wait()
            return record

        async def second_edit():
            await first_holds_lock.wait()
            try:
                return await editor.edit_message(
                    request(order_id, "m1", "40 roșii", user_id=admin.user_id), admin
                )
            finally:
                second_done.set()

        with patch.object(orders, "read", new=read_pausing_lock_holder):
            first, second = await asyncio.gather(
                editor.edit_message(request(order_id, "m1", "50 roșii"), owner),
                second_edit(),
            )

        assert first.status_code == 200
        assert second.status_code == 409
        stored = await orders.read(order_id)
        assert stored.conversation[0]["content"] == "50 roșii"
        assert stored.locked_for_edit is False

    @pytest.mark.asyncio
    async def test_edit_after_stale_takeover_cannot_persist(
        self, editor, orders, audit, owner, admin, make_order
    ):
        order_id = await make_order(SCENARIO)
        real_read = orders.read
        takeover = []

        async def read_then_take_over(key):
            record = await real_read(key)
            if record is not None and record.locked_by == owner.user_id and not takeover:
                takeover.append(None)
                # The owner's edit stalls until its lock goes stale
                await orders.update(key, locked_at=datetime.now(timezone.utc) - timedelta(hours=1))
                takeover.append(await editor.edit_message(
                    request(order_id, "m3", "20 XL", user_id=admin.user_id), admin
                ))
            return record

        with patch.object(orders, "read", new=read_then_take_over):
            stalled = await editor.edit_message(request(order_id, "m1", "50 roșii"), owner)

        assert takeover[1].status_code == 200
        assert stalled.status_code == 409
        stored = await orders.read(order_id)
        assert stored.conversation[0]["content"] == "30 roșii"
        assert stored.conversation[4]["content"] == "20 XL"
        assert stored.locked_for_edit is False
        assert (await events(audit, order_id)).count("edit_success") == 1

    @pytest.mark.asyncio
    async def test_turn_saved_before_lock_is_replayed(self, editor, intake, orders, owner, make_order):
        order_id = await make_order(SHORT_SCENARIO)
        real_try_lock = orders.try_lock

        async def turn_then_lock(*args, **kwargs):
            await intake.handle_user_message(order_id, "10 M")
            return await real_try_lock(*args, **kwargs)

        with patch.object(orders, "try_lock", new=turn_then_lock):
            response = await editor.edit_message(request(order_id, "m1", "50 roșii"), owner)

        assert response.status_code == 200
        stored = await orders.read(order_id)
        contents = [m["content"] for m in stored.conversation]
        assert contents[0] == "50 roșii"
        assert contents[2] == "10 M"
        variant = stored.order_state["variants"][0]
        assert variant["total_quantity"] == 50
        assert variant["quantities_per_size"] == {"M": 10}
        assert stored.order_state == build_state(stored.conversation).to_dict()


# =============================================================================
# HISTORY AND MAINTENANCE
# =============================================================================

class TestHistory:
    @pytest.mark.asyncio
    async def test_admin_sees_newest_first(self, editor, admin, owner, make_order):
        order_id = await make_order(SCENARIO)
        await editor.edit_message(request(order_id, "m1", "50 roșii"), owner)

        response = await editor.get_order_history(order_id, admin)

        assert response.status_code == 200
        assert response.body["count"] == 2
        assert [e["event"] for e in response.body["events"]] == ["edit_success", "edit_attempt"]
        assert response.body["events"][1]["old_text"] == "30 roșii"

    @pytest.mark.asyncio
    async def test_client_forbidden(self, editor, owner, make_order):
        order_id = await make_order(SCENARIO)

        response = await editor.get_order_history(order_id, owner)

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_missing_order_id(self, editor, admin):
        response = await editor.get_order_history("", admin)
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_store_failure(self, editor, audit, admin):
        with patch.object(audit, "filter", AsyncMock(side_effect=RuntimeError("db down"))):
            response = await editor.get_order_history("A1", admin)

        assert response.status_code == 500
        assert response.body["details"] == "db down"


class TestForceUnlock:
    @pytest.mark.asyncio
    async def test_admin_clears_lock(self, editor, orders, audit, admin, make_order):
        order_id = await make_order(SCENARIO)
        await orders.try_lock(order_id, "crashed")

        response = await editor.force_unlock(order_id, admin)

        assert response.body == {"order_id": order_id, "was_locked": True, "previous_holder": "crashed"}
        assert (await orders.read(order_id)).locked_for_edit is False
        assert await events(audit, order_id) == ["manual_unlock"]

    @pytest.mark.asyncio
    async def test_client_forbidden(self, editor, orders, owner, make_order):
        order_id = await make_order(SCENARIO)
        await orders.try_lock(order_id, "crashed")

        response = await editor.force_unlock(order_id, owner)

        assert response.status_code == 403
        assert (await orders.read(order_id)).locked_for_edit is True
