"""
Editing a past message with deterministic replay.

Protocol for one edit:
    load order -> authorize -> take edit lock (CAS) -> reload order
    -> locate message -> audit attempt -> rebuild prefix state -> replay suffix
    -> persist conversation + state + unlock in one UPDATE -> audit success

The lock is released on every exit path. The persisted order is only
written when the whole replay succeeds and this edit still holds the lock;
an edit whose stale lock was taken over gets 409.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Optional

from atelier_bot.config import settings
from atelier_bot.core.orders.errors import (
    BadRequestError,
    ConflictError,
    EditError,
    InternalError,
    NotFoundError,
    ReparseFailedError,
    UnauthorizedError,
)
from atelier_bot.core.orders.models import ChatMessage, OrderState, Variant
from atelier_bot.core.orders.reducer import Diagnostics
from atelier_bot.core.orders.replay import apply_turn, as_message, build_state
from atelier_bot.db.stores import AuditLogStore, OrderStore, audit_log, order_store

logger = logging.getLogger(__name__)


ADMIN_ROLE = "admin"


@dataclass
class Identity:
    """Caller as reported by the identity provider."""
    user_id: str
    role: str = "client"

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


@dataclass
class EditRequest:
    """Edit endpoint input."""
    order_id: Optional[str] = None
    message_id: Optional[str] = None
    new_text: Optional[str] = None
    user_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "EditRequest":
        """Accept both snake_case and camelCase keys."""
        def pick(snake: str, camel: str):
            value = data.get(snake, data.get(camel))
            return None if value is None else str(value)

        return cls(
            order_id=pick("order_id", "orderId"),
            message_id=pick("message_id", "messageId"),
            new_text=pick("new_text", "newText"),
            user_id=pick("user_id", "userId"),
        )

    def missing_fields(self) -> list[str]:
        return [
            name
            for name in ("order_id", "message_id", "new_text", "user_id")
            if not getattr(self, name)
        ]


@dataclass
class ServiceResponse:
    """Transport-agnostic response: HTTP-style code plus JSON body."""
    status_code: int
    body: dict

    @property
    def ok(self) -> bool:
        return self.status_code == 200

    @classmethod
    def from_error(cls, error: EditError) -> "ServiceResponse":
        return cls(status_code=error.status_code, body=error.to_body())


class EditOrchestrator:
    """Edit endpoint and audit history endpoint."""

    def __init__(
        self,
        orders: OrderStore,
        audit: AuditLogStore,
        lock_stale_after_seconds: Optional[int] = None,
    ):
        self.orders = orders
        self.audit = audit
        self.lock_stale_after_seconds = (
            settings.edit_lock_stale_after_seconds
            if lock_stale_after_seconds is None
            else lock_stale_after_seconds
        )

    # =========================================================================
    # EDIT
    # =========================================================================

    async def edit_message(self, request: EditRequest, current_user: Identity) -> ServiceResponse:
        """
        Replace the text of one message and rebuild the order from it.

        Returns:
            200 {ok, order_state, replay_logs} or {error, diagnostics?} with
            400 / 403 / 404 / 409 / 500
        """
        missing = request.missing_fields()
        if missing:
            error = BadRequestError(
                f"Missing required fields: {', '.join(missing)}",
                {"missing": missing},
            )
            await self._append_audit(request, "edit_failed", error=error.tag, message=error.message)
            return ServiceResponse.from_error(error)

        lock_released = True
        try:
            order = await self.orders.read(request.order_id)
            if order is None:
                raise NotFoundError("Order not found")

            if not self._authorized(order.owner_id, request, current_user):
                await self._append_audit(
                    request, "edit_attempt", error="unauthorized", new_text=request.new_text
                )
                raise UnauthorizedError("Unauthorized: not order owner or admin", audited=True)

            token = await self.orders.try_lock(
                request.order_id, request.user_id, self.lock_stale_after_seconds
            )
            if token is None:
                raise ConflictError("Order is currently being edited")

            lock_held = True
            try:
                # Turns written before the lock was taken are part of the replay
                order = await self.orders.read(request.order_id)
                if order is None:
                    raise NotFoundError("Order disappeared during edit")
                body = await self._replay_and_persist(order, request, token)
                # Persist cleared the lock in the same statement
                lock_held = False
                return ServiceResponse(status_code=200, body=body)
            finally:
                if lock_held:
                    lock_released = await self._release_lock(request, token)

        except EditError as e:
            if not e.audited:
                await self._append_audit(
                    request,
                    "edit_failed",
                    error=e.tag,
                    message=e.message,
                    diagnostics=e.diagnostics,
                )
            logger.info(f"Edit of order {request.order_id} rejected: {e.tag} ({e.message})")
            response = ServiceResponse.from_error(e)

        except Exception as e:
            logger.error(f"Unexpected error editing order {request.order_id}: {e}", exc_info=True)
            await self._append_audit(
                request,
                "edit_failed",
                error=str(e),
                diagnostics={"exception": type(e).__name__},
            )
            response = ServiceResponse.from_error(InternalError("Internal server error"))
            response.body["details"] = str(e)

        if not lock_released:
            response.body.setdefault("diagnostics", {})["lock_released"] = False
        return response

    async def _replay_and_persist(self, order, request: EditRequest, token: str) -> dict:
        conversation = [as_message(item) for item in (order.conversation or [])]
        idx = _find_message(conversation, request.message_id)
        if idx is None:
            raise NotFoundError("Message not found in conversation")

        old_message = conversation[idx]
        await self._append_audit(
            request, "edit_attempt", old_text=old_message.content, new_text=request.new_text
        )

        modified = list(conversation)
        modified[idx] = replace(
            old_message,
            content=request.new_text,
            edited_at=datetime.now(timezone.utc),
            edited_by=request.user_id,
            original_content=old_message.original_content or old_message.content,
        )

        logger.info(
            f"Replaying order {order.id} from index {idx} to {len(modified) - 1}"
        )

        # Prefix state is rebuilt, not taken from the stored final state
        state = build_state(modified[:idx])

        replay_logs = []
        for i in range(idx, len(modified)):
            message = modified[i]
            before = state
            state, outcome = apply_turn(state, message)
            if outcome is None:
                continue
            if not outcome.ok:
                raise ReparseFailedError(
                    "Reparse failed during replay",
                    {
                        "error": "Reparse failed during replay",
                        "reason": outcome.reason,
                        "details": outcome.message,
                        "failed_at": i,
                        "failed_message": message.content,
                        "failure": outcome.to_dict(),
                        "replay_logs": replay_logs,
                    },
                )
            entry = _replay_log_entry(i, message, before, state, outcome.diagnostics)
            replay_logs.append(entry)
            logger.debug(f"[REPLAY] {i} {entry}")

        updated = await self.orders.update(
            order.id,
            held_lock=token,
            conversation=[m.to_dict() for m in modified],
            order_state=state.to_dict(),
            locked_for_edit=False,
            locked_at=None,
            locked_by=None,
            lock_token=None,
        )
        if not updated:
            raise ConflictError("Edit lock was taken over before the order was saved")

        await self._append_audit(
            request, "edit_success", reprocess_result="success", replay_logs=replay_logs
        )
        logger.info(f"Order {order.id} updated after editing message {request.message_id}")

        return {
            "ok": True,
            "order_state": state.to_dict(),
            "replay_logs": replay_logs,
        }

    # =========================================================================
    # HISTORY
    # =========================================================================

    async def get_order_history(
        self,
        order_id: Optional[str],
        current_user: Optional[Identity],
        limit: Optional[int] = None,
    ) -> ServiceResponse:
        """Most recent audit entries of an order, newest first. Admin only."""
        if not order_id:
            return ServiceResponse.from_error(BadRequestError("Missing order ID"))

        if current_user is None or not current_user.is_admin:
            return ServiceResponse.from_error(UnauthorizedError("Admin access required"))

        try:
            events = await self.audit.filter(
                {"order_id": order_id},
                sort="-timestamp",
                limit=limit or settings.history_limit,
            )
        except Exception as e:
            logger.error(f"Failed to retrieve audit history for {order_id}: {e}", exc_info=True)
            response = ServiceResponse.from_error(
                InternalError("Failed to retrieve audit history")
            )
            response.body["details"] = str(e)
            return response

        return ServiceResponse(
            status_code=200,
            body={"order_id": order_id, "events": events, "count": len(events)},
        )

    async def force_unlock(self, order_id: Optional[str], current_user: Optional[Identity]) -> ServiceResponse:
        """Clear a stuck edit lock. Admin only."""
        if not order_id:
            return ServiceResponse.from_error(BadRequestError("Missing order ID"))

        if current_user is None or not current_user.is_admin:
            return ServiceResponse.from_error(UnauthorizedError("Admin access required"))

        order = await self.orders.read(order_id)
        if order is None:
            return ServiceResponse.from_error(NotFoundError("Order not found"))

        if not order.locked_for_edit:
            return ServiceResponse(status_code=200, body={"order_id": order_id, "was_locked": False})

        await self.orders.unlock(order_id)
        await self._append_audit(
            EditRequest(order_id=order_id, user_id=current_user.user_id),
            "manual_unlock",
            previous_holder=order.locked_by,
            locked_at=order.locked_at.isoformat() if order.locked_at else None,
        )
        logger.warning(f"Order {order_id} unlocked manually by {current_user.user_id}")
        return ServiceResponse(
            status_code=200,
            body={"order_id": order_id, "was_locked": True, "previous_holder": order.locked_by},
        )

    # =========================================================================
    # HELPERS
    # =========================================================================

    @staticmethod
    def _authorized(owner_id: str, request: EditRequest, current_user: Identity) -> bool:
        if current_user.is_admin:
            return True
        return (
            str(current_user.user_id) == str(owner_id)
            and str(request.user_id) == str(current_user.user_id)
        )

    async def _release_lock(self, request: EditRequest, token: str) -> bool:
        try:
            if not await self.orders.unlock(request.order_id, token):
                logger.warning(f"Order {request.order_id}: edit lock no longer held by this edit")
            return True
        except Exception as e:
            # Order stays locked until an operator clears it
            logger.critical(f"Failed to unlock order {request.order_id}: {e}", exc_info=True)
            await self._append_audit(request, "unlock_failed", error=str(e))
            return False

    async def _append_audit(self, request: EditRequest, event: str, **details) -> None:
        """Best-effort audit write; never aborts the edit."""
        try:
            await self.audit.create({
                "order_id": request.order_id,
                "event": event,
                "user_id": request.user_id,
                "message_id": request.message_id,
                "timestamp": datetime.now(timezone.utc),
                **details,
            })
        except Exception as e:
            logger.error(f"[AUDIT ERROR] {event} for order {request.order_id}: {e}", exc_info=True)


def _find_message(conversation: list[ChatMessage], message_id: str) -> Optional[int]:
    """Locate by id, falling back to the positional index."""
    for i, message in enumerate(conversation):
        if message.id == message_id:
            return i
    for i, _ in enumerate(conversation):
        if str(i) == message_id:
            return i
    return None


def _variant_snapshot(variant: Variant, full: bool = False) -> dict:
    snapshot = {
        "color": variant.color,
        "quantities": dict(variant.quantities_per_size),
        "assigned": variant.assigned,
    }
    if full:
        snapshot.update({
            "total_quantity": variant.total_quantity,
            "is_complete": variant.is_complete,
            "error": variant.error,
        })
    return snapshot


def _replay_log_entry(
    index: int,
    message: ChatMessage,
    before: OrderState,
    after: OrderState,
    diagnostics: Diagnostics,
) -> dict:
    return {
        "message_id": message.id,
        "idx": index,
        "last_question": before.last_question,
        "active_variant_before": before.active_variant,
        "active_variant_after": after.active_variant,
        "target_variant": diagnostics.target_variant,
        "parsed_sizes_detected": list(diagnostics.parsed_sizes),
        "parsed_colors_detected": list(diagnostics.parsed_colors),
        "warnings": list(diagnostics.warnings),
        "merged_quantities_before": [_variant_snapshot(v) for v in before.variants],
        "merged_quantities_after": [_variant_snapshot(v, full=True) for v in after.variants],
    }


# Global orchestrator instance
edit_orchestrator = EditOrchestrator(order_store, audit_log)
