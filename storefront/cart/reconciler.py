from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from storefront.cart.remote import RemoteCartStore
from storefront.cart.store import CartStore

logger = logging.getLogger(__name__)


class ReconcileOutcome(str, Enum):
    REMOTE_APPLIED = "remote_applied"
    LOCAL_PUSHED = "local_pushed"
    NOOP = "noop"
    ALREADY_RECONCILED = "already_reconciled"
    FAILED = "failed"


@dataclass
class ShopperSession:
    """Per-context auth and reconciliation state."""

    cart: CartStore
    user_id: str | None = None
    reconciled_user_id: str | None = None

    @property
    def authenticated(self) -> bool:
        return self.user_id is not None

    def is_reconciled_for(self, user_id: str) -> bool:
        return self.reconciled_user_id == user_id


class CartReconciler:
    """Decides once per login whether the local or the remote cart wins.

    Remote non-empty replaces local; remote empty with a non-empty local cart
    is pushed up; both empty writes nothing. Failures still mark the session
    reconciled so a stale fetch cannot clobber later edits.
    """

    def __init__(self, remote: RemoteCartStore):
        self.remote = remote

    async def reconcile(self, session: ShopperSession) -> ReconcileOutcome:
        user_id = session.user_id
        if user_id is None:
            raise ValueError("reconciliation requires an authenticated session")
        if session.is_reconciled_for(user_id):
            return ReconcileOutcome.ALREADY_RECONCILED

        session.reconciled_user_id = user_id
        local = dict(session.cart.snapshot())
        try:
            remote = await self.remote.fetch(user_id)
            if remote:
                session.cart.replace(remote, sync=False)
                outcome = ReconcileOutcome.REMOTE_APPLIED
            elif local:
                await self.remote.upsert(user_id, local)
                outcome = ReconcileOutcome.LOCAL_PUSHED
            else:
                outcome = ReconcileOutcome.NOOP
        except Exception:
            logger.warning("cart reconciliation failed for user=%s; keeping local cart", user_id, exc_info=True)
            outcome = ReconcileOutcome.FAILED
        finally:
            session.cart.attach_user(user_id)

        logger.info("cart reconciled user=%s outcome=%s items=%s", user_id, outcome.value, session.cart.total_items)
        return outcome

    async def on_login(self, session: ShopperSession, user_id: str) -> ReconcileOutcome:
        if session.user_id is not None and session.user_id != user_id:
            await self.on_logout(session)
        session.user_id = user_id
        return await self.reconcile(session)

    async def on_logout(self, session: ShopperSession) -> None:
        session.cart.detach_user()
        session.cart.clear()
        session.user_id = None
        session.reconciled_user_id = None
