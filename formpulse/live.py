"""Per-form fan-out of accepted submissions to connected observers."""
import asyncio
import itertools
import logging
import threading
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from formpulse.models import Submission

logger = logging.getLogger(__name__)

RESPONSE_CREATED = "response_created"

Sender = Callable[[Dict[str, Any]], Awaitable[None]]
Closer = Callable[[], Awaitable[None]]

_subscription_ids = itertools.count(1)


class Subscription:
    """Handle for one observer of one form."""

    def __init__(self, form_id: str, send: Sender, close: Optional[Closer] = None):
        self.id = next(_subscription_ids)
        self.form_id = form_id
        self._send = send
        self._close = close

    async def deliver(self, message: Dict[str, Any]) -> None:
        await self._send(message)

    async def close(self) -> None:
        if self._close is not None:
            await self._close()

    def __repr__(self) -> str:
        return f"Subscription(id={self.id}, form_id={self.form_id!r})"


class SubscriptionRegistry:
    """Tracks live observers per form and broadcasts new submissions to them.

    One lock guards the whole map; it is never held across an await. Delivery
    is best effort: an observer whose send fails or exceeds ``send_timeout``
    is dropped and the broadcast carries on with the others.
    """

    def __init__(self, send_timeout: float = 5.0):
        self.send_timeout = send_timeout
        self._lock = threading.Lock()
        self._subscriptions: Dict[str, Set[Subscription]] = {}

    def subscribe(
        self, form_id: str, send: Sender, close: Optional[Closer] = None
    ) -> Subscription:
        subscription = Subscription(form_id, send, close)
        with self._lock:
            members = self._subscriptions.setdefault(form_id, set())
            members.add(subscription)
            total = len(members)
        logger.info("Observer connected form=%s total=%d", form_id, total)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            members = self._subscriptions.get(subscription.form_id)
            if not members or subscription not in members:
                return
            members.discard(subscription)
            if not members:
                del self._subscriptions[subscription.form_id]
        logger.info("Observer disconnected form=%s", subscription.form_id)

    def subscriber_count(self, form_id: str) -> int:
        with self._lock:
            return len(self._subscriptions.get(form_id, ()))

    def _snapshot(self, form_id: str) -> List[Subscription]:
        with self._lock:
            return list(self._subscriptions.get(form_id, ()))

    async def _deliver(self, subscription: Subscription, message: Dict[str, Any]) -> bool:
        try:
            await asyncio.wait_for(subscription.deliver(message), timeout=self.send_timeout)
        except Exception as exc:
            logger.warning("Dropping observer %s after failed delivery: %r", subscription, exc)
            self.unsubscribe(subscription)
            await self._close_quietly(subscription)
            return False
        return True

    async def _close_quietly(self, subscription: Subscription) -> None:
        try:
            await asyncio.wait_for(subscription.close(), timeout=self.send_timeout)
        except Exception as exc:
            logger.debug("Closing dropped observer %s failed: %r", subscription, exc)

    async def publish(self, form_id: str, submission: Submission) -> int:
        """Announce ``submission`` to every observer of ``form_id``.

        Returns the number of observers that received it. Never raises for
        delivery problems.
        """
        targets = self._snapshot(form_id)
        if not targets:
            return 0
        message = {
            "type": RESPONSE_CREATED,
            "data": submission.model_dump(mode="json", by_alias=True),
        }
        results = await asyncio.gather(*(self._deliver(target, message) for target in targets))
        delivered = sum(1 for ok in results if ok)
        logger.debug("Broadcast submission %s to %d/%d observers", submission.id, delivered, len(targets))
        return delivered
