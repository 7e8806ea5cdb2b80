import asyncio
import sys
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from formpulse.live import SubscriptionRegistry  # noqa: E402
from formpulse.models import Submission  # noqa: E402


class _Observer:
    def __init__(self):
        self.messages = []
        self.closed = 0

    async def send(self, message):
        self.messages.append(message)

    async def close(self):
        self.closed += 1


async def _broken_send(message):
    raise ConnectionError("socket gone")


async def _hung_send(message):
    await asyncio.sleep(60)


class SubscriptionRegistryTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.registry = SubscriptionRegistry(send_timeout=0.05)
        self.submission = Submission(form_id="f1", answers={"q1": "hi"})

    async def test_publish_without_subscribers(self):
        delivered = await self.registry.publish("f1", self.submission)
        self.assertEqual(delivered, 0)

    async def test_fan_out_is_scoped_to_form(self):
        first, second, other = _Observer(), _Observer(), _Observer()
        self.registry.subscribe("f1", first.send)
        self.registry.subscribe("f1", second.send)
        self.registry.subscribe("f2", other.send)

        delivered = await self.registry.publish("f1", self.submission)

        self.assertEqual(delivered, 2)
        self.assertEqual(first.messages, second.messages)
        self.assertEqual(len(first.messages), 1)
        message = first.messages[0]
        self.assertEqual(message["type"], "response_created")
        self.assertEqual(message["data"]["id"], self.submission.id)
        self.assertEqual(message["data"]["answers"], {"q1": "hi"})
        self.assertEqual(other.messages, [])

    async def test_failed_observer_is_dropped_and_others_still_receive(self):
        healthy = _Observer()
        self.registry.subscribe("f1", _broken_send)
        self.registry.subscribe("f1", healthy.send)

        delivered = await self.registry.publish("f1", self.submission)

        self.assertEqual(delivered, 1)
        self.assertEqual(len(healthy.messages), 1)
        self.assertEqual(self.registry.subscriber_count("f1"), 1)

    async def test_hung_observer_times_out(self):
        healthy = _Observer()
        self.registry.subscribe("f1", _hung_send)
        self.registry.subscribe("f1", healthy.send)

        delivered = await asyncio.wait_for(self.registry.publish("f1", self.submission), timeout=2)

        self.assertEqual(delivered, 1)
        self.assertEqual(self.registry.subscriber_count("f1"), 1)

    async def test_dropped_observer_is_closed(self):
        broken, hung, healthy = _Observer(), _Observer(), _Observer()
        self.registry.subscribe("f1", _broken_send, close=broken.close)
        self.registry.subscribe("f1", _hung_send, close=hung.close)
        self.registry.subscribe("f1", healthy.send, close=healthy.close)

        delivered = await asyncio.wait_for(self.registry.publish("f1", self.submission), timeout=2)

        self.assertEqual(delivered, 1)
        self.assertEqual(broken.closed, 1)
        self.assertEqual(hung.closed, 1)
        self.assertEqual(healthy.closed, 0)

    async def test_failing_close_does_not_break_broadcast(self):
        async def _broken_close():
            raise RuntimeError("already closed")

        healthy = _Observer()
        self.registry.subscribe("f1", _broken_send, close=_broken_close)
        self.registry.subscribe("f1", healthy.send)

        delivered = await self.registry.publish("f1", self.submission)

        self.assertEqual(delivered, 1)
        self.assertEqual(self.registry.subscriber_count("f1"), 1)

    async def test_unsubscribe_is_idempotent(self):
        observer = _Observer()
        subscription = self.registry.subscribe("f1", observer.send)
        self.registry.unsubscribe(subscription)
        self.registry.unsubscribe(subscription)
        self.assertEqual(self.registry.subscriber_count("f1"), 0)

        await self.registry.publish("f1", self.submission)
        self.assertEqual(observer.messages, [])


if __name__ == "__main__":
    unittest.main()
