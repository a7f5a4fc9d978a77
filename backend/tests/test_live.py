import asyncio
import json
import unittest

from backend.db import InMemoryDbClient
from backend.errors import InvalidArgument
from backend.live import SnapshotStream, event_stream, format_sse


def _restaurant_doc(name, city="Paris"):
    return {"name": name, "city": city, "price": 1, "avgRating": 4.0, "numRatings": 1}


class FakeRequest:
    def __init__(self):
        self.disconnected = False

    async def is_disconnected(self):
        return self.disconnected


class SnapshotStreamTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.db = InMemoryDbClient()

    async def test_yields_initial_state_then_updates(self):
        stream = SnapshotStream({"restaurants": self.db.subscribe_restaurants})
        async with stream:
            name, snapshot = await asyncio.wait_for(stream.next(), 1)
            self.assertEqual((name, snapshot), ("restaurants", []))

            self.db.add_restaurant(_restaurant_doc("Pizza Palace"))
            name, snapshot = await asyncio.wait_for(stream.next(), 1)
            self.assertEqual([r.name for r in snapshot], ["Pizza Palace"])

        self.assertFalse(stream.is_open)
        self.assertEqual(self.db.listener_count, 0)

    async def test_updates_from_other_threads(self):
        stream = SnapshotStream({"restaurants": self.db.subscribe_restaurants})
        async with stream:
            await asyncio.wait_for(stream.next(), 1)
            await asyncio.to_thread(self.db.add_restaurant, _restaurant_doc("Thread Thai"))
            _, snapshot = await asyncio.wait_for(stream.next(), 1)
            self.assertEqual(snapshot[0].name, "Thread Thai")

    async def test_reopen_starts_from_current_state(self):
        stream = SnapshotStream({"restaurants": self.db.subscribe_restaurants})
        stream.open()
        await stream.next()
        stream.close()

        self.db.add_restaurant(_restaurant_doc("Closed Cafe"))
        stream.open()
        _, snapshot = await asyncio.wait_for(stream.next(), 1)
        self.assertEqual([r.name for r in snapshot], ["Closed Cafe"])
        stream.close()

    async def test_next_on_closed_stream_stops_iteration(self):
        stream = SnapshotStream({"restaurants": self.db.subscribe_restaurants})
        with self.assertRaises(StopAsyncIteration):
            await stream.next()

    async def test_failed_subscription_releases_the_others(self):
        restaurant_id = self.db.add_restaurant(_restaurant_doc("Sushi"))
        stream = SnapshotStream(
            {
                "restaurant": lambda cb: self.db.subscribe_restaurant(restaurant_id, cb),
                "reviews": lambda cb: None,
            }
        )
        with self.assertRaises(InvalidArgument):
            stream.open()
        self.assertFalse(stream.is_open)
        self.assertEqual(self.db.listener_count, 0)


class FormatSseTests(unittest.TestCase):
    def test_encodes_event_and_json_payload(self):
        message = format_sse("reviews", [{"rating": 4.0}])
        self.assertEqual(message, 'event: reviews\ndata: [{"rating": 4.0}]\n\n')

    def test_encodes_none(self):
        self.assertEqual(json.loads(format_sse("restaurant", None).split("data: ")[1]), None)


class EventStreamTests(unittest.IsolatedAsyncioTestCase):
    async def test_streams_until_client_disconnects(self):
        db = InMemoryDbClient()
        request = FakeRequest()
        stream = SnapshotStream({"restaurants": db.subscribe_restaurants})
        events = event_stream(
            request, stream, keepalive_seconds=0.05,
            transform=lambda name, rows: [r.name for r in rows],
        )

        first = await events.__anext__()
        self.assertEqual(first, "event: restaurants\ndata: []\n\n")
        db.add_restaurant(_restaurant_doc("Taco Town"))
        second = await events.__anext__()
        self.assertEqual(second, 'event: restaurants\ndata: ["Taco Town"]\n\n')
        self.assertEqual(await events.__anext__(), ": keep-alive\n\n")

        request.disconnected = True
        with self.assertRaises(StopAsyncIteration):
            await events.__anext__()
        self.assertEqual(db.listener_count, 0)


if __name__ == "__main__":
    unittest.main()
