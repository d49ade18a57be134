"""
Unit test file.
"""

import unittest
from threading import Event

from fake_transport import FakeClock, FakeTransport, payload

from multipart_uploader import PartState, PartUploadError, RetryPolicy, Session
from multipart_uploader.file_part import ByteSource
from multipart_uploader.multipart.part_worker import (
    PartTracker,
    PartTransferWorker,
    run_pool,
)
from multipart_uploader.multipart.planner import derive_part_descriptors
from multipart_uploader.multipart.progress import ProgressAggregator
from multipart_uploader.multipart.upload_state import UploadState

_SESSION = Session(upload_id="upload-1", destination_key="videos/test.mp4")


def _make_worker(
    transport: FakeTransport, total: int = 45, part_size: int = 10
) -> tuple[PartTransferWorker, UploadState, FakeClock, list]:
    descriptors = derive_part_descriptors(total, part_size)
    state = UploadState(
        session=_SESSION,
        total_size=total,
        part_size=part_size,
        total_parts=len(descriptors),
        concurrency=2,
    )
    events: list = []
    progress = ProgressAggregator(total, part_size, len(descriptors), events.append)
    clock = FakeClock()
    worker = PartTransferWorker(
        transport=transport,
        session=_SESSION,
        source=ByteSource(payload(total)),
        state=state,
        progress=progress,
        policy=RetryPolicy(max_attempts=3, backoff_base=1.0),
        sleep=clock.sleep,
        tracker=PartTracker(),
    )
    return worker, state, clock, events


class RetryTests(unittest.TestCase):
    """Per-part retry with backoff."""

    def test_backoff_delays(self) -> None:
        policy = RetryPolicy()
        self.assertEqual([policy.delay(a) for a in range(3)], [1.0, 2.0, 4.0])

    def test_fails_twice_then_succeeds(self) -> None:
        transport = FakeTransport()
        transport.failures[3] = 2
        worker, state, clock, events = _make_worker(transport)
        desc = derive_part_descriptors(45, 10)[2]

        result = worker.transfer(desc)

        self.assertEqual(result.part_number, 3)
        self.assertEqual(result.byte_length, 10)
        self.assertEqual(transport.uploads_of(3), 3)
        self.assertEqual(clock.sleeps, [1.0, 2.0])
        self.assertEqual(state.completed_part_numbers(), {3})
        self.assertEqual(len(events), 1)
        status = worker.tracker.get(3)
        self.assertEqual(status.state, PartState.SUCCEEDED)
        self.assertEqual(status.attempt, 3)

    def test_exhausted_attempts(self) -> None:
        transport = FakeTransport()
        transport.failures[2] = 10
        worker, state, clock, events = _make_worker(transport)
        desc = derive_part_descriptors(45, 10)[1]

        with self.assertRaises(PartUploadError) as ctx:
            worker.transfer(desc)

        err = ctx.exception
        self.assertEqual(err.part_number, 2)
        self.assertEqual(err.attempts, 3)
        self.assertIsInstance(err.last_cause, TimeoutError)
        self.assertEqual(transport.uploads_of(2), 3)
        self.assertEqual(clock.sleeps, [1.0, 2.0])
        self.assertEqual(state.finished(), 0)
        self.assertEqual(events, [])
        self.assertEqual(worker.tracker.get(2).state, PartState.FAILED)

    def test_sends_the_right_bytes(self) -> None:
        transport = FakeTransport()
        worker, _, _, _ = _make_worker(transport)
        desc = derive_part_descriptors(45, 10)[4]
        worker.transfer(desc)
        self.assertEqual(transport.received[5], payload(45).getvalue()[40:45])

    def test_illegal_transition(self) -> None:
        tracker = PartTracker()
        with self.assertRaises(RuntimeError):
            tracker.succeed(1)


class PoolTests(unittest.TestCase):
    """Bounded pull-based pool."""

    def test_uploads_every_part_once(self) -> None:
        transport = FakeTransport()
        worker, state, _, events = _make_worker(transport)
        descriptors = derive_part_descriptors(45, 10)

        run_pool(descriptors, 4, worker, Event())

        self.assertTrue(state.is_done())
        self.assertEqual(sorted(transport.upload_calls), [1, 2, 3, 4, 5])
        self.assertEqual(transport.assembled(), payload(45).getvalue())
        percentages = [e.percentage for e in events]
        self.assertEqual(percentages, sorted(percentages))
        self.assertEqual(percentages.count(100), 1)

    def test_cancelled_pool_takes_no_work(self) -> None:
        transport = FakeTransport()
        worker, state, _, _ = _make_worker(transport)
        cancel = Event()
        cancel.set()

        run_pool(derive_part_descriptors(45, 10), 4, worker, cancel)

        self.assertEqual(transport.upload_calls, [])
        self.assertEqual(state.finished(), 0)

    def test_failure_stops_new_work(self) -> None:
        transport = FakeTransport()
        transport.failures[1] = 10
        worker, state, _, _ = _make_worker(transport)
        cancel = Event()

        with self.assertRaises(PartUploadError):
            run_pool(derive_part_descriptors(45, 10), 1, worker, cancel)

        self.assertTrue(cancel.is_set())
        self.assertEqual(transport.upload_calls, [1, 1, 1])


if __name__ == "__main__":
    unittest.main()
