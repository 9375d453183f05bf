import asyncio
import threading
import unittest
from unittest.mock import AsyncMock

from core.admission_gate import Admission, AdmissionGate, CallerGone
from core.errors import OverloadError


class TestAdmissionGate(unittest.IsolatedAsyncioTestCase):
    def test_capacity_must_be_positive(self):
        for capacity in (0, -1, 2.5, "3"):
            with self.subTest(capacity=capacity):
                with self.assertRaises(ValueError):
                    AdmissionGate(capacity)

    async def test_admits_until_full_then_busy(self):
        gate = AdmissionGate(2)
        self.assertEqual(await gate.try_acquire(), Admission.ADMITTED)
        self.assertEqual(await gate.try_acquire(), Admission.ADMITTED)
        self.assertEqual(await gate.try_acquire(), Admission.BUSY)
        self.assertEqual(gate.in_use, 2)
        self.assertEqual(gate.available, 0)

        gate.release()
        self.assertEqual(await gate.try_acquire(), Admission.ADMITTED)

    async def test_caller_gone_takes_no_slot(self):
        gate = AdmissionGate(1)
        is_cancelled = AsyncMock(return_value=True)
        self.assertEqual(await gate.try_acquire(is_cancelled), Admission.CALLER_GONE)
        self.assertEqual(gate.in_use, 0)
        is_cancelled.assert_awaited_once()

    async def test_caller_gone_wins_over_busy(self):
        gate = AdmissionGate(1)
        await gate.try_acquire()
        result = await gate.try_acquire(AsyncMock(return_value=True))
        self.assertEqual(result, Admission.CALLER_GONE)

    async def test_connected_caller_is_admitted(self):
        gate = AdmissionGate(1)
        result = await gate.try_acquire(AsyncMock(return_value=False))
        self.assertEqual(result, Admission.ADMITTED)

    def test_release_without_acquire_raises(self):
        gate = AdmissionGate(1)
        with self.assertRaises(RuntimeError):
            gate.release()

    async def test_slot_releases_on_exception(self):
        gate = AdmissionGate(1)
        with self.assertRaises(KeyError):
            async with gate.slot():
                self.assertEqual(gate.in_use, 1)
                raise KeyError("boom")
        self.assertEqual(gate.in_use, 0)

    async def test_slot_raises_overload_when_full(self):
        gate = AdmissionGate(1)
        async with gate.slot():
            with self.assertRaises(OverloadError):
                async with gate.slot():
                    pass
        self.assertEqual(gate.in_use, 0)

    async def test_slot_raises_caller_gone(self):
        gate = AdmissionGate(1)
        with self.assertRaises(CallerGone):
            async with gate.slot(AsyncMock(return_value=True)):
                pass
        self.assertEqual(gate.in_use, 0)

    def test_never_exceeds_capacity_across_threads(self):
        gate = AdmissionGate(5)
        admitted = []

        def worker():
            admitted.append(asyncio.run(gate.try_acquire()))

        threads = [threading.Thread(target=worker) for _ in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(admitted.count(Admission.ADMITTED), 5)
        self.assertEqual(admitted.count(Admission.BUSY), 15)
        self.assertEqual(gate.in_use, 5)


if __name__ == "__main__":
    unittest.main()
