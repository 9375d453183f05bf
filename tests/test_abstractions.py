import asyncio
import unittest

from abstractions.prober import Prober


class TestProberAbstraction(unittest.TestCase):
    def test_cannot_instantiate_abstract(self):
        with self.assertRaises(TypeError):
            Prober()

    def test_subclass_must_implement_probe(self):
        class DummyProber(Prober):
            async def probe(self, host):
                return 42

        self.assertEqual(asyncio.run(DummyProber().probe("h")), 42)

    def test_subclass_without_probe_is_abstract(self):
        class Incomplete(Prober):
            pass

        with self.assertRaises(TypeError):
            Incomplete()


if __name__ == "__main__":
    unittest.main()
