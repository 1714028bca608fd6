import logging
import unittest
from unittest import mock

from b003flash.support.asyncio import async_test
from b003flash.config import B003Config
from b003flash.state import B003State
from b003flash.errors import B003IOError, B003VerifyError
from b003flash.stubs import StubWidth
from b003flash.command import B003CommandInterface
from b003flash.memory import chunk_plan, B003MemoryInterface
from b003flash.simulation import SimulatedB003Target


class ChunkPlanTestCase(unittest.TestCase):
    def assertPlan(self, address, size, plan):
        self.assertEqual(list(chunk_plan(address, size)), plan)

    def test_empty(self):
        self.assertPlan(0x2000_0001, 0, [])

    def test_single_byte(self):
        self.assertPlan(0x2000_0000, 1, [(0x2000_0000, 1, StubWidth.Byte)])
        self.assertPlan(0x2000_0003, 1, [(0x2000_0003, 1, StubWidth.Byte)])

    def test_half_word_aligned(self):
        self.assertPlan(0x2000_0002, 2, [(0x2000_0002, 2, StubWidth.HalfWord)])

    def test_odd_start(self):
        self.assertPlan(0x2000_0001, 7, [
            (0x2000_0001, 1, StubWidth.Byte),
            (0x2000_0002, 2, StubWidth.HalfWord),
            (0x2000_0004, 4, StubWidth.Word),
        ])

    def test_three_mod_four(self):
        self.assertPlan(0x2000_0003, 8, [
            (0x2000_0003, 1, StubWidth.Byte),
            (0x2000_0004, 4, StubWidth.Word),
            (0x2000_0008, 2, StubWidth.HalfWord),
            (0x2000_000A, 1, StubWidth.Byte),
        ])

    def test_word_chunks_capped(self):
        self.assertPlan(0x2000_0000, 130, [
            (0x2000_0000, 64, StubWidth.Word),
            (0x2000_0040, 64, StubWidth.Word),
            (0x2000_0080, 2, StubWidth.HalfWord),
        ])

    def test_covers_range(self):
        for address in range(0x2000_0000, 0x2000_0008):
            for size in range(0, 140):
                with self.subTest(address=address, size=size):
                    expected = address
                    for chunk_address, length, width in chunk_plan(address, size):
                        self.assertEqual(chunk_address, expected)
                        self.assertEqual(chunk_address % width, 0)
                        self.assertLessEqual(length, 64)
                        self.assertEqual(length % width, 0)
                        expected += length
                    self.assertEqual(expected, address + size)


class B003MemoryInterfaceTestCase(unittest.TestCase):
    def setUp(self):
        self.target = SimulatedB003Target()
        self.state  = B003State()
        config = B003Config(retry_delay=0, poll_interval=0, long_poll_interval=0)
        logger = logging.getLogger(__name__)
        command = B003CommandInterface(logger, self.target, config, self.state)
        self.iface = B003MemoryInterface(logger, command, self.state)

    @async_test
    async def test_round_trip(self):
        for address in (0x2000_0100, 0x2000_0201):
            for length in (1, 2, 3, 4, 7, 64, 130):
                with self.subTest(address=address, length=length):
                    data = bytes((address + n * 7) & 0xFF for n in range(length))
                    await self.iface.write(address, data)
                    self.assertEqual(self.target.peek(address, length), data)
                    self.assertEqual(await self.iface.read(address, length), data)

    @async_test
    async def test_read_preserves_neighbours(self):
        self.target.poke(0x2000_0000, bytes(range(16)))
        self.assertEqual(await self.iface.read(0x2000_0005, 3), bytes([5, 6, 7]))

    @async_test
    async def test_word_access(self):
        await self.iface.write_word(0x2000_0010, 0x12345678)
        self.assertEqual(self.target.peek(0x2000_0010, 4), b"\x78\x56\x34\x12")
        self.assertEqual(await self.iface.read_word(0x2000_0010), 0x12345678)
        self.assertEqual(await self.iface.read_half_word(0x2000_0012), 0x1234)
        self.assertEqual(await self.iface.read_byte(0x2000_0011), 0x56)

    @async_test
    async def test_flash_verify(self):
        await self.iface.write(0x0800_0101, b"\xa5")
        self.assertEqual(self.target.peek(0x0800_0101), b"\xa5")

    @async_test
    async def test_flash_verify_error(self):
        self.target.drop_flash_stores = True
        with self.assertRaises(B003VerifyError):
            await self.iface.write(0x0800_0101, b"\xa5")

    @async_test
    async def test_ram_skips_verify(self):
        self.target.drop_flash_stores = True
        await self.iface.write(0x2000_0001, b"\xa5\x5a")

    @async_test
    async def test_clears_long_operation(self):
        self.state.long_operation = True
        await self.iface.write(0x2000_0000, b"\x00")
        self.assertFalse(self.state.long_operation)

    @async_test
    async def test_short_response(self):
        receive = self.target.receive_feature_report
        async def truncated(report_id):
            return (await receive(report_id))[:62]
        with mock.patch.object(self.target, "receive_feature_report", truncated):
            with self.assertRaises(B003IOError):
                await self.iface.read_word(0x2000_0010)
