import logging
import unittest
from unittest import mock

from b003flash.support import usb
from b003flash.support.asyncio import async_test
from b003flash.config import B003Config
from b003flash.state import B003State
from b003flash.errors import B003IOError, B003TimeoutError
from b003flash.stubs import StubWidth, StubDirection, memory_stub
from b003flash.command import CommandBuffer, B003CommandInterface


class ScriptedTransport:
    def __init__(self, *, send_failures=0, receive_failures=0, busy_polls=0, complete=True):
        self.is_open          = False
        self.opens            = 0
        self.sends            = 0
        self.receives         = 0
        self.reports          = []
        self.send_failures    = send_failures
        self.receive_failures = receive_failures
        self.busy_polls       = busy_polls
        self.complete         = complete

    async def open(self):
        self.is_open = True
        self.opens  += 1

    async def close(self):
        self.is_open = False

    async def send_feature_report(self, report_id, data):
        self.sends += 1
        if self.send_failures > 0:
            self.send_failures -= 1
            raise usb.ErrorTimeout()
        self.reports.append(bytes([report_id]) + bytes(data))

    async def receive_feature_report(self, report_id):
        self.receives += 1
        if self.receive_failures > 0:
            self.receive_failures -= 1
            raise usb.ErrorStall()
        response = bytearray(self.reports[-1])
        if self.complete and self.busy_polls == 0:
            response[1:4] = b"\xff\xff\xff"
        else:
            self.busy_polls = max(0, self.busy_polls - 1)
        return bytes(response)


class FlakyTransport(ScriptedTransport):
    """Alternates a stalled receive with a not-yet-completed one."""

    async def receive_feature_report(self, report_id):
        self.receives += 1
        if self.receives % 2 == 1:
            raise usb.ErrorStall()
        return bytes(self.reports[-1])


def make_interface(transport, **kwargs):
    config = B003Config(**{"retry_delay": 0, "poll_interval": 0, "long_poll_interval": 0,
                           **kwargs})
    state = B003State()
    return B003CommandInterface(logging.getLogger(__name__), transport, config, state), state


class CommandBufferTestCase(unittest.TestCase):
    def test_reset(self):
        buf = CommandBuffer()
        buf.append_word(0x12345678)
        buf.reset()
        self.assertEqual(buf.data[0], 0xAA)
        self.assertEqual(bytes(buf.data[1:]), bytes(127))
        self.assertEqual(buf.cursor, 4)

    def test_layout(self):
        buf = CommandBuffer()
        buf.append_bytes(memory_stub(StubWidth.Word, StubDirection.Read))
        buf.append_word(0x2000_0010)
        buf.append_word(8)
        self.assertEqual(buf.cursor, 60)
        self.assertEqual(bytes(buf.data[52:56]), b"\x10\x00\x00\x20")
        self.assertEqual(bytes(buf.data[56:60]), b"\x08\x00\x00\x00")

    def test_payload_does_not_move_cursor(self):
        buf = CommandBuffer()
        buf.set_payload(bytes(range(100)))
        self.assertEqual(buf.cursor, 4)
        self.assertEqual(bytes(buf.data[60:124]), bytes(range(64)))
        self.assertEqual(bytes(buf.data[124:128]), bytes(4))

    def test_trailer(self):
        buf = CommandBuffer()
        report = buf.finalize()
        self.assertEqual(len(report), 128)
        self.assertEqual(report[124:], b"\xcd\xab\x34\x12")

    def test_overflow_dropped(self):
        buf = CommandBuffer()
        buf.append_bytes(bytes(120))
        self.assertEqual(buf.cursor, 124)
        with self.assertLogs("b003flash.command", level="WARNING"):
            buf.append_word(0xFFFF_FFFF)
        self.assertEqual(buf.dropped, 1)
        self.assertEqual(buf.cursor, 124)
        self.assertEqual(bytes(buf.data[124:128]), bytes(4))

    def test_overflow_exact_end(self):
        buf = CommandBuffer()
        with self.assertLogs("b003flash.command", level="WARNING"):
            buf.append_bytes(bytes(124))
        self.assertEqual(buf.dropped, 1)
        self.assertEqual(buf.cursor, 4)


class B003CommandInterfaceTestCase(unittest.TestCase):
    @async_test
    async def test_opens_lazily(self):
        transport = ScriptedTransport()
        iface, _ = make_interface(transport)
        await iface.execute(b"\x01\x02")
        self.assertEqual(transport.opens, 1)
        await iface.execute(b"\x01\x02")
        self.assertEqual(transport.opens, 1)

    @async_test
    async def test_report_id_split(self):
        transport = ScriptedTransport()
        iface, _ = make_interface(transport)
        await iface.execute(b"\x01\x02", 0x0800_0000, payload=b"\x55")
        report = transport.reports[-1]
        self.assertEqual(report[0], 0xAA)
        self.assertEqual(report[4:6], b"\x01\x02")
        self.assertEqual(report[6:10], b"\x00\x00\x00\x08")
        self.assertEqual(report[60], 0x55)
        self.assertEqual(report[124:], b"\xcd\xab\x34\x12")

    @async_test
    async def test_send_retry(self):
        transport = ScriptedTransport(send_failures=3)
        iface, _ = make_interface(transport)
        response = await iface.execute(b"\x01")
        self.assertEqual(transport.sends, 4)
        self.assertEqual(len(transport.reports), 1)
        self.assertEqual(response[1], 0xFF)

    @async_test
    async def test_send_exhausted(self):
        transport = ScriptedTransport(send_failures=100)
        iface, _ = make_interface(transport)
        with self.assertRaises(B003IOError):
            await iface.execute(b"\x01")
        self.assertEqual(transport.sends, 10)
        self.assertEqual(transport.receives, 0)

    @async_test
    async def test_receive_retry(self):
        transport = ScriptedTransport(receive_failures=9)
        iface, _ = make_interface(transport)
        response = await iface.execute(b"\x01")
        self.assertEqual(transport.receives, 10)
        self.assertEqual(response[1], 0xFF)

    @async_test
    async def test_receive_exhausted(self):
        transport = ScriptedTransport(receive_failures=100)
        iface, _ = make_interface(transport)
        with self.assertRaises(B003IOError):
            await iface.execute(b"\x01")
        self.assertEqual(transport.receives, 10)

    @async_test
    async def test_busy_then_complete(self):
        transport = ScriptedTransport(busy_polls=5)
        iface, _ = make_interface(transport)
        await iface.execute(b"\x01")
        self.assertEqual(transport.receives, 6)

    @async_test
    async def test_timeout(self):
        transport = ScriptedTransport(complete=False)
        iface, _ = make_interface(transport)
        with self.assertRaises(B003TimeoutError):
            await iface.execute(b"\x01")
        self.assertEqual(transport.receives, 20)

    @async_test
    async def test_timeout_is_builtin_timeout(self):
        transport = ScriptedTransport(complete=False)
        iface, _ = make_interface(transport, poll_rounds=2)
        with self.assertRaises(TimeoutError):
            await iface.execute(b"\x01")
        self.assertEqual(transport.receives, 2)

    @async_test
    async def test_fire_and_forget(self):
        transport = ScriptedTransport(complete=False)
        iface, _ = make_interface(transport)
        self.assertIsNone(await iface.execute(b"\x01", expect_response=False))
        self.assertEqual(transport.sends, 1)
        self.assertEqual(transport.receives, 0)

    @async_test
    async def test_long_operation_interval(self):
        transport = ScriptedTransport(complete=False)
        iface, state = make_interface(transport, poll_rounds=3,
                                      poll_interval=0.01, long_poll_interval=0.5)
        state.long_operation = True
        with mock.patch("b003flash.command.asyncio.sleep", new=mock.AsyncMock()) as sleep:
            with self.assertRaises(B003TimeoutError):
                await iface.execute(b"\x01")
        self.assertEqual(transport.receives, 3)
        self.assertEqual(sleep.await_args_list, [mock.call(0.5)] * 2)

    @async_test
    async def test_short_operation_interval(self):
        transport = ScriptedTransport(busy_polls=1)
        iface, state = make_interface(transport, poll_interval=0.01, long_poll_interval=0.5)
        with mock.patch("b003flash.command.asyncio.sleep", new=mock.AsyncMock()) as sleep:
            await iface.execute(b"\x01")
        self.assertEqual(sleep.await_args_list, [mock.call(0.01)])

    @async_test
    async def test_receive_failures_span_poll_rounds(self):
        transport = FlakyTransport()
        iface, _ = make_interface(transport)
        with self.assertRaises(B003IOError):
            await iface.execute(b"\x01")
        self.assertEqual(transport.receives, 19)

    @async_test
    async def test_no_delay_after_last_send(self):
        transport = ScriptedTransport(send_failures=100)
        iface, _ = make_interface(transport, retry_delay=0.1)
        with mock.patch("b003flash.command.asyncio.sleep", new=mock.AsyncMock()) as sleep:
            with self.assertRaises(B003IOError):
                await iface.execute(b"\x01")
        self.assertEqual(sleep.await_args_list, [mock.call(0.1)] * 9)

    @async_test
    async def test_no_delay_after_last_poll(self):
        transport = ScriptedTransport(complete=False)
        iface, _ = make_interface(transport, poll_rounds=4, poll_interval=0.01)
        with mock.patch("b003flash.command.asyncio.sleep", new=mock.AsyncMock()) as sleep:
            with self.assertRaises(B003TimeoutError):
                await iface.execute(b"\x01")
        self.assertEqual(transport.receives, 4)
        self.assertEqual(sleep.await_count, 3)
