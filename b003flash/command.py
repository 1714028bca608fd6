import struct
import logging
import asyncio

from .support.logging import dump_hex
from .support import usb
from .config import B003Config
from .errors import B003IOError, B003TimeoutError


__all__ = ["CommandBuffer", "B003CommandInterface"]


logger = logging.getLogger(__name__)


class CommandBuffer:
    """
    A 128-byte command report.

    Layout: report id at offset 0, a stub program starting at offset 4 followed by its
    little-endian 32-bit parameters, the data payload at offset 60, and the trailer marker at
    offset 124. The payload lives at a fixed offset and does not advance the append cursor.
    """

    SIZE           = 128
    START          = 4
    PAYLOAD_OFFSET = 60
    PAYLOAD_SIZE   = 64
    TRAILER_OFFSET = 124
    TRAILER        = bytes([0xCD, 0xAB, 0x34, 0x12])

    def __init__(self, report_id=0xAA):
        self.report_id = report_id
        self.data      = bytearray(self.SIZE)
        self.cursor    = self.START
        self.dropped   = 0
        self.reset()

    def reset(self):
        self.data[:] = bytes(self.SIZE)
        self.data[0] = self.report_id
        self.cursor  = self.START

    def append_bytes(self, data):
        end = self.cursor + len(data)
        if end >= self.SIZE:
            logger.warning("command buffer overflow: dropping %d bytes at offset %d",
                           len(data), self.cursor)
            self.dropped += 1
            return
        self.data[self.cursor:end] = data
        self.cursor = end

    def append_word(self, value):
        self.append_bytes(struct.pack("<L", value & 0xFFFF_FFFF))

    def set_payload(self, data):
        data = bytes(data[:self.PAYLOAD_SIZE])
        self.data[self.PAYLOAD_OFFSET:self.PAYLOAD_OFFSET + len(data)] = data

    def finalize(self):
        self.data[self.TRAILER_OFFSET:self.TRAILER_OFFSET + len(self.TRAILER)] = self.TRAILER
        return bytes(self.data)


class B003CommandInterface:
    """
    Command/commit engine of the b003 bootloader.

    Each operation uploads one stub program together with its parameters and payload as a single
    feature report, then fetches the same report back until the bootloader marks it as completed.
    Transport errors are retried a bounded number of times with a fixed delay.
    """

    COMPLETION_OFFSET = 1
    COMPLETION_MARKER = 0xFF

    def __init__(self, logger, transport, config: B003Config, state):
        self._logger = logger
        self._level  = logging.DEBUG if self._logger.name == __name__ else logging.TRACE

        self._transport = transport
        self._config    = config
        self._state     = state

        self.buffer = CommandBuffer(config.report_id)

    def _log(self, message, *args):
        self._logger.log(self._level, "B003: " + message, *args)

    @property
    def transport(self):
        return self._transport

    def reset_op(self):
        self.buffer.reset()

    def append_word(self, value):
        self.buffer.append_word(value)

    def append_bytes(self, data):
        self.buffer.append_bytes(data)

    def set_payload(self, data):
        self.buffer.set_payload(data)

    def _poll_interval(self):
        if self._state.long_operation:
            return self._config.long_poll_interval
        return self._config.poll_interval

    async def _send(self, report):
        if not self._transport.is_open:
            await self._transport.open()

        for attempt in range(1, self._config.send_retries + 1):
            try:
                await self._transport.send_feature_report(report[0], report[1:])
                return
            except usb.Error as error:
                self._log("send failed (attempt %d/%d): %s",
                          attempt, self._config.send_retries, error)
                if attempt < self._config.send_retries:
                    await asyncio.sleep(self._config.retry_delay)
        raise B003IOError(f"could not send command after {self._config.send_retries} attempts")

    async def commit(self, expect_response=True):
        report = self.buffer.finalize()
        self._log("cmd=<%s>", dump_hex(report))
        await self._send(report)
        if not expect_response:
            return None

        # Receive failures are counted across all poll rounds of one command.
        failures = 0
        polls    = 0
        while True:
            try:
                response = await self._transport.receive_feature_report(self._config.report_id)
            except usb.Error as error:
                failures += 1
                self._log("receive failed (attempt %d/%d): %s",
                          failures, self._config.receive_retries, error)
                if failures >= self._config.receive_retries:
                    raise B003IOError(f"could not receive response after "
                                      f"{self._config.receive_retries} attempts") from error
                await asyncio.sleep(self._config.retry_delay)
                continue

            if (len(response) > self.COMPLETION_OFFSET and
                    response[self.COMPLETION_OFFSET] == self.COMPLETION_MARKER):
                self._log("rsp=<%s>", dump_hex(response))
                return bytes(response)
            polls += 1
            if polls >= self._config.poll_rounds:
                raise B003TimeoutError(
                    f"command did not complete after {self._config.poll_rounds} polls")
            await asyncio.sleep(self._poll_interval())

    async def execute(self, stub, *params, payload=None, expect_response=True):
        self.reset_op()
        self.append_bytes(stub)
        for param in params:
            self.append_word(param)
        if payload is not None:
            self.set_payload(payload)
        return await self.commit(expect_response)
