import struct
import logging

from .support.logging import dump_hex
from .arch.ch32v003 import is_flash_address
from .stubs import StubWidth, StubDirection, memory_stub
from .command import CommandBuffer
from .errors import B003IOError, B003VerifyError


__all__ = ["chunk_plan", "B003MemoryInterface"]


def chunk_plan(address, size):
    """
    Split the range ``[address, address + size)`` into transfers the memory stubs can perform.

    Yields ``(address, length, width)`` tuples in ascending address order. Every transfer is
    naturally aligned for its access width, and word transfers carry at most one payload worth
    of data.
    """
    if address & 1 and size > 0:
        yield address, 1, StubWidth.Byte
        address += 1
        size    -= 1
    if address & 3 == 2 and size > 1:
        yield address, 2, StubWidth.HalfWord
        address += 2
        size    -= 2
    while size > 3:
        length = min(size & ~3, CommandBuffer.PAYLOAD_SIZE)
        yield address, length, StubWidth.Word
        address += length
        size    -= length
    if size > 1:
        yield address, 2, StubWidth.HalfWord
        address += 2
        size    -= 2
    if size > 0:
        yield address, 1, StubWidth.Byte


class B003MemoryInterface:
    def __init__(self, logger, command, state):
        self._logger = logger
        self._level  = logging.DEBUG if self._logger.name == __name__ else logging.TRACE

        self._command = command
        self._state   = state

    def _log(self, message, *args):
        self._logger.log(self._level, "B003: " + message, *args)

    async def read(self, address, size):
        self._log("read addr=%#010x len=%d", address, size)
        data = bytearray()
        for chunk_address, length, width in chunk_plan(address, size):
            response = await self._command.execute(
                memory_stub(width, StubDirection.Read), chunk_address, length)
            chunk = response[CommandBuffer.PAYLOAD_OFFSET:CommandBuffer.PAYLOAD_OFFSET + length]
            if len(chunk) != length:
                raise B003IOError(
                    f"short response reading {chunk_address:#010x}: expected {length} bytes, "
                    f"got {len(chunk)}")
            data += chunk
        self._log("read data=<%s>", dump_hex(data))
        return data

    async def write(self, address, data):
        data = bytes(data)
        self._log("write addr=%#010x data=<%s>", address, dump_hex(data))
        offset = 0
        for chunk_address, length, width in chunk_plan(address, len(data)):
            chunk = data[offset:offset + length]
            response = await self._command.execute(
                memory_stub(width, StubDirection.Write), chunk_address, length, payload=chunk)
            if is_flash_address(chunk_address):
                readback = response[CommandBuffer.PAYLOAD_OFFSET:
                                    CommandBuffer.PAYLOAD_OFFSET + length]
                if readback != chunk:
                    raise B003VerifyError(
                        f"verify failed at {chunk_address:#010x}: wrote <{chunk.hex()}>, "
                        f"read back <{readback.hex()}>")
            offset += length
        self._state.long_operation = False

    async def read_byte(self, address):
        value, = await self.read(address, 1)
        return value

    async def read_half_word(self, address):
        value, = struct.unpack("<H", await self.read(address, 2))
        return value

    async def read_word(self, address):
        value, = struct.unpack("<L", await self.read(address, 4))
        return value

    async def write_byte(self, address, value):
        await self.write(address, struct.pack("<B", value))

    async def write_half_word(self, address, value):
        await self.write(address, struct.pack("<H", value))

    async def write_word(self, address, value):
        await self.write(address, struct.pack("<L", value))
