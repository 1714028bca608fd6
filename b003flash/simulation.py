"""
Software model of a CH32V003 running the b003 bootloader.

:class:`SimulatedB003Target` implements the same feature report transport contract as
:class:`~b003flash.hid.HIDFeatureTransport`. Instead of running the uploaded machine code, it
recognizes the stub programs by their bytes and performs their effect on a sparse memory model
with a minimal FLASH controller. Faults can be injected to exercise retry and timeout handling.
"""

import struct
import logging

from .support import usb
from .support.logging import dump_hex
from .arch.ch32v003 import *
from .stubs import StubWidth, StubDirection, memory_stub, WRITE64_FLASH, HALT_WAIT, RUN_APP
from .command import CommandBuffer


__all__ = ["SimulatedB003Target"]


logger = logging.getLogger(__name__)


_ARGS_OFFSET = 52

_FLASH_REGS  = range(0x4002_2000, 0x4002_2030)
_LOCK_BITS   = int(FLASH_CTLR.LOCK | FLASH_CTLR.FLOCK)


class SimulatedB003Target:
    def __init__(self, *, report_id=0xAA, sector_size=64,
                 option_bytes=(0x00FF_5AA5, 0x00FF_00FF, 0x00FF_00FF, 0x00FF_00FF),
                 flash_capacity=16, uid=(0xCD_AB_FF_FF, 0xFF_FF_00_03, 0x44_33_22_11),
                 chip_id=0x0030_0500, read_protected=False, stuck_lock=False):
        self.report_id   = report_id
        self.sector_size = sector_size

        self.memory: dict[int, int] = {}
        self.flash_ctlr  = _LOCK_BITS
        self.flash_addr  = 0
        self.read_protected = read_protected
        self.stuck_lock  = stuck_lock
        self._key_state: dict[int, int] = {}

        # Observable effects
        self.is_open     = False
        self.opens       = 0
        self.sent: list[bytes] = []
        self.receives    = 0
        self.page_erases: list[int] = []
        self.page_writes: list[int] = []
        self.countdown_halted = False
        self.reboots     = 0

        # Fault injection
        self.fail_sends       = 0
        self.fail_receives    = 0
        self.busy_polls       = 0
        self.never_complete   = False
        self.drop_flash_stores = False

        self._response   = None
        self._busy_left  = 0

        for address, value in zip(
                (OB_USER_RDPR_addr, OB_DATA1_DATA0_addr, OB_WRPR1_WRPR0_addr, OB_WRPR3_WRPR2_addr,
                 ESIG_FLACAP_addr, ESIG_UNIID1_addr, ESIG_UNIID2_addr, ESIG_UNIID3_addr,
                 CHIP_ID_addr),
                (*option_bytes, 0xFFFF_0000 | flash_capacity, *uid, chip_id)):
            self.poke(address, struct.pack("<L", value))

    # Memory model

    def peek(self, address, length=1):
        return bytes(self.memory.get(address + offset, self._fill(address + offset))
                     for offset in range(length))

    def poke(self, address, data):
        for offset, value in enumerate(data):
            self.memory[address + offset] = value

    @staticmethod
    def _fill(address):
        if (address & 0xFF00_0000) == FLASH_BASE:
            return 0xFF
        return 0x00

    def _load(self, address, width):
        if address in _FLASH_REGS and width == 4:
            return struct.pack("<L", self._read_register(address))
        return self.peek(address, width)

    def _store(self, address, data):
        if address in _FLASH_REGS and len(data) == 4:
            self._write_register(address, struct.unpack("<L", data)[0])
        elif is_flash_address(address) and self.drop_flash_stores:
            logger.debug("sim: dropped store to flash at %#010x", address)
        else:
            self.poke(address, data)

    # FLASH controller model

    @property
    def flash_locked(self):
        return bool(self.flash_ctlr & FLASH_CTLR.LOCK)

    def _read_register(self, address):
        if address == FLASH_CTLR_addr:
            return self.flash_ctlr
        if address == FLASH_OBR_addr:
            return int(FLASH_OBR.RDPRT) if self.read_protected else 0
        return 0

    def _unlock_with(self, register, value, lock_bits):
        if value == FLASH_KEY1:
            self._key_state[register] = 1
        elif value == FLASH_KEY2 and self._key_state.get(register) == 1:
            self._key_state[register] = 0
            if not self.stuck_lock:
                self.flash_ctlr &= ~int(lock_bits)
        else:
            self._key_state[register] = 0

    def _write_register(self, address, value):
        if address == FLASH_KEYR_addr:
            self._unlock_with(address, value, FLASH_CTLR.LOCK)
        elif address == FLASH_MODEKEYR_addr:
            self._unlock_with(address, value, FLASH_CTLR.FLOCK)
        elif address == FLASH_OBKEYR_addr:
            self._unlock_with(address, value, 0)
        elif address == FLASH_ADDR_addr:
            self.flash_addr = value
        elif address == FLASH_CTLR_addr and not self.flash_locked:
            self.flash_ctlr = int(value) | (self.flash_ctlr & _LOCK_BITS)
            if value & FLASH_CTLR.STRT and value & FLASH_CTLR.PAGE_ER:
                page = self.flash_addr - self.flash_addr % self.sector_size
                self.poke(page, b"\xff" * self.sector_size)
                self.page_erases.append(page)
                self.flash_ctlr &= ~int(FLASH_CTLR.STRT)

    def _program_page(self, address, data):
        if self.flash_locked or not self.flash_ctlr & FLASH_CTLR.PAGE_PG:
            logger.debug("sim: page program at %#010x ignored", address)
            return
        current = self.peek(address, len(data))
        self.poke(address, bytes(old & new for old, new in zip(current, data)))
        self.page_writes.append(address)

    # Stub execution

    def _execute(self, report):
        report = bytearray(report)
        address, length = struct.unpack_from("<LL", report, _ARGS_OFFSET)
        buffer = CommandBuffer.PAYLOAD_OFFSET

        for width in StubWidth:
            for direction in StubDirection:
                stub = memory_stub(width, direction)
                if report[4:4 + len(stub)] != stub:
                    continue
                for offset in range(0, length, width):
                    if direction == StubDirection.Read:
                        report[buffer + offset:buffer + offset + width] = \
                            self._load(address + offset, width)
                    else:
                        self._store(address + offset, report[buffer + offset:
                                                             buffer + offset + width])
                        if width != StubWidth.Word:
                            report[buffer + offset:buffer + offset + width] = \
                                self._load(address + offset, width)
                return report

        if report[4:4 + len(WRITE64_FLASH)] == WRITE64_FLASH:
            self._program_page(address, report[buffer:buffer + 64])
            return report
        if report[4:4 + len(HALT_WAIT)] == HALT_WAIT:
            self.countdown_halted = True
            return report
        if report[4:4 + len(RUN_APP)] == RUN_APP:
            self.reboots += 1
            return None

        logger.warning("sim: unknown stub <%s>", dump_hex(report[4:52]))
        return None

    # Transport contract

    async def open(self):
        self.is_open = True
        self.opens  += 1

    async def close(self):
        self.is_open = False

    async def send_feature_report(self, report_id, data):
        if not self.is_open:
            raise usb.ErrorNotOpen()
        if self.fail_sends > 0:
            self.fail_sends -= 1
            raise usb.ErrorTimeout()

        report = bytes([report_id]) + bytes(data)
        self.sent.append(report)
        trailer = report[CommandBuffer.TRAILER_OFFSET:
                         CommandBuffer.TRAILER_OFFSET + len(CommandBuffer.TRAILER)]
        if trailer != CommandBuffer.TRAILER:
            self._response = None
            return

        self._response  = self._execute(report)
        self._busy_left = self.busy_polls

    async def receive_feature_report(self, report_id):
        if not self.is_open:
            raise usb.ErrorNotOpen()
        self.receives += 1
        if self.fail_receives > 0:
            self.fail_receives -= 1
            raise usb.ErrorTimeout()

        if self._response is None or self.never_complete or self._busy_left > 0:
            self._busy_left = max(0, self._busy_left - 1)
            pending = bytearray(self.sent[-1] if self.sent else bytes(CommandBuffer.SIZE))
            pending[0] = report_id
            return bytes(pending)

        response = bytearray(self._response)
        response[0] = report_id
        response[1:4] = b"\xff\xff\xff"
        return bytes(response)
