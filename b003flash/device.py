from typing import Optional
import logging

from .arch.ch32v003 import SYSTEM_FLASH_BASE, is_flash_address
from .config import VID_B003, PID_B003, B003Config
from .state import HaltMode, B003State
from .errors import B003Error
from .command import B003CommandInterface
from .memory import B003MemoryInterface
from .flash import B003FlashInterface
from .chip import ChipInfo, B003ChipInterface
from .hid import HIDFeatureTransport


__all__ = ["B003Device"]


class B003Device:
    """
    A session with one CH32V003 running the b003 bootloader.

    :param transport:
        Feature report transport to use. If not specified, the device is located on the USB bus
        by ``vendor_id`` and ``product_id`` when the session is initialized.
    """

    def __init__(self, vendor_id=VID_B003, product_id=PID_B003, *, transport=None,
                 config: Optional[B003Config] = None, logger: Optional[logging.Logger] = None):
        if config is None:
            config = B003Config()
        if logger is None:
            logger = logging.getLogger(__name__)
        if transport is None:
            transport = HIDFeatureTransport(vendor_id, product_id, interface=config.interface)

        self.config    = config
        self.state     = B003State()
        self.transport = transport

        self.command = B003CommandInterface(logger, transport, config, self.state)
        self.memory  = B003MemoryInterface(logger, self.command, self.state)
        self.flash   = B003FlashInterface(logger, self.memory, self.command, self.state)
        self.chip    = B003ChipInterface(logger, self.memory, self.command, self.state)

    async def init(self):
        if not self.transport.is_open:
            await self.transport.open()
        await self.chip.setup_interface()

    async def close(self):
        await self.transport.close()

    async def __aenter__(self):
        await self.init()
        return self

    async def __aexit__(self, exc_type, exc_value, traceback):
        await self.close()

    async def read_byte(self, address) -> int:
        return await self.memory.read_byte(address)

    async def read_half_word(self, address) -> int:
        return await self.memory.read_half_word(address)

    async def read_word(self, address) -> int:
        return await self.memory.read_word(address)

    async def write_byte(self, address, value):
        await self.memory.write_byte(address, value)

    async def write_half_word(self, address, value):
        await self.memory.write_half_word(address, value)

    async def write_word(self, address, value):
        await self.memory.write_word(address, value)

    async def read_memory(self, address, size) -> bytearray:
        return await self.memory.read(address, size)

    async def write_memory(self, address, data):
        await self.memory.write(address, data)

    async def write_image(self, data, offset):
        if not is_flash_address(offset):
            raise B003Error(f"cannot write image to {offset:#010x}: not a flash address")
        if offset == SYSTEM_FLASH_BASE:
            await self.chip.set_halt_mode(HaltMode.HaltButNoReset)
        else:
            await self.chip.set_halt_mode(HaltMode.HaltAndReset)
        await self.flash.write_binary(offset, data)

    async def erase(self, address, length):
        await self.flash.erase(address, length)

    def invalidate_erased(self, address, length):
        self.flash.invalidate_erased(address, length)

    async def unlock_flash(self):
        await self.flash.unlock()

    async def get_chip_info(self) -> ChipInfo:
        return await self.chip.get_chip_info()

    async def read_chip_id(self) -> int:
        return await self.chip.read_chip_id()

    async def set_halt_mode(self, mode):
        await self.chip.set_halt_mode(mode)

    async def reboot(self):
        await self.chip.reboot()
