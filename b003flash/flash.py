import logging

from .arch.ch32v003 import *
from .stubs import WRITE64_FLASH
from .errors import B003Error, B003HardwareError, B003FlashOperationError


__all__ = ["B003FlashInterface"]


BLOCK_SIZE = 64


class B003FlashInterface:
    """
    Flash unlock, sector erase and page programming on top of the generic memory access layer.

    Sectors are recorded as erased in the session state right before the erase command for them
    is issued, and a sector recorded as erased is never erased again during the session unless
    :meth:`invalidate_erased` is called for it.
    """

    def __init__(self, logger, memory, command, state):
        self._logger = logger
        self._level  = logging.DEBUG if self._logger.name == __name__ else logging.TRACE

        self._memory  = memory
        self._command = command
        self._state   = state

    def _log(self, message, *args):
        self._logger.log(self._level, "B003: " + message, *args)

    async def _write_register(self, address, value):
        try:
            await self._memory.write_word(address, value)
        except B003Error as error:
            raise B003FlashOperationError(
                f"cannot write {value:#010x} to register {address:#010x}: {error}") from error

    async def unlock(self):
        self._log("unlock flash")
        ctlr = FLASH_CTLR(await self._memory.read_word(FLASH_CTLR_addr))
        if ctlr & (FLASH_CTLR.LOCK | FLASH_CTLR.FLOCK):
            for key_register in (FLASH_KEYR_addr, FLASH_OBKEYR_addr, FLASH_MODEKEYR_addr):
                await self._write_register(key_register, FLASH_KEY1)
                await self._write_register(key_register, FLASH_KEY2)

            ctlr = FLASH_CTLR(await self._memory.read_word(FLASH_CTLR_addr))
            if ctlr & (FLASH_CTLR.LOCK | FLASH_CTLR.FLOCK):
                raise B003HardwareError(
                    f"flash is still locked after unlocking (CTLR={ctlr:#010x})")

        obr = FLASH_OBR(await self._memory.read_word(FLASH_OBR_addr) & 0b11)
        if obr & FLASH_OBR.RDPRT:
            self._logger.warning("flash is read protected")

        self._state.flash_unlocked = True

    def is_erased(self, address):
        return self._state.is_erased(address)

    def _sectors(self, address, length):
        sector_size = self._state.sector_size
        return range(address - address % sector_size, address + length, sector_size)

    async def erase(self, address, length):
        self._log("erase addr=%#010x len=%d", address, length)
        if not self._state.flash_unlocked:
            await self.unlock()

        for sector_address in self._sectors(address, length):
            self._state.mark_erased(sector_address)
            await self._write_register(FLASH_CTLR_addr, FLASH_CTLR.PAGE_ER)
            await self._write_register(FLASH_ADDR_addr, sector_address)
            self._state.long_operation = True
            await self._write_register(FLASH_CTLR_addr, FLASH_CTLR.PAGE_ER | FLASH_CTLR.STRT)

    def invalidate_erased(self, address, length):
        """Forget that the sectors covering ``[address, address + length)`` are erased."""
        for sector_address in self._sectors(address, length):
            self._state.forget_erased(sector_address)

    async def block_write_64(self, address, data):
        if len(data) < BLOCK_SIZE:
            raise ValueError(f"block write needs {BLOCK_SIZE} bytes, got {len(data)}")
        data = bytes(data[:BLOCK_SIZE])

        if not is_flash_address(address):
            await self._memory.write(address, data)
            return

        self._log("program addr=%#010x", address)
        if not self._state.flash_unlocked:
            await self.unlock()
        if not self._state.is_erased(address):
            await self.erase(address, BLOCK_SIZE)

        await self._write_register(FLASH_CTLR_addr, FLASH_CTLR.PAGE_PG)
        await self._write_register(FLASH_CTLR_addr, FLASH_CTLR.PAGE_PG | FLASH_CTLR.BUF_RST)
        self._state.long_operation = True
        await self._command.execute(WRITE64_FLASH, address, FLASH_STATR_addr, payload=data)
        self._state.long_operation = False

    async def _write_sector(self, address, data):
        for offset in range(0, len(data), BLOCK_SIZE):
            await self.block_write_64(address + offset, data[offset:offset + BLOCK_SIZE])

    async def write_binary(self, address, data):
        if address < 0x0100_0000:
            address |= FLASH_BASE
        data = bytes(data)
        if not data:
            return

        end   = address + len(data)
        flash = is_flash_address(address)
        self._log("write binary addr=%#010x len=%d", address, len(data))
        if flash and not self._state.flash_unlocked:
            await self.unlock()
        if address < BOOTLOADER_RESERVED.stop and end > BOOTLOADER_RESERVED.start:
            raise NotImplementedError(
                f"cannot write {address:#010x}..{end - 1:#010x}: overlaps the bootloader "
                f"working area")

        sector_size = self._state.sector_size
        if flash and address % sector_size == 0 and end % sector_size == 0:
            await self._write_sector(address, data)
            return

        for sector_address in self._sectors(address, len(data)):
            sector_end = sector_address + sector_size
            start, stop = max(address, sector_address), min(end, sector_end)
            chunk = data[start - address:stop - address]
            if start == sector_address and stop == sector_end:
                await self._write_sector(sector_address, chunk)
            elif flash:
                contents = await self._memory.read(sector_address, sector_size)
                contents[start - sector_address:stop - sector_address] = chunk
                await self._write_sector(sector_address, contents)
            else:
                raise NotImplementedError(
                    f"cannot write a partial sector at {sector_address:#010x} outside of flash")
