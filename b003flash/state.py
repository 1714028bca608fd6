from dataclasses import dataclass, field
import enum

from .arch.ch32v003 import FLASH_BASE


__all__ = ["HaltMode", "MAX_FLASH_SECTORS", "B003State"]


class HaltMode(enum.IntEnum):
    HaltAndReset   = 0
    Reboot         = 1
    Resume         = 2
    GoToBootloader = 3
    HaltButNoReset = 5


MAX_FLASH_SECTORS = 262144


@dataclass
class B003State:
    """
    Mutable state of one bootloader session.

    The erased sector cache is optimistic: a sector is recorded as erased right before the erase
    command for it is issued, and nothing but :meth:`forget_erased` ever clears it.
    """
    flash_unlocked:  bool     = False
    halt_mode:       HaltMode = HaltMode.HaltAndReset
    long_operation:  bool     = False
    sector_size:     int      = 64
    flash_size:      int      = 0
    chip_id:         int      = 0
    debug_registers: int      = 32
    erased_sectors:  set[int] = field(default_factory=set)

    def _sector_index(self, address):
        if (address & 0xFF00_0000) != FLASH_BASE:
            return None
        sector = (address & 0x00FF_FFFF) // self.sector_size
        if sector >= MAX_FLASH_SECTORS:
            return None
        return sector

    def is_erased(self, address):
        sector = self._sector_index(address)
        return sector is not None and sector in self.erased_sectors

    def mark_erased(self, address):
        sector = self._sector_index(address)
        if sector is not None:
            self.erased_sectors.add(sector)

    def forget_erased(self, address):
        sector = self._sector_index(address)
        if sector is not None:
            self.erased_sectors.discard(sector)
