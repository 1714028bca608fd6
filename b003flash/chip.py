from dataclasses import dataclass, asdict
import logging

from .arch.ch32v003 import *
from .state import HaltMode
from .stubs import HALT_WAIT, RUN_APP


__all__ = ["ChipInfo", "B003ChipInterface"]


@dataclass
class ChipInfo:
    user:       int
    rdpr:       int
    data1:      int
    data0:      int
    wrpr1:      int
    wrpr0:      int
    wrpr3:      int
    wrpr2:      int
    flash_size: int # KiB
    uid1:       int
    uid2:       int
    uid3:       int

    @classmethod
    def from_registers(cls, user_rdpr, data1_data0, wrpr1_wrpr0, wrpr3_wrpr2, flacap,
                       uid1, uid2, uid3):
        return cls(
            user=user_rdpr >> 16,     rdpr=user_rdpr & 0xFFFF,
            data1=data1_data0 >> 16,  data0=data1_data0 & 0xFFFF,
            wrpr1=wrpr1_wrpr0 >> 16,  wrpr0=wrpr1_wrpr0 & 0xFFFF,
            wrpr3=wrpr3_wrpr2 >> 16,  wrpr2=wrpr3_wrpr2 & 0xFFFF,
            flash_size=flacap & 0xFFFF,
            uid1=uid1, uid2=uid2, uid3=uid3,
        )

    def as_dict(self):
        return asdict(self)


class B003ChipInterface:
    def __init__(self, logger, memory, command, state):
        self._logger = logger
        self._level  = logging.DEBUG if self._logger.name == __name__ else logging.TRACE

        self._memory  = memory
        self._command = command
        self._state   = state

    def _log(self, message, *args):
        self._logger.log(self._level, "B003: " + message, *args)

    async def setup_interface(self):
        self._log("halt boot countdown")
        await self._command.execute(HALT_WAIT)

    async def read_chip_id(self):
        self._state.chip_id = await self._memory.read_word(CHIP_ID_addr)
        self._log("chip id=%#010x", self._state.chip_id)
        return self._state.chip_id

    async def get_chip_info(self):
        await self.set_halt_mode(HaltMode.HaltButNoReset)
        registers = []
        for address in (OB_USER_RDPR_addr, OB_DATA1_DATA0_addr,
                        OB_WRPR1_WRPR0_addr, OB_WRPR3_WRPR2_addr,
                        ESIG_FLACAP_addr,
                        ESIG_UNIID1_addr, ESIG_UNIID2_addr, ESIG_UNIID3_addr):
            registers.append(await self._memory.read_word(address))
        info = ChipInfo.from_registers(*registers)
        self._state.flash_size = info.flash_size * 1024
        self._log("chip info %s", info)
        return info

    async def set_halt_mode(self, mode):
        mode = HaltMode(mode)
        self._log("halt mode %s", mode.name)
        match mode:
            case HaltMode.HaltAndReset | HaltMode.HaltButNoReset:
                pass
            case HaltMode.Reboot:
                await self.reboot()
            case HaltMode.Resume | HaltMode.GoToBootloader:
                self._logger.warning("halt mode %s is not supported by the bootloader", mode.name)
        self._state.halt_mode = mode

    async def reboot(self):
        self._log("reboot")
        await self._command.execute(RUN_APP, expect_response=False)
