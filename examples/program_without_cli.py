"""An example of programming a CH32V003 without using the CLI.

This can be useful when flashing is one step of a larger automated flow, e.g. a production test
fixture that programs the firmware, reads back the unique ID to label the board, and then starts
the application.

Pass ``--simulate`` to run the same flow against a simulated target.
"""

import sys
import asyncio
import logging
from b003flash.device import B003Device
from b003flash.simulation import SimulatedB003Target


logging.basicConfig(level=logging.DEBUG)
logger = logging.getLogger()


async def main():
    transport = SimulatedB003Target() if "--simulate" in sys.argv else None
    async with B003Device(transport=transport, logger=logger) as device:
        info = await device.get_chip_info()
        print(f"flash: {info.flash_size} KiB, uid: {info.uid1:08x}{info.uid2:08x}{info.uid3:08x}")

        # Pretend to program the firmware.
        firmware = bytes(range(256))
        await device.write_image(firmware, 0x0800_0000)
        readback = await device.read_memory(0x0800_0000, len(firmware))
        print(f"verify: {'ok' if readback == firmware else 'FAILED'}")

        await device.reboot()


if __name__ == "__main__":
    asyncio.run(main())
