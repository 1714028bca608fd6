import os
import sys
import logging
import asyncio
import argparse

from fx2.format import autodetect, input_data, output_data

from . import __version__
from .support.logging import dump_hex
from .support import usb
from .arch.ch32v003 import FLASH_BASE
from .config import VID_B003, PID_B003, B003Config
from .errors import B003Error
from .device import B003Device
from .simulation import SimulatedB003Target


# When running as `-m b003flash.cli`, `__name__` is `__main__`, and the real name
# can be retrieved from `__loader__.name`.
logger = logging.getLogger(__loader__.name)


def get_argparser():
    def int_with_base(str):
        return int(str, 0)

    parser = argparse.ArgumentParser(
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
        description="CH32V003 b003 bootloader tool")
    parser.add_argument(
        "-V", "--version", action="version", version=f"b003flash {__version__}",
        help="show version and exit")
    parser.add_argument(
        "-v", "--verbose", default=0, action="count",
        help="increase logging verbosity")
    parser.add_argument(
        "-q", "--quiet", default=0, action="count",
        help="decrease logging verbosity")
    parser.add_argument(
        "-L", "--log-file", metavar="FILE", type=argparse.FileType("w"),
        help="save log messages at highest verbosity to FILE")
    parser.add_argument(
        "--vid", metavar="VID", type=int_with_base, default=VID_B003,
        help="USB vendor ID of the bootloader")
    parser.add_argument(
        "--pid", metavar="PID", type=int_with_base, default=PID_B003,
        help="USB product ID of the bootloader")
    parser.add_argument(
        "--poll-rounds", metavar="COUNT", type=int, default=B003Config.poll_rounds,
        help="number of completion polls per command")
    parser.add_argument(
        "--poll-interval", metavar="SECONDS", type=float, default=B003Config.poll_interval,
        help="delay between completion polls")
    parser.add_argument(
        "--simulate", default=False, action="store_true",
        help="talk to a simulated target instead of a USB device")
    parser.add_argument(
        "-F", "--format", choices=["bin", "hex", "ihex", "auto"], default="auto",
        help="data input/output format")

    subparsers = parser.add_subparsers(dest="action", metavar="COMMAND")
    subparsers.required = True

    subparsers.add_parser(
        "identify", help="display option bytes, flash size and unique ID")

    p_read = subparsers.add_parser(
        "read", help="read memory")
    p_read.add_argument(
        "-f", "--file", metavar="FILENAME", type=argparse.FileType("wb"), default="-",
        help="write data to the specified file")
    p_read.add_argument(
        "address", metavar="ADDRESS", type=int_with_base,
        help="starting address")
    p_read.add_argument(
        "length", metavar="LENGTH", type=int_with_base,
        help="amount of bytes to read")

    p_write = subparsers.add_parser(
        "write", help="program an image into flash")
    p_write.add_argument(
        "-a", "--offset", metavar="ADDRESS", type=int_with_base, default=FLASH_BASE,
        help="starting address of a binary image")
    p_write.add_argument(
        "--force-erase", default=False, action="store_true",
        help="erase every sector written to, even if it was erased earlier in this session")
    p_write.add_argument(
        "--reboot", default=False, action="store_true",
        help="start the application after programming")
    group = p_write.add_mutually_exclusive_group(required=True)
    group.add_argument(
        "-f", "--file", metavar="FILENAME", type=argparse.FileType("rb"),
        help="read image from the specified file")
    group.add_argument(
        "-d", "--data", metavar="DATA", type=str,
        help="hexadecimal bytes to write")

    p_erase = subparsers.add_parser(
        "erase", help="erase flash sectors")
    p_erase.add_argument(
        "address", metavar="ADDRESS", type=int_with_base,
        help="starting address")
    p_erase.add_argument(
        "length", metavar="LENGTH", type=int_with_base,
        help="amount of bytes to erase")

    subparsers.add_parser(
        "reboot", help="leave the bootloader and start the application")

    return parser


class TerminalFormatter(logging.Formatter):
    DEFAULT_COLORS = {
        "TRACE"   : "\033[0m",
        "DEBUG"   : "\033[36m",
        "INFO"    : "\033[1m",
        "WARNING" : "\033[1;33m",
        "ERROR"   : "\033[1;31m",
        "CRITICAL": "\033[1;41m",
    }

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.colors = dict(self.DEFAULT_COLORS)
        for color_override in os.getenv("B003FLASH_COLORS", "").split(":"):
            if color_override:
                level, color = color_override.split("=", 2)
                self.colors[level] = f"\033[{color}m"

    def format(self, record):
        color = self.colors.get(record.levelname, "")
        return f"{color}{super().format(record)}\033[0m"


def create_logger():
    root_logger = logging.getLogger()

    term_formatter_args = {"style": "{",
        "fmt": "{levelname[0]:s}: {name:s}: {message:s}"}
    term_handler = logging.StreamHandler()
    if sys.stderr.isatty() and sys.platform != 'win32':
        term_handler.setFormatter(TerminalFormatter(**term_formatter_args))
    else:
        term_handler.setFormatter(logging.Formatter(**term_formatter_args))
    root_logger.addHandler(term_handler)
    return term_handler


def configure_logger(args, term_handler):
    root_logger = logging.getLogger()

    level = logging.INFO + args.quiet * 10 - args.verbose * 10
    if level < 0:
        dump_hex.limit = None

    if args.log_file:
        file_handler = logging.StreamHandler(args.log_file)
        file_handler.setFormatter(logging.Formatter(style="{",
            fmt="[{asctime:s}] {levelname:s}: {name:s}: {message:s}"))
        root_logger.addHandler(file_handler)
        term_handler.setLevel(level)
        root_logger.setLevel(logging.TRACE)
    else:
        # Setting the level on the root logger avoids creating LogRecords that would be dropped.
        root_logger.setLevel(level)


def _image_chunks(args):
    if args.file is None:
        chunks = input_data(args.data, offset=args.offset)
    else:
        chunks = input_data(args.file, fmt=args.format, offset=args.offset)
    for address, data in chunks:
        if address < 0x0100_0000:
            address |= FLASH_BASE
        yield address, bytes(data)


async def main(argv=None):
    term_handler = create_logger()

    args = get_argparser().parse_args(argv)
    configure_logger(args, term_handler)

    # Image and format errors are reported before the device is touched.
    try:
        if args.action == "read" and args.format == "auto":
            args.format = autodetect(args.file)
        if args.action == "write":
            chunks = list(_image_chunks(args))
    except ValueError as e:
        logger.error(e)
        return 1

    config =B003Config(poll_rounds=args.poll_rounds, poll_interval=args.poll_interval)
    if args.simulate:
        transport = SimulatedB003Target(report_id=config.report_id)
    else:
        transport = None
    device = B003Device(args.vid, args.pid, transport=transport, config=config)

    try:
        await device.init()

        if args.action == "identify":
            info = await device.get_chip_info()
            chip_id = await device.read_chip_id()
            print(f"chip id:    {chip_id:#010x}")
            print(f"flash size: {info.flash_size} KiB")
            print(f"unique id:  {info.uid1:08x}-{info.uid2:08x}-{info.uid3:08x}")
            print(f"user:       {info.user:#06x}  rdpr:  {info.rdpr:#06x}")
            print(f"data1:      {info.data1:#06x}  data0: {info.data0:#06x}")
            print(f"wrpr1:      {info.wrpr1:#06x}  wrpr0: {info.wrpr0:#06x}")
            print(f"wrpr3:      {info.wrpr3:#06x}  wrpr2: {info.wrpr2:#06x}")

        if args.action == "read":
            logger.info("reading %#010x..%#010x", args.address, args.address + args.length - 1)
            data = await device.read_memory(args.address, args.length)
            output_data(args.file, data, fmt=args.format, offset=args.address)
            args.file.flush()

        if args.action == "write":
            for address, data in chunks:
                logger.info("writing %#010x..%#010x", address, address + len(data) - 1)
                if args.force_erase:
                    device.invalidate_erased(address, len(data))
                await device.write_image(data, address)
            if args.reboot:
                logger.info("starting application")
                await device.reboot()

        if args.action == "erase":
            logger.info("erasing %#010x..%#010x", args.address, args.address + args.length - 1)
            await device.erase(args.address, args.length)

        if args.action == "reboot":
            await device.reboot()

    # Device-related errors
    except (B003Error, usb.Error) as e:
        logger.error(e)
        return 1

    except NotImplementedError as e:
        logger.error("unsupported operation: %s", e)
        return 1

    # User interruption
    except KeyboardInterrupt:
        logger.warning("interrupted")
        return 130 # 128 + SIGINT

    finally:
        await device.close()

    return 0


# This entry point is invoked via `console_scripts.b003flash` when installing the package.
def run_main():
    exit(asyncio.new_event_loop().run_until_complete(main()))


# This entry point is invoked when running `python -m b003flash.cli`.
if __name__ == "__main__":
    run_main()
