from typing import Optional
import logging

from .support.logging import dump_hex
from .support.usb import libusb1 as usb
from .config import VID_B003, PID_B003
from .errors import B003Error


__all__ = ["HIDFeatureTransport"]


logger = logging.getLogger(__name__)


REPORT_SIZE = 128


class HIDFeatureTransport:
    """
    Feature report channel to a USB HID interface.

    The device is looked up by VID:PID (and optionally serial number) when the transport is
    opened; its HID interface is then claimed for the lifetime of the transport.
    """

    def __init__(self, vendor_id=VID_B003, product_id=PID_B003, *, interface=0,
                 serial: Optional[str] = None):
        self._vendor_id  = vendor_id
        self._product_id = product_id
        self._interface  = interface
        self._serial     = serial

        self._context: Optional[usb.Context] = None
        self._device:  Optional[usb.Device]  = None

    @property
    def is_open(self) -> bool:
        return self._device is not None

    async def _open_device(self, context: usb.Context) -> usb.Device:
        candidates = await context.find_devices(self._vendor_id, self._product_id)
        for device in candidates:
            try:
                await device.open()
            except usb.ErrorAccess:
                logger.error("missing permissions to open device %s", device.location)
                continue
            if self._serial is not None and device.serial_number != self._serial:
                await device.close()
                continue

            logger.debug("using device %04x:%04x at %s",
                         self._vendor_id, self._product_id, device.location)
            return device

        if candidates and self._serial is not None:
            raise B003Error(f"device with serial number {self._serial} not found")
        raise B003Error(f"device {self._vendor_id:04x}:{self._product_id:04x} not found")

    async def open(self):
        if self._device is not None:
            return

        context = usb.Context()
        try:
            device = await self._open_device(context)
            try:
                await device.claim_interface(self._interface)
            except usb.ErrorBusy:
                await device.close()
                raise B003Error(f"interface {self._interface} of device {device.location} "
                                f"is in use by another program") from None
        except BaseException:
            context.close()
            raise

        self._context, self._device = context, device

    async def close(self):
        if self._device is not None:
            await self._device.close()
            self._device = None
        if self._context is not None:
            self._context.close()
            self._context = None

    def _require_device(self) -> usb.Device:
        if self._device is None:
            raise usb.ErrorNotOpen()
        return self._device

    async def send_feature_report(self, report_id: int, data: bytes | bytearray):
        device = self._require_device()
        logger.trace("SET_REPORT id=%#04x data=<%s>", report_id, dump_hex(data))
        await device.set_report(self._interface, usb.ReportType.Feature, report_id,
                                bytes([report_id]) + bytes(data))

    async def receive_feature_report(self, report_id: int) -> bytes:
        device = self._require_device()
        data = await device.get_report(self._interface, usb.ReportType.Feature, report_id,
                                       REPORT_SIZE)
        logger.trace("GET_REPORT id=%#04x data=<%s>", report_id, dump_hex(data))
        return bytes(data)
