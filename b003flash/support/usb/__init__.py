"""Backend-neutral view of a USB HID function.

A backend enumerates devices on the bus and exposes, for each of them, just enough to exchange
HID reports through the default control endpoint: open/close, interface claiming, and the
``GET_REPORT``/``SET_REPORT`` class requests.
"""

from typing import Optional
from abc import ABCMeta, abstractmethod
import enum


__all__ = [
    "ReportType",
    "REQ_HID_GET_REPORT", "REQ_HID_SET_REPORT",
    "Error", "ErrorNotSupported", "ErrorNotFound", "ErrorNotOpen", "ErrorAccess", "ErrorBusy",
    "ErrorTimeout", "ErrorDisconnected", "ErrorStall",
    "AbstractContext", "AbstractDevice",
]


# HID 1.11, section 7.2
REQ_HID_GET_REPORT = 0x01
REQ_HID_SET_REPORT = 0x09


class ReportType(enum.IntEnum):
    Input   = 1
    Output  = 2
    Feature = 3


class Error(Exception):
    """A USB transfer or device management request failed."""


class ErrorNotSupported(Error):
    pass


class ErrorNotFound(Error):
    pass


class ErrorNotOpen(Error):
    pass


class ErrorAccess(Error):
    pass


class ErrorBusy(Error):
    pass


class ErrorTimeout(Error):
    pass


class ErrorDisconnected(Error):
    pass


class ErrorStall(Error):
    pass


class AbstractContext(metaclass=ABCMeta):
    @abstractmethod
    async def find_devices(self, vendor_id: int, product_id: int) -> list["AbstractDevice"]:
        """Return every device on the bus with the given VID:PID, without opening them."""

    @abstractmethod
    def close(self):
        pass


class AbstractDevice(metaclass=ABCMeta):
    @property
    @abstractmethod
    def location(self) -> str:
        """Bus position of the device, usable in diagnostics before it is opened."""

    @property
    @abstractmethod
    def serial_number(self) -> Optional[str]:
        """Serial number string descriptor; only available while the device is open."""

    @property
    @abstractmethod
    def is_open(self) -> bool:
        pass

    @abstractmethod
    async def open(self):
        pass

    @abstractmethod
    async def close(self):
        """Release every claimed interface and close the device."""

    @abstractmethod
    async def claim_interface(self, interface: int):
        pass

    @abstractmethod
    async def get_report(self, interface: int, report_type: ReportType, report_id: int,
                         length: int) -> bytes:
        pass

    @abstractmethod
    async def set_report(self, interface: int, report_type: ReportType, report_id: int,
                         data: bytes | bytearray):
        pass
