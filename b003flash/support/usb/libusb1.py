from typing import Optional
import asyncio
import inspect
import functools
import threading

import usb1

from . import *
from . import __all__ as _abstract_all


__all__ = _abstract_all + ["Context", "Device"]


_USB1_ERRORS = [
    ((usb1.USBErrorInvalidParam, usb1.USBErrorNotSupported), ErrorNotSupported),
    (usb1.USBErrorNotFound,  ErrorNotFound),
    (usb1.USBErrorAccess,    ErrorAccess),
    (usb1.USBErrorBusy,      ErrorBusy),
    (usb1.USBErrorTimeout,   ErrorTimeout),
    (usb1.USBErrorNoDevice,  ErrorDisconnected),
    (usb1.USBErrorPipe,      ErrorStall),
]

_TRANSFER_ERRORS = {
    usb1.TRANSFER_TIMED_OUT: ErrorTimeout,
    usb1.TRANSFER_STALL:     ErrorStall,
    usb1.TRANSFER_NO_DEVICE: ErrorDisconnected,
}


def _translate_error(error: usb1.USBError) -> Error:
    for usb1_types, error_type in _USB1_ERRORS:
        if isinstance(error, usb1_types):
            return error_type()
    return Error(str(error))


def _translate_errors(f):
    if inspect.iscoroutinefunction(f):
        @functools.wraps(f)
        async def wrapper(*args, **kwargs):
            try:
                return await f(*args, **kwargs)
            except usb1.USBError as error:
                raise _translate_error(error) from error
    else:
        @functools.wraps(f)
        def wrapper(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except usb1.USBError as error:
                raise _translate_error(error) from error
    return wrapper


class _EventThread(threading.Thread):
    """Runs libusb's event handling so that submitted transfers complete."""

    def __init__(self, usb_context: usb1.USBContext):
        super().__init__(name="libusb1-events")

        self._usb_context = usb_context
        self.stopping = False

    def run(self):
        # Not a daemon thread: it would be killed inside `handleEvents()` while holding libusb
        # locks. The atexit hook of `threading` stops and joins it before the interpreter exits.
        threading._register_atexit(self.stop)
        while not self.stopping:
            self._usb_context.handleEvents()

    def stop(self):
        if self.stopping:
            return
        self.stopping = True
        self._usb_context.interruptEventHandler()
        self.join()


class Context(AbstractContext):
    def __init__(self):
        self._usb_context = usb1.USBContext()
        self._events = _EventThread(self._usb_context)
        self._events.start()

    @_translate_errors
    async def find_devices(self, vendor_id: int, product_id: int) -> list["Device"]:
        return [
            Device(self._events, usb_device)
            for usb_device in self._usb_context.getDeviceIterator(skip_on_error=True)
            if usb_device.getVendorID() == vendor_id and usb_device.getProductID() == product_id
        ]

    def close(self):
        self._events.stop()
        self._usb_context.close()


class Device(AbstractDevice):
    def __init__(self, _events: _EventThread, _usb_device: usb1.USBDevice, *,
                 timeout: float = 1.0):
        self._events      = _events
        self._usb_device  = _usb_device
        self._handle:  Optional[usb1.USBDeviceHandle] = None
        self._claimed: set[int] = set()
        self._timeout_ms  = round(timeout * 1000)

    def _require_handle(self) -> usb1.USBDeviceHandle:
        if self._handle is None:
            raise ErrorNotOpen()
        return self._handle

    @property
    def location(self) -> str:
        return f"{self._usb_device.getBusNumber():03d}/{self._usb_device.getDeviceAddress():03d}"

    @property
    @_translate_errors
    def serial_number(self) -> Optional[str]:
        return self._require_handle().getASCIIStringDescriptor(
            self._usb_device.getSerialNumberDescriptor())

    @property
    def is_open(self) -> bool:
        return self._handle is not None

    @_translate_errors
    async def open(self):
        if self._handle is not None:
            return
        self._handle = self._usb_device.open()
        try:
            # Unbind the OS HID driver while an interface is claimed.
            self._handle.setAutoDetachKernelDriver(True)
        except usb1.USBErrorNotSupported:
            pass

    @_translate_errors
    async def close(self):
        if self._handle is None:
            return
        for interface in sorted(self._claimed):
            self._handle.releaseInterface(interface)
        self._claimed.clear()
        self._handle.close()
        self._handle = None

    @_translate_errors
    async def claim_interface(self, interface: int):
        self._require_handle().claimInterface(interface)
        self._claimed.add(interface)

    @_translate_errors
    async def _control(self, request_type: int, request: int, value: int, index: int,
                       data_or_length: bytes | int) -> bytes | None:
        transfer = self._require_handle().getTransfer()
        transfer.setControl(request_type, request, value, index, data_or_length,
                            timeout=self._timeout_ms)
        is_in = bool(request_type & usb1.ENDPOINT_IN)

        # Cancellation completes asynchronously as well, and must be awaited before the event
        # loop goes away, so it is tracked with its own future.
        loop = asyncio.get_running_loop()
        done = loop.create_future()
        cancelled = loop.create_future()

        def on_complete(transfer: usb1.USBTransfer):
            if self._events.stopping or transfer.isSubmitted():
                return
            status = transfer.getStatus()
            if status == usb1.TRANSFER_CANCELLED:
                cancelled.set_result(None)
            elif done.cancelled():
                pass
            elif status == usb1.TRANSFER_COMPLETED:
                done.set_result(bytes(transfer.getBuffer()[:transfer.getActualLength()])
                                if is_in else None)
            elif status in _TRANSFER_ERRORS:
                done.set_exception(_TRANSFER_ERRORS[status]())
            else:
                done.set_exception(Error(f"transfer failed with libusb status {status}"))

        transfer.setCallback(lambda transfer: loop.call_soon_threadsafe(on_complete, transfer))
        transfer.submit()
        try:
            return await done
        finally:
            if done.cancelled():
                try:
                    transfer.cancel()
                    await cancelled
                except usb1.USBErrorNotFound:
                    pass # completed before it could be cancelled

    async def get_report(self, interface: int, report_type: ReportType, report_id: int,
                         length: int) -> bytes:
        return await self._control(
            usb1.REQUEST_TYPE_CLASS | usb1.RECIPIENT_INTERFACE | usb1.ENDPOINT_IN,
            REQ_HID_GET_REPORT, (report_type << 8) | report_id, interface, length)

    async def set_report(self, interface: int, report_type: ReportType, report_id: int,
                         data: bytes | bytearray):
        await self._control(
            usb1.REQUEST_TYPE_CLASS | usb1.RECIPIENT_INTERFACE | usb1.ENDPOINT_OUT,
            REQ_HID_SET_REPORT, (report_type << 8) | report_id, interface, bytes(data))
