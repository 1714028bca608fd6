__all__ = [
    "B003Error", "B003IOError", "B003TimeoutError", "B003VerifyError",
    "B003HardwareError", "B003FlashOperationError",
]


class B003Error(Exception):
    """An exception raised when a bootloader operation fails."""


class B003IOError(B003Error):
    """The transport kept failing after all retries were exhausted."""


class B003TimeoutError(B003Error, TimeoutError):
    """The bootloader did not report completion of a stub within the polling budget."""


class B003VerifyError(B003Error):
    """Data read back from flash after a write does not match the data written."""


class B003HardwareError(B003Error):
    """The target did not behave as required, e.g. flash stayed locked after unlocking."""


class B003FlashOperationError(B003Error):
    """A flash controller register write required by unlock, erase or program failed."""
