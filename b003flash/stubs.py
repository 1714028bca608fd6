"""
Machine code stubs executed by the b003 bootloader.

The bootloader copies the command report into RAM and calls into offset 4 of it with ``a0``
pointing at the report and ``a1`` at the boot countdown. The memory access stubs load their
``(address, length)`` arguments from offsets 52/56 of the report and use offset 60 as the data
buffer; on return they store ``0xFFFFFFFF`` at offset 0, which is what the host observes as the
completion marker in byte 1.

These are opaque RV32EC binaries shared with the device side; they must stay byte-exact.
"""

import enum


__all__ = ["StubWidth", "StubDirection", "memory_stub", "WRITE64_FLASH", "HALT_WAIT", "RUN_APP"]


class StubWidth(enum.IntEnum):
    Byte     = 1
    HalfWord = 2
    Word     = 4


class StubDirection(enum.Enum):
    Read  = "read"
    Write = "write"


_PADDING = bytes(12)


_MEMORY_STUBS = {
    (StubWidth.Byte, StubDirection.Read): bytes([
        0x23, 0xa0, 0x05, 0x00, 0x13, 0x07, 0x45, 0x03, 0x0c, 0x43, 0x50, 0x43,
        0x2e, 0x96, 0x21, 0x07, 0x94, 0x21, 0x14, 0xa3, 0x85, 0x05, 0x05, 0x07,
        0xe3, 0xcc, 0xc5, 0xfe, 0x93, 0x06, 0xf0, 0xff, 0x14, 0xc1, 0x82, 0x80,
    ]) + _PADDING,
    (StubWidth.HalfWord, StubDirection.Read): bytes([
        0x23, 0xa0, 0x05, 0x00, 0x13, 0x07, 0x45, 0x03, 0x0c, 0x43, 0x50, 0x43,
        0x2e, 0x96, 0x21, 0x07, 0x96, 0x21, 0x16, 0xa3, 0x89, 0x05, 0x09, 0x07,
        0xe3, 0xcc, 0xc5, 0xfe, 0x93, 0x06, 0xf0, 0xff, 0x14, 0xc1, 0x82, 0x80,
    ]) + _PADDING,
    (StubWidth.Word, StubDirection.Read): bytes([
        0x23, 0xa0, 0x05, 0x00, 0x13, 0x07, 0x45, 0x03, 0x0c, 0x43, 0x50, 0x43,
        0x2e, 0x96, 0x21, 0x07, 0x94, 0x41, 0x14, 0xc3, 0x91, 0x05, 0x11, 0x07,
        0xe3, 0xcc, 0xc5, 0xfe, 0x93, 0x06, 0xf0, 0xff, 0x14, 0xc1, 0x82, 0x80,
    ]) + _PADDING,
    (StubWidth.Byte, StubDirection.Write): bytes([
        0x23, 0xa0, 0x05, 0x00, 0x13, 0x07, 0x45, 0x03, 0x0c, 0x43, 0x50, 0x43,
        0x2e, 0x96, 0x21, 0x07, 0x14, 0x23, 0x94, 0xa1, 0x94, 0x21, 0x14, 0xa3,
        0x85, 0x05, 0x05, 0x07, 0xe3, 0xca, 0xc5, 0xfe, 0x93, 0x06, 0xf0, 0xff,
        0x14, 0xc1, 0x82, 0x80, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00,
    ]),
    (StubWidth.HalfWord, StubDirection.Write): bytes([
        0x23, 0xa0, 0x05, 0x00, 0x13, 0x07, 0x45, 0x03, 0x0c, 0x43, 0x50, 0x43,
        0x2e, 0x96, 0x21, 0x07, 0x16, 0x23, 0x96, 0xa1, 0x96, 0x21, 0x16, 0xa3,
        0x89, 0x05, 0x09, 0x07, 0xe3, 0xca, 0xc5, 0xfe, 0x93, 0x06, 0xf0, 0xff,
        0x14, 0xc1, 0x82, 0x80, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00,
    ]),
    # Unlike the narrower write stubs, this one does not read the data back after storing it.
    (StubWidth.Word, StubDirection.Write): bytes([
        0x23, 0xa0, 0x05, 0x00, 0x13, 0x07, 0x45, 0x03, 0x0c, 0x43, 0x50, 0x43,
        0x2e, 0x96, 0x21, 0x07, 0x14, 0x43, 0x94, 0xc1, 0x91, 0x05, 0x11, 0x07,
        0xe3, 0xcc, 0xc5, 0xfe, 0x93, 0x06, 0xf0, 0xff, 0x14, 0xc1, 0x82, 0x80,
    ]) + _PADDING,
}


def memory_stub(width, direction):
    """Return the stub that transfers ``width``-aligned data in the given ``direction``."""
    return _MEMORY_STUBS[StubWidth(width), StubDirection(direction)]


# Fills the flash page buffer from offset 60 word by word, starts page programming, and spins
# on FLASH_STATR (second argument) until BSY clears.
WRITE64_FLASH = bytes([
    0x13, 0x07, 0x45, 0x03, 0x0c, 0x43, 0x13, 0x86, 0x05, 0x04, 0x5c, 0x43,
    0x8c, 0xc7, 0x14, 0x47, 0x94, 0xc1, 0xb7, 0x06, 0x05, 0x00, 0xd4, 0xc3,
    0x94, 0x41, 0x91, 0x05, 0x11, 0x07, 0xe3, 0xc8, 0xc5, 0xfe, 0xc1, 0x66,
    0x93, 0x86, 0x06, 0x04, 0xd4, 0xc3, 0xfd, 0x56, 0x14, 0xc1, 0x82, 0x80,
])

# Zeroes the boot countdown so the bootloader stays resident.
HALT_WAIT = bytes([
    0x81, 0x46, 0x94, 0xc1, 0xfd, 0x56, 0x14, 0xc1, 0x82, 0x80,
])

# Jumps to the reboot routine advertised by the system flash if its XOR check word matches,
# otherwise unlocks the boot mode key register, clears the boot mode selection and requests a
# system reset through PFIC_SCTLR. Never returns.
RUN_APP = bytes([
    0xb7, 0xf5, 0xff, 0x1f,  # li    a1, 0x1ffff000
    0x93, 0x87, 0xc5, 0x77,  # addi  a5, a1, 0x77c
    0x03, 0xa7, 0x07, 0x00,  # lw    a4, 0(a5)
    0x13, 0x57, 0x07, 0x01,  # srli  a4, a4, 16
    0x83, 0x96, 0x07, 0x00,  # lh    a3, 0(a5)
    0x93, 0xc7, 0xc6, 0x77,  # xori  a5, a3, 0x77c
    0x63, 0x16, 0xf7, 0x00,  # bne   a4, a5, 1f
    0x33, 0x87, 0xb6, 0x00,  # add   a4, a3, a1
    0x67, 0x00, 0x07, 0x00,  # jr    a4
    0xb7, 0x27, 0x02, 0x40,  # 1: li a5, 0x40022000
    0x93, 0x87, 0x87, 0x02,  # addi  a5, a5, 0x28
    0x37, 0x07, 0x67, 0x45,  # li    a4, 0x45670000
    0x13, 0x07, 0x37, 0x12,  # addi  a4, a4, 0x123
    0x23, 0xa0, 0xe7, 0x00,  # sw    a4, 0(a5)
    0xb7, 0x27, 0x02, 0x40,  # li    a5, 0x40022000
    0x93, 0x87, 0x87, 0x02,  # addi  a5, a5, 0x28
    0x37, 0x97, 0xef, 0xcd,  # li    a4, 0xcdef9000
    0x13, 0x07, 0xb7, 0x9a,  # addi  a4, a4, -0x655
    0x23, 0xa0, 0xe7, 0x00,  # sw    a4, 0(a5)
    0xb7, 0x27, 0x02, 0x40,  # li    a5, 0x40022000
    0x93, 0x87, 0xc7, 0x00,  # addi  a5, a5, 0xc
    0x23, 0xa0, 0x07, 0x00,  # sw    zero, 0(a5)
    0xb7, 0x27, 0x02, 0x40,  # li    a5, 0x40022000
    0x93, 0x87, 0x07, 0x01,  # addi  a5, a5, 0x10
    0x13, 0x07, 0x00, 0x08,  # li    a4, 0x80
    0x23, 0xa0, 0xe7, 0x00,  # sw    a4, 0(a5)
    0xb7, 0xf7, 0x00, 0xe0,  # li    a5, 0xe000f000
    0x93, 0x87, 0x07, 0xd1,  # addi  a5, a5, -0x2f0
    0x37, 0x07, 0x00, 0x80,  # li    a4, 0x80000000
    0x23, 0xa0, 0xe7, 0x00,  # sw    a4, 0(a5)
])
