# Ref: CH32V003 Reference Manual V1.7, chapters 16 (FLASH) and 17 (ESIG)
# Ref: https://github.com/cnlohr/ch32fun (minichlink, pgm-b003fun.c)

import enum


__all__ = [
    "FLASH_BASE", "SYSTEM_FLASH_BASE", "BOOTLOADER_RESERVED",
    "is_flash_address",
    "FLASH_KEYR_addr", "FLASH_OBKEYR_addr", "FLASH_STATR_addr", "FLASH_CTLR_addr",
    "FLASH_ADDR_addr", "FLASH_OBR_addr", "FLASH_MODEKEYR_addr", "FLASH_CTLR", "FLASH_OBR",
    "FLASH_KEY1", "FLASH_KEY2",
    "OB_USER_RDPR_addr", "OB_DATA1_DATA0_addr", "OB_WRPR1_WRPR0_addr", "OB_WRPR3_WRPR2_addr",
    "ESIG_FLACAP_addr", "ESIG_UNIID1_addr", "ESIG_UNIID2_addr", "ESIG_UNIID3_addr",
    "CHIP_ID_addr",
]


# Memory map

FLASH_BASE          = 0x0800_0000
SYSTEM_FLASH_BASE   = 0x1FFF_F000 # where the bootloader itself lives

# Writes strictly inside this window land in the bootloader's own working area.
BOOTLOADER_RESERVED = range(0x1FFF_F7C1, 0x2000_0000)


def is_flash_address(address):
    """Check whether ``address`` is backed by user flash, system flash, or option bytes."""
    return ((address & 0xFF00_0000) == 0x0800_0000 or
            (address & 0x1FFF_0000) == 0x1FFF_0000)


# FLASH peripheral registers

FLASH_KEYR_addr     = 0x4002_2004 # W/O
FLASH_OBKEYR_addr   = 0x4002_2008 # W/O
FLASH_STATR_addr    = 0x4002_200C # R/W
FLASH_CTLR_addr     = 0x4002_2010 # R/W
FLASH_ADDR_addr     = 0x4002_2014 # W/O
FLASH_OBR_addr      = 0x4002_201C # R/O
FLASH_MODEKEYR_addr = 0x4002_2024 # W/O

FLASH_KEY1          = 0x4567_0123
FLASH_KEY2          = 0xCDEF_89AB


class FLASH_CTLR(enum.IntFlag):
    PG       = 0x0000_0001
    PER      = 0x0000_0002
    MER      = 0x0000_0004
    OBPG     = 0x0000_0010
    OBER     = 0x0000_0020
    STRT     = 0x0000_0040
    LOCK     = 0x0000_0080
    OBWRE    = 0x0000_0200
    ERRIE    = 0x0000_0400
    EOPIE    = 0x0000_1000
    FLOCK    = 0x0000_8000
    PAGE_PG  = 0x0001_0000
    PAGE_ER  = 0x0002_0000
    BUF_LOAD = 0x0004_0000
    BUF_RST  = 0x0008_0000


class FLASH_OBR(enum.IntFlag):
    OBERR   = 0b01
    RDPRT   = 0b10


# Option bytes; each word packs two 16-bit fields.

OB_USER_RDPR_addr   = 0x1FFF_F800
OB_DATA1_DATA0_addr = 0x1FFF_F804
OB_WRPR1_WRPR0_addr = 0x1FFF_F808
OB_WRPR3_WRPR2_addr = 0x1FFF_F80C


# Electronic signature

ESIG_FLACAP_addr    = 0x1FFF_F7E0 # flash capacity in KiB, low half-word
ESIG_UNIID1_addr    = 0x1FFF_F7E8
ESIG_UNIID2_addr    = 0x1FFF_F7EC
ESIG_UNIID3_addr    = 0x1FFF_F7F0

CHIP_ID_addr        = 0x1FFF_F7C4
