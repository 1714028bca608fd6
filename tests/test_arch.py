import unittest

from b003flash.arch import ch32v003
from b003flash.arch.ch32v003 import *


class CH32V003MapTestCase(unittest.TestCase):
    def test_exports(self):
        for name in ch32v003.__all__:
            with self.subTest(name=name):
                self.assertTrue(hasattr(ch32v003, name))
        self.assertEqual(len(set(ch32v003.__all__)), len(ch32v003.__all__))

    def test_is_flash_address(self):
        self.assertTrue(is_flash_address(FLASH_BASE))
        self.assertTrue(is_flash_address(SYSTEM_FLASH_BASE))
        self.assertFalse(is_flash_address(0x2000_0000))

    def test_bootloader_reserved(self):
        self.assertNotIn(0x1FFF_F7C0, BOOTLOADER_RESERVED)
        self.assertIn(0x1FFF_F7C1, BOOTLOADER_RESERVED)
        self.assertIn(0x1FFF_FFFF, BOOTLOADER_RESERVED)
        self.assertNotIn(0x2000_0000, BOOTLOADER_RESERVED)
