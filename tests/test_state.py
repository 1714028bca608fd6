import unittest

from b003flash.state import B003State


class ErasedSectorCacheTestCase(unittest.TestCase):
    def test_mark(self):
        state = B003State()
        state.mark_erased(0x0800_0047)
        self.assertTrue(state.is_erased(0x0800_0040))
        self.assertTrue(state.is_erased(0x0800_007F))
        self.assertFalse(state.is_erased(0x0800_0080))
        self.assertEqual(state.erased_sectors, {1})

    def test_only_user_flash(self):
        state = B003State()
        state.mark_erased(0x1FFF_F000)
        state.mark_erased(0x2000_0000)
        self.assertEqual(state.erased_sectors, set())
        self.assertFalse(state.is_erased(0x1FFF_F000))

    def test_sector_limit(self):
        state = B003State()
        state.mark_erased(0x08FF_FFC0)
        self.assertEqual(state.erased_sectors, {262143})
        state = B003State(sector_size=32)
        state.mark_erased(0x0880_0000)
        self.assertEqual(state.erased_sectors, set())

    def test_forget(self):
        state = B003State()
        state.mark_erased(0x0800_0000)
        state.forget_erased(0x0800_0010)
        self.assertFalse(state.is_erased(0x0800_0000))
        state.forget_erased(0x0800_0040)
