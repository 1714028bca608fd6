__all__ = ["dump_hex"]


class _HexDump:
    """
    Deferred hex rendering of a buffer.

    The buffer is captured by value, so the rendered text reflects its contents at the time
    :func:`dump_hex` was called even if the log record is formatted later; the conversion itself
    only happens if a handler actually emits the record.
    """

    __slots__ = ("_data",)

    def __init__(self, data):
        self._data = bytes(data)

    def __str__(self):
        if dump_hex.limit is None or len(self._data) < dump_hex.limit:
            return self._data.hex()
        else:
            return "{}... ({} bytes total)".format(
                self._data[:dump_hex.limit].hex(), len(self._data))

    def __repr__(self):
        return f"<dump_hex {len(self._data)} bytes>"


def dump_hex(data):
    return _HexDump(data)

dump_hex.limit = 64
