"""
CRC-32C (Castagnoli) checksum used by OP_MSG's ``checksumPresent`` flag.
"""

_CRC32C_POLY = 0x82F63B78  # reflected
_CRC32C_INIT = 0xFFFFFFFF


def _build_table() -> tuple[int, ...]:
    table = []
    for i in range(256):
        crc = i
        for _ in range(8):
            if crc & 1:
                crc = (crc >> 1) ^ _CRC32C_POLY
            else:
                crc >>= 1
        table.append(crc & 0xFFFFFFFF)
    return tuple(table)


_CRC32C_TABLE = _build_table()


def crc32c_update(crc: int, data: bytes | bytearray | memoryview) -> int:
    """Feed *data* into a running (non-finalized) CRC state."""
    table = _CRC32C_TABLE
    for byte in bytes(data):
        crc = table[(crc ^ byte) & 0xFF] ^ (crc >> 8)
    return crc & 0xFFFFFFFF


def crc32c(data: bytes | bytearray | memoryview) -> int:
    """Return the CRC-32C of *data*."""
    return (~crc32c_update(_CRC32C_INIT, data)) & 0xFFFFFFFF


__all__ = ["crc32c", "crc32c_update"]
