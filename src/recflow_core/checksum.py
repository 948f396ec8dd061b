"""CRC-32C digests for write verification."""
from __future__ import annotations

from .protocol import CRC32C_INIT, CRC32C_POLY


def _init_crc32c_table() -> tuple[int, ...]:
    table = []
    for i in range(256):
        crc = i
        for _ in range(8):
            if crc & 1:
                crc = (crc >> 1) ^ CRC32C_POLY
            else:
                crc >>= 1
        table.append(crc & 0xFFFFFFFF)
    return tuple(table)


# built once at import; shared read-only across threads
_CRC32C_TABLE = _init_crc32c_table()


def crc32c_update(crc: int, data: bytes) -> int:
    table = _CRC32C_TABLE
    for byte in memoryview(data).cast("B"):
        crc = table[(crc ^ byte) & 0xFF] ^ (crc >> 8)
    return crc & 0xFFFFFFFF


def crc32c(data: bytes) -> int:
    """Castagnoli CRC of the whole buffer. crc32c(b"123456789") == 0xE3069283."""
    crc = crc32c_update(CRC32C_INIT, data)
    return (~crc) & 0xFFFFFFFF
