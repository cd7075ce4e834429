"""Single-file BitTorrent v1 metainfo and info hashes.

Content ids are the hex SHA-1 of the bencoded ``info`` dictionary, so they
are 160-bit and depend only on the name, the bytes and the piece length.
"""

from __future__ import annotations

import hashlib
import math

MIN_PIECE_LENGTH = 16 * 1024


def bencode(value: int | str | bytes | list | dict) -> bytes:
    """Encode ``value``. Dictionary keys are sorted by their raw bytes."""
    if isinstance(value, bool):
        raise TypeError("Cannot bencode bool")
    if isinstance(value, int):
        return b"i%de" % value
    if isinstance(value, str):
        value = value.encode("utf-8")
    if isinstance(value, bytes):
        return b"%d:%s" % (len(value), value)
    if isinstance(value, list):
        return b"l" + b"".join(bencode(item) for item in value) + b"e"
    if isinstance(value, dict):
        items = sorted(
            (key.encode("utf-8") if isinstance(key, str) else key, item)
            for key, item in value.items()
        )
        return b"d" + b"".join(bencode(key) + bencode(item) for key, item in items) + b"e"
    raise TypeError(f"Cannot bencode {type(value).__name__}")


def piece_length(size: int) -> int:
    """Pick the piece length for a file of ``size`` bytes.

    The nearest power of two to ``size / 1024``, never below 16 KiB, so files
    up to 16 MiB use 16 KiB pieces and larger ones about 1024 pieces.
    """
    kib = size / 1024 if size >= 1024 else 1
    return max(MIN_PIECE_LENGTH, 1 << int(math.log2(kib) + 0.5))


def info_dict(name: str, data: bytes, length: int | None = None) -> dict:
    length = length or piece_length(len(data))
    pieces = b"".join(
        hashlib.sha1(data[offset : offset + length]).digest()
        for offset in range(0, len(data), length)
    )
    return {
        "length": len(data),
        "name": name,
        "piece length": length,
        "pieces": pieces,
    }


def info_hash(name: str, data: bytes, length: int | None = None) -> str:
    """Return the hex info hash for ``data`` published under ``name``."""
    return hashlib.sha1(bencode(info_dict(name, data, length))).hexdigest()
