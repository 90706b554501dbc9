"""Declaration source loading.

Declaration files are plain text, but packages occasionally ship a stray
binary under a `.ts` name or a file with a UTF-8 byte order mark.
"""

from __future__ import annotations

from pathlib import Path
from typing import Tuple

_BOM = b"\xef\xbb\xbf"
_SNIFF_BYTES = 4096


def looks_binary(data: bytes) -> bool:
    """True when the first block contains NUL bytes or mostly control bytes."""
    head = data[:_SNIFF_BYTES]
    if not head:
        return False
    if b"\x00" in head:
        return True
    control = sum(1 for b in head if b < 0x20 and b not in (9, 10, 12, 13, 27))
    return control / len(head) > 0.3


def decode_source(raw: bytes) -> Tuple[str, str]:
    """Decode bytes as UTF-8 (BOM stripped), else latin-1.

    Returns:
        (text, encoding name).
    """
    if raw.startswith(_BOM):
        raw = raw[len(_BOM):]
    try:
        return raw.decode("utf-8"), "utf-8"
    except UnicodeDecodeError:
        return raw.decode("latin-1"), "latin-1"


def read_text_file(path: Path, max_bytes: int) -> Tuple[str, str]:
    """Read at most `max_bytes` of `path` as text.

    Raises:
        ValueError: If the file looks binary.
        OSError: If the file cannot be read.
    """
    with open(path, "rb") as fh:
        raw = fh.read(max_bytes)
    if looks_binary(raw):
        raise ValueError(f"{path.name} looks like a binary file")
    return decode_source(raw)
