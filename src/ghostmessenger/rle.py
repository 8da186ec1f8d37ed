"""
Feature-flag bitmap and its run-length token codec.

The bootstrap scripts report which feature modules the page loaded as integer
indices. The server expects that set back on every request as the ``__dyn``
parameter: a run-length encoded bit string, gamma coded, bit-reversed per
byte and base64'd with a custom alphabet. The layout has to match the web
client bit for bit, so every step below is deliberate.

Stream layout (before per-byte reversal):

    [initial value] [run 1] [run 2] ... [run n]

Each run length ``c`` is written as ``bit_length(c) - 1`` zero bits followed by
the binary digits of ``c``. Bits are filled least significant first inside a
byte, so reversing each byte yields an MSB-first stream.
"""
import base64
from typing import Iterable, Iterator

ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ-_"
_STANDARD = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/"

_TO_CUSTOM = str.maketrans(_STANDARD, ALPHABET)
_FROM_CUSTOM = str.maketrans(ALPHABET, _STANDARD)

_REVERSED = bytes(int(f"{b:08b}"[::-1], 2) for b in range(256))


class Bitmap:
    """A set of non-negative positions backed by a growable bytearray."""

    def __init__(self, positions: Iterable[int] = ()):
        self._buf = bytearray()
        self.highest = 0
        for p in positions:
            self.set(p)

    def set(self, position: int) -> None:
        if position < 0:
            raise ValueError("bitmap positions are non-negative")
        byte, bit = position >> 3, position & 7
        if byte >= len(self._buf):
            self._buf.extend(bytes(byte - len(self._buf) + 1))
        self._buf[byte] |= 1 << bit
        if position > self.highest:
            self.highest = position

    def __contains__(self, position: int) -> bool:
        byte = position >> 3
        if position < 0 or byte >= len(self._buf):
            return False
        return bool(self._buf[byte] >> (position & 7) & 1)

    def __iter__(self) -> Iterator[int]:
        for byte, value in enumerate(self._buf):
            if not value:
                continue
            for bit in range(8):
                if value >> bit & 1:
                    yield byte * 8 + bit

    def __len__(self) -> int:
        return sum(bin(b).count("1") for b in self._buf)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Bitmap):
            return NotImplemented
        return list(self) == list(other)

    def __repr__(self) -> str:
        return f"Bitmap({list(self)!r})"


class _BitBuffer:
    def __init__(self):
        self.data = bytearray(32)
        self.pos = 0

    def write(self, bit: bool) -> None:
        byte = self.pos >> 3
        if byte >= len(self.data):
            self.data.extend(bytes(max(len(self.data), byte - len(self.data) + 1)))
        if bit:
            self.data[byte] |= 1 << (self.pos & 7)
        self.pos += 1

    def skip(self, n: int) -> None:
        # the buffer starts zeroed, so zero bits are a cursor move
        self.pos += n

    def reversed_bytes(self) -> bytes:
        size = (self.pos + 7) // 8
        self.data.extend(bytes(max(0, size - len(self.data))))
        return bytes(self.data[:size]).translate(_REVERSED)


class RunLengthEncoder:
    """Streaming encoder; feed positions 1..H-1 through ``write``."""

    def __init__(self, start: bool):
        self.current = start
        self.count = 1
        self._bits = _BitBuffer()
        self._bits.write(start)

    def write(self, bit: bool) -> None:
        if bit == self.current:
            self.count += 1
            return
        self._flush()
        self.current = not self.current
        self.count = 1

    def _flush(self) -> None:
        digits = format(self.count, "b")
        self._bits.skip(len(digits) - 1)
        for d in digits:
            self._bits.write(d == "1")

    def finish(self) -> str:
        self._flush()
        raw = base64.b64encode(self._bits.reversed_bytes()).decode("ascii")
        return raw.rstrip("=").translate(_TO_CUSTOM).rstrip(ALPHABET[0])


def encode(bitmap: Bitmap) -> str:
    """Encode a bitmap into its ``__dyn`` token."""
    encoder = RunLengthEncoder(0 in bitmap)
    for position in range(1, bitmap.highest):
        encoder.write(position in bitmap)
    return encoder.finish()


def _read_bits(token: str) -> list[bool]:
    if any(c not in ALPHABET for c in token):
        raise ValueError(f"invalid character in token {token!r}")
    text = token.translate(_FROM_CUSTOM)
    text += "A" * (-len(text) % 4)
    data = base64.b64decode(text).translate(_REVERSED)
    return [bool(b >> i & 1) for b in data for i in range(8)]


def decode(token: str, highest: int) -> Bitmap:
    """Rebuild the bitmap whose highest true position is ``highest``.

    ``highest`` travels out of band; the token only covers the positions
    below it (or position 0 alone when ``highest`` is 0).
    """
    if highest < 0:
        raise ValueError("highest must be non-negative")
    bits = _read_bits(token)
    if not bits:
        raise ValueError("empty token")
    covered = max(highest, 1)
    value = bits[0]
    cursor = 1
    position = 0
    result = Bitmap()
    while position < covered:
        zeros = 0
        while cursor < len(bits) and not bits[cursor]:
            zeros += 1
            cursor += 1
        if cursor >= len(bits):
            raise ValueError("token ends inside a run length")
        # trailing zero digits of the last run may have been trimmed
        digits = bits[cursor:cursor + zeros + 1]
        digits += [False] * (zeros + 1 - len(digits))
        count = int("".join("1" if b else "0" for b in digits), 2)
        cursor += zeros + 1
        if value:
            for p in range(position, min(position + count, covered)):
                result.set(p)
        position += count
        value = not value
    if highest > 0:
        result.set(highest)
    return result
