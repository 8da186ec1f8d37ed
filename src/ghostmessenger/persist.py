"""
Saving and loading session state.

Two forms, both carrying the state plus the cookie jar:

JSON: a ``SessionRecord`` dumped by pydantic.

Binary: big-endian fixed layout:

    magic    4 bytes  b"GMSS"
    version  u8
    strings  user_id, name, short_name, token, sprinkle_name, dyn
             (each u32 length + UTF-8)
    cookie?  u8 present flag, then string if present  (session cookie)
    site     u32 count, then key/value string pairs
    docs     u32 count, then key/value string pairs
    flags    u32 count, then u32 positions
    request  u64
    cookies  u32 count, then per cookie:
             name, value, domain, path strings, i64 expires (-1 = none),
             u8 flags (bit 0 secure, bit 1 http only)

Loading into an already populated state raises ``AlreadyInitialized``.
"""
import struct
from typing import Iterable, Optional

from pydantic import ValidationError

from .errors import AlreadyInitialized, SessionFormatError
from .schemas import CookieRecord, SessionRecord
from .session import SessionState

MAGIC = b"GMSS"
VERSION = 1

_U8 = struct.Struct(">B")
_U32 = struct.Struct(">I")
_U64 = struct.Struct(">Q")
_I64 = struct.Struct(">q")

_STRING_FIELDS = ("user_id", "name", "short_name", "token", "sprinkle_name", "dyn")


# ── JSON ─────────────────────────────────────────────────────────────

def dumps_json(state: SessionState, cookies: Iterable[CookieRecord] = ()) -> str:
    record = SessionRecord(cookies=list(cookies), **state.snapshot())
    return record.model_dump_json(indent=2)


def loads_json(state: SessionState, text: str) -> list[CookieRecord]:
    """Populate ``state`` from JSON and return the saved cookies."""
    if state.initialized:
        raise AlreadyInitialized()
    try:
        record = SessionRecord.model_validate_json(text)
    except ValidationError as e:
        raise SessionFormatError(f"invalid session record: {e}") from e
    state.restore(record.model_dump(exclude={"version", "cookies"}))
    return record.cookies


# ── Binary ───────────────────────────────────────────────────────────

class _Writer:
    def __init__(self):
        self.parts: list[bytes] = []

    def u8(self, n: int) -> None:
        self.parts.append(_U8.pack(n))

    def u32(self, n: int) -> None:
        self.parts.append(_U32.pack(n))

    def u64(self, n: int) -> None:
        self.parts.append(_U64.pack(n))

    def i64(self, n: int) -> None:
        self.parts.append(_I64.pack(n))

    def string(self, s: str) -> None:
        data = s.encode("utf-8")
        self.u32(len(data))
        self.parts.append(data)

    def mapping(self, m: dict[str, str]) -> None:
        self.u32(len(m))
        for k, v in m.items():
            self.string(k)
            self.string(v)

    def getvalue(self) -> bytes:
        return b"".join(self.parts)


class _Reader:
    def __init__(self, data: bytes):
        self.data = memoryview(data)
        self.pos = 0

    def take(self, n: int) -> memoryview:
        if self.pos + n > len(self.data):
            raise SessionFormatError("session record is truncated")
        chunk = self.data[self.pos:self.pos + n]
        self.pos += n
        return chunk

    def _unpack(self, st: struct.Struct) -> int:
        return st.unpack(self.take(st.size))[0]

    def u8(self) -> int:
        return self._unpack(_U8)

    def u32(self) -> int:
        return self._unpack(_U32)

    def u64(self) -> int:
        return self._unpack(_U64)

    def i64(self) -> int:
        return self._unpack(_I64)

    def string(self) -> str:
        raw = self.take(self.u32())
        try:
            return bytes(raw).decode("utf-8")
        except UnicodeDecodeError as e:
            raise SessionFormatError("session record holds invalid UTF-8") from e

    def mapping(self) -> dict[str, str]:
        return {self.string(): self.string() for _ in range(self.u32())}


def dumps_binary(state: SessionState, cookies: Iterable[CookieRecord] = ()) -> bytes:
    snap = state.snapshot()
    w = _Writer()
    w.parts.append(MAGIC)
    w.u8(VERSION)
    for field in _STRING_FIELDS:
        w.string(snap[field])
    if snap["session_cookie"] is None:
        w.u8(0)
    else:
        w.u8(1)
        w.string(snap["session_cookie"])
    w.mapping(snap["site_data"])
    w.mapping(snap["doc_ids"])
    w.u32(len(snap["flags"]))
    for position in snap["flags"]:
        w.u32(position)
    w.u64(snap["request"])

    cookies = list(cookies)
    w.u32(len(cookies))
    for c in cookies:
        w.string(c.name)
        w.string(c.value)
        w.string(c.domain)
        w.string(c.path)
        w.i64(-1 if c.expires is None else c.expires)
        w.u8((1 if c.secure else 0) | (2 if c.http_only else 0))
    return w.getvalue()


def loads_binary(state: SessionState, data: bytes) -> list[CookieRecord]:
    """Populate ``state`` from a binary record and return the saved cookies."""
    if state.initialized:
        raise AlreadyInitialized()
    r = _Reader(data)
    if bytes(r.take(len(MAGIC))) != MAGIC:
        raise SessionFormatError("not a session record")
    version = r.u8()
    if version != VERSION:
        raise SessionFormatError(f"unsupported session record version {version}")

    snap: dict = {field: r.string() for field in _STRING_FIELDS}
    snap["session_cookie"] = r.string() if r.u8() else None
    snap["site_data"] = r.mapping()
    snap["doc_ids"] = r.mapping()
    snap["flags"] = [r.u32() for _ in range(r.u32())]
    snap["request"] = r.u64()

    cookies = []
    for _ in range(r.u32()):
        name, value, domain, path = r.string(), r.string(), r.string(), r.string()
        expires: Optional[int] = r.i64()
        bits = r.u8()
        cookies.append(CookieRecord(
            name=name,
            value=value,
            domain=domain,
            path=path,
            expires=None if expires == -1 else expires,
            secure=bool(bits & 1),
            http_only=bool(bits & 2),
        ))
    if r.pos != len(r.data):
        raise SessionFormatError("trailing bytes after session record")

    state.restore(snap)
    return cookies
