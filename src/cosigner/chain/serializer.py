"""Binary primitives of the EOSIO serialization format.

Everything is little-endian. Variable-length integers use LEB128.
``SerialBuffer`` is used both for packing (push_*) and for unpacking
(get_*); reading past the end raises SerializationError.

The JSON-side representation of each builtin type follows what chain
API nodes return from ``abi_bin_to_json``:

    name                  "eosio.token"
    bytes / checksumN     lowercase hex string
    time_point_sec        "2019-01-01T00:00:00"
    time_point            "2019-01-01T00:00:00.000000"
    symbol / symbol_code  "4,EOS" / "EOS"
    asset                 "1.0000 EOS"
"""

import re
import struct
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Union

from cosigner.chain import keys
from cosigner.errors import SerializationError

_NAME_CHARS = ".12345abcdefghijklmnopqrstuvwxyz"
_NAME_RE = re.compile(r"^[.1-5a-z]{0,12}[.1-5a-j]?$")
_SYMBOL_CODE_RE = re.compile(r"^[A-Z]{1,7}$")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
# block_timestamp_type counts half-second slots from 2000-01-01
_BLOCK_TIMESTAMP_EPOCH = datetime(2000, 1, 1, tzinfo=timezone.utc)
_BLOCK_INTERVAL = timedelta(milliseconds=500)


class SerialBuffer:
    """Growable write buffer with a read cursor."""

    def __init__(self, data: bytes = b""):
        self._data = bytearray(data)
        self.read_pos = 0

    def as_bytes(self) -> bytes:
        return bytes(self._data)

    @property
    def remaining(self) -> int:
        return len(self._data) - self.read_pos

    def have_read_data(self) -> bool:
        return self.read_pos < len(self._data)

    # -- raw bytes --

    def push_array(self, data: bytes) -> None:
        self._data.extend(data)

    def get_array(self, length: int) -> bytes:
        if length < 0 or self.read_pos + length > len(self._data):
            raise SerializationError("Read past end of buffer")
        result = bytes(self._data[self.read_pos:self.read_pos + length])
        self.read_pos += length
        return result

    # -- fixed width integers --

    def _push_struct(self, fmt: str, value: Any, type_name: str) -> None:
        try:
            self._data.extend(struct.pack(fmt, _as_int(value, type_name)))
        except struct.error as e:
            raise SerializationError(f"Number is out of range for {type_name}: {value}") from e

    def _get_struct(self, fmt: str) -> Any:
        return struct.unpack(fmt, self.get_array(struct.calcsize(fmt)))[0]

    def push_uint8(self, v) -> None:
        self._push_struct("<B", v, "uint8")

    def get_uint8(self) -> int:
        return self._get_struct("<B")

    def push_uint16(self, v) -> None:
        self._push_struct("<H", v, "uint16")

    def get_uint16(self) -> int:
        return self._get_struct("<H")

    def push_uint32(self, v) -> None:
        self._push_struct("<I", v, "uint32")

    def get_uint32(self) -> int:
        return self._get_struct("<I")

    def push_uint64(self, v) -> None:
        self._push_struct("<Q", v, "uint64")

    def get_uint64(self) -> int:
        return self._get_struct("<Q")

    def push_int8(self, v) -> None:
        self._push_struct("<b", v, "int8")

    def get_int8(self) -> int:
        return self._get_struct("<b")

    def push_int16(self, v) -> None:
        self._push_struct("<h", v, "int16")

    def get_int16(self) -> int:
        return self._get_struct("<h")

    def push_int32(self, v) -> None:
        self._push_struct("<i", v, "int32")

    def get_int32(self) -> int:
        return self._get_struct("<i")

    def push_int64(self, v) -> None:
        self._push_struct("<q", v, "int64")

    def get_int64(self) -> int:
        return self._get_struct("<q")

    def push_uint128(self, v) -> None:
        self._push_wide(v, signed=False, type_name="uint128")

    def get_uint128(self) -> int:
        return int.from_bytes(self.get_array(16), "little", signed=False)

    def push_int128(self, v) -> None:
        self._push_wide(v, signed=True, type_name="int128")

    def get_int128(self) -> int:
        return int.from_bytes(self.get_array(16), "little", signed=True)

    def _push_wide(self, v, signed: bool, type_name: str) -> None:
        try:
            self._data.extend(_as_int(v, type_name).to_bytes(16, "little", signed=signed))
        except OverflowError as e:
            raise SerializationError(f"Number is out of range for {type_name}: {v}") from e

    # -- variable length integers --

    def push_varuint32(self, v) -> None:
        v = _as_int(v, "varuint32")
        if v < 0 or v > 0xFFFFFFFF:
            raise SerializationError(f"Number is out of range for varuint32: {v}")
        while True:
            if v >> 7:
                self._data.append(0x80 | (v & 0x7F))
                v >>= 7
            else:
                self._data.append(v)
                break

    def get_varuint32(self) -> int:
        v = 0
        bit = 0
        while True:
            b = self.get_uint8()
            v |= (b & 0x7F) << bit
            bit += 7
            if not b & 0x80:
                break
            if bit >= 35:
                raise SerializationError("Malformed varuint32")
        if v > 0xFFFFFFFF:
            raise SerializationError("Malformed varuint32")
        return v

    def push_varint32(self, v) -> None:
        v = _as_int(v, "varint32")
        if v < -0x80000000 or v > 0x7FFFFFFF:
            raise SerializationError(f"Number is out of range for varint32: {v}")
        self.push_varuint32(((v << 1) ^ (v >> 31)) & 0xFFFFFFFF)

    def get_varint32(self) -> int:
        v = self.get_varuint32()
        if v & 1:
            return (~v) >> 1
        return v >> 1

    # -- floats --

    def _push_float(self, fmt: str, value: Any, type_name: str) -> None:
        try:
            self._data.extend(struct.pack(fmt, float(value)))
        except (OverflowError, TypeError, ValueError, struct.error) as e:
            raise SerializationError(f"Invalid {type_name} value: {value!r}") from e

    def push_float32(self, v) -> None:
        self._push_float("<f", v, "float32")

    def get_float32(self) -> float:
        return self._get_struct("<f")

    def push_float64(self, v) -> None:
        self._push_float("<d", v, "float64")

    def get_float64(self) -> float:
        return self._get_struct("<d")

    # -- length prefixed --

    def push_bytes(self, v) -> None:
        data = _as_bytes(v)
        self.push_varuint32(len(data))
        self.push_array(data)

    def get_bytes(self) -> bytes:
        return self.get_array(self.get_varuint32())

    def push_string(self, v) -> None:
        if not isinstance(v, str):
            raise SerializationError(f"Expected string, got {type(v).__name__}")
        self.push_bytes(v.encode("utf-8"))

    def get_string(self) -> str:
        try:
            return self.get_bytes().decode("utf-8")
        except UnicodeDecodeError as e:
            raise SerializationError("Invalid utf-8 in string") from e

    # -- chain specific --

    def push_name(self, v) -> None:
        self.push_uint64(string_to_name(v))

    def get_name(self) -> str:
        return name_to_string(self.get_uint64())


def _as_int(value: Any, type_name: str) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value, 10)
        except ValueError:
            pass
    raise SerializationError(f"Expected number for {type_name}, got {value!r}")


def _as_bytes(value: Union[bytes, bytearray, str]) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        try:
            return bytes.fromhex(value)
        except ValueError as e:
            raise SerializationError(f"Expected hex string, got {value!r}") from e
    raise SerializationError(f"Expected bytes or hex string, got {type(value).__name__}")


# ======================
# Names
# ======================


def _char_to_symbol(c: str) -> int:
    if "a" <= c <= "z":
        return ord(c) - ord("a") + 6
    if "1" <= c <= "5":
        return ord(c) - ord("1") + 1
    return 0


def string_to_name(s: Any) -> int:
    """Encode an account/action name into its uint64 value."""
    if not isinstance(s, str) or not _NAME_RE.match(s):
        raise SerializationError(f"Name should be less than 13 characters and only contain [.1-5a-z]: {s!r}")
    value = 0
    for i in range(13):
        c = _char_to_symbol(s[i]) if i < len(s) else 0
        if i < 12:
            value |= (c & 0x1F) << (64 - 5 * (i + 1))
        else:
            value |= c & 0x0F
    return value


def name_to_string(value: int) -> str:
    """Decode a uint64 name value, dropping trailing dots."""
    chars = ["."] * 13
    tmp = value
    for i in range(13):
        if i == 0:
            chars[12] = _NAME_CHARS[tmp & 0x0F]
            tmp >>= 4
        else:
            chars[12 - i] = _NAME_CHARS[tmp & 0x1F]
            tmp >>= 5
    return "".join(chars).rstrip(".")


# ======================
# Symbols and assets
# ======================


def _push_symbol_code(buffer: SerialBuffer, code: Any, size: int) -> None:
    if not isinstance(code, str) or not _SYMBOL_CODE_RE.match(code):
        raise SerializationError(f"Invalid symbol code: {code!r}")
    buffer.push_array(code.encode("ascii").ljust(size, b"\x00"))


def _get_symbol_code(buffer: SerialBuffer, size: int) -> str:
    return buffer.get_array(size).rstrip(b"\x00").decode("ascii", errors="replace")


def push_symbol_code(buffer: SerialBuffer, v: Any) -> None:
    _push_symbol_code(buffer, v, 8)


def get_symbol_code(buffer: SerialBuffer) -> str:
    return _get_symbol_code(buffer, 8)


def parse_symbol(v: Any) -> tuple[int, str]:
    if not isinstance(v, str) or "," not in v:
        raise SerializationError(f"Invalid symbol: {v!r}")
    precision, _, code = v.partition(",")
    try:
        return int(precision), code
    except ValueError as e:
        raise SerializationError(f"Invalid symbol precision: {v!r}") from e


def push_symbol(buffer: SerialBuffer, v: Any) -> None:
    precision, code = parse_symbol(v)
    buffer.push_uint8(precision)
    _push_symbol_code(buffer, code, 7)


def get_symbol(buffer: SerialBuffer) -> str:
    precision = buffer.get_uint8()
    code = _get_symbol_code(buffer, 7)
    return f"{precision},{code}"


def parse_asset(v: Any) -> tuple[int, int, str]:
    """Split "1.0000 EOS" into (10000, 4, "EOS")."""
    if not isinstance(v, str):
        raise SerializationError(f"Expected asset string, got {v!r}")
    amount_text, _, code = v.strip().partition(" ")
    code = code.strip()
    if not re.match(r"^-?\d+(\.\d+)?$", amount_text):
        raise SerializationError(f"Invalid asset amount: {v!r}")
    precision = len(amount_text.split(".", 1)[1]) if "." in amount_text else 0
    return int(amount_text.replace(".", "")), precision, code


def format_asset(amount: int, precision: int, code: str) -> str:
    sign = "-" if amount < 0 else ""
    digits = str(abs(amount)).rjust(precision + 1, "0")
    if precision:
        return f"{sign}{digits[:-precision]}.{digits[-precision:]} {code}"
    return f"{sign}{digits} {code}"


def push_asset(buffer: SerialBuffer, v: Any) -> None:
    amount, precision, code = parse_asset(v)
    buffer.push_int64(amount)
    buffer.push_uint8(precision)
    _push_symbol_code(buffer, code, 7)


def get_asset(buffer: SerialBuffer) -> str:
    amount = buffer.get_int64()
    precision = buffer.get_uint8()
    code = _get_symbol_code(buffer, 7)
    return format_asset(amount, precision, code)


def push_extended_asset(buffer: SerialBuffer, v: Any) -> None:
    if not isinstance(v, dict):
        raise SerializationError(f"Expected extended_asset object, got {v!r}")
    try:
        push_asset(buffer, v["quantity"])
        buffer.push_name(v["contract"])
    except KeyError as e:
        raise SerializationError(f"Missing field {e} in extended_asset") from e


def get_extended_asset(buffer: SerialBuffer) -> dict:
    return {"quantity": get_asset(buffer), "contract": buffer.get_name()}


# ======================
# Time
# ======================


def _parse_time(v: Any) -> datetime:
    if isinstance(v, datetime):
        dt = v
    elif isinstance(v, str):
        try:
            dt = datetime.fromisoformat(v.rstrip("Z"))
        except ValueError as e:
            raise SerializationError(f"Invalid date: {v!r}") from e
    else:
        raise SerializationError(f"Expected date string, got {v!r}")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def time_point_sec_from_string(v: Any) -> int:
    return round((_parse_time(v) - _EPOCH).total_seconds())


def time_point_sec_to_string(seconds: int) -> str:
    return (_EPOCH + timedelta(seconds=seconds)).strftime("%Y-%m-%dT%H:%M:%S")


def push_time_point_sec(buffer: SerialBuffer, v: Any) -> None:
    buffer.push_uint32(time_point_sec_from_string(v))


def get_time_point_sec(buffer: SerialBuffer) -> str:
    return time_point_sec_to_string(buffer.get_uint32())


def push_time_point(buffer: SerialBuffer, v: Any) -> None:
    buffer.push_int64((_parse_time(v) - _EPOCH) // timedelta(microseconds=1))


def get_time_point(buffer: SerialBuffer) -> str:
    micros = buffer.get_int64()
    try:
        dt = _EPOCH + timedelta(microseconds=micros)
    except OverflowError as e:
        raise SerializationError(f"time_point out of range: {micros}") from e
    return dt.strftime("%Y-%m-%dT%H:%M:%S.%f")


def push_block_timestamp(buffer: SerialBuffer, v: Any) -> None:
    buffer.push_uint32((_parse_time(v) - _BLOCK_TIMESTAMP_EPOCH) // _BLOCK_INTERVAL)


def get_block_timestamp(buffer: SerialBuffer) -> str:
    dt = _BLOCK_TIMESTAMP_EPOCH + buffer.get_uint32() * _BLOCK_INTERVAL
    return dt.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3]


# ======================
# Checksums, keys, signatures
# ======================


def _checksum_type(size: int) -> tuple[Callable, Callable]:
    def push(buffer: SerialBuffer, v: Any) -> None:
        data = _as_bytes(v)
        if len(data) != size:
            raise SerializationError(f"Binary data has incorrect size for checksum{size * 8}")
        buffer.push_array(data)

    def get(buffer: SerialBuffer) -> str:
        return buffer.get_array(size).hex()

    return push, get


def push_public_key(buffer: SerialBuffer, v: Any) -> None:
    try:
        key = v if isinstance(v, keys.PublicKey) else keys.PublicKey.from_string(v)
    except keys.KeyFormatError as e:
        raise SerializationError(str(e)) from e
    buffer.push_uint8(key.key_type)
    buffer.push_array(key.data)


def get_public_key(buffer: SerialBuffer) -> str:
    key_type = buffer.get_uint8()
    if key_type != keys.KeyType.K1:
        raise SerializationError(f"Unsupported public key type: {key_type}")
    return keys.PublicKey(buffer.get_array(keys.PUBLIC_KEY_SIZE)).to_string()


def push_signature(buffer: SerialBuffer, v: Any) -> None:
    try:
        sig = v if isinstance(v, keys.Signature) else keys.Signature.from_string(v)
    except keys.KeyFormatError as e:
        raise SerializationError(str(e)) from e
    buffer.push_uint8(sig.key_type)
    buffer.push_array(sig.data)


def get_signature(buffer: SerialBuffer) -> str:
    key_type = buffer.get_uint8()
    if key_type != keys.KeyType.K1:
        raise SerializationError(f"Unsupported signature type: {key_type}")
    return keys.Signature(buffer.get_array(keys.SIGNATURE_SIZE)).to_string()


def _push_bool(buffer: SerialBuffer, v: Any) -> None:
    if not isinstance(v, bool):
        raise SerializationError(f"Expected true or false, got {v!r}")
    buffer.push_uint8(1 if v else 0)


def _get_bool(buffer: SerialBuffer) -> bool:
    v = buffer.get_uint8()
    if v > 1:
        raise SerializationError(f"Invalid bool value: {v}")
    return v == 1


def _method(name: str) -> Callable:
    return lambda buffer, *args: getattr(buffer, name)(*args)


# type name -> (push(buffer, value), get(buffer))
BUILTIN_TYPES: dict[str, tuple[Callable, Callable]] = {
    "bool": (_push_bool, _get_bool),
    "int8": (_method("push_int8"), _method("get_int8")),
    "uint8": (_method("push_uint8"), _method("get_uint8")),
    "int16": (_method("push_int16"), _method("get_int16")),
    "uint16": (_method("push_uint16"), _method("get_uint16")),
    "int32": (_method("push_int32"), _method("get_int32")),
    "uint32": (_method("push_uint32"), _method("get_uint32")),
    "int64": (_method("push_int64"), _method("get_int64")),
    "uint64": (_method("push_uint64"), _method("get_uint64")),
    "int128": (_method("push_int128"), _method("get_int128")),
    "uint128": (_method("push_uint128"), _method("get_uint128")),
    "varint32": (_method("push_varint32"), _method("get_varint32")),
    "varuint32": (_method("push_varuint32"), _method("get_varuint32")),
    "float32": (_method("push_float32"), _method("get_float32")),
    "float64": (_method("push_float64"), _method("get_float64")),
    "time_point": (push_time_point, get_time_point),
    "time_point_sec": (push_time_point_sec, get_time_point_sec),
    "block_timestamp_type": (push_block_timestamp, get_block_timestamp),
    "name": (_method("push_name"), _method("get_name")),
    "bytes": (_method("push_bytes"), lambda buffer: buffer.get_bytes().hex()),
    "string": (_method("push_string"), _method("get_string")),
    "checksum160": _checksum_type(20),
    "checksum256": _checksum_type(32),
    "checksum512": _checksum_type(64),
    "public_key": (push_public_key, get_public_key),
    "signature": (push_signature, get_signature),
    "symbol": (push_symbol, get_symbol),
    "symbol_code": (push_symbol_code, get_symbol_code),
    "asset": (push_asset, get_asset),
    "extended_asset": (push_extended_asset, get_extended_asset),
}
