"""Contract ABI definitions and the type-directed binary codec.

An ``Abi`` wraps the JSON document returned by ``/v1/chain/get_abi`` and
knows how to pack and unpack any type it declares:

- builtin types (see ``serializer.BUILTIN_TYPES``)
- ``T[]`` arrays, ``T?`` optionals, ``T$`` binary extensions
- typedefs, structs (with base), variants (``["type", value]``)
"""

from typing import Any, Callable, Optional

from cosigner.chain.serializer import BUILTIN_TYPES, SerialBuffer
from cosigner.errors import SerializationError


# Guards against self-referencing structs in a hostile ABI
MAX_DEPTH = 64

# Called with every decoded `name` value; returns the value to keep
NameHook = Callable[[str], str]


class Abi:
    """Parsed contract interface (AccountInterface)."""

    def __init__(self, definition: dict, account: str = ""):
        self.account = account
        self.version = definition.get("version", "eosio::abi/1.0")
        self.types: dict[str, str] = {
            t["new_type_name"]: t["type"] for t in definition.get("types", [])
        }
        self.structs: dict[str, dict] = {
            s["name"]: {
                "base": s.get("base", ""),
                "fields": [(f["name"], f["type"]) for f in s.get("fields", [])],
            }
            for s in definition.get("structs", [])
        }
        self.variants: dict[str, list[str]] = {
            v["name"]: list(v["types"]) for v in definition.get("variants", [])
        }
        self.actions: dict[str, str] = {
            a["name"]: a["type"] for a in definition.get("actions", [])
        }

    @classmethod
    def from_json(cls, definition: Any, account: str = "") -> "Abi":
        """Build from a get_abi ``abi`` document, rejecting malformed shapes."""
        if not isinstance(definition, dict):
            raise SerializationError(f"ABI for {account or 'unknown account'} is not an object")
        try:
            return cls(definition, account)
        except (KeyError, TypeError) as e:
            raise SerializationError(f"Invalid ABI for {account}: missing {e}") from e

    def __repr__(self) -> str:
        return f"Abi(account={self.account!r}, actions={len(self.actions)})"

    # ======================
    # Type lookup
    # ======================

    def resolve_type(self, name: str) -> str:
        """Follow typedefs down to a builtin, struct or variant name."""
        seen = set()
        while name in self.types:
            if name in seen:
                raise SerializationError(f"Circular type definition: {name}")
            seen.add(name)
            name = self.types[name]
        return name

    def action_type(self, action_name: str) -> str:
        try:
            return self.actions[action_name]
        except KeyError:
            raise SerializationError(
                f"Unknown action {action_name} in contract {self.account or '(builtin)'}"
            ) from None

    # ======================
    # Public pack / unpack
    # ======================

    def serialize(self, type_name: str, value: Any) -> bytes:
        buffer = SerialBuffer()
        self.pack(buffer, type_name, value)
        return buffer.as_bytes()

    def deserialize(self, type_name: str, data: bytes, on_name: Optional[NameHook] = None) -> Any:
        """Unpack ``data`` completely; trailing bytes are an error.

        ``on_name`` sees every value decoded as the builtin ``name`` type
        and may substitute it.
        """
        buffer = SerialBuffer(data)
        value = self.unpack(buffer, type_name, on_name=on_name)
        if buffer.have_read_data():
            raise SerializationError(
                f"Unexpected {buffer.remaining} trailing bytes after {type_name}"
            )
        return value

    def pack_action_data(self, action_name: str, value: Any) -> bytes:
        return self.serialize(self.action_type(action_name), value)

    def unpack_action_data(self, action_name: str, data: bytes, on_name: Optional[NameHook] = None) -> Any:
        return self.deserialize(self.action_type(action_name), data, on_name)

    def pack(self, buffer: SerialBuffer, type_name: str, value: Any, depth: int = 0) -> None:
        if depth > MAX_DEPTH:
            raise SerializationError(f"Type nesting too deep at {type_name}")

        if type_name.endswith("$"):
            type_name = type_name[:-1]

        if type_name.endswith("[]"):
            if not isinstance(value, (list, tuple)):
                raise SerializationError(f"Expected array for {type_name}, got {type(value).__name__}")
            buffer.push_varuint32(len(value))
            for item in value:
                self.pack(buffer, type_name[:-2], item, depth + 1)
            return

        if type_name.endswith("?"):
            if value is None:
                buffer.push_uint8(0)
            else:
                buffer.push_uint8(1)
                self.pack(buffer, type_name[:-1], value, depth + 1)
            return

        resolved = self.resolve_type(type_name)
        if resolved != type_name:
            self.pack(buffer, resolved, value, depth + 1)
            return

        if type_name in BUILTIN_TYPES:
            push, _ = BUILTIN_TYPES[type_name]
            push(buffer, value)
        elif type_name in self.structs:
            self._pack_struct(buffer, type_name, value, depth)
        elif type_name in self.variants:
            self._pack_variant(buffer, type_name, value, depth)
        else:
            raise SerializationError(f"Unknown type: {type_name}")

    def unpack(
        self,
        buffer: SerialBuffer,
        type_name: str,
        depth: int = 0,
        on_name: Optional[NameHook] = None,
    ) -> Any:
        if depth > MAX_DEPTH:
            raise SerializationError(f"Type nesting too deep at {type_name}")

        if type_name.endswith("$"):
            type_name = type_name[:-1]

        if type_name.endswith("[]"):
            count = buffer.get_varuint32()
            # every element takes at least one byte
            if count > buffer.remaining:
                raise SerializationError(f"Array length {count} exceeds remaining data")
            return [self.unpack(buffer, type_name[:-2], depth + 1, on_name) for _ in range(count)]

        if type_name.endswith("?"):
            flag = buffer.get_uint8()
            if flag == 0:
                return None
            if flag != 1:
                raise SerializationError(f"Invalid optional flag {flag} for {type_name}")
            return self.unpack(buffer, type_name[:-1], depth + 1, on_name)

        resolved = self.resolve_type(type_name)
        if resolved != type_name:
            return self.unpack(buffer, resolved, depth + 1, on_name)

        if type_name in BUILTIN_TYPES:
            _, get = BUILTIN_TYPES[type_name]
            value = get(buffer)
            if on_name is not None and type_name == "name":
                value = on_name(value)
            return value
        if type_name in self.structs:
            return self._unpack_struct(buffer, type_name, depth, on_name)
        if type_name in self.variants:
            return self._unpack_variant(buffer, type_name, depth, on_name)
        raise SerializationError(f"Unknown type: {type_name}")

    # ======================
    # Structs and variants
    # ======================

    def _pack_struct(self, buffer: SerialBuffer, name: str, value: Any, depth: int) -> None:
        if not isinstance(value, dict):
            raise SerializationError(f"Expected object for struct {name}, got {type(value).__name__}")
        struct = self.structs[name]
        if struct["base"]:
            self.pack(buffer, struct["base"], value, depth + 1)

        fields = struct["fields"]
        for index, (field_name, field_type) in enumerate(fields):
            if field_name in value:
                self.pack(buffer, field_type, value[field_name], depth + 1)
                continue
            if not field_type.endswith("$"):
                raise SerializationError(f"Missing field '{field_name}' in struct {name}")
            # A missing binary extension ends the struct; nothing may follow it
            for later_name, _ in fields[index + 1:]:
                if later_name in value:
                    raise SerializationError(
                        f"Field '{later_name}' in struct {name} follows missing binary extension '{field_name}'"
                    )
            break

    def _unpack_struct(self, buffer: SerialBuffer, name: str, depth: int, on_name: Optional[NameHook]) -> dict:
        struct = self.structs[name]
        result: dict[str, Any] = {}
        if struct["base"]:
            base = self.unpack(buffer, struct["base"], depth + 1, on_name)
            if not isinstance(base, dict):
                raise SerializationError(f"Base of struct {name} is not a struct")
            result.update(base)
        for field_name, field_type in struct["fields"]:
            if field_type.endswith("$") and not buffer.have_read_data():
                break
            result[field_name] = self.unpack(buffer, field_type, depth + 1, on_name)
        return result

    def _pack_variant(self, buffer: SerialBuffer, name: str, value: Any, depth: int) -> None:
        if not (isinstance(value, (list, tuple)) and len(value) == 2 and isinstance(value[0], str)):
            raise SerializationError(f'Expected variant {name} as ["type", value], got {value!r}')
        types = self.variants[name]
        try:
            index = types.index(value[0])
        except ValueError:
            raise SerializationError(f"Type {value[0]} is not valid for variant {name}") from None
        buffer.push_varuint32(index)
        self.pack(buffer, value[0], value[1], depth + 1)

    def _unpack_variant(self, buffer: SerialBuffer, name: str, depth: int, on_name: Optional[NameHook]) -> list:
        index = buffer.get_varuint32()
        types = self.variants[name]
        if index >= len(types):
            raise SerializationError(f"Variant index {index} out of range for {name}")
        return [types[index], self.unpack(buffer, types[index], depth + 1, on_name)]


def merge_definitions(*definitions: dict, version: Optional[str] = None) -> dict:
    """Concatenate several ABI documents (later names win)."""
    merged: dict[str, Any] = {"version": version or "eosio::abi/1.1"}
    for key in ("types", "structs", "variants", "actions"):
        merged[key] = [item for d in definitions for item in d.get(key, [])]
    return merged
