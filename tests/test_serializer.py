"""Tests for the ABI codec and canonical transaction serialization."""

import hashlib

import pytest

from cosigner.chain.abi import Abi
from cosigner.chain.serializer import SerialBuffer, name_to_string, string_to_name
from cosigner.chain.transaction import (
    Action,
    PermissionLevel,
    Transaction,
    deserialize_transaction,
    serialize_actions,
    serialize_transaction,
    transaction_id,
)
from cosigner.errors import SerializationError

from conftest import TOKEN_ABI, sample_transaction, transfer_action


class TestNames:
    """Tests for name encoding."""

    @pytest.mark.parametrize(
        "name,value",
        [
            ("eosio", 6138663577826885632),
            ("eosio.token", 6138663591592764928),
            ("transfer", 14829575313431724032),
            ("", 0),
        ],
    )
    def test_known_values(self, name, value):
        assert string_to_name(name) == value
        assert name_to_string(value) == name

    @pytest.mark.parametrize("bad", ["Alice", "toolongname1234", "abc6", "a b", 42])
    def test_invalid_names_rejected(self, bad):
        with pytest.raises(SerializationError):
            string_to_name(bad)


class TestBuiltinTypes:
    """Tests for fixed and variable width builtins."""

    @pytest.mark.parametrize(
        "value,encoded",
        [(0, "00"), (127, "7f"), (128, "8001"), (300, "ac02"), (0xFFFFFFFF, "ffffffff0f")],
    )
    def test_varuint32(self, value, encoded):
        buffer = SerialBuffer()
        buffer.push_varuint32(value)
        assert buffer.as_bytes().hex() == encoded
        assert SerialBuffer(bytes.fromhex(encoded)).get_varuint32() == value

    @pytest.mark.parametrize("value,encoded", [(0, "00"), (-1, "01"), (1, "02"), (-64, "7f"), (64, "8001")])
    def test_varint32_zigzag(self, value, encoded):
        buffer = SerialBuffer()
        buffer.push_varint32(value)
        assert buffer.as_bytes().hex() == encoded
        assert SerialBuffer(bytes.fromhex(encoded)).get_varint32() == value

    def test_integer_out_of_range(self):
        abi = Abi({})
        with pytest.raises(SerializationError):
            abi.serialize("uint8", 256)
        with pytest.raises(SerializationError):
            abi.serialize("varuint32", -1)

    def test_asset(self):
        abi = Abi({})
        packed = abi.serialize("asset", "1.0000 EOS")
        assert packed.hex() == "102700000000000004454f5300000000"
        assert abi.deserialize("asset", packed) == "1.0000 EOS"

    def test_negative_asset(self):
        abi = Abi({})
        assert abi.deserialize("asset", abi.serialize("asset", "-0.0050 TKN")) == "-0.0050 TKN"

    @pytest.mark.parametrize("bad", ["1.0000", "abc EOS", "1.0 eos", 5])
    def test_invalid_asset(self, bad):
        with pytest.raises(SerializationError):
            Abi({}).serialize("asset", bad)

    def test_time_point_sec(self):
        abi = Abi({})
        packed = abi.serialize("time_point_sec", "2026-10-18T12:00:00")
        assert abi.deserialize("time_point_sec", packed) == "2026-10-18T12:00:00"

    @pytest.mark.parametrize("micros", [2**62, -(2**62)])
    def test_time_point_out_of_range(self, micros):
        with pytest.raises(SerializationError):
            Abi({}).deserialize("time_point", micros.to_bytes(8, "little", signed=True))

    @pytest.mark.parametrize("type_name, value", [("float32", 1e39), ("float64", "abc"), ("float32", None)])
    def test_invalid_float(self, type_name, value):
        with pytest.raises(SerializationError):
            Abi({}).serialize(type_name, value)


    def test_read_past_end(self):
        with pytest.raises(SerializationError):
            Abi({}).deserialize("uint64", b"\x01\x02")

    def test_trailing_bytes_rejected(self):
        with pytest.raises(SerializationError):
            Abi({}).deserialize("uint8", b"\x01\x02")

    def test_strict_bool(self):
        abi = Abi({})
        assert abi.deserialize("bool", abi.serialize("bool", True)) is True
        with pytest.raises(SerializationError):
            abi.serialize("bool", 1)


class TestAbiTypes:
    """Tests for structs, variants, optionals and extensions."""

    DEFINITION = {
        "version": "eosio::abi/1.1",
        "types": [{"new_type_name": "account", "type": "name"}],
        "structs": [
            {"name": "base", "base": "", "fields": [{"name": "id", "type": "uint32"}]},
            {
                "name": "record",
                "base": "base",
                "fields": [
                    {"name": "owner", "type": "account"},
                    {"name": "tags", "type": "string[]"},
                    {"name": "note", "type": "string?"},
                    {"name": "extra", "type": "uint16$"},
                ],
            },
        ],
        "variants": [{"name": "value", "types": ["uint8", "string"]}],
        "actions": [{"name": "store", "type": "record", "ricardian_contract": ""}],
    }

    def test_struct_with_base_roundtrip(self):
        abi = Abi(self.DEFINITION)
        value = {"id": 7, "owner": "alice", "tags": ["a", "b"], "note": None, "extra": 3}
        assert abi.deserialize("record", abi.serialize("record", value)) == value

    def test_missing_binary_extension_is_omitted(self):
        abi = Abi(self.DEFINITION)
        value = {"id": 7, "owner": "alice", "tags": [], "note": "hi"}
        packed = abi.pack_action_data("store", value)
        assert abi.unpack_action_data("store", packed) == value

    def test_missing_required_field(self):
        with pytest.raises(SerializationError):
            Abi(self.DEFINITION).serialize("record", {"id": 1, "owner": "alice"})

    def test_variant(self):
        abi = Abi(self.DEFINITION)
        packed = abi.serialize("value", ["string", "x"])
        assert packed.hex() == "010178"
        assert abi.deserialize("value", packed) == ["string", "x"]
        with pytest.raises(SerializationError):
            abi.serialize("value", ["uint64", 1])

    def test_invalid_optional_flag(self):
        with pytest.raises(SerializationError):
            Abi({}).deserialize("uint8?", b"\x02\x01")

    def test_unknown_action(self):
        with pytest.raises(SerializationError):
            Abi(self.DEFINITION, "store").pack_action_data("erase", {})

    def test_unknown_type(self):
        with pytest.raises(SerializationError):
            Abi({}).serialize("mystery", 1)

    def test_circular_typedef(self):
        abi = Abi({"types": [{"new_type_name": "a", "type": "b"}, {"new_type_name": "b", "type": "a"}]})
        with pytest.raises(SerializationError):
            abi.serialize("a", 1)

    def test_from_json_rejects_garbage(self):
        with pytest.raises(SerializationError):
            Abi.from_json("not an abi", "x")
        with pytest.raises(SerializationError):
            Abi.from_json({"structs": [{"fields": []}]}, "x")

    def test_token_transfer_vector(self):
        abi = Abi(TOKEN_ABI, "eosio.token")
        packed = abi.pack_action_data(
            "transfer",
            {"from": "useraaaaaaaa", "to": "useraaaaaaab", "quantity": "0.0001 SYS", "memo": ""},
        )
        assert packed.hex() == "608c31c6187315d6708c31c6187315d60100000000000000045359530000000000"


class TestTransactionSerialization:
    """Tests for the canonical transaction layout."""

    def test_roundtrip(self):
        tx = sample_transaction()
        packed = serialize_transaction(tx)
        assert deserialize_transaction(packed) == tx

    def test_deterministic(self):
        assert serialize_transaction(sample_transaction()) == serialize_transaction(sample_transaction())

    def test_header_layout(self):
        tx = Transaction(expiration="1970-01-01T00:00:10", ref_block_num=1, ref_block_prefix=2)
        # expiration u32, ref_block_num u16, ref_block_prefix u32, 3 varuint32/u8 zeros, 3 empty arrays
        assert serialize_transaction(tx).hex() == "0a000000" + "0100" + "02000000" + "000000" + "000000"

    def test_transaction_id_is_sha256(self):
        packed = serialize_transaction(sample_transaction())
        assert transaction_id(packed) == hashlib.sha256(packed).hexdigest()

    def test_serialize_actions_packs_structured_data(self):
        structured = Action(
            "eosio.token",
            "transfer",
            [PermissionLevel("alice", "active")],
            {"from": "alice", "to": "bob", "quantity": "1.0000 EOS", "memo": "hello"},
        )
        tx = serialize_actions(Transaction(actions=[structured]), {"eosio.token": Abi(TOKEN_ABI)})
        assert tx.actions[0].data == transfer_action().data
        # original left untouched
        assert isinstance(structured.data, dict)

    def test_unpacked_action_cannot_be_serialized(self):
        structured = Action("eosio.token", "transfer", [], {"memo": ""})
        with pytest.raises(SerializationError):
            serialize_transaction(Transaction(actions=[structured]))

    def test_missing_interface(self):
        structured = Action("eosio.token", "transfer", [], {"memo": ""})
        with pytest.raises(SerializationError):
            serialize_actions(Transaction(actions=[structured]), {})

    def test_accounts_first_seen_order(self):
        tx = sample_transaction()
        tx.actions.append(transfer_action("carol"))
        assert tx.accounts() == ["cosigner", "eosio.token"]
