"""secp256k1 (K1) keys and signatures in EOSIO string formats.

Formats:
    public key   PUB_K1_<base58(key33 + ripemd160(key33 + "K1")[:4])>
                 EOS<base58(key33 + ripemd160(key33)[:4])>        (legacy)
    private key  PVT_K1_<base58(secret32 + ripemd160(secret32 + "K1")[:4])>
                 WIF: base58check(0x80 + secret32)                  (legacy)
    signature    SIG_K1_<base58(sig65 + ripemd160(sig65 + "K1")[:4])>

A K1 signature is 65 bytes: one recovery byte (27 + 4 + recid, the +4
marks a compressed key) followed by r and s.  The chain only accepts
"canonical" signatures where neither r nor s has its high bit set or a
redundant leading zero byte.
"""

import hashlib
from dataclasses import dataclass
from enum import IntEnum
from functools import cached_property

import base58
from Crypto.Hash import RIPEMD160
from ecdsa import SECP256k1, BadSignatureError, SigningKey, VerifyingKey
from ecdsa.util import sigdecode_string, sigencode_strings_canonize

PUBLIC_KEY_SIZE = 33
PRIVATE_KEY_SIZE = 32
SIGNATURE_SIZE = 65

LEGACY_PUBLIC_PREFIX = "EOS"
_WIF_VERSION = 0x80
# recovery byte offset: 27 + 4 (compressed)
_RECOVERY_OFFSET = 31


class KeyType(IntEnum):
    """Key curve tag used in the binary encoding."""
    K1 = 0
    R1 = 1
    WA = 2


class KeyFormatError(ValueError):
    """Key or signature string could not be parsed."""


def ripemd160(data: bytes) -> bytes:
    return RIPEMD160.new(data).digest()


def _encode_with_checksum(data: bytes, suffix: bytes = b"") -> str:
    checksum = ripemd160(data + suffix)[:4]
    return base58.b58encode(data + checksum).decode("ascii")


def _decode_with_checksum(text: str, size: int, suffix: bytes = b"") -> bytes:
    try:
        raw = base58.b58decode(text)
    except ValueError as e:
        raise KeyFormatError(f"Invalid base58 data: {e}") from e
    if len(raw) != size + 4:
        raise KeyFormatError(f"Expected {size} bytes of key data, got {len(raw) - 4}")
    data, checksum = raw[:size], raw[size:]
    if ripemd160(data + suffix)[:4] != checksum:
        raise KeyFormatError("Checksum doesn't match")
    return data


def is_canonical(rs: bytes) -> bool:
    """Check r || s (64 bytes) against the chain's canonical signature rule."""
    r, s = rs[:32], rs[32:64]
    return (
        not r[0] & 0x80
        and not (r[0] == 0 and not r[1] & 0x80)
        and not s[0] & 0x80
        and not (s[0] == 0 and not s[1] & 0x80)
    )


def _recover_candidates(rs: bytes, digest: bytes) -> list[VerifyingKey]:
    # ecdsa returns the even-y solution first, matching recid 0
    return VerifyingKey.from_public_key_recovery_with_digest(
        rs,
        digest,
        SECP256k1,
        hashfunc=hashlib.sha256,
        sigdecode=sigdecode_string,
    )


@dataclass(frozen=True)
class PublicKey:
    """Compressed K1 public key."""

    data: bytes
    key_type: KeyType = KeyType.K1

    def __post_init__(self):
        if len(self.data) != PUBLIC_KEY_SIZE:
            raise KeyFormatError(f"Public key must be {PUBLIC_KEY_SIZE} bytes")

    @classmethod
    def from_string(cls, text: str) -> "PublicKey":
        if not isinstance(text, str):
            raise KeyFormatError(f"Expected public key string, got {type(text).__name__}")
        if text.startswith("PUB_K1_"):
            return cls(_decode_with_checksum(text[7:], PUBLIC_KEY_SIZE, b"K1"))
        if text.startswith("PUB_"):
            raise KeyFormatError(f"Unsupported public key type: {text[:7]}")
        if text.startswith(LEGACY_PUBLIC_PREFIX):
            return cls(_decode_with_checksum(text[len(LEGACY_PUBLIC_PREFIX):], PUBLIC_KEY_SIZE))
        raise KeyFormatError(f"Unrecognized public key format: {text[:10]}...")

    @classmethod
    def from_verifying_key(cls, vk: VerifyingKey) -> "PublicKey":
        return cls(vk.to_string("compressed"))

    def to_string(self) -> str:
        return "PUB_K1_" + _encode_with_checksum(self.data, b"K1")

    def to_legacy_string(self, prefix: str = LEGACY_PUBLIC_PREFIX) -> str:
        return prefix + _encode_with_checksum(self.data)

    def to_verifying_key(self) -> VerifyingKey:
        return VerifyingKey.from_string(self.data, curve=SECP256k1)

    def __str__(self) -> str:
        return self.to_string()


@dataclass(frozen=True)
class Signature:
    """Recoverable K1 signature (recovery byte + r + s)."""

    data: bytes
    key_type: KeyType = KeyType.K1

    def __post_init__(self):
        if len(self.data) != SIGNATURE_SIZE:
            raise KeyFormatError(f"Signature must be {SIGNATURE_SIZE} bytes")

    @classmethod
    def from_string(cls, text: str) -> "Signature":
        if not isinstance(text, str):
            raise KeyFormatError(f"Expected signature string, got {type(text).__name__}")
        if text.startswith("SIG_K1_"):
            return cls(_decode_with_checksum(text[7:], SIGNATURE_SIZE, b"K1"))
        raise KeyFormatError(f"Unrecognized signature format: {text[:10]}...")

    def to_string(self) -> str:
        return "SIG_K1_" + _encode_with_checksum(self.data, b"K1")

    @property
    def recovery_id(self) -> int:
        i = self.data[0]
        return i - _RECOVERY_OFFSET if i >= _RECOVERY_OFFSET else i - 27

    @property
    def is_canonical(self) -> bool:
        return is_canonical(self.data[1:])

    def recover(self, digest: bytes) -> PublicKey:
        """Recover the public key that produced this signature over ``digest``."""
        recid = self.recovery_id
        if recid not in (0, 1):
            raise KeyFormatError(f"Unsupported recovery id: {recid}")
        try:
            candidates = _recover_candidates(self.data[1:], digest)
        except (ValueError, AssertionError) as e:
            raise KeyFormatError(f"Cannot recover public key: {e}") from e
        return PublicKey.from_verifying_key(candidates[recid])

    def verify(self, digest: bytes, public_key: PublicKey) -> bool:
        try:
            public_key.to_verifying_key().verify_digest(
                self.data[1:], digest, sigdecode=sigdecode_string
            )
        except BadSignatureError:
            return False
        return self.recover(digest) == public_key

    def __str__(self) -> str:
        return self.to_string()


class PrivateKey:
    """K1 private key. Never printed or compared by value."""

    def __init__(self, secret: bytes):
        if len(secret) != PRIVATE_KEY_SIZE:
            raise KeyFormatError(f"Private key must be {PRIVATE_KEY_SIZE} bytes")
        try:
            self._signing_key = SigningKey.from_string(secret, curve=SECP256k1)
        except Exception as e:
            raise KeyFormatError(f"Invalid private key: {e}") from e
        self._secret = secret

    @classmethod
    def from_string(cls, text: str) -> "PrivateKey":
        """Parse WIF or PVT_K1_ formatted key."""
        if not isinstance(text, str) or not text:
            raise KeyFormatError("Private key must be a non-empty string")
        if text.startswith("PVT_K1_"):
            return cls(_decode_with_checksum(text[7:], PRIVATE_KEY_SIZE, b"K1"))
        if text.startswith("PVT_"):
            raise KeyFormatError(f"Unsupported private key type: {text[:7]}")
        try:
            raw = base58.b58decode_check(text)
        except ValueError as e:
            raise KeyFormatError(f"Invalid WIF private key: {e}") from e
        # 0x80 + secret, optionally followed by the 0x01 compressed marker
        if len(raw) not in (33, 34) or raw[0] != _WIF_VERSION:
            raise KeyFormatError("Invalid WIF private key")
        return cls(raw[1:33])

    @classmethod
    def generate(cls) -> "PrivateKey":
        return cls(SigningKey.generate(curve=SECP256k1).to_string())

    def to_wif(self) -> str:
        return base58.b58encode_check(bytes([_WIF_VERSION]) + self._secret).decode("ascii")

    def to_string(self) -> str:
        return "PVT_K1_" + _encode_with_checksum(self._secret, b"K1")

    @cached_property
    def public_key(self) -> PublicKey:
        return PublicKey.from_verifying_key(self._signing_key.get_verifying_key())

    def sign_digest(self, digest: bytes) -> Signature:
        """Sign a 32-byte digest, retrying nonces until the result is canonical."""
        if len(digest) != 32:
            raise KeyFormatError(f"Digest must be 32 bytes, got {len(digest)}")
        nonce = 0
        while True:
            extra = hashlib.sha256(nonce.to_bytes(4, "big")).digest() if nonce else b""
            r, s = self._signing_key.sign_digest_deterministic(
                digest,
                hashfunc=hashlib.sha256,
                sigencode=sigencode_strings_canonize,
                extra_entropy=extra,
            )
            rs = r + s
            if is_canonical(rs):
                break
            nonce += 1

        expected = self.public_key
        for recid, candidate in enumerate(_recover_candidates(rs, digest)):
            if PublicKey.from_verifying_key(candidate) == expected:
                return Signature(bytes([_RECOVERY_OFFSET + recid]) + rs)
        raise KeyFormatError("Unable to determine signature recovery id")

    def __repr__(self) -> str:
        return f"PrivateKey(public_key={self.public_key.to_string()})"
