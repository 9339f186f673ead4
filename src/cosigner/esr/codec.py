"""Signing request wire format.

    esr:<base64u(header || body)>

``header`` is one byte: the low 7 bits carry the protocol version, bit 7
says the body is raw-deflate compressed. ``body`` is the ABI-packed
``signing_request`` struct, optionally followed by a
``request_signature``. base64u is the URL-safe alphabet without padding.
"""

import base64
import binascii
import logging
import re
import zlib

from cosigner.chain.serializer import SerialBuffer
from cosigner.errors import MalformedRequest, SerializationError
from cosigner.esr.request import REQUEST_ABIS, SigningRequest

logger = logging.getLogger(__name__)

SUPPORTED_VERSIONS = tuple(sorted(REQUEST_ABIS))
COMPRESSED_FLAG = 1 << 7

# Upper bound for the inflated body; requests are meant to fit in a QR code
MAX_INFLATED_SIZE = 1024 * 1024

_SCHEMES = ("web+esr://", "web+esr:", "esr://", "esr:")
_BASE64U_RE = re.compile(r"^[A-Za-z0-9_-]+$")


def _strip_scheme(payload: str) -> str:
    for scheme in _SCHEMES:
        if payload.startswith(scheme):
            return payload[len(scheme):]
    return payload


def base64u_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def base64u_decode(text: str) -> bytes:
    if not _BASE64U_RE.match(text):
        raise ValueError("Invalid base64u characters")
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


def _deflate(data: bytes) -> bytes:
    compressor = zlib.compressobj(9, zlib.DEFLATED, -15)
    return compressor.compress(data) + compressor.flush()


def _inflate(data: bytes) -> bytes:
    decompressor = zlib.decompressobj(-15)
    result = decompressor.decompress(data, MAX_INFLATED_SIZE)
    if decompressor.unconsumed_tail:
        raise MalformedRequest(f"Signing request inflates beyond {MAX_INFLATED_SIZE} bytes")
    result += decompressor.flush()
    if not decompressor.eof:
        raise MalformedRequest("Compressed signing request is truncated")
    return result


def decode(payload: str) -> SigningRequest:
    """Decode an encoded signing request.

    Raises:
        MalformedRequest: on any encoding, version, compression or
            structural problem. Nothing else escapes.
    """
    if not isinstance(payload, str) or not payload.strip():
        raise MalformedRequest("Signing request must be a non-empty string")

    try:
        data = base64u_decode(_strip_scheme(payload.strip()))
    except (binascii.Error, ValueError) as e:
        raise MalformedRequest(f"Invalid base64u payload: {e}", cause=e) from e
    if not data:
        raise MalformedRequest("Empty signing request")

    header = data[0]
    version = header & ~COMPRESSED_FLAG
    if version not in SUPPORTED_VERSIONS:
        raise MalformedRequest(f"Unsupported protocol version {version}")

    body = data[1:]
    if header & COMPRESSED_FLAG:
        try:
            body = _inflate(body)
        except zlib.error as e:
            raise MalformedRequest(f"Cannot inflate signing request: {e}", cause=e) from e

    abi = REQUEST_ABIS[version]
    buffer = SerialBuffer(body)
    try:
        value = abi.unpack(buffer, "signing_request")
        signature = None
        if buffer.have_read_data():
            signature = abi.unpack(buffer, "request_signature")
        if buffer.have_read_data():
            raise SerializationError(f"{buffer.remaining} trailing bytes")
    except SerializationError as e:
        raise MalformedRequest(f"Invalid signing request data: {e.message}", cause=e) from e

    request = SigningRequest.from_abi_value(version, value, signature)
    logger.debug(f"Decoded v{version} {request.request_type} request (compressed={bool(header & COMPRESSED_FLAG)})")
    return request


def encode(request: SigningRequest, compress: bool = True, slashes: bool = False) -> str:
    """Encode a signing request.

    Compression is only applied when it makes the body smaller, so the
    header flag reflects what was actually done.
    """
    if request.version not in SUPPORTED_VERSIONS:
        raise SerializationError(f"Unsupported protocol version {request.version}")
    abi = REQUEST_ABIS[request.version]
    buffer = SerialBuffer()
    abi.pack(buffer, "signing_request", request.to_abi_value())
    if request.signature is not None:
        abi.pack(
            buffer,
            "request_signature",
            {"signer": request.signature.signer, "signature": request.signature.signature},
        )

    body = buffer.as_bytes()
    header = request.version
    if compress:
        deflated = _deflate(body)
        if len(deflated) < len(body):
            header |= COMPRESSED_FLAG
            body = deflated

    scheme = "esr://" if slashes else "esr:"
    return scheme + base64u_encode(bytes([header]) + body)
