"""Decoding of custody signatures into chain-native forms."""

import binascii
from typing import List

import base58

from hub_treasuries.schemas.events import EcdsaSignature
from hub_treasuries.schemas.fireblocks import SignatureResponse, SignedMessage, TransactionDetails
from hub_treasuries.services.errors import (
    EcdsaSignatureScalar,
    IncompleteEcdsaSignature,
    InvalidEcdsaPubkeyRecovery,
    InvalidSignature,
    MissingSignedMessage,
)

ED25519_PUBKEY_LENGTH = 32
ED25519_SIGNATURE_LENGTH = 64
ECDSA_SCALAR_LENGTH = 32

# Ethereum recovery id offset (yellow paper)
ECDSA_V_OFFSET = 27


def is_public_key(value: str) -> bool:
    """True when ``value`` is base58 for a 32-byte Ed25519 public key."""
    try:
        return len(base58.b58decode(value)) == ED25519_PUBKEY_LENGTH
    except ValueError:
        return False


def _from_hex(value: str) -> bytes:
    try:
        return bytes.fromhex(value[2:] if value[:2] in ("0x", "0X") else value)
    except ValueError as e:
        raise InvalidSignature(f"Invalid hex string {value[:16]!r}") from e


def first_signed_message(details: TransactionDetails) -> SignedMessage:
    if not details.signed_messages:
        raise MissingSignedMessage(details.id)
    return details.signed_messages[0]


def ed25519_signature_bytes(full_sig: str) -> bytes:
    signature = _from_hex(full_sig)
    if len(signature) != ED25519_SIGNATURE_LENGTH:
        raise InvalidSignature(
            f"Ed25519 signature must be {ED25519_SIGNATURE_LENGTH} bytes, got {len(signature)}"
        )
    return signature


def ed25519_signature_to_base58(full_sig: str) -> str:
    """Hex ``full_sig`` from custody to a Solana signature string."""
    return base58.b58encode(ed25519_signature_bytes(full_sig)).decode("ascii")


def decode_ecdsa_signature(signature: SignatureResponse) -> EcdsaSignature:
    """Split a recoverable ECDSA signature into ``r``, ``s`` and ``v + 27``."""
    if signature.r is None:
        raise IncompleteEcdsaSignature(EcdsaSignatureScalar.R)
    if signature.s is None:
        raise IncompleteEcdsaSignature(EcdsaSignatureScalar.S)
    if signature.v is None:
        raise IncompleteEcdsaSignature(EcdsaSignatureScalar.V)

    r = _from_hex(signature.r)
    s = _from_hex(signature.s)
    if len(r) != ECDSA_SCALAR_LENGTH or len(s) != ECDSA_SCALAR_LENGTH:
        raise InvalidSignature(
            f"ECDSA r and s must be {ECDSA_SCALAR_LENGTH} bytes, got {len(r)} and {len(s)}"
        )

    v = signature.v + ECDSA_V_OFFSET
    if v not in (ECDSA_V_OFFSET, ECDSA_V_OFFSET + 1):
        raise InvalidEcdsaPubkeyRecovery(signature.v)

    return EcdsaSignature(r=r, s=s, v=v)


# ==================== Solana wire format ====================


def encode_shortvec(length: int) -> bytes:
    """Solana compact-u16 length prefix."""
    if not 0 <= length <= 0xFFFF:
        raise ValueError(f"shortvec length out of range: {length}")
    out = bytearray()
    while True:
        byte = length & 0x7F
        length >>= 7
        if length:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def assemble_transaction(signatures: List[str], message: bytes) -> bytes:
    """Wire transaction: signature count, 64-byte signatures, then the message."""
    out = bytearray(encode_shortvec(len(signatures)))
    for signature in signatures:
        try:
            raw = base58.b58decode(signature)
        except ValueError as e:
            raise InvalidSignature(f"Invalid base58 signature {signature[:16]!r}") from e
        if len(raw) != ED25519_SIGNATURE_LENGTH:
            raise InvalidSignature(
                f"Signature must be {ED25519_SIGNATURE_LENGTH} bytes, got {len(raw)}"
            )
        out.extend(raw)
    out.extend(message)
    return bytes(out)


def message_from_content(content: str) -> bytes:
    """Message bytes from a signed message's hex ``content``."""
    try:
        return binascii.unhexlify(content)
    except (binascii.Error, ValueError) as e:
        raise InvalidSignature("Signed message content is not hex") from e
