"""Tests for custody signature decoding and Solana wire assembly.

Tests cover:
- Ed25519 hex -> base58 and back
- ECDSA r/s/v decoding, including incomplete, short and out-of-range scalars
- Public key recognition
- compact-u16 length prefix and wire transaction layout
"""

import os

import base58
import pytest


def ecdsa(r="11" * 32, s="22" * 32, v=0):
    from hub_treasuries.schemas.fireblocks import SignatureResponse

    return SignatureResponse(full_sig=(r or "") + (s or ""), r=r, s=s, v=v)


class TestEd25519:
    """Test Solana signature decoding."""

    def test_hex_to_base58_round_trip(self):
        from hub_treasuries.services.signing.signatures import ed25519_signature_to_base58

        raw = os.urandom(64)
        encoded = ed25519_signature_to_base58(raw.hex())

        assert base58.b58decode(encoded) == raw
        assert 87 <= len(encoded) <= 88 or raw[0] == 0

    def test_wrong_length_rejected(self):
        from hub_treasuries.services.errors import InvalidSignature
        from hub_treasuries.services.signing.signatures import ed25519_signature_to_base58

        with pytest.raises(InvalidSignature):
            ed25519_signature_to_base58("ab" * 63)

    def test_non_hex_rejected(self):
        from hub_treasuries.services.errors import InvalidSignature
        from hub_treasuries.services.signing.signatures import ed25519_signature_to_base58

        with pytest.raises(InvalidSignature):
            ed25519_signature_to_base58("zz" * 64)

    def test_public_key_recognition(self):
        """32 decoded bytes is a public key; a 64-byte signature is not."""
        from hub_treasuries.services.signing.signatures import is_public_key

        assert is_public_key(base58.b58encode(os.urandom(32)).decode())
        assert not is_public_key(base58.b58encode(os.urandom(64)).decode())
        assert not is_public_key("0OIl")  # not base58
        assert not is_public_key("")


class TestEcdsa:
    """Test recoverable ECDSA decoding."""

    @pytest.mark.parametrize("v_raw,expected", [(0, 27), (1, 28)])
    def test_recovery_id_offset(self, v_raw, expected):
        from hub_treasuries.services.signing.signatures import decode_ecdsa_signature

        signature = decode_ecdsa_signature(ecdsa(v=v_raw))

        assert signature.v == expected
        assert signature.r == bytes.fromhex("11" * 32)
        assert len(signature.s) == 32

    @pytest.mark.parametrize("missing", ["r", "s", "v"])
    def test_incomplete_signature(self, missing):
        from hub_treasuries.services.errors import EcdsaSignatureScalar, IncompleteEcdsaSignature
        from hub_treasuries.services.signing.signatures import decode_ecdsa_signature

        kwargs = {missing: None}
        with pytest.raises(IncompleteEcdsaSignature) as exc_info:
            decode_ecdsa_signature(ecdsa(**kwargs))
        assert exc_info.value.scalar == EcdsaSignatureScalar(missing)

    @pytest.mark.parametrize("v_raw", [2, 5, 229])
    def test_recovery_id_out_of_range(self, v_raw):
        """Only recovery ids 0 and 1 map to a valid Ethereum v."""
        from hub_treasuries.services.errors import InvalidEcdsaPubkeyRecovery
        from hub_treasuries.services.signing.signatures import decode_ecdsa_signature

        with pytest.raises(InvalidEcdsaPubkeyRecovery) as exc_info:
            decode_ecdsa_signature(ecdsa(v=v_raw))
        assert exc_info.value.v == v_raw

    @pytest.mark.parametrize("r,s", [("ab", "22" * 32), ("11" * 32, "cd"), ("11" * 33, "22" * 32)])
    def test_scalar_length_rejected(self, r, s):
        from hub_treasuries.services.errors import InvalidSignature
        from hub_treasuries.services.signing.signatures import decode_ecdsa_signature

        with pytest.raises(InvalidSignature):
            decode_ecdsa_signature(ecdsa(r=r, s=s, v=0))

    def test_json_form_is_hex(self):
        """Outbound r and s are 0x hex strings."""
        from hub_treasuries.services.signing.signatures import decode_ecdsa_signature

        data = decode_ecdsa_signature(ecdsa(v=1)).model_dump(mode="json")
        assert data == {"r": "0x" + "11" * 32, "s": "0x" + "22" * 32, "v": 28}


class TestWireAssembly:
    """Test Solana transaction serialization."""

    @pytest.mark.parametrize("length,encoded", [
        (0, b"\x00"),
        (1, b"\x01"),
        (127, b"\x7f"),
        (128, b"\x80\x01"),
        (16384, b"\x80\x80\x01"),
    ])
    def test_shortvec(self, length, encoded):
        from hub_treasuries.services.signing.signatures import encode_shortvec

        assert encode_shortvec(length) == encoded

    def test_assemble_transaction(self):
        """Signature count, signatures in order, then the message."""
        from hub_treasuries.services.signing.signatures import assemble_transaction

        first, second = os.urandom(64), os.urandom(64)
        message = b"\x01\x00\x02message-bytes"
        wire = assemble_transaction(
            [base58.b58encode(first).decode(), base58.b58encode(second).decode()], message
        )

        assert wire == b"\x02" + first + second + message

    def test_assemble_rejects_public_key_slot(self):
        """An unsigned public-key slot cannot be serialized."""
        from hub_treasuries.services.errors import InvalidSignature
        from hub_treasuries.services.signing.signatures import assemble_transaction

        with pytest.raises(InvalidSignature):
            assemble_transaction([base58.b58encode(os.urandom(32)).decode()], b"msg")

    def test_message_from_content(self):
        from hub_treasuries.services.errors import InvalidSignature
        from hub_treasuries.services.signing.signatures import message_from_content

        assert message_from_content("0102ff") == b"\x01\x02\xff"
        with pytest.raises(InvalidSignature):
            message_from_content("xyz")
