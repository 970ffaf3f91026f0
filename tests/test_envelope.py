"""
Tests for the envelope codec.

Tests cover:
- Round trip of vault entries
- Fresh IV and salt per call
- Tag mismatch on tampering or wrong key
- Strict binary layout and version dispatch
"""
import struct

import pytest

from shadow_vault.vault.crypto import SecretMaterial, derive_key
from shadow_vault.vault.envelope import (
    ENVELOPE_V1,
    decrypt,
    encrypt,
    pack_envelope,
    unpack_envelope,
)
from shadow_vault.vault.exceptions import FormatError, IntegrityError
from shadow_vault.vault.models import EncryptedEnvelope, VaultEntryPlaintext

from conftest import make_entry

ADDRESS = "0x" + "a" * 40


@pytest.fixture
def key():
    return derive_key(SecretMaterial.signature("sig-abc"), ADDRESS)


@pytest.fixture
def other_key():
    return derive_key(SecretMaterial.signature("sig-xyz"), ADDRESS)


def _flip(data: bytes, index: int, bit: int = 0) -> bytes:
    out = bytearray(data)
    out[index] ^= 1 << bit
    return bytes(out)


class TestRoundTrip:

    def test_github_entry_restored(self, key):
        entry = VaultEntryPlaintext(service="github", password="p@ss")
        restored = decrypt(encrypt(entry, key), key)
        assert restored == entry
        assert restored.password.get_secret_value() == "p@ss"
        assert restored.service == "github"

    def test_all_fields_restored(self, key):
        entry = make_entry(
            service="bank",
            password="ünïcødé-🔐",
            url="https://bank.example",
            notes="pin is elsewhere",
            category="finance",
            network="zircuit",
        )
        restored = decrypt(encrypt(entry, key), key)
        assert restored == entry
        assert restored.created_at == entry.created_at

    def test_binary_round_trip(self, key):
        envelope = encrypt(make_entry(), key)
        assert unpack_envelope(pack_envelope(envelope)) == envelope


class TestFreshness:

    def test_iv_and_salt_fresh_per_call(self, key):
        entry = make_entry()
        a = encrypt(entry, key)
        b = encrypt(entry, key)
        assert a.iv != b.iv
        assert a.salt != b.salt
        assert a.ciphertext != b.ciphertext

    def test_field_sizes(self, key):
        envelope = encrypt(make_entry(), key)
        assert envelope.version == 1
        assert len(envelope.iv) == 12
        assert len(envelope.salt) == 16
        assert len(envelope.auth_tag) == 16

    def test_password_not_in_ciphertext(self, key):
        envelope = encrypt(make_entry(password="hunter2-hunter2"), key)
        assert b"hunter2-hunter2" not in pack_envelope(envelope)


class TestTampering:

    @pytest.mark.parametrize("position", ["first", "middle", "last"])
    def test_ciphertext_bit_flip(self, key, position):
        envelope = encrypt(make_entry(), key)
        size = len(envelope.ciphertext)
        index = {"first": 0, "middle": size // 2, "last": size - 1}[position]
        tampered = envelope.model_copy(
            update={"ciphertext": _flip(envelope.ciphertext, index, bit=3)}
        )
        with pytest.raises(IntegrityError):
            decrypt(tampered, key)

    @pytest.mark.parametrize("index", [0, 7, 15])
    def test_auth_tag_bit_flip(self, key, index):
        envelope = encrypt(make_entry(), key)
        tampered = envelope.model_copy(
            update={"auth_tag": _flip(envelope.auth_tag, index)}
        )
        with pytest.raises(IntegrityError):
            decrypt(tampered, key)

    def test_iv_or_salt_flip(self, key):
        envelope = encrypt(make_entry(), key)
        for field in ("iv", "salt"):
            tampered = envelope.model_copy(
                update={field: _flip(getattr(envelope, field), 0)}
            )
            with pytest.raises(IntegrityError):
                decrypt(tampered, key)

    def test_wrong_key(self, key, other_key):
        envelope = encrypt(make_entry(), key)
        with pytest.raises(IntegrityError):
            decrypt(envelope, other_key)

    def test_error_does_not_leak_plaintext(self, key, other_key):
        envelope = encrypt(make_entry(password="s3cr3t-value"), key)
        with pytest.raises(IntegrityError) as exc:
            decrypt(envelope, other_key)
        assert "s3cr3t-value" not in str(exc.value)


class TestFormat:

    def test_layout(self, key):
        envelope = encrypt(make_entry(), key)
        data = pack_envelope(envelope)
        assert data[:2] == struct.pack("!H", 1)
        assert data[2:18] == envelope.salt
        assert data[18:30] == envelope.iv
        assert data[30:46] == envelope.auth_tag
        assert data[46:] == envelope.ciphertext

    def test_unknown_version_on_unpack(self, key):
        data = pack_envelope(encrypt(make_entry(), key))
        with pytest.raises(FormatError, match="Unsupported envelope version"):
            unpack_envelope(struct.pack("!H", 2) + data[2:])

    def test_unknown_version_on_decrypt(self, key):
        envelope = encrypt(make_entry(), key).model_copy(update={"version": 99})
        with pytest.raises(FormatError):
            decrypt(envelope, key)

    @pytest.mark.parametrize("length", [0, 1, 10, 45])
    def test_truncated(self, key, length):
        data = pack_envelope(encrypt(make_entry(), key))
        with pytest.raises(FormatError):
            unpack_envelope(data[:length])

    def test_wrong_iv_length(self, key):
        envelope = encrypt(make_entry(), key)
        bad = EncryptedEnvelope(
            version=1,
            ciphertext=envelope.ciphertext,
            iv=envelope.iv[:8],
            salt=envelope.salt,
            auth_tag=envelope.auth_tag,
        )
        with pytest.raises(FormatError):
            decrypt(bad, key)
        with pytest.raises(FormatError):
            pack_envelope(bad)

    def test_v1_spec(self):
        assert ENVELOPE_V1.iv_size == 12
        assert ENVELOPE_V1.tag_size == 16


def test_plaintext_repr_masks_password():
    entry = make_entry(password="topsecret")
    assert "topsecret" not in repr(entry)
    assert "topsecret" not in str(entry.model_dump())
