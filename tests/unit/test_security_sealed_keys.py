"""
Unit tests for per-reference key generation, sealing and unsealing.
"""

from unittest.mock import MagicMock

import pytest

from tpmcrypt.core.exceptions import (
    EntropyError,
    InvalidKeyMaterialError,
    InvalidKeyReferenceError,
    KeyNotFoundError,
    SealFailedError,
    UnsealError,
)
from tpmcrypt.security.sealed_keys import IV_SIZE, KEY_SIZE, SealedKeyManager, SymmetricKeyMaterial


# ==============================================================================
# Tests: SymmetricKeyMaterial
# ==============================================================================

def test_material_wipe_zeroes_buffers():
    key = bytearray(b"k" * KEY_SIZE)
    iv = bytearray(b"i" * IV_SIZE)

    with SymmetricKeyMaterial(key, iv) as material:
        assert material.key == b"k" * KEY_SIZE
        assert material.iv == b"i" * IV_SIZE

    assert material.wiped
    assert key == bytearray(KEY_SIZE)
    assert iv == bytearray(IV_SIZE)
    with pytest.raises(RuntimeError, match="wiped"):
        material.key
    assert "wiped" in repr(material)


def test_material_wipe_twice_is_harmless():
    material = SymmetricKeyMaterial(bytearray(KEY_SIZE), bytearray(IV_SIZE))
    material.wipe()
    material.wipe()
    assert material.wiped


# ==============================================================================
# Tests: generate_and_seal / unseal
# ==============================================================================

def test_generate_and_seal_stores_key_and_iv(key_manager, fake_tpm):
    paths = key_manager.generate_and_seal("alpha")

    assert paths.key == "/HS/SRK/alpha"
    assert paths.iv == "/HS/SRK/alpha_iv"
    assert len(fake_tpm.objects["/HS/SRK/alpha"][0]) == KEY_SIZE
    assert len(fake_tpm.objects["/HS/SRK/alpha_iv"][0]) == IV_SIZE


def test_unseal_is_repeatable(key_manager):
    key_manager.generate_and_seal("alpha")

    with key_manager.unseal("alpha") as first:
        first_pair = (first.key, first.iv)
    with key_manager.unseal("alpha") as second:
        second_pair = (second.key, second.iv)

    assert first_pair == second_pair


def test_regenerating_replaces_material(key_manager):
    key_manager.generate_and_seal("alpha")
    with key_manager.unseal("alpha") as material:
        old = material.key

    key_manager.generate_and_seal("alpha")
    with key_manager.unseal("alpha") as material:
        assert material.key != old


def test_references_get_independent_material(key_manager):
    key_manager.generate_and_seal("alpha")
    key_manager.generate_and_seal("beta")

    with key_manager.unseal("alpha") as a, key_manager.unseal("beta") as b:
        assert a.key != b.key


def test_provisioning_happens_on_first_use_only(key_manager, fake_tpm):
    key_manager.generate_and_seal("alpha")
    key_manager.generate_and_seal("beta")
    key_manager.unseal("alpha").wipe()

    assert fake_tpm.provision_calls == 1


def test_unseal_unknown_reference(key_manager):
    with pytest.raises(UnsealError):
        key_manager.unseal("never-sealed")


def test_unseal_missing_iv(key_manager, fake_tpm):
    key_manager.generate_and_seal("alpha")
    del fake_tpm.objects["/HS/SRK/alpha_iv"]

    with pytest.raises(UnsealError, match="alpha_iv"):
        key_manager.unseal("alpha")


def test_legacy_short_key_is_rejected(key_manager, client):
    # material sealed with a 16-byte key cannot drive AES-256
    with client.session() as session:
        client.seal(session, "/HS/SRK/legacy", b"k" * 16)
        client.seal(session, "/HS/SRK/legacy_iv", b"i" * 16)

    with pytest.raises(InvalidKeyMaterialError, match="wrong size"):
        key_manager.unseal("legacy")


def test_invalid_reference_rejected(key_manager, fake_tpm):
    with pytest.raises(InvalidKeyReferenceError):
        key_manager.generate_and_seal("")
    assert fake_tpm.sessions_opened == 0


def test_custom_key_root(client, fake_tpm):
    manager = SealedKeyManager(client, random_source=MagicMock(read=lambda n: bytearray(n)), key_root="/HS/SRK/apps")

    manager.generate_and_seal("alpha")

    assert set(fake_tpm.objects) == {"/HS/SRK/apps/alpha", "/HS/SRK/apps/alpha_iv"}


# ==============================================================================
# Tests: Failures while sealing
# ==============================================================================

def test_iv_seal_failure_rolls_back_key(key_manager, fake_tpm):
    fake_tpm.fail_seal_paths.add("/HS/SRK/alpha_iv")

    with pytest.raises(SealFailedError):
        key_manager.generate_and_seal("alpha")

    assert "/HS/SRK/alpha" not in fake_tpm.objects
    assert fake_tpm.sessions_opened == fake_tpm.sessions_closed


def test_key_seal_failure_leaves_nothing(key_manager, fake_tpm):
    fake_tpm.fail_seal_paths.add("/HS/SRK/alpha")

    with pytest.raises(SealFailedError):
        key_manager.generate_and_seal("alpha")

    assert fake_tpm.objects == {}


def test_entropy_failure_seals_nothing(client, fake_tpm):
    source = MagicMock()
    source.read.side_effect = EntropyError("device gone")
    manager = SealedKeyManager(client, random_source=source)

    with pytest.raises(EntropyError) as exc_info:
        manager.generate_and_seal("alpha")

    assert exc_info.value.fatal
    assert fake_tpm.sessions_opened == 0


def test_generated_buffers_are_zeroed(client):
    handed_out = []

    def read(n):
        buf = bytearray(b"\xaa" * n)
        handed_out.append(buf)
        return buf

    manager = SealedKeyManager(client, random_source=MagicMock(read=read))
    manager.generate_and_seal("alpha")

    assert all(not any(buf) for buf in handed_out)


# ==============================================================================
# Tests: delete
# ==============================================================================

def test_delete_removes_key_and_iv(key_manager, fake_tpm):
    key_manager.generate_and_seal("alpha")
    key_manager.generate_and_seal("beta")

    key_manager.delete("alpha")

    assert set(fake_tpm.objects) == {"/HS/SRK/beta", "/HS/SRK/beta_iv"}
    with pytest.raises(UnsealError):
        key_manager.unseal("alpha")


def test_delete_unknown_reference(key_manager):
    with pytest.raises(KeyNotFoundError, match="never-sealed"):
        key_manager.delete("never-sealed")


def test_delete_with_only_key_present(key_manager, fake_tpm):
    key_manager.generate_and_seal("alpha")
    del fake_tpm.objects["/HS/SRK/alpha_iv"]

    key_manager.delete("alpha")

    assert fake_tpm.objects == {}


def test_key_buffer_zeroed_when_iv_read_fails(client, fake_tpm):
    key = bytearray(b"\xaa" * KEY_SIZE)
    source = MagicMock()
    source.read.side_effect = [key, EntropyError("device gone")]
    manager = SealedKeyManager(client, random_source=source)

    with pytest.raises(EntropyError):
        manager.generate_and_seal("alpha")

    assert key == bytearray(KEY_SIZE)
    assert fake_tpm.sessions_opened == 0
