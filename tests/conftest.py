"""
Shared fixtures: an in-memory secure store standing in for the TPM.
"""

import pytest

from tpmcrypt.core.exceptions import PathNotFoundError, StoreBackendError
from tpmcrypt.security.encryption import DecryptionService, EncryptionService
from tpmcrypt.security.entropy import RandomSource
from tpmcrypt.security.sealed_keys import SealedKeyManager
from tpmcrypt.security.store import ProvisioningState, SecureStoreClient, StoreSession


class FakeTpm:
    """Sealed objects shared by every session opened against it."""

    def __init__(self):
        self.objects = {}
        self.provisioned = False
        self.provision_calls = 0
        self.sessions_opened = 0
        self.sessions_closed = 0
        self.fail_seal_paths = set()
        self.fail_delete = False

    def paths_under(self, root):
        if root == "/":
            return list(self.objects)
        root = root.rstrip("/")
        return [p for p in self.objects if p == root or p.startswith(root + "/")]


class FakeStoreSession(StoreSession):
    def __init__(self, tpm):
        self.tpm = tpm
        self.callback = None
        tpm.sessions_opened += 1

    def set_auth_callback(self, callback):
        self.callback = callback

    def provision(self):
        self.tpm.provision_calls += 1
        if self.tpm.provisioned:
            # provisioning an already provisioned TPM fails
            raise StoreBackendError("already provisioned", code=0x60001)
        self.tpm.provisioned = True

    def create_seal(self, path, data, seal_type="noDa", policy_path=None, auth=None):
        if path in self.tpm.fail_seal_paths:
            raise StoreBackendError(f"NV full while sealing {path}", code=0x902)
        if path in self.tpm.objects:
            raise StoreBackendError(f"path already exists: {path}", code=0x60024)
        self.tpm.objects[path] = (bytes(data), auth)

    def unseal(self, path):
        if path not in self.tpm.objects:
            raise PathNotFoundError(f"no object at {path}", code=0x60025)
        data, auth = self.tpm.objects[path]
        presented = self.callback(path, f"unseal {path}")
        if presented != (auth or "").encode("utf-8"):
            raise StoreBackendError("authorization failed", code=0x98E)
        return data

    def delete(self, path):
        if self.tpm.fail_delete:
            raise StoreBackendError(f"delete of {path} refused", code=0x60005)
        doomed = self.tpm.paths_under(path)
        if not doomed and path != "/":
            raise PathNotFoundError(f"no object at {path}", code=0x60025)
        for p in doomed:
            del self.tpm.objects[p]
        if path == "/":
            self.tpm.provisioned = False

    def close(self):
        self.tpm.sessions_closed += 1


# ==============================================================================
# Fixtures
# ==============================================================================

@pytest.fixture
def fake_tpm():
    return FakeTpm()


@pytest.fixture
def session_factory(fake_tpm):
    return lambda: FakeStoreSession(fake_tpm)


@pytest.fixture
def provisioning(tmp_path):
    return ProvisioningState(tmp_path / "fapi_provisioned")


@pytest.fixture
def client(session_factory, provisioning):
    return SecureStoreClient(session_factory, provisioning)


@pytest.fixture
def key_manager(client):
    # os.urandom keeps tests from blocking on /dev/random
    return SealedKeyManager(client, random_source=RandomSource(None))


@pytest.fixture
def encryptor(key_manager):
    return EncryptionService(key_manager, chunk_size=64)


@pytest.fixture
def decryptor(key_manager):
    return DecryptionService(key_manager, chunk_size=64)
