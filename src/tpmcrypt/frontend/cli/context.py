"""Small helper to build a tpmcrypt app context for the CLI and the TUI."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from tpmcrypt.core.config import TpmCryptConfig, load_config
from tpmcrypt.security.encryption import DecryptionService, EncryptionService
from tpmcrypt.security.entropy import RandomSource
from tpmcrypt.security.keystore import KeyringSession
from tpmcrypt.security.sealed_keys import SealedKeyManager
from tpmcrypt.security.store import ProvisioningState, SecureStoreClient, StoreSession
from tpmcrypt.security.tpm import TpmSession


@dataclass
class AppContext:
    """Container for runtime objects the frontends need."""

    config: TpmCryptConfig
    client: SecureStoreClient
    keys: SealedKeyManager
    encryptor: EncryptionService
    decryptor: DecryptionService


def _session_factory(config: TpmCryptConfig) -> Callable[[], StoreSession]:
    # Pick the store backend; sessions are opened lazily, once per operation.
    if config.store_backend == "keyring":
        return lambda: KeyringSession(
            service=config.keyring_service,
            allow_insecure=config.allow_insecure_keyring,
        )
    return TpmSession


def build_context(
    config: Optional[TpmCryptConfig] = None,
    session_factory: Optional[Callable[[], StoreSession]] = None,
) -> AppContext:
    """
    Wire the store client, key manager and services from ``config``.

    Without arguments the configuration comes from ``TPMCRYPT_*`` environment
    variables (see :func:`tpmcrypt.core.config.load_config`). Nothing touches
    the store here; the first operation opens the first session.
    """
    config = config or load_config()
    client = SecureStoreClient(
        session_factory or _session_factory(config),
        ProvisioningState(config.marker_path),
        seal_type=config.seal_type,
        wipe_path=config.wipe_path,
    )
    keys = SealedKeyManager(
        client,
        random_source=RandomSource(config.entropy_device),
        key_root=config.key_root,
    )
    return AppContext(
        config=config,
        client=client,
        keys=keys,
        encryptor=EncryptionService(keys, chunk_size=config.chunk_size),
        decryptor=DecryptionService(keys, chunk_size=config.chunk_size),
    )
