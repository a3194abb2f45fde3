"""Secure store client: sessions, one-time provisioning, sealing and unsealing.

The store itself (a TPM reached through FAPI, or the OS keyring) is an
external collaborator. This module only depends on the narrow capability
described by :class:`StoreSession`:

- open a session (``connect``) and ``close`` it
- register an authentication callback
- ``provision`` the store once
- ``create_seal`` / ``unseal`` bytes at a path
- ``delete`` a path or a whole subtree

Backends report failures as :class:`StoreBackendError`; the client translates
them into the typed errors of :mod:`tpmcrypt.core.exceptions`.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Optional

from tpmcrypt.core.exceptions import (
    BadRequestError,
    ConnectionFailedError,
    IoFailureError,
    KeyNotFoundError,
    PathNotFoundError,
    ProvisioningError,
    SealFailedError,
    StoreBackendError,
    StoreDeleteError,
    UnsealError,
)
from tpmcrypt.core.fileio import write_file_bytes

logger = logging.getLogger(__name__)

# Fixed secret presented to the store for every sealed object.
AUTHENTICATION_SECRET = "default_auth_key"
DEFAULT_SEAL_TYPE = "noDa"
MARKER_CONTENT = b"provisioned\n"

AuthCallback = Callable[[str, Optional[str]], bytes]

PROVISIONING_SUGGESTIONS = (
    "Does the user running this program have read/write permissions to the TPM device?",
    "Is this TPM already provisioned? Create the provisioning marker file if it is.",
    "Does this TPM have an auth key? Make sure your FAPI configuration is set up correctly.",
    "Change or reset the TPM owner auth using 'tpm2_changeauth'.",
)


class StoreSession(ABC):
    """One open connection to a secure store. Not safe to share between threads."""

    @abstractmethod
    def set_auth_callback(self, callback: AuthCallback) -> None:
        """Register the callback the store calls when an object needs its secret."""

    @abstractmethod
    def provision(self) -> None:
        """Bind the store to this application; only called once per store lifetime."""

    @abstractmethod
    def create_seal(
        self,
        path: str,
        data: bytes,
        seal_type: str = DEFAULT_SEAL_TYPE,
        policy_path: Optional[str] = None,
        auth: Optional[str] = None,
    ) -> None:
        """Seal ``data`` at ``path`` behind ``auth``. Fails if ``path`` exists."""

    @abstractmethod
    def unseal(self, path: str) -> bytes:
        """Return the bytes sealed at ``path``."""

    @abstractmethod
    def delete(self, path: str) -> None:
        """Delete ``path`` and everything below it."""

    @abstractmethod
    def close(self) -> None:
        """Finalize the session."""


class ProvisioningState:
    """The "store has been provisioned" fact, kept as a marker file.

    The marker can disagree with the real store (deleted marker, or a second
    process racing on provisioning). Nothing here locks; instances sharing a
    store must serialize externally.
    """

    def __init__(self, marker_path: str | Path = "fapi_provisioned"):
        self.marker_path = Path(marker_path)

    @property
    def is_provisioned(self) -> bool:
        return self.marker_path.exists()

    def mark_provisioned(self) -> None:
        try:
            write_file_bytes(self.marker_path, MARKER_CONTENT)
        except IoFailureError as e:
            raise ProvisioningError(
                f"store provisioned but unable to save status at {self.marker_path}: {e}"
            ) from e

    def clear(self) -> bool:
        """Remove the marker. Failures are logged, never raised."""
        try:
            self.marker_path.unlink()
        except FileNotFoundError:
            logger.info("Provisioning marker %s does not exist", self.marker_path)
            return False
        except OSError as e:
            logger.error("Unable to delete provisioning marker %s: %s", self.marker_path, e)
            return False
        logger.info("Provisioning marker %s deleted", self.marker_path)
        return True


class SecureStoreClient:
    """Drives store sessions for sealing, unsealing and wiping key material.

    ``session_factory`` opens a new :class:`StoreSession`; each operation
    opens its own session and closes it before returning.
    """

    def __init__(
        self,
        session_factory: Callable[[], StoreSession],
        provisioning: ProvisioningState,
        seal_type: str = DEFAULT_SEAL_TYPE,
        wipe_path: str = "/",
    ):
        self._session_factory = session_factory
        self.provisioning = provisioning
        self.seal_type = seal_type
        self.wipe_path = wipe_path

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def connect(self) -> StoreSession:
        try:
            return self._session_factory()
        except (StoreBackendError, OSError) as e:
            logger.error("Unable to connect to the secure store: %s", e)
            logger.info("[Suggestion] %s", PROVISIONING_SUGGESTIONS[0])
            raise ConnectionFailedError(f"secure store connection failed: {e}") from e

    def _release(self, session: StoreSession) -> None:
        try:
            session.close()
        except StoreBackendError as e:
            logger.warning("Failed to finalize store session: %s", e)

    @contextmanager
    def session(self) -> Iterator[StoreSession]:
        """Connected, authenticated and provisioned session, closed on exit."""
        session = self.connect()
        try:
            self.set_auth_callback(session)
            self.ensure_provisioned(session)
            yield session
        finally:
            self._release(session)

    # ------------------------------------------------------------------
    # Authentication and provisioning
    # ------------------------------------------------------------------

    @staticmethod
    def auth_callback(object_path: Optional[str], description: Optional[str] = None) -> bytes:
        """Return the fixed secret for any named object."""
        if not object_path:
            raise BadRequestError("authentication requested for an empty object path")
        return AUTHENTICATION_SECRET.encode("utf-8")

    def set_auth_callback(self, session: StoreSession) -> None:
        try:
            session.set_auth_callback(self.auth_callback)
        except StoreBackendError as e:
            logger.error("Setting the store auth callback failed: %s", e)
            raise ConnectionFailedError(f"unable to register auth callback: {e}") from e

    def ensure_provisioned(self, session: StoreSession) -> bool:
        """Provision the store unless the marker says it already is.

        Returns True when provisioning actually ran.
        """
        if self.provisioning.is_provisioned:
            logger.debug("Store already provisioned (marker %s)", self.provisioning.marker_path)
            return False

        logger.info("Provisioning secure store")
        try:
            session.provision()
        except StoreBackendError as e:
            logger.error("Store provisioning failed (code %s): %s", e.code, e)
            for suggestion in PROVISIONING_SUGGESTIONS:
                logger.info("[Suggestion] %s", suggestion)
            raise ProvisioningError(f"secure store provisioning failed: {e}") from e

        try:
            self.provisioning.mark_provisioned()
        except ProvisioningError:
            logger.error(
                "Store provisioned but unable to save status. The application may fail unless a file is created at %s",
                self.provisioning.marker_path,
            )
            raise
        return True

    # ------------------------------------------------------------------
    # Sealed objects
    # ------------------------------------------------------------------

    def seal(self, session: StoreSession, path: str, data: bytes) -> None:
        """Seal ``data`` at ``path``, replacing whatever was there."""
        try:
            session.delete(path)
            logger.debug("Replaced existing sealed object at %s", path)
        except PathNotFoundError:
            pass
        except StoreBackendError as e:
            raise SealFailedError(f"unable to clear existing object at {path}: {e}") from e

        try:
            session.create_seal(
                path,
                bytes(data),
                seal_type=self.seal_type,
                policy_path=None,
                auth=AUTHENTICATION_SECRET,
            )
        except StoreBackendError as e:
            logger.error("Sealing %s failed (code %s): %s", path, e.code, e)
            raise SealFailedError(f"unable to seal data at {path}: {e}") from e

    def unseal(self, session: StoreSession, path: str) -> bytearray:
        try:
            return bytearray(session.unseal(path))
        except PathNotFoundError as e:
            logger.error("Nothing sealed at %s", path)
            raise UnsealError(f"no sealed object at {path}") from e
        except (StoreBackendError, BadRequestError) as e:
            logger.error("Unsealing %s failed: %s", path, e)
            raise UnsealError(f"unable to unseal {path}: {e}") from e

    def delete(self, session: StoreSession, path: str) -> None:
        try:
            session.delete(path)
        except PathNotFoundError as e:
            raise KeyNotFoundError(f"no sealed object at {path}") from e
        except StoreBackendError as e:
            logger.error("Deleting %s failed: %s", path, e)
            raise StoreDeleteError(f"unable to delete {path}: {e}") from e

    def wipe_all(self) -> None:
        """Delete every object under the wipe root, then the provisioning marker.

        Irreversible. The marker is removed even when it is already missing;
        failing to remove it is logged only.
        """
        session = self.connect()
        try:
            self.set_auth_callback(session)
            try:
                session.delete(self.wipe_path)
                logger.info("Deleted all store objects under %s", self.wipe_path)
            except PathNotFoundError:
                logger.info("Nothing stored under %s", self.wipe_path)
            except StoreBackendError as e:
                logger.error("Wiping %s failed: %s", self.wipe_path, e)
                raise StoreDeleteError(f"unable to wipe {self.wipe_path}: {e}") from e
            self.provisioning.clear()
        finally:
            self._release(session)
