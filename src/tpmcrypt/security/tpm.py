"""TPM-backed store session using the TSS2 Feature API (FAPI) through tpm2-pytss.

FAPI reads its configuration from the file named by ``TSS2_FAPICONF`` (or the
system default). Errors from the library are re-raised as
:class:`StoreBackendError` carrying the TSS2 response code; decode a code with
``tpm2_rc_decode``.
"""

from __future__ import annotations

import logging
from typing import Optional

from tpmcrypt.core.exceptions import BadRequestError, PathNotFoundError, StoreBackendError
from tpmcrypt.security.store import DEFAULT_SEAL_TYPE, AuthCallback, StoreSession

try:
    from tpm2_pytss import FAPI, TSS2_Exception
    from tpm2_pytss.constants import TSS2_RC
except Exception:
    FAPI = None
    TSS2_Exception = None
    TSS2_RC = None

logger = logging.getLogger(__name__)


def _require_fapi():
    if FAPI is None:
        raise StoreBackendError(
            "tpm2-pytss package is not available; install tpm2-pytss to use the TPM store"
        )


def _translate(exc: Exception, action: str, path: str | None = None) -> StoreBackendError:
    rc = getattr(exc, "rc", None)
    where = f" {path}" if path else ""
    message = f"{action}{where} failed with error code {rc}: {exc}"
    if rc is not None and rc == TSS2_RC.FAPI_RC_PATH_NOT_FOUND:
        return PathNotFoundError(message, code=rc)
    return StoreBackendError(message, code=rc)


class TpmSession(StoreSession):
    """One FAPI context. Finalized by :meth:`close`."""

    def __init__(self):
        _require_fapi()
        try:
            self._fapi = FAPI()
        except TSS2_Exception as e:
            raise _translate(e, "Fapi_Initialize") from e
        self._closed = False

    def set_auth_callback(self, callback: AuthCallback) -> None:
        def _present_auth(object_path, description, user_data=None):
            try:
                return callback(object_path, description)
            except BadRequestError as e:
                raise TSS2_Exception(TSS2_RC.FAPI_RC_BAD_VALUE) from e

        try:
            self._fapi.set_auth_callback(_present_auth)
        except TSS2_Exception as e:
            raise _translate(e, "Fapi_SetAuthCB") from e

    def provision(self) -> None:
        try:
            self._fapi.provision(is_provisioned_ok=False)
        except TSS2_Exception as e:
            raise _translate(e, "Fapi_Provision") from e

    def create_seal(
        self,
        path: str,
        data: bytes,
        seal_type: str = DEFAULT_SEAL_TYPE,
        policy_path: Optional[str] = None,
        auth: Optional[str] = None,
    ) -> None:
        try:
            self._fapi.create_seal(
                path,
                data=data,
                type_=seal_type,
                policy_path=policy_path,
                auth_value=auth,
            )
        except TSS2_Exception as e:
            raise _translate(e, "Fapi_CreateSeal", path) from e

    def unseal(self, path: str) -> bytes:
        try:
            return self._fapi.unseal(path)
        except TSS2_Exception as e:
            raise _translate(e, "Fapi_Unseal", path) from e

    def delete(self, path: str) -> None:
        try:
            self._fapi.delete(path)
        except TSS2_Exception as e:
            raise _translate(e, "Fapi_Delete", path) from e

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._fapi.close()
        except TSS2_Exception as e:
            raise _translate(e, "Fapi_Finalize") from e
        logger.debug("FAPI context finalized")
