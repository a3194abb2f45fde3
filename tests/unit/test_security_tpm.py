"""
Unit tests for the FAPI store session. tpm2-pytss is patched out entirely.
"""

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from tpmcrypt.core.exceptions import PathNotFoundError, StoreBackendError
from tpmcrypt.security import tpm
from tpmcrypt.security.store import SecureStoreClient


class FakeTSS2Exception(Exception):
    def __init__(self, rc):
        super().__init__(f"tss2 rc {rc:#x}")
        self.rc = rc


FAKE_RC = SimpleNamespace(FAPI_RC_PATH_NOT_FOUND=0x60025, FAPI_RC_BAD_VALUE=0x6000B)


# ==============================================================================
# Fixtures
# ==============================================================================

@pytest.fixture
def fapi_cls():
    """Patches FAPI, TSS2_Exception and TSS2_RC within tpmcrypt.security.tpm."""
    with patch("tpmcrypt.security.tpm.FAPI") as mock_cls, \
            patch("tpmcrypt.security.tpm.TSS2_Exception", FakeTSS2Exception), \
            patch("tpmcrypt.security.tpm.TSS2_RC", FAKE_RC):
        yield mock_cls


@pytest.fixture
def fapi(fapi_cls):
    return fapi_cls.return_value


# ==============================================================================
# Tests: Dependency availability
# ==============================================================================

def test_missing_tpm2_pytss_raises():
    with patch("tpmcrypt.security.tpm.FAPI", None):
        with pytest.raises(StoreBackendError, match="tpm2-pytss package is not available"):
            tpm.TpmSession()


def test_initialize_failure_is_translated(fapi_cls):
    fapi_cls.side_effect = FakeTSS2Exception(0xA000A)

    with pytest.raises(StoreBackendError, match="Fapi_Initialize") as exc_info:
        tpm.TpmSession()

    assert exc_info.value.code == 0xA000A


# ==============================================================================
# Tests: FAPI calls
# ==============================================================================

def test_provision_refuses_already_provisioned(fapi):
    tpm.TpmSession().provision()
    fapi.provision.assert_called_once_with(is_provisioned_ok=False)


def test_create_seal_passes_type_and_auth(fapi):
    tpm.TpmSession().create_seal("/HS/SRK/alpha", b"k" * 32, seal_type="noDa", auth="default_auth_key")

    fapi.create_seal.assert_called_once_with(
        "/HS/SRK/alpha",
        data=b"k" * 32,
        type_="noDa",
        policy_path=None,
        auth_value="default_auth_key",
    )


def test_unseal_returns_bytes(fapi):
    fapi.unseal.return_value = b"secret"
    assert tpm.TpmSession().unseal("/HS/SRK/alpha") == b"secret"


def test_path_not_found_is_translated(fapi):
    fapi.unseal.side_effect = FakeTSS2Exception(FAKE_RC.FAPI_RC_PATH_NOT_FOUND)

    with pytest.raises(PathNotFoundError, match="Fapi_Unseal /HS/SRK/alpha") as exc_info:
        tpm.TpmSession().unseal("/HS/SRK/alpha")

    assert exc_info.value.code == FAKE_RC.FAPI_RC_PATH_NOT_FOUND


def test_other_errors_keep_their_code(fapi):
    fapi.delete.side_effect = FakeTSS2Exception(0x60005)

    with pytest.raises(StoreBackendError) as exc_info:
        tpm.TpmSession().delete("/")

    assert not isinstance(exc_info.value, PathNotFoundError)
    assert exc_info.value.code == 0x60005


def test_close_finalizes_once(fapi):
    session = tpm.TpmSession()
    session.close()
    session.close()
    fapi.close.assert_called_once()


# ==============================================================================
# Tests: Auth callback bridge
# ==============================================================================

def test_auth_callback_bridge(fapi):
    tpm.TpmSession().set_auth_callback(SecureStoreClient.auth_callback)
    bridge = fapi.set_auth_callback.call_args[0][0]

    assert bridge("/HS/SRK/alpha", "unseal", None) == b"default_auth_key"


def test_auth_callback_bridge_rejects_empty_path(fapi):
    tpm.TpmSession().set_auth_callback(SecureStoreClient.auth_callback)
    bridge = fapi.set_auth_callback.call_args[0][0]

    with pytest.raises(FakeTSS2Exception) as exc_info:
        bridge("", "unseal")

    assert exc_info.value.rc == FAKE_RC.FAPI_RC_BAD_VALUE


def test_client_over_tpm_session_provisions(fapi_cls, tmp_path):
    from tpmcrypt.security.store import ProvisioningState

    client = SecureStoreClient(tpm.TpmSession, ProvisioningState(tmp_path / "fapi_provisioned"))

    with client.session():
        pass

    fapi = fapi_cls.return_value
    fapi.provision.assert_called_once_with(is_provisioned_ok=False)
    fapi.close.assert_called_once()
    assert (tmp_path / "fapi_provisioned").exists()
