"""
Unit tests for key reference to store path mapping.
"""

import pytest

from tpmcrypt.core.exceptions import InvalidKeyReferenceError
from tpmcrypt.security.key_reference import SealedPaths, key_paths, validate_reference


def test_default_root_paths():
    assert key_paths("alpha") == SealedPaths(key="/HS/SRK/alpha", iv="/HS/SRK/alpha_iv")


def test_custom_root_trailing_slash_is_ignored():
    paths = key_paths("beta", root="/HS/SRK/apps/")
    assert paths.key == "/HS/SRK/apps/beta"
    assert paths.iv == "/HS/SRK/apps/beta_iv"


def test_reference_is_returned_unchanged():
    assert validate_reference("report 2024.pdf") == "report 2024.pdf"


@pytest.mark.parametrize("bad", ["", "   ", None, 42, "a/b", "/", "alpha_iv", "_iv"])
def test_invalid_references_rejected(bad):
    with pytest.raises(InvalidKeyReferenceError):
        key_paths(bad)


def test_iv_suffix_inside_reference_is_allowed():
    assert key_paths("alpha_ivy").iv == "/HS/SRK/alpha_ivy_iv"
