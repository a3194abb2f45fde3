"""
Exceptions for tpmcrypt
Everything derives from TpmCryptError so callers have one general error catcher.
Errors flagged ``fatal`` mean the environment is unusable and the process should stop.
"""


class TpmCryptError(Exception):
    # general container for errors
    fatal = False


class ConnectionFailedError(TpmCryptError):
    # raised when a session to the secure store cannot be opened
    pass


class ProvisioningError(TpmCryptError):
    # raised when one-time provisioning of the store fails
    pass


class BadRequestError(TpmCryptError):
    # raised when the store asks for auth on a null/empty object path
    pass


class SealFailedError(TpmCryptError):
    # raised when bytes cannot be sealed at a path
    pass


class UnsealError(TpmCryptError):
    # raised when a path is missing, was never sealed, or auth was rejected
    pass


class KeyNotFoundError(TpmCryptError):
    # raised when deleting a reference that has nothing sealed
    pass


class StoreDeleteError(TpmCryptError):
    # raised when the store refuses to delete an object or subtree
    pass


class InvalidKeyReferenceError(TpmCryptError):
    # raised for empty or malformed key references
    pass


class InvalidKeyMaterialError(TpmCryptError):
    # raised when key/iv lengths do not match the cipher
    pass


class PaddingInvalidError(TpmCryptError):
    # raised on decrypt when padding is malformed (wrong key or corrupt data)
    pass


class CipherStateError(TpmCryptError):
    # raised when a cipher context is used after it finished or failed
    pass


class IoFailureError(TpmCryptError):
    # raised when a file read/write fails
    pass


class EntropyError(TpmCryptError):
    # raised when the OS entropy source cannot be read
    fatal = True


class StoreBackendError(TpmCryptError):
    """Raw failure reported by a store backend, translated by the store client."""

    def __init__(self, message: str, code: int | None = None):
        super().__init__(message)
        self.code = code


class PathNotFoundError(StoreBackendError):
    # raised by a backend when nothing exists at the requested path
    pass
