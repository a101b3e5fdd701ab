"""
Session cipher

Symmetric encrypt/decrypt capability used for the stored credential.
The key lives only in process memory and dies with the cipher instance.
"""

from typing import Protocol

from cryptography.fernet import Fernet, InvalidToken

from instruct_lab_core.domain.errors import CredentialError


class Cipher(Protocol):
    """Opaque encrypt/decrypt capability"""

    def encrypt(self, plaintext: str) -> str: ...

    def decrypt(self, token: str) -> str: ...


class FernetCipher:
    """Cipher backed by Fernet (AES-128-CBC + HMAC-SHA256) with a per-instance key"""

    def __init__(self, key: bytes | None = None):
        self._fernet = Fernet(key or Fernet.generate_key())

    def encrypt(self, plaintext: str) -> str:
        if not plaintext:
            raise CredentialError("Invalid value provided for encryption")
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("ascii")

    def decrypt(self, token: str) -> str:
        if not token:
            raise CredentialError("Invalid encrypted value provided for decryption")
        try:
            return self._fernet.decrypt(token.encode("ascii")).decode("utf-8")
        except InvalidToken as e:
            raise CredentialError("Failed to decrypt API key") from e
