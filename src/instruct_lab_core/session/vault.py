"""
Credential Vault

Holds the user's API key in encrypted form for the lifetime of a session.
The raw key is only materialized by reveal() for the duration of a call.
"""

from instruct_lab_core.domain.errors import CredentialError
from instruct_lab_core.infrastructure.cipher import Cipher, FernetCipher
from instruct_lab_core.validation import is_valid_api_key_format


class CredentialVault:
    """Encrypted, in-memory API key holder"""

    def __init__(self, cipher: Cipher | None = None):
        self._cipher = cipher or FernetCipher()
        self._encrypted: str | None = None
        self._valid = False

    @property
    def encrypted(self) -> str | None:
        return self._encrypted

    @property
    def has_credential(self) -> bool:
        return self._encrypted is not None

    @property
    def is_valid(self) -> bool:
        return self._encrypted is not None and self._valid

    def store(self, raw_key: str) -> None:
        """
        Encrypt and keep the key; validity stays False until mark_valid()

        Raises:
            CredentialError: If the key format is invalid
        """
        if not is_valid_api_key_format(raw_key):
            raise CredentialError("Invalid API key format")
        self._encrypted = self._cipher.encrypt(raw_key.strip())
        self._valid = False

    def mark_valid(self) -> None:
        if self._encrypted is None:
            raise CredentialError("No API key stored")
        self._valid = True

    def reveal(self) -> str:
        """
        Decrypt the stored key

        Raises:
            CredentialError: If no key is stored or it cannot be decrypted
        """
        if self._encrypted is None:
            raise CredentialError("No API key stored")
        return self._cipher.decrypt(self._encrypted)

    def masked(self) -> str:
        """Display form: first 6 and last 4 characters"""
        if self._encrypted is None:
            return ""
        key = self.reveal()
        return f"{key[:6]}...{key[-4:]}"

    def clear(self) -> None:
        self._encrypted = None
        self._valid = False
