"""
Session sub-package

Credential vault, session-scoped storage, and the session store.
"""

from instruct_lab_core.session.storage import InMemorySessionStorage, SessionStorage
from instruct_lab_core.session.store import SessionStore
from instruct_lab_core.session.vault import CredentialVault

__all__ = [
    "CredentialVault",
    "InMemorySessionStorage",
    "SessionStorage",
    "SessionStore",
]
