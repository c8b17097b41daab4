"""
Crypto — Credential encryption at rest.

Classes:
- CredentialCipher: AES-256-GCM, key file with 0600 permissions
- CredentialVault: Site → encrypted credential record
"""

from echonate.core.crypto.cipher import CredentialCipher, CipherError
from echonate.core.crypto.vault import CredentialVault

__all__ = ['CredentialCipher', 'CipherError', 'CredentialVault']
