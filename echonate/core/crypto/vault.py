#!/usr/bin/env python3
"""
EchoNate Core Crypto — Credential Vault
=========================================
Site → encrypted credential record map.

Plaintext exists only transiently inside store() and retrieve(); the map
that is persisted holds ciphertext only. Callers always get copies, so no
one outside the vault can alias or mutate a stored record.

Import from: echonate.core.crypto.vault
"""

import json
import logging
import threading
from datetime import datetime
from typing import Any, Dict, List, Mapping

from echonate.core.crypto.cipher import CipherError, CredentialCipher
from echonate.core.types import CredentialNotFoundError, CredentialRecord

__all__ = ['CredentialVault']

logger = logging.getLogger("echonate.core.crypto.vault")


class CredentialVault:
    """Thread-safe map of encrypted site credentials."""

    def __init__(self, cipher: CredentialCipher):
        self.cipher = cipher
        self.lock = threading.Lock()
        self._records: Dict[str, CredentialRecord] = {}

    def load(self, persisted: Mapping[str, Any]) -> int:
        """Replace contents from the persisted map. Returns records loaded."""
        records = {}
        for site, data in (persisted or {}).items():
            try:
                records[site] = CredentialRecord.from_dict(data)
            except (KeyError, TypeError) as e:
                logger.warning("Skipping malformed credential record for %s: %s", site, e)
        with self.lock:
            self._records = records
        return len(records)

    def store(self, site: str, username: str, password: str) -> CredentialRecord:
        """Encrypt and store credentials for ``site``, replacing any existing."""
        payload = json.dumps({'username': username, 'password': password}).encode('utf-8')
        record = CredentialRecord(
            site=site,
            encrypted=self.cipher.encrypt(payload),
            stored_at=datetime.now().isoformat(),
            encryption=self.cipher.method,
        )
        with self.lock:
            self._records[site] = record
        logger.info("Stored credentials for %s", site)
        return CredentialRecord.from_dict(record.to_dict())

    def retrieve(self, site: str) -> Dict[str, str]:
        """Decrypt credentials for ``site``.

        Raises CredentialNotFoundError if none are stored or the stored
        ciphertext cannot be decrypted with the current key.
        """
        with self.lock:
            record = self._records.get(site)
        if record is None:
            raise CredentialNotFoundError(f"No credentials stored for {site}")
        try:
            data = json.loads(self.cipher.decrypt(record.encrypted).decode('utf-8'))
        except (CipherError, ValueError) as e:
            logger.error("Cannot decrypt credentials for %s: %s", site, e)
            raise CredentialNotFoundError(
                f"Stored credentials for {site} could not be decrypted") from e
        return {'username': data.get('username', ''), 'password': data.get('password', '')}

    def has(self, site: str) -> bool:
        with self.lock:
            return site in self._records

    def sites(self) -> List[str]:
        with self.lock:
            return sorted(self._records)

    def to_dict(self) -> Dict[str, Dict[str, str]]:
        """Ciphertext-only view for persistence."""
        with self.lock:
            return {site: rec.to_dict() for site, rec in self._records.items()}
