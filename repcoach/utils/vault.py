"""Local credential vault for tracker API keys.

Keys are scoped by provider and by user, so two people sharing a machine
(or one person with two Hevy accounts) keep separate keys. The file is
written atomically and created with owner-only permissions.
"""

import logging
import os
from typing import Optional

from repcoach.utils.json_store import JsonDocument

logger = logging.getLogger("repcoach.vault")


class CredentialVault:
    def __init__(self, file_path: str, user: str = "default"):
        self._doc = JsonDocument(file_path)
        self._user = user

    def load_api_key(self, provider: str) -> Optional[str]:
        key = self._doc.read().get(self._user, {}).get(provider)
        if key:
            logger.debug("Loaded %s API key for %s", provider, self._user)
        return key or None

    def save_api_key(self, provider: str, api_key: str) -> None:
        data = self._doc.read()
        data.setdefault(self._user, {})[provider] = api_key
        self._doc.write(data)
        try:
            os.chmod(self._doc.path, 0o600)
        except OSError as e:
            logger.warning("Could not restrict permissions on %s: %s", self._doc.path, e)
        logger.info("Saved %s API key for %s", provider, self._user)

    def delete_api_key(self, provider: str) -> bool:
        data = self._doc.read()
        keys = data.get(self._user, {})
        if provider not in keys:
            return False
        del keys[provider]
        self._doc.write(data)
        logger.info("Deleted %s API key for %s", provider, self._user)
        return True
