"""
Persisted session storage

Stores the authentication token, user id and streaming quality between runs so
that a previously logged-in user does not have to log in again. The storage
mechanics are deliberately simple: one JSON file, readable by its owner only.
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from .settings import get_settings


class CredentialStore:
    """
    JSON file backed credential store

    The stored document always carries ``token``, ``user_id`` and ``quality``;
    ``user_mail`` and ``lossless`` are informational extras.
    """

    REQUIRED_FIELDS = ('token', 'user_id', 'quality')

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else get_settings().get_credentials_path()

    def load(self) -> Optional[Dict[str, Any]]:
        """
        Load the stored session

        Returns:
            Session dictionary, or None if nothing usable is stored
        """
        try:
            if not self.path.exists():
                return None
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            print(f"Warning: Failed to load stored session: {e}")
            return None

        if not isinstance(data, dict) or not all(key in data for key in self.REQUIRED_FIELDS):
            print("Warning: Invalid stored session structure, login required")
            return None

        if not data.get('token'):
            return None

        return data

    def save(self, session: Dict[str, Any]) -> None:
        """
        Save the session with restrictive file permissions

        Args:
            session: Dictionary with at least token, user_id and quality
        """
        missing = [key for key in self.REQUIRED_FIELDS if key not in session]
        if missing:
            raise ValueError(f"Session is missing fields: {', '.join(missing)}")

        self.path.parent.mkdir(parents=True, exist_ok=True)
        document = {**session, 'saved_at': datetime.now().isoformat()}
        with open(self.path, 'w', encoding='utf-8') as f:
            json.dump(document, f, indent=2)

        try:
            # 0o600 = owner read/write only
            self.path.chmod(0o600)
        except OSError:
            # Windows doesn't support chmod
            pass

    def update(self, **fields: Any) -> None:
        """Merge fields into the stored session if one exists"""
        current = self.load()
        if current is None:
            return
        current.pop('saved_at', None)
        current.update(fields)
        self.save(current)

    def clear(self) -> None:
        """Remove the stored session"""
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass


_store_instance: Optional[CredentialStore] = None


def get_credential_store() -> CredentialStore:
    """Get the global credential store (singleton pattern)"""
    global _store_instance
    if not _store_instance:
        _store_instance = CredentialStore()
    return _store_instance


def reset_credential_store() -> None:
    """Forget the global credential store instance (does not delete the file)"""
    global _store_instance
    _store_instance = None
