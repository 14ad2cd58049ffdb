"""
Configuration management package for qobuz-sync

Two components live here:

1. Settings Management (settings.py):
   - Application configuration from YAML files and environment variables
   - Settings validation and reloading

2. Credential Storage (credentials.py):
   - Persisted session (auth token, user id, streaming quality)
   - Restrictive file permissions on the stored document

Usage:

    from qobuz_sync.config import get_settings, get_credential_store

    settings = get_settings()
    store = get_credential_store()
"""

from .settings import get_settings, reload_settings, Settings
from .credentials import get_credential_store, reset_credential_store, CredentialStore

__all__ = [
    'get_settings',
    'reload_settings',
    'Settings',
    'get_credential_store',
    'reset_credential_store',
    'CredentialStore',
]
