"""
Mailbox access-token storage for connected accounts.

Tokens are obtained by an external OAuth flow; this store only persists and
hands them out. Refreshing an expired token is the caller's responsibility.
"""

import json
import os
from pathlib import Path
from typing import Optional, Dict, List, Any


class TokenStore:
    """Manages stored mailbox tokens keyed by account email address."""

    def __init__(self, store_path: Optional[Path] = None):
        """
        Initialize token store.

        Args:
            store_path: Path to the JSON file storing tokens.
                       If None, tokens live only in memory.
        """
        self.store_path = store_path
        self._tokens: Dict[str, Dict[str, Any]] = {}
        self._load_tokens()

    def _load_tokens(self):
        """Load tokens from disk if the file exists."""
        if self.store_path and self.store_path.exists():
            try:
                with open(self.store_path, 'r') as f:
                    data = json.load(f)
                self._tokens = data if isinstance(data, dict) else {}
            except (json.JSONDecodeError, IOError):
                # Corrupted or unreadable file, start fresh
                self._tokens = {}

    def _save_tokens(self):
        """Save tokens to disk with owner-only permissions."""
        if not self.store_path:
            return

        self.store_path.parent.mkdir(parents=True, exist_ok=True)

        with open(self.store_path, 'w') as f:
            json.dump(self._tokens, f, indent=2)

        os.chmod(self.store_path, 0o600)

    def get_token(self, email_address: str) -> Optional[Dict[str, Any]]:
        """
        Get the token record for an email address.

        Returns:
            Dict with at least 'access_token', or None if not stored
        """
        return self._tokens.get(email_address.lower())

    def get_access_token(self, email_address: str) -> Optional[str]:
        """Get just the access token for an email address."""
        record = self.get_token(email_address)
        if not record:
            return None
        return record.get('access_token')

    def set_token(
        self,
        email_address: str,
        access_token: str,
        refresh_token: Optional[str] = None,
        expires_at: Optional[str] = None
    ):
        """Store a token record for an email address."""
        record: Dict[str, Any] = {'access_token': access_token}
        if refresh_token:
            record['refresh_token'] = refresh_token
        if expires_at:
            record['expires_at'] = expires_at
        self._tokens[email_address.lower()] = record
        self._save_tokens()

    def remove_token(self, email_address: str) -> bool:
        """
        Remove the stored token for an email address.

        Returns:
            True if a token was removed, False if it didn't exist
        """
        email_lower = email_address.lower()
        if email_lower in self._tokens:
            del self._tokens[email_lower]
            self._save_tokens()
            return True
        return False

    def list_stored_emails(self) -> List[str]:
        """Get sorted list of email addresses with stored tokens."""
        return sorted(self._tokens.keys())

    def has_token(self, email_address: str) -> bool:
        """Check if a token is stored for an email address."""
        return email_address.lower() in self._tokens


# Global token store instance
_token_store = None


def get_token_store(store_path: Optional[Path] = None) -> TokenStore:
    """
    Get the global token store instance.

    Args:
        store_path: Path to token file. If None and instance doesn't exist,
                   will use default from config.
    """
    global _token_store

    if _token_store is None:
        if store_path is None:
            # Import here to avoid circular dependency
            from .settings import Config
            store_path = Config.get_token_store_path()

        _token_store = TokenStore(store_path)

    return _token_store
