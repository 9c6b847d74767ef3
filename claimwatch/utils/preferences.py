"""Persisted user preferences backed by the OS keyring."""
from typing import Optional

import keyring
from keyring.errors import PasswordDeleteError, PasswordSetError
from loguru import logger

# Keyring service and account names
SERVICE_NAME = "claimwatch"
RESTRICT_ACCOUNT = "restrict_to_target_app"

_TRUE_VALUES = {"1", "true", "yes", "on"}


class PreferenceStore:
    """Read and write the watcher's persisted switches.

    Only the "restrict scanning to one source app" flag is persisted; the
    search criteria are deliberately never stored.
    """

    def __init__(self, service_name: str = SERVICE_NAME, default_restrict: bool = False):
        self.service_name = service_name
        self.default_restrict = default_restrict

    def get_restrict_to_target_app(self) -> bool:
        """Return the stored flag, or the default when nothing usable is stored."""
        raw = self._read(RESTRICT_ACCOUNT)
        if raw is None:
            return self.default_restrict
        return raw.strip().lower() in _TRUE_VALUES

    def set_restrict_to_target_app(self, enabled: bool) -> bool:
        """Persist the flag.

        Returns:
            True if successful, False otherwise
        """
        try:
            keyring.set_password(self.service_name, RESTRICT_ACCOUNT, "1" if enabled else "0")
            logger.info(f"[Preferences] restrict_to_target_app saved: {enabled}")
            return True
        except PasswordSetError as e:
            logger.error(f"[Preferences] Failed to store restrict flag: {e}")
            return False
        except Exception as e:
            logger.error(f"[Preferences] Unexpected error storing restrict flag: {e}")
            return False

    def reset(self) -> bool:
        """Forget the stored flag so the default applies again."""
        try:
            keyring.delete_password(self.service_name, RESTRICT_ACCOUNT)
            return True
        except PasswordDeleteError:
            return True
        except Exception as e:
            logger.error(f"[Preferences] Failed to reset restrict flag: {e}")
            return False

    def _read(self, account: str) -> Optional[str]:
        try:
            return keyring.get_password(self.service_name, account)
        except Exception as e:
            logger.error(f"[Preferences] Failed to read {account}: {e}")
            return None
