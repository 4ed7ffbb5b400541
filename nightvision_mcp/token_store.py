"""
Token persistence between server restarts.

The token lives in a single file under the NightVision config directory.
Failures here are never fatal: they are logged and the server keeps running
without a persisted token.
"""

import logging
import os
from typing import Optional

logger = logging.getLogger(__name__)


class TokenStore:
    """Reads, writes and removes the persisted NightVision token."""

    def __init__(self, config_dir: str):
        self.config_dir = config_dir
        self.token_file = os.path.join(config_dir, "token")

    def load(self) -> Optional[str]:
        """Return the saved token, or None if there is none or it cannot be read."""
        try:
            if os.path.exists(self.token_file):
                with open(self.token_file, "r", encoding="utf-8") as f:
                    token = f.read().strip()
                return token or None
        except OSError as e:
            logger.error(f"Failed to load token: {e}")
        return None

    def save(self, token: str) -> None:
        """Write the token, creating the config directory when needed."""
        try:
            os.makedirs(self.config_dir, exist_ok=True)
            with open(self.token_file, "w", encoding="utf-8") as f:
                f.write(token)
        except OSError as e:
            logger.error(f"Failed to save token: {e}")

    def clear(self) -> None:
        """Delete the saved token. A missing file is not an error."""
        try:
            if os.path.exists(self.token_file):
                os.remove(self.token_file)
        except OSError as e:
            logger.error(f"Failed to clear token: {e}")

