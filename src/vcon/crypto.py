"""Age encryption for stored passwords."""

import base64
from pathlib import Path

import pyrage

AGE_PREFIX = "AGE:"
IDENTITY_FILE_NAME = ".age-identity"


class PasswordCipher:
    """Encrypt and decrypt config values with an age identity kept on disk.

    The identity is generated on first use, next to the config file, with
    owner-only permissions.
    """

    def __init__(self, identity_file: Path) -> None:
        self.identity_file = identity_file
        self._identity: pyrage.x25519.Identity | None = None

    def _load_identity(self) -> pyrage.x25519.Identity:
        """Load or generate the age identity."""
        if self._identity is not None:
            return self._identity
        if self.identity_file.exists():
            identity = pyrage.x25519.Identity.from_str(self.identity_file.read_text().strip())
        else:
            self.identity_file.parent.mkdir(parents=True, exist_ok=True)
            identity = pyrage.x25519.Identity.generate()
            self.identity_file.write_text(str(identity))
            self.identity_file.chmod(0o600)
        self._identity = identity
        return identity

    def encrypt(self, value: str) -> str:
        """Encrypt a plaintext value. Returns AGE:base64... string."""
        if is_encrypted(value):
            return value
        recipient = self._load_identity().to_public()
        encrypted = pyrage.encrypt(value.encode(), [recipient])
        return AGE_PREFIX + base64.b64encode(encrypted).decode()

    def decrypt(self, value: str) -> str:
        """Decrypt an AGE:-prefixed value. Returns plaintext."""
        if not is_encrypted(value):
            return value
        raw = base64.b64decode(value[len(AGE_PREFIX):])
        return pyrage.decrypt(raw, [self._load_identity()]).decode()


def is_encrypted(value: str) -> bool:
    """Check if a value is age-encrypted."""
    return value.startswith(AGE_PREFIX)
