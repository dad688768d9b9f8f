"""Configuration manager for vcon."""

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError

from ..api.exceptions import ConfigError
from ..crypto import IDENTITY_FILE_NAME, PasswordCipher, is_encrypted
from ..models.config import OutputConfig, ProfileConfig

DEFAULT_CONFIG_DIR = Path.home() / ".config" / "vcon"
CONFIG_FILE_NAME = "config.yaml"


class Config(BaseModel):
    """Main configuration model."""

    default_profile: str | None = None
    profiles: dict[str, ProfileConfig] = Field(default_factory=dict)
    output: OutputConfig = Field(default_factory=OutputConfig)


class ConfigManager:
    """Manage vcon configuration."""

    def __init__(self, config_file: Path | None = None) -> None:
        """Initialize config manager.

        Args:
            config_file: Custom config file (defaults to ~/.config/vcon/config.yaml)
        """
        if config_file is None:
            config_file = DEFAULT_CONFIG_DIR / CONFIG_FILE_NAME
        self.config_file = Path(config_file).expanduser()
        self.config_dir = self.config_file.parent
        self.cipher = PasswordCipher(self.config_dir / IDENTITY_FILE_NAME)
        self._config: Config | None = None

    def _ensure_config_dir(self) -> None:
        """Create config directory if it doesn't exist."""
        if not self.config_dir.exists():
            self.config_dir.mkdir(parents=True, exist_ok=True)
            os.chmod(self.config_dir, 0o700)

    def exists(self) -> bool:
        """Check if config file exists.

        Returns:
            True if config file exists
        """
        return self.config_file.exists()

    def load(self) -> Config:
        """Load configuration from file.

        Returns:
            Loaded configuration

        Raises:
            ConfigError: If config file doesn't exist or is invalid
        """
        if not self.exists():
            raise ConfigError(
                f"Configuration file not found at {self.config_file}. "
                "Run 'vcon config add' to create one."
            )

        try:
            with open(self.config_file) as f:
                data = yaml.safe_load(f) or {}
            config = Config(**data)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in config file: {e}") from e
        except ValidationError as e:
            raise ConfigError(f"Invalid config file {self.config_file}: {e}") from e

        # Decrypt passwords and re-encrypt plaintext on disk
        needs_save = self._decrypt_config(config)
        self._config = config
        if needs_save:
            self.save(config)
        return config

    def save(self, config: Config) -> None:
        """Save configuration to file.

        Args:
            config: Configuration to save

        Raises:
            ConfigError: If save fails
        """
        self._ensure_config_dir()
        data = config.model_dump(exclude_none=True)
        try:
            self._encrypt_data(data)
            with open(self.config_file, "w") as f:
                yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
            os.chmod(self.config_file, 0o600)
        except OSError as e:
            raise ConfigError(f"Failed to save config: {e}") from e
        self._config = config

    def get(self) -> Config:
        """Get current configuration, loading if necessary.

        Returns:
            Current configuration
        """
        if self._config is None:
            self._config = self.load()
        return self._config

    def get_profile(self, name: str | None = None) -> ProfileConfig:
        """Get a specific profile or the default.

        Args:
            name: Profile name (uses default if None)

        Returns:
            Profile configuration

        Raises:
            ConfigError: If profile not found
        """
        config = self.get()

        if name is None:
            if config.default_profile is None:
                raise ConfigError("No default profile set. Use --profile to specify one.")
            name = config.default_profile

        if name not in config.profiles:
            raise ConfigError(
                f"Profile '{name}' not found. Available profiles: "
                f"{', '.join(config.profiles.keys())}"
            )

        return config.profiles[name]

    def add_profile(self, name: str, profile: ProfileConfig) -> None:
        """Add or update a profile.

        Args:
            name: Profile name
            profile: Profile configuration
        """
        config = self.get() if self.exists() else Config()
        config.profiles[name] = profile

        if config.default_profile is None:
            config.default_profile = name

        self.save(config)

    def remove_profile(self, name: str) -> None:
        """Remove a profile.

        Args:
            name: Profile name

        Raises:
            ConfigError: If profile not found
        """
        config = self.get()

        if name not in config.profiles:
            raise ConfigError(f"Profile '{name}' not found")

        del config.profiles[name]

        if config.default_profile == name:
            config.default_profile = next(iter(config.profiles.keys()), None)

        self.save(config)

    def set_default_profile(self, name: str) -> None:
        """Set the default profile.

        Args:
            name: Profile name

        Raises:
            ConfigError: If profile not found
        """
        config = self.get()

        if name not in config.profiles:
            raise ConfigError(f"Profile '{name}' not found")

        config.default_profile = name
        self.save(config)

    def list_profiles(self) -> list[str]:
        """List all profile names.

        Returns:
            List of profile names
        """
        return list(self.get().profiles.keys())

    def _decrypt_config(self, config: Config) -> bool:
        """Decrypt passwords in-place. Returns True if plaintext was found (needs re-save)."""
        needs_save = False
        for profile in config.profiles.values():
            if not profile.password:
                continue
            if is_encrypted(profile.password):
                profile.password = self.cipher.decrypt(profile.password)
            else:
                needs_save = True
        return needs_save

    def _encrypt_data(self, data: dict) -> None:
        """Encrypt passwords in the serialized dict before writing."""
        for profile in data.get("profiles", {}).values():
            if profile.get("password"):
                profile["password"] = self.cipher.encrypt(profile["password"])
