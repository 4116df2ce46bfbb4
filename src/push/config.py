"""User configuration: credentials and send defaults in a TOML file.

Priority for paths (highest wins): explicit argument > env var
(``PUSH_CONFIG`` / ``PUSH_DATA_DIR``) > XDG base directories > ``~/.config``
and ``~/.local/share``.
"""

from __future__ import annotations

import dataclasses
import logging
import os
import platform
import tempfile
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import tomli_w

from push.client.transport import Credentials
from push.errors import InvalidParameterError

logger = logging.getLogger(__name__)

MIN_PRIORITY = -2
MAX_PRIORITY = 2


def config_path(override: str | Path | None = None) -> Path:
    """Resolve the config file location."""
    if override:
        return Path(override).expanduser()
    env = os.getenv("PUSH_CONFIG")
    if env:
        return Path(env).expanduser()
    base = os.getenv("XDG_CONFIG_HOME")
    root = Path(base) if base else Path.home() / ".config"
    return root / "push" / "config.toml"


def data_dir(override: str | Path | None = None) -> Path:
    """Resolve the directory holding ``push.db``."""
    if override:
        return Path(override).expanduser()
    env = os.getenv("PUSH_DATA_DIR")
    if env:
        return Path(env).expanduser()
    base = os.getenv("XDG_DATA_HOME")
    root = Path(base) if base else Path.home() / ".local" / "share"
    return root / "push"


def database_path(override: str | Path | None = None) -> Path:
    return data_dir(override) / "push.db"


def validate_priority(priority: int) -> int:
    if priority < MIN_PRIORITY or priority > MAX_PRIORITY:
        raise InvalidParameterError(
            f"priority must be between {MIN_PRIORITY} and {MAX_PRIORITY}"
        )
    return priority


@dataclass
class Config:
    """Persisted push settings."""

    app_token: str = ""
    user_key: str = ""
    device_id: str = ""
    device_secret: str = ""
    default_device: str = ""
    default_priority: int = 0

    @classmethod
    def load(cls, path: str | Path) -> Config:
        """Read *path*; a missing file yields an empty config."""
        path = Path(path)
        if not path.exists():
            return cls()
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as exc:
            raise ValueError(f"parsing config {path}: {exc}") from exc
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Config:
        known = {f.name for f in dataclasses.fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        if "default_priority" in values:
            values["default_priority"] = int(values["default_priority"])
        for name in known - {"default_priority"}:
            if name in values:
                values[name] = str(values[name])
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)

    def save(self, path: str | Path) -> None:
        """Write atomically (temp file + rename) with 0600 permissions."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        data = tomli_w.dumps(self.to_dict()).encode()

        fd, tmp_name = tempfile.mkstemp(prefix="config-", suffix=".tmp", dir=path.parent)
        try:
            with os.fdopen(fd, "wb") as tmp:
                tmp.write(data)
            if platform.system() != "Windows":
                os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug("Config written to %s", path)

    # -- Validation ----------------------------------------------------------

    def credentials(self) -> Credentials:
        return Credentials(
            app_token=self.app_token,
            user_key=self.user_key,
            device_id=self.device_id,
            device_secret=self.device_secret,
        )

    def validate_send(self) -> None:
        """Raise unless the app token and user key are set."""
        self.credentials().ensure_send()

    def validate_receive(self) -> None:
        """Raise unless device credentials are set as well."""
        self.credentials().ensure_receive()

    @property
    def device_configured(self) -> bool:
        return bool(self.device_id and self.device_secret)

    def clone(self) -> Config:
        return dataclasses.replace(self)

    def clear_device(self) -> None:
        self.device_id = ""
        self.device_secret = ""
