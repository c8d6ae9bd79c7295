"""Server configuration.

ServerConfig is a frozen dataclass, immutable after creation,
IDE-autocompletable, no string-key dict lookups. The pipeline only reads it:
the authentication mode, whether TLS material is present, the optional local
directory, and where plugins come from.
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

from doorway.errors import ConfigurationError

PLUGIN_ENV = "DOORWAY_PLUGIN"
PLUGIN_PATH_ENV = "DOORWAY_PLUGIN_PATH"


class AuthType(StrEnum):
    """How clients authenticate."""

    PASSWORD = "password"
    NONE = "none"


def _default_data_dir() -> Path:
    base = os.environ.get("XDG_DATA_HOME") or os.path.join(os.path.expanduser("~"), ".local", "share")
    return Path(base) / "doorway"


def _split_paths(value: str | None) -> tuple[str, ...]:
    if not value:
        return ()
    return tuple(p for p in value.split(os.pathsep) if p.strip())


@dataclass(frozen=True, slots=True)
class ServerConfig:
    """Server configuration. Immutable after creation.

    All fields have sensible defaults. Override what you need::

        config = ServerConfig(auth=AuthType.PASSWORD, cert="/etc/doorway/cert.pem")
    """

    # Listener
    host: str = "127.0.0.1"
    port: int = 8080
    debug: bool = False
    log_level: str = "info"

    # Authentication
    auth: AuthType = AuthType.PASSWORD

    # TLS: when a certificate is configured, plain-HTTP requests are
    # redirected to HTTPS
    cert: str | None = None
    cert_key: str | None = None

    # Served at /local behind the authentication gate when set
    local_directory: str | Path | None = None

    # Plugins: explicit plugin sources, then directories searched for plugins
    plugin_paths: tuple[str, ...] = ()
    plugin_search_dirs: tuple[str, ...] = ()

    # Extra template directory searched before the packaged templates
    template_dir: str | Path | None = None

    # Heartbeat file lives in data_dir; one beat per interval at most
    data_dir: str | Path | None = None
    heartbeat_interval: float = 60.0

    def __post_init__(self) -> None:
        try:
            object.__setattr__(self, "auth", AuthType(self.auth))
        except ValueError:
            msg = f"auth must be one of {[a.value for a in AuthType]}, got {self.auth!r}"
            raise ConfigurationError(msg) from None
        if self.heartbeat_interval <= 0:
            msg = f"heartbeat_interval must be positive, got {self.heartbeat_interval!r}"
            raise ConfigurationError(msg)
        if self.cert_key and not self.cert:
            msg = "cert_key was given without cert"
            raise ConfigurationError(msg)

    @property
    def tls_enabled(self) -> bool:
        """True when TLS material is configured for the listener."""
        return bool(self.cert)

    @property
    def heartbeat_path(self) -> Path:
        """Where the heartbeat file is persisted."""
        base = Path(self.data_dir) if self.data_dir is not None else _default_data_dir()
        return base / "heartbeat"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides: object) -> "ServerConfig":
        """Build a config with plugin sources taken from the environment.

        ``DOORWAY_PLUGIN`` lists plugin sources and ``DOORWAY_PLUGIN_PATH``
        lists directories to search, both separated by ``os.pathsep``.
        Explicit *overrides* win over the environment.
        """
        env = os.environ if environ is None else environ
        values: dict[str, object] = {
            "plugin_paths": _split_paths(env.get(PLUGIN_ENV)),
            "plugin_search_dirs": _split_paths(env.get(PLUGIN_PATH_ENV)),
        }
        values.update(overrides)
        return cls(**values)  # type: ignore[arg-type]
