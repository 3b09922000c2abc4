"""Ambient credentials from the local Docker configuration."""

import logging
import os
from pathlib import Path

from kiae.domain.credential.model.credential import Keychain, parse_docker_config

logger = logging.getLogger(__name__)


def docker_config_path() -> Path:
    """``$DOCKER_CONFIG/config.json``, else ``~/.docker/config.json``."""
    base = os.environ.get("DOCKER_CONFIG")
    if base:
        return Path(base).expanduser() / "config.json"
    return Path.home() / ".docker" / "config.json"


def load_ambient_keychain(path: Path | None = None) -> Keychain:
    """Read node-level credentials once.

    A missing or unreadable file yields an empty keychain.
    """
    path = path or docker_config_path()
    if not path.exists():
        return Keychain()
    try:
        return parse_docker_config(path.read_text())
    except (OSError, ValueError) as e:
        logger.warning("Ignoring unreadable docker config %s: %s", path, e)
        return Keychain()


class AmbientKeychain:
    """Node-level credentials used when workload secrets are missing or stale.

    The parsed file is cached and re-read only when its path or modification
    time changes, so a rotated config is picked up without a restart while a
    probe costs one ``stat`` at most.
    """

    def __init__(self, path: Path | None = None) -> None:
        self._path = path
        self._key: tuple[Path, int] | None = None
        self._keychain = Keychain()

    def __call__(self) -> Keychain:
        path = self._path or docker_config_path()
        try:
            key = (path, path.stat().st_mtime_ns)
        except OSError:
            self._key = None
            self._keychain = Keychain()
            return self._keychain
        if key != self._key:
            self._keychain = load_ambient_keychain(path)
            self._key = key
        return self._keychain
