from __future__ import annotations

import configparser
import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path

from .udp_listener import DEFAULT_PORT

logger = logging.getLogger(__name__)


@dataclass
class AppConfig:
    """
    Runtime configuration for Remote Log View.

    The config file lives in the per-user config location:
      macOS:   ~/Library/Application Support/<org>/<app>/config.ini
      Windows: %APPDATA%\\<org>\\<app>\\config.ini
      Linux:   ~/.config/<org>/<app>/config.ini

    Users may edit config.ini to change the listening port:
      [listener]
      port = 8085
    """
    config_path: Path
    listen_port: int
    app_version: str


def _user_app_dir(app_org: str, app_name: str) -> Path:
    """Return a writable per-user directory for app config."""
    if sys.platform == "darwin":
        base = Path.home() / "Library" / "Application Support"
    elif os.name == "nt":
        base = Path(os.environ.get("APPDATA", str(Path.home())))
    else:
        base = Path(os.environ.get("XDG_CONFIG_HOME", str(Path.home() / ".config")))
    return base / app_org / app_name


def _parse_port(raw: str) -> int:
    port = int(raw)
    if not (1 <= port <= 65535):
        raise ValueError("Port out of range")
    return port


def load_or_create_config(app_org: str, app_name: str, app_version: str) -> AppConfig:
    """
    Load config.ini if present; otherwise create it with defaults.

    An unreadable file or an invalid port falls back to the default port.
    Always ensures the current application version is written into the INI:
      [app]
      version = <app_version>
    """
    app_dir = _user_app_dir(app_org, app_name)
    cfg_path = app_dir / "config.ini"

    cp = configparser.ConfigParser()
    if cfg_path.exists():
        try:
            cp.read(cfg_path, encoding="utf-8")
        except (configparser.Error, UnicodeDecodeError) as e:
            # If parsing fails, fall back to defaults and overwrite below.
            logger.warning("Ignoring unreadable config %s: %s", cfg_path, e)
            cp = configparser.ConfigParser()

    if "listener" not in cp:
        cp["listener"] = {}
    if "app" not in cp:
        cp["app"] = {}

    raw_port = cp["listener"].get("port", "").strip()
    port = DEFAULT_PORT
    if raw_port:
        try:
            port = _parse_port(raw_port)
        except ValueError:
            logger.warning("Invalid port %r in %s, using %d", raw_port, cfg_path, DEFAULT_PORT)
    cp["listener"]["port"] = str(port)

    # version (always written)
    cp["app"]["version"] = str(app_version)

    try:
        app_dir.mkdir(parents=True, exist_ok=True)
        with open(cfg_path, "w", encoding="utf-8", newline="\n") as f:
            cp.write(f)
    except OSError as e:
        # Still usable with the values read above.
        logger.warning("Could not write config %s: %s", cfg_path, e)

    return AppConfig(config_path=cfg_path, listen_port=port, app_version=str(app_version))
