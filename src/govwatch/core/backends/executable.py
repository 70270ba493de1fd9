"""
Browser executable resolution.

Serverless hosts ship a bundled chromium; developer machines use an
installed Chrome found through ``CHROME_PATH`` or the usual install
locations of each platform.
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from typing import Callable, Mapping

from ..config.store import ConfigurationError

SERVERLESS_ENV_VARS = ("VERCEL", "AWS_LAMBDA_FUNCTION_NAME")
DEFAULT_SERVERLESS_CHROMIUM = "/tmp/chromium"

SERVERLESS_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--no-first-run",
    "--no-zygote",
    "--single-process",
    "--disable-web-security",
    "--disable-features=IsolateOrigins,site-per-process",
    "--disable-site-isolation-trials",
]

LOCAL_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
]

MAC_PATHS = [
    "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
    "/Applications/Chromium.app/Contents/MacOS/Chromium",
]

LINUX_PATHS = [
    "/usr/bin/google-chrome",
    "/usr/bin/chromium-browser",
    "/usr/bin/chromium",
]


@dataclass
class BrowserExecutable:
    """Where the browser binary lives and how to launch it."""

    path: str
    args: list[str] = field(default_factory=list)
    serverless: bool = False


def is_serverless(env: Mapping[str, str] | None = None) -> bool:
    env = os.environ if env is None else env
    return any(env.get(name) for name in SERVERLESS_ENV_VARS)


def _windows_paths(env: Mapping[str, str]) -> list[str]:
    suffix = "\\Google\\Chrome\\Application\\chrome.exe"
    paths = [
        "C:\\Program Files\\Google\\Chrome\\Application\\chrome.exe",
        "C:\\Program Files (x86)\\Google\\Chrome\\Application\\chrome.exe",
    ]
    for var in ("LOCALAPPDATA", "PROGRAMFILES", "PROGRAMFILES(X86)"):
        if env.get(var):
            paths.append(env[var] + suffix)
    return paths


def find_local_chrome(
    env: Mapping[str, str] | None = None,
    platform: str | None = None,
    exists: Callable[[str], bool] = os.path.exists,
) -> str | None:
    """Locate an installed Chrome/Chromium.

    ``CHROME_PATH`` wins; otherwise the platform's install paths are probed.
    """
    env = os.environ if env is None else env
    platform = platform or sys.platform

    if env.get("CHROME_PATH"):
        return env["CHROME_PATH"]

    if platform.startswith("win"):
        candidates = _windows_paths(env)
    elif platform == "darwin":
        candidates = MAC_PATHS
    elif platform.startswith("linux"):
        candidates = LINUX_PATHS
    else:
        candidates = []

    for path in candidates:
        if exists(path):
            return path
    return None


def resolve_browser_executable(
    env: Mapping[str, str] | None = None,
    platform: str | None = None,
    exists: Callable[[str], bool] = os.path.exists,
) -> BrowserExecutable:
    """Resolve the browser binary for the current environment.

    Raises:
        ConfigurationError: If no local browser is installed
    """
    env = os.environ if env is None else env

    if is_serverless(env):
        return BrowserExecutable(
            path=env.get("CHROMIUM_PATH") or DEFAULT_SERVERLESS_CHROMIUM,
            args=list(SERVERLESS_ARGS),
            serverless=True,
        )

    path = find_local_chrome(env, platform=platform, exists=exists)
    if not path:
        raise ConfigurationError(
            "No se encontró Chrome instalado. Por favor instale Google Chrome "
            "o configure la variable de entorno CHROME_PATH.",
            source="seace",
        )
    return BrowserExecutable(path=path, args=list(LOCAL_ARGS))
