"""Tests for browser executable resolution."""

from __future__ import annotations

import pytest

from govwatch.core.backends.executable import (
    DEFAULT_SERVERLESS_CHROMIUM,
    LOCAL_ARGS,
    find_local_chrome,
    is_serverless,
    resolve_browser_executable,
)
from govwatch.core.config.store import ConfigurationError


def only(*paths):
    return lambda path: path in paths


class TestServerless:
    @pytest.mark.parametrize(
        "env,expected",
        [
            ({"VERCEL": "1"}, True),
            ({"AWS_LAMBDA_FUNCTION_NAME": "scraper"}, True),
            ({"VERCEL": ""}, False),
            ({}, False),
        ],
    )
    def test_detection(self, env, expected):
        assert is_serverless(env) is expected

    def test_bundled_chromium(self):
        executable = resolve_browser_executable({"VERCEL": "1"}, platform="linux")
        assert executable.serverless
        assert executable.path == DEFAULT_SERVERLESS_CHROMIUM
        assert "--single-process" in executable.args

    def test_chromium_path_override(self):
        env = {"AWS_LAMBDA_FUNCTION_NAME": "scraper", "CHROMIUM_PATH": "/opt/chromium"}
        assert resolve_browser_executable(env).path == "/opt/chromium"


class TestLocalChrome:
    def test_chrome_path_wins(self):
        path = find_local_chrome({"CHROME_PATH": "/custom/chrome"}, platform="linux", exists=only())
        assert path == "/custom/chrome"

    def test_linux_probe_order(self):
        path = find_local_chrome({}, platform="linux", exists=only("/usr/bin/chromium"))
        assert path == "/usr/bin/chromium"

    def test_windows_localappdata(self):
        local = "C:\\Users\\ana\\AppData\\Local"
        expected = local + "\\Google\\Chrome\\Application\\chrome.exe"
        path = find_local_chrome({"LOCALAPPDATA": local}, platform="win32", exists=only(expected))
        assert path == expected

    def test_local_args(self):
        executable = resolve_browser_executable({}, platform="darwin", exists=lambda path: True)
        assert not executable.serverless
        assert executable.path.startswith("/Applications/")
        assert executable.args == LOCAL_ARGS

    def test_nothing_installed(self):
        with pytest.raises(ConfigurationError) as excinfo:
            resolve_browser_executable({}, platform="linux", exists=only())
        assert "CHROME_PATH" in str(excinfo.value)
        assert excinfo.value.source == "seace"
