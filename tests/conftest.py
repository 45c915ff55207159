import logging
import subprocess
from typing import Dict, List, Optional, Sequence, Tuple

import pytest
from rich.logging import RichHandler

import pufferpanel_setup as setup


class FakePackageManager:
    def __init__(
        self,
        binaries: Sequence[str] = (),
        update_ok: bool = True,
        install_ok: bool = True,
        last_error: str = "",
    ):
        self.binaries = set(binaries)
        self.update_ok = update_ok
        self.install_ok = install_ok
        self.last_error = last_error
        self.calls: List[Tuple] = []

    def update(self) -> bool:
        self.calls.append(("update",))
        return self.update_ok

    def install_packages(self, names) -> bool:
        self.calls.append(("install", tuple(names)))
        return self.install_ok

    def is_package_installed(self, name: str) -> bool:
        return name in self.binaries

    def has_binary(self, name: str) -> bool:
        return name in self.binaries


class FakeServiceManager:
    def __init__(self, enable_ok: bool = True, active: bool = True):
        self.enable_ok = enable_ok
        self.active = active
        self.calls: List[Tuple[str, str]] = []

    def enable_and_start(self, name: str) -> bool:
        self.calls.append(("enable_and_start", name))
        return self.enable_ok

    def is_active(self, name: str) -> bool:
        self.calls.append(("is_active", name))
        return self.active


class ScriptedCredentials:
    """Answers prompts from fixed lists instead of the terminal."""

    def __init__(self, visible: Sequence[str] = (), hidden: Sequence[str] = ()):
        self.visible = list(visible)
        self.hidden = list(hidden)
        self.prompts: List[Tuple[str, str]] = []

    def prompt_visible(self, label: str) -> str:
        self.prompts.append(("visible", label))
        return self.visible.pop(0)

    def prompt_hidden(self, label: str) -> str:
        self.prompts.append(("hidden", label))
        return self.hidden.pop(0)


class FakeNetwork:
    def __init__(self, address: str = "10.0.0.5"):
        self.address = address

    def primary_address(self) -> str:
        return self.address


class RecordingRunner:
    """Stands in for run_command; answers by command prefix."""

    def __init__(self, responses: Optional[Dict[Tuple[str, ...], Tuple[int, str, str]]] = None):
        self.responses = responses or {}
        self.calls: List[Tuple[List[str], dict]] = []

    def __call__(self, cmd, **kwargs) -> subprocess.CompletedProcess:
        cmd = list(cmd)
        self.calls.append((cmd, kwargs))
        for prefix, (code, out, err) in self.responses.items():
            if tuple(cmd[: len(prefix)]) == prefix:
                return subprocess.CompletedProcess(cmd, code, out, err)
        return subprocess.CompletedProcess(cmd, 0, "", "")

    @property
    def commands(self) -> List[List[str]]:
        return [cmd for cmd, _ in self.calls]


class RecordingFetch:
    def __init__(self, content: bytes = b"-----PUFFERPANEL KEY-----\n"):
        self.content = content
        self.urls: List[str] = []

    def __call__(self, url: str) -> bytes:
        self.urls.append(url)
        return self.content


@pytest.fixture
def clean_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for handler in list(root.handlers):
        if handler not in handlers and isinstance(handler, (RichHandler, logging.FileHandler)):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


@pytest.fixture(autouse=True)
def wide_console(monkeypatch):
    # Keep long lines from wrapping in captured output.
    monkeypatch.setattr(setup.console, "width", 200)


@pytest.fixture
def config(tmp_path) -> setup.InstallerConfig:
    return setup.InstallerConfig(
        gpg_key_path=str(tmp_path / "etc/apt/keyrings/pufferpanel.gpg"),
        source_list_path=str(tmp_path / "etc/apt/sources.list.d/pufferpanel.list"),
        os_release_path=str(tmp_path / "etc/os-release"),
        log_file=str(tmp_path / "var/log/pufferpanel_setup.log"),
    )


@pytest.fixture
def make_context(config):
    def _make(**overrides) -> setup.InstallContext:
        host = setup.HostEnvironment(
            os_id=overrides.pop("os_id", "ubuntu"),
            os_pretty_name=overrides.pop("os_pretty_name", "Ubuntu 24.04.1 LTS"),
            os_codename=overrides.pop("os_codename", "noble"),
            is_root=overrides.pop("is_root", True),
        )
        sleeps: List[float] = []
        fields = dict(
            config=config,
            host=host,
            packages=FakePackageManager(),
            services=FakeServiceManager(),
            credentials=ScriptedCredentials(
                visible=["admin", "admin@example.com"],
                hidden=["secret1", "secret1"],
            ),
            network=FakeNetwork(),
            runner=RecordingRunner(),
            fetch=RecordingFetch(),
            sleep=sleeps.append,
        )
        fields.update(overrides)
        return setup.InstallContext(**fields)

    return _make
