#!/usr/bin/env python3
"""
PufferPanel Automated Installer for Debian and Ubuntu
-----------------------------------------------------

This script installs PufferPanel from its official APT repository. It checks
for root privileges and a supported distribution, installs the required
dependencies, registers the PufferPanel repository and signing key, installs
the package, creates the first administrative user and enables the service.

Requirements:
  • Debian or Ubuntu (any release with /etc/os-release)
  • root privileges (run with sudo)
  • Internet connectivity

Features:
  • Nord-themed Rich console output with a Pyfiglet banner
  • Fail-fast pipeline: every step reports a result and the run stops at the
    first failure, leaving the host as the last completed step left it
  • Idempotent steps: the repository files are overwritten in place and an
    existing PufferPanel binary skips the package install
  • Hidden password entry with confirmation (prompt_toolkit)
  • Full log of every command in /var/log/pufferpanel_setup.log

Usage:
  sudo pufferpanel-setup

Version: 1.1.0
"""

import datetime
import gzip
import logging
import os
import shutil
import signal
import subprocess
import sys
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Tuple

try:
    import pyfiglet
    import requests
    from prompt_toolkit import prompt as pt_prompt
    from prompt_toolkit.styles import Style as PtStyle
    from rich import box
    from rich.console import Console
    from rich.logging import RichHandler
    from rich.markup import escape
    from rich.panel import Panel
    from rich.text import Text
    from rich.traceback import install as install_rich_traceback
except ImportError:
    print(
        "Required libraries not found. Please install them using:\n"
        "pip install rich pyfiglet prompt_toolkit requests"
    )
    sys.exit(1)

# Locals would include the admin password.
install_rich_traceback(show_locals=False)
console: Console = Console()
logger = logging.getLogger("pufferpanel_setup")

# ----------------------------------------------------------------
# Configuration & Constants
# ----------------------------------------------------------------
APP_NAME: str = "PufferPanel Setup"
VERSION: str = "1.1.0"
APP_SUBTITLE: str = "Automated Installer for Debian & Ubuntu"

LOG_FORMAT: str = "%(asctime)s | %(levelname)s | %(message)s"
DATE_FORMAT: str = "%Y-%m-%d %H:%M:%S"
APT_ENV: Dict[str, str] = {"DEBIAN_FRONTEND": "noninteractive"}


@dataclass
class InstallerConfig:
    """Hardcoded installer settings. There are no command line flags."""

    package_name: str = "pufferpanel"
    binary_name: str = "pufferpanel"
    service_name: str = "pufferpanel"

    # Repository
    repo_url: str = "https://repo.pufferpanel.com/v3/debian"
    repo_component: str = "main"
    gpg_key_url: str = "https://repo.pufferpanel.com/pufferpanel.gpg"
    gpg_key_path: str = "/etc/apt/keyrings/pufferpanel.gpg"
    source_list_path: str = "/etc/apt/sources.list.d/pufferpanel.list"

    # Host
    os_release_path: str = "/etc/os-release"
    supported_distros: Tuple[str, ...] = ("debian", "ubuntu")
    dependencies: List[str] = field(
        default_factory=lambda: [
            "curl",
            "wget",
            "gnupg",
            "apt-transport-https",
            "ca-certificates",
        ]
    )

    # Service
    web_port: int = 8080
    service_settle_seconds: float = 3.0

    # Operation settings
    command_timeout: int = 900  # seconds
    download_timeout: int = 60

    # Logging
    log_file: str = "/var/log/pufferpanel_setup.log"
    max_log_size: int = 10 * 1024 * 1024  # 10MB


class NordColors:
    POLAR_NIGHT_4: str = "#4C566A"
    SNOW_STORM_1: str = "#D8DEE9"
    SNOW_STORM_2: str = "#E5E9F0"
    FROST_1: str = "#8FBCBB"
    FROST_2: str = "#88C0D0"
    FROST_3: str = "#81A1C1"
    FROST_4: str = "#5E81AC"
    RED: str = "#BF616A"
    YELLOW: str = "#EBCB8B"
    GREEN: str = "#A3BE8C"
    PURPLE: str = "#B48EAD"

    @classmethod
    def get_frost_gradient(cls, steps: int = 4) -> List[str]:
        frosts = [cls.FROST_1, cls.FROST_2, cls.FROST_3, cls.FROST_4]
        return frosts[:steps]


# ----------------------------------------------------------------
# Custom Exceptions
# ----------------------------------------------------------------
class SetupError(Exception):
    """Base exception for installer errors. Every SetupError is fatal."""


class PermissionError(SetupError):
    """Raised when the installer is not running as root."""


class UnsupportedPlatformError(SetupError):
    """Raised when the host is not a Debian-family distribution."""


class PackageManagerError(SetupError):
    """Raised when apt-get fails to refresh or install packages."""


class RepositoryError(SetupError):
    """Raised when the PufferPanel repository cannot be registered."""


class ExternalCommandError(SetupError):
    """Raised when the pufferpanel CLI returns a non-zero exit code."""


class ServiceStartError(SetupError):
    """Raised when the pufferpanel service is not active after start."""


class ExecutionError(SetupError):
    """Raised when a command cannot be executed at all."""


# ----------------------------------------------------------------
# Logging and UI Helpers
# ----------------------------------------------------------------
class _EchoedRecordFilter(logging.Filter):
    """Keep records already printed by the print_* helpers off the console."""

    def filter(self, record: logging.LogRecord) -> bool:
        return not getattr(record, "echoed", False)


def rotate_log(log_file: str, max_size: int) -> Optional[str]:
    """
    Gzip the log file aside and truncate it once it grows past max_size.

    Returns:
        Path of the rotated archive, or None if no rotation happened.
    """
    if not os.path.exists(log_file) or os.path.getsize(log_file) <= max_size:
        return None
    ts = datetime.datetime.now().strftime("%Y%m%d%H%M%S")
    rotated = f"{log_file}.{ts}.gz"
    try:
        with open(log_file, "rb") as fin, gzip.open(rotated, "wb") as fout:
            shutil.copyfileobj(fin, fout)
        open(log_file, "w").close()
    except OSError as e:
        console.print(f"[bold {NordColors.YELLOW}]Failed to rotate log file: {escape(str(e))}[/]")
        return None
    return rotated


def setup_logging(log_file: str, max_size: int = 10 * 1024 * 1024) -> logging.Logger:
    """
    Configure logging with a Rich console handler and a file handler.

    The console handler shows warnings and errors that print_message has not
    already printed. Calling this more than once does not add duplicate
    handlers.
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    if not any(isinstance(h, RichHandler) for h in root.handlers):
        rich_handler = RichHandler(
            console=console, rich_tracebacks=True, show_path=False
        )
        rich_handler.setLevel(logging.WARNING)
        rich_handler.addFilter(_EchoedRecordFilter())
        root.addHandler(rich_handler)

    log_path = os.path.abspath(log_file)
    for h in root.handlers:
        if isinstance(h, logging.FileHandler) and h.baseFilename == log_path:
            return logger

    rotated = rotate_log(log_file, max_size)
    try:
        os.makedirs(os.path.dirname(log_path), exist_ok=True)
        file_handler = logging.FileHandler(log_path)
    except OSError as e:
        print_warning(f"Cannot write log file {log_file} ({e}); logging to console only.")
        return logger

    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    root.addHandler(file_handler)

    if rotated:
        logger.info("Rotated previous log to %s", rotated)
    logger.info("Logging initialized: %s", log_path)
    return logger


def create_header() -> Panel:
    term_width, _ = shutil.get_terminal_size((80, 24))
    font_to_use = "slant" if term_width >= 60 else "small"
    try:
        fig = pyfiglet.Figlet(font=font_to_use, width=min(term_width - 10, 120))
        ascii_art = fig.renderText(APP_NAME)
    except Exception:
        ascii_art = f"  {APP_NAME}  "
    ascii_lines = [line for line in ascii_art.splitlines() if line.strip()]
    colors = NordColors.get_frost_gradient(len(ascii_lines))
    combined_text = Text()
    for i, line in enumerate(ascii_lines):
        color = colors[i % len(colors)]
        combined_text.append(Text(line, style=f"bold {color}"))
        if i < len(ascii_lines) - 1:
            combined_text.append("\n")
    return Panel(
        combined_text,
        border_style=NordColors.FROST_1,
        padding=(1, 2),
        title=Text(f"v{VERSION}", style=f"bold {NordColors.SNOW_STORM_2}"),
        title_align="right",
        subtitle=Text(APP_SUBTITLE, style=f"bold {NordColors.SNOW_STORM_1}"),
        subtitle_align="center",
        box=box.ROUNDED,
    )


def print_message(
    text: str,
    style: str = NordColors.FROST_2,
    prefix: str = "•",
    level: int = logging.INFO,
) -> None:
    """Print a styled message to the console and log it."""
    console.print(f"[{style}]{prefix} {escape(text)}[/{style}]")
    logger.log(level, text, extra={"echoed": True})


def print_step(text: str) -> None:
    print_message(text, NordColors.FROST_2, "→")


def print_success(text: str) -> None:
    print_message(text, NordColors.GREEN, "✓")


def print_warning(text: str) -> None:
    print_message(text, NordColors.YELLOW, "⚠", logging.WARNING)


def print_error(text: str) -> None:
    print_message(text, NordColors.RED, "✗", logging.ERROR)


def print_section(title: str) -> None:
    console.print()
    console.print(f"[bold {NordColors.FROST_3}]{title}[/]")
    console.print(f"[{NordColors.FROST_3}]{'─' * len(title)}[/]")
    logger.info("--- %s ---", title)


def display_panel(title: str, message: str, style: str = NordColors.FROST_2) -> None:
    panel = Panel(
        message,
        title=title,
        border_style=style,
        padding=(1, 2),
        box=box.ROUNDED,
    )
    console.print(panel)


def get_prompt_style() -> PtStyle:
    return PtStyle.from_dict({"prompt": f"bold {NordColors.PURPLE}"})


# ----------------------------------------------------------------
# Command Execution
# ----------------------------------------------------------------
Runner = Callable[..., subprocess.CompletedProcess]


def run_command(
    cmd: Sequence[str],
    env: Optional[Dict[str, str]] = None,
    check: bool = False,
    capture_output: bool = True,
    timeout: int = 900,
    secrets: Sequence[str] = (),
) -> subprocess.CompletedProcess:
    """
    Execute a command and return the completed process.

    A non-zero exit status is returned to the caller unless check is set.
    Values listed in secrets are masked wherever the command is logged.

    Raises:
        ExecutionError: If the command is missing, times out, or fails with
            check set.
    """
    cmd = list(cmd)
    cmd_str = " ".join("****" if arg in secrets else arg for arg in cmd)
    logger.debug("Executing: %s", cmd_str)

    try:
        result = subprocess.run(
            cmd,
            env=dict(os.environ, **(env or {})),
            check=check,
            text=True,
            capture_output=capture_output,
            timeout=timeout,
        )
    except FileNotFoundError:
        raise ExecutionError(f"Command not found: {cmd[0]}")
    except subprocess.TimeoutExpired:
        raise ExecutionError(f"Command timed out after {timeout} seconds: {cmd_str}")
    except subprocess.CalledProcessError as e:
        error_msg = f"Command failed (code {e.returncode}): {cmd_str}"
        if e.stderr:
            error_msg += f"\nError: {e.stderr.strip()}"
        raise ExecutionError(error_msg)

    if result.stdout:
        logger.debug("stdout: %s", result.stdout.strip())
    if result.stderr:
        logger.debug("stderr: %s", result.stderr.strip())
    return result


# ----------------------------------------------------------------
# Host Collaborators
# ----------------------------------------------------------------
def read_os_release(path: str = "/etc/os-release") -> Dict[str, str]:
    """Parse an os-release file into a dict. A missing file yields {}."""
    os_info: Dict[str, str] = {}
    if not os.path.isfile(path):
        return os_info
    with open(path) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            k, v = line.split("=", 1)
            os_info[k] = v.strip().strip('"').strip("'")
    return os_info


@dataclass(frozen=True)
class HostEnvironment:
    """Facts about the host, captured once before the first step runs."""

    os_id: Optional[str]
    os_pretty_name: str
    os_codename: str
    is_root: bool

    @classmethod
    def detect(cls, os_release_path: str = "/etc/os-release") -> "HostEnvironment":
        os_info = read_os_release(os_release_path)
        os_id = os_info.get("ID")
        return cls(
            os_id=os_id.lower() if os_id else None,
            os_pretty_name=os_info.get("PRETTY_NAME", os_id or "unknown"),
            os_codename=os_info.get("VERSION_CODENAME", ""),
            is_root=os.geteuid() == 0,
        )


class PackageManager(Protocol):
    last_error: str

    def update(self) -> bool: ...

    def install_packages(self, names: Sequence[str]) -> bool: ...

    def is_package_installed(self, name: str) -> bool: ...

    def has_binary(self, name: str) -> bool: ...


class AptPackageManager:
    """apt-get and dpkg wrapper. Every operation reports success as a bool."""

    def __init__(self, runner: Runner = run_command, timeout: int = 900) -> None:
        self.runner = runner
        self.timeout = timeout
        self.last_error = ""

    def _apt(self, *args: str) -> bool:
        # Details go to the log file; the failing step reports last_error.
        self.last_error = ""
        try:
            result = self.runner(["apt-get", *args], env=APT_ENV, timeout=self.timeout)
        except ExecutionError as e:
            self.last_error = str(e)
            logger.debug("%s", e)
            return False
        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            self.last_error = stderr.splitlines()[-1] if stderr else f"exit code {result.returncode}"
            logger.debug(
                "apt-get %s failed (code %s): %s", args[0], result.returncode, stderr
            )
            return False
        return True

    def update(self) -> bool:
        return self._apt("update")

    def install_packages(self, names: Sequence[str]) -> bool:
        if not names:
            return True
        return self._apt("install", "-y", *names)

    def is_package_installed(self, name: str) -> bool:
        try:
            result = self.runner(["dpkg-query", "-W", "-f=${Status}", name])
        except ExecutionError:
            return False
        return result.returncode == 0 and result.stdout.strip() == "install ok installed"

    def has_binary(self, name: str) -> bool:
        return shutil.which(name) is not None


class ServiceManager(Protocol):
    def enable_and_start(self, name: str) -> bool: ...

    def is_active(self, name: str) -> bool: ...


class SystemdServiceManager:
    def __init__(self, runner: Runner = run_command) -> None:
        self.runner = runner

    def _systemctl(self, *args: str) -> bool:
        try:
            return self.runner(["systemctl", *args]).returncode == 0
        except ExecutionError as e:
            logger.debug("%s", e)
            return False

    def enable_and_start(self, name: str) -> bool:
        return self._systemctl("enable", "--now", name)

    def is_active(self, name: str) -> bool:
        return self._systemctl("is-active", "--quiet", name)


class HostNetwork:
    def __init__(self, runner: Runner = run_command) -> None:
        self.runner = runner

    def primary_address(self) -> str:
        """
        First IPv4 address reported by `hostname -I`, else the first IPv6
        address, or "" if there is none.
        """
        try:
            result = self.runner(["hostname", "-I"])
        except ExecutionError as e:
            logger.debug("Could not determine the host address: %s", e)
            return ""
        if result.returncode != 0:
            return ""
        addresses = result.stdout.split()
        for address in addresses:
            if ":" not in address:
                return address
        return addresses[0] if addresses else ""


class CredentialProvider(Protocol):
    def prompt_visible(self, label: str) -> str: ...

    def prompt_hidden(self, label: str) -> str: ...


class TerminalCredentialProvider:
    """Reads answers from the terminal; hidden prompts do not echo."""

    def prompt_visible(self, label: str) -> str:
        return pt_prompt(f"{label}: ", style=get_prompt_style()).strip()

    def prompt_hidden(self, label: str) -> str:
        return pt_prompt(f"{label}: ", is_password=True, style=get_prompt_style())


def fetch_url(url: str, timeout: int = 60) -> bytes:
    """Download url and return the body. Raises requests.RequestException."""
    logger.debug("Downloading %s", url)
    response = requests.get(url, timeout=timeout)
    response.raise_for_status()
    return response.content


# ----------------------------------------------------------------
# Install Context & Step Results
# ----------------------------------------------------------------
@dataclass
class InstallContext:
    """Everything a step may read or call. Steps touch no other process state."""

    config: InstallerConfig
    host: HostEnvironment
    packages: PackageManager
    services: ServiceManager
    credentials: CredentialProvider
    network: HostNetwork
    runner: Runner = run_command
    fetch: Callable[[str], bytes] = fetch_url
    sleep: Callable[[float], None] = time.sleep


class StepStatus(str, Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class StepResult:
    step: str
    status: StepStatus
    message: str = ""
    error: Optional[SetupError] = None

    @classmethod
    def success(cls, step: str, message: str = "") -> "StepResult":
        return cls(step, StepStatus.SUCCESS, message)

    @classmethod
    def skipped(cls, step: str, message: str = "") -> "StepResult":
        return cls(step, StepStatus.SKIPPED, message)

    @classmethod
    def failed(cls, step: str, error: SetupError) -> "StepResult":
        return cls(step, StepStatus.FAILED, str(error), error)

    @property
    def ok(self) -> bool:
        return self.status is not StepStatus.FAILED

    @property
    def error_kind(self) -> Optional[str]:
        return type(self.error).__name__ if self.error is not None else None


@dataclass
class PipelineResult:
    results: List[StepResult] = field(default_factory=list)

    @property
    def failure(self) -> Optional[StepResult]:
        for result in self.results:
            if not result.ok:
                return result
        return None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1

    @property
    def steps_run(self) -> List[str]:
        return [r.step for r in self.results]


# ----------------------------------------------------------------
# Installation Steps
# ----------------------------------------------------------------
def _package_failure(message: str, packages: PackageManager) -> str:
    detail = packages.last_error
    return f"{message}: {detail}" if detail else f"{message}."


def check_privileges(ctx: InstallContext) -> StepResult:
    """Reads ctx.host.is_root."""
    print_step("Checking for root privileges...")
    if not ctx.host.is_root:
        raise PermissionError("This script must be run as root. Please use 'sudo'.")
    print_success("Root privileges confirmed.")
    return StepResult.success("check_privileges")


def check_distro(ctx: InstallContext) -> StepResult:
    """Reads ctx.host.os_id, ctx.host.os_pretty_name and config.supported_distros."""
    print_step("Checking operating system compatibility...")
    host = ctx.host
    if host.os_id is None:
        raise UnsupportedPlatformError(
            "Cannot determine the operating system. "
            f"{ctx.config.os_release_path} could not be read or has no ID."
        )
    if host.os_id not in ctx.config.supported_distros:
        raise UnsupportedPlatformError(
            "This script is intended for Debian or Ubuntu systems only. "
            f"Detected OS: {host.os_id}"
        )
    print_success(f"Operating system is compatible ({host.os_pretty_name}).")
    return StepResult.success("check_distro", host.os_pretty_name)


def install_dependencies(ctx: InstallContext) -> StepResult:
    """Reads config.dependencies; calls ctx.packages."""
    deps = ctx.config.dependencies
    print_step("Updating package lists and installing required dependencies...")
    with console.status(f"[bold {NordColors.FROST_2}]Updating package lists...[/]"):
        if not ctx.packages.update():
            raise PackageManagerError(
                _package_failure("Failed to update package lists (apt-get update)", ctx.packages)
            )
    with console.status(f"[bold {NordColors.FROST_2}]Installing {', '.join(deps)}...[/]"):
        if not ctx.packages.install_packages(deps):
            raise PackageManagerError(
                _package_failure(f"Failed to install dependencies ({', '.join(deps)})", ctx.packages)
            )
    print_success("Dependencies installed.")
    return StepResult.success("install_dependencies")


def resolve_codename(ctx: InstallContext) -> str:
    """Distribution codename from os-release, falling back to `lsb_release -cs`."""
    if ctx.host.os_codename:
        return ctx.host.os_codename
    try:
        result = ctx.runner(["lsb_release", "-cs"])
    except ExecutionError as e:
        raise RepositoryError(f"Cannot determine the distribution codename: {e}")
    codename = result.stdout.strip() if result.returncode == 0 else ""
    if not codename:
        raise RepositoryError(
            "Cannot determine the distribution codename (lsb_release -cs)."
        )
    return codename


def source_list_entry(config: InstallerConfig, codename: str) -> str:
    return (
        f"deb [signed-by={config.gpg_key_path}] {config.repo_url} "
        f"{codename} {config.repo_component}\n"
    )


def register_repository(ctx: InstallContext) -> StepResult:
    """
    Write the PufferPanel signing key and source list, then refresh apt.

    Both files are overwritten with the same content on every run, so running
    the step again leaves the host unchanged.

    Reads config.gpg_key_url, config.gpg_key_path, config.source_list_path,
    config.repo_url and the host codename; calls ctx.fetch and ctx.packages.
    """
    cfg = ctx.config
    print_step("Setting up the PufferPanel repository...")
    codename = resolve_codename(ctx)

    print_step("Adding PufferPanel GPG key...")
    try:
        key = ctx.fetch(cfg.gpg_key_url)
    except requests.RequestException as e:
        raise RepositoryError(f"Failed to download the PufferPanel GPG key: {e}")
    if not key:
        raise RepositoryError(f"Empty GPG key downloaded from {cfg.gpg_key_url}")

    key_path = Path(cfg.gpg_key_path)
    source_path = Path(cfg.source_list_path)
    try:
        key_path.parent.mkdir(parents=True, exist_ok=True)
        key_path.write_bytes(key)
        print_step("Adding PufferPanel to repository sources...")
        source_path.parent.mkdir(parents=True, exist_ok=True)
        source_path.write_text(source_list_entry(cfg, codename), encoding="utf-8")
    except OSError as e:
        raise RepositoryError(f"Failed to write repository files: {e}")
    logger.info("Wrote %s and %s (suite %s)", key_path, source_path, codename)

    print_step("Updating package lists with the new repository...")
    with console.status(f"[bold {NordColors.FROST_2}]Updating package lists...[/]"):
        if not ctx.packages.update():
            raise RepositoryError(
                _package_failure(
                    "Failed to update package lists after adding the PufferPanel repository",
                    ctx.packages,
                )
            )
    print_success("PufferPanel repository has been configured.")
    return StepResult.success("register_repository", str(source_path))


def install_target_package(ctx: InstallContext) -> StepResult:
    """Reads config.binary_name and config.package_name; calls ctx.packages."""
    cfg = ctx.config
    if ctx.packages.has_binary(cfg.binary_name):
        print_warning("PufferPanel is already installed. Skipping installation.")
        return StepResult.skipped("install_target_package", "already installed")

    print_step("Installing PufferPanel...")
    with console.status(f"[bold {NordColors.FROST_2}]Installing {cfg.package_name}...[/]"):
        if not ctx.packages.install_packages([cfg.package_name]):
            raise PackageManagerError(
                _package_failure(f"Failed to install {cfg.package_name}", ctx.packages)
            )
    print_success("PufferPanel has been installed.")
    return StepResult.success("install_target_package")


def read_confirmed_password(credentials: CredentialProvider) -> str:
    # Unbounded; Ctrl-C is the only way out.
    while True:
        password = credentials.prompt_hidden("Enter a password for the admin account")
        confirmation = credentials.prompt_hidden("Confirm the password")
        if password == confirmation:
            return password
        print_warning("Passwords do not match. Please try again.")


def create_admin_account(ctx: InstallContext) -> StepResult:
    """
    Prompt for the first admin account and create it with `pufferpanel user add`.

    The credentials live only in this call; the password is masked in the
    command log. Reads config.binary_name; calls ctx.credentials and ctx.runner.
    """
    print_step("Creating the first administrative user for PufferPanel.")
    creds = ctx.credentials
    username = creds.prompt_visible("Enter a username for the admin account")
    email = creds.prompt_visible("Enter an email for the admin account")
    password = read_confirmed_password(creds)

    print_step(f"Adding user '{username}'...")
    cmd = [
        ctx.config.binary_name,
        "user",
        "add",
        "--name",
        username,
        "--email",
        email,
        "--password",
        password,
        "--admin",
    ]
    try:
        result = ctx.runner(cmd, timeout=ctx.config.command_timeout, secrets=[password])
    except ExecutionError as e:
        raise ExternalCommandError(f"Failed to create admin user '{username}': {e}")
    if result.returncode != 0:
        detail = (result.stderr or result.stdout or "").strip()
        raise ExternalCommandError(
            f"Failed to create admin user '{username}' "
            f"(exit code {result.returncode}): {detail}"
        )
    print_success(f"Admin user '{username}' created successfully.")
    return StepResult.success("create_admin_account", username)


def enable_and_start_service(ctx: InstallContext) -> StepResult:
    """Reads config.service_name and config.service_settle_seconds; calls ctx.services and ctx.sleep."""
    name = ctx.config.service_name
    print_step("Enabling and starting the PufferPanel service...")
    if not ctx.services.enable_and_start(name):
        raise ServiceStartError(
            f"Failed to enable the PufferPanel service. "
            f"Please check logs with 'journalctl -fu {name}'."
        )

    ctx.sleep(ctx.config.service_settle_seconds)

    if not ctx.services.is_active(name):
        raise ServiceStartError(
            "The PufferPanel service failed to start. "
            f"Please check logs with 'journalctl -fu {name}'."
        )
    print_success("PufferPanel service is active and running.")
    return StepResult.success("enable_and_start_service")


def access_url(ctx: InstallContext) -> str:
    address = ctx.network.primary_address() or "localhost"
    if ":" in address:
        address = f"[{address}]"
    return f"http://{address}:{ctx.config.web_port}"


def report_completion(ctx: InstallContext) -> StepResult:
    """Reads config.web_port and config.service_name; calls ctx.network."""
    url = access_url(ctx)
    port = ctx.config.web_port
    name = ctx.config.service_name
    cmd_style = f"bold {NordColors.FROST_1}"

    summary = "\n".join(
        [
            "You can now access your PufferPanel web interface at:",
            f"  [bold {NordColors.YELLOW}]{url}[/]",
            "",
            "Log in with the admin credentials you just created.",
            "",
            f"[bold {NordColors.YELLOW}]IMPORTANT:[/] If you cannot access the panel, "
            f"you may need to open port {port} in your firewall.",
            "If you are using 'ufw' (Uncomplicated Firewall), run:",
            f"  [{cmd_style}]sudo ufw allow {port}/tcp[/]",
            f"  [{cmd_style}]sudo ufw allow 22/tcp[/]   # keep SSH access!",
            f"  [{cmd_style}]sudo ufw enable[/]         # if not already enabled",
            "",
            f"View logs:      [{cmd_style}]journalctl -fu {name}[/]",
            f"Manage service: [{cmd_style}]systemctl "
            f"{escape('[status|stop|start|restart]')} {name}[/]",
        ]
    )
    display_panel(
        f"[bold {NordColors.GREEN}]PufferPanel Installation Complete![/]",
        summary,
        NordColors.FROST_1,
    )
    logger.info("Installation complete; panel URL %s", url)
    return StepResult.success("report_completion", url)


# ----------------------------------------------------------------
# Provisioning Sequencer
# ----------------------------------------------------------------
@dataclass(frozen=True)
class Step:
    name: str
    title: str
    run: Callable[[InstallContext], StepResult]


STEPS: List[Step] = [
    Step("check_privileges", "Pre-flight: Root Privileges", check_privileges),
    Step("check_distro", "Pre-flight: Operating System", check_distro),
    Step("install_dependencies", "Installing Dependencies", install_dependencies),
    Step("register_repository", "Configuring PufferPanel Repository", register_repository),
    Step("install_target_package", "Installing PufferPanel", install_target_package),
    Step("create_admin_account", "Creating Admin Account", create_admin_account),
    Step("enable_and_start_service", "Starting PufferPanel Service", enable_and_start_service),
    Step("report_completion", "Installation Summary", report_completion),
]


def run_pipeline(
    ctx: InstallContext, steps: Optional[Sequence[Step]] = None
) -> PipelineResult:
    """
    Run the steps in order, stopping at the first failure.

    A step that raises SetupError becomes a failed StepResult and no later
    step runs. Nothing that already happened is undone.
    """
    pipeline = PipelineResult()
    for step in STEPS if steps is None else steps:
        print_section(step.title)
        logger.info("Running step %s", step.name)
        try:
            result = step.run(ctx)
        except SetupError as e:
            logger.info("Step %s failed: %s", step.name, e)
            pipeline.results.append(StepResult.failed(step.name, e))
            break
        pipeline.results.append(result)
    return pipeline


def run_installer(ctx: InstallContext) -> int:
    """Show the banner, run every step and return the process exit code."""
    console.print(create_header())
    console.print(f"[bold {NordColors.FROST_2}]### PufferPanel Automated Installer ###[/]")
    logger.info("Starting %s v%s", APP_NAME, VERSION)

    pipeline = run_pipeline(ctx)
    failure = pipeline.failure
    if failure is not None:
        print_error(f"{failure.message} [{failure.step}]")
    return pipeline.exit_code


def build_default_context(config: Optional[InstallerConfig] = None) -> InstallContext:
    config = config or InstallerConfig()
    return InstallContext(
        config=config,
        host=HostEnvironment.detect(config.os_release_path),
        packages=AptPackageManager(timeout=config.command_timeout),
        services=SystemdServiceManager(),
        credentials=TerminalCredentialProvider(),
        network=HostNetwork(),
        fetch=lambda url: fetch_url(url, timeout=config.download_timeout),
    )


# ----------------------------------------------------------------
# Signal Handling & Main Entry Point
# ----------------------------------------------------------------
def signal_handler(sig: int, frame: Any) -> None:
    try:
        sig_name = signal.Signals(sig).name
    except ValueError:
        sig_name = str(sig)
    print_warning(f"Process terminated by {sig_name}")
    sys.exit(128 + sig)


def main() -> int:
    """
    Main entry point for the PufferPanel installer.

    Returns:
        int: Exit code (0 for success, non-zero for failure)
    """
    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGHUP, signal_handler)
    try:
        config = InstallerConfig()
        setup_logging(config.log_file, config.max_log_size)
        return run_installer(build_default_context(config))
    except KeyboardInterrupt:
        print_warning(
            "Installation interrupted by user. "
            "The system is left as it was after the last completed step."
        )
        return 130
    except EOFError:
        print_error("Input closed before the installation finished.")
        return 1
    except Exception as e:
        print_error(f"Unexpected error: {e}")
        console.print_exception()
        return 1


if __name__ == "__main__":
    sys.exit(main())
