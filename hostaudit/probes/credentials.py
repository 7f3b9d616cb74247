"""
Credentials Probe for hostaudit
SSH keys and agents, shell histories, configuration files, .env files,
cloud tokens and password stores
"""

import os
import re
from pathlib import Path
from typing import List

from hostaudit.utils.system import can_read, find_files, run_capture, safe_read

METADATA = {
    "name": "credentials",
    "description": "SSH keys, history files, config secrets and cloud tokens",
}

KEY_NAMES = ("id_rsa", "id_dsa", "id_ecdsa", "id_ed25519")
KEY_SUFFIXES = (".pem", ".key")

HISTORY_FILES = (
    ".bash_history", ".zsh_history", ".sh_history",
    ".mysql_history", ".psql_history", ".python_history",
    ".node_repl_history", ".lesshst", ".viminfo",
)
HISTORY_PATTERN = re.compile(
    r"(password|passwd|pass=|pwd=|secret|token|api.?key|mysql.*-p|sshpass|curl.*-u)",
    re.IGNORECASE,
)
HISTORY_SAMPLE_LINES = 3

CONFIG_SEARCH_PATHS = ("/etc", "/opt", "/var/www", "/home", "/srv", "/usr/local")
CONFIG_SUFFIXES = (".conf", ".cfg", ".ini", ".yml", ".yaml", ".xml", ".properties", ".json")
CONFIG_NAMES = ("wp-config.php",)
CONFIG_PATTERN = re.compile(r"(password|passwd|pass|secret|token|api_key|db_pass|credential)", re.IGNORECASE)
CONFIG_FILES_PER_PATH = 30
CONFIG_READ_LIMIT = 65536

ENV_FILE_LIMIT = 15
ENV_SEARCH_TIMEOUT = 120.0

CLOUD_CREDENTIALS = (
    ".aws/credentials", ".aws/config",
    ".azure/accessTokens.json", ".azure/azureProfile.json",
    ".config/gcloud/credentials.db",
    ".config/gcloud/application_default_credentials.json",
    ".kube/config",
    ".docker/config.json",
)

PASSWORD_STORES = (".gnupg", ".password-store", ".local/share/keyrings")


def key_locations():
    return [Path.home() / ".ssh", Path("/root/.ssh"), Path("/etc/ssh"), Path("/tmp"), Path("/opt"), Path("/var")]


def run(context) -> None:
    """Run credential enumeration."""
    seen = set()
    for location in key_locations():
        if context.stop_requested:
            return
        for key in find_files(location, names=KEY_NAMES, suffixes=KEY_SUFFIXES):
            if key in seen:
                continue
            seen.add(key)
            check_private_key(context, key)

    check_ssh_agent(context, os.environ.get("SSH_AUTH_SOCK"))

    home = Path.home()
    steps = (
        lambda: check_authorized_keys(context),
        lambda: check_history_files(context, home),
        lambda: check_config_files(context),
        lambda: check_env_files(context, find_env_files()),
        lambda: check_cloud_credentials(context, home),
        lambda: check_password_stores(context, home),
    )
    for step in steps:
        if context.stop_requested:
            return
        step()


def is_private_key(text: str) -> bool:
    return "PRIVATE KEY" in text


def check_private_key(context, key_path) -> None:
    header = safe_read(key_path, limit=4096)
    if header is None or not is_private_key(header):
        return

    encrypted = "ENCRYPTED" in header.upper()
    context.register(
        "MEDIUM" if encrypted else "HIGH",
        "ssh_private_key",
        f"Private key found: {key_path} (encrypted: {'yes' if encrypted else 'no'})",
        "Use key for SSH lateral movement",
    )


def check_ssh_agent(context, socket_path) -> None:
    if socket_path:
        context.register(
            "MEDIUM",
            "ssh_agent",
            f"SSH agent socket: {socket_path}",
            "Agent forwarding active - potential for key hijacking",
        )


def check_authorized_keys(context, home_root="/home") -> None:
    for path in find_files(home_root, names=("authorized_keys",), max_depth=3):
        text = safe_read(path) or ""
        count = sum(1 for line in text.splitlines() if line.strip() and not line.lstrip().startswith("#"))
        context.emit("INFO", "authorized_keys", f"authorized_keys: {path} ({count} keys)")


def credential_lines(text: str) -> List[str]:
    """Numbered history lines that look like they carry a secret."""
    return [
        f"{number}:{line.strip()}"
        for number, line in enumerate(text.splitlines(), start=1)
        if HISTORY_PATTERN.search(line)
    ]


def check_history_files(context, home) -> None:
    for name in HISTORY_FILES:
        path = Path(home) / name
        if not path.is_file() or not can_read(path):
            continue

        matches = credential_lines(safe_read(path) or "")
        if matches:
            context.register(
                "HIGH",
                "history_credentials",
                f"Credentials in {path}: {' | '.join(matches[:HISTORY_SAMPLE_LINES])}",
                "Extract and test discovered credentials",
            )
        else:
            context.emit("INFO", "history_file", f"History file readable: {path}")


def check_config_files(context, search_paths=CONFIG_SEARCH_PATHS) -> None:
    for root in search_paths:
        if context.stop_requested:
            return
        candidates = find_files(root, names=CONFIG_NAMES, suffixes=CONFIG_SUFFIXES, max_depth=4)
        for path in candidates[:CONFIG_FILES_PER_PATH]:
            if CONFIG_PATTERN.search(safe_read(path, limit=CONFIG_READ_LIMIT) or ""):
                context.register(
                    "HIGH",
                    "config_credentials",
                    f"Potential creds in {path}",
                    "Review file for plaintext credentials",
                )


def find_env_files() -> List[str]:
    output = run_capture(
        ["find", "/", "-maxdepth", "5", "-name", ".env", "-type", "f", "-readable",
         "!", "-path", "/proc/*", "!", "-path", "/sys/*"],
        timeout=ENV_SEARCH_TIMEOUT,
    )
    if not output:
        return []
    return [line.strip() for line in output.splitlines() if line.strip()][:ENV_FILE_LIMIT]


def check_env_files(context, paths: List[str]) -> None:
    for path in paths:
        context.register(
            "HIGH",
            "env_file",
            f".env file found: {path}",
            "Often contains database credentials, API keys, and secrets",
        )


def check_cloud_credentials(context, home) -> None:
    for relative in CLOUD_CREDENTIALS:
        path = Path(home) / relative
        if path.is_file() and can_read(path):
            context.register(
                "HIGH",
                "cloud_credentials",
                f"Cloud credential file: {path}",
                "Extract credentials for cloud service access",
            )


def check_password_stores(context, home) -> None:
    for relative in PASSWORD_STORES:
        path = Path(home) / relative
        if path.is_dir() and can_read(path):
            context.emit(
                "LOW",
                "password_store",
                f"Password store directory: {path}",
                "May contain encrypted credentials",
            )
