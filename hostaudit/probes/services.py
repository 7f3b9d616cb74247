"""
Services Probe for hostaudit
Running services, systemd units, init.d scripts, xinetd and service
configuration files
"""

import os
import re
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from hostaudit.utils.system import (
    can_read,
    can_write,
    cmd_exists,
    list_unit_files,
    run_capture,
    safe_read,
    unit_fragment_path,
    writable_files,
)

METADATA = {
    "name": "services",
    "description": "Root services, writable units, init scripts and service configs",
}

ROOT_PROCESS_LIMIT = 30
INTERESTING_SERVICES = (
    "mysql", "mysqld", "postgres", "apache2", "httpd", "nginx",
    "redis", "mongod", "elasticsearch", "tomcat", "jenkins",
    "docker", "containerd",
)
SCREEN_DIR = "/var/run/screen"
INITD_DIR = "/etc/init.d"
XINETD_DIR = "/etc/xinetd.d"
SERVICE_CONFIGS = (
    "/etc/apache2", "/etc/nginx", "/etc/mysql", "/etc/postgresql",
    "/etc/redis", "/etc/mongod.conf", "/etc/elasticsearch",
    "/etc/tomcat", "/etc/php",
)
SERVICE_CONFIG_SAMPLE = 5

# ExecStart may carry systemd's "-@+!:" prefixes before the path
EXEC_START = re.compile(r"^\s*ExecStart=[-@+!:]*(\S+)", re.MULTILINE)


def run(context) -> None:
    """Run service enumeration."""
    steps = (
        lambda: check_processes(context, list_processes()),
        lambda: check_screen_sessions(context),
        lambda: check_systemd_units(context),
        lambda: check_initd_scripts(context),
        lambda: check_xinetd(context),
        lambda: check_service_configs(context),
    )
    for step in steps:
        if context.stop_requested:
            return
        step()


def list_processes() -> List[Tuple[str, str]]:
    """(user, executable) for every process visible to `ps`."""
    output = run_capture(["ps", "-eo", "user:32=,args="]) or ""
    processes = []
    for line in output.splitlines():
        fields = line.split(None, 2)
        if len(fields) >= 2:
            processes.append((fields[0], fields[1]))
    return processes


def check_processes(context, processes: List[Tuple[str, str]]) -> None:
    root_commands = sorted({command for user, command in processes if user == "root"})[:ROOT_PROCESS_LIMIT]
    if root_commands:
        context.emit("INFO", "root_processes", f"Processes running as root: {', '.join(root_commands)}")

    for service in INTERESTING_SERVICES:
        owners = [user for user, command in processes if service in os.path.basename(command).lower()]
        if not owners:
            continue
        running_user = owners[0]
        if running_user == "root":
            context.register(
                "MEDIUM",
                "service_as_root",
                f"{service} running as root",
                "Service should run as dedicated low-privilege user",
            )
        context.emit("INFO", "service_running", f"{service} is running (user: {running_user})")


def check_screen_sessions(context, screen_dir: str = SCREEN_DIR) -> None:
    if os.path.isdir(screen_dir) and can_read(screen_dir):
        context.emit(
            "LOW",
            "screen_sessions",
            "Screen session directories found",
            "Check for accessible sessions that might give shell access",
        )


def check_systemd_units(context) -> None:
    if not cmd_exists("systemctl"):
        context.emit("INFO", "no_systemd", "systemctl not available")
        return
    check_service_units(context, {unit: unit_fragment_path(unit) for unit in list_unit_files("service", "enabled")})


def exec_start_binary(unit_text: str) -> Optional[str]:
    match = EXEC_START.search(unit_text)
    return match.group(1) if match else None


def check_service_units(context, unit_paths: Dict[str, Optional[str]]) -> None:
    for unit, path in unit_paths.items():
        if not path or not os.path.isfile(path):
            continue

        if can_write(path):
            context.register(
                "CRITICAL",
                "writable_systemd_unit",
                f"Writable systemd service: {path}",
                "Modify ExecStart to execute escalation payload on restart",
            )

        binary = exec_start_binary(safe_read(path) or "")
        if binary and os.path.isfile(binary) and can_write(binary):
            context.register(
                "CRITICAL",
                "writable_service_binary",
                f"Writable service binary: {binary} (used by {unit})",
                "Replace binary with escalation payload",
            )


def check_initd_scripts(context, initd_dir: str = INITD_DIR) -> None:
    for script in writable_files(initd_dir):
        context.register(
            "HIGH",
            "writable_initd",
            f"Writable init.d script: {script}",
            "Add malicious commands to execute on service start/restart",
        )


def check_xinetd(context, xinetd_dir: str = XINETD_DIR) -> None:
    if not os.path.isdir(xinetd_dir):
        return
    try:
        configs = sorted(os.listdir(xinetd_dir))
    except OSError:
        return
    if not configs:
        return

    context.emit("INFO", "xinetd_found", f"Xinetd configs found: {', '.join(configs)}")
    writable = writable_files(xinetd_dir)
    if writable:
        context.register(
            "HIGH",
            "writable_xinetd",
            f"Writable xinetd config: {', '.join(str(p) for p in writable)}",
            "Modify to redirect service execution",
        )


def check_service_configs(context, config_paths=SERVICE_CONFIGS) -> None:
    for config in config_paths:
        path = Path(config)
        if not path.exists():
            continue
        context.emit("INFO", "service_config", f"Service config found: {config}")

        if path.is_dir():
            writable = writable_files(path, limit=SERVICE_CONFIG_SAMPLE)
            if writable:
                context.register(
                    "HIGH",
                    "writable_service_config",
                    f"Writable service config in {config}: {', '.join(str(p) for p in writable)}",
                    "Modify config to enable RCE or change service behavior",
                )
        elif path.is_file() and can_write(path):
            context.register(
                "HIGH",
                "writable_service_config",
                f"Writable service config: {config}",
                "Modify config to enable RCE or change service behavior",
            )
