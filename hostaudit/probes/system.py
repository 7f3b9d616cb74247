"""
System Probe for hostaudit
Kernel version, accounts and groups, sudo configuration, environment,
scheduled jobs and PATH analysis
"""

import getpass
import os
import platform
import re
import stat
from typing import Dict, List, Optional

from hostaudit.utils.system import (
    can_read,
    can_write,
    cmd_exists,
    current_groups,
    list_unit_files,
    run_capture,
    run_status,
    safe_read,
    unit_fragment_path,
    writable_files,
)

METADATA = {
    "name": "system",
    "description": "Kernel exploits, accounts, sudo rules, cron jobs and PATH",
}

PASSWD_PATH = "/etc/passwd"
SHADOW_PATH = "/etc/shadow"
SUDOERS_PATH = "/etc/sudoers"
SUDOERS_DIR = "/etc/sudoers.d"
SUDO_ALL_PATTERN = re.compile(r"\(ALL.*ALL\)")
SUDO_LIST_LINES = 20

# group -> severity of membership
INTERESTING_GROUPS = {
    "docker": "HIGH",
    "lxd": "HIGH",
    "disk": "HIGH",
    "root": "HIGH",
    "adm": "MEDIUM",
    "video": "MEDIUM",
    "shadow": "MEDIUM",
    "staff": "MEDIUM",
    "sudo": "MEDIUM",
    "wheel": "MEDIUM",
}

DANGEROUS_ENV_KEEP = re.compile(r"LD_PRELOAD|LD_LIBRARY_PATH|PYTHONPATH|PERL5LIB", re.IGNORECASE)

# Crontabs whose entries carry a user column before the command
SYSTEM_CRONTABS = ("/etc/crontab", "/etc/cron.d")
USER_CRONTABS = ("/var/spool/cron", "/var/spool/cron/crontabs")
CRON_DIRS = ("/etc/cron.hourly", "/etc/cron.daily", "/etc/cron.weekly", "/etc/cron.monthly")


def run(context) -> None:
    """Run system enumeration."""
    check_kernel(context)
    steps = (
        check_current_user,
        check_root_users,
        check_empty_passwords,
        check_sudo_rules,
        check_sudoers_files,
        check_environment,
        check_cron,
        check_systemd_timers,
        check_path,
    )
    for step in steps:
        if context.stop_requested:
            return
        step(context)


def check_kernel(context, kernel_version: str = None) -> None:
    kernel_version = kernel_version or platform.release()
    context.emit("INFO", "kernel_version", f"Kernel: {kernel_version}")

    exploits = context.knowledge_base.match_kernel_version(kernel_version)
    if not exploits:
        context.emit("INFO", "kernel_safe", f"No known kernel exploits matched for {kernel_version}")
        return

    for exploit in exploits:
        context.register(
            exploit.severity,
            "kernel_exploit",
            f"{exploit.identifier} ({exploit.name}): {exploit.description} [Affected: {exploit.affected_range}]",
            f"Research {exploit.identifier} for proof-of-concept exploits",
        )


def check_current_user(context, user: str = None, uid: int = None, groups: List[str] = None) -> None:
    uid = os.geteuid() if uid is None else uid
    if not user:
        try:
            user = getpass.getuser()
        except (KeyError, OSError):
            user = str(uid)
    groups = current_groups() if groups is None else groups
    context.emit("INFO", "current_user", f"Running as: {user} (UID: {uid}) Groups: {' '.join(groups)}")

    for group in groups:
        severity = INTERESTING_GROUPS.get(group)
        if severity:
            context.register(
                severity,
                "interesting_group",
                f"Current user is member of '{group}' group",
                f"Group '{group}' may allow privilege escalation",
            )


def uid0_accounts(passwd_text: str):
    accounts = []
    for line in passwd_text.splitlines():
        fields = line.split(":")
        if len(fields) >= 3 and fields[2].strip() == "0":
            accounts.append(fields[0])
    return accounts


def check_root_users(context, passwd_path: str = PASSWD_PATH) -> None:
    passwd_text = safe_read(passwd_path)
    if passwd_text is None:
        context.logger.debug(f"Cannot read {passwd_path}")
        return

    accounts = uid0_accounts(passwd_text)
    if len(accounts) > 1:
        context.register(
            "HIGH",
            "multiple_root_users",
            f"Multiple UID 0 users: {', '.join(accounts)}",
            "Investigate non-root accounts with UID 0 - potential backdoor",
        )


def empty_password_accounts(shadow_text: str) -> List[str]:
    """Accounts whose shadow password field is empty."""
    accounts = []
    for line in shadow_text.splitlines():
        fields = line.split(":")
        if len(fields) >= 2 and fields[0] and fields[1] == "":
            accounts.append(fields[0])
    return accounts


def check_empty_passwords(context, shadow_path: str = SHADOW_PATH) -> None:
    if not can_read(shadow_path):
        return
    accounts = empty_password_accounts(safe_read(shadow_path) or "")
    if accounts:
        context.register(
            "CRITICAL",
            "empty_password",
            f"Users with empty/no password: {', '.join(accounts)}",
            "su to these accounts without a password",
        )


def nopasswd_rules(sudo_list: str):
    return [line.strip() for line in sudo_list.splitlines() if "nopasswd" in line.lower()]


def env_keep_lines(sudo_list: str) -> List[str]:
    return [line.strip() for line in sudo_list.splitlines() if "env_keep" in line]


def check_sudo_rules(context) -> None:
    if not cmd_exists("sudo"):
        context.emit("INFO", "no_sudo", "sudo not installed")
        return

    returncode, sudo_list = run_status(["sudo", "-n", "-l"])
    if returncode != 0 or not sudo_list.strip():
        context.emit("INFO", "sudo_denied", "Cannot list sudo privileges (password required or denied)")
        return

    for rule in nopasswd_rules(sudo_list):
        binary = rule.split()[-1] if rule.split() else ""
        techniques = context.knowledge_base.match_binary(binary, context="sudo")
        hint = techniques[0].command_hint if techniques else f"Check GTFOBins for {binary}"
        context.register("CRITICAL", "sudo_nopasswd", f"NOPASSWD sudo: {rule}", hint)

    lines = sudo_list.splitlines()
    if any(SUDO_ALL_PATTERN.search(line) for line in lines):
        context.register(
            "CRITICAL",
            "sudo_all",
            "User can sudo ALL commands (may require password)",
            "Use 'sudo su' or 'sudo bash' if password is known",
        )

    if "*" in sudo_list:
        context.register(
            "HIGH",
            "sudo_wildcard",
            "Wildcard (*) found in sudo rules - potential bypass",
            "Research wildcard abuse techniques for the specific binary",
        )

    dangerous = [line for line in env_keep_lines(sudo_list) if DANGEROUS_ENV_KEEP.search(line)]
    if dangerous:
        context.register(
            "HIGH",
            "sudo_env_keep",
            f"Sudo preserves dangerous env vars: {' '.join(dangerous)}",
            "Library injection via preserved environment variable in sudo",
        )

    context.emit("INFO", "sudo_list", "sudo -l output: " + "\n".join(lines[:SUDO_LIST_LINES]))


def check_sudoers_files(context, sudoers_path: str = SUDOERS_PATH, sudoers_dir: str = SUDOERS_DIR) -> None:
    try:
        info = os.stat(sudoers_path)
    except OSError:
        info = None

    if info is not None:
        mode = stat.S_IMODE(info.st_mode)
        if mode not in (0o440, 0o400) or info.st_uid != 0 or info.st_gid != 0:
            context.register(
                "HIGH",
                "sudoers_perms",
                f"{sudoers_path} has non-standard permissions: {mode:o} {info.st_uid}:{info.st_gid}",
                "Check if sudoers is writable by current user",
            )

    writable = writable_files(sudoers_dir)
    if writable:
        context.register(
            "CRITICAL",
            "writable_sudoers_d",
            f"Writable files in {sudoers_dir}: {', '.join(str(p) for p in writable)}",
            "Add NOPASSWD ALL rule for current user",
        )


def check_environment(context, environ: Dict[str, str] = None) -> None:
    environ = os.environ if environ is None else environ
    if environ.get("LD_PRELOAD"):
        context.register(
            "HIGH",
            "ld_preload",
            f"LD_PRELOAD is set: {environ['LD_PRELOAD']}",
            "Shared library preloading - potential hijack vector",
        )
    if environ.get("LD_LIBRARY_PATH"):
        context.register(
            "MEDIUM",
            "ld_library_path",
            f"LD_LIBRARY_PATH is set: {environ['LD_LIBRARY_PATH']}",
            "Library search path manipulation - check for writable directories",
        )


def cron_command(line: str, has_user: bool) -> Optional[str]:
    """Executable of a crontab entry, or None for comments and variables."""
    line = line.strip()
    if not line or line.startswith("#"):
        return None
    fields = line.split()
    if "=" in fields[0]:
        return None

    skip = 1 if fields[0].startswith("@") else 5
    if has_user:
        skip += 1
    if len(fields) <= skip:
        return None
    return fields[skip]


def crontab_files(location: str) -> List[str]:
    if os.path.isfile(location):
        return [location]
    if os.path.isdir(location):
        try:
            names = sorted(os.listdir(location))
        except OSError:
            return []
        return [os.path.join(location, name) for name in names if os.path.isfile(os.path.join(location, name))]
    return []


def check_crontab(context, path: str, has_user: bool) -> None:
    if not can_read(path):
        return
    if can_write(path):
        context.register(
            "CRITICAL",
            "writable_cron",
            f"Writable cron file: {path}",
            "Inject a reverse shell or SUID binary creation job",
        )

    for line in (safe_read(path) or "").splitlines():
        command = cron_command(line, has_user)
        if command and os.path.isfile(command) and can_write(command):
            context.register(
                "CRITICAL",
                "writable_cron_script",
                f"Writable cron script: {command} (from {path})",
                "Modify script to execute a privilege escalation payload",
            )


def check_cron(context,
               system_crontabs=SYSTEM_CRONTABS,
               user_crontabs=USER_CRONTABS,
               cron_dirs=CRON_DIRS) -> None:
    for location in system_crontabs:
        for path in crontab_files(location):
            check_crontab(context, path, has_user=True)
    for location in user_crontabs:
        for path in crontab_files(location):
            check_crontab(context, path, has_user=False)

    for directory in cron_dirs:
        writable = writable_files(directory)
        if writable:
            context.register(
                "HIGH",
                "writable_cron_dir_script",
                f"Writable scripts in {directory}: {', '.join(str(p) for p in writable)}",
                "Modify to execute escalation payload on next cron run",
            )

    if cmd_exists("crontab"):
        returncode, entries = run_status(["crontab", "-l"])
        if returncode == 0 and entries.strip():
            context.emit("INFO", "user_crontab", "Current user crontab entries found")


def check_systemd_timers(context) -> None:
    if not cmd_exists("systemctl"):
        return
    if not (run_capture(["systemctl", "list-timers", "--all", "--no-pager"]) or "").strip():
        return

    context.emit("INFO", "systemd_timers", "Active systemd timers found (check for writable units)")
    check_timer_units(context, {unit: unit_fragment_path(unit) for unit in list_unit_files("timer")})


def check_timer_units(context, unit_paths: Dict[str, Optional[str]]) -> None:
    for unit, path in unit_paths.items():
        if path and os.path.isfile(path) and can_write(path):
            context.register(
                "HIGH",
                "writable_timer",
                f"Writable systemd timer: {path}",
                "Modify timer to execute escalation payload",
            )


def check_path(context, path_value: str = None) -> None:
    path_value = os.environ.get("PATH", "") if path_value is None else path_value
    entries = path_value.split(":")

    for directory in entries:
        if directory and os.path.isdir(directory) and can_write(directory):
            context.register(
                "HIGH",
                "writable_path_dir",
                f"Writable PATH directory: {directory}",
                "Place a malicious binary here to hijack commands (PATH injection)",
            )

    for directory in entries:
        if not directory.startswith("/"):
            context.register(
                "MEDIUM",
                "relative_path",
                f"Relative directory in PATH: '{directory}'",
                "Relative PATH entries can be exploited via working directory manipulation",
            )
