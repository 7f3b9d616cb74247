"""
Filesystem Probe for hostaudit
SUID/SGID binaries, file capabilities, writable files and directories,
sensitive file permissions, unmounted partitions and temp directory contents
"""

import os
import pwd
import re
import stat
from typing import List, Tuple

from hostaudit.utils.system import can_read, can_write, cmd_exists, find_files, group_name, is_root, run_capture

METADATA = {
    "name": "filesystem",
    "description": "SUID/SGID binaries, capabilities, writable paths and sensitive files",
}

SUID_SEARCH_TIMEOUT = 120.0

DANGEROUS_CAPABILITIES = (
    "cap_sys_admin", "cap_sys_ptrace", "cap_sys_module",
    "cap_dac_override", "cap_dac_read_search", "cap_setuid",
    "cap_setgid", "cap_fowner", "cap_sys_rawio", "cap_setfcap",
    "cap_chown", "cap_net_admin",
)

SENSITIVE_FILES = {
    "/etc/passwd": "Add root-equivalent user entry",
    "/etc/shadow": "Replace root password hash",
    "/etc/sudoers": "Add NOPASSWD ALL rule",
    "/etc/ssh/sshd_config": "Permit root login and restart sshd",
    "/root/.ssh/authorized_keys": "Append an attacker-controlled public key for root SSH access",
}

SHADOW_PATH = "/etc/shadow"
SGID_LIMIT = 50
SENSITIVE_GROUPS = ("shadow", "root", "disk", "adm")

WRITABLE_DIR_LIMIT = 30
WRITABLE_DIR_EXCLUDES = ("/tmp/*", "/var/tmp/*", "/dev/shm/*", "/proc/*", "/sys/*", "/run/*")
WRITABLE_FILE_ROOTS = ("/etc", "/usr", "/opt")
WRITABLE_FILE_LIMIT = 20

TMP_DIRS = ("/tmp", "/var/tmp", "/dev/shm")
TMP_SUFFIXES = (".sh", ".py", ".key", ".pem", ".conf", ".bak", ".sql")

LSBLK_FIELD = re.compile(r'(\w+)="([^"]*)"')


def run(context) -> None:
    """Run filesystem enumeration."""
    check_suid_binaries(context, find_suid_binaries())
    steps = (
        lambda: check_sgid_binaries(context, sgid_entries()),
        lambda: check_capabilities(context, list_capabilities()),
        lambda: check_writable_dirs(context, find_world_writable_dirs()),
        lambda: check_world_writable_files(context, find_world_writable_files()),
        lambda: check_sensitive_files(context),
        lambda: check_shadow_readable(context),
        lambda: check_unmounted_partitions(context, list_partitions()),
        lambda: check_tmp_files(context),
    )
    for step in steps:
        if context.stop_requested:
            return
        step()


def find_suid_binaries() -> List[str]:
    output = run_capture(
        ["find", "/", "-xdev", "-perm", "-4000", "-type", "f"],
        timeout=SUID_SEARCH_TIMEOUT,
    )
    if not output:
        return []
    return sorted(line.strip() for line in output.splitlines() if line.strip())


def describe_owner(path: str) -> str:
    try:
        info = os.stat(path)
    except OSError:
        return "unknown"
    try:
        owner = pwd.getpwuid(info.st_uid).pw_name
    except KeyError:
        owner = str(info.st_uid)
    return f"{stat.filemode(info.st_mode)} {owner}"


def check_suid_binaries(context, binaries: List[str]) -> None:
    if not binaries:
        context.emit("INFO", "no_suid", "No SUID binaries found")
        return

    kb = context.knowledge_base
    for binary in binaries:
        if context.stop_requested:
            return

        if kb.is_whitelisted(binary):
            context.emit("INFO", "suid_whitelisted", f"SUID (whitelisted): {binary}")
            continue

        techniques = kb.match_binary(binary, context="suid")
        if techniques:
            for technique in techniques:
                context.register(
                    technique.severity,
                    "suid_gtfobins",
                    f"SUID binary with GTFOBins exploit: {binary}",
                    f"Exploit: {technique.command_hint}",
                )
        else:
            context.register(
                "MEDIUM",
                "suid_nonstandard",
                f"Non-standard SUID binary: {binary} ({describe_owner(binary)})",
                "Investigate for potential exploitation paths",
            )


def list_capabilities() -> List[Tuple[str, str]]:
    if not cmd_exists("getcap"):
        return []
    output = run_capture(["getcap", "-r", "/"], timeout=SUID_SEARCH_TIMEOUT)
    return parse_getcap(output or "")


def parse_getcap(output: str) -> List[Tuple[str, str]]:
    """(binary, capabilities) pairs from `getcap -r` output.

    Handles both "path = caps" and "path caps" formats.
    """
    entries = []
    for line in output.splitlines():
        line = line.strip()
        if not line:
            continue
        if " = " in line:
            binary, caps = line.split(" = ", 1)
        else:
            parts = line.split(None, 1)
            if len(parts) != 2:
                continue
            binary, caps = parts
        entries.append((binary.strip(), caps.strip()))
    return entries


def dangerous_capability(caps: str):
    lowered = caps.lower()
    for capability in DANGEROUS_CAPABILITIES:
        if capability in lowered:
            return capability
    return None


def check_capabilities(context, entries: List[Tuple[str, str]]) -> None:
    if not entries:
        context.emit("INFO", "no_caps", "No binaries with special capabilities found")
        return

    for binary, caps in entries:
        matched = dangerous_capability(caps)
        if matched:
            techniques = context.knowledge_base.match_capability(matched)
            hint = techniques[0].hint if techniques else None
            context.register("HIGH", "dangerous_capability", f"Dangerous capability on {binary}: {caps}", hint)
        else:
            context.emit("LOW", "capability", f"Capability: {binary} -> {caps}")


def check_sensitive_files(context, files=None) -> None:
    for path, hint in (files or SENSITIVE_FILES).items():
        if can_write(path):
            context.register("CRITICAL", "writable_sensitive", f"Writable sensitive file: {path}", hint)


def find_sgid_binaries() -> List[str]:
    output = run_capture(
        ["find", "/", "-xdev", "-perm", "-2000", "-type", "f"],
        timeout=SUID_SEARCH_TIMEOUT,
    )
    if not output:
        return []
    return sorted(line.strip() for line in output.splitlines() if line.strip())[:SGID_LIMIT]


def sgid_entries() -> List[Tuple[str, str]]:
    entries = []
    for binary in find_sgid_binaries():
        try:
            entries.append((binary, group_name(os.stat(binary).st_gid)))
        except OSError:
            continue
    return entries


def check_sgid_binaries(context, entries: List[Tuple[str, str]]) -> None:
    for binary, group in entries:
        if group in SENSITIVE_GROUPS:
            context.register(
                "MEDIUM",
                "sgid_sensitive",
                f"SGID binary with sensitive group '{group}': {binary}",
                f"SGID on '{group}' may allow reading sensitive files",
            )
        else:
            context.emit("INFO", "sgid_binary", f"SGID binary [{group}]: {binary}")


def _find_lines(args) -> List[str]:
    output = run_capture(args, timeout=SUID_SEARCH_TIMEOUT)
    if not output:
        return []
    return [line.strip() for line in output.splitlines() if line.strip()]


def find_world_writable_dirs() -> List[str]:
    args = ["find", "/", "-xdev", "-type", "d", "-perm", "-0002"]
    for pattern in WRITABLE_DIR_EXCLUDES:
        args += ["!", "-path", pattern]
    return _find_lines(args)[:WRITABLE_DIR_LIMIT]


def find_world_writable_files() -> List[str]:
    roots = [root for root in WRITABLE_FILE_ROOTS if os.path.isdir(root)]
    if not roots:
        return []
    return _find_lines(["find", *roots, "-type", "f", "-perm", "-0002"])[:WRITABLE_FILE_LIMIT]


def check_writable_dirs(context, directories: List[str]) -> None:
    for directory in directories:
        try:
            mode = os.stat(directory).st_mode
        except OSError:
            continue
        if mode & stat.S_ISVTX:
            context.emit("LOW", "world_writable_dir", f"World-writable dir (sticky bit set): {directory}")
        else:
            context.register(
                "MEDIUM",
                "world_writable_dir_no_sticky",
                f"World-writable dir without sticky bit: {directory}",
                "Files in this directory can be modified/deleted by any user",
            )


def check_world_writable_files(context, files: List[str]) -> None:
    for path in files:
        context.register(
            "HIGH",
            "world_writable_file",
            f"World-writable system file: {path}",
            "Check if file is executed by root or a privileged process",
        )


def check_shadow_readable(context, shadow_path: str = SHADOW_PATH, root: bool = None) -> None:
    root = is_root() if root is None else root
    if not root and os.path.isfile(shadow_path) and can_read(shadow_path):
        context.register(
            "HIGH",
            "readable_shadow",
            f"{shadow_path} is readable by unprivileged user",
            "Extract and crack password hashes",
        )


def list_partitions() -> str:
    if not cmd_exists("lsblk"):
        return ""
    return run_capture(["lsblk", "-P", "-n", "-o", "NAME,MOUNTPOINT,SIZE,TYPE"]) or ""


def unmounted_partitions(lsblk_output: str) -> List[str]:
    """Name and size of each partition without a mount point, from `lsblk -P` output."""
    partitions = []
    for line in lsblk_output.splitlines():
        fields = dict(LSBLK_FIELD.findall(line))
        if fields.get("TYPE") == "part" and not fields.get("MOUNTPOINT"):
            partitions.append(f"{fields.get('NAME', '?')} {fields.get('SIZE', '?')}")
    return partitions


def check_unmounted_partitions(context, lsblk_output: str) -> None:
    partitions = unmounted_partitions(lsblk_output)
    if partitions:
        context.emit(
            "LOW",
            "unmounted_partitions",
            f"Unmounted partitions found: {', '.join(partitions)}",
            "May contain sensitive data - try mounting if accessible",
        )


def check_tmp_files(context, directories=TMP_DIRS) -> None:
    for directory in directories:
        for path in find_files(directory, suffixes=TMP_SUFFIXES, max_depth=2):
            context.register(
                "LOW",
                "tmp_interesting_file",
                f"Interesting file in tmp: {path}",
                "Review for credentials or exploitable scripts",
            )
