"""
Software Probe for hostaudit
Compilers, interpreters and known-vulnerable privileged software
"""

from hostaudit.core.knowledge_base import VersionRange
from hostaudit.utils.system import cmd_exists, extract_version, run_capture

METADATA = {
    "name": "software",
    "description": "Compilers, interpreters and vulnerable sudo/pkexec versions",
}

COMPILERS = ("gcc", "g++", "cc", "clang", "make")
INTERPRETERS = ("python", "python3", "perl", "ruby", "php", "node", "lua")

# (range, severity, category, CVE label, hint)
SUDO_VULNERABILITIES = (
    (VersionRange.parse("[1.8.0,1.9.5]"), "CRITICAL", "sudo_cve_2021_3156",
     "CVE-2021-3156 (Baron Samedit)",
     "Heap overflow in sudoedit - run: sudoedit -s '\\' 2>&1 | grep 'not a regular file'"),
    (VersionRange.parse("[1.7.0,1.8.27]"), "HIGH", "sudo_cve_2019_14287",
     "CVE-2019-14287",
     "Bypass runas restriction: sudo -u#-1 /bin/bash"),
)

PWNKIT_RANGE = VersionRange.parse("[0.100,0.119]")


def run(context) -> None:
    """Run software enumeration."""
    check_compilers(context, [c for c in COMPILERS if cmd_exists(c)])
    check_interpreters(context, [i for i in INTERPRETERS if cmd_exists(i)])
    if context.stop_requested:
        return

    if cmd_exists("sudo"):
        check_sudo_version(context, extract_version(run_capture(["sudo", "-V"])))
    if cmd_exists("pkexec"):
        check_pkexec_version(context, extract_version(run_capture(["pkexec", "--version"])))


def check_compilers(context, available) -> None:
    for compiler in available:
        context.emit("INFO", "compiler", f"Compiler available: {compiler}")

    if available:
        context.register(
            "LOW",
            "compiler_available",
            "Compilers available - can compile kernel exploits on target",
            "Use gcc to compile local privilege escalation exploits",
        )


def check_interpreters(context, available) -> None:
    for interpreter in available:
        if context.knowledge_base.match_binary(interpreter):
            context.emit(
                "LOW",
                "interpreter_gtfobins",
                f"{interpreter} has GTFOBins entries (check if SUID/sudo)",
            )
        else:
            context.emit("INFO", "interpreter", f"Interpreter available: {interpreter}")


def check_sudo_version(context, version) -> None:
    if not version:
        return

    context.emit("INFO", "sudo_version", f"Sudo version: {version}")
    for version_range, severity, category, label, hint in SUDO_VULNERABILITIES:
        if version_range.contains(version):
            context.register(severity, category, f"Sudo {version} may be vulnerable to {label}", hint)


def check_pkexec_version(context, version) -> None:
    if not version:
        return

    context.emit("INFO", "pkexec_version", f"pkexec version: {version}")
    if PWNKIT_RANGE.contains(version):
        context.register(
            "CRITICAL",
            "pwnkit",
            f"pkexec {version} likely vulnerable to CVE-2021-4034 (PwnKit)",
            "Local privilege escalation - multiple PoCs available",
        )
