"""
Host helpers shared by the built-in probes.

Missing tools and unreadable files are normal on an audited host; these
helpers report them as empty results instead of raising.
"""

import grp
import logging
import os
import re
import shutil
import subprocess
from pathlib import Path
from typing import List, Optional, Sequence

logger = logging.getLogger(__name__)

DEFAULT_COMMAND_TIMEOUT = 10.0


def cmd_exists(name: str) -> bool:
    return shutil.which(name) is not None


def run_capture(args: Sequence[str], timeout: float = DEFAULT_COMMAND_TIMEOUT) -> Optional[str]:
    """Run a command and return its stdout, or None when it cannot be run.

    A non-zero exit status still returns whatever was written to stdout.
    """
    if not args or not cmd_exists(args[0]):
        return None
    try:
        completed = subprocess.run(
            list(args),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired:
        logger.debug(f"Command timed out after {timeout}s: {' '.join(args)}")
        return None
    except OSError as e:
        logger.debug(f"Cannot run {args[0]}: {e}")
        return None
    return completed.stdout.decode("utf-8", errors="replace")


def run_status(args: Sequence[str], timeout: float = DEFAULT_COMMAND_TIMEOUT):
    """(returncode, stdout) for a command; returncode is None when it cannot be run."""
    if not args or not cmd_exists(args[0]):
        return None, ""
    try:
        completed = subprocess.run(
            list(args),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            timeout=timeout,
            check=False,
        )
    except (subprocess.TimeoutExpired, OSError) as e:
        logger.debug(f"Command failed: {' '.join(args)}: {e}")
        return None, ""
    return completed.returncode, completed.stdout.decode("utf-8", errors="replace")


def safe_read(path, limit: Optional[int] = None) -> Optional[str]:
    """File contents, or None when the file is missing or unreadable."""
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            return f.read(limit) if limit else f.read()
    except OSError:
        return None


def can_read(path) -> bool:
    return os.access(str(path), os.R_OK)


def can_write(path) -> bool:
    return os.path.exists(str(path)) and os.access(str(path), os.W_OK)


def is_root() -> bool:
    return os.geteuid() == 0


def find_files(root, names: Sequence[str] = (), suffixes: Sequence[str] = (), max_depth: int = 3) -> List[Path]:
    """Readable regular files under `root` matching a name or suffix."""
    base = Path(root)
    if not base.is_dir():
        return []

    matches = []
    base_depth = len(base.parts)
    for dirpath, dirnames, filenames in os.walk(base, onerror=None):
        depth = len(Path(dirpath).parts) - base_depth
        if depth >= max_depth:
            dirnames[:] = []
        for filename in filenames:
            if filename in names or any(filename.endswith(s) for s in suffixes):
                candidate = Path(dirpath) / filename
                if candidate.is_file() and can_read(candidate):
                    matches.append(candidate)
    return sorted(matches)


def writable_files(directory, max_depth: Optional[int] = None, limit: Optional[int] = None) -> List[Path]:
    """Regular files under `directory` the current user can write to."""
    base = Path(directory)
    if not base.is_dir():
        return []

    matches = []
    base_depth = len(base.parts)
    for dirpath, dirnames, filenames in os.walk(base):
        if max_depth is not None and len(Path(dirpath).parts) - base_depth >= max_depth:
            dirnames[:] = []
        for filename in sorted(filenames):
            candidate = Path(dirpath) / filename
            if candidate.is_file() and can_write(candidate):
                matches.append(candidate)
                if limit and len(matches) >= limit:
                    return sorted(matches)
    return sorted(matches)


def group_name(gid: int) -> str:
    try:
        return grp.getgrgid(gid).gr_name
    except KeyError:
        return str(gid)


def current_groups() -> List[str]:
    """Names of the groups the current process belongs to."""
    gids = set(os.getgroups())
    gids.add(os.getegid())
    return sorted(group_name(gid) for gid in gids)


def list_unit_files(unit_type: str, state: Optional[str] = None) -> List[str]:
    """systemd unit names of one type, e.g. `list_unit_files("service", "enabled")`."""
    args = ["systemctl", "list-unit-files", f"--type={unit_type}", "--no-pager", "--no-legend"]
    if state:
        args.append(f"--state={state}")
    output = run_capture(args) or ""
    suffix = f".{unit_type}"
    units = []
    for line in output.splitlines():
        fields = line.split()
        if fields and fields[0].endswith(suffix):
            units.append(fields[0])
    return units


def unit_fragment_path(unit: str) -> Optional[str]:
    """On-disk path of a systemd unit file, or None."""
    output = run_capture(["systemctl", "show", "-p", "FragmentPath", unit]) or ""
    for line in output.splitlines():
        if line.startswith("FragmentPath="):
            return line.split("=", 1)[1].strip() or None
    return None


def extract_version(text: Optional[str]) -> Optional[str]:
    """First dotted version-looking token, e.g. "1.9.5p2" -> "1.9.5"."""
    if not text:
        return None
    match = re.search(r"(\d+(?:\.\d+)+)", text)
    return match.group(1) if match else None
