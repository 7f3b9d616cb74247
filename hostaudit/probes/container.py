"""
Container Probe for hostaudit
Docker, Podman, LXC/LXD and Kubernetes environments and breakout vectors
"""

import glob
import os
import re
import stat
from typing import Dict, List, Optional

from hostaudit.utils.system import can_read, can_write, cmd_exists, current_groups, is_root, run_capture, safe_read

METADATA = {
    "name": "container",
    "description": "Container detection, docker/lxd access and container breakout vectors",
}

DOCKERENV_PATH = "/.dockerenv"
INIT_CGROUP_PATH = "/proc/1/cgroup"
CGROUP_MARKER = re.compile(r"docker|lxc|kubepods|containerd", re.IGNORECASE)
DOCKER_SOCKET = "/var/run/docker.sock"
MOUNTS_PATH = "/proc/mounts"
STATUS_PATH = "/proc/self/status"
HOST_FILESYSTEMS = ("ext4", "xfs", "btrfs")
K8S_TOKEN_PATH = "/var/run/secrets/kubernetes.io/serviceaccount/token"
RELEASE_AGENT_GLOB = "/sys/fs/cgroup/*/release_agent"

# CapEff of a privileged container: every capability up to CAP_AUDIT_READ
FULL_CAPABILITIES = 0x3FFFFFFFFF

DOCKER_BREAKOUT = "docker run -v /:/mnt --rm -it alpine chroot /mnt sh"
LXD_BREAKOUT = (
    "lxc init ubuntu:22.04 privesc -c security.privileged=true && "
    "lxc config device add privesc host-root disk source=/ path=/mnt/root && "
    "lxc start privesc && lxc exec privesc -- /bin/sh"
)


def run(context) -> None:
    """Run container enumeration."""
    inside_docker = check_container_environment(context)
    groups = current_groups()

    def breakout_vectors():
        if inside_docker:
            check_breakout_vectors(context, safe_read(MOUNTS_PATH) or "", is_root(), safe_read(STATUS_PATH) or "")

    steps = (
        lambda: check_docker_socket(context),
        lambda: check_group_access(context, groups),
        lambda: check_docker_containers(context, docker_containers()),
        breakout_vectors,
        lambda: check_runtime_listings(context),
        lambda: check_kubernetes(context),
        lambda: check_cgroup_release_agents(context, glob.glob(RELEASE_AGENT_GLOB)),
    )
    for step in steps:
        if context.stop_requested:
            return
        step()


def check_container_environment(context, dockerenv: str = DOCKERENV_PATH, cgroup_path: str = INIT_CGROUP_PATH) -> bool:
    """Report whether this host is itself a container; True inside Docker."""
    inside_docker = os.path.exists(dockerenv)
    if inside_docker:
        context.emit("INFO", "inside_docker", "Running inside a Docker container")

    marker = CGROUP_MARKER.search(safe_read(cgroup_path) or "")
    if marker:
        context.emit("INFO", "container_cgroup", f"Container cgroup detected: {marker.group(0)}")

    if not inside_docker and not marker:
        context.emit("INFO", "not_container", "Not running inside a container")
    return inside_docker


def check_docker_socket(context, socket_path: str = DOCKER_SOCKET) -> None:
    try:
        is_socket = stat.S_ISSOCK(os.stat(socket_path).st_mode)
    except OSError:
        return
    if is_socket and can_read(socket_path):
        context.register(
            "CRITICAL",
            "docker_socket",
            f"Docker socket accessible: {socket_path}",
            DOCKER_BREAKOUT,
        )


def check_group_access(context, groups: List[str]) -> None:
    if "docker" in groups:
        context.register(
            "CRITICAL",
            "docker_group",
            "Current user is in docker group",
            f"Full root access via: {DOCKER_BREAKOUT}",
        )
    if "lxd" in groups:
        context.register("CRITICAL", "lxd_group", "User is in lxd group", LXD_BREAKOUT)


def docker_containers() -> Dict[str, bool]:
    """Running container name -> privileged flag; empty without docker access."""
    if not cmd_exists("docker"):
        return {}
    output = run_capture(["docker", "ps", "--format", "{{.Names}}"]) or ""
    names = [line.strip() for line in output.splitlines() if line.strip()][:10]

    containers = {}
    for name in names:
        flag = run_capture(["docker", "inspect", "--format", "{{.HostConfig.Privileged}}", name]) or ""
        containers[name] = flag.strip().lower() == "true"
    return containers


def check_docker_containers(context, containers: Dict[str, bool]) -> None:
    if not containers:
        return
    context.emit("INFO", "docker_containers", f"Running containers: {', '.join(containers)}")

    privileged = [name for name, flag in containers.items() if flag]
    if privileged:
        context.register(
            "CRITICAL",
            "privileged_container",
            f"Privileged container(s): {', '.join(privileged)}",
            "Container breakout possible",
        )


def host_mounts(mounts_text: str) -> List[str]:
    """Mount points backed by a host block filesystem, from /proc/mounts."""
    points = []
    for line in mounts_text.splitlines():
        fields = line.split()
        if len(fields) >= 3 and fields[2] in HOST_FILESYSTEMS:
            points.append(fields[1])
    return points


def effective_capabilities(status_text: str) -> Optional[int]:
    for line in status_text.splitlines():
        if line.startswith("CapEff:"):
            try:
                return int(line.split(":", 1)[1].strip(), 16)
            except ValueError:
                return None
    return None


def check_breakout_vectors(context, mounts_text: str, root: bool, status_text: str) -> None:
    mounts = host_mounts(mounts_text)
    if mounts:
        context.register(
            "HIGH",
            "host_mount",
            f"Host filesystem mounted inside container: {', '.join(mounts)}",
            "Access host filesystem via mount point",
        )

    if root:
        context.register(
            "MEDIUM",
            "container_root",
            "Running as root inside container",
            "Check for additional breakout techniques",
        )

    capabilities = effective_capabilities(status_text)
    if capabilities is not None and capabilities & FULL_CAPABILITIES == FULL_CAPABILITIES:
        context.register(
            "CRITICAL",
            "full_capabilities",
            "Container has full capabilities (privileged)",
            "Container breakout via nsenter or mount",
        )


def check_runtime_listings(context) -> None:
    if cmd_exists("podman"):
        output = run_capture(["podman", "ps", "--format", "{{.Names}}"]) or ""
        pods = [line.strip() for line in output.splitlines() if line.strip()][:5]
        if pods:
            context.emit("INFO", "podman_containers", f"Podman containers: {', '.join(pods)}")

    if cmd_exists("lxc"):
        if (run_capture(["lxc", "list", "--format", "csv"]) or "").strip():
            context.emit("INFO", "lxc_containers", "LXC containers found")


def check_kubernetes(context, token_path: str = K8S_TOKEN_PATH) -> None:
    if os.path.isfile(token_path):
        context.register(
            "HIGH",
            "k8s_token",
            "Kubernetes service account token found",
            "Use kubectl with token for cluster reconnaissance",
        )

    if cmd_exists("kubectl"):
        answer = (run_capture(["kubectl", "auth", "can-i", "list", "pods"]) or "").strip()
        if answer == "yes":
            context.register("HIGH", "k8s_access", "kubectl can list pods", "Enumerate cluster resources")


def check_cgroup_release_agents(context, paths: List[str]) -> None:
    for path in sorted(paths):
        if os.path.isfile(path) and can_write(path):
            context.register(
                "CRITICAL",
                "cgroup_escape",
                f"Writable cgroup release_agent: {path}",
                "CVE-2022-0492: cgroup escape via release_agent",
            )
