"""
Network Probe for hostaudit
Local network state only: interfaces, local listeners and connections,
routes, firewall rules, resolver configuration and NFS exports.
Nothing here sends traffic to other hosts.
"""

import re
from typing import List

from hostaudit.utils.system import can_read, cmd_exists, run_capture, safe_read

METADATA = {
    "name": "network",
    "description": "Local interfaces, listeners, firewall state and NFS exports",
}

EXPORTS_PATH = "/etc/exports"
RESOLV_CONF = "/etc/resolv.conf"
LOCAL_DATABASE = re.compile(r"127\.0\.0\.1\S*[:.](3306|5432|6379|27017|9200)\b")
FIREWALL_TIMEOUT = 5.0
CONNECTION_LIMIT = 20


def run(context) -> None:
    """Run network enumeration."""
    steps = (
        lambda: check_interfaces(
            context,
            run_capture(["ip", "-o", "addr", "show"]) or "",
            run_capture(["ip", "-o", "link", "show"]) or "",
        ),
        lambda: check_listeners(context, listening_sockets()),
        lambda: check_connections(context, established_connections()),
        lambda: check_routes(context, run_capture(["ip", "route", "show"]) or ""),
        lambda: check_firewall(context, run_capture(["iptables", "-L", "-n"], timeout=FIREWALL_TIMEOUT) or ""),
        lambda: check_dns(context),
        lambda: check_nfs_exports(context),
    )
    for step in steps:
        if context.stop_requested:
            return
        step()


def interface_addresses(addr_output: str) -> List[str]:
    """Interface name and address pairs from `ip -o addr show`."""
    pairs = []
    for line in addr_output.splitlines():
        fields = line.split()
        if len(fields) >= 4:
            pairs.append(f"{fields[1]} {fields[3]}")
    return pairs


def check_interfaces(context, addr_output: str, link_output: str) -> None:
    addresses = interface_addresses(addr_output)
    if addresses:
        context.emit("INFO", "interfaces", f"Network interfaces: {' | '.join(addresses)}")

    active = sum(1 for line in link_output.splitlines() if "state UP" in line)
    if active > 1:
        context.register("LOW", "multi_interface", f"Multiple active interfaces ({active}) - potential pivot")

    if "PROMISC" in link_output.upper():
        context.register(
            "MEDIUM",
            "promiscuous_mode",
            "Interface in promiscuous mode",
            "Possible sniffing in progress",
        )


def listening_sockets() -> str:
    if cmd_exists("ss"):
        return run_capture(["ss", "-tlnp"]) or ""
    if cmd_exists("netstat"):
        return run_capture(["netstat", "-tlnp"]) or ""
    return ""


def check_listeners(context, listeners: str) -> None:
    if not listeners:
        return

    if LOCAL_DATABASE.search(listeners):
        context.register(
            "MEDIUM",
            "database_localhost",
            "Database on localhost - check auth bypass",
            "Try default/empty credentials",
        )

    public = []
    for line in listeners.splitlines():
        fields = line.split()
        if "0.0.0.0" in line and len(fields) >= 4:
            public.append(fields[3])
    if public:
        context.emit("INFO", "public_services", f"Services on all interfaces: {', '.join(public)}")


def established_connections() -> List[str]:
    if cmd_exists("ss"):
        output, marker = run_capture(["ss", "-tnp"]) or "", "ESTAB"
    elif cmd_exists("netstat"):
        output, marker = run_capture(["netstat", "-tnp"]) or "", "ESTABLISHED"
    else:
        return []
    return [line for line in output.splitlines() if marker in line][:CONNECTION_LIMIT]


def check_connections(context, connections: List[str]) -> None:
    if connections:
        context.emit("INFO", "connections", f"Active connections: {len(connections)}")


def check_routes(context, routes: str) -> None:
    entries = [line for line in routes.splitlines() if line.strip()]
    if entries:
        context.emit("INFO", "routes", f"Routes: {len(entries)} entries")


def check_firewall(context, rules: str) -> None:
    """An empty listing means iptables was unavailable, not that the firewall is off."""
    if not rules.strip():
        return
    active = sum(1 for line in rules.splitlines() if re.match(r"(ACCEPT|DROP|REJECT)\b", line))
    if active == 0:
        context.register("MEDIUM", "no_firewall", "No active iptables rules - firewall may be disabled")


def check_dns(context, resolv_conf: str = RESOLV_CONF) -> None:
    text = safe_read(resolv_conf)
    if text is None:
        return
    servers = [line.split()[1] for line in text.splitlines() if line.startswith("nameserver") and len(line.split()) > 1]
    context.emit("INFO", "dns_servers", f"DNS: {', '.join(servers)}")


def check_nfs_exports(context, exports_path: str = EXPORTS_PATH) -> None:
    if not can_read(exports_path):
        return
    entries = [line.strip() for line in (safe_read(exports_path) or "").splitlines()
               if line.strip() and not line.lstrip().startswith("#")]

    if any("no_root_squash" in entry for entry in entries):
        context.register(
            "CRITICAL",
            "nfs_no_root_squash",
            "NFS with no_root_squash found",
            "Mount remotely as root, create a SUID binary, then execute it locally",
        )
    if entries:
        context.emit("INFO", "nfs_exports", f"NFS exports: {'; '.join(entries)}")
