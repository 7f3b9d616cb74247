"""
Example custom check for hostaudit

Drop files like this one into the plugins directory. Each needs METADATA
with "name" and "description" and a synchronous run(context) that reports
through context.register / context.emit.
"""

import os

METADATA = {
    "name": "example_check",
    "description": "Writable passwd file and loader configuration",
}


def run(context) -> None:
    if os.access("/etc/passwd", os.W_OK):
        context.register(
            "CRITICAL",
            "writable_passwd",
            "/etc/passwd is writable",
            "echo 'root2:$1$xyz$hash:0:0::/root:/bin/bash' >> /etc/passwd",
        )

    if os.path.isdir("/etc/ld.so.conf.d") and os.access("/etc/ld.so.conf.d", os.W_OK):
        context.register(
            "HIGH",
            "writable_ldconf",
            "/etc/ld.so.conf.d/ is writable",
            "Add malicious shared library path and run ldconfig",
        )
