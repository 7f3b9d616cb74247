"""
hostaudit | Local Privilege-Escalation Audit Framework

Runs independent host probes, collects their findings, scores aggregate risk
and renders text, JSON and HTML reports.

Licensed under MIT License
"""

import logging

__version__ = "1.0.0"
__author__ = "hostaudit maintainers"
__description__ = "Local privilege-escalation audit engine"

# Ethical usage reminder
ETHICAL_NOTICE = """
⚠️  AUTHORIZED USE ONLY ⚠️
This tool inspects the local host for privilege-escalation vectors.
Only run it on systems you own or are explicitly authorized to assess.
It never exploits or remediates anything by itself.
"""

logging.getLogger(__name__).addHandler(logging.NullHandler())
