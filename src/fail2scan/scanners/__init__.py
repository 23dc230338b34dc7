"""External probes run against a banned address (nmap → dig → whois)."""

import logging

from ..core.models import PrerequisiteError
from ..utils.io import tool_exists
from . import nmap

log = logging.getLogger("fail2scan")

REQUIRED_TOOLS = ("nmap", "dig", "whois")


def check_prerequisites() -> str:
    """Raise PrerequisiteError for the first missing tool; return the nmap version."""
    for tool in REQUIRED_TOOLS:
        if not tool_exists(tool):
            raise PrerequisiteError(tool)
    found = nmap.version()
    log.info("nmap %s found", found)
    return found
