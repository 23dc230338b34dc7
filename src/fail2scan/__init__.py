"""Fail2Scan: scan every address fail2ban bans."""

__version__ = "0.1.0"
