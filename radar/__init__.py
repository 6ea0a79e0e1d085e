"""Events Radar — finds event pages behind a DNS zone's subdomains."""

__version__ = "0.1.0"
