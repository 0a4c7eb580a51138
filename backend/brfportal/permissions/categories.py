# Overview: Capability category constants for grouping related capabilities.


class CapabilityCategory:
    """Capability categories for organization and UI display."""
    PORTAL = "PORTAL"
    INVOICES = "INVOICES"
    ORGANIZATION = "ORGANIZATION"
    PLATFORM = "PLATFORM"
