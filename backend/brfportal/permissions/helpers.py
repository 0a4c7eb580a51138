# Overview: Utility functions for capability lookups and validation.

from .definitions import CAPABILITY_DEFINITIONS, CAPABILITY_ROLES


def get_all_capability_codes():
    """Get list of all capability codes."""
    return [cap[0] for cap in CAPABILITY_DEFINITIONS]


def get_capabilities_by_category(category):
    """Get all capabilities in a category."""
    return [cap for cap in CAPABILITY_DEFINITIONS if cap[3] == category]


def get_capability_definition(code):
    """Get full definition for a capability code, including satisfying roles."""
    for cap in CAPABILITY_DEFINITIONS:
        if cap[0] == code:
            return {
                "code": cap[0],
                "name": cap[1],
                "description": cap[2],
                "category": cap[3],
                "roles": sorted(CAPABILITY_ROLES.get(code, ())),
            }
    return None


def validate_capability_code(code):
    """Check if a capability code is valid."""
    return code in CAPABILITY_ROLES
