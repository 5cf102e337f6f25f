"""Upgrade config records, maintenance silences and upgrade notifications for managed clusters."""

__version__ = "0.1.0"

__all__ = [
    "eventmanager",
    "localprovider",
    "maintenance",
    "notifier",
    "ocm",
    "upgradeconfig",
]