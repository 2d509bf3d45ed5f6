"""Realtime relay for the helpdesk chat widget, agent panel and admin dashboards."""

__version__ = "1.0.0"
