"""PolicyDesk: role-scoped state and data access for an insurance admin dashboard."""

__version__ = "0.1.0"
