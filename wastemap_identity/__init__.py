"""Identity and authorization service for WasteMap and gym-planner."""

__version__ = "0.1.0"
