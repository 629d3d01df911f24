"""FixDispatch - durable outbound dispatch queue for fix actions."""

__version__ = "0.1.0"
