"""Phone-verified registration, login and server-side sessions."""

__version__ = "1.0.0"
