"""frpc-manager: version catalog, activation and process supervision for frpc."""

__version__ = "0.3.0"
