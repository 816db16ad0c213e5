"""Mappable BFF: keeps the Mappable API key server-side and proxies map traffic."""

__version__ = "0.1.0"
