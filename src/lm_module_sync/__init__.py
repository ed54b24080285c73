"""Module sync engine for portal-backed LogicModule editing."""

__version__ = "0.3.0"
