"""Asterisk FastAGI gateway: accepts AGI connections and dispatches calls."""

__version__ = "0.1.0"
