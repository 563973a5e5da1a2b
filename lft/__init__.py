"""LFT: zero-config LAN file and folder transfer."""

__version__ = "1.0.0"
