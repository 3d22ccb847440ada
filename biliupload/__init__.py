"""Upload videos to bilibili, edit submissions and list archives."""

__version__ = "0.1.0"