"""SoulSync - guided wellness sessions and weekly insights."""

__version__ = "0.1.0"
