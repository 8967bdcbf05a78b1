"""Version information for hostagent."""

__version__ = "0.1.0"
