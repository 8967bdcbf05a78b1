"""Agent configuration."""
