"""Track model configuration."""
