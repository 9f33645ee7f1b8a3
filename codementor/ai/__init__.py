"""AI-assisted code help."""
