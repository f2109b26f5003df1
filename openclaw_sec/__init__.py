"""openclaw-sec: local security-review gate for repositories and workspaces."""

__version__ = "0.2.0"
