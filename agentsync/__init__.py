"""agentsync — keep locally installed agent and skill files in sync with upstream."""

__version__ = "0.1.0"
