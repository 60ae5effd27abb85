"""quickenv - run .envrc once, replay its variables through shims."""

__version__ = "0.3.10"
