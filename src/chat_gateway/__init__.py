"""Chat gateway: tier-gated streaming chat completions with automatic continuation."""

__version__ = "0.1.0"
