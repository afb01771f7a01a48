"""Group moderation bot with a rate-limit aware bulk job scheduler."""

__version__ = "0.1.0"
