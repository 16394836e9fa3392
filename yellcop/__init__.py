"""YellCop: a Slack bot that keeps a channel in all caps."""

__version__ = "0.1.0"
