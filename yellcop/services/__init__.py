"""Moderation, auditing and Slack services."""
