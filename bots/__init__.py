"""Discord-facing runtime for the in-house signup bot.

`bots.inhouse` wires the roster engine from :mod:`inhouse_bot` to slash
commands, signup buttons and the daily schedule; the remaining modules hold
its configuration, admin-channel reporting and health endpoint.
"""

__all__ = ["config", "health", "inhouse", "reporting"]
