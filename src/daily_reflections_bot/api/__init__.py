"""
HTTP API for the Daily Reflections Bot.

Serves Discord slash-command interactions and the bearer-token
protected endpoints used by schedulers and health checks.
"""
