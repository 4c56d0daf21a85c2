"""Incident synchronization, moderation and mapping core for the reporting portal."""
