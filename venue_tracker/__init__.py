"""Venue Tracker: ephemeral group location, chat and fight-vote sync."""
__version__ = "1.0.0"
