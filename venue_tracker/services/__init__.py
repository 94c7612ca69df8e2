"""
Server-side services: the registry and geodetic helpers.
"""
