"""
Group/user registry and its liveness rules.
"""
from venue_tracker.services.registry.liveness import LivenessPolicy, group_name_for
from venue_tracker.services.registry.registry import Registry, RegistryStats, normalize_code

__all__ = ["LivenessPolicy", "Registry", "RegistryStats", "group_name_for", "normalize_code"]
