"""
Configuration for decorator stacks.

Validated profile models and a file loader for YAML/JSON profiles.
"""

from callguard.config.loader import ProfileLoader, load_profile
from callguard.config.profile import (
    BreakerSection,
    DebounceSection,
    RetrySection,
    StackProfile,
    ThrottleSection,
    TimeoutSection,
)

__all__ = [
    "BreakerSection",
    "DebounceSection",
    "ProfileLoader",
    "RetrySection",
    "StackProfile",
    "ThrottleSection",
    "TimeoutSection",
    "load_profile",
]
