"""
Students Module

Student profile lookups used to resolve who to notify about an enrollment.
"""

from .models import StudentProfile
from .repository import StudentProfileRepository

__all__ = ["StudentProfile", "StudentProfileRepository"]
