"""
Users Module

Read access to login accounts.
"""

from .models import User, UserRole
from .repository import UserRepository

__all__ = ["User", "UserRole", "UserRepository"]
