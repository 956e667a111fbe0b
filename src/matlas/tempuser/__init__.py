"""Temporary database user lifecycle."""

from .manager import TempUser, TempUserManager, Tier, generate_password, build_connection_string

__all__ = ["TempUser", "TempUserManager", "Tier", "generate_password", "build_connection_string"]
