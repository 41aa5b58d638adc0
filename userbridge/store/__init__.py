"""Local user record store (SQLAlchemy)."""
from .database import Base, Database
from .models import User
from .repository import UserRepository, LocalUserService

__all__ = ["Base", "Database", "User", "UserRepository", "LocalUserService"]
