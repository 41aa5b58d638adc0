"""Configuration module for userbridge."""
from .settings import AppConfig, load_settings

__all__ = ["AppConfig", "load_settings"]
