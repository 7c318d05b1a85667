"""Configuration module for the idprov application."""
from .settings import AppConfig, load_settings

__all__ = ["AppConfig", "load_settings"]
