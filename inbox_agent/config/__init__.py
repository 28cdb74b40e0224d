"""
Configuration module.
"""

from .settings import Config, load_config_from_env_file
from .credentials import TokenStore, get_token_store

__all__ = ['Config', 'load_config_from_env_file', 'TokenStore', 'get_token_store']
