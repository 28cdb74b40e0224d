"""
Configuration settings for the inbox agent.
"""

import os
from pathlib import Path

from dotenv import load_dotenv


class Config:
    """Configuration settings."""

    # Database settings
    DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///inbox_agent.db')

    # LLM settings
    ANTHROPIC_API_KEY = os.getenv('ANTHROPIC_API_KEY', '')
    LLM_MODEL = os.getenv('LLM_MODEL', 'claude-3-5-haiku-latest')
    LLM_MAX_TOKENS = int(os.getenv('LLM_MAX_TOKENS', '1024'))

    # Browser settings
    BROWSER_HEADLESS = os.getenv('BROWSER_HEADLESS', 'true').lower() == 'true'
    BROWSER_TIMEOUT_MS = int(os.getenv('BROWSER_TIMEOUT_MS', '30000'))
    CLICK_TIMEOUT_MS = int(os.getenv('CLICK_TIMEOUT_MS', '5000'))
    NAVIGATION_WAIT_MS = int(os.getenv('NAVIGATION_WAIT_MS', '3000'))
    SETTLE_DELAY = float(os.getenv('SETTLE_DELAY', '1.0'))

    # Unsubscribe settings
    UNSUBSCRIBE_DELAY = float(os.getenv('UNSUBSCRIBE_DELAY', '1.0'))
    MAX_UNSUBSCRIBE_URLS = int(os.getenv('MAX_UNSUBSCRIBE_URLS', '10'))
    UNSUBSCRIBE_ATTEMPT_TIMEOUT = float(os.getenv('UNSUBSCRIBE_ATTEMPT_TIMEOUT', '120'))

    # Mailbox settings
    MAILBOX_MAX_CONCURRENT = int(os.getenv('MAILBOX_MAX_CONCURRENT', '5'))
    MAILBOX_MIN_INTERVAL = float(os.getenv('MAILBOX_MIN_INTERVAL', '0.1'))
    MAX_RETRIES = int(os.getenv('MAX_RETRIES', '3'))
    DEFAULT_SYNC_QUERY = os.getenv('DEFAULT_SYNC_QUERY', 'in:inbox')
    DEFAULT_MAX_MESSAGES = int(os.getenv('DEFAULT_MAX_MESSAGES', '50'))

    # Classification settings
    CLASSIFICATION_DELAY = float(os.getenv('CLASSIFICATION_DELAY', '0.1'))
    CONFIDENCE_THRESHOLD = float(os.getenv('CONFIDENCE_THRESHOLD', '0.5'))

    # Logging
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
    LOG_FORMAT = os.getenv('LOG_FORMAT', 'json')

    @classmethod
    def get_data_dir(cls) -> Path:
        """Get the data directory for storing database, tokens and screenshots."""
        data_dir = Path(os.getenv('DATA_DIR', Path.cwd() / 'data'))
        data_dir.mkdir(exist_ok=True)
        return data_dir

    @classmethod
    def get_database_path(cls) -> str:
        """Get the full database URL, anchoring relative SQLite files in the data dir."""
        if cls.DATABASE_URL.startswith('sqlite:///'):
            db_file = cls.DATABASE_URL[10:]
            if db_file != ':memory:' and not os.path.isabs(db_file):
                db_path = cls.get_data_dir() / db_file
                return f"sqlite:///{db_path}"
        return cls.DATABASE_URL

    @classmethod
    def get_screenshot_dir(cls) -> Path:
        """Directory where before/after unsubscribe screenshots are written."""
        screenshot_dir = os.getenv('SCREENSHOT_DIR')
        if screenshot_dir:
            return Path(screenshot_dir)
        return cls.get_data_dir() / 'screenshots'

    @classmethod
    def get_token_store_path(cls) -> Path:
        """Get the path to the mailbox access-token store file."""
        store_path = os.getenv('TOKEN_STORE_PATH', 'mailbox_tokens.json')

        # Expand {$DATA_DIR} variable if present
        if '{$DATA_DIR}' in store_path:
            store_path = store_path.replace('{$DATA_DIR}', str(cls.get_data_dir()))

        path = Path(store_path)
        if not path.is_absolute():
            path = cls.get_data_dir() / path

        return path


def load_config_from_env_file(env_file: str = '.env'):
    """Load configuration from environment file and refresh Config."""
    env_path = Path(env_file)
    if env_path.exists():
        load_dotenv(env_path)
        _refresh_from_environment()


def _refresh_from_environment():
    # Class attributes are read at import time; re-read the ones a .env commonly sets
    Config.DATABASE_URL = os.getenv('DATABASE_URL', Config.DATABASE_URL)
    Config.ANTHROPIC_API_KEY = os.getenv('ANTHROPIC_API_KEY', Config.ANTHROPIC_API_KEY)
    Config.LLM_MODEL = os.getenv('LLM_MODEL', Config.LLM_MODEL)
    Config.LOG_LEVEL = os.getenv('LOG_LEVEL', Config.LOG_LEVEL)
    Config.LOG_FORMAT = os.getenv('LOG_FORMAT', Config.LOG_FORMAT)
    Config.BROWSER_HEADLESS = os.getenv(
        'BROWSER_HEADLESS', str(Config.BROWSER_HEADLESS)
    ).lower() == 'true'
