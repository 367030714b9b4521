"""
⚙️ Runtime settings
==================
Environment-driven configuration, loaded once from megam/.env when present.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

package_env_path = Path(__file__).parent.parent / '.env'
load_dotenv(package_env_path)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


@dataclass
class Settings:
    """Settings for providers, caches, model training and the HTTP surface"""
    iqair_api_key: Optional[str] = None
    openaq_api_key: Optional[str] = None
    waqi_api_key: Optional[str] = None
    provider_timeout_seconds: float = 15.0

    history_cache_ttl_hours: float = 24.0
    history_training_days: int = 180

    model_epochs: int = 50
    model_lstm_units: int = 64
    model_batch_size: int = 32
    model_learning_rate: float = 0.001
    model_cache_max_entries: int = 16
    model_dir: Optional[str] = None

    cache_backend: str = 'memory'
    cache_s3_bucket: Optional[str] = None

    api_host: str = '0.0.0.0'
    api_port: int = 5000
    api_debug: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            iqair_api_key=os.getenv('IQAIR_API_KEY') or None,
            openaq_api_key=os.getenv('OPENAQ_API_KEY') or None,
            waqi_api_key=os.getenv('WAQI_API_KEY') or None,
            provider_timeout_seconds=float(os.getenv('PROVIDER_TIMEOUT_SECONDS', 15)),
            history_cache_ttl_hours=float(os.getenv('HISTORY_CACHE_TTL_HOURS', 24)),
            history_training_days=int(os.getenv('HISTORY_TRAINING_DAYS', 180)),
            model_epochs=int(os.getenv('MODEL_EPOCHS', 50)),
            model_lstm_units=int(os.getenv('MODEL_LSTM_UNITS', 64)),
            model_batch_size=int(os.getenv('MODEL_BATCH_SIZE', 32)),
            model_learning_rate=float(os.getenv('MODEL_LEARNING_RATE', 0.001)),
            model_cache_max_entries=int(os.getenv('MODEL_CACHE_MAX_ENTRIES', 16)),
            model_dir=os.getenv('MODEL_DIR') or None,
            cache_backend=os.getenv('CACHE_BACKEND', 'memory').lower(),
            cache_s3_bucket=os.getenv('CACHE_S3_BUCKET') or None,
            api_host=os.getenv('API_HOST', '0.0.0.0'),
            api_port=int(os.getenv('API_PORT', 5000)),
            api_debug=_env_bool('API_DEBUG', False),
        )


_settings = None


def get_settings() -> Settings:
    """Get the process-wide settings instance"""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings
