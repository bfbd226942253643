"""
Configuration subsystem for Rankstream.

Static configuration is loaded from environment variables (with .env
support) at import time and validated once at process startup.

Usage
-----
```python
from src.core.config import Config

db_url = Config.DATABASE_URL
topic = Config.KAFKA_TOPIC

if Config.is_production():
    logger.info("Running in production mode")

summary = Config.get_config_summary()
```
"""

from src.core.config.config import Config, Environment

__all__ = [
    "Config",
    "Environment",
]
