"""
Penumbra Cosmos REST Gateway Configuration
Environment-driven settings for the gateway process
"""

import os
from typing import Dict, Any


class Config:
    """Base configuration"""

    # Penumbra Node Configuration
    # -------------------------------------------------------------------------
    # NODE_URL points at the gRPC-JSON gateway in front of the node's query
    # services. Use an https:// URL outside of local development.
    # -------------------------------------------------------------------------
    NODE_URL = os.getenv("NODE_URL", "http://localhost:8080")  # DEV ONLY default
    REQUEST_TIMEOUT = int(os.getenv("REQUEST_TIMEOUT", "30"))

    # Gateway Configuration
    GATEWAY_PORT = int(os.getenv("GATEWAY_PORT", "8000"))
    GATEWAY_HOST = os.getenv("GATEWAY_HOST", "127.0.0.1")
    DEBUG = os.getenv("DEBUG", "false").lower() == "true"

    # CORS Configuration
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*").split(",")

    # Logging Configuration
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    @classmethod
    def to_dict(cls) -> Dict[str, Any]:
        """Convert configuration to dictionary"""
        return {
            key: getattr(cls, key)
            for key in dir(cls)
            if key.isupper() and not callable(getattr(cls, key))
        }

    @classmethod
    def validate(cls) -> None:
        """Validate configuration"""
        errors = []

        if not cls.NODE_URL:
            errors.append("NODE_URL is required")
        elif not cls.NODE_URL.startswith(("http://", "https://")):
            errors.append("NODE_URL must start with http:// or https://")

        if cls.GATEWAY_PORT < 1 or cls.GATEWAY_PORT > 65535:
            errors.append("GATEWAY_PORT must be between 1 and 65535")

        if cls.REQUEST_TIMEOUT <= 0:
            errors.append("REQUEST_TIMEOUT must be positive")

        if errors:
            raise ValueError(f"Configuration validation failed: {', '.join(errors)}")


class DevelopmentConfig(Config):
    """Development configuration"""

    DEBUG = True
    LOG_LEVEL = "DEBUG"


class ProductionConfig(Config):
    """Production configuration"""

    DEBUG = False
    LOG_LEVEL = "WARNING"


class TestConfig(Config):
    """Test configuration"""

    NODE_URL = "http://localhost:8080"
    REQUEST_TIMEOUT = 5


# Environment-based configuration selection
ENV_CONFIGS = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "test": TestConfig,
}


def get_config() -> Config:
    """Get configuration based on environment"""
    env = os.getenv("GATEWAY_ENV", "development")
    config_class = ENV_CONFIGS.get(env, DevelopmentConfig)
    config_class.validate()
    return config_class


# Export current configuration
config = get_config()
