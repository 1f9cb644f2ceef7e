import os
import logging


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


class BaseConfig:
    SECRET_KEY = os.getenv("FLASK_SECRET_KEY", "dev-secret-key-change-in-production")
    LOG_LEVEL = getattr(logging, os.getenv("LOG_LEVEL", "INFO"))

    # Rolling window shared by every chart
    WINDOW_SPAN_MS = int(os.getenv("WINDOW_SPAN_MS", "60000"))
    WINDOW_CAPACITY = int(os.getenv("WINDOW_CAPACITY", "60"))
    # Snapshots kept for replay into newly mounted charts
    HISTORY_MAX_RECORDS = int(os.getenv("HISTORY_MAX_RECORDS", "120"))

    # Whether to run an in-process sampler thread for the local host (disabled during tests)
    METRICS_SAMPLER_ENABLED = _flag("METRICS_SAMPLER_ENABLED", "true")
    # Sampling interval in seconds (can be fractional)
    METRICS_SAMPLE_INTERVAL = float(os.getenv("METRICS_SAMPLE_INTERVAL", "1"))
    LOCAL_HOST_ID = int(os.getenv("LOCAL_HOST_ID", "0"))
    LOCAL_HOST_NAME = os.getenv("LOCAL_HOST_NAME", "")

    # Seconds between Server-Sent Events on the chart stream
    REALTIME_INTERVAL = float(os.getenv("REALTIME_INTERVAL", "1"))

    # Presenter styling: cards are drawn translucent over a custom background
    CUSTOM_BACKGROUND = _flag("CUSTOM_BACKGROUND")


class DevConfig(BaseConfig):
    DEBUG = True


class TestConfig(BaseConfig):
    TESTING = True
    DEBUG = False
    METRICS_SAMPLER_ENABLED = False
    REALTIME_INTERVAL = 0


class ProdConfig(BaseConfig):
    DEBUG = False


CONFIGS = {
    "development": DevConfig,
    "testing": TestConfig,
    "production": ProdConfig,
}
