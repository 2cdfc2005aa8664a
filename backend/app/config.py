"""Configuration classes for the HTTP API."""

import os


def _origins() -> list[str]:
    raw = os.environ.get("SYMCALC_ALLOWED_ORIGINS", "*")
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


class BaseConfig:
    ALLOWED_ORIGINS = _origins()
    MAX_INPUT_LENGTH = int(os.environ.get("SYMCALC_MAX_INPUT_LENGTH", "2000"))
    MAX_MATRIX_ORDER = int(os.environ.get("SYMCALC_MAX_MATRIX_ORDER", "10"))
    LOG_LEVEL = os.environ.get("SYMCALC_LOG_LEVEL", "INFO")


class TestingConfig(BaseConfig):
    TESTING = True
    MAX_INPUT_LENGTH = 200
    MAX_MATRIX_ORDER = 4


__all__ = ["BaseConfig", "TestingConfig"]
