# Sales Performance Analytics - Configuration
from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Tuple
import logging

import structlog


class Settings(BaseSettings):
    """Engine policy settings with environment variable support.

    Only policy constants live here. Anything derived from a dataset
    (grade thresholds, population maxima) is computed per call.
    """

    # Application
    APP_NAME: str = "Sales Performance Analytics"
    APP_VERSION: str = "1.0.0"
    LOG_LEVEL: str = "INFO"

    # Grading (percentiles for A/B/C cut-offs, descending)
    GRADE_PERCENTILES: Tuple[float, float, float] = (80.0, 60.0, 40.0)

    # Performance scoring
    SCORE_TOTAL_MAX: float = 100.0
    TOP_CUSTOMER_LIMIT: int = 5

    # Rep profiling and rankings
    TOP_PRODUCT_LIMIT: int = 10
    TOP_CUSTOMER_RANKING_LIMIT: int = 10
    MOMENTUM_WINDOW: int = 3
    MOMENTUM_THRESHOLD: float = 0.10  # fraction of the average monthly sales

    # Concentration risk (HHI on fractional shares)
    HHI_HIGH: float = 0.25
    HHI_MEDIUM: float = 0.15

    # RFM
    RFM_NO_RECENCY_MONTHS: int = 999

    # CLV
    CLV_LIFETIME_YEARS: float = 3.0
    CLV_DEFAULT_MARGIN: float = 0.10
    CLV_MARGIN_FLOOR: float = -0.5
    CLV_MARGIN_CEILING: float = 1.0
    CLV_RETENTION_ADJUSTED: bool = False

    # Forecast
    FORECAST_HORIZON: int = 3

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings()


def configure_logging(level: str = None) -> None:
    """Route structlog through stdlib logging with the platform log format."""
    level_name = (level or get_settings().LOG_LEVEL).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.KeyValueRenderer(key_order=["event"]),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
