from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    DATA_SOURCE: Literal["clickhouse", "csv"] = "clickhouse"
    LOG_LEVEL: str = "INFO"

    CH_HOST: str = "localhost"
    CH_PORT: int = 8123                # HTTP
    CH_USERNAME: str = "default"
    CH_PASSWORD: str = ""
    CH_DATABASE: str = "covid"
    CH_SECURE: bool = False            # True for ClickHouse Cloud (TLS)
    CH_VERIFY: bool = True             # TLS certificate verification
    CH_POOL_MAXSIZE: int = 32          # connections per host
    CH_POOL_NUM_POOLS: int = 10
    CH_CONNECT_TIMEOUT: float = 5.0
    CH_SEND_RECV_TIMEOUT: float = 60.0

    DEATHS_TABLE: str = "global_covid_death"
    VACCINATIONS_TABLE: str = "global_covid_vaccination"

    # used when DATA_SOURCE=csv (OWID exports)
    DEATHS_CSV: str = "./data/global_covid_death.csv"
    VACCINATIONS_CSV: str = "./data/global_covid_vaccination.csv"

    ROLLING_WINDOW_DAYS: int = Field(7, ge=1)

    model_config = SettingsConfigDict(
        env_file="./.env",
        env_ignore_empty=True,
        extra="ignore",
    )

settings = Settings()
