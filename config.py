import os
from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


@dataclass
class Settings:
    # Database
    db_host: str = os.getenv("DB_HOST", "localhost")
    db_user: str = os.getenv("DB_USER", "postgres")
    db_password: str = os.getenv("DB_PASSWORD", "")
    db_name: str = os.getenv("DB_NAME", "library_system")
    db_port: int = int(os.getenv("DB_PORT", "5432"))
    # full URL wins over the individual DB_* parts (e.g. sqlite:///library.db)
    database_url_override: Optional[str] = os.getenv("DATABASE_URL")
    database_pool_size: int = int(os.getenv("DATABASE_POOL_SIZE", "5"))
    database_max_overflow: int = int(os.getenv("DATABASE_MAX_OVERFLOW", "10"))

    # Server
    port: int = int(os.getenv("PORT", "3000"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # Circulation
    timezone: str = os.getenv("LIBRARY_TIMEZONE", "UTC")
    fine_rate_per_day: int = int(os.getenv("FINE_RATE_PER_DAY", "5"))

    # Staff account used for issuing when the request names none
    default_staff_id: int = int(os.getenv("DEFAULT_STAFF_ID", "1"))
    default_staff_username: str = os.getenv("DEFAULT_STAFF_USERNAME", "admin")
    default_staff_password: str = os.getenv("DEFAULT_STAFF_PASSWORD", "admin123")

    @property
    def database_url(self) -> str:
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+psycopg://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )


settings = Settings()
