from pydantic_settings import BaseSettings
from dotenv import load_dotenv, find_dotenv
from typing import List, Optional

_env_path = find_dotenv(usecwd=True)  # locate a .env file in this folder or parent folders
if _env_path:
    load_dotenv(_env_path)


class Settings(BaseSettings):
    # Database related
    DATABASE_URL: Optional[str] = None
    DATABASE_EXTRA_URLS: Optional[str] = None
    DB_HOST_IP: str = 'localhost'
    DB_USER: str = 'postgres'
    DB_PASSWORD: str = ''
    DB_NAME: str = 'rides'

    # Auth API
    API_BASE_URL: str = 'http://localhost:5000/api'
    API_TOKEN: Optional[str] = None
    HTTP_TIMEOUT: float = 30.0

    # Values used by the auth probes. Real addresses and codes belong in .env
    PROBE_EMAIL: str = 'test@example.com'
    PROBE_OTP: str = '000000'
    PROBE_PASSWORD: str = 'test123456'

    # Email (SMTP)
    EMAIL_HOST: str = 'smtp.gmail.com'
    EMAIL_PORT: int = 587
    EMAIL_USER: Optional[str] = None
    EMAIL_PASS: Optional[str] = None
    EMAIL_FROM: Optional[str] = None
    EMAIL_TEST_RECIPIENT: Optional[str] = None
    EMAIL_TIMEOUT: float = 30.0

    LOG_LEVEL: str = 'INFO'

    def database_urls(self) -> List[str]:
        """primary database address followed by any extra ones, in order"""
        primary = self.DATABASE_URL or (
            f"postgresql+psycopg2://{self.DB_USER}:{self.DB_PASSWORD}@{self.DB_HOST_IP}:5432/{self.DB_NAME}"
        )
        extras = [u.strip() for u in (self.DATABASE_EXTRA_URLS or '').split(',') if u.strip()]
        return [primary] + extras

settings = Settings()
