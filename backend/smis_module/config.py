import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


load_dotenv(Path(__file__).resolve().parent.parent / ".env")

DEFAULT_DB_PATH = Path(__file__).resolve().parent.parent / "smis.db"


@dataclass(frozen=True)
class Settings:
    database_url: str = os.getenv("SMIS_DATABASE_URL", f"sqlite:///{DEFAULT_DB_PATH}")
    jwt_secret: str = os.getenv("SMIS_JWT_SECRET", os.getenv("JWT_SECRET", "change-me-in-production"))
    jwt_algorithm: str = os.getenv("SMIS_JWT_ALGORITHM", "HS256")
    jwt_exp_minutes: int = int(os.getenv("SMIS_JWT_EXP_MINUTES", "60"))
    log_level: str = os.getenv("SMIS_LOG_LEVEL", "INFO")
    seed_admin_email: str = os.getenv("SMIS_SEED_ADMIN_EMAIL", "admin@school.local")
    seed_admin_password: str = os.getenv("SMIS_SEED_ADMIN_PASSWORD", "ChangeMe@123")
    default_page_limit: int = int(os.getenv("SMIS_DEFAULT_PAGE_LIMIT", "10"))
    max_page_limit: int = int(os.getenv("SMIS_MAX_PAGE_LIMIT", "100"))


settings = Settings()
