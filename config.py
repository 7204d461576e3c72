# Configuration de l application
import os
from pydantic import EmailStr, HttpUrl
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    FLASK_ENV: str = "production"
    SECRET_KEY: str
    SMTP_HOST: str = "localhost"
    SMTP_PORT: int = 587
    SMTP_USER: EmailStr = "noreply@example.com"
    SMTP_PASS: str = ""
    # sans smtp les mails sont seulement journalises
    SMTP_ENABLED: bool = False
    BASE_URL: HttpUrl = "http://localhost:5000"  # URL de l application
    FRONTEND_URL: str = "http://localhost:3000"
    MAX_PDF_SIZE_MB: int = 20
    # dossier du stockage des pdf (originaux et signes)
    BLOB_FOLDER: str = "uploads"
    FETCH_TIMEOUT: float = 30
    LOG_LEVEL: str = "INFO"
    # URI de la base de donnees: utilise Postgres en prod sur Render ou sqlite en local
    SQLALCHEMY_DATABASE_URI: str = os.getenv("SQLALCHEMY_DATABASE_URI", "sqlite:////tmp/signflow.db")
    SQLALCHEMY_TRACK_MODIFICATIONS: bool = False

settings = Settings()
