# config.py
import os

from dotenv import load_dotenv

load_dotenv()


class Settings:
    # Almacén de registros: "sql" (SQLAlchemy) o "http" (base de datos remota)
    RECORD_STORE = os.getenv("RECORD_STORE", "sql").strip().lower()
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./groups.db")

    RECORD_STORE_URL = os.getenv("RECORD_STORE_URL")
    RECORD_STORE_TOKEN = os.getenv("RECORD_STORE_TOKEN")
    REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "10"))

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
    HOST = os.getenv("HOST", "0.0.0.0")
    PORT = int(os.getenv("PORT", "3003"))


settings = Settings()
