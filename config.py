import os

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Fail fast if the database URL is missing
DATABASE_URL = os.environ.get("DATABASE_URL")

if not DATABASE_URL:
    raise ValueError("DATABASE_URL is not set. Please check your .env file.")

SQL_ECHO = os.environ.get("SQL_ECHO", "false").lower() == "true"
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# Comma-separated list, "*" allows every origin (local development only)
CORS_ORIGINS = [
    origin.strip()
    for origin in os.environ.get("CORS_ORIGINS", "*").split(",")
    if origin.strip()
]
