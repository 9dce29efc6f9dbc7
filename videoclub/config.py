import os

DATABASE_URL = os.getenv("VIDEOCLUB_DATABASE_URL", "sqlite:///./videoclub.db")
SQL_ECHO = os.getenv("VIDEOCLUB_SQL_ECHO", "false").lower() == "true"
SEED_ON_STARTUP = os.getenv("VIDEOCLUB_SEED_ON_STARTUP", "true").lower() == "true"
LOG_LEVEL = os.getenv("VIDEOCLUB_LOG_LEVEL", "INFO").upper()
PASSWORD_ITERATIONS = int(os.getenv("VIDEOCLUB_PASSWORD_ITERATIONS", "120000"))
LOG_FORMAT = "%(asctime)s %(levelname)s %(message)s"
