import logging
import sys

from jobportal.config import load_settings
from jobportal.db.models import Base
from jobportal.db.session import make_engine

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

def main():
    settings = load_settings()
    engine = make_engine(settings.database_url, echo=settings.db_echo)
    try:
        logger.info("Initializing database schema at %s ...", engine.url.render_as_string(hide_password=True))
        Base.metadata.create_all(bind=engine)
        logger.info("Database schema initialized successfully.")
    finally:
        engine.dispose()

if __name__ == "__main__":
    sys.exit(main())
