"""Seed a demo profile and print owner / operator tokens for local testing."""
import logging

from app.core.security import ROLE_OPERATOR, ROLE_OWNER, create_access_token
from app.crud import crud_profile
from app.db.session import SessionLocal
from app.schemas.profile import ProfileCreate

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

DEMO_USERNAME = "demo"


def init_db() -> None:
    db = SessionLocal()
    try:
        profile = crud_profile.get_by_username(db, DEMO_USERNAME)
        if not profile:
            logger.info("Creating demo profile '%s'", DEMO_USERNAME)
            profile = crud_profile.create(
                db,
                obj_in=ProfileCreate(username=DEMO_USERNAME, display_name="Demo", bio="Demo profile"),
            )
        print(f"owner token:    {create_access_token(profile.id, ROLE_OWNER)}")
        print(f"operator token: {create_access_token('operator', ROLE_OPERATOR)}")
    finally:
        db.close()


if __name__ == "__main__":
    init_db()
