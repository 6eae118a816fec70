from dotenv import load_dotenv
load_dotenv()

from app.core.config import Settings
from app.db.base import Base
from app.db.session import build_engine
from app.models import User, Profile  # noqa: F401 - register models with Base

print("Creating database tables...")
engine = build_engine(Settings.from_env())
Base.metadata.create_all(bind=engine)
print("✅ users and profiles tables created successfully!")
