from fastapi import Depends, Request
from sqlalchemy.orm import Session

from app.core.config import Settings
from app.db.session import get_db
from app.services.dodo_client import DodoClient
from app.services.identity_resolver import IdentityResolver
from app.services.profile_store import IdentityDirectory, ProfileStore
from app.services.reconciliation import ReconciliationEngine


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_dodo_client(settings: Settings = Depends(get_settings)) -> DodoClient:
    """Raises ConfigurationError (500) when the Dodo API key is missing."""
    return DodoClient.from_settings(settings)


def get_profile_store(db: Session = Depends(get_db)) -> ProfileStore:
    return ProfileStore(db)


def get_identity_resolver(
    store: ProfileStore = Depends(get_profile_store),
    db: Session = Depends(get_db),
) -> IdentityResolver:
    return IdentityResolver(store, IdentityDirectory(db))


def get_reconciliation_engine(store: ProfileStore = Depends(get_profile_store)) -> ReconciliationEngine:
    return ReconciliationEngine(store)
