from app.models.user import User
from app.models.profile import Profile

__all__ = [
    "User",
    "Profile",
]
