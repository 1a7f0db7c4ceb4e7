# Import models so Base metadata is aware of them
from .history import HistoryEntry  # noqa: F401
from .user_profile import UserProfile  # noqa: F401
