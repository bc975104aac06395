# Classroom backend package
__version__ = "1.0.0"

from .db import init_db, get_session, engine
from .main import app

__all__ = [
    "app",
    "init_db",
    "get_session",
    "engine",
]
