from app.core.config import Settings, get_settings
from app.core.database import Base, Database, get_db
from app.core.security import (
    verify_password,
    get_password_hash,
    TokenIssuer,
    TokenPair,
)
