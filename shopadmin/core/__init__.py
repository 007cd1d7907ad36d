from shopadmin.core.config import settings
from shopadmin.core.database import Base, AsyncSessionLocal, get_db_session
