from sqlalchemy import Boolean, Column, Integer, String

from scoreboard.core.database import Base

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String)
    email = Column(String, unique=True, index=True)
    is_admin = Column(Boolean, default=False, nullable=False)
