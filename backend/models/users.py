# backend/models/users.py
from sqlalchemy import Column, Integer, String
from database import Base

# Operator account mirrored from the auth service. Only the identity and role
# are used here; credentials live with the auth service.
class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, nullable=False, index=True)
    role = Column(String, nullable=False)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
