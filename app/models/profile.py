import uuid
from sqlalchemy import Column, String, Boolean, DateTime, Text, Uuid, func
from sqlalchemy.orm import relationship
from app.db.base_class import Base


class Profile(Base):
    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    username = Column(String(64), unique=True, nullable=False, index=True)  # stored lowercase
    display_name = Column(String(120), nullable=True)
    bio = Column(Text, nullable=True)
    is_public = Column(Boolean, nullable=False, default=True)

    # ── Custom domain canonical settings ──
    canonical_preference = Column(String(16), nullable=False, default="non-www")  # www, non-www, auto
    force_https = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    domains = relationship("CustomDomain", back_populates="owner", cascade="all, delete-orphan")
