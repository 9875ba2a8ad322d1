import uuid
from datetime import UTC, datetime

from sqlalchemy import TIMESTAMP, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from api.infra.database import Base


class Contact(Base):
    """A message submitted through the public contact form."""

    __tablename__ = "contacts"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )
