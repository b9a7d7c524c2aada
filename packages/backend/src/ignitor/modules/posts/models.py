"""Post table — the example resource wired through the whole scaffold."""

from sqlalchemy import Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ignitor.db.models import Base, SoftDeleteMixin, TimestampMixin


class Post(TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "posts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    # Unique across soft-deleted rows too — the real guard for slug races
    slug: Mapped[str] = mapped_column(String(220), unique=True, nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False, default="")
