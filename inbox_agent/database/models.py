"""
Database models for the inbox agent.
"""

from sqlalchemy import (
    Column, Integer, String, DateTime, Text, ForeignKey, Float,
    Boolean, JSON, create_engine, Index
)
from sqlalchemy.orm import relationship, sessionmaker, declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class Account(Base):
    """Connected mailbox account."""
    __tablename__ = 'accounts'

    id = Column(Integer, primary_key=True)
    email_address = Column(String(255), unique=True, nullable=False)
    provider = Column(String(50), nullable=False, default='gmail')
    is_active = Column(Boolean, default=True)
    last_sync = Column(DateTime)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    emails = relationship("Email", back_populates="account", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Account(email='{self.email_address}', provider='{self.provider}')>"


class Category(Base):
    """User-defined category that emails are classified into."""
    __tablename__ = 'categories'

    id = Column(Integer, primary_key=True)
    name = Column(String(50), unique=True, nullable=False)
    description = Column(String(500))
    color = Column(String(7), nullable=False, default='#6366f1')
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    emails = relationship("Email", back_populates="category")

    def __repr__(self):
        return f"<Category(name='{self.name}')>"


class Email(Base):
    """An ingested message, keyed by the provider's message id."""
    __tablename__ = 'emails'

    id = Column(Integer, primary_key=True)
    account_id = Column(Integer, ForeignKey('accounts.id'), nullable=False)
    provider_message_id = Column(String(255), nullable=False, unique=True)
    thread_id = Column(String(255))
    subject = Column(Text, nullable=False, default='(No Subject)')
    snippet = Column(Text)
    from_address = Column(String(255), nullable=False)
    from_name = Column(String(255))
    to_addresses = Column(JSON, default=list)
    raw_headers = Column(JSON, default=dict)
    body_text = Column(Text)
    body_html = Column(Text)
    unsubscribe_link = Column(Text)
    category_id = Column(Integer, ForeignKey('categories.id', ondelete='SET NULL'))
    ai_confidence = Column(Float)
    summary = Column(Text)
    is_read = Column(Boolean, default=False)
    is_archived = Column(Boolean, default=False)
    received_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    account = relationship("Account", back_populates="emails")
    category = relationship("Category", back_populates="emails")
    unsubscribe_attempts = relationship("UnsubscribeAttempt", back_populates="email")

    __table_args__ = (
        Index('idx_account_received', 'account_id', 'received_at'),
        Index('idx_email_category', 'category_id'),
        Index('idx_from_address', 'from_address'),
    )

    def needs_summary(self) -> bool:
        return self.summary is None

    def needs_category(self) -> bool:
        return self.category_id is None

    def __repr__(self):
        subject = (self.subject or '')[:50]
        return f"<Email(from='{self.from_address}', subject='{subject}')>"


class UnsubscribeAttempt(Base):
    """Audit record of one unsubscribe agent run against one URL."""
    __tablename__ = 'unsubscribe_attempts'

    id = Column(Integer, primary_key=True)
    email_id = Column(Integer, ForeignKey('emails.id', ondelete='SET NULL'))
    url = Column(Text, nullable=False)
    owner_email = Column(String(255))
    succeeded = Column(Boolean, nullable=False, default=False)
    status = Column(String(50))  # unsubscribed, already_unsubscribed, error, unknown, requires_action
    message = Column(Text)
    screenshot_before_path = Column(Text)
    screenshot_after_path = Column(Text)
    attempted_at = Column(DateTime, default=func.now())

    email = relationship("Email", back_populates="unsubscribe_attempts")

    __table_args__ = (
        Index('idx_attempt_email', 'email_id'),
    )

    def __repr__(self):
        return f"<UnsubscribeAttempt(url='{self.url[:50]}', succeeded={self.succeeded})>"


class AIUsage(Base):
    """Token accounting for one model call."""
    __tablename__ = 'ai_usage'

    id = Column(Integer, primary_key=True)
    operation = Column(String(50), nullable=False)  # summarization, categorization, page_analysis, ...
    model = Column(String(100), nullable=False)
    prompt_tokens = Column(Integer, default=0)
    completion_tokens = Column(Integer, default=0)
    total_tokens = Column(Integer, default=0)
    estimated_cost = Column(Float, default=0.0)
    created_at = Column(DateTime, default=func.now())

    __table_args__ = (
        Index('idx_usage_operation', 'operation', 'created_at'),
    )

    def __repr__(self):
        return f"<AIUsage(operation='{self.operation}', total_tokens={self.total_tokens})>"


def create_database_engine(database_url: str = "sqlite:///inbox_agent.db"):
    """Create and return a database engine."""
    engine = create_engine(
        database_url,
        echo=False,
        pool_pre_ping=True,
        connect_args={"check_same_thread": False} if database_url.startswith("sqlite") else {}
    )
    return engine


def create_tables(engine):
    """Create all tables in the database."""
    Base.metadata.create_all(engine)


def get_session_maker(engine):
    """Get a session maker for the database."""
    return sessionmaker(bind=engine)
