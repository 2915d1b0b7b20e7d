"""
SQLAlchemy Database Models
Maps campaigns, their per-recipient results and the reference data they use
"""
from sqlalchemy import Column, String, Integer, Boolean, DateTime, Text, ForeignKey, UniqueConstraint
from sqlalchemy.orm import declarative_base, relationship
from datetime import datetime

Base = declarative_base()


class User(Base):
    """Campaign owner, authenticated by API key"""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    username = Column(String(255), nullable=False, unique=True)
    api_key = Column(String(255), nullable=False, unique=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class Template(Base):
    """Email template (rendering is done by the external renderer)"""
    __tablename__ = "templates"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    subject = Column(String(255), nullable=False, default="")
    html = Column(Text, default="")
    text = Column(Text, default="")
    modified_date = Column(DateTime, default=datetime.utcnow)


class Page(Base):
    """Landing page"""
    __tablename__ = "pages"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    html = Column(Text, default="")
    redirect_url = Column(Text, default="")
    modified_date = Column(DateTime, default=datetime.utcnow)


class Group(Base):
    """Named set of targets"""
    __tablename__ = "groups"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    modified_date = Column(DateTime, default=datetime.utcnow)

    targets = relationship(
        "Target",
        back_populates="group",
        cascade="all, delete-orphan",
        order_by="Target.id",
    )


class Target(Base):
    """Recipient inside a group"""
    __tablename__ = "targets"

    id = Column(Integer, primary_key=True)
    group_id = Column(Integer, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True)
    email = Column(String(255), nullable=False)
    first_name = Column(String(255), default="")
    last_name = Column(String(255), default="")
    position = Column(String(255), default="")

    group = relationship("Group", back_populates="targets")


class EmailType(Base):
    """Logical sender category (noreply, notification, marketing, ...)"""
    __tablename__ = "email_types"

    id = Column(Integer, primary_key=True)
    value = Column(String(100), nullable=False, unique=True)
    display_name = Column(String(255), nullable=False)
    description = Column(Text, default="")
    is_active = Column(Boolean, default=True)
    sort_order = Column(Integer, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class EmailAccount(Base):
    """Sender identity bound to a credential held by the dispatch engine"""
    __tablename__ = "email_accounts"

    id = Column(Integer, primary_key=True)
    email = Column(String(255), nullable=False, unique=True)
    email_type = Column(String(100), ForeignKey("email_types.value"), nullable=False, index=True)
    credential_id = Column(String(255), default="")
    credential_name = Column(String(255), default="")
    usage_count = Column(Integer, default=0)
    last_used = Column(DateTime)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Campaign(Base):
    """Campaign model - maps to campaigns table"""
    __tablename__ = "campaigns"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    created_date = Column(DateTime, default=datetime.utcnow)
    launch_date = Column(DateTime)
    send_by_date = Column(DateTime)
    completed_date = Column(DateTime)
    template_id = Column(Integer, ForeignKey("templates.id"))
    page_id = Column(Integer, ForeignKey("pages.id"))
    email_account_id = Column(Integer, ForeignKey("email_accounts.id"))
    status = Column(String(50), nullable=False, default="Queued")
    url = Column(Text, default="")

    template = relationship("Template")
    page = relationship("Page")
    email_account = relationship("EmailAccount")


class Result(Base):
    """Per-recipient tracking record, keyed externally by r_id"""
    __tablename__ = "results"
    __table_args__ = (UniqueConstraint("campaign_id", "email", name="uq_results_campaign_email"),)

    id = Column(Integer, primary_key=True)
    r_id = Column(String(64), nullable=False, unique=True, index=True)
    campaign_id = Column(Integer, ForeignKey("campaigns.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    email = Column(String(255), nullable=False)
    first_name = Column(String(255), default="")
    last_name = Column(String(255), default="")
    position = Column(String(255), default="")
    status = Column(String(50), nullable=False, default="Scheduled")
    ip = Column(String(64), default="")
    send_date = Column(DateTime)
    reported = Column(Boolean, default=False, nullable=False)
    modified_date = Column(DateTime, default=datetime.utcnow)


class Event(Base):
    """Append-only campaign timeline entry"""
    __tablename__ = "events"

    id = Column(Integer, primary_key=True)
    campaign_id = Column(Integer, ForeignKey("campaigns.id"), nullable=False, index=True)
    email = Column(String(255), default="")
    time = Column(DateTime, default=datetime.utcnow)
    message = Column(String(255), nullable=False)
    details = Column(Text, default="")


class MailLog(Base):
    """Pending-send bookkeeping for a single result"""
    __tablename__ = "mail_logs"

    id = Column(Integer, primary_key=True)
    campaign_id = Column(Integer, ForeignKey("campaigns.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    r_id = Column(String(64), nullable=False)
    send_date = Column(DateTime)
    send_attempt = Column(Integer, default=0)
    processing = Column(Boolean, default=False)
