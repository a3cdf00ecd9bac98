from __future__ import annotations

import uuid
from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, Float, ForeignKey, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    pass


class Ecosystem(Base):
    __tablename__ = "ecosystems"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    region: Mapped[str | None] = mapped_column(String(200))
    description: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class Organization(Base):
    __tablename__ = "organizations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    ecosystem_id: Mapped[str] = mapped_column(String(36), ForeignKey("ecosystems.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    org_type: Mapped[str] = mapped_column(String(50), default="nonprofit")  # see constants.ORG_TYPES
    mandate: Mapped[str | None] = mapped_column(Text)
    controls: Mapped[str | None] = mapped_column(Text)
    constraints: Mapped[str | None] = mapped_column(Text)
    decision_cycle: Mapped[str | None] = mapped_column(Text)
    website: Mapped[str | None] = mapped_column(String(500))
    notes: Mapped[str | None] = mapped_column(Text)
    last_reviewed_at: Mapped[datetime | None] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class Practitioner(Base):
    __tablename__ = "practitioners"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    ecosystem_id: Mapped[str] = mapped_column(String(36), ForeignKey("ecosystems.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    discipline: Mapped[str | None] = mapped_column(String(200))
    tenure: Mapped[str | None] = mapped_column(String(200))
    income_sources: Mapped[str | None] = mapped_column(Text)
    retention_factors: Mapped[str | None] = mapped_column(Text)
    risk_factors: Mapped[str | None] = mapped_column(Text)
    institutional_affiliations: Mapped[str | None] = mapped_column(Text)
    notes: Mapped[str | None] = mapped_column(Text)
    last_reviewed_at: Mapped[datetime | None] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class Investment(Base):
    __tablename__ = "investments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    ecosystem_id: Mapped[str] = mapped_column(String(36), ForeignKey("ecosystems.id"), nullable=False, index=True)
    # Soft references: neither id nor name is guaranteed to resolve
    source_org_id: Mapped[str | None] = mapped_column(String(36))
    source_name: Mapped[str | None] = mapped_column(String(300))
    initiative_name: Mapped[str] = mapped_column(String(300), nullable=False)
    amount: Mapped[float | None] = mapped_column(Float)
    period: Mapped[str | None] = mapped_column(String(100))
    category: Mapped[str | None] = mapped_column(String(50))
    status: Mapped[str] = mapped_column(String(20), default="active")  # planned | active | completed | cancelled
    description: Mapped[str | None] = mapped_column(Text)
    outcome: Mapped[str | None] = mapped_column(Text)
    compounding: Mapped[str] = mapped_column(String(20), default="unknown")
    compounding_notes: Mapped[str | None] = mapped_column(Text)
    builds_on_id: Mapped[str | None] = mapped_column(String(36))
    led_to_id: Mapped[str | None] = mapped_column(String(36))
    precedent_id: Mapped[str | None] = mapped_column(String(36))
    last_reviewed_at: Mapped[datetime | None] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class Decision(Base):
    __tablename__ = "decisions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    ecosystem_id: Mapped[str] = mapped_column(String(36), ForeignKey("ecosystems.id"), nullable=False, index=True)
    stakeholder_org_id: Mapped[str | None] = mapped_column(String(36))
    stakeholder_name: Mapped[str | None] = mapped_column(String(300))
    decision_title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    deliberation_start: Mapped[date | None] = mapped_column(Date)
    deliberation_end: Mapped[date | None] = mapped_column(Date)
    locks_date: Mapped[date | None] = mapped_column(Date)
    status: Mapped[str] = mapped_column(String(20), default="upcoming")  # upcoming | deliberating | locked | completed
    dependencies: Mapped[str | None] = mapped_column(Text)
    intervention_needed: Mapped[str | None] = mapped_column(Text)
    outcome: Mapped[str | None] = mapped_column(Text)
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False)
    recurrence_pattern: Mapped[str | None] = mapped_column(String(200))
    last_reviewed_at: Mapped[datetime | None] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    dependency_links: Mapped[list[DecisionDependency]] = relationship(
        "DecisionDependency", foreign_keys="DecisionDependency.decision_id",
        cascade="all, delete-orphan",
    )


class DecisionDependency(Base):
    __tablename__ = "decision_dependencies"

    decision_id: Mapped[str] = mapped_column(String(36), ForeignKey("decisions.id"), primary_key=True)
    depends_on_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    description: Mapped[str | None] = mapped_column(Text)


class Precedent(Base):
    __tablename__ = "precedents"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    ecosystem_id: Mapped[str] = mapped_column(String(36), ForeignKey("ecosystems.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    period: Mapped[str | None] = mapped_column(String(100))
    involved: Mapped[str | None] = mapped_column(Text)  # comma-separated, may carry "(annotations)"
    description: Mapped[str | None] = mapped_column(Text)
    what_produced: Mapped[str | None] = mapped_column(Text)
    what_worked: Mapped[str | None] = mapped_column(Text)
    what_didnt: Mapped[str | None] = mapped_column(Text)
    connects_to: Mapped[str | None] = mapped_column(Text)
    takeaway: Mapped[str | None] = mapped_column(Text)
    investment_id: Mapped[str | None] = mapped_column(String(36))
    last_reviewed_at: Mapped[datetime | None] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class Narrative(Base):
    __tablename__ = "narratives"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    ecosystem_id: Mapped[str] = mapped_column(String(36), ForeignKey("ecosystems.id"), nullable=False, index=True)
    source_org_id: Mapped[str | None] = mapped_column(String(36))
    source_name: Mapped[str | None] = mapped_column(String(300))
    source_type: Mapped[str] = mapped_column(String(50), default="institutional")
    narrative_date: Mapped[date | None] = mapped_column("date", Date)
    narrative_text: Mapped[str] = mapped_column(Text, default="")
    reality_text: Mapped[str | None] = mapped_column(Text)
    gap: Mapped[str] = mapped_column(String(20), default="aligned")  # high | medium | low | aligned
    evidence_notes: Mapped[str | None] = mapped_column(Text)
    source_url: Mapped[str | None] = mapped_column(String(500))
    significance: Mapped[str | None] = mapped_column(Text)
    last_reviewed_at: Mapped[datetime | None] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class Opportunity(Base):
    __tablename__ = "opportunities"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    ecosystem_id: Mapped[str] = mapped_column(String(36), ForeignKey("ecosystems.id"), nullable=False, index=True)
    source_org_id: Mapped[str | None] = mapped_column(String(36))
    source_name: Mapped[str | None] = mapped_column(String(300))
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    opportunity_type: Mapped[str] = mapped_column(String(30), default="grant")
    amount_min: Mapped[float | None] = mapped_column(Float)
    amount_max: Mapped[float | None] = mapped_column(Float)
    deadline: Mapped[date | None] = mapped_column(Date)
    status: Mapped[str] = mapped_column(String(20), default="open")  # open | closing_soon | closed | awarded
    awarded_to: Mapped[str | None] = mapped_column(String(300))
    awarded_investment_id: Mapped[str | None] = mapped_column(String(36))
    last_reviewed_at: Mapped[datetime | None] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class Submission(Base):
    __tablename__ = "submissions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    ecosystem_id: Mapped[str] = mapped_column(String(36), ForeignKey("ecosystems.id"), nullable=False, index=True)
    submission_type: Mapped[str] = mapped_column(String(50), nullable=False)
    data_json: Mapped[str] = mapped_column(Text, default="{}")
    submitter_name: Mapped[str | None] = mapped_column(String(300))
    submitter_email: Mapped[str | None] = mapped_column(String(300))
    submitter_org: Mapped[str | None] = mapped_column(String(300))
    status: Mapped[str] = mapped_column(String(20), default="pending")  # pending | approved | rejected
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class Output(Base):
    __tablename__ = "outputs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    ecosystem_id: Mapped[str] = mapped_column(String(36), ForeignKey("ecosystems.id"), nullable=False, index=True)
    output_type: Mapped[str] = mapped_column(String(50), default="field_note")  # see constants.OUTPUT_TYPES
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    summary: Mapped[str | None] = mapped_column(Text)
    content: Mapped[str | None] = mapped_column(Text)
    target_stakeholder_id: Mapped[str | None] = mapped_column(String(36))
    triggered_by_decision_id: Mapped[str | None] = mapped_column(String(36))
    is_published: Mapped[bool] = mapped_column(Boolean, default=False)
    published_at: Mapped[datetime | None] = mapped_column(DateTime)
    delivery_status: Mapped[str] = mapped_column(String(20), default="draft")  # draft | published | delivered | acknowledged
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime)
    delivered_to_contact: Mapped[str | None] = mapped_column(String(300))
    delivery_notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    references: Mapped[list[OutputReference]] = relationship(
        "OutputReference", back_populates="output", cascade="all, delete-orphan",
    )


class OutputReference(Base):
    __tablename__ = "output_references"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    output_id: Mapped[str] = mapped_column(String(36), ForeignKey("outputs.id"), nullable=False, index=True)
    reference_type: Mapped[str] = mapped_column(String(50), nullable=False)  # entity type, e.g. "investment"
    reference_id: Mapped[str] = mapped_column(String(36), nullable=False)
    context_note: Mapped[str | None] = mapped_column(Text)

    output: Mapped[Output] = relationship("Output", back_populates="references")


class ActivityLog(Base):
    __tablename__ = "activity_log"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    ecosystem_id: Mapped[str] = mapped_column(String(36), ForeignKey("ecosystems.id"), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(30), nullable=False)  # created | updated | reviewed | published
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(36), nullable=False)
    changes_json: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
