from enum import Enum

from sqlalchemy import Column, String, DateTime, JSON, Boolean, Integer, Index
from sqlalchemy.sql import func

from autoreply.models.base import Base


class OnboardingStep(str, Enum):
    NAME = "name"
    SERVICES = "services"
    AREAS = "areas"
    HOURS = "hours"
    BOOKING = "booking"
    CONFIRM = "confirm"


class OnboardingState(Base):
    __tablename__ = "onboarding_states"

    id = Column(Integer, primary_key=True, autoincrement=True)
    phone_number = Column(String(30), nullable=False)
    current_step = Column(String(20), nullable=False, default=OnboardingStep.NAME.value)
    collected_data = Column(JSON, nullable=False, default=dict)  # step -> raw answer
    is_complete = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("ix_onboarding_states_phone_complete", "phone_number", "is_complete"),
    )

    @property
    def step(self) -> OnboardingStep:
        return OnboardingStep(self.current_step)
