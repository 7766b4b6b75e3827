# autoreply/services/onboarding/onboarding_service.py
"""Conversational onboarding of a business over WhatsApp"""
import logging
import re
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from autoreply.models.business import Business
from autoreply.models.onboarding_state import OnboardingState, OnboardingStep
from autoreply.services.whatsapp.whatsapp_service import WhatsAppService

logger = logging.getLogger(__name__)

PRODUCT_NAME = "AutoReply"

NEXT_STEP: Dict[OnboardingStep, OnboardingStep] = {
    OnboardingStep.NAME: OnboardingStep.SERVICES,
    OnboardingStep.SERVICES: OnboardingStep.AREAS,
    OnboardingStep.AREAS: OnboardingStep.HOURS,
    OnboardingStep.HOURS: OnboardingStep.BOOKING,
    OnboardingStep.BOOKING: OnboardingStep.CONFIRM,
}

STEP_PROMPTS: Dict[OnboardingStep, str] = {
    OnboardingStep.NAME: (
        f"Welcome to {PRODUCT_NAME}! 🎉\n\n"
        "Let's get your business set up. What's your business name?"
    ),
    OnboardingStep.SERVICES: (
        "Great! What services do you offer?\n\n"
        "Send one per line as *Service - Price*, e.g.\n"
        "Aircond Cleaning - 80\n"
        "Gas Top Up - 120"
    ),
    OnboardingStep.AREAS: "Which areas do you cover?\n\n(List areas separated by commas)",
    OnboardingStep.HOURS: (
        "What are your operating hours?\n\n"
        "Send one day per line, e.g.\n"
        "Monday: 09:00-18:00\n"
        "Sunday: Closed"
    ),
    OnboardingStep.BOOKING: "How should customers book appointments with you?",
}

CONFIRM_REPROMPT = "Please reply with *YES* to confirm or *EDIT* to start over."

SERVICE_LINE = re.compile(r"^(.+) - (.+)$")
HOURS_LINE = re.compile(r"^\s*([A-Za-z]+)\s*:\s*(\d{1,2}):(\d{2})\s*-\s*(\d{1,2}):(\d{2})\s*$")
CLOSED_LINE = re.compile(r"^\s*([A-Za-z]+)\s*:")

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


def parse_services(text: str) -> List[Dict[str, str]]:
    """'Name - Price' per line; the split is on the last ' - '"""
    services = []
    for line in (text or "").splitlines():
        match = SERVICE_LINE.match(line.strip())
        if not match:
            continue
        name, price = match.group(1).strip(), match.group(2).strip()
        if name and price:
            services.append({"name": name, "price": price})
    return services


def parse_areas(text: str) -> List[str]:
    return [area.strip() for area in (text or "").split(",") if area.strip()]


def normalize_day(token: str) -> Optional[str]:
    """Full lowercase weekday name; accepts abbreviations of three letters or more"""
    token = token.strip().lower()
    if len(token) < 3:
        return None
    for day in WEEKDAYS:
        if day.startswith(token):
            return day
    return None


def parse_hours(text: str) -> Dict[str, Dict]:
    """'Day: HH:MM-HH:MM' or 'Day: Closed' per line; anything else is dropped"""
    hours: Dict[str, Dict] = {}
    for line in (text or "").splitlines():
        if "closed" in line.lower():
            match = CLOSED_LINE.match(line)
            day = normalize_day(match.group(1)) if match else None
            if day:
                hours[day] = {"closed": True}
            continue

        match = HOURS_LINE.match(line)
        if not match:
            continue
        day = normalize_day(match.group(1))
        if not day:
            continue
        hours[day] = {
            "open": f"{int(match.group(2)):02d}:{match.group(3)}",
            "close": f"{int(match.group(4)):02d}:{match.group(5)}",
        }
    return hours


def build_summary(data: Dict[str, str]) -> str:
    def answer(step: OnboardingStep) -> str:
        return data.get(step.value) or "N/A"

    return (
        "📋 *Business Profile Summary*\n\n"
        f"🏢 *Business Name:* {answer(OnboardingStep.NAME)}\n\n"
        f"💼 *Services:*\n{answer(OnboardingStep.SERVICES)}\n\n"
        f"📍 *Coverage Areas:* {answer(OnboardingStep.AREAS)}\n\n"
        f"🕐 *Operating Hours:*\n{answer(OnboardingStep.HOURS)}\n\n"
        f"📅 *Booking Method:* {answer(OnboardingStep.BOOKING)}\n\n"
        "---\n\n"
        "Is this correct?\n\n"
        "Reply *YES* to confirm or *EDIT* to start over."
    )


class OnboardingService:
    """
    Walks a sender through name, services, areas, hours and booking, then
    asks for YES/EDIT confirmation.

    When a tenant Business is passed in, only the first phone to start
    onboarding for it (the lock holder) may continue; everyone else is
    ignored without a reply.
    """

    def __init__(self, db: Session, whatsapp_service: WhatsAppService):
        self.db = db
        self.whatsapp_service = whatsapp_service

    def get_active_state(self, phone_number: str) -> Optional[OnboardingState]:
        return self.db.query(OnboardingState).filter(
            OnboardingState.phone_number == phone_number,
            OnboardingState.is_complete.is_(False),
        ).order_by(OnboardingState.id.desc()).first()

    def has_active_onboarding(self, phone_number: str) -> bool:
        return self.get_active_state(phone_number) is not None

    def _send(self, phone_number: str, text: str, business: Optional[Business]) -> None:
        self.whatsapp_service.send_message(phone_number, text, business)

    def _registered_business(self, phone_number: str, business: Optional[Business]) -> Optional[Business]:
        if business is not None and business.is_onboarded:
            if phone_number in (business.phone_number, business.onboarding_phone):
                return business
            return None
        return self.db.query(Business).filter(
            Business.phone_number == phone_number,
            Business.is_onboarded.is_(True),
        ).first()

    def _acquire_lock(self, business: Business, phone_number: str) -> bool:
        """Set onboarding_phone only if nobody holds it yet"""
        if business.onboarding_phone == phone_number:
            return True

        updated = self.db.query(Business).filter(
            Business.id == business.id,
            Business.onboarding_phone.is_(None),
        ).update({Business.onboarding_phone: phone_number}, synchronize_session=False)
        self.db.commit()
        self.db.refresh(business)

        return updated == 1 or business.onboarding_phone == phone_number

    def start_onboarding(self, phone_number: str, business: Optional[Business] = None) -> None:
        if business is not None and not business.can_onboard(phone_number):
            logger.info(
                f"Onboarding for business {business.id} is locked to another phone, ignoring {phone_number}"
            )
            return

        if business is not None and business.is_onboarded and phone_number not in (
            business.phone_number, business.onboarding_phone
        ):
            logger.info(
                f"Business {business.id} is already onboarded, ignoring onboarding trigger from {phone_number}"
            )
            return

        registered = self._registered_business(phone_number, business)
        if registered:
            self._send(
                phone_number,
                f"You've already completed onboarding! Your business '{registered.name}' is registered.",
                business,
            )
            return

        existing_state = self.get_active_state(phone_number)
        if existing_state:
            self._send(
                phone_number,
                "You already have an onboarding in progress. Let's continue from where we left off.\n\n"
                + self.prompt_for_step(existing_state.step, existing_state.collected_data),
                business,
            )
            return

        if business is not None and not self._acquire_lock(business, phone_number):
            logger.info(
                f"Lost onboarding lock race for business {business.id}, ignoring {phone_number}"
            )
            return

        state = OnboardingState(
            phone_number=phone_number,
            current_step=OnboardingStep.NAME.value,
            collected_data={},
            is_complete=False,
        )
        self.db.add(state)
        self.db.commit()

        self._send(phone_number, STEP_PROMPTS[OnboardingStep.NAME], business)
        logger.info(
            f"Onboarding started for {phone_number}",
            extra={"business_id": business.id if business else None},
        )

    @staticmethod
    def prompt_for_step(step: OnboardingStep, collected_data: Optional[Dict] = None) -> str:
        if step == OnboardingStep.CONFIRM:
            return build_summary(collected_data or {})
        return STEP_PROMPTS[step]

    def process_response(self, phone_number: str, message: str, business: Optional[Business] = None) -> None:
        if business is not None and not business.can_onboard(phone_number):
            logger.info(
                f"Onboarding for business {business.id} is locked to another phone, ignoring {phone_number}"
            )
            return

        state = self.get_active_state(phone_number)
        if not state:
            logger.warning(f"No active onboarding state found for {phone_number}")
            return

        current_step = state.step
        if current_step == OnboardingStep.CONFIRM:
            self._handle_confirmation(state, message, business)
            return

        collected_data = dict(state.collected_data or {})
        collected_data[current_step.value] = message.strip()
        next_step = NEXT_STEP[current_step]

        state.collected_data = collected_data
        state.current_step = next_step.value
        self.db.commit()

        self._send(phone_number, self.prompt_for_step(next_step, collected_data), business)
        logger.info(
            f"Onboarding step {current_step.value} -> {next_step.value} for {phone_number}"
        )

    def _handle_confirmation(self, state: OnboardingState, message: str, business: Optional[Business]) -> None:
        response = message.strip().upper()

        if response == "YES":
            saved = self.save_business_profile(state.phone_number, state.collected_data or {}, business)
            state.is_complete = True
            self.db.commit()

            self._send(
                state.phone_number,
                "✅ *Onboarding Complete!*\n\n"
                f"Your business profile has been successfully saved. Welcome to {PRODUCT_NAME}! 🎉",
                saved,
            )
            logger.info(f"Onboarding completed for {state.phone_number}", extra={"business_id": saved.id})

        elif response == "EDIT":
            state.current_step = OnboardingStep.NAME.value
            state.collected_data = {}
            self.db.commit()

            self._send(
                state.phone_number,
                "No problem! Let's start over.\n\n" + STEP_PROMPTS[OnboardingStep.NAME],
                business,
            )
            logger.info(f"Onboarding restarted for {state.phone_number}")

        else:
            self._send(state.phone_number, CONFIRM_REPROMPT, business)

    def save_business_profile(
            self,
            phone_number: str,
            data: Dict[str, str],
            business: Optional[Business] = None,
    ) -> Business:
        """Parse the raw answers and create or update the Business"""
        owner = self.db.query(Business).filter(Business.phone_number == phone_number).first()

        if business is None:
            business = owner or Business()
            self.db.add(business)

        if owner is None or owner is business:
            business.phone_number = phone_number
        else:
            logger.warning(
                f"Phone {phone_number} already owns business {owner.id}, not reassigning"
            )

        business.name = data.get(OnboardingStep.NAME.value, "")
        business.services = parse_services(data.get(OnboardingStep.SERVICES.value, ""))
        business.areas = parse_areas(data.get(OnboardingStep.AREAS.value, ""))
        business.operating_hours = parse_hours(data.get(OnboardingStep.HOURS.value, ""))
        business.booking_method = data.get(OnboardingStep.BOOKING.value, "")
        business.profile_data = dict(data)
        business.is_onboarded = True

        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(business)

        logger.info(f"Business profile saved for {phone_number}: {business.name}")
        return business
