"""
Synthetic Funnel Event Generator

Generates realistic tracking events for development and demos:
- 9-step lead funnels and 6-step call funnels
- A page_land event per session, then a weighted number of steps
- form_complete with lead PII at the end of completed lead funnels
"""

import random
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence, Tuple

from faker import Faker

fake = Faker("en_US")


# =============================================================================
# CONFIGURATION
# =============================================================================

STATES = ["California", "Texas", "Florida", "New York", "Arizona", "Ohio", "Pennsylvania", "Illinois"]
AGES = ["55-60", "61-65", "66-70", "71-75", "76-80", "80+"]
INCOMES = ["No Income", "Under $25k", "$25k-$50k", "$50k-$75k", "$75k-$100k", "Over $100k"]
BUDGETS = ["Under $50/mo", "$50-$100/mo", "$100-$200/mo", "$200-$300/mo", "Over $300/mo"]
BENEFICIARIES = ["Just Me", "Me & Spouse", "Family", "Other"]
PURPOSES = ["Final Expense", "Mortgage Protection", "Income Replacement", "Legacy Planning"]

LEAD_STEPS: List[Tuple[int, str, Optional[List[str]]]] = [
    (1, "State", STATES),
    (2, "Age", AGES),
    (3, "Income", INCOMES),
    (4, "Budget", BUDGETS),
    (5, "Beneficiary", BENEFICIARIES),
    (6, "Name", None),
    (7, "Email", None),
    (8, "Phone", None),
    (9, "Thank You", None),
]

CALL_STEPS: List[Tuple[int, str, Optional[List[str]]]] = [
    (1, "State", STATES),
    (2, "Age", AGES),
    (3, "Income", INCOMES),
    (4, "Budget", BUDGETS),
    (5, "Purpose", PURPOSES),
    (6, "Call CTA", None),
]

AUDIENCES = ["seniors", "veterans", "first-responders"]
DOMAINS = ["blueskylife.net", "blueskylife.io"]
DEVICE_TYPES = [("mobile", 0.65), ("desktop", 0.30), ("tablet", 0.05)]
BROWSERS = ["Chrome", "Safari", "Firefox", "Edge"]
OPERATING_SYSTEMS = {"mobile": ["iOS", "Android"], "tablet": ["iPadOS", "Android"], "desktop": ["Windows", "macOS"]}
UTM_SOURCES = [("facebook", 0.6), ("google", 0.25), (None, 0.15)]
UTM_MEDIUMS = {"facebook": "paid_social", "google": "cpc"}
CAMPAIGNS = ["spring_final_expense", "vets_awareness", "retargeting_q2", "lookalike_1pct"]


@dataclass
class GeneratorConfig:
    """Knobs for one generation run"""
    sessions: int = 500
    days: int = 14
    bot_share: float = 0.03
    call_share: float = 0.35
    seed: Optional[int] = 42


def _weighted(choices: Sequence[Tuple[Any, float]]) -> Any:
    values, weights = zip(*choices)
    return random.choices(values, weights=weights)[0]


def weighted_step_count(max_steps: int) -> int:
    """Number of steps a session completes; drop-off concentrates early."""
    completed = 0
    for step in range(max_steps):
        keep = 0.88 if step == 0 else 0.8
        if random.random() > keep:
            break
        completed += 1
    return completed


class FunnelSessionGenerator:
    """Generate tracking events for synthetic funnel sessions"""

    def __init__(self, config: Optional[GeneratorConfig] = None):
        self.config = config or GeneratorConfig()
        if self.config.seed is not None:
            random.seed(self.config.seed)
            Faker.seed(self.config.seed)

    def generate(self, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Generate events for `config.sessions` sessions."""
        now = now or datetime.utcnow()
        events: List[Dict[str, Any]] = []
        for _ in range(self.config.sessions):
            started = now - timedelta(seconds=random.randint(0, self.config.days * 86400))
            events.extend(self.generate_session(started))
        return events

    def generate_session(self, started: datetime) -> List[Dict[str, Any]]:
        """Events of one session: a landing followed by the completed steps."""
        is_call = random.random() < self.config.call_share
        steps = CALL_STEPS if is_call else LEAD_STEPS
        device = _weighted(DEVICE_TYPES)
        source = _weighted(UTM_SOURCES)
        selected_state = None

        session = {
            "session_id": str(uuid.uuid4()),
            "domain": random.choice(DOMAINS),
            "page": random.choice(AUDIENCES),
            "page_type": "call" if is_call else "lead",
            "funnel_id": "call-v2" if is_call else "lead-v3",
            "device_type": device,
            "os": random.choice(OPERATING_SYSTEMS[device]),
            "browser": random.choice(BROWSERS),
            "geo_state": fake.state_abbr(),
            "utm_source": source,
            "utm_medium": UTM_MEDIUMS.get(source),
            "utm_campaign": random.choice(CAMPAIGNS) if source else None,
            "referrer": "https://l.facebook.com/" if source == "facebook" else None,
            "fbclid": fake.sha1()[:24] if source == "facebook" else None,
            "is_bot": random.random() < self.config.bot_share,
        }

        events = [{
            **session,
            "event_type": "page_land",
            "step_number": 0,
            "step_name": "Landing",
            "event_timestamp": started,
        }]

        at = started
        for number, name, values in steps[:weighted_step_count(len(steps))]:
            at += timedelta(seconds=random.uniform(5, 35))
            value = random.choice(values) if values else None
            if number == 1:
                selected_state = value
            events.append({
                **session,
                "event_type": "step_complete",
                "step_number": number,
                "step_name": name,
                "selected_value": value,
                "selected_state": selected_state,
                "event_timestamp": at,
            })

        if not is_call and events[-1]["step_number"] == LEAD_STEPS[-1][0]:
            events.append({
                **session,
                "event_type": "form_complete",
                "step_number": LEAD_STEPS[-1][0],
                "step_name": LEAD_STEPS[-1][1],
                "selected_state": selected_state,
                "event_timestamp": at + timedelta(seconds=1),
                "first_name": fake.first_name(),
                "last_name": fake.last_name(),
                "email": fake.email(),
                "phone": fake.numerify("##########"),
                "ad_id": str(fake.random_number(digits=12)),
                "campaign_id": str(fake.random_number(digits=12)),
            })

        return events
