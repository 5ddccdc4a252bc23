"""
Preset test scenarios offered next to the free-form test context input.

Each scenario builds a fresh TestContext on demand so the timestamp is the
moment the test runs, not the moment this module was imported.
"""
from __future__ import annotations

import copy
from typing import Any, Dict, List, NamedTuple, Optional

from .models import TestContext


class TestScenario(NamedTuple):
    __test__ = False  # not a pytest class

    key: str
    name: str
    description: str
    event_type: str
    event_data: Dict[str, Any]
    subject_id: str
    attributes: Dict[str, Any]

    def context(self) -> TestContext:
        return TestContext(
            eventType=self.event_type,
            eventData=copy.deepcopy(self.event_data),
            subjectId=self.subject_id,
            attributes=copy.deepcopy(self.attributes),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "name": self.name,
            "description": self.description,
            "context": self.context().model_dump(),
        }


PRESET_SCENARIOS: List[TestScenario] = [
    TestScenario(
        "first_checkin", "First check-in", "A member checks in for the first time",
        "check_in", {"type": "check_in", "isFirstTime": True, "consecutiveDays": 1},
        "test-user-001",
        {"membershipLevel": "silver",
         "user": {"level": 3, "points": 1500, "registerDays": 30, "tags": ["active", "new_member"]}},
    ),
    TestScenario(
        "consecutive_checkin", "7-day check-in streak", "A member reaches seven consecutive check-ins",
        "check_in", {"type": "check_in", "isFirstTime": False, "consecutiveDays": 7},
        "test-user-002",
        {"membershipLevel": "gold",
         "user": {"level": 5, "points": 5000, "registerDays": 90, "tags": ["loyal", "vip"]}},
    ),
    TestScenario(
        "large_purchase", "Large purchase", "A member completes a 10000 order",
        "purchase", {"type": "purchase", "amount": 10000, "productCount": 5, "category": "electronics"},
        "test-user-003",
        {"membershipLevel": "platinum",
         "user": {"level": 8, "points": 20000, "registerDays": 365, "tags": ["whale", "vip"]},
         "order": {"amount": 10000, "count": 50, "status": "completed"}},
    ),
    TestScenario(
        "first_purchase", "First purchase", "A new member places their first order",
        "purchase", {"type": "purchase", "amount": 299, "productCount": 1, "isFirstOrder": True},
        "test-user-004",
        {"membershipLevel": "bronze",
         "user": {"level": 1, "points": 100, "registerDays": 3, "tags": ["new_member"]},
         "order": {"amount": 299, "count": 1, "status": "completed"}},
    ),
    TestScenario(
        "level_up", "Level up", "A member moves from level 4 to level 5",
        "level_up", {"type": "level_up", "previousLevel": 4, "newLevel": 5},
        "test-user-005",
        {"membershipLevel": "gold",
         "user": {"level": 5, "points": 8000, "registerDays": 180, "tags": ["active", "growing"]}},
    ),
    TestScenario(
        "birthday", "Birthday visit", "A member opens the app on their birthday",
        "visit", {"type": "visit", "isBirthday": True, "source": "app"},
        "test-user-006",
        {"membershipLevel": "silver",
         "user": {"level": 4, "points": 3000, "registerDays": 200, "tags": ["birthday"]}},
    ),
]


def find_scenario(key: str) -> Optional[TestScenario]:
    for scenario in PRESET_SCENARIOS:
        if scenario.key == key:
            return scenario
    return None
