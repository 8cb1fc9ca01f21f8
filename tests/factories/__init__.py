"""
Test factories for generating realistic test data.

Uses factory_boy for declarative test data generation.
"""

from .user import UserFactory, AdminUserFactory, InactiveUserFactory
from .newsletter import (
    ContactFactory,
    ConfirmedContactFactory,
    UnsubscribedContactFactory,
    CampaignFactory,
    ScheduledCampaignFactory,
    SendGridEventFactory,
)

__all__ = [
    "UserFactory",
    "AdminUserFactory",
    "InactiveUserFactory",
    # Newsletter
    "ContactFactory",
    "ConfirmedContactFactory",
    "UnsubscribedContactFactory",
    "CampaignFactory",
    "ScheduledCampaignFactory",
    "SendGridEventFactory",
]
