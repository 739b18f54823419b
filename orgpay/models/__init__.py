# Database models package

from .base import Base
from .merchant_account import MerchantAccount, AccountStatus
from .transaction import Transaction
from .subscription import Subscription, SubscriptionStatus
from .webhook_event import WebhookEvent, WebhookOutcome

__all__ = [
    'Base',
    'MerchantAccount',
    'AccountStatus',
    'Transaction',
    'Subscription',
    'SubscriptionStatus',
    'WebhookEvent',
    'WebhookOutcome'
]
