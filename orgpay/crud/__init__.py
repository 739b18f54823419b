# CRUD operations package

from .merchant_account import merchant_account
from .transaction import transaction
from .subscription import subscription
from .webhook_event import webhook_event

__all__ = [
    'merchant_account',
    'transaction',
    'subscription',
    'webhook_event'
]
