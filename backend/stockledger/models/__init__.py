from .inventory import Product, Sale, LedgerSequence
from .auth import User, AuthSession, LoginThrottle
from .security import SecurityEvent, AuditEvent

__all__ = [
    'Product', 'Sale', 'LedgerSequence',
    'User', 'AuthSession', 'LoginThrottle',
    'SecurityEvent', 'AuditEvent',
]
