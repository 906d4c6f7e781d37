"""
User accounts, identity and reputation
"""

from .user_repository import UserRepository
from .trust_ledger import TrustLedger
from .identity import TokenIssuer, IdentityVerifier
from .auth_service import AuthService

__all__ = ['UserRepository', 'TrustLedger', 'TokenIssuer', 'IdentityVerifier', 'AuthService']
