# MIT License
# Copyright (c) 2025 Hashborn

from enum import Enum

class EventType(str, Enum):
    # Pool events
    STAKED = "staked"
    WITHDRAWN = "withdrawn"
    REWARD_PAID = "reward_paid"
    REWARD_ADDED = "reward_added"

    # Factory events
    POOL_DEPLOYED = "pool_deployed"
    POOL_ACTIVATED = "pool_activated"
    POOL_ACTIVATION_FAILED = "pool_activation_failed"

class Role(str, Enum):
    FUNDING_AUTHORITY = "FUNDING_AUTHORITY"  # may notify new reward amounts
    OWNER = "OWNER"                          # may deploy pools from a factory

class ProtocolError(Exception):
    pass

class LedgerError(ProtocolError):
    """Malformed ledger call (negative amount, unknown asset, ...)."""
    pass

class PoolError(ProtocolError):
    pass

# --- Pool errors ---
class InvalidAmount(PoolError):
    pass

class InsufficientBalance(PoolError):
    pass

class TransferFailed(PoolError):
    pass

class InsufficientFunding(PoolError):
    pass

class ReentrantCall(PoolError):
    pass

class Unauthorized(PoolError):
    pass

# --- Pre-authorization errors ---
class AuthorizationInvalid(PoolError):
    pass

class AuthorizationExpired(PoolError):
    pass

# --- Factory errors ---
class FundingTransferFailed(PoolError):
    pass

class AlreadyDeployed(PoolError):
    pass

class NotDeployed(PoolError):
    pass

class NoPoolsDeployed(PoolError):
    pass

class NotYetActive(PoolError):
    pass

class InvalidActivationTime(PoolError):
    pass

class UnknownAsset(PoolError):
    pass
