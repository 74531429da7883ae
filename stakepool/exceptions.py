"""
StakePool Exceptions

Custom exception classes for the staking engine. Every rejected operation
raises one of these and leaves pool and registry state untouched.
"""


class StakePoolException(Exception):
    """Base exception for the staking engine."""
    pass


class ConfigurationError(StakePoolException):
    """Configuration file or value is invalid."""
    pass


class PermissionDenied(StakePoolException):
    """Caller lacks the role required for the operation."""
    pass


class InvalidState(StakePoolException):
    """Operation is not allowed in the current lifecycle state."""
    pass


class OperatorNotFound(StakePoolException):
    """No operator exists for the given id or owner address."""
    pass


class InvalidOperatorData(StakePoolException):
    """Operator registration data is malformed or already in use."""
    pass


class InvalidParameter(StakePoolException):
    """Administrative parameter is out of range."""
    pass


class ZeroAmount(StakePoolException):
    """Amount must be greater than zero."""
    pass


class InsufficientAmount(StakePoolException):
    """Amount is below the required minimum or the available balance."""
    pass


class ZeroFee(StakePoolException):
    """Auxiliary fee must be greater than zero."""
    pass


class EmptyProof(StakePoolException):
    """Fee claim proof is empty."""
    pass


class ZeroIndex(StakePoolException):
    """Fee claim index must be greater than zero."""
    pass


class ThresholdReached(StakePoolException):
    """Deposit would push the pool above its submit threshold."""
    pass


class BelowMinimumDistribution(StakePoolException):
    """Accrued rewards are below the minimum distributable amount."""
    pass


class ClaimDelayNotReached(StakePoolException):
    """Withdrawal delay has not elapsed yet."""
    pass


class TooMuchToWithdraw(StakePoolException):
    """Requested withdrawal exceeds what the pool can source."""
    pass


class TicketNotFound(StakePoolException):
    """Withdrawal ticket does not exist."""
    pass


class Unavailable(StakePoolException):
    """Component is busy or the feature is switched off."""
    pass


class ContractPaused(StakePoolException):
    """Component is paused by an administrator."""
    pass
