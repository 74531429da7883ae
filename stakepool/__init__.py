"""
StakePool Package

Pooled-stake accounting engine: an operator registry with a validator
lifecycle state machine, a liquid staking pool that mints proportional
shares, and a withdrawal ticket ledger for delayed redemptions.

Core imports are lazily loaded. For direct module access, import from
submodules:

    from stakepool.pool import StakePool
    from stakepool.validator import OperatorRegistry
    from stakepool.tokens import FungibleToken, WithdrawalTicketLedger
"""

__version__ = "1.0.0"


def __getattr__(name):
    """Lazy module loading so that importing the package stays cheap."""
    if name == 'StakePool':
        from .pool import StakePool
        return StakePool
    elif name == 'OperatorRegistry':
        from .validator import OperatorRegistry
        return OperatorRegistry
    elif name == 'WithdrawalTicketLedger':
        from .tokens import WithdrawalTicketLedger
        return WithdrawalTicketLedger
    elif name == 'StakePoolException':
        from .exceptions import StakePoolException
        return StakePoolException
    raise AttributeError(f"module 'stakepool' has no attribute {name!r}")

__all__ = ['StakePool', 'OperatorRegistry', 'WithdrawalTicketLedger', 'StakePoolException']
