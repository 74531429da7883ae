"""
StakePool Constants

Process-wide settings and protocol defaults. Settings listed in the
``*_DEFAULTS`` tables can be overridden from a ``.env`` file in the working
directory; they are read once, at import.
"""
from decimal import Decimal

from dotenv import dotenv_values

_env = dotenv_values(".env")

# ── .env settings ─────────────────────────────────────────────────────

POOL_DEFAULTS = {
    'STAKEPOOL_CONFIG':         '',
}

LOGGER_DEFAULTS = {
    'LOG_LEVEL':                'INFO',
    'LOG_FORMAT':               '%(asctime)s - %(levelname)-7s - %(name)s - %(message)s',
    'LOG_DATE_FORMAT':          '%Y-%m-%dT%H:%M:%S',
    'LOG_CONSOLE_HIGHLIGHTING': 'True',
    'LOG_FILE_OUTPUT':          'False',
}

LOG_MAX_FILE_SIZE = 5 * 1024 * 1024
LOG_BACKUP_COUNT = 3

# ── Units ─────────────────────────────────────────────────────────────

DECIMALS = 18
UNIT = 10 ** DECIMALS  # base units per whole token
BASIS_POINTS = 10_000  # 100%

# ── Operator registry defaults ────────────────────────────────────────

VALIDATOR_PUBKEY_LENGTH = 64  # uncompressed secp256k1 key without prefix
DEFAULT_COMMISSION_RATE = 0
DEFAULT_MAX_DELEGATION_LIMIT = 10_000_000 * UNIT
DEFAULT_MIN_STAKE_AMOUNT = 10 * UNIT
DEFAULT_MIN_AUX_FEE = 20 * UNIT
DEFAULT_REGISTRY_VERSION = '2.0.0'

# ── Stake pool defaults ───────────────────────────────────────────────

DEFAULT_SUBMIT_THRESHOLD = 10 ** 9 * UNIT
DEFAULT_DELEGATION_LOWER_BOUND = 0
DEFAULT_REWARD_DISTRIBUTION_LOWER_BOUND = 0
DEFAULT_MIN_REWARD_DISTRIBUTION = 1
DEFAULT_PROTOCOL_FEE_RATE = 1000  # 10% of distributed rewards
DEFAULT_INSURANCE_FEE_SHARE = 5000  # half of the protocol fee, the DAO takes the rest
DEFAULT_WITHDRAWAL_DELAY_EPOCHS = 80
POOL_SHARE_NAME = 'Staked Pool Share'
POOL_SHARE_SYMBOL = 'stPOOL'
TICKET_NAME = 'Pool Withdrawal Ticket'
TICKET_SYMBOL = 'PWT'


def to_units(amount) -> int:
    """Convert a whole-token amount (str, int or Decimal) to base units."""
    value = Decimal(str(amount)) * UNIT
    if value != value.to_integral_value():
        raise ValueError(f"{amount} has more than {DECIMALS} decimal places")
    return int(value)


def from_units(units: int) -> Decimal:
    """Convert base units to a whole-token Decimal for display."""
    return Decimal(units) / UNIT


# ── Setting types ─────────────────────────────────────────────────────

class ConfigString(str):
    """A string setting that remembers its built-in default."""

    def __new__(cls, value, default):
        self = super().__new__(cls, value)
        self._fallback = default
        return self

    def default(self):
        return self._fallback


class ConfigBool(int):
    """A boolean setting that remembers its built-in default."""

    def __new__(cls, value, default):
        self = super().__new__(cls, 1 if value else 0)
        self._fallback = default
        return self

    def default(self):
        return self._fallback

    def __str__(self):
        return "True" if self else "False"

    __repr__ = __str__

    def __eq__(self, other):
        return bool(self) == other

    __hash__ = int.__hash__


_BOOL_WORDS = {"true": True, "false": False}


def parse_bool(value):
    """Map "true" / "false" strings (any case, padded or not) to bools; pass anything else through."""
    if isinstance(value, str):
        return _BOOL_WORDS.get(value.strip().lower(), value)
    return value


def _load_settings(defaults, env):
    settings = {}
    for key, fallback in defaults.items():
        raw = env.get(key)
        if raw is None:
            raw = fallback
        parsed = parse_bool(raw)
        if isinstance(parsed, bool):
            settings[key] = ConfigBool(parsed, parse_bool(fallback))
        else:
            settings[key] = ConfigString(raw, fallback)
    return settings


globals().update(_load_settings({**POOL_DEFAULTS, **LOGGER_DEFAULTS}, _env))
