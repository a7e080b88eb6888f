"""
parimutuel - Pari-mutuel Prediction Market Ledger

Accounts stake value on one of several named outcomes of a market; once the
creator settles the market, the whole pool is redistributed among backers
of the winning outcome in proportion to their stake.

Usage:
    from parimutuel import ParimutuelLedger, CustodyLedger, ManualClock

    custody = CustodyLedger("bank")
    for wallet in ("escrow", "alice", "bob"):
        custody.register_wallet(wallet)
    custody.issue("alice", 1000)
    custody.issue("bob", 1000)

    clock = ManualClock()
    ledger = ParimutuelLedger(custody, clock)

    market_id = ledger.create_market("Will it rain tomorrow?", ["Yes", "No"],
                                     deadline=100, caller="deployer")
    ledger.stake(market_id, 0, 300, caller="alice")
    ledger.stake(market_id, 1, 500, caller="bob")

    clock.advance_to(100)
    ledger.settle(market_id, 1, caller="deployer")
    winnings = ledger.claim_all(market_id, 1, caller="bob")  # 800
"""

# Core types
from .core import (
    MarketView,
    HeightClock,
    ValueTransfer,
    Market,
    Bet,
    OptionTotal,
    MarketState,
    MarketConfig,
    Move,
    RecordChange,
    PendingOperation,
    OperationRecord,
    build_operation,
    market_state,
    ErrorKind,
    MarketError,
    NotFound,
    Unauthorized,
    AlreadySettled,
    MarketNotActive,
    InvalidInput,
    InsufficientBalance,
    AlreadyClaimed,
    TransferFailed,
    StaleOperation,
    SYSTEM_WALLET,
    DEFAULT_ESCROW_WALLET,
    DEFAULT_CONFIG,
    MIN_OPTIONS,
    MAX_OPTIONS,
    MAX_DESCRIPTION_LENGTH,
    MAX_OPTION_LENGTH,
)

# Storage
from .store import LedgerStore

# Collaborators
from .clock import ManualClock
from .custody import (
    CustodyLedger,
    CustodyTransaction,
    ExecuteResult,
    LedgerError,
    WalletNotRegistered,
)

# Lifecycle
from .lifecycle import (
    compute_create_market,
    compute_stake,
    compute_settlement,
)

# Settlement
from .settlement import (
    compute_winnings,
    compute_claim,
    compute_claim_all,
    get_unclaimed_amount,
)

# Ledger
from .ledger import ParimutuelLedger

__all__ = [
    # Core
    'MarketView', 'HeightClock', 'ValueTransfer',
    'Market', 'Bet', 'OptionTotal', 'MarketState', 'MarketConfig',
    'Move', 'RecordChange', 'PendingOperation', 'OperationRecord',
    'build_operation', 'market_state',
    'ErrorKind', 'MarketError', 'NotFound', 'Unauthorized', 'AlreadySettled',
    'MarketNotActive', 'InvalidInput', 'InsufficientBalance', 'AlreadyClaimed',
    'TransferFailed', 'StaleOperation',
    'SYSTEM_WALLET', 'DEFAULT_ESCROW_WALLET', 'DEFAULT_CONFIG',
    'MIN_OPTIONS', 'MAX_OPTIONS', 'MAX_DESCRIPTION_LENGTH', 'MAX_OPTION_LENGTH',
    # Storage
    'LedgerStore',
    # Collaborators
    'ManualClock',
    'CustodyLedger', 'CustodyTransaction', 'ExecuteResult', 'LedgerError',
    'WalletNotRegistered',
    # Lifecycle
    'compute_create_market', 'compute_stake', 'compute_settlement',
    # Settlement
    'compute_winnings', 'compute_claim', 'compute_claim_all', 'get_unclaimed_amount',
    # Ledger
    'ParimutuelLedger',
]

__version__ = '1.0.0'
