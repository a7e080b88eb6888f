#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Learn the Market Ledger Step by Step

This is a pedagogical demonstration of how the pari-mutuel market ledger
works. Each step builds on the previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:  Foundation   - Custody wallets, creating a market, staking
  4-5:  Guards       - Rejected requests, atomic failure
  6-7:  Settlement   - Closing, settling, claiming winnings
  8:    Audit        - Rounding dust and the conservation proof

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
import sys

from parimutuel import (
    ParimutuelLedger, CustodyLedger, ManualClock,
    MarketError, DEFAULT_ESCROW_WALLET,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    creator: str = "deployer"
    initial_balance: int = 10_000
    market_length: int = 100

    alice_stake: int = 300   # on "Yes"
    bob_stake: int = 500     # on "No"
    carol_stake: int = 200   # on "No"


CONFIG = DemoConfig()

QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    """Print a step header with learning objective."""
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    """Print a section header within a step."""
    print(f"\n--- {text} ---\n")


def attempt(description: str, action):
    """Run an action expected to be rejected and show the error code."""
    print(f">>> {description}")
    try:
        action()
    except MarketError as e:
        print(f"    -> {e.code}")


# ============================================================================
# PHASE 1: FOUNDATION (Steps 1-3)
# ============================================================================

def step_01_custody():
    """Set up the custody ledger that holds the actual value."""
    step_header(1, "Custody Wallets",
        "The market ledger never holds balances itself; custody does.")

    print("""
    Staked value lives in a custody ledger, in a dedicated ESCROW wallet.
    The market ledger only asks custody to move value:

    - stake: backer -> escrow
    - claim: escrow -> backer
    """)

    custody = CustodyLedger("custody", verbose=True)
    custody.register_wallet(DEFAULT_ESCROW_WALLET)
    custody.register_wallet(CONFIG.creator)
    for backer in ("alice", "bob", "carol"):
        custody.register_wallet(backer)
        custody.issue(backer, CONFIG.initial_balance)

    section_header("Balances")
    for wallet in sorted(custody.list_wallets()):
        print(f"{wallet:10s} {custody.get_balance(wallet):>8,}")

    return custody


def step_02_create_market(custody: CustodyLedger):
    """Create a two-outcome market."""
    step_header(2, "Creating a Market",
        "A market is a question, its outcomes, and a deadline height.")

    clock = ManualClock()
    ledger = ParimutuelLedger(custody, clock, verbose=True)

    deadline = clock.current_height + CONFIG.market_length
    print(f'>>> ledger.create_market("Will it rain tomorrow?", ["Yes", "No"], {deadline}, "{CONFIG.creator}")')
    market_id = ledger.create_market(
        "Will it rain tomorrow?", ["Yes", "No"], deadline, CONFIG.creator
    )

    section_header("Market Record")
    print(ledger.get_market(market_id))
    print(f"State: {ledger.get_market_state(market_id).value}")

    return ledger, clock, market_id


def step_03_stakes(ledger: ParimutuelLedger, market_id: int):
    """Stake on both outcomes."""
    step_header(3, "Staking",
        "Every stake moves value into escrow and grows three records at once.")

    ledger.stake(market_id, 0, CONFIG.alice_stake, "alice")
    ledger.stake(market_id, 1, CONFIG.bob_stake, "bob")
    ledger.stake(market_id, 1, CONFIG.carol_stake, "carol")

    section_header("Pool")
    market = ledger.get_market(market_id)
    for option, label in enumerate(market.options):
        total = ledger.get_option_total(market_id, option)
        print(f"{label:5s} {total.total_amount if total else 0:>6,}")
    print(f"Total {market.total_staked:>6,}")
    print(f"Escrow balance: {ledger.custody.get_balance(DEFAULT_ESCROW_WALLET):,}")


# ============================================================================
# PHASE 2: GUARDS (Steps 4-5)
# ============================================================================

def step_04_rejections(ledger: ParimutuelLedger, market_id: int):
    """Show the validation gates."""
    step_header(4, "Rejected Requests",
        "Invalid requests fail with a typed error before anything changes.")

    attempt("stake on option 5", lambda: ledger.stake(market_id, 5, 10, "alice"))
    attempt("stake of 0", lambda: ledger.stake(market_id, 0, 0, "alice"))
    attempt("settle before the deadline",
            lambda: ledger.settle(market_id, 1, CONFIG.creator))
    attempt("claim before settlement", lambda: ledger.claim_all(market_id, 1, "bob"))


def step_05_atomic_failure(ledger: ParimutuelLedger, market_id: int):
    """A failed transfer writes nothing."""
    step_header(5, "Atomic Failure",
        "If custody refuses the transfer, no record is touched.")

    before = ledger.get_bet(market_id, "alice", 0)
    attempt("alice stakes more than she holds",
            lambda: ledger.stake(market_id, 0, CONFIG.initial_balance, "alice"))
    print(f"\nalice's bet before: {before}")
    print(f"alice's bet after:  {ledger.get_bet(market_id, 'alice', 0)}")


# ============================================================================
# PHASE 3: SETTLEMENT (Steps 6-7)
# ============================================================================

def step_06_settle(ledger: ParimutuelLedger, clock: ManualClock, market_id: int):
    """Close the market and declare the winner."""
    step_header(6, "Closing and Settling",
        "Only the creator may settle, only after the deadline, only once.")

    deadline = ledger.get_market(market_id).deadline
    clock.advance_to(deadline)
    print(f"Height {clock.current_height}: state is {ledger.get_market_state(market_id).value}")

    attempt("late stake", lambda: ledger.stake(market_id, 0, 10, "alice"))
    attempt("alice settles", lambda: ledger.settle(market_id, 0, "alice"))

    print(f'\n>>> ledger.settle({market_id}, 1, "{CONFIG.creator}")')
    ledger.settle(market_id, 1, CONFIG.creator)
    attempt("settle again", lambda: ledger.settle(market_id, 0, CONFIG.creator))


def step_07_claims(ledger: ParimutuelLedger, market_id: int):
    """Winners split the whole pool."""
    step_header(7, "Claiming Winnings",
        "Winners share the ENTIRE pool in proportion to their stake.")

    market = ledger.get_market(market_id)
    winning_total = ledger.get_option_total(market_id, market.winning_option).total_amount
    print(f"winnings = floor({market.total_staked} * claim / {winning_total})")

    section_header("Partial claim")
    paid = ledger.claim(market_id, 1, 100, "bob")
    print(f"bob redeems 100 of stake -> {paid}")
    print(f"bob's unclaimed stake: {ledger.get_unclaimed_amount(market_id, 'bob', 1)}")

    section_header("Claim everything")
    print(f"bob   -> {ledger.claim_all(market_id, 1, 'bob')}")
    print(f"carol -> {ledger.claim_all(market_id, 1, 'carol')}")
    attempt("alice claims on the losing option",
            lambda: ledger.claim_all(market_id, 0, "alice"))


# ============================================================================
# PHASE 4: AUDIT (Step 8)
# ============================================================================

def step_08_audit(ledger: ParimutuelLedger, market_id: int):
    """Rounding dust and conservation."""
    step_header(8, "Audit",
        "Escrow holds exactly what was staked minus what was paid out.")

    custody = ledger.custody
    market = ledger.get_market(market_id)
    paid = ledger.total_paid_out(market_id)
    print(f"Total staked:   {market.total_staked:,}")
    print(f"Total paid out: {paid:,}")
    print(f"Left in escrow: {custody.get_balance(DEFAULT_ESCROW_WALLET):,} (rounding dust)")

    section_header("Invariant checks")
    result = ledger.verify_all()
    print(f"Market accounting valid: {result['valid']}")
    print(f"Custody supply conserved: {custody.verify_double_entry()['valid']}")
    print(f"Operations logged: {len(ledger.operation_log)}")


def main():
    """Run the complete tutorial."""
    print("=" * 70)
    print("       PARI-MUTUEL MARKET LEDGER - INTERACTIVE TUTORIAL")
    print("=" * 70)

    if QUICK_MODE:
        print("Running in QUICK mode (no pauses)")
    else:
        print("Running in INTERACTIVE mode (press Enter to advance)")

    wait_for_enter()

    custody = step_01_custody()
    wait_for_enter()

    custody.verbose = False
    ledger, clock, market_id = step_02_create_market(custody)
    wait_for_enter()

    step_03_stakes(ledger, market_id)
    wait_for_enter()

    step_04_rejections(ledger, market_id)
    wait_for_enter()

    step_05_atomic_failure(ledger, market_id)
    wait_for_enter()

    step_06_settle(ledger, clock, market_id)
    wait_for_enter()

    step_07_claims(ledger, market_id)
    wait_for_enter()

    step_08_audit(ledger, market_id)

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)
    print("""
    Next steps:
      - See parimutuel/settlement.py for the payout arithmetic
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()
