"""
Core types and pure functions for the distribution ledgers.

This module provides the foundational pieces shared by both engines:
1. Decimal context configuration and numeric constants
2. Exceptions: LedgerError and domain-specific error types
3. OperationResult: outcome of a non-fatal ledger operation
4. Immutable account records: VaultAccount, Provider, VaultBalances
5. Pure attribution math: pending shares, pending rewards, compounded deposits

All functions in this module are pure. Only ProtocolVault and StabilityPool
mutate ledger state.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_EVEN, getcontext, InvalidOperation
from enum import Enum
from typing import Any, Dict, Optional


# ============================================================================
# DECIMAL CONTEXT CONFIGURATION
# ============================================================================
#
# Lazy attribution chains many divisions and multiplications together.
# A 50-digit context keeps the drift of dozens of chained operations far
# below TOLERANCE.
#
# PRECONDITION: No other code should modify the global Decimal context.
# If thread-local contexts are needed, use decimal.localcontext().
#
_LEDGER_DECIMAL_CONTEXT = getcontext()
_LEDGER_DECIMAL_CONTEXT.prec = 50
_LEDGER_DECIMAL_CONTEXT.rounding = ROUND_HALF_EVEN


# ============================================================================
# CONSTANTS
# ============================================================================

ZERO = Decimal("0")
ONE = Decimal("1")

# Maximum absolute drift between two quantities that must be equal.
TOLERANCE = Decimal("1e-8")

# Quantities with absolute value below this threshold are treated as zero.
QUANTITY_EPSILON = Decimal("1e-12")

# Collateral price used for collateral ratios in reconciliation rows.
COLLATERAL_PRICE = Decimal("30000")


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LedgerError(Exception):
    """Base exception for all ledger-related errors."""
    pass


class AccountNotFound(LedgerError):
    """Raised when an operation names an account that was never created."""
    pass


class AccountAlreadyExists(LedgerError):
    """Raised when an account is created twice."""
    pass


class VaultNotFound(AccountNotFound):
    """Raised when a vault operation names an unknown vault."""
    pass


class VaultAlreadyExists(AccountAlreadyExists):
    """Raised when create_vault is called with an existing vault id."""
    pass


class EmptyPoolError(LedgerError):
    """Raised when a distribution would divide by an empty aggregate."""
    pass


class LiquidationExceedsDeposits(LedgerError):
    """Raised when a liquidation burns more than the pool holds."""
    pass


class InsufficientBalance(LedgerError):
    """Raised when a repay or withdrawal exceeds the account's balance."""
    pass


class ReconciliationError(LedgerError):
    """
    Raised when a conservation check fails.

    A reconciliation failure means value was created or destroyed somewhere.
    It is never a recoverable condition.
    """

    def __init__(self, message: str, result: Any = None):
        super().__init__(message)
        self.result = result


# ============================================================================
# ENUMS
# ============================================================================

class OperationResult(Enum):
    """
    Outcome of a ledger operation.

    APPLIED: The operation was applied to the ledger.
    NOT_FOUND: The named account does not exist; nothing changed.
    ALREADY_EXISTS: The account was already registered; nothing changed.

    The vault ledger only ever returns APPLIED and raises on failure.
    The stability pool reports NOT_FOUND / ALREADY_EXISTS without raising.
    """
    APPLIED = "applied"
    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"


# ============================================================================
# ACCOUNT RECORDS
# ============================================================================

@dataclass(frozen=True, slots=True)
class VaultAccount:
    """
    A borrower's vault.

    Attributes:
        vault_id: Unique, immutable identifier
        debt: Native debt, changed by borrow/repay
        protocol_debt: Redistributed debt already attributed to this vault
        sum_debt_snapshot: Debt accumulator value at last settlement
        collateral: Native collateral, changed by deposit/withdraw
        protocol_collateral: Redistributed collateral already attributed
        sum_collateral_snapshot: Collateral accumulator value at last settlement

    Records are immutable. The ledger stores a new record on every change,
    so callers never alias ledger state.
    """
    vault_id: str
    debt: Decimal
    protocol_debt: Decimal
    sum_debt_snapshot: Decimal
    collateral: Decimal = ZERO
    protocol_collateral: Decimal = ZERO
    sum_collateral_snapshot: Decimal = ZERO

    @property
    def total_debt(self) -> Decimal:
        """Native plus attributed debt (excludes anything still pending)."""
        return self.debt + self.protocol_debt

    @property
    def total_collateral(self) -> Decimal:
        """Native plus attributed collateral (excludes anything still pending)."""
        return self.collateral + self.protocol_collateral


@dataclass(frozen=True, slots=True)
class Provider:
    """
    A stability pool depositor.

    Attributes:
        provider_id: Unique, immutable identifier
        deposited: Compounded principal as of the last settlement
        sum_snapshot: Reward accumulator at last settlement
        product_snapshot: Compounding factor at last settlement
        epoch_snapshot: Pool epoch at last settlement
        claimed_rewards: Rewards settled to this provider so far
    """
    provider_id: str
    deposited: Decimal = ZERO
    sum_snapshot: Decimal = ZERO
    product_snapshot: Decimal = ONE
    epoch_snapshot: int = 0
    claimed_rewards: Decimal = ZERO


@dataclass(frozen=True, slots=True)
class VaultBalances:
    """
    Read-only view of a vault's balances, including uncommitted shares.

    pending_debt / pending_collateral are computed against the current
    accumulators but not written to the vault.
    """
    vault_id: str
    native_debt: Decimal
    protocol_debt: Decimal
    pending_debt: Decimal
    native_collateral: Decimal
    protocol_collateral: Decimal
    pending_collateral: Decimal

    @property
    def total_debt(self) -> Decimal:
        """Settled-equivalent total: attributed and pending are added first, as settlement does."""
        return self.native_debt + (self.protocol_debt + self.pending_debt)

    @property
    def total_collateral(self) -> Decimal:
        return self.native_collateral + (self.protocol_collateral + self.pending_collateral)

    def as_row(self) -> Dict[str, Any]:
        """Flatten into a report row."""
        return {
            'vault_id': self.vault_id,
            'native_debt': self.native_debt,
            'protocol_debt': self.protocol_debt,
            'pending_debt': self.pending_debt,
            'total_debt': self.total_debt,
            'collateral': self.total_collateral,
        }


# ============================================================================
# PURE FUNCTIONS
# ============================================================================

def to_amount(value: Any, name: str = "amount") -> Decimal:
    """
    Convert a caller-supplied amount to a finite, non-negative Decimal.

    Floats and ints are converted through str() so that 0.15 stays 0.15.

    Raises:
        ValueError: If the value is not a number, is NaN/infinite, or negative
    """
    if not isinstance(value, Decimal):
        try:
            value = Decimal(str(value))
        except InvalidOperation:
            raise ValueError(f"{name} must be a number, got {value!r}") from None
    if value.is_nan() or value.is_infinite():
        raise ValueError(f"{name} must be finite, got {value}")
    if value < 0:
        raise ValueError(f"{name} must be non-negative, got {value}")
    return value


def within_tolerance(a: Decimal, b: Decimal, tolerance: Decimal = TOLERANCE) -> bool:
    """True if |a - b| is strictly below tolerance."""
    return abs(a - b) < tolerance


def pending_share(
    native: Decimal,
    attributed: Decimal,
    accumulator: Decimal,
    snapshot: Decimal,
) -> Decimal:
    """
    Share of past redistributions not yet attributed to an account.

    Uses the compounding multiplicand: attributed protocol balances take part
    in later redistributions exactly like native balances, because the
    ledger's aggregate (the divisor of every accumulator step) includes them.

        pending = (native + attributed) * (accumulator - snapshot)
    """
    if accumulator == snapshot:
        return ZERO
    return (native + attributed) * (accumulator - snapshot)


def pending_rewards(
    deposited: Decimal,
    reward_sum: Decimal,
    sum_snapshot: Decimal,
    product_snapshot: Decimal,
) -> Decimal:
    """
    Rewards accrued by a deposit since its last settlement.

    reward_sum is the pool's accumulator for the deposit's epoch: the live
    sum if the epoch is current, the frozen final sum otherwise.

        rewards = deposited * (S - S_t) / P_t
    """
    if deposited == 0:
        return ZERO
    return deposited * (reward_sum - sum_snapshot) / product_snapshot


def compounded_deposit(
    deposited: Decimal,
    product: Decimal,
    product_snapshot: Decimal,
    same_epoch: bool = True,
) -> Decimal:
    """
    Principal left after every liquidation since the last settlement.

    A zero deposit short-circuits to zero (no 0/0 once snapshots shrink).
    A deposit from a closed epoch was fully consumed and is zero.

        compounded = deposited * P / P_t
    """
    if deposited == 0 or not same_epoch:
        return ZERO
    return deposited * product / product_snapshot


def collateral_ratio(
    collateral: Decimal,
    debt: Decimal,
    price: Decimal = COLLATERAL_PRICE,
) -> Optional[Decimal]:
    """Collateral value over debt, or None for a debt-free vault."""
    if debt == 0:
        return None
    return collateral * price / debt


def normalize_decimal(d: Decimal) -> str:
    """
    Render a Decimal without trailing zeros or scientific notation.

    Decimal("1.500") -> "1.5", Decimal("2E+3") -> "2000".
    """
    normalized = d.normalize()
    if normalized == normalized.to_integral_value():
        return str(int(normalized))
    return format(normalized, 'f')
