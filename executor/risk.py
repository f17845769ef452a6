"""
Risk gate and safe-mode latch. Tracks balance and PnL for the process
lifetime; once safe mode trips nothing clears it short of a restart.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from decimal import Decimal

logger = logging.getLogger(__name__)


@dataclass
class RiskState:
    initial_balance: Decimal
    current_balance: Decimal
    daily_pnl: Decimal = Decimal("0")
    safe_mode: bool = False


@dataclass(frozen=True)
class RiskSnapshot:
    initial_balance: Decimal
    current_balance: Decimal
    daily_pnl: Decimal
    safe_mode: bool
    loss_limit: Decimal


class RiskManager:
    """
    All state sits behind one lock. Every method holds it only for a few
    arithmetic operations and never across I/O.

    check_trade_size() is a predicate only: it does not reserve capital, so two
    concurrent callers can both pass before either records its PnL.
    """

    def __init__(
        self,
        initial_balance: Decimal,
        max_daily_loss_pct: Decimal,
        max_trade_capital_pct: Decimal,
    ):
        self._state = RiskState(
            initial_balance=initial_balance,
            current_balance=initial_balance,
        )
        self._max_daily_loss_pct = max_daily_loss_pct
        self._max_trade_capital_pct = max_trade_capital_pct
        self._lock = threading.Lock()

    def _loss_limit(self) -> Decimal:
        return self._state.initial_balance * self._max_daily_loss_pct

    def check_trade_size(self, required_capital: Decimal) -> bool:
        """True if a trade needing required_capital may proceed."""
        with self._lock:
            state = self._state
            if state.safe_mode:
                reason = "SAFE MODE is active"
            elif required_capital > state.current_balance * self._max_trade_capital_pct:
                reason = (
                    f"trade size {required_capital} exceeds limit "
                    f"{state.current_balance * self._max_trade_capital_pct}"
                )
            elif state.daily_pnl < -self._loss_limit():
                reason = f"daily loss limit reached (pnl={state.daily_pnl})"
            else:
                return True

        logger.warning("Risk check failed: %s", reason)
        return False

    def record_pnl(self, delta: Decimal) -> None:
        """Apply a realized PnL delta. Trips safe mode on a loss-limit breach."""
        tripped = False
        with self._lock:
            state = self._state
            state.daily_pnl += delta
            state.current_balance += delta
            daily_pnl, balance = state.daily_pnl, state.current_balance
            if state.daily_pnl < -self._loss_limit() and not state.safe_mode:
                state.safe_mode = True
                tripped = True

        logger.info("PnL updated: delta=%s daily_pnl=%s balance=%s", delta, daily_pnl, balance)
        if tripped:
            logger.critical("Daily loss limit hit (pnl=%s). Entering SAFE MODE.", daily_pnl)

    def enter_safe_mode(self, reason: str = "manual trigger") -> None:
        """Idempotent. Blocks every future check_trade_size approval."""
        with self._lock:
            already = self._state.safe_mode
            self._state.safe_mode = True
        if not already:
            logger.error("Entering SAFE MODE: %s", reason)

    def is_safe_mode(self) -> bool:
        with self._lock:
            return self._state.safe_mode

    def snapshot(self) -> RiskSnapshot:
        with self._lock:
            s = self._state
            return RiskSnapshot(
                initial_balance=s.initial_balance,
                current_balance=s.current_balance,
                daily_pnl=s.daily_pnl,
                safe_mode=s.safe_mode,
                loss_limit=self._loss_limit(),
            )
