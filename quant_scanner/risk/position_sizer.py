"""
Position Sizer
==============
Turns a momentum risk factor, conviction and volatility into an order
quantity that satisfies exchange filters and portfolio heat limits.

Constraints are applied in a fixed order:
    balance cap -> portfolio heat -> step floor -> min qty/notional raise
    -> safety buffer -> dust and minimum value checks

Every rejection is returned as a typed reason; nothing raises.
"""

import math
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Union
from enum import Enum
import logging

import numpy as np

logger = logging.getLogger(__name__)


class SizingError(Enum):
    """Reasons a sizing request is rejected."""
    INSUFFICIENT_BALANCE = "insufficient_balance"
    MISSING_ATR = "missing_atr"
    BELOW_MINIMUM = "below_minimum"
    WOULD_CREATE_DUST = "would_create_dust"
    INSUFFICIENT_BALANCE_FOR_MIN_QTY = "insufficient_balance_for_min_qty"
    INSUFFICIENT_BALANCE_FOR_MIN_NOTIONAL = "insufficient_balance_for_min_notional"
    PORTFOLIO_HEAT_EXCEEDED = "portfolio_heat_exceeded"
    INVALID_INPUT = "invalid_input"
    CALCULATION_ERROR = "calculation_error"


@dataclass
class ExchangeFilters:
    """Lot and notional constraints of one symbol."""
    min_qty: float = 0.0
    step_size: float = 0.0
    min_notional: float = 0.0

    @classmethod
    def from_exchange_info(cls, info: Optional[Union[Dict, List]]) -> 'ExchangeFilters':
        """
        Parse Binance-style filters.

        Accepts ``{'LOT_SIZE': {...}, 'MIN_NOTIONAL': {...}}``, the same
        nested under ``'filters'``, or a list of ``{'filterType': ...}`` dicts.
        ``NOTIONAL`` is treated as an alias of ``MIN_NOTIONAL``.
        """
        if not info:
            return cls()
        if isinstance(info, dict) and 'filters' in info:
            info = info['filters']

        if isinstance(info, list):
            filters = {f.get('filterType'): f for f in info if isinstance(f, dict)}
        else:
            filters = dict(info)

        lot = filters.get('LOT_SIZE') or {}
        notional = filters.get('MIN_NOTIONAL') or filters.get('NOTIONAL') or {}
        return cls(
            min_qty=float(lot.get('minQty', 0) or 0),
            step_size=float(lot.get('stepSize', 0) or 0),
            min_notional=float(notional.get('minNotional', 0) or 0)
        )

    @property
    def precision(self) -> int:
        if self.step_size <= 0:
            return 8
        exponent = Decimal(str(self.step_size)).normalize().as_tuple().exponent
        return max(0, -exponent)

    def floor_to_step(self, quantity: float) -> float:
        if self.step_size <= 0:
            return quantity
        units = math.floor(quantity / self.step_size + 1e-12)
        return round(units * self.step_size, self.precision)

    def ceil_to_step(self, quantity: float) -> float:
        if self.step_size <= 0:
            return quantity
        units = math.ceil(quantity / self.step_size - 1e-12)
        return round(units * self.step_size, self.precision)

    def to_dict(self) -> dict:
        return {
            'min_qty': self.min_qty,
            'step_size': self.step_size,
            'min_notional': self.min_notional
        }


@dataclass
class PositionSizingResult:
    """Sizing outcome; quantity is 0 whenever ``error`` is set."""
    quantity: float = 0.0
    value_usdt: float = 0.0
    risk_amount: float = 0.0
    stop_loss_price: Optional[float] = None
    applied_filters: List[str] = field(default_factory=list)
    method: str = ""
    error: Optional[SizingError] = None
    message: str = ""
    momentum_multiplier: float = 1.0
    conviction_multiplier: float = 1.0

    @property
    def is_valid(self) -> bool:
        return self.error is None and self.quantity > 0

    def to_dict(self) -> dict:
        return {
            'is_valid': self.is_valid,
            'quantity': self.quantity,
            'value_usdt': self.value_usdt,
            'risk_amount': self.risk_amount,
            'stop_loss_price': self.stop_loss_price,
            'applied_filters': list(self.applied_filters),
            'method': self.method,
            'error': self.error.value if self.error else None,
            'message': self.message,
            'momentum_multiplier': self.momentum_multiplier,
            'conviction_multiplier': self.conviction_multiplier
        }


def _bad_number(value) -> bool:
    try:
        return value is None or not np.isfinite(float(value))
    except (TypeError, ValueError):
        return True


def momentum_multiplier(score: float) -> float:
    return min(1.5, max(0.5, 0.5 + score / 100))


def conviction_multiplier(conviction: float) -> float:
    return min(1.5, max(0.5, conviction / 100))


def open_position_risk(positions: Optional[List]) -> float:
    """
    Capital at risk across open positions.

    Uses ``risk_usdt`` when present, else ``(entry_price - stop_loss_price) * quantity``,
    else the full entry value.
    """
    total = 0.0
    for position in positions or []:
        get = position.get if isinstance(position, dict) else (lambda k, d=None: getattr(position, k, d))
        risk = get('risk_usdt')
        if risk is None:
            entry = get('entry_price')
            quantity = get('quantity')
            stop = get('stop_loss_price')
            if entry is None or quantity is None:
                continue
            risk = (entry - stop) * quantity if stop is not None else entry * quantity
        if not _bad_number(risk):
            total += max(0.0, float(risk))
    return total


class PositionSizer:
    """
    Stateless position sizer.

    Usage:
        sizer = PositionSizer()
        result = sizer.calculate(price=100.0, atr=2.0, momentum_score=62,
                                 risk_factor=68.0, available_balance=1000.0,
                                 equity=1000.0, conviction_score=70,
                                 filters=ExchangeFilters(0.001, 0.001, 5.0))
    """

    def __init__(self, config=None, logger_: Optional[logging.Logger] = None, verbose: bool = False):
        from ..config import SizingConfig
        self.config = config or SizingConfig()
        self.logger = logger_ or logger
        self.verbose = verbose

    def calculate(self, price: float, atr: Optional[float] = None, momentum_score: float = 50.0,
                  risk_factor: float = 100.0, available_balance: float = 0.0,
                  equity: Optional[float] = None, conviction_score: Optional[float] = None,
                  open_risk: float = 0.0, filters: Optional[ExchangeFilters] = None,
                  mode=None) -> PositionSizingResult:
        """
        Size one entry.

        Args:
            price: Entry price
            atr: Current ATR (required in volatility-adjusted mode)
            momentum_score: 0-100 momentum score
            risk_factor: Adjusted balance risk factor in percent
            available_balance: Free quote balance
            equity: Total equity for portfolio heat (defaults to available_balance)
            conviction_score: 0-100 conviction of the signal combination
            open_risk: Capital already at risk in open positions
            filters: Exchange lot/notional filters
            mode: Override of the configured SizingMode

        Returns:
            PositionSizingResult
        """
        try:
            return self._calculate(price, atr, momentum_score, risk_factor, available_balance,
                                   equity, conviction_score, open_risk, filters, mode)
        except Exception as e:
            self.logger.error(f"Position sizing failed: {e}")
            return self._reject(SizingError.CALCULATION_ERROR, str(e))

    def _calculate(self, price, atr, momentum_score, risk_factor, available_balance,
                   equity, conviction_score, open_risk, filters, mode) -> PositionSizingResult:
        from ..config import SizingMode
        mode = mode or self.config.mode
        filters = filters or ExchangeFilters()

        if _bad_number(price) or price <= 0:
            return self._reject(SizingError.INVALID_INPUT, f"Invalid price: {price}")
        if _bad_number(available_balance) or available_balance <= 0:
            return self._reject(SizingError.INVALID_INPUT, f"Invalid available balance: {available_balance}")
        if _bad_number(momentum_score) or _bad_number(risk_factor):
            return self._reject(SizingError.INVALID_INPUT, "Momentum score and risk factor must be numbers")
        if equity is None:
            equity = available_balance
        if _bad_number(equity) or equity <= 0:
            return self._reject(SizingError.INVALID_INPUT, f"Invalid equity: {equity}")
        if _bad_number(open_risk):
            open_risk = 0.0

        has_atr = not _bad_number(atr) and atr > 0
        if mode == SizingMode.VOLATILITY_ADJUSTED and not has_atr:
            return self._reject(SizingError.MISSING_ATR, "ATR required for volatility-adjusted sizing")

        investable = available_balance * risk_factor / 100
        if investable <= 0:
            return self._reject(SizingError.INSUFFICIENT_BALANCE,
                                f"No investable balance at risk factor {risk_factor}%")

        m_mult = momentum_multiplier(momentum_score)
        c_mult = conviction_multiplier(conviction_score) if not _bad_number(conviction_score) else 1.0
        stop_distance = atr * self.config.stop_loss_atr_multiplier if has_atr else None
        risk_per_unit = stop_distance if stop_distance else price
        applied: List[str] = []

        if mode == SizingMode.FIXED:
            size_usdt = self.config.default_position_size * m_mult
            quantity = size_usdt / price
            method = SizingMode.FIXED.value
        else:
            base = self.config.base_position_size
            if _bad_number(base) or base <= 0:
                base = equity * self.config.risk_per_trade / 100
            risk_usdt = base * m_mult
            quantity = risk_usdt / stop_distance * c_mult
            method = SizingMode.VOLATILITY_ADJUSTED.value

        # 1. Balance cap
        if quantity * price > investable:
            quantity = investable / price
            applied.append('capped_by_balance')

        # 2. Portfolio heat
        heat_cap = equity * self.config.portfolio_heat_max / 100
        heat_pct = open_risk / equity * 100
        if heat_pct >= self.config.portfolio_heat_max:
            return self._reject(SizingError.PORTFOLIO_HEAT_EXCEEDED,
                                f"Portfolio heat {heat_pct:.1f}% at or above {self.config.portfolio_heat_max}%",
                                m_mult, c_mult)
        headroom = heat_cap - open_risk
        if quantity * risk_per_unit > headroom:
            quantity = headroom / risk_per_unit
            applied.append('scaled_to_heat_headroom')

        # 3. Lot step
        floored = filters.floor_to_step(quantity)
        if floored != quantity:
            applied.append('floored_to_step')
        quantity = floored

        # 4. Exchange minimums
        if filters.min_qty > 0 and quantity < filters.min_qty:
            raised = filters.ceil_to_step(filters.min_qty)
            rejection = self._check_raise(raised, price, risk_per_unit, investable, headroom,
                                          SizingError.INSUFFICIENT_BALANCE_FOR_MIN_QTY)
            if rejection is not None:
                return self._reject(rejection[0], rejection[1], m_mult, c_mult)
            quantity = raised
            applied.append('raised_to_min_qty')

        if filters.min_notional > 0 and quantity * price < filters.min_notional:
            raised = filters.ceil_to_step(filters.min_notional / price)
            rejection = self._check_raise(raised, price, risk_per_unit, investable, headroom,
                                          SizingError.INSUFFICIENT_BALANCE_FOR_MIN_NOTIONAL)
            if rejection is not None:
                return self._reject(rejection[0], rejection[1], m_mult, c_mult)
            quantity = raised
            applied.append('raised_to_min_notional')

        # 5. Safety buffer near the dust line
        dust_line = filters.min_notional * self.config.dust_margin
        if self.config.apply_safety_buffer and filters.min_notional > 0 and quantity * price < dust_line:
            target = max(quantity * price * (1 + self.config.safety_buffer_pct), dust_line)
            buffered = filters.ceil_to_step(target / price)
            if buffered * price <= investable and buffered * risk_per_unit <= headroom:
                quantity = buffered
                applied.append('safety_buffer')

        # 6. Final checks
        notional = quantity * price
        if filters.min_notional > 0 and notional < dust_line:
            return self._reject(SizingError.WOULD_CREATE_DUST,
                                f"Notional {notional:.2f} below {dust_line:.2f} (min notional x {self.config.dust_margin})",
                                m_mult, c_mult)
        if quantity <= 0 or notional < self.config.minimum_trade_value:
            return self._reject(SizingError.BELOW_MINIMUM,
                                f"Notional {notional:.2f} below minimum trade value {self.config.minimum_trade_value}",
                                m_mult, c_mult)

        result = PositionSizingResult(
            quantity=quantity,
            value_usdt=notional,
            risk_amount=quantity * risk_per_unit,
            stop_loss_price=(price - stop_distance) if stop_distance else None,
            applied_filters=applied,
            method=method,
            momentum_multiplier=m_mult,
            conviction_multiplier=c_mult
        )
        if self.verbose:
            self.logger.debug(f"Sized {quantity} @ {price} = {notional:.2f} ({method}, filters: {applied})")
        return result

    @staticmethod
    def _check_raise(quantity: float, price: float, risk_per_unit: float, investable: float,
                     headroom: float, balance_error: SizingError):
        if quantity * price > investable:
            return balance_error, f"Raising to {quantity} needs {quantity * price:.2f}, investable {investable:.2f}"
        if quantity * risk_per_unit > headroom:
            return SizingError.PORTFOLIO_HEAT_EXCEEDED, f"Raising to {quantity} exceeds heat headroom {headroom:.2f}"
        return None

    def _reject(self, error: SizingError, message: str, m_mult: float = 1.0,
                c_mult: float = 1.0) -> PositionSizingResult:
        self.logger.info(f"Sizing rejected ({error.value}): {message}")
        return PositionSizingResult(
            error=error,
            message=message,
            momentum_multiplier=m_mult,
            conviction_multiplier=c_mult
        )
