from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from stratsearch.core.models import Direction


class ExitReason(str, Enum):
    TAKE_PROFIT = "take_profit"
    STOP_LOSS = "stop_loss"
    OPPOSITE_SIGNAL = "opposite_signal"
    END_OF_DATA = "end_of_data"


@dataclass(frozen=True, slots=True)
class Position:
    """
    The single live position of a simulation.

    Attributes:
        direction (Direction): Long or short.
        entry_price (float): Fill price (bar close).
        stop_loss (float): Protective exit threshold.
        take_profit (float): Target exit threshold.
        open_index (int): Bar index where the position was opened.
        open_timestamp (datetime | None): Timestamp of the opening bar.
    """

    direction: Direction
    entry_price: float
    stop_loss: float
    take_profit: float
    open_index: int
    open_timestamp: Optional[datetime] = None

    def pnl_at(self, price: float) -> float:
        """Profit of one unit closed at ``price``."""
        if self.direction is Direction.LONG:
            return price - self.entry_price
        return self.entry_price - price


@dataclass(frozen=True, slots=True)
class Trade:
    """Closed-position record."""

    direction: Direction
    entry: float
    exit: float
    profit: float
    reason: ExitReason
    open_timestamp: Optional[datetime] = None
    close_timestamp: Optional[datetime] = None

    @classmethod
    def close(
        cls,
        position: Position,
        price: float,
        reason: ExitReason,
        timestamp: Optional[datetime] = None,
    ) -> "Trade":
        return cls(
            direction=position.direction,
            entry=position.entry_price,
            exit=price,
            profit=position.pnl_at(price),
            reason=reason,
            open_timestamp=position.open_timestamp,
            close_timestamp=timestamp,
        )

    @property
    def is_win(self) -> bool:
        return self.profit > 0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "type": "BUY" if self.direction is Direction.LONG else "SELL",
            "direction": self.direction.value,
            "entry": self.entry,
            "exit": self.exit,
            "profit": self.profit,
            "reason": self.reason.value,
            "open_time": self.open_timestamp.isoformat() if self.open_timestamp else None,
            "close_time": (
                self.close_timestamp.isoformat() if self.close_timestamp else None
            ),
        }


__all__ = ["ExitReason", "Position", "Trade"]
