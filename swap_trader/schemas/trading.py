"""Account, position and order schemas shared by all traders"""

from typing import Any, Dict, List, Literal

from pydantic import BaseModel, Field

PositionSide = Literal["long", "short"]
ContingentKind = Literal["stop_loss", "take_profit"]


class BalanceSummary(BaseModel):
    total_wallet_balance: float  # equity minus unrealized PnL
    available_balance: float
    total_unrealized_profit: float


class Position(BaseModel):
    symbol: str  # canonical form, e.g. BTCUSDT
    side: PositionSide
    amount: float = Field(ge=0)
    entry_price: float = 0.0
    mark_price: float = 0.0
    unrealized_pnl: float = 0.0
    leverage: float = 0.0
    liquidation_price: float = 0.0
    margin_mode: str = "isolated"


class OrderResult(BaseModel):
    order_id: str
    symbol: str
    status: str = "FILLED"  # market orders are assumed filled on acceptance


class ContingentOrderSpec(BaseModel):
    """A trigger-activated market order that closes (part of) a position."""

    inst_id: str
    pos_side: PositionSide
    kind: ContingentKind
    trigger_price: str  # already formatted at tick precision
    quantity: str  # already formatted at lot precision

    @property
    def close_side(self) -> str:
        return "sell" if self.pos_side == "long" else "buy"

    @property
    def ord_type(self) -> str:
        return "conditional"

    def to_request(self, td_mode: str = "isolated") -> Dict[str, Any]:
        """Render the OKX order-algo request body."""
        body: Dict[str, Any] = {
            "instId": self.inst_id,
            "tdMode": td_mode,
            "side": self.close_side,
            "posSide": self.pos_side,
            "ordType": self.ord_type,
            "sz": self.quantity,
        }
        if self.kind == "stop_loss":
            body["slTriggerPx"] = self.trigger_price
            body["slOrdPx"] = "-1"  # -1 = execute at market
        else:
            body["tpTriggerPx"] = self.trigger_price
            body["tpOrdPx"] = "-1"
        return body


class CancelReport(BaseModel):
    symbol: str
    cancelled: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors
