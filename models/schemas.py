"""Pydantic models for the sweeper API and balance data."""
from typing import Optional, Dict
from pydantic import BaseModel, ConfigDict, Field, field_validator


NATIVE_KEY = "SOL"


class BalanceEntry(BaseModel):
    """Balance held by a wallet for one mint (or native SOL)."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    amount: float  # UI amount, display only
    raw_amount: Optional[str] = Field(default=None, alias="rawAmount")  # base units
    token_account: Optional[str] = Field(default=None, alias="tokenAccount")

    @property
    def raw(self) -> int:
        """Raw amount as an integer (0 when unknown)."""
        return int(self.raw_amount) if self.raw_amount else 0


Balances = Dict[str, BalanceEntry]


class OrderResponse(BaseModel):
    """Unsigned Ultra order transaction plus its request id."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    transaction: str  # base64 VersionedTransaction, unsigned
    request_id: str = Field(alias="requestId")


class BalancesRequest(BaseModel):
    user: str


class OrderRequest(BaseModel):
    """Body of POST /api/order."""
    model_config = ConfigDict(populate_by_name=True)

    user: str
    input_mint: str = Field(alias="inputMint")
    output_mint: str = Field(alias="outputMint")
    amount: str  # raw base units, never a float

    @field_validator("amount", mode="before")
    @classmethod
    def _raw_amount(cls, value):
        if isinstance(value, (bool, float)):
            raise ValueError("amount must be an integer string in base units")
        value = str(value).strip()
        if not value.isdigit():
            raise ValueError("amount must be an integer string in base units")
        return value


class ExecuteRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    signed_transaction: str = Field(alias="signedTransaction")
    request_id: str = Field(alias="requestId")


class BroadcastRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    signed_transaction: str = Field(alias="signedTransaction")


class CloseAccountRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user: str
    token_account: str = Field(alias="tokenAccount")


class TokenMeta(BaseModel):
    """Display metadata for a verified token."""
    symbol: str
    logo_uri: Optional[str] = None
    decimals: Optional[int] = None
    price: Optional[float] = None


class TransactionLogEntry(BaseModel):
    """Signature of a landed transaction and the tokens it touched."""
    model_config = ConfigDict(frozen=True)

    signature: str
    tokens: list[str]
