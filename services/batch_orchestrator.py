"""Batch sweep and close-all workflows: quote, sign once, execute, reconcile."""
import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Iterable, List, Optional, Protocol
from loguru import logger
from solders.transaction import VersionedTransaction

from exchange.errors import (
    ProviderError,
    ReconciliationAmbiguity,
    TransportError,
    WalletCapabilityError,
    user_message,
)
from exchange.jupiter_client import JupiterClient
from exchange.solana_client import SolanaClient
from models.schemas import NATIVE_KEY, Balances, TransactionLogEntry
from services.token_metadata import TokenMetadataService
from services.transaction_log import TransactionLog
from utils.wallet import decode_transaction, encode_transaction


NOTHING_TO_SWEEP = "No tokens to sweep (or all are kept)."
NOTHING_TO_CLOSE = "No closeable accounts."
BATCH_IN_PROGRESS = "A batch is already in progress."
TRANSACTION_REJECTED = "Transaction rejected."


class BatchSigner(Protocol):
    async def sign_all_transactions(
        self, transactions: List[VersionedTransaction]
    ) -> List[VersionedTransaction]:
        ...


class BatchState(str, Enum):
    IDLE = "idle"
    COLLECTING_CANDIDATES = "collecting_candidates"
    QUOTING = "quoting"
    AWAITING_SIGNATURE = "awaiting_signature"
    EXECUTING = "executing"
    RECONCILING = "reconciling"


class OutcomeStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILURE = "failure"  # provider or node said no
    TRANSPORT_ERROR = "transport_error"  # never reached the service
    AMBIGUOUS = "ambiguous"  # sent, result unknown
    SKIPPED = "skipped"  # never signed


@dataclass(frozen=True)
class ExecutionOutcome:
    status: OutcomeStatus
    signature: Optional[str] = None
    code: Optional[int] = None
    message: Optional[str] = None

    @classmethod
    def success(cls, signature: str) -> "ExecutionOutcome":
        return cls(OutcomeStatus.SUCCESS, signature=signature)

    @classmethod
    def from_error(cls, exc: BaseException) -> "ExecutionOutcome":
        message = user_message(exc)
        if isinstance(exc, ReconciliationAmbiguity):
            return cls(OutcomeStatus.AMBIGUOUS, message=message)
        if isinstance(exc, TransportError):
            return cls(OutcomeStatus.TRANSPORT_ERROR, message=message)
        code = exc.code if isinstance(exc, ProviderError) else None
        return cls(OutcomeStatus.FAILURE, code=code, message=message)

    @classmethod
    def skipped(cls, exc: BaseException) -> "ExecutionOutcome":
        """Item dropped before signing; nothing was submitted."""
        code = exc.code if isinstance(exc, ProviderError) else None
        return cls(OutcomeStatus.SKIPPED, code=code, message=user_message(exc))


PENDING = ExecutionOutcome(OutcomeStatus.PENDING)


@dataclass
class BatchItem:
    """One token moving through a batch; `index` is fixed at selection."""
    index: int
    mint: str
    raw_amount: str
    token_account: Optional[str] = None
    request_id: Optional[str] = None
    unsigned: Optional[VersionedTransaction] = None
    signed: Optional[VersionedTransaction] = None
    outcome: ExecutionOutcome = PENDING

    @property
    def signature(self) -> Optional[str]:
        return self.outcome.signature


@dataclass
class BatchReport:
    kind: str
    items: List[BatchItem] = field(default_factory=list)
    transitions: List[BatchState] = field(default_factory=list)
    entries: List[TransactionLogEntry] = field(default_factory=list)
    balances: Balances = field(default_factory=dict)
    message: Optional[str] = None

    def _count(self, *statuses: OutcomeStatus) -> int:
        return sum(1 for item in self.items if item.outcome.status in statuses)

    @property
    def succeeded(self) -> int:
        return self._count(OutcomeStatus.SUCCESS)

    @property
    def failed(self) -> int:
        return self._count(OutcomeStatus.FAILURE, OutcomeStatus.TRANSPORT_ERROR, OutcomeStatus.SKIPPED)

    @property
    def ambiguous(self) -> int:
        return self._count(OutcomeStatus.AMBIGUOUS)

    @property
    def summary(self) -> str:
        verb = "Swept" if self.kind == "sweep" else "Closed"
        text = f"{verb} {self.succeeded} of {len(self.items)}"
        if self.ambiguous:
            text += f", {self.ambiguous} with unknown outcome"
        return text


Step = Callable[[BatchItem], Awaitable[None]]
OnError = Callable[[BaseException], ExecutionOutcome]


class BatchOrchestrator:
    """
    Drives sweep and close batches for one wallet session.

    Every item is independent: a failed quote, execution or broadcast only
    marks that item, and the batch always reaches reconciliation. Balances
    are re-read after every batch, whatever happened.
    """

    def __init__(
        self,
        solana: SolanaClient,
        jupiter: JupiterClient,
        metadata: TokenMetadataService,
        target_mint: str,
        exclude: Iterable[str] = (),
    ):
        self.solana = solana
        self.jupiter = jupiter
        self.metadata = metadata
        self.target_mint = target_mint
        self.exclude = frozenset({NATIVE_KEY, target_mint, *exclude})
        self.log = TransactionLog()
        self.balances: Balances = {}
        self.owner: Optional[str] = None
        self.state = BatchState.IDLE
        self.loading = False

    # ------------------------------------------------------------------
    # Balances
    # ------------------------------------------------------------------

    async def refresh_balances(self, owner: str) -> Balances:
        """Re-read balances; on failure the previous snapshot is kept."""
        if owner != self.owner:
            self.metadata.clear()
            self.balances = {}
            self.owner = owner

        try:
            self.balances = await self.solana.read_balances(owner)
        except Exception as e:
            logger.error("Error fetching balances for {}: {}", owner, e)
            return self.balances

        self.metadata.refresh(self.balances.keys())
        return self.balances

    def sweep_candidates(self, keep: Iterable[str] = ()) -> List[BatchItem]:
        skip = self.exclude | set(keep)
        mints = [
            mint for mint, entry in self.balances.items()
            if mint not in skip and entry.raw_amount is not None and entry.raw > 0
        ]
        return [
            BatchItem(
                index=index,
                mint=mint,
                raw_amount=self.balances[mint].raw_amount,
                token_account=self.balances[mint].token_account,
            )
            for index, mint in enumerate(mints)
        ]

    def close_candidates(self) -> List[BatchItem]:
        mints = [
            mint for mint, entry in self.balances.items()
            if mint not in self.exclude and entry.token_account and entry.raw == 0
        ]
        return [
            BatchItem(
                index=index,
                mint=mint,
                raw_amount="0",
                token_account=self.balances[mint].token_account,
            )
            for index, mint in enumerate(mints)
        ]

    # ------------------------------------------------------------------
    # Workflows
    # ------------------------------------------------------------------

    async def sweep_all(self, owner: str, signer: BatchSigner, keep: Iterable[str] = ()) -> BatchReport:
        """Swap every sweepable balance into the target mint."""
        keep = set(keep)
        return await self._run(
            "sweep",
            owner,
            signer,
            lambda: self.sweep_candidates(keep),
            NOTHING_TO_SWEEP,
            self._quote(owner),
            self._execute,
            clear_log=True,
        )

    async def sweep_token(self, owner: str, signer: BatchSigner, mint: str) -> BatchReport:
        """Swap a single mint into the target mint."""
        return await self._run(
            "sweep",
            owner,
            signer,
            lambda: [item for item in self.sweep_candidates() if item.mint == mint],
            NOTHING_TO_SWEEP,
            self._quote(owner),
            self._execute,
        )

    async def close_all(self, owner: str, signer: BatchSigner) -> BatchReport:
        """Close every empty token account and reclaim its rent."""
        return await self._run(
            "close",
            owner,
            signer,
            self.close_candidates,
            NOTHING_TO_CLOSE,
            self._build_close(owner),
            self._broadcast,
            clear_log=True,
        )

    async def close_account(self, owner: str, signer: BatchSigner, token_account: str) -> BatchReport:
        """Close one empty token account."""
        return await self._run(
            "close",
            owner,
            signer,
            lambda: [item for item in self.close_candidates() if item.token_account == token_account],
            NOTHING_TO_CLOSE,
            self._build_close(owner),
            self._broadcast,
        )

    # ------------------------------------------------------------------
    # Per-item steps
    # ------------------------------------------------------------------

    def _quote(self, owner: str) -> Step:
        async def quote(item: BatchItem) -> None:
            order = await self.jupiter.create_order(owner, item.mint, self.target_mint, item.raw_amount)
            item.request_id = order.request_id
            item.unsigned = decode_transaction(order.transaction)
        return quote

    async def _execute(self, item: BatchItem) -> None:
        signature = await self.jupiter.execute_order(encode_transaction(item.signed), item.request_id)
        item.outcome = ExecutionOutcome.success(signature)

    def _build_close(self, owner: str) -> Step:
        async def build(item: BatchItem) -> None:
            transaction = await self.solana.build_close_account_transaction(owner, item.token_account)
            item.unsigned = decode_transaction(transaction)
        return build

    async def _broadcast(self, item: BatchItem) -> None:
        signature = await self.solana.broadcast_signed_transaction(encode_transaction(item.signed))
        item.outcome = ExecutionOutcome.success(signature)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def _enter(self, report: BatchReport, state: BatchState) -> None:
        self.state = state
        report.transitions.append(state)
        logger.debug("{} batch -> {}", report.kind, state.value)

    async def _settle(self, item: BatchItem, step: Step, stage: str, on_error: OnError) -> None:
        try:
            await step(item)
        except Exception as e:
            item.outcome = on_error(e)
            logger.error("{} failed for {}: {}", stage, self.metadata.name_of(item.mint), e)

    async def _fan_out(
        self,
        items: List[BatchItem],
        step: Step,
        stage: str,
        on_error: OnError = ExecutionOutcome.from_error,
    ) -> None:
        await asyncio.gather(*(self._settle(item, step, stage, on_error) for item in items))

    async def _sign(self, signer: BatchSigner, items: List[BatchItem]) -> None:
        try:
            signed = await signer.sign_all_transactions([item.unsigned for item in items])
        except Exception as e:
            logger.warning("Wallet did not sign the batch: {}", e)
            self._skip(items, TRANSACTION_REJECTED)
            return

        if len(signed) != len(items):
            self._skip(items, f"Wallet returned {len(signed)} signed transactions for {len(items)}")
            return

        for item, transaction in zip(items, signed):
            item.signed = transaction

    @staticmethod
    def _skip(items: List[BatchItem], message: str) -> None:
        for item in items:
            item.outcome = ExecutionOutcome(OutcomeStatus.SKIPPED, message=message)

    def _reconcile(self, report: BatchReport) -> None:
        for item in sorted(report.items, key=lambda i: i.index):
            name = self.metadata.name_of(item.mint)
            outcome = item.outcome

            if outcome.status == OutcomeStatus.SUCCESS:
                entry = self.log.append(outcome.signature, [name])
                report.entries.append(entry)
            elif outcome.status == OutcomeStatus.AMBIGUOUS:
                logger.warning("{} {} outcome unknown, not retried: {}", report.kind, name, outcome.message)
            else:
                logger.error("{} {} failed with no signature: {}", report.kind, name, outcome.message)

            if report.message is None and outcome.status != OutcomeStatus.SUCCESS:
                report.message = outcome.message

        logger.info("{} ({} failed)", report.summary, report.failed)

    async def _run(
        self,
        kind: str,
        owner: str,
        signer: BatchSigner,
        select: Callable[[], List[BatchItem]],
        empty_message: str,
        prepare: Step,
        submit: Step,
        clear_log: bool = False,
    ) -> BatchReport:
        report = BatchReport(kind=kind)
        if self.loading:
            report.message = BATCH_IN_PROGRESS
            return report

        self.loading = True
        if clear_log:
            self.log.clear()
        try:
            self._enter(report, BatchState.COLLECTING_CANDIDATES)
            if not callable(getattr(signer, "sign_all_transactions", None)):
                raise WalletCapabilityError("Wallet cannot batch-sign")

            if owner != self.owner or not self.balances:
                await self.refresh_balances(owner)

            report.items = select()
            if not report.items:
                report.message = empty_message
                return report

            self._enter(report, BatchState.QUOTING)
            await self._fan_out(
                report.items,
                prepare,
                "quote" if kind == "sweep" else "close transaction",
                on_error=ExecutionOutcome.skipped,
            )

            ready = [item for item in report.items if item.outcome.status == OutcomeStatus.PENDING]
            if ready:
                self._enter(report, BatchState.AWAITING_SIGNATURE)
                await self._sign(signer, ready)

                signed = [item for item in ready if item.signed is not None]
                if signed:
                    self._enter(report, BatchState.EXECUTING)
                    await self._fan_out(signed, submit, "execute" if kind == "sweep" else "broadcast")

            self._enter(report, BatchState.RECONCILING)
            self._reconcile(report)
            return report

        except WalletCapabilityError as e:
            logger.warning("{} batch aborted: {}", kind, e)
            report.message = str(e)
            return report

        finally:
            await self.refresh_balances(owner)
            report.balances = self.balances
            self._enter(report, BatchState.IDLE)
            self.loading = False
