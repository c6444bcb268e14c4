"""Lending position lifecycle: open, add collateral, repay, liquidate, and reporting."""

from contextlib import contextmanager
from datetime import datetime, timezone
import logging
import math
import secrets
import threading
from typing import Any, Dict, Iterator, List, Optional
import weakref

from pydantic import ValidationError

from carbon_market.common.protocol_constants import (
    DEFAULT_INTEREST_RATE,
    DEFAULT_LIQUIDATION_THRESHOLD,
    INFINITE_HEALTH_FACTOR,
    compute_health_factor,
    is_full_repayment,
    is_liquidatable,
    max_borrow,
)
from carbon_market.models.base import finite_or_none
from carbon_market.models.credits import CarbonCreditModel
from carbon_market.models.enums import ActivityType, PositionStatus
from carbon_market.models.exceptions import (
    InsufficientCollateralError,
    InvalidStateError,
    ModelNotFoundError,
    ModelValidationError,
    NotEligibleError,
)
from carbon_market.models.positions import LendingPositionModel
from carbon_market.models.repositories import CarbonCreditRepository, LendingPositionRepository

from .activity_service import ActivityService
from .collateral_verifier import CollateralVerifier


logger = logging.getLogger(__name__)

_BASE36_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"
_VALID_STATUSES = {status.value for status in PositionStatus}


def generate_position_hash() -> str:
    """Return `pos_<epoch ms>_<9 random base36 chars>`."""
    epoch_ms = int(datetime.now(timezone.utc).timestamp() * 1000)
    suffix = "".join(secrets.choice(_BASE36_ALPHABET) for _ in range(9))
    return "pos_{0}_{1}".format(epoch_ms, suffix)


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _require_finite(value: float, label: str) -> None:
    if not math.isfinite(value):
        raise ModelValidationError("{0} must be a finite number".format(label))


class LendingService:
    """Enforces the lending state machine over an injected position repository.

    Mutations of the same position are serialized in-process with a
    per-position lock. Every write also carries the version that was read, so
    a concurrent writer in another process surfaces as `VersionConflictError`.
    """

    def __init__(
        self,
        position_repository: LendingPositionRepository,
        credit_repository: CarbonCreditRepository,
        activity_service: ActivityService,
        collateral_verifier: Optional[CollateralVerifier] = None,
        default_interest_rate: float = DEFAULT_INTEREST_RATE,
        default_liquidation_threshold: float = DEFAULT_LIQUIDATION_THRESHOLD,
    ) -> None:
        self._positions = position_repository
        self._credits = credit_repository
        self._activity = activity_service
        self._verifier = collateral_verifier
        self._default_interest_rate = default_interest_rate
        self._default_liquidation_threshold = default_liquidation_threshold
        # Entries disappear once no caller holds the position's lock.
        self._locks: "weakref.WeakValueDictionary[int, Any]" = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    @contextmanager
    def _position_lock(self, position_id: int) -> Iterator[None]:
        key = int(position_id)
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
        with lock:
            yield

    def _load_position(self, position_id: int) -> LendingPositionModel:
        try:
            return self._positions.get_by_id(position_id)
        except ModelNotFoundError as exc:
            raise ModelNotFoundError("Lending position not found") from exc

    def _load_credit(self, credit_id: int) -> CarbonCreditModel:
        try:
            return self._credits.get_by_id(credit_id)
        except ModelNotFoundError as exc:
            raise ModelNotFoundError("Carbon credit not found") from exc

    @staticmethod
    def _build_position(**fields: Any) -> LendingPositionModel:
        """Validate position fields, reporting only the first offending field."""
        try:
            return LendingPositionModel(**fields)
        except ValidationError as exc:
            first = exc.errors()[0]
            location = ".".join(str(part) for part in first.get("loc", ())) or "position"
            raise ModelValidationError("Invalid lending position {0}: {1}".format(location, first.get("msg", ""))) from exc

    def _save_changes(self, position: LendingPositionModel, **changes: Any) -> LendingPositionModel:
        """Revalidate the position with `changes` applied and write it back."""
        updated = self._build_position(**{**position.model_dump(), **changes})
        return self._positions.update(updated)

    def _check_on_chain_balance(self, credit: CarbonCreditModel, user_address: str, collateral_amount: float) -> None:
        if self._verifier is None:
            return
        balance = self._verifier.balance_of(credit, user_address)
        if balance is None:
            logger.warning(
                "On-chain balance unknown credit_id=%s user=%s. Proceeding without balance check.",
                credit.id,
                user_address,
            )
            return
        if balance < collateral_amount:
            raise InsufficientCollateralError("Insufficient on-chain balance for collateral")

    def open_position(
        self,
        user_address: Optional[str],
        credit_id: Optional[int],
        collateral_amount: Optional[float],
        borrowed_amount: Optional[float],
        interest_rate: Optional[float] = None,
        liquidation_threshold: Optional[float] = None,
        position_hash: Optional[str] = None,
    ) -> LendingPositionModel:
        """Open an active position after credit, balance, and health checks.

        Raises:
            ModelValidationError: If a required field is missing or out of range.
            ModelNotFoundError: If the credit does not exist.
            InsufficientCollateralError: If the wallet holds too few credits or HF < 1.0.
        """
        if any(_is_missing(value) for value in (user_address, credit_id, collateral_amount, borrowed_amount)):
            raise ModelValidationError("Missing required fields")
        if int(credit_id) <= 0:
            raise ModelValidationError("Credit id must be positive")
        _require_finite(collateral_amount, "Collateral amount")
        _require_finite(borrowed_amount, "Borrowed amount")
        if collateral_amount <= 0 or borrowed_amount <= 0:
            raise ModelValidationError("Collateral and borrowed amounts must be positive")
        interest_rate = self._default_interest_rate if interest_rate is None else interest_rate
        threshold = self._default_liquidation_threshold if liquidation_threshold is None else liquidation_threshold
        if not 0 < threshold <= 1:
            raise ModelValidationError("Liquidation threshold must be within (0, 1]")
        _require_finite(interest_rate, "Interest rate")
        if interest_rate < 0:
            raise ModelValidationError("Interest rate must be >= 0")

        address = str(user_address).strip().lower()
        try:
            credit = self._load_credit(int(credit_id))
            self._check_on_chain_balance(credit, address, collateral_amount)

            health_factor = compute_health_factor(collateral_amount, threshold, borrowed_amount)
            if is_liquidatable(health_factor):
                logger.info(
                    "Loan request above borrow limit user=%s borrowed=%s max_borrow=%s",
                    address,
                    borrowed_amount,
                    max_borrow(collateral_amount, threshold),
                )
                raise InsufficientCollateralError("Insufficient collateral for requested loan amount")

            position = self._positions.create(
                self._build_position(
                    user_address=address,
                    credit_id=credit.id,
                    collateral_amount=collateral_amount,
                    borrowed_amount=borrowed_amount,
                    interest_rate=interest_rate,
                    liquidation_threshold=threshold,
                    health_factor=health_factor,
                    status=PositionStatus.ACTIVE,
                    position_hash=position_hash or generate_position_hash(),
                )
            )
            self._activity.record(
                user_address=address,
                action_type=ActivityType.LENDING_POSITION_CREATED,
                credit_id=credit.id,
                details={
                    "position_id": position.id,
                    "collateral_amount": collateral_amount,
                    "borrowed_amount": borrowed_amount,
                    "interest_rate": interest_rate,
                    "health_factor": finite_or_none(health_factor),
                    "position_hash": position.position_hash,
                },
            )
            logger.info("Lending position opened id=%s user=%s hf=%.4f", position.id, address, health_factor)
            return position
        except Exception:
            logger.exception("Failed opening lending position user=%s credit_id=%s", address, credit_id)
            raise

    def add_collateral(
        self,
        position_id: int,
        amount: Optional[float],
        transaction_hash: Optional[str] = None,
    ) -> LendingPositionModel:
        """Pledge more credits to an active position and recompute its health."""
        if amount is None or amount <= 0:
            raise ModelValidationError("Additional collateral amount must be positive")
        _require_finite(amount, "Additional collateral amount")
        try:
            with self._position_lock(position_id):
                position = self._load_position(position_id)
                if not position.is_active:
                    raise InvalidStateError("Can only add collateral to active positions")

                new_collateral = position.collateral_amount + amount
                _require_finite(new_collateral, "Collateral amount")
                new_health_factor = compute_health_factor(
                    new_collateral,
                    position.liquidation_threshold,
                    position.borrowed_amount,
                )
                updated = self._save_changes(
                    position,
                    collateral_amount=new_collateral,
                    health_factor=new_health_factor,
                )
            self._activity.record(
                user_address=position.user_address,
                action_type=ActivityType.COLLATERAL_ADDED,
                credit_id=position.credit_id,
                transaction_hash=transaction_hash,
                details={
                    "position_id": position.id,
                    "additional_collateral": amount,
                    "new_collateral_amount": new_collateral,
                    "previous_health_factor": finite_or_none(position.health_factor),
                    "new_health_factor": finite_or_none(new_health_factor),
                    "transaction_hash": transaction_hash,
                },
            )
            return updated
        except Exception:
            logger.exception("Failed adding collateral position_id=%s", position_id)
            raise

    def repay(
        self,
        position_id: int,
        amount: Optional[float],
        transaction_hash: Optional[str] = None,
    ) -> LendingPositionModel:
        """Reduce outstanding debt; a negligible remainder closes the position."""
        if amount is None or amount <= 0:
            raise ModelValidationError("Repayment amount must be positive")
        _require_finite(amount, "Repayment amount")
        try:
            with self._position_lock(position_id):
                position = self._load_position(position_id)
                if not position.is_active:
                    raise InvalidStateError("Can only repay active positions")
                if amount > position.borrowed_amount:
                    raise ModelValidationError("Repayment amount exceeds borrowed amount")

                remaining = position.borrowed_amount - amount
                fully_repaid = is_full_repayment(remaining)
                if fully_repaid:
                    remaining = 0.0
                    new_health_factor = INFINITE_HEALTH_FACTOR
                    status = PositionStatus.CLOSED
                else:
                    new_health_factor = compute_health_factor(
                        position.collateral_amount,
                        position.liquidation_threshold,
                        remaining,
                    )
                    status = PositionStatus.ACTIVE
                updated = self._save_changes(
                    position,
                    borrowed_amount=remaining,
                    health_factor=new_health_factor,
                    status=status,
                )
            self._activity.record(
                user_address=position.user_address,
                action_type=ActivityType.LOAN_FULLY_REPAID if fully_repaid else ActivityType.LOAN_PARTIALLY_REPAID,
                credit_id=position.credit_id,
                transaction_hash=transaction_hash,
                details={
                    "position_id": position.id,
                    "repayment_amount": amount,
                    "remaining_borrowed": remaining,
                    "new_health_factor": finite_or_none(new_health_factor),
                    "transaction_hash": transaction_hash,
                    "fully_repaid": fully_repaid,
                },
            )
            return updated
        except Exception:
            logger.exception("Failed repaying loan position_id=%s", position_id)
            raise

    def liquidate(
        self,
        position_id: int,
        liquidator_address: Optional[str],
        transaction_hash: Optional[str] = None,
    ) -> LendingPositionModel:
        """Liquidate an active position whose stored health factor is below 1.0.

        The stored health factor is trusted as-is; it is not recomputed here.
        """
        if _is_missing(liquidator_address):
            raise ModelValidationError("Liquidator address required")
        try:
            with self._position_lock(position_id):
                position = self._load_position(position_id)
                if not position.is_active:
                    raise InvalidStateError("Can only liquidate active positions")
                if not is_liquidatable(position.health_factor):
                    raise NotEligibleError("Position is not eligible for liquidation (health factor >= 1.0)")
                updated = self._save_changes(
                    position,
                    status=PositionStatus.LIQUIDATED,
                    health_factor=0.0,
                )
            self._activity.record(
                user_address=position.user_address,
                action_type=ActivityType.POSITION_LIQUIDATED,
                credit_id=position.credit_id,
                transaction_hash=transaction_hash,
                details={
                    "position_id": position.id,
                    "liquidator_address": str(liquidator_address).strip().lower(),
                    "collateral_amount": position.collateral_amount,
                    "borrowed_amount": position.borrowed_amount,
                    "health_factor_at_liquidation": finite_or_none(position.health_factor),
                    "transaction_hash": transaction_hash,
                },
            )
            logger.info("Lending position liquidated id=%s by=%s", position.id, liquidator_address)
            return updated
        except Exception:
            logger.exception("Failed liquidating position_id=%s", position_id)
            raise

    def get_position(self, position_id: int) -> LendingPositionModel:
        """Return one position."""
        return self._load_position(position_id)

    def list_positions(
        self,
        user_address: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> List[LendingPositionModel]:
        """Return positions newest first."""
        if status and status not in _VALID_STATUSES:
            raise ModelValidationError("Invalid status filter: {0}".format(status))
        if limit <= 0 or offset < 0:
            raise ModelValidationError("limit must be > 0 and offset must be >= 0")
        try:
            return self._positions.list(
                user_address=user_address.strip().lower() if user_address else None,
                status=status or None,
                limit=limit,
                offset=offset,
            )
        except Exception:
            logger.exception("Failed listing lending positions user=%s status=%s", user_address, status)
            raise

    def get_user_positions(
        self,
        user_address: Optional[str],
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        """Return a wallet's positions in the normalized reporting shape."""
        if _is_missing(user_address):
            raise ModelValidationError("Address parameter required")
        positions = self.list_positions(user_address=user_address, status=status, limit=limit, offset=offset)
        project_names: Dict[int, Optional[str]] = {}
        rows: List[Dict[str, Any]] = []
        for position in positions:
            if position.credit_id not in project_names:
                project_names[position.credit_id] = self._project_name(position.credit_id)
            rows.append(
                {
                    "id": position.id,
                    "credit_id": position.credit_id,
                    "project_name": project_names[position.credit_id],
                    "collateral_amount": float(position.collateral_amount),
                    "borrowed_amount": float(position.borrowed_amount),
                    "interest_rate": float(position.interest_rate),
                    "health_factor": finite_or_none(float(position.health_factor)),
                    "liquidation_threshold": float(position.liquidation_threshold),
                    "status": position.status,
                    "position_hash": position.position_hash,
                    "created_at": position.created_at,
                    "updated_at": position.updated_at,
                }
            )
        return rows

    def _project_name(self, credit_id: int) -> Optional[str]:
        try:
            return self._credits.get_by_id(credit_id).project_name
        except ModelNotFoundError:
            logger.warning("Position references unknown credit_id=%s", credit_id)
            return None

    def get_stats(self) -> Dict[str, Any]:
        """Aggregate facility-wide lending statistics."""
        try:
            active = self._positions.list(status=PositionStatus.ACTIVE.value, limit=None)
            finite_health = [item.health_factor for item in active if math.isfinite(item.health_factor)]
            average_health = sum(finite_health) / len(finite_health) if finite_health else 0.0
            return {
                "total_positions": self._positions.count(),
                "active_positions": len(active),
                "liquidated_positions": self._positions.count(status=PositionStatus.LIQUIDATED.value),
                "closed_positions": self._positions.count(status=PositionStatus.CLOSED.value),
                "total_value_locked": sum(item.collateral_amount for item in active),
                "total_borrowed": sum(item.borrowed_amount for item in active),
                "average_health_factor": round(average_health, 3),
                "recent_positions": [item.to_api() for item in self._positions.list(limit=20)],
            }
        except Exception:
            logger.exception("Failed computing lending stats.")
            raise

    def stream_snapshot(
        self,
        user_address: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        """Return the position list as it is republished to stream subscribers."""
        return [
            item.to_api()
            for item in self.list_positions(user_address=user_address, status=status, limit=limit, offset=offset)
        ]
