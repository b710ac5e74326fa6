"""
Payout Service - Processor Module.

Settles single commission records through the payment provider.

State machine:
    pending -> processing -> paid | failed
    failed -> processing (retry while retry_count < max_retries)
    processing + needs_reconciliation -> paid | failed (reconciliation)
    processing older than the lock timeout -> needs_reconciliation
"""

import asyncio
from datetime import datetime, timedelta

from loguru import logger

from referral_core.config.constants import TRANSFER_KEY_PREFIX
from referral_core.models.commission import CommissionRecord
from referral_core.models.enums import CommissionStatus
from referral_core.services.payout.core import PayoutCore, payout_lock_key
from referral_core.services.payout.interfaces import TransferResult
from referral_core.utils.datetime_utils import utc_now
from referral_core.utils.db_decorators import with_rollback_on_error
from referral_core.utils.exceptions import (
    DestinationMissing,
    InvalidStateTransition,
    RecordNotFound,
    RetryLimitExceeded,
    TransferAmbiguous,
    TransferFailed,
)
from referral_core.utils.formatters import format_amount


CLAIMABLE_STATUSES = (
    CommissionStatus.PENDING.value,
    CommissionStatus.FAILED.value,
)


class PayoutProcessor:
    """Single-record payout execution."""

    def __init__(self, core: PayoutCore) -> None:
        """Initialize processor with core components."""
        self.core = core
        self.session = core.session
        self.commission_repo = core.commission_repo
        self.member_repo = core.member_repo

    @with_rollback_on_error
    async def process_single(self, record_id: int) -> CommissionRecord:
        """
        Pay one commission record.

        The record is claimed with a conditional status update and the
        per-record lock is held until the outcome is persisted.

        Args:
            record_id: Commission record ID

        Returns:
            The paid record

        Raises:
            RecordNotFound: Unknown record
            InvalidStateTransition: Record is not payable
            RetryLimitExceeded: Failed record has no retries left
            DestinationMissing: No payout destination
            TransferFailed: Provider rejected the transfer (record failed)
            TransferAmbiguous: Unknown outcome (record needs reconciliation)
            LockNotAcquired: Record is being processed elsewhere
        """
        async with self.core.lock.lock(
            payout_lock_key(record_id), timeout=self.core.lock_timeout
        ):
            record = await self._load_for_update(record_id)
            self._ensure_payable(record)

            destination = await self._resolve_destination(record)
            transfer_key = f"{TRANSFER_KEY_PREFIX}:{record.id}:{record.retry_count}"

            claimed = await self.commission_repo.claim_for_processing(
                record.id, CLAIMABLE_STATUSES, transfer_key, utc_now()
            )
            if not claimed:
                await self.session.rollback()
                raise InvalidStateTransition(
                    f"Commission {record_id} was claimed by another worker"
                )

            record.payout_destination = destination
            await self.session.commit()
            await self.session.refresh(record)

            result = await self._execute_transfer(record, destination, transfer_key)

            if result.success:
                await self._mark_paid(record, result.external_ref)
                return record

            await self._mark_failed(record, result.error or "Transfer rejected")
            raise TransferFailed(
                f"Transfer for commission {record_id} failed: {record.error_message}"
            )

    @with_rollback_on_error
    async def retry_failed(self, record_id: int) -> CommissionRecord:
        """
        Operator retry of a failed record.

        Args:
            record_id: Commission record ID

        Returns:
            The paid record

        Raises:
            InvalidStateTransition: Record is not failed
            RetryLimitExceeded: Retries exhausted, manual completion needed
        """
        record = await self.commission_repo.get_by_id(record_id)
        if record is None:
            raise RecordNotFound(f"Commission {record_id} not found")
        await self.session.refresh(record)

        if record.status != CommissionStatus.FAILED.value:
            raise InvalidStateTransition(
                f"Commission {record_id} is {record.status}, only failed records can be retried"
            )
        if record.retry_count >= self.core.max_retries:
            raise RetryLimitExceeded(
                f"Commission {record_id} exhausted {self.core.max_retries} retries"
            )

        logger.info(
            f"Retrying commission {record_id} (attempt {record.retry_count + 1})",
            extra={"commission_id": record_id, "retry_count": record.retry_count},
        )
        return await self.process_single(record_id)

    @with_rollback_on_error
    async def reconcile_ambiguous(self, record_id: int) -> CommissionRecord:
        """
        Resolve an ambiguous transfer from the provider's log.

        Found -> paid. Not found -> failed (counts as an attempt, retryable
        while retries remain).

        Args:
            record_id: Commission record ID

        Returns:
            The reconciled record

        Raises:
            InvalidStateTransition: Record is not awaiting reconciliation
        """
        async with self.core.lock.lock(
            payout_lock_key(record_id), timeout=self.core.lock_timeout
        ):
            record = await self._load_for_update(record_id)
            if not (
                record.needs_reconciliation
                and record.status == CommissionStatus.PROCESSING.value
            ):
                raise InvalidStateTransition(
                    f"Commission {record_id} is not awaiting reconciliation"
                )

            found = await self.core.executor.find_transfer(record.transfer_key)

            if found is not None and found.success:
                logger.info(
                    f"Ambiguous transfer {record.transfer_key} found at provider",
                    extra={"commission_id": record_id, "external_ref": found.external_ref},
                )
                await self._mark_paid(record, found.external_ref)
            else:
                reason = (
                    found.error if found is not None and found.error
                    else "Transfer not found at provider during reconciliation"
                )
                logger.warning(
                    f"Ambiguous transfer {record.transfer_key} not executed: {reason}",
                    extra={"commission_id": record_id},
                )
                await self._mark_failed(record, reason)

            return record

    @with_rollback_on_error
    async def flag_stale_claims(self, now: datetime | None = None) -> list[int]:
        """
        Flag processing records whose worker never saved an outcome.

        A claim older than the payout lock TTL can no longer be held by a
        live worker, so the transfer may or may not have reached the
        provider.

        Args:
            now: Reference time (defaults to now)

        Returns:
            IDs of the newly flagged records
        """
        now = now or utc_now()
        cutoff = now - timedelta(seconds=self.core.lock_timeout)
        flagged = await self.commission_repo.flag_stale_processing(
            cutoff, now, "Worker lost before the transfer outcome was saved"
        )
        await self.session.commit()

        if flagged:
            logger.warning(
                f"Flagged {len(flagged)} stale processing commissions for "
                f"reconciliation: {flagged}",
                extra={"commission_ids": flagged, "claimed_before": cutoff.isoformat()},
            )
        return flagged

    async def reconcile_all_ambiguous(
        self, now: datetime | None = None
    ) -> dict[str, int]:
        """
        Resolve every record flagged for reconciliation.

        Stale claims are flagged first so they are resolved in the same
        pass.

        Args:
            now: Reference time for stale claims (defaults to now)

        Returns:
            Counts of paid, failed and errored reconciliations
        """
        stats = {"paid": 0, "failed": 0, "errors": 0}

        await self.flag_stale_claims(now)
        flagged = await self.commission_repo.get_needing_reconciliation()
        for record_id in [record.id for record in flagged]:
            try:
                reconciled = await self.reconcile_ambiguous(record_id)
            except Exception as e:
                logger.error(
                    f"Reconciliation of commission {record_id} failed: {e}",
                    extra={"commission_id": record_id},
                )
                stats["errors"] += 1
                continue

            if reconciled.status == CommissionStatus.PAID.value:
                stats["paid"] += 1
            else:
                stats["failed"] += 1

        if any(stats.values()):
            logger.info(
                f"Reconciliation complete: {stats['paid']} paid, "
                f"{stats['failed']} failed, {stats['errors']} errors"
            )
        return stats

    async def _load_for_update(self, record_id: int) -> CommissionRecord:
        """Lock the row and reload it."""
        record = await self.commission_repo.get_by_id(record_id, for_update=True)
        if record is None:
            raise RecordNotFound(f"Commission {record_id} not found")
        await self.session.refresh(record)
        return record

    def _ensure_payable(self, record: CommissionRecord) -> None:
        """Validate that a record may be claimed."""
        status = record.status_enum

        if status.is_terminal:
            raise InvalidStateTransition(f"Commission {record.id} is already {status}")
        if record.needs_reconciliation:
            raise InvalidStateTransition(
                f"Commission {record.id} awaits reconciliation of transfer "
                f"{record.transfer_key}"
            )
        if status == CommissionStatus.PROCESSING:
            raise InvalidStateTransition(f"Commission {record.id} is already processing")
        if (
            status == CommissionStatus.FAILED
            and record.retry_count >= self.core.max_retries
        ):
            raise RetryLimitExceeded(
                f"Commission {record.id} exhausted {self.core.max_retries} retries"
            )

    async def _resolve_destination(self, record: CommissionRecord) -> str:
        """Record destination, falling back to the member's current one."""
        if record.payout_destination:
            return record.payout_destination

        member = await self.member_repo.get_by_id(record.referrer_id)
        if member is not None and member.payout_destination:
            return member.payout_destination

        record.error_message = "No payout destination configured"
        await self.session.commit()
        logger.warning(
            f"Commission {record.id} skipped: member {record.referrer_id} "
            f"has no payout destination",
            extra={"commission_id": record.id, "member_id": record.referrer_id},
        )
        raise DestinationMissing(
            f"Member {record.referrer_id} has no payout destination"
        )

    async def _execute_transfer(
        self, record: CommissionRecord, destination: str, transfer_key: str
    ) -> TransferResult:
        """Call the provider under the transfer timeout."""
        try:
            return await asyncio.wait_for(
                self.core.executor.transfer(
                    destination, record.amount, record.currency, transfer_key
                ),
                timeout=self.core.transfer_timeout,
            )
        except TransferFailed as e:
            return TransferResult(success=False, error=str(e))
        except TimeoutError:
            await self._mark_ambiguous(
                record, f"Transfer timed out after {self.core.transfer_timeout}s"
            )
        except TransferAmbiguous as e:
            await self._mark_ambiguous(record, str(e) or "Transfer outcome unknown")
        except Exception as e:
            # Unknown provider error: the transfer may have gone through
            logger.exception(f"Unexpected transfer error for commission {record.id}")
            await self._mark_ambiguous(record, f"{type(e).__name__}: {e}")

        raise TransferAmbiguous(
            f"Outcome of transfer {transfer_key} is unknown, reconciliation required"
        )

    async def _mark_paid(
        self, record: CommissionRecord, external_ref: str | None
    ) -> None:
        """Persist a successful transfer."""
        now = utc_now()
        record.status = CommissionStatus.PAID.value
        record.external_transaction_ref = external_ref
        record.paid_at = now
        record.error_message = None
        record.needs_reconciliation = False
        await self.session.commit()

        logger.info(
            f"Commission {record.id} paid: "
            f"{format_amount(record.amount, record.currency)} "
            f"to member {record.referrer_id}",
            extra={
                "commission_id": record.id,
                "member_id": record.referrer_id,
                "external_ref": external_ref,
            },
        )

    async def _mark_failed(self, record: CommissionRecord, error: str) -> None:
        """Persist a rejected transfer."""
        record.status = CommissionStatus.FAILED.value
        record.retry_count += 1
        record.error_message = error
        record.needs_reconciliation = False
        await self.session.commit()

        log = logger.error if record.retry_count >= self.core.max_retries else logger.warning
        log(
            f"Commission {record.id} payout failed "
            f"(attempt {record.retry_count}/{self.core.max_retries}): {error}",
            extra={
                "commission_id": record.id,
                "member_id": record.referrer_id,
                "retry_count": record.retry_count,
            },
        )

    async def _mark_ambiguous(self, record: CommissionRecord, reason: str) -> None:
        """Keep the record processing and flag it for reconciliation."""
        record.needs_reconciliation = True
        record.error_message = reason
        await self.session.commit()

        logger.error(
            f"Commission {record.id} transfer outcome unknown: {reason}",
            extra={
                "commission_id": record.id,
                "transfer_key": record.transfer_key,
            },
        )
