"""Payout batch processor.

Pays every eligible worker their pending earnings through the payment
processor. Workers are handled one at a time and a failure for one worker
never stops the batch.

Each payout is a :class:`PayoutRecord` that moves through
``initiated -> transferred -> settled`` (or ``failed``). The record is
written before the processor is called and its id is the idempotency key,
so a retried attempt replays the original transfer and a new attempt is
always a new transfer. Settling (balance moved to total earnings, jobs
marked paid) is a single storage operation. Records left open by a crash
or an unanswered transfer are finished by
:meth:`PayoutProcessor.recover_partial_payouts`.
"""

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from nimmit.config import NimmitConfig
from nimmit.errors import ValidationError
from nimmit.payouts.gateway import Balance, PayoutGateway
from nimmit.payouts.models import (
    BatchResult,
    BatchSummary,
    EarningsDrift,
    PayoutListing,
    PayoutRecord,
    PayoutRecordStatus,
    PayoutResult,
    PendingPayout,
    PlatformBalance,
)
from nimmit.payouts.reports import EarningsReport, build_earnings_report, render_csv
from nimmit.pricing import CENT, to_minor_units
from nimmit.users import Actor, User, UserRole

logger = logging.getLogger(__name__)

ACCOUNT_NOT_READY = "Connect account not ready for payouts"
PAYOUT_IN_PROGRESS = "Payout already in progress or balance changed"
_ZERO = Decimal("0")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def idempotency_key(worker_id: str, record_id: str) -> str:
    """Processor idempotency key for one payout attempt."""
    return f"payout-{worker_id}-{record_id}"


class PayoutProcessor:
    """Worker payouts and earnings bookkeeping."""

    def __init__(
        self,
        storage,
        gateway: PayoutGateway,
        config: Optional[NimmitConfig] = None,
        notifier=None,
    ):
        self.storage = storage
        self.gateway = gateway
        self.config = config or NimmitConfig()
        self.notifier = notifier

    # === Batch payout ===

    def _eligible_workers(self, worker_ids: Optional[List[str]] = None) -> List[User]:
        wanted = set(worker_ids) if worker_ids else None
        workers = []
        for user in self.storage.list_users(role=UserRole.WORKER.value):
            if wanted is not None and user.id not in wanted:
                continue
            profile = user.worker
            if profile is None or profile.pending_earnings <= 0 or not profile.payout_account_id:
                continue
            workers.append(user)
        return workers

    def process_payouts(
        self, worker_ids: Optional[List[str]] = None, actor: Optional[Actor] = None
    ) -> BatchResult:
        """Pay out pending earnings for the given workers, or all eligible workers."""
        # Stranded transfers must settle first or their balance would be paid twice
        self.recover_partial_payouts()

        processed_at = _utc_now()
        workers = self._eligible_workers(worker_ids)
        logger.info(f"Payout batch started | workers={len(workers)}")

        results = [self._pay_worker(worker, processed_at, actor) for worker in workers]

        total_paid = sum((r.amount for r in results if r.success), _ZERO)
        summary = BatchSummary(
            total_paid=total_paid,
            success_count=sum(1 for r in results if r.success),
            fail_count=sum(1 for r in results if not r.success),
            processed_at=processed_at,
        )
        logger.info(
            f"Payout batch finished | paid={summary.success_count} | failed={summary.fail_count} "
            f"| total={total_paid}"
        )
        if self.notifier is not None and results:
            self.notifier.audit_admin(
                actor,
                "payout_batch",
                target_type="payout",
                description=f"Processed {len(results)} payouts",
                metadata={
                    "success_count": summary.success_count,
                    "fail_count": summary.fail_count,
                    "total_paid": str(total_paid),
                },
            )
        return BatchResult(results=results, summary=summary)

    def _pay_worker(
        self, worker: User, processed_at: datetime, actor: Optional[Actor]
    ) -> PayoutResult:
        profile = worker.worker
        amount = profile.pending_earnings
        account = profile.payout_account_id

        def failed(error: str, transfer_id: Optional[str] = None) -> PayoutResult:
            return PayoutResult(
                worker_id=worker.id,
                worker_email=worker.email,
                amount=amount,
                success=False,
                transfer_id=transfer_id,
                error=error,
            )

        try:
            status = self.gateway.account_status(account)
        except Exception as e:
            logger.error(f"Account status check failed | worker={worker.id} | error={e}")
            return failed(str(e))
        if not status.payouts_enabled:
            logger.warning(f"Payout skipped, account not ready | worker={worker.id}")
            return failed(ACCOUNT_NOT_READY)

        # Snapshot before the transfer so jobs completed meanwhile stay unpaid
        job_ids = [job.id for job in self.storage.list_unpaid_jobs(worker.id)]
        record_id = str(uuid.uuid4())
        record = self.storage.begin_payout(
            PayoutRecord(
                id=record_id,
                worker_id=worker.id,
                amount=amount,
                idempotency_key=idempotency_key(worker.id, record_id),
                job_ids=job_ids,
                created_at=processed_at,
            )
        )
        if record is None:
            logger.warning(f"Payout not started, balance moved or payout open | worker={worker.id}")
            return failed(PAYOUT_IN_PROGRESS)

        record, error = self._execute(record, account)
        if record.status == PayoutRecordStatus.SETTLED.value:
            self._announce(record, worker, actor)
            return PayoutResult(
                worker_id=worker.id,
                worker_email=worker.email,
                amount=amount,
                success=True,
                transfer_id=record.transfer_id,
            )
        return failed(error, record.transfer_id)

    def _execute(self, record: PayoutRecord, account: str) -> Tuple[PayoutRecord, Optional[str]]:
        """Carry an open payout record as far as it will go.

        Returns the record in its last known state and the error that stopped
        it, if any. A record left ``initiated`` had a transfer of unknown
        outcome and is retried later under the same key.
        """
        if record.status == PayoutRecordStatus.INITIATED.value:
            try:
                transfer = self.gateway.transfer(
                    account,
                    to_minor_units(record.amount),
                    self.config.payout_reference,
                    self.config.payout_description_format.format(
                        date=(record.created_at or _utc_now()).date().isoformat()
                    ),
                    idempotency_key=record.idempotency_key,
                )
            except Exception as e:
                if getattr(e, "outcome_unknown", False):
                    logger.error(
                        f"Payout transfer outcome unknown, will retry | worker={record.worker_id} "
                        f"| record={record.id} | error={e}"
                    )
                    return record, str(e)
                logger.error(
                    f"Payout transfer failed | worker={record.worker_id} "
                    f"| amount={record.amount} | error={e}"
                )
                closed = self.storage.update_payout_record(
                    record.id,
                    PayoutRecordStatus.INITIATED.value,
                    {"status": PayoutRecordStatus.FAILED.value, "error": str(e)},
                )
                return closed or record, str(e)

            try:
                moved = self.storage.update_payout_record(
                    record.id,
                    PayoutRecordStatus.INITIATED.value,
                    {
                        "status": PayoutRecordStatus.TRANSFERRED.value,
                        "transfer_id": transfer.transfer_id,
                    },
                )
            except Exception as e:
                # Still initiated, the retry replays the same transfer
                logger.critical(
                    f"Payout transferred but not recorded | worker={record.worker_id} "
                    f"| transfer={transfer.transfer_id} | error={e}"
                )
                record.transfer_id = transfer.transfer_id
                return record, f"Transfer succeeded but settlement failed: {e}"
            if moved is None:
                return record, PAYOUT_IN_PROGRESS
            record = moved

        try:
            settled = self.storage.settle_payout(record.id, record.created_at or _utc_now())
        except Exception as e:
            logger.critical(
                f"Payout transferred but not settled | worker={record.worker_id} "
                f"| transfer={record.transfer_id} | error={e}"
            )
            return record, f"Transfer succeeded but settlement failed: {e}"
        if settled is None:
            return record, PAYOUT_IN_PROGRESS

        logger.info(
            f"Payout settled | worker={settled.worker_id} | amount={settled.amount} "
            f"| transfer={settled.transfer_id} | jobs={len(settled.job_ids)}"
        )
        return settled, None

    def _announce(self, record: PayoutRecord, worker: User, actor: Optional[Actor]) -> None:
        if self.notifier is None:
            return
        self.notifier.audit_payment(
            actor,
            "payout_processed",
            worker.id,
            description=f"Payout of ${record.amount:.2f} to {worker.email}",
            metadata={
                "worker_id": worker.id,
                "amount": str(record.amount),
                "transfer_id": record.transfer_id,
                "payout_id": record.id,
            },
        )
        self.notifier.notify(worker.id, "payment_received", {"amount": f"{record.amount:.2f}"})

    # === Listings ===

    def _platform_balance(self) -> PlatformBalance:
        try:
            balance = self.gateway.platform_balance()
        except Exception as e:
            logger.warning(f"Platform balance unavailable | error={e}")
            balance = Balance()
        return PlatformBalance(
            available=(Decimal(balance.available) / 100).quantize(CENT),
            pending=(Decimal(balance.pending) / 100).quantize(CENT),
        )

    def list_pending_payouts(self) -> PayoutListing:
        """Workers ready to be paid, and workers who still need a payout account."""
        pending: List[PendingPayout] = []
        needing_setup: List[PendingPayout] = []
        unpaid_counts: Dict[str, int] = {}
        for job in self.storage.list_unpaid_jobs():
            unpaid_counts[job.worker_id] = unpaid_counts.get(job.worker_id, 0) + 1

        for user in self.storage.list_users(role=UserRole.WORKER.value):
            profile = user.worker
            if profile is None or profile.pending_earnings <= 0:
                continue
            entry = PendingPayout(
                worker_id=user.id,
                worker_name=user.full_name,
                worker_email=user.email,
                payout_account_id=profile.payout_account_id,
                pending_earnings=profile.pending_earnings,
                job_count=unpaid_counts.get(user.id, 0),
            )
            if not profile.payout_account_id:
                needing_setup.append(entry)
                continue
            try:
                ready = self.gateway.account_status(profile.payout_account_id).payouts_enabled
            except Exception as e:
                logger.warning(f"Account status check failed | worker={user.id} | error={e}")
                ready = False
            if ready:
                pending.append(entry)

        return PayoutListing(
            platform_balance=self._platform_balance(),
            pending_payouts=pending,
            total_pending_amount=sum((p.pending_earnings for p in pending), _ZERO),
            workers_needing_setup=needing_setup,
        )

    def earnings_report(self) -> EarningsReport:
        """Unpaid completed jobs grouped by worker."""
        users = {u.id: u for u in self.storage.list_users(role=UserRole.WORKER.value)}
        return build_earnings_report(self.storage.list_unpaid_jobs(), users)

    def earnings_csv(self) -> str:
        return render_csv(self.earnings_report())

    # === Manual settlement and repair ===

    def mark_jobs_paid(
        self,
        job_ids: Optional[List[str]] = None,
        worker_id: Optional[str] = None,
        actor: Optional[Actor] = None,
    ) -> int:
        """Mark jobs paid outside the processor, e.g. after a manual transfer.

        Storage moves the settled amount from each worker's pending earnings
        to total earnings in the same write. Returns the number of jobs marked.
        """
        if not job_ids and not worker_id:
            raise ValidationError("jobIds", "Must provide jobIds or workerId")

        if job_ids:
            wanted = set(job_ids)
            candidates = [j for j in self.storage.list_unpaid_jobs() if j.id in wanted]
        else:
            candidates = self.storage.list_unpaid_jobs(worker_id)

        marked = self.storage.mark_jobs_paid([j.id for j in candidates], _utc_now())
        workers = sorted({job.worker_id for job in marked})

        logger.info(f"Jobs marked paid | count={len(marked)} | workers={len(workers)}")
        if self.notifier is not None and marked:
            self.notifier.audit_payment(
                actor,
                "payout_marked_paid",
                worker_id or ",".join(workers),
                description=f"Marked {len(marked)} jobs as paid",
                metadata={"job_ids": [j.id for j in marked]},
            )
        return len(marked)

    def reconcile_pending_earnings(
        self, worker_ids: Optional[List[str]] = None, dry_run: bool = True
    ) -> List[EarningsDrift]:
        """Compare stored pending earnings with the unpaid jobs behind them.

        With ``dry_run`` off each drifted balance is rewritten by storage,
        which recomputes the unpaid total itself and only writes if the
        balance is still the one read here and the worker has no open
        payout. Drift that disappears on recomputation was a payout or
        completion landing between the reads and is not reported.
        """
        expected: Dict[str, Decimal] = {}
        for job in self.storage.list_unpaid_jobs():
            expected[job.worker_id] = expected.get(job.worker_id, _ZERO) + job.worker_earnings

        wanted = set(worker_ids) if worker_ids else None
        drifts = []
        for user in self.storage.list_users(role=UserRole.WORKER.value):
            if wanted is not None and user.id not in wanted:
                continue
            stored = user.worker.pending_earnings
            target = expected.get(user.id, _ZERO)
            if stored == target:
                continue
            drift = EarningsDrift(worker_id=user.id, stored=stored, expected=target)
            if not dry_run:
                written = self.storage.correct_pending_earnings(user.id, stored)
                if written is None:
                    logger.warning(
                        f"Earnings correction skipped, balance moved or payout open "
                        f"| worker={user.id}"
                    )
                elif written == stored:
                    logger.info(f"Earnings drift resolved on recheck | worker={user.id}")
                    continue
                else:
                    drift.expected = written
                    drift.corrected = True
            logger.warning(
                f"Pending earnings drift | worker={user.id} | stored={stored} "
                f"| expected={drift.expected}"
            )
            drifts.append(drift)

        logger.info(f"Earnings reconciliation | drifted={len(drifts)} | dry_run={dry_run}")
        return drifts

    def recover_partial_payouts(self) -> List[PayoutRecord]:
        """Finish payouts that a crash or an unanswered transfer left open.

        ``transferred`` records are settled. ``initiated`` records are sent
        again under their original idempotency key, which either replays the
        transfer that already went out or makes the one that never did.
        Returns the records that reached ``settled``.
        """
        recovered = []
        for record in self.storage.list_payout_records(
            status=PayoutRecordStatus.TRANSFERRED.value
        ):
            settled = self.storage.settle_payout(record.id, record.created_at or _utc_now())
            if settled is None:
                continue
            logger.warning(
                f"Recovered partial payout | worker={record.worker_id} "
                f"| transfer={record.transfer_id} | amount={record.amount}"
            )
            recovered.append(settled)

        for record in self.storage.list_payout_records(
            status=PayoutRecordStatus.INITIATED.value
        ):
            worker = self.storage.get_user(record.worker_id)
            account = worker.worker.payout_account_id if worker and worker.worker else None
            if not account:
                logger.error(f"Open payout without payout account | record={record.id}")
                continue
            resumed, error = self._execute(record, account)
            if resumed.status != PayoutRecordStatus.SETTLED.value:
                logger.warning(
                    f"Open payout still unresolved | record={record.id} | status={resumed.status} "
                    f"| error={error}"
                )
                continue
            logger.warning(
                f"Resumed open payout | worker={record.worker_id} "
                f"| transfer={resumed.transfer_id} | amount={record.amount}"
            )
            recovered.append(resumed)
        return recovered
