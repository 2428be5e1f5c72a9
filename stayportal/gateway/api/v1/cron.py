from fastapi import APIRouter, Depends

from stayportal.gateway.deps import NotifierDep, RedisClient, UpsellLedgerDep, require_cron
from stayportal.gateway.reminders import ReminderSweepResult, run_upsell_reminders

router = APIRouter(prefix="/api/cron", tags=["Cron"], dependencies=[Depends(require_cron)])


@router.api_route("/upsell-reminders", methods=["GET", "POST"])
async def upsell_reminders(redis: RedisClient, ledger: UpsellLedgerDep, notifier: NotifierDep) -> ReminderSweepResult:
    """Daily sweep: remind operators about approved upsells checking in three days out."""
    return await run_upsell_reminders(redis, ledger, notifier)
