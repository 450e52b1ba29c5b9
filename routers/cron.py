"""
Cron Router
Reminder sweeps triggered by an external scheduler with the shared CRON_SECRET
"""
from fastapi import APIRouter, Request, Depends
from sqlalchemy.orm import Session

from core.auth import require_cron_secret
from core.database import get_db
from utils.reminders import run_payment_reminder_sweep, run_post_event_sweep

router = APIRouter(prefix="/api/cron", tags=["cron"])


@router.get("/payment-reminders")
def payment_reminders(request: Request, db: Session = Depends(get_db)):
    require_cron_secret(request)
    return run_payment_reminder_sweep(db).to_dict()


@router.get("/post-event-reminders")
def post_event_reminders(request: Request, db: Session = Depends(get_db)):
    require_cron_secret(request)
    return run_post_event_sweep(db).to_dict()


@router.get("/reminders")
def all_reminders(request: Request, db: Session = Depends(get_db)):
    require_cron_secret(request)
    return {
        "payment_reminders": run_payment_reminder_sweep(db).to_dict(),
        "post_event_reminders": run_post_event_sweep(db).to_dict(),
    }
