"""System API — scheduler control, manual cycle trigger, job logs."""

from fastapi import APIRouter, Depends
from sqlmodel import Session, select

from autotrader.database import get_session
from autotrader.engine.scheduler import SchedulerOrchestrator
from autotrader.models.job_log import JobLog
from autotrader.api.deps import get_current_user_id, orchestrator

router = APIRouter(prefix="/api/system", tags=["system"], dependencies=[Depends(get_current_user_id)])


@router.get("/scheduler")
def scheduler_status(sched: SchedulerOrchestrator = Depends(orchestrator)):
    """Current scheduler state with job details."""
    return sched.status()


@router.post("/scheduler/start")
def start_scheduler(sched: SchedulerOrchestrator = Depends(orchestrator)):
    sched.start()
    return sched.status()


@router.post("/scheduler/stop")
async def stop_scheduler(sched: SchedulerOrchestrator = Depends(orchestrator)):
    await sched.stop()
    return sched.status()


@router.post("/trigger/{cycle}")
async def trigger_cycle(cycle: str, sched: SchedulerOrchestrator = Depends(orchestrator)):
    """Run one cycle now (position_monitor, order_sync or signal_analysis)."""
    report = await sched.trigger(cycle)
    if report is None:
        return {"status": "skipped", "message": f"{cycle} is already running or failed; see logs"}
    return {
        "status": report.status,
        "message": report.summary(),
        "results": [
            {"item_id": r.item_id, "outcome": r.outcome.value, "message": r.message}
            for r in report.results
        ],
    }


@router.get("/logs")
def job_logs(
    cycle: str | None = None,
    status: str | None = None,
    limit: int = 100,
    offset: int = 0,
    session: Session = Depends(get_session),
):
    stmt = select(JobLog).order_by(JobLog.timestamp.desc())
    if cycle is not None:
        stmt = stmt.where(JobLog.cycle == cycle)
    if status is not None:
        stmt = stmt.where(JobLog.status == status)
    stmt = stmt.offset(offset).limit(limit)
    return session.exec(stmt).all()
