from fastapi import APIRouter, Depends

from backend.app.api.deps import get_drift_monitor
from backend.services.drift_monitor import DriftMonitor

router = APIRouter()


@router.get("/health")
def health(monitor: DriftMonitor = Depends(get_drift_monitor)):
    return {
        "status": "ok",
        "drift_monitor": {
            "running": monitor.is_running,
            "passes": monitor.passes,
            "last_adjustments": monitor.last_adjustments,
        },
    }
