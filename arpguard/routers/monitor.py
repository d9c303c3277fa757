"""
Monitoring control endpoints.

Start, stop and single-check calls touch threads and subprocesses, so they
are plain `def` handlers and run in the threadpool.
"""

import logging

from fastapi import APIRouter, Depends

from arpguard.dependencies import get_detector
from arpguard.schemas import (
    CheckResponse,
    MonitorSettingsUpdate,
    MonitorStatusResponse,
    StatisticsResponse,
)
from arpguard.services.detector import ARPDetector

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/monitor", tags=["monitor"])


def _status(detector: ARPDetector) -> MonitorStatusResponse:
    return MonitorStatusResponse(
        state=detector.state.value,
        is_checking=detector.is_checking,
        check_interval=detector.check_interval,
        alert_on_gateway_change=detector.alert_on_gateway_change,
        alert_on_mac_change=detector.alert_on_mac_change,
        alert_on_duplicate_mac=detector.alert_on_duplicate_mac,
        gateway_ip=detector.gateway_ip(),
        gateway_mac=detector.gateway_mac(),
        statistics=StatisticsResponse(**detector.statistics().to_dict()),
    )


@router.get("/status", response_model=MonitorStatusResponse)
def get_status(detector: ARPDetector = Depends(get_detector)):
    return _status(detector)


@router.get("/statistics", response_model=StatisticsResponse)
def get_statistics(detector: ARPDetector = Depends(get_detector)):
    return StatisticsResponse(**detector.statistics().to_dict())


@router.post("/start", response_model=MonitorStatusResponse)
def start_monitoring(detector: ARPDetector = Depends(get_detector)):
    detector.start()
    return _status(detector)


@router.post("/stop", response_model=MonitorStatusResponse)
def stop_monitoring(detector: ARPDetector = Depends(get_detector)):
    detector.stop()
    return _status(detector)


@router.post("/check", response_model=CheckResponse)
def run_check(detector: ARPDetector = Depends(get_detector)):
    """Run one check now. `performed` is false when a check was already running."""
    result = detector.perform_single_check()
    return CheckResponse(
        performed=result.performed,
        error=result.error,
        anomalies=detector.export_anomaly_records(result.anomalies),
    )


@router.patch("/settings", response_model=MonitorStatusResponse)
def update_settings(
    update: MonitorSettingsUpdate,
    detector: ARPDetector = Depends(get_detector),
):
    if update.check_interval is not None:
        detector.set_check_interval(update.check_interval)
    if update.alert_on_gateway_change is not None:
        detector.set_alert_on_gateway_change(update.alert_on_gateway_change)
    if update.alert_on_mac_change is not None:
        detector.set_alert_on_mac_change(update.alert_on_mac_change)
    if update.alert_on_duplicate_mac is not None:
        detector.set_alert_on_duplicate_mac(update.alert_on_duplicate_mac)
    logger.info(f"Monitor settings updated: {update.model_dump(exclude_none=True)}")
    return _status(detector)
