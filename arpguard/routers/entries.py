from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from arpguard.dependencies import get_detector
from arpguard.network.validators import normalize_mac
from arpguard.schemas import BindingEntryRecord
from arpguard.services.detector import ARPDetector

router = APIRouter(prefix="/api/arp", tags=["arp"])


@router.get("", response_model=List[BindingEntryRecord])
def list_arp_entries(
    mac_address: Optional[str] = Query(None, description="Only entries bound to this MAC"),
    stale: Optional[bool] = Query(None, description="Filter by stale flag"),
    detector: ARPDetector = Depends(get_detector),
):
    records = detector.export_table_records()

    if mac_address:
        mac = normalize_mac(mac_address)
        if mac is None:
            raise HTTPException(status_code=400, detail=f"Invalid MAC address '{mac_address}'")
        records = [r for r in records if r.mac_address == mac]
    if stale is not None:
        records = [r for r in records if r.is_stale == stale]

    return records


@router.get("/gateway")
def get_gateway(detector: ARPDetector = Depends(get_detector)):
    return {
        "gateway_ip": detector.gateway_ip(),
        "gateway_mac": detector.gateway_mac(),
    }


@router.get("/{ip_address}", response_model=BindingEntryRecord)
def get_arp_entry(ip_address: str, detector: ARPDetector = Depends(get_detector)):
    for record in detector.export_table_records():
        if record.ip_address == ip_address:
            return record
    raise HTTPException(status_code=404, detail=f"No ARP entry for {ip_address}")


@router.delete("", status_code=204)
def clear_arp_table(detector: ARPDetector = Depends(get_detector)):
    """Forget every binding. Statistics reset on the next start."""
    detector.clear_table()
