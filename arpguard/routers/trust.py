from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from arpguard.dependencies import get_detector
from arpguard.schemas import (
    ExpectedPrefixesUpdate,
    GatewayUpdate,
    MultiHomedCreate,
    TrustedMacCreate,
    TrustPolicyResponse,
)
from arpguard.services.detector import ARPDetector

router = APIRouter(prefix="/api/trust", tags=["trust"])


@router.get("", response_model=TrustPolicyResponse)
def get_trust_policy(detector: ARPDetector = Depends(get_detector)):
    return TrustPolicyResponse(**detector.trust_policy_summary())


@router.put("/gateway", response_model=TrustPolicyResponse)
def set_gateway(update: GatewayUpdate, detector: ARPDetector = Depends(get_detector)):
    detector.set_gateway_ip(update.gateway_ip)
    return TrustPolicyResponse(**detector.trust_policy_summary())


@router.post("/trusted-macs", response_model=TrustPolicyResponse, status_code=201)
def add_trusted_mac(body: TrustedMacCreate, detector: ARPDetector = Depends(get_detector)):
    detector.add_trusted_mac(body.mac_address, body.ip_address)
    return TrustPolicyResponse(**detector.trust_policy_summary())


@router.delete("/trusted-macs")
def remove_trusted_mac(
    mac_address: Optional[str] = Query(None, description="MAC to remove; omit to clear all"),
    ip_address: Optional[str] = Query(None, description="Limit removal to one IP"),
    detector: ARPDetector = Depends(get_detector),
):
    if mac_address is None:
        if ip_address is not None:
            raise HTTPException(status_code=400, detail="ip_address requires mac_address")
        detector.clear_trusted_macs()
        return {"removed": None, "cleared": True}
    removed = detector.remove_trusted_mac(mac_address, ip_address)
    return {"removed": removed, "cleared": False}


@router.post("/multi-homed", response_model=TrustPolicyResponse, status_code=201)
def add_multi_homed(body: MultiHomedCreate, detector: ARPDetector = Depends(get_detector)):
    detector.add_multi_homed(body.ip_address)
    return TrustPolicyResponse(**detector.trust_policy_summary())


@router.delete("/multi-homed/{ip_address}", response_model=TrustPolicyResponse)
def remove_multi_homed(ip_address: str, detector: ARPDetector = Depends(get_detector)):
    detector.remove_multi_homed(ip_address)
    return TrustPolicyResponse(**detector.trust_policy_summary())


@router.put("/expected-prefixes", response_model=TrustPolicyResponse)
def set_expected_prefixes(
    body: ExpectedPrefixesUpdate,
    detector: ARPDetector = Depends(get_detector),
):
    """Set expected OUI prefixes for an address or the gateway role. Empty list removes them."""
    detector.set_expected_prefixes(body.target, body.prefixes)
    return TrustPolicyResponse(**detector.trust_policy_summary())
