"""Trust endpoints - manage the caller's trusted peers."""

from fastapi import APIRouter, Depends

from peer_connect.api.deps import get_current_user_id, get_trust_registry
from peer_connect.schemas.trust import TrustedPeers
from peer_connect.services.trust_service import TrustRegistry

router = APIRouter()


async def _peers_response(owner_id: str, trust: TrustRegistry) -> TrustedPeers:
    return TrustedPeers(owner_id=owner_id, peers=await trust.list_trusted_peers(owner_id))


@router.get("/", response_model=TrustedPeers)
async def list_trusted_peers(
    user_id: str = Depends(get_current_user_id),
    trust: TrustRegistry = Depends(get_trust_registry),
):
    return await _peers_response(user_id, trust)


@router.put("/{peer_id}", response_model=TrustedPeers)
async def add_trusted_peer(
    peer_id: str,
    user_id: str = Depends(get_current_user_id),
    trust: TrustRegistry = Depends(get_trust_registry),
):
    """Trust a peer (idempotent)."""
    await trust.add_trust(user_id, peer_id)
    return await _peers_response(user_id, trust)


@router.delete("/{peer_id}", response_model=TrustedPeers)
async def remove_trusted_peer(
    peer_id: str,
    user_id: str = Depends(get_current_user_id),
    trust: TrustRegistry = Depends(get_trust_registry),
):
    await trust.remove_trust(user_id, peer_id)
    return await _peers_response(user_id, trust)
