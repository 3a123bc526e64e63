from fastapi import APIRouter, Depends, Response

from geoask.core.capabilities.registry import CapabilityRegistry
from geoask.core.orchestration.orchestrator import Orchestrator
from geoask.core.orchestration.schemas import ChatRequest, ChatResponse, SessionRequest

from .deps import get_orchestrator, get_registry

router = APIRouter()


@router.post("/chat", response_model=ChatResponse, response_model_by_alias=True)
def chat(request: ChatRequest, orchestrator: Orchestrator = Depends(get_orchestrator)) -> ChatResponse:
    return orchestrator.handle(request)


@router.delete("/chat", status_code=204)
def clear_chat(request: SessionRequest, orchestrator: Orchestrator = Depends(get_orchestrator)) -> Response:
    orchestrator.clear_session(request.session_id)
    return Response(status_code=204)


@router.get("/capabilities")
def list_capabilities(registry: CapabilityRegistry = Depends(get_registry)) -> list[dict]:
    return [
        descriptor.model_dump(mode="json", by_alias=True)
        for descriptor in registry.list_capabilities().values()
    ]
