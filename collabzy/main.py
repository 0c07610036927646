"""
Collabzy data layer - FastAPI surface for UI consumers.

Each bearer token gets its own DataService (and cache). Reads answer with
the uniform {success, data, error, meta} shape; failed writes answer 400.
"""
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from fastapi import Body, Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from collabzy import __version__
from collabzy.cache import FetchResult
from collabzy.data_service import DataService, MutationResult
from collabzy.session import SessionRegistry
from config.settings import settings

load_dotenv()

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger("collabzy.main")

APP_NAME = "Collabzy Data Layer"

# Query parameters that control the read rather than filter it
RESERVED_PARAMS = {"refresh"}


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Extract the token from an Authorization header."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def _filters(request: Request) -> Dict[str, Any]:
    return {k: v for k, v in request.query_params.items() if k not in RESERVED_PARAMS}


def _read_response(result: FetchResult) -> dict:
    return jsonable_encoder(result.to_dict())


def _write_response(result: MutationResult, success_status: int = 200) -> JSONResponse:
    status_code = success_status if result.success else 400
    return JSONResponse(status_code=status_code, content=jsonable_encoder(result.to_dict()))


def create_app(registry: Optional[SessionRegistry] = None) -> FastAPI:
    """
    Build the app around a session registry.

    Args:
        registry: Session registry to use; a REST-backed one by default
    """
    if registry is None:
        registry = SessionRegistry()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        app.state.sessions.close_all()

    app = FastAPI(
        title=APP_NAME,
        description="Cached access to Collabzy campaigns, applications, deals and conversations",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.sessions = registry

    def get_data_service(
        request: Request,
        authorization: Optional[str] = Header(None),
    ) -> DataService:
        return request.app.state.sessions.get(_bearer_token(authorization))

    @app.get("/health")
    def health_check():
        """Health check endpoint."""
        return {"status": "ok", "sessions": len(app.state.sessions)}

    @app.get("/version")
    def version_info():
        """Version information endpoint."""
        return {"name": APP_NAME, "version": __version__}

    # ===== CACHED READS =====

    @app.get("/influencers")
    def list_influencers(
        request: Request,
        refresh: bool = Query(False, description="Bypass the cache"),
        service: DataService = Depends(get_data_service),
    ):
        return _read_response(service.fetch_influencers(_filters(request), refresh))

    @app.get("/campaigns")
    def list_campaigns(
        request: Request,
        refresh: bool = Query(False, description="Bypass the cache"),
        service: DataService = Depends(get_data_service),
    ):
        return _read_response(service.fetch_campaigns(_filters(request), refresh))

    @app.get("/applications/mine")
    def list_my_applications(
        request: Request,
        refresh: bool = Query(False, description="Bypass the cache"),
        service: DataService = Depends(get_data_service),
    ):
        return _read_response(service.fetch_my_applications(_filters(request), refresh))

    @app.get("/deals/mine")
    def list_my_deals(
        request: Request,
        refresh: bool = Query(False, description="Bypass the cache"),
        service: DataService = Depends(get_data_service),
    ):
        return _read_response(service.fetch_my_deals(_filters(request), refresh))

    @app.get("/collaborations")
    def list_collaborations(
        request: Request,
        refresh: bool = Query(False, description="Bypass the cache"),
        service: DataService = Depends(get_data_service),
    ):
        return _read_response(service.fetch_collaborations(_filters(request), refresh))

    # ===== UNCACHED READS =====

    @app.get("/campaigns/mine")
    def list_my_campaigns(request: Request, service: DataService = Depends(get_data_service)):
        return _read_response(service.fetch_my_campaigns(_filters(request)))

    @app.get("/campaigns/eligible")
    def list_eligible_campaigns(request: Request, service: DataService = Depends(get_data_service)):
        return _read_response(service.fetch_eligible_campaigns(_filters(request)))

    @app.get("/campaigns/{campaign_id}")
    def campaign_detail(campaign_id: str, service: DataService = Depends(get_data_service)):
        result = service.get_campaign_by_id(campaign_id)
        if result.success and not result.data:
            raise HTTPException(status_code=404, detail="Campaign not found")
        return _read_response(result)

    @app.get("/influencers/{user_id}")
    def influencer_detail(user_id: str, service: DataService = Depends(get_data_service)):
        result = service.get_influencer_by_id(user_id)
        if result.success and not result.data:
            raise HTTPException(status_code=404, detail="Influencer not found")
        return _read_response(result)

    # ===== WRITES =====

    @app.post("/campaigns")
    def create_campaign(
        campaign: Dict[str, Any] = Body(...),
        service: DataService = Depends(get_data_service),
    ):
        return _write_response(service.create_campaign(campaign), success_status=201)

    @app.put("/campaigns/{campaign_id}")
    def update_campaign(
        campaign_id: str,
        campaign: Dict[str, Any] = Body(...),
        service: DataService = Depends(get_data_service),
    ):
        return _write_response(service.update_campaign(campaign_id, campaign))

    @app.delete("/campaigns/{campaign_id}")
    def delete_campaign(campaign_id: str, service: DataService = Depends(get_data_service)):
        return _write_response(service.delete_campaign(campaign_id))

    @app.post("/applications")
    def submit_application(
        application: Dict[str, Any] = Body(...),
        service: DataService = Depends(get_data_service),
    ):
        return _write_response(service.submit_application(application), success_status=201)

    @app.patch("/applications/{application_id}/status")
    def update_application_status(
        application_id: str,
        status: str = Body(..., embed=True),
        message: str = Body("", embed=True),
        service: DataService = Depends(get_data_service),
    ):
        return _write_response(service.update_application_status(application_id, status, message))

    @app.delete("/applications/{application_id}")
    def withdraw_application(application_id: str, service: DataService = Depends(get_data_service)):
        return _write_response(service.withdraw_application(application_id))

    @app.post("/applications/{application_id}/messages")
    def send_application_message(
        application_id: str,
        content: str = Body(..., embed=True),
        service: DataService = Depends(get_data_service),
    ):
        return _write_response(service.send_application_message(application_id, content), success_status=201)

    @app.post("/deals")
    def create_deal(
        deal: Dict[str, Any] = Body(...),
        service: DataService = Depends(get_data_service),
    ):
        return _write_response(service.create_deal(deal), success_status=201)

    @app.put("/deals/{deal_id}/status")
    def update_deal_status(
        deal_id: str,
        status_data: Dict[str, Any] = Body(...),
        service: DataService = Depends(get_data_service),
    ):
        return _write_response(service.update_deal_status(deal_id, status_data))

    @app.put("/deals/{deal_id}/deliverables/{deliverable_index}")
    def update_deliverable(
        deal_id: str,
        deliverable_index: int,
        data: Dict[str, Any] = Body(...),
        service: DataService = Depends(get_data_service),
    ):
        return _write_response(service.update_deliverable(deal_id, deliverable_index, data))

    @app.post("/collaborations")
    def create_collaboration(
        receiver_id: str = Body(..., embed=True, alias="receiverId"),
        content: str = Body(..., embed=True),
        service: DataService = Depends(get_data_service),
    ):
        return _write_response(service.create_collaboration(receiver_id, content), success_status=201)

    # ===== PUSH EVENTS & CACHE CONTROL =====

    @app.post("/events/{event}")
    def push_event(
        event: str,
        payload: Optional[Dict[str, Any]] = Body(None),
        service: DataService = Depends(get_data_service),
    ):
        """Reconcile a live push event with the cache."""
        kinds = service.apply_push_event(event, payload)
        return {"event": event, "invalidated": [kind.value for kind in kinds]}

    @app.get("/cache/stats")
    def cache_stats(service: DataService = Depends(get_data_service)):
        """Get cache statistics for the caller's session."""
        return service.get_cache_stats()

    @app.post("/cache/invalidate")
    def invalidate_cache(
        kind: Optional[str] = Query(None, description="Resource kind; all kinds when omitted"),
        service: DataService = Depends(get_data_service),
    ):
        try:
            removed = service.invalidate(kind)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Unknown resource kind: {kind}")
        return {"kind": kind or "all", "removed": removed}

    @app.post("/auth/logout")
    def logout(request: Request, authorization: Optional[str] = Header(None)):
        """End the caller's session and drop its cache."""
        ended = request.app.state.sessions.end(_bearer_token(authorization))
        return {"success": True, "ended": ended}

    return app


app = create_app()
