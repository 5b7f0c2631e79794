"""
FastAPI server for the monitoring data (alerts, cases, targets, scans).

The public site is statically exported, so in production every route
answers 403. Locally the API backs the admin pages.

Every response is an envelope: {"success": bool, "data": ..., "error": str}.

Usage:
    uvicorn iwu.api.server:create_app --factory --reload --port 8000
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import Body, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..cases.workflow import CaseStatus, InvalidTransition
from ..config.settings import ConfigError, Settings
from ..evidence.bundler import BundleIntegrityError
from ..ingest.coordinator import MonitorCoordinator
from ..reports.stats import get_system_stats
from ..search.engine import DEFAULT_PAGE_SIZE, query_items
from ..services import Services, build_services
from ..store.json_store import PersistError
from ..store.validation import ValidationError

logger = logging.getLogger(__name__)

ALERT_SEARCH_FIELDS = ("title", "message", "source")
CASE_SEARCH_FIELDS = ("title", "summary", "category", "target_entity.name")
TARGET_SEARCH_FIELDS = ("name", "type", "jurisdiction")


# Pydantic models
class WorkflowRequest(BaseModel):
    action: str = Field(description="submit, approve, publish or retract")
    actor: str = Field(default="admin", description="Who performs the action")


class AlertUpdateRequest(BaseModel):
    action: str = Field(default="acknowledge", description="Only 'acknowledge' is supported")


class ScanRequest(BaseModel):
    sources: Optional[List[str]] = Field(default=None, description="Source ids; all enabled sources when omitted")


def envelope(data: Any = None, status_code: int = 200, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": True, "data": data, **extra})


def error_envelope(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def _query_page(items, **kwargs):
    try:
        return query_items(items, **kwargs)
    except ValueError as e:
        raise ValidationError(str(e))


def _page_response(page, **extra: Any) -> JSONResponse:
    meta = page.to_dict()
    items = meta.pop("items")
    return envelope(items, pagination=meta, **extra)


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return error_envelope(str(exc.detail), exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def request_validation_error(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        return error_envelope(f"Invalid request: {field} {first.get('msg', '')}".strip(), 400)

    @app.exception_handler(ValidationError)
    async def validation_error(request: Request, exc: ValidationError):
        return error_envelope(exc.message, 400)

    @app.exception_handler(InvalidTransition)
    async def invalid_transition(request: Request, exc: InvalidTransition):
        return error_envelope(str(exc), 400)

    @app.exception_handler(ConfigError)
    async def config_error(request: Request, exc: ConfigError):
        return error_envelope(str(exc), 400)

    @app.exception_handler(PersistError)
    async def persist_error(request: Request, exc: PersistError):
        logger.error(f"Persist failure on {request.url.path}: {exc}")
        return error_envelope("Failed to save data", 500)

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.url.path}")
        return error_envelope("Internal server error", 500)


def create_app(settings: Optional[Settings] = None, services: Optional[Services] = None) -> FastAPI:
    """
    Build the API application.

    Args:
        settings: Resolved settings (default: ``Settings.from_env()``)
        services: Pre-built services, mainly for tests
    """
    settings = settings or Settings.from_env()
    services = services or build_services(settings)

    app = FastAPI(
        title="InjuredWorkersUnite Monitoring API",
        description="Alerts, cases, targets and scans for the monitoring system",
        version="1.0.0",
    )
    app.state.settings = settings
    app.state.services = services

    @app.middleware("http")
    async def production_guard(request: Request, call_next):
        if settings.is_production:
            return error_envelope("API disabled in production; the site is statically exported", 403)
        return await call_next(request)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _install_error_handlers(app)

    # Alerts

    @app.get("/api/alerts")
    def list_alerts(
        severity: Optional[str] = None,
        category: Optional[str] = None,
        scope: Optional[str] = None,
        acknowledged: Optional[bool] = None,
        q: Optional[str] = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        alerts = services.alerts.get_alerts(severity=severity, category=category, scope=scope, acknowledged=acknowledged)
        page_result = _query_page(alerts, query=q, fields=ALERT_SEARCH_FIELDS, page=page, page_size=page_size)

        stats = {
            "total": len(alerts),
            "critical": sum(1 for a in alerts if a.get("severity") == "critical"),
            "high": sum(1 for a in alerts if a.get("severity") == "high"),
            "unacknowledged": sum(1 for a in alerts if not a.get("acknowledged")),
        }
        return _page_response(page_result, stats=stats)

    @app.post("/api/alerts")
    def create_alert(payload: Dict[str, Any] = Body(...)):
        return envelope(services.alerts.record_alert(payload), status_code=201)

    @app.get("/api/alerts/{alert_id}")
    def get_alert(alert_id: str):
        alert = services.alerts.get_alert(alert_id)
        if alert is None:
            raise HTTPException(status_code=404, detail="Alert not found")
        return envelope(alert)

    @app.put("/api/alerts/{alert_id}")
    def update_alert(alert_id: str, request: Optional[AlertUpdateRequest] = None):
        request = request or AlertUpdateRequest()
        if request.action != "acknowledge":
            raise ValidationError(f"Unknown action: {request.action}", field="action")
        alert = services.alerts.acknowledge_alert(alert_id)
        if alert is None:
            raise HTTPException(status_code=404, detail="Alert not found")
        return envelope(alert)

    # Cases

    @app.get("/api/cases")
    def list_cases(
        status: Optional[str] = None,
        category: Optional[str] = None,
        scope: Optional[str] = None,
        severity: Optional[str] = None,
        q: Optional[str] = None,
        sort: str = "created_at",
        direction: str = "desc",
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        cases = services.cases.list_cases(status=status, category=category, scope=scope, severity=severity)
        page_result = _query_page(cases, query=q, fields=CASE_SEARCH_FIELDS, sort_by=sort,
                                  direction=direction, page=page, page_size=page_size)
        return _page_response(page_result)

    @app.post("/api/cases")
    def create_case(payload: Dict[str, Any] = Body(...)):
        return envelope(services.cases.create_case(payload), status_code=201)

    @app.get("/api/cases/{case_id}")
    def get_case(case_id: str):
        case = services.cases.get_case(case_id)
        if case is None:
            raise HTTPException(status_code=404, detail="Case not found")
        return envelope({
            **case,
            "evidence": services.evidence.get_evidence(case_id=case_id),
            "provenance": services.provenance.get_chain("case", case_id),
        })

    @app.put("/api/cases/{case_id}")
    def update_case(case_id: str, payload: Dict[str, Any] = Body(...)):
        case = services.cases.update_case(case_id, payload)
        if case is None:
            raise HTTPException(status_code=404, detail="Case not found")
        return envelope(case)

    @app.delete("/api/cases/{case_id}")
    def retract_case(case_id: str, actor: str = "admin"):
        # Cases are never deleted, only retracted
        case = services.cases.retract(case_id, actor)
        if case is None:
            raise HTTPException(status_code=404, detail="Case not found")
        return envelope(case)

    @app.post("/api/cases/{case_id}/workflow")
    def case_workflow(case_id: str, request: WorkflowRequest):
        case = services.cases.apply_action(case_id, request.action, request.actor)
        if case is None:
            raise HTTPException(status_code=404, detail="Case not found")
        return envelope(case, message=f"Case {request.action} succeeded")

    # Targets

    @app.get("/api/targets")
    def list_targets(
        type: Optional[str] = None,
        jurisdiction: Optional[str] = None,
        threat_level: Optional[str] = None,
        status: Optional[str] = None,
        q: Optional[str] = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        targets = services.targets.list_targets(type=type, jurisdiction=jurisdiction,
                                                threat_level=threat_level, status=status)
        page_result = _query_page(targets, query=q, fields=TARGET_SEARCH_FIELDS, page=page, page_size=page_size)
        return _page_response(page_result)

    @app.post("/api/targets")
    def create_target(payload: Dict[str, Any] = Body(...)):
        return envelope(services.targets.create_target(payload), status_code=201)

    # Scans and stats

    @app.get("/api/scan")
    def scan_history(limit: int = 20):
        return envelope(services.scans.recent_scans(limit))

    @app.post("/api/scan")
    def run_scan(request: Optional[ScanRequest] = None):
        request = request or ScanRequest()
        coordinator = MonitorCoordinator(settings)
        return envelope(coordinator.run(request.sources))

    @app.get("/api/stats")
    def stats():
        return envelope(get_system_stats(services.store))

    # Evidence bundles

    @app.get("/api/evidence/bundle/{case_id}")
    def download_bundle(case_id: str):
        case = services.cases.get_case(case_id)
        if case is None:
            raise HTTPException(status_code=404, detail="Case not found")
        if case["status"] != CaseStatus.PUBLISHED.value:
            raise HTTPException(status_code=403, detail="Evidence bundles are only available for published cases")

        try:
            bundle = services.bundler.create_bundle(case_id)
        except BundleIntegrityError as e:
            logger.error(str(e))
            return error_envelope(f"Bundle could not be built: {e.message}", 500)

        return Response(
            content=bundle.content,
            media_type="application/zip",
            headers={
                "Content-Disposition": f'attachment; filename="{bundle.filename}"',
                "X-Bundle-Hash": bundle.bundle_hash,
            },
        )

    return app
