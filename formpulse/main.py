import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, Response, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import OAuth2PasswordBearer

from formpulse.auth import TokenIssuer, authenticate, register_user
from formpulse.config import Settings, load_settings
from formpulse.errors import (
    AuthError,
    DuplicateUser,
    FormLocked,
    FormNotFound,
    FormNotPublished,
    FormServiceError,
    InvalidFormDefinition,
    NotFormOwner,
    StorageUnavailable,
    ValidationError,
)
from formpulse.export import render_submissions_csv
from formpulse.live import SubscriptionRegistry
from formpulse.models import FormDefinition, LoginRequest, RegisterRequest, SubmissionRequest
from formpulse.service import FormService
from formpulse.store import FormStore, JsonFileStore, MemoryStore

logger = logging.getLogger(__name__)

router = APIRouter()
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")

_STATUS_BY_ERROR = (
    (FormNotFound, 404),
    (FormNotPublished, 400),
    (InvalidFormDefinition, 400),
    (NotFormOwner, 403),
    (FormLocked, 409),
    (DuplicateUser, 409),
    (AuthError, 401),
    (StorageUnavailable, 503),
)


def _to_http(exc: FormServiceError) -> HTTPException:
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=400, detail=exc.as_detail())
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
            return HTTPException(status_code=status_code, detail=str(exc), headers=headers)
    return HTTPException(status_code=500, detail=exc.code)


def get_service(request: Request) -> FormService:
    return request.app.state.service


def current_user_id(request: Request, token: str = Depends(oauth2_scheme)) -> str:
    try:
        user_id = request.app.state.tokens.verify(token)
    except AuthError as exc:
        raise _to_http(exc) from exc
    if request.app.state.service.store.get_user(user_id) is None:
        raise HTTPException(
            status_code=401,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user_id


def _build_store(settings: Settings) -> FormStore:
    if settings.store == "file":
        return JsonFileStore(settings.data_dir)
    if settings.store != "memory":
        logger.warning("Unknown FORMPULSE_STORE=%s; falling back to memory store", settings.store)
    return MemoryStore()


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[FormStore] = None,
    registry: Optional[SubscriptionRegistry] = None,
) -> FastAPI:
    settings = settings or load_settings()
    app = FastAPI(title="FormPulse Form Service")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[origin.strip() for origin in settings.allow_origin.split(",")],
        allow_headers=["Origin", "Content-Type", "Accept", "Authorization"],
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    )

    registry = registry or SubscriptionRegistry(send_timeout=settings.broadcast_timeout)
    app.state.settings = settings
    app.state.registry = registry
    app.state.service = FormService(store or _build_store(settings), registry)
    app.state.tokens = TokenIssuer(settings.jwt_secret, settings.jwt_expire_minutes)
    app.include_router(router)
    return app


@router.get("/health")
async def health():
    return {"ok": True, "service": "form-service"}


@router.post("/api/auth/register")
def register(payload: RegisterRequest, request: Request):
    service = get_service(request)
    try:
        user = register_user(service.store, payload.email, payload.password, payload.name)
    except AuthError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except FormServiceError as exc:
        raise _to_http(exc) from exc
    token = request.app.state.tokens.issue(user.id)
    return {"token": token, "user": user.model_dump(mode="json", by_alias=True)}


@router.post("/api/auth/login")
def login(payload: LoginRequest, request: Request):
    try:
        user = authenticate(get_service(request).store, payload.email, payload.password)
    except FormServiceError as exc:
        raise _to_http(exc) from exc
    token = request.app.state.tokens.issue(user.id)
    return {"token": token, "user": user.model_dump(mode="json", by_alias=True)}


@router.post("/api/forms/{form_id}/responses", status_code=201)
async def submit_response(
    form_id: str, payload: SubmissionRequest, service: FormService = Depends(get_service)
):
    try:
        submission = await service.submit(form_id, payload.answers)
    except FormServiceError as exc:
        logger.info("Rejected submission for form %s: %s", form_id, exc)
        raise _to_http(exc) from exc
    return submission.model_dump(mode="json", by_alias=True)


@router.get("/api/forms")
def list_forms(
    user_id: str = Depends(current_user_id), service: FormService = Depends(get_service)
) -> List[dict]:
    try:
        forms = service.list_forms(user_id)
    except FormServiceError as exc:
        raise _to_http(exc) from exc
    return [form.model_dump(mode="json", by_alias=True) for form in forms]


@router.post("/api/forms", status_code=201)
def create_form(
    payload: FormDefinition,
    user_id: str = Depends(current_user_id),
    service: FormService = Depends(get_service),
):
    try:
        form = service.create_form(payload, user_id)
    except FormServiceError as exc:
        raise _to_http(exc) from exc
    return form.model_dump(mode="json", by_alias=True)


@router.get("/api/forms/{form_id}", dependencies=[Depends(current_user_id)])
def get_form(form_id: str, service: FormService = Depends(get_service)):
    try:
        form = service.get_form(form_id)
    except FormServiceError as exc:
        raise _to_http(exc) from exc
    return form.model_dump(mode="json", by_alias=True)


@router.put("/api/forms/{form_id}")
def update_form(
    form_id: str,
    payload: FormDefinition,
    user_id: str = Depends(current_user_id),
    service: FormService = Depends(get_service),
):
    try:
        form = service.update_form(form_id, payload, user_id)
    except FormServiceError as exc:
        raise _to_http(exc) from exc
    return form.model_dump(mode="json", by_alias=True)


@router.get("/api/forms/{form_id}/analytics")
def form_analytics(
    form_id: str,
    user_id: str = Depends(current_user_id),
    service: FormService = Depends(get_service),
):
    try:
        service.get_owned_form(form_id, user_id)
        report = service.aggregate(form_id)
    except FormServiceError as exc:
        raise _to_http(exc) from exc
    except Exception as exc:  # pragma: no cover - unexpected errors
        logger.exception("Unexpected error computing analytics for %s", form_id)
        raise HTTPException(status_code=500, detail="analytics_failed") from exc
    return report.model_dump(mode="json", by_alias=True)


@router.get("/api/forms/{form_id}/export.csv")
def export_csv(
    form_id: str,
    user_id: str = Depends(current_user_id),
    service: FormService = Depends(get_service),
):
    try:
        content = render_submissions_csv(service.iter_submissions(form_id, user_id))
    except FormServiceError as exc:
        raise _to_http(exc) from exc
    logger.info("Exported responses for form %s", form_id)
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=responses.csv"},
    )


@router.websocket("/ws/forms/{form_id}")
async def form_updates(websocket: WebSocket, form_id: str):
    """Stream ``response_created`` events for one form until the client leaves."""
    service: FormService = websocket.app.state.service
    registry: SubscriptionRegistry = websocket.app.state.registry
    try:
        service.get_form(form_id)
    except FormNotFound:
        await websocket.close(code=1008, reason="Form not found")
        return

    async def _close():
        await websocket.close(code=1011, reason="delivery failed")

    await websocket.accept()
    subscription = registry.subscribe(form_id, websocket.send_json, close=_close)
    try:
        while True:
            # Inbound traffic only tells us whether the client is still there.
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    finally:
        registry.unsubscribe(subscription)


app = create_app()


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    uvicorn.run(app, host="0.0.0.0", port=app.state.settings.port)
