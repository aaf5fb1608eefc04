"""Main FastAPI application for the maintenance request tracker."""

import logging
import os
import time
from datetime import UTC, datetime

import boto3
from botocore.exceptions import ClientError
from fastapi import (
    Depends,
    FastAPI,
    HTTPException,
    Query,
    WebSocket,
    WebSocketDisconnect,
    status,
)
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field

from handlers.ui_page import render_page
from models.maintenance_request import (
    SYSTEM_OPTIONS,
    MaintenanceRequestCreate,
    RequestStatus,
    StatusUpdateRequest,
)
from services.auth_service import AuthenticationError, AuthService
from services.maintenance_request_service import MaintenanceRequestService
from services.snapshot_hub import hub, snapshot_payload

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Maintenance Request API",
    description="API for submitting and tracking facility maintenance requests",
    version="1.0.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
)

CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request, call_next):
    """Log API requests with timing."""
    start = time.time()
    response = await call_next(request)
    duration_ms = (time.time() - start) * 1000

    path = request.url.path
    if duration_ms > 1000:
        logger.warning(
            "[SLOW] %s %s %.0fms status=%d",
            request.method,
            path,
            duration_ms,
            response.status_code,
        )
    elif response.status_code >= 500:
        logger.error(
            "[ERROR] %s %s %.0fms status=%d",
            request.method,
            path,
            duration_ms,
            response.status_code,
        )
    elif response.status_code >= 400:
        logger.info(
            "[CLIENT_ERROR] %s %s %.0fms status=%d",
            request.method,
            path,
            duration_ms,
            response.status_code,
        )

    return response


# Lazy-initialized AWS resources and services
_dynamodb = None
_auth_service = None
_request_service = None

# Security scheme for bearer token authentication
security = HTTPBearer(auto_error=False)


def reset_services():
    """Reset all lazy-initialized services. Useful for testing.

    Also resets boto3's default session so that subsequent calls to
    boto3.resource() create fresh sessions within the current mock context
    (e.g., moto's mock_aws).
    """
    global _dynamodb, _auth_service, _request_service
    _dynamodb = None
    _auth_service = None
    _request_service = None
    boto3.DEFAULT_SESSION = None


def get_dynamodb():
    """Get or create the DynamoDB resource."""
    global _dynamodb
    if _dynamodb is None:
        region = os.environ.get("AWS_DEFAULT_REGION", "ap-southeast-1")
        # Optional endpoint for DynamoDB Local
        endpoint_url = os.environ.get("DYNAMODB_ENDPOINT_URL") or None
        _dynamodb = boto3.resource(
            "dynamodb", region_name=region, endpoint_url=endpoint_url
        )
    return _dynamodb


def get_auth_service():
    """Get or create AuthService."""
    global _auth_service
    if _auth_service is None:
        user_table = get_dynamodb().Table(
            os.environ.get("USERS_TABLE", "maintenance-users-dev")
        )
        _auth_service = AuthService(
            user_table=user_table,
            jwt_secret=os.environ.get("JWT_SECRET_KEY"),
        )
    return _auth_service


def get_request_service():
    """Get or create MaintenanceRequestService."""
    global _request_service
    if _request_service is None:
        _request_service = MaintenanceRequestService(
            get_dynamodb().Table(
                os.environ.get(
                    "MAINTENANCE_REQUESTS_TABLE", "maintenance-requests-dev"
                )
            )
        )
    return _request_service


def get_default_namespace() -> str:
    return os.environ.get("APP_NAMESPACE", "default-app")


# MARK: - Authentication Dependency


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),  # noqa: B008
) -> str:
    """Extract user ID from JWT token.

    Raises:
        HTTPException: If token is missing or invalid
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return get_auth_service().verify_access_token(credentials.credentials)
    except AuthenticationError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )


# MARK: - Health Check and Page


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(UTC).isoformat(),
        "version": "1.0.0",
    }


@app.get("/", response_class=HTMLResponse)
async def index_page():
    """Serve the maintenance request page."""
    return HTMLResponse(
        content=render_page(
            namespace=get_default_namespace(),
            initial_token=os.environ.get("INITIAL_AUTH_TOKEN") or None,
        )
    )


@app.get("/api/v1/system-options")
async def get_system_options():
    """List the system categories and status values the form offers."""
    return {
        "systems": SYSTEM_OPTIONS,
        "statuses": [s.value for s in RequestStatus],
    }


# MARK: - Authentication Endpoints


class CustomTokenRequest(BaseModel):
    """Request body for exchanging a pre-issued token."""

    token: str = Field(..., description="Pre-issued custom token")


class RefreshTokenRequest(BaseModel):
    """Request body for token refresh."""

    refresh_token: str = Field(..., description="Refresh token")


@app.post("/api/v1/auth/token")
async def sign_in_with_custom_token(request: CustomTokenRequest):
    """Exchange a pre-issued token for a session."""
    try:
        auth_service = get_auth_service()
        user = auth_service.exchange_custom_token(request.token)
        tokens = auth_service.create_session_tokens(user.user_id)

        return {
            "user": user.to_dict(),
            "tokens": tokens,
            "is_new_user": user.is_new_user,
        }

    except AuthenticationError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
        )
    except Exception as e:
        logger.error("Custom token sign in error: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Authentication failed",
        )


@app.post("/api/v1/auth/anonymous")
async def sign_in_anonymously():
    """Create an anonymous session with a fresh identity."""
    try:
        auth_service = get_auth_service()
        user = auth_service.create_anonymous_session()
        tokens = auth_service.create_session_tokens(user.user_id)

        return {
            "user": user.to_dict(),
            "tokens": tokens,
            "is_new_user": user.is_new_user,
        }

    except AuthenticationError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
        )
    except Exception as e:
        logger.error("Anonymous sign in error: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Anonymous authentication failed",
        )


@app.post("/api/v1/auth/refresh")
async def refresh_token(request: RefreshTokenRequest):
    """Refresh access token using refresh token."""
    try:
        tokens = get_auth_service().refresh_tokens(request.refresh_token)
        return {"tokens": tokens}

    except AuthenticationError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
        )


@app.get("/api/v1/auth/me")
async def get_current_user(user_id: str = Depends(get_current_user_id)):
    """Get current authenticated identity."""
    return {"user_id": user_id}


# MARK: - Maintenance Request Endpoints


async def _broadcast_snapshot(namespace: str) -> None:
    """Push the full current snapshot of a namespace to its subscribers."""
    if hub.subscriber_count(namespace) == 0:
        return
    try:
        records = get_request_service().list_requests(namespace)
        await hub.publish(
            namespace,
            "snapshot",
            snapshot_payload(namespace, [r.model_dump() for r in records]),
        )
    except Exception as e:
        logger.error("Failed to broadcast snapshot for %s: %s", namespace, e)
        await hub.publish(namespace, "error", {"detail": str(e)})


@app.get("/api/v1/namespaces/{namespace}/requests")
async def list_requests(
    namespace: str,
    user_id: str = Depends(get_current_user_id),
):
    """Get the current snapshot of all requests in a namespace."""
    try:
        records = get_request_service().list_requests(namespace)
        return {
            "requests": [r.model_dump() for r in records],
            "count": len(records),
        }

    except Exception as e:
        logger.error("Failed to list requests: %s", e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to get requests: {e}",
        )


@app.get("/api/v1/namespaces/{namespace}/requests/{request_id}")
async def get_request(
    namespace: str,
    request_id: str,
    user_id: str = Depends(get_current_user_id),
):
    """Get a single request by ID."""
    try:
        record = get_request_service().get_request(namespace, request_id)
        if not record:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Request {request_id} not found",
            )
        return record.model_dump()

    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to get request: {e}",
        )


@app.post(
    "/api/v1/namespaces/{namespace}/requests", status_code=status.HTTP_201_CREATED
)
async def create_request(
    namespace: str,
    request_data: MaintenanceRequestCreate,
    user_id: str = Depends(get_current_user_id),
):
    """Submit a new maintenance request as the authenticated user."""
    try:
        record = get_request_service().create_request(namespace, user_id, request_data)
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e),
        )

    await _broadcast_snapshot(namespace)
    return record.model_dump()


@app.patch("/api/v1/namespaces/{namespace}/requests/{request_id}/status")
async def update_request_status(
    namespace: str,
    request_id: str,
    update: StatusUpdateRequest,
    user_id: str = Depends(get_current_user_id),
):
    """Change the status of a request. No other field is touched."""
    try:
        get_request_service().update_status(namespace, request_id, update.status)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e),
        )
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e),
        )

    await _broadcast_snapshot(namespace)
    return {"request_id": request_id, "status": RequestStatus(update.status).value}


# MARK: - Live Snapshot Subscription


@app.websocket("/ws/namespaces/{namespace}/requests")
async def ws_requests(
    websocket: WebSocket, namespace: str, token: str | None = Query(None)
):
    """Stream full snapshots of a namespace on every change."""
    # Accept first so the client sees the 4401 close code
    await websocket.accept()
    if not token:
        await websocket.close(code=4401)
        return
    try:
        user_id = get_auth_service().verify_access_token(token)
    except AuthenticationError:
        await websocket.close(code=4401)
        return

    await hub.connect(namespace, websocket)
    logger.info("Subscriber %s joined %s", user_id, namespace)

    try:
        # Initial snapshot
        try:
            records = get_request_service().list_requests(namespace)
            await websocket.send_json(
                {
                    "event": "snapshot",
                    "data": snapshot_payload(
                        namespace, [r.model_dump() for r in records]
                    ),
                }
            )
        except WebSocketDisconnect:
            raise
        except Exception as e:
            logger.error("Initial snapshot for %s failed: %s", namespace, e)
            await websocket.send_json({"event": "error", "data": {"detail": str(e)}})

        while True:
            data = await websocket.receive_text()
            if data and data.strip().lower() in {"ping", "keepalive"}:
                await websocket.send_text("pong")
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.warning("Subscriber %s of %s failed: %s", user_id, namespace, e)
    finally:
        await hub.disconnect(namespace, websocket)


# MARK: - Error Handlers


@app.exception_handler(ClientError)
async def aws_client_error_handler(request, exc: ClientError):
    """Handle AWS client errors."""
    error_code = exc.response["Error"]["Code"]
    error_message = exc.response["Error"]["Message"]

    if error_code == "ResourceNotFoundException":
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"detail": f"Resource not found: {error_message}"},
        )
    else:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": f"AWS error: {error_message}"},
        )


@app.exception_handler(ValueError)
async def value_error_handler(request, exc: ValueError):
    """Handle value errors."""
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)}
    )


# For local development
if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    uvicorn.run(app, host="0.0.0.0", port=8000)
