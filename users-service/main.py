import os
import time
import uuid
from typing import Dict, Optional, Type, TypeVar
from fastapi import Depends, FastAPI, Request, Response
from fastapi.responses import JSONResponse
from loguru import logger
from dotenv import load_dotenv
from pydantic import BaseModel, ValidationError
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from errors import InvalidArgument, UserServiceError
from models import UserStore
from schemas import ErrorResponse, ListQuery, UserCreate, UserResponse, UserUpdate, parse_user_id

# Chargement des variables d'environnement
load_dotenv()

SERVICE_NAME = "users-service"
LOG_FILE = os.getenv("LOG_FILE", "logs.json")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Config logging JSON (niveaux INFO, WARNING, ERROR)
logger.remove()
logger.add(
    sink=LOG_FILE,
    format="{time:YYYY-MM-DDTHH:mm:ss.SSSZ} | {level} | {message} | {extra}",
    level=LOG_LEVEL,
    serialize=True,
    rotation="1 day",
)

# Prometheus metrics
REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["service", "method", "endpoint", "status"]
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["service", "method", "endpoint"]
)
ERROR_COUNT = Counter(
    "http_errors_total",
    "Total HTTP errors",
    ["service", "endpoint", "error_type"]
)

ERROR_RESPONSES = {400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}}

app = FastAPI(title="Users Service")
app.state.store = UserStore()

BodyModel = TypeVar("BodyModel", bound=BaseModel)


def get_store(request: Request) -> UserStore:
    return request.app.state.store


def endpoint_label(request: Request) -> str:
    # Route template rather than the raw path, so ids don't become labels
    route = request.scope.get("route")
    return getattr(route, "path", request.url.path)


async def read_body(request: Request, model: Type[BodyModel]) -> BodyModel:
    """Decode the JSON body; an empty body is an empty document."""
    raw = await request.body()
    if not raw.strip():
        return model()
    try:
        return model.model_validate_json(raw)
    except ValidationError as exc:
        logger.warning(f"Rejected request body: {exc.error_count()} error(s)")
        raise InvalidArgument("Request body is not a valid user document.") from exc


# Middleware pour logger les requests avec correlation ID (observabilité)
@app.middleware("http")
async def log_requests(request: Request, call_next):
    trace_id = request.headers.get("X-Trace-ID", str(uuid.uuid4()))
    start_time = time.time()

    # bind() rather than keyword extras: the path may contain braces
    with logger.contextualize(trace_id=trace_id, service=SERVICE_NAME):
        logger.bind(method=request.method, url=str(request.url)).info(
            f"Request: {request.method} {request.url.path}"
        )

        response = await call_next(request)

        latency = time.time() - start_time
        endpoint = endpoint_label(request)

        REQUEST_COUNT.labels(
            service=SERVICE_NAME,
            method=request.method,
            endpoint=endpoint,
            status=response.status_code
        ).inc()
        REQUEST_LATENCY.labels(
            service=SERVICE_NAME,
            method=request.method,
            endpoint=endpoint
        ).observe(latency)

        logger.bind(status=response.status_code, latency=latency).info(
            f"Response status: {response.status_code}"
        )

        response.headers["X-Trace-ID"] = trace_id
        return response


@app.exception_handler(UserServiceError)
async def user_service_error_handler(request: Request, exc: UserServiceError):
    logger.bind(error_type=exc.kind.value).warning(f"{request.method} {request.url.path} failed: {exc.message}")
    ERROR_COUNT.labels(service=SERVICE_NAME, endpoint=endpoint_label(request), error_type=exc.kind.value).inc()
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(errorCode=exc.status_code, message=exc.message).model_dump(),
    )


@app.get("/metrics")
async def metrics():
    """Endpoint /metrics compatible Prometheus"""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/health")
async def health():
    """Health check endpoint"""
    return {"status": "healthy", "service": SERVICE_NAME}


def first_param(request: Request, name: str) -> Optional[str]:
    # a repeated parameter keeps its first value
    values = request.query_params.getlist(name)
    return values[0] if values else None


@app.get("/users", response_model=Dict[int, UserResponse], responses=ERROR_RESPONSES)
async def list_users(
    request: Request,
    limit: Optional[str] = None,
    offset: Optional[str] = None,
    store: UserStore = Depends(get_store),
):
    query = ListQuery.from_params(limit=first_param(request, "limit"), offset=first_param(request, "offset"))
    users = store.list(query)
    logger.info(f"Listed {len(users)} user(s)", extra={"limit": query.limit, "offset": query.offset})
    return users


@app.post("/users", status_code=201, response_model=UserResponse, responses=ERROR_RESPONSES)
async def create_user(request: Request, response: Response, store: UserStore = Depends(get_store)):
    body = await read_body(request, UserCreate)
    user, user_id = store.create(body)
    logger.info(f"User created with ID {user_id}")
    response.headers["Location"] = f"/users/{user_id}"
    return user


@app.get("/users/{user_id}", response_model=UserResponse, responses=ERROR_RESPONSES)
async def get_user(user_id: str, store: UserStore = Depends(get_store)):
    logger.info(f"Fetching user {user_id}")
    return store.get(parse_user_id(user_id), raw_id=user_id)


@app.put("/users/{user_id}", response_model=UserResponse, responses=ERROR_RESPONSES)
async def replace_user(user_id: str, request: Request, store: UserStore = Depends(get_store)):
    index = parse_user_id(user_id)
    # existence is reported before any problem with the body
    store.get(index, raw_id=user_id)
    body = await read_body(request, UserCreate)
    user = store.replace(index, body, raw_id=user_id)
    logger.info(f"User {user_id} replaced")
    return user


@app.patch("/users/{user_id}", response_model=UserResponse, responses=ERROR_RESPONSES)
async def patch_user(user_id: str, request: Request, store: UserStore = Depends(get_store)):
    index = parse_user_id(user_id)
    store.get(index, raw_id=user_id)
    body = await read_body(request, UserUpdate)
    user = store.patch(index, body, raw_id=user_id)
    logger.info(f"User {user_id} patched", extra={"fields": sorted(body.changes())})
    return user


@app.delete("/users/{user_id}", response_model=UserResponse, responses=ERROR_RESPONSES)
async def delete_user(user_id: str, store: UserStore = Depends(get_store)):
    user = store.delete(parse_user_id(user_id), raw_id=user_id)
    logger.info(f"User {user_id} deleted")
    return user


if __name__ == "__main__":
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", 8080))
    logger.info(f"Starting Users Service on port {port}")
    import uvicorn
    uvicorn.run(app, host=host, port=port)
