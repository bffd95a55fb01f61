from fastapi import FastAPI, Depends, File, HTTPException, Query, Request, UploadFile, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from datetime import datetime
from typing import Optional, List

from planit import __version__
from planit import reconciler
from planit.assets import PROFILE_PHOTO, VENDOR_LICENSE, build_asset_store, read_upload, upload_and_link
from planit.identity import authorize_self_or_admin, get_asset_store, get_current_user, get_store
from planit.schemas import (
    UserSignup, UserLogin, UserUpdate, UserResponse, LoginResponse,
    PlannerOnboard, PlannerUpdate, PlannerResponse, PhotoUploadResponse,
    VendorOnboard, VendorUpdate, VendorResponse, LicenseUploadResponse,
)
from planit.shared.logging_config import setup_logging, RequestLoggingMiddleware
from planit.shared.security_config import setup_rate_limiting, SecurityHeadersMiddleware, limiter
from planit.shared.utils import (
    settings, setup_error_handlers, SuccessResponse, HealthResponse, ValidationException,
)
from planit.store import ProfileKind, ProfileStore, build_profile_store

SERVICE_NAME = "planit-service"

# Setup Logging
logger = setup_logging(SERVICE_NAME, settings.LOG_LEVEL)

app = FastAPI(title="Planit Service")

# Security Setup
setup_rate_limiting(app)
setup_error_handlers(app)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestLoggingMiddleware, service_name=SERVICE_NAME)

# CORS Configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.on_event("startup")
async def startup_stores():
    app.state.store = build_profile_store(settings)
    await app.state.store.connect()
    app.state.assets = build_asset_store(settings)
    logger.info(f"Planit service started with '{app.state.store.backend}' store")

@app.on_event("shutdown")
async def shutdown_stores():
    await app.state.store.close()

# --- Helper ---
def parse_expand(expand: Optional[str]) -> List[ProfileKind]:
    if expand is None:
        return list(reconciler.EXPANDABLE)
    kinds = []
    for name in filter(None, (part.strip().lower() for part in expand.split(","))):
        try:
            kinds.append(ProfileKind(name))
        except ValueError:
            raise ValidationException(
                "Validation error",
                details=[{"loc": ["query", "expand"], "msg": f"Unknown expansion '{name}'", "type": "value_error"}],
            )
    return kinds

# --- Endpoints ---

@app.get("/", response_class=PlainTextResponse)
async def root():
    return "Planit Backend is running"

@app.get("/health", response_model=HealthResponse)
async def health_check(store: ProfileStore = Depends(get_store), assets=Depends(get_asset_store)):
    db_status = "connected" if await store.ping() else "disconnected"

    if db_status != "connected":
        logger.error(f"Health Check Failed: DB={db_status}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service Unhealthy"
        )

    return HealthResponse(
        service=SERVICE_NAME,
        status="healthy",
        timestamp=datetime.utcnow(),
        version=__version__,
        database=f"{store.backend}:{db_status}",
        dependencies={"asset-storage": "firebase" if assets is not None else "mock"},
    )

# Users
@app.post("/users/signup", response_model=SuccessResponse[UserResponse], status_code=status.HTTP_201_CREATED)
async def signup(user: UserSignup, store: ProfileStore = Depends(get_store)):
    created = await reconciler.signup(store, user)
    return SuccessResponse(data=UserResponse(**created), message="User created")

@app.post("/users/login", response_model=SuccessResponse[LoginResponse])
@limiter.limit(settings.LOGIN_RATE_LIMIT)
async def login(user_credentials: UserLogin, request: Request, store: ProfileStore = Depends(get_store)):
    user, token = await reconciler.login(store, user_credentials)
    return SuccessResponse(data=LoginResponse(user=UserResponse(**user), token=token), message="Login successful")

@app.get("/users/{user_id}", response_model=SuccessResponse[UserResponse])
async def get_user_profile(
    user_id: str,
    expand: Optional[str] = Query(None, description="Comma separated: planner,vendor"),
    caller: dict = Depends(get_current_user),
    store: ProfileStore = Depends(get_store),
):
    authorize_self_or_admin(user_id, caller)
    profile = await reconciler.get_user_profile(store, user_id, parse_expand(expand))
    return SuccessResponse(data=UserResponse(**profile))

@app.put("/users/{user_id}", response_model=SuccessResponse[UserResponse])
async def update_user_profile(
    user_id: str,
    profile_update: UserUpdate,
    caller: dict = Depends(get_current_user),
    store: ProfileStore = Depends(get_store),
):
    user = await reconciler.update_user_profile(store, user_id, profile_update, caller)
    return SuccessResponse(data=UserResponse(**user), message="User profile updated")

# Planners
@app.post("/planners/onboard", response_model=SuccessResponse[PlannerResponse])
async def onboard_planner(
    planner: PlannerOnboard,
    caller: dict = Depends(get_current_user),
    store: ProfileStore = Depends(get_store),
):
    record, _ = await reconciler.onboard_planner(store, planner)
    return SuccessResponse(data=PlannerResponse(**record), message="Planner onboarded successfully")

@app.get("/planners/{planner_id}", response_model=SuccessResponse[PlannerResponse])
async def get_planner(planner_id: str, caller: dict = Depends(get_current_user), store: ProfileStore = Depends(get_store)):
    record = await reconciler.get_owned_profile(store, ProfileKind.PLANNER, planner_id, caller)
    return SuccessResponse(data=PlannerResponse(**record))

@app.put("/planners/{planner_id}", response_model=SuccessResponse[PlannerResponse])
async def update_planner(
    planner_id: str,
    planner_update: PlannerUpdate,
    caller: dict = Depends(get_current_user),
    store: ProfileStore = Depends(get_store),
):
    record = await reconciler.update_planner(store, planner_id, planner_update, caller)
    return SuccessResponse(data=PlannerResponse(**record), message="Planner profile updated")

@app.post("/planners/{planner_id}/upload-photo", response_model=SuccessResponse[PhotoUploadResponse])
async def upload_profile_photo(
    planner_id: str,
    file: Optional[UploadFile] = File(None),
    caller: dict = Depends(get_current_user),
    store: ProfileStore = Depends(get_store),
    assets=Depends(get_asset_store),
):
    data = await read_upload(PROFILE_PHOTO, file)
    file_url, record = await upload_and_link(
        store, assets, PROFILE_PHOTO, planner_id, data,
        file.content_type if file else None, (file.filename or "") if file else "", caller,
    )
    message = "Profile photo uploaded" if assets is not None else "Mock upload (storage inactive)"
    return SuccessResponse(data=PhotoUploadResponse(file_url=file_url, planner=PlannerResponse(**record)), message=message)

# Vendors
@app.post("/vendors/onboard", response_model=SuccessResponse[VendorResponse])
async def onboard_vendor(
    vendor: VendorOnboard,
    caller: dict = Depends(get_current_user),
    store: ProfileStore = Depends(get_store),
):
    record, _ = await reconciler.onboard_vendor(store, vendor)
    return SuccessResponse(data=VendorResponse(**record), message="Vendor onboarded successfully")

@app.get("/vendors/{vendor_id}", response_model=SuccessResponse[VendorResponse])
async def get_vendor(vendor_id: str, caller: dict = Depends(get_current_user), store: ProfileStore = Depends(get_store)):
    record = await reconciler.get_owned_profile(store, ProfileKind.VENDOR, vendor_id, caller)
    return SuccessResponse(data=VendorResponse(**record))

@app.put("/vendors/{vendor_id}", response_model=SuccessResponse[VendorResponse])
async def update_vendor(
    vendor_id: str,
    vendor_update: VendorUpdate,
    caller: dict = Depends(get_current_user),
    store: ProfileStore = Depends(get_store),
):
    record = await reconciler.update_vendor(store, vendor_id, vendor_update, caller)
    return SuccessResponse(data=VendorResponse(**record), message="Vendor profile updated")

@app.post("/vendors/{vendor_id}/upload-license", response_model=SuccessResponse[LicenseUploadResponse])
async def upload_license(
    vendor_id: str,
    file: Optional[UploadFile] = File(None),
    caller: dict = Depends(get_current_user),
    store: ProfileStore = Depends(get_store),
    assets=Depends(get_asset_store),
):
    data = await read_upload(VENDOR_LICENSE, file)
    file_url, record = await upload_and_link(
        store, assets, VENDOR_LICENSE, vendor_id, data,
        file.content_type if file else None, (file.filename or "") if file else "", caller,
    )
    message = "License uploaded successfully" if assets is not None else "Mock license upload (storage inactive)"
    return SuccessResponse(data=LicenseUploadResponse(file_url=file_url, vendor=VendorResponse(**record)), message=message)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("planit.main:app", host="0.0.0.0", port=settings.PORT)
