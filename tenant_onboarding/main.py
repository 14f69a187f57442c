from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tenant_onboarding.core.config import APP_NAME, get_settings
from tenant_onboarding.core.deps import close_runtime
from tenant_onboarding.core.logging import configure_logging
from tenant_onboarding.db import Base, SessionLocal, engine
from tenant_onboarding.events.routes import router as events_router
from tenant_onboarding.onboarding import models as onboarding_models  # noqa: F401
from tenant_onboarding.onboarding.routes import router as onboarding_router
from tenant_onboarding.provisioning import models as provisioning_models  # noqa: F401
from tenant_onboarding.provisioning.network import seed_address_blocks
from tenant_onboarding.validation.routes import router as validation_router

app = FastAPI(title=APP_NAME)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup() -> None:
    configure_logging()
    # Refuse to start with blank required settings
    get_settings()
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as db:
        seed_address_blocks(db)


@app.on_event("shutdown")
def on_shutdown() -> None:
    close_runtime()


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(onboarding_router)
app.include_router(events_router)
app.include_router(validation_router)
