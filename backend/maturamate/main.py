from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from maturamate.core.config import settings
from maturamate.core.logging import configure_logging
from maturamate.routers import stripe, subjects, user

configure_logging()

OPENAPI_TAGS = [
    {"name": "Subjects", "description": "Browse the subject catalog."},
    {"name": "User", "description": "Subscription status and subject access of the current user."},
    {
        "name": "Stripe",
        "description": "Checkout, plan changes, pending changes, cancellation and webhooks.",
    },
]

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.version,
    description=(
        "Subscription backend for MaturaMate. "
        "Pay per subject, change subjects mid-cycle with proration, "
        "and schedule downgrades for the next billing period."
    ),
    openapi_tags=OPENAPI_TAGS,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(subjects.router, prefix="/api/subjects", tags=["Subjects"])
app.include_router(user.router, prefix="/api/user", tags=["User"])
app.include_router(stripe.router, prefix="/api/stripe", tags=["Stripe"])


@app.get("/")
async def root() -> dict[str, str]:
    return {
        "app": settings.APP_NAME,
        "version": settings.version,
        "domain": settings.APP_DOMAIN,
        "status": "running",
    }


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "healthy"}
