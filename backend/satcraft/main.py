import logging

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from satcraft.api import chat, health, practice_test, questions
from satcraft.api.errors import request_validation_handler, satcraft_error_handler
from satcraft.core.config import get_settings
from satcraft.core.errors import SatcraftError

settings = get_settings()

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title=settings.app_name,
    description="SAT question generation, validation and adaptive practice tests",
    version="0.1.0",
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        settings.frontend_url,
        "http://localhost:3000",  # Next.js dev server
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(SatcraftError, satcraft_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)

# Include routers
app.include_router(health.router)
app.include_router(questions.router)
app.include_router(chat.router)
app.include_router(practice_test.router)


@app.get("/")
async def root():
    return {
        "name": settings.app_name,
        "docs": "/docs",
        "health": "/health",
        "endpoints": ["/api/questions/generate", "/api/chat", "/api/practice-test"],
    }
