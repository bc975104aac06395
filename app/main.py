from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.staticfiles import StaticFiles
from datetime import datetime
import logging
import os
from .db import init_db
from .exceptions import register_exception_handlers
from .routers import (
    auth,
    users,
    classes,
    announcements,
    assignments,
    exams,
    exam_submissions,
    grades,
    materials,
    comments,
    reactions,
    notifications,
    messages,
    topics,
    analytics,
    bulk,
    reuse,
    forms,
    files,
    realtime,
)

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

SERVICE_NAME = "classroom-backend"
VERSION = "1.0.0"

app = FastAPI(
    title="Classroom backend",
    description="Classes, announcements, exams with credit-adjusted scoring, grades, forms and real-time updates",
    version=VERSION,
)

origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=origins != ["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(GZipMiddleware, minimum_size=1000)

register_exception_handlers(app)

API_PREFIX = "/api"

for module in (
        auth,
        users,
        classes,
        announcements,
        assignments,
        exams,
        exam_submissions,
        grades,
        materials,
        comments,
        reactions,
        notifications,
        messages,
        topics,
        analytics,
        bulk,
        reuse,
        forms,
        files,
):
    app.include_router(module.router, prefix=API_PREFIX)
app.include_router(classes.student_router, prefix=API_PREFIX)
app.include_router(realtime.router)

upload_root = os.getenv("UPLOAD_DIR", "./uploads")
os.makedirs(upload_root, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=upload_root), name="uploads")


@app.on_event("startup")
def on_startup():
    init_db()
    logger.info(f"{SERVICE_NAME} {VERSION} started")


@app.get("/")
async def root():
    return {
        "message": "Classroom backend API",
        "version": VERSION,
        "endpoints": {
            "auth": f"{API_PREFIX}/auth",
            "classes": f"{API_PREFIX}/classes",
            "exams": f"{API_PREFIX}/exams",
            "forms": f"{API_PREFIX}/forms",
            "websocket": "/ws",
            "docs": "/docs",
        },
    }


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "service": SERVICE_NAME,
    }
