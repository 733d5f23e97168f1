from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from quizcraft.routes import auth, quiz, take, stats, websocket
from quizcraft.core.config import settings
from quizcraft.core.errors import register_error_handlers
from quizcraft.core.logging_config import configure_logging

logger = configure_logging(settings.LOG_LEVEL)

app = FastAPI(title="QuizCraft API")

# CORS middleware configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

# Include routers
app.include_router(auth.router, prefix="/api", tags=["auth"])
app.include_router(quiz.router, prefix="/api", tags=["quiz"])
app.include_router(take.router, prefix="/api", tags=["take"])
app.include_router(stats.router, prefix="/api", tags=["stats"])
app.include_router(websocket.router, tags=["websocket"])

# Uploaded question images
app.mount(settings.MEDIA_URL, StaticFiles(directory=settings.MEDIA_ROOT, check_dir=False), name="media")

logger.info("QuizCraft API ready")
