from dotenv import load_dotenv

from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware

from .auth import routers as auth_router
from .admin import routers as admin_router
from .listings import routers as listings_router
from .chat import routers as chat_router

from .core.dependencies import SessionContext, get_session
from .core.middleware import logging_middleware
from .utils.env_helper import env_list
from .utils.logging_config import setup_logging

load_dotenv()
setup_logging()

app = FastAPI(title="TreeTrade")
app.include_router(auth_router.router, prefix="/auth", tags=["Authentication"])
app.include_router(admin_router.router, prefix="/admin", tags=["Admin"])
app.include_router(listings_router.router, prefix="/listings", tags=["Listings"])
app.include_router(chat_router.router, prefix="/chat", tags=["Chat"])


origins = env_list(
    "CORS_ORIGINS",
    [
        "http://localhost:5173",
        "http://localhost:8080",
    ],
)

app.middleware("http")(logging_middleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
def health():
    return {"status": "ok"}


# For testing auth purposes
@app.get("/protected")
def protected_route(session: SessionContext = Depends(get_session)):
    return {"message": f"Hello {session.email or session.user_id}, you are authenticated!"}
