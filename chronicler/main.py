"""Main FastAPI application."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from chronicler import __version__
from chronicler.api.endpoints import router
from chronicler.config import Settings
from chronicler.utils.logging import LogConfig, setup_logging

setup_logging(LogConfig(level=Settings.from_env().log_level))

app = FastAPI(
    title="Chronicler",
    description=(
        "An AI game master that builds Chronicles of the Omuns characters through a "
        "tool-calling conversation, asking the player to confirm every change to their character."
    ),
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=[
        {
            "name": "Conversation",
            "description": "Start conversations, send turns and read history.",
        },
        {
            "name": "Confirmation",
            "description": "Inspect and decide tool calls that wait for the player's approval.",
        },
        {
            "name": "Audit",
            "description": "Persist messages, tool calls and tool results driven by the client.",
        },
        {
            "name": "Health",
            "description": "Service health monitoring and status checks.",
        },
    ],
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("chronicler.main:app", host="0.0.0.0", port=8000, reload=True, log_level="info")
