from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from property_agent.logging.flight_recorder import register_log_middleware
from property_agent.routes import chat, health, twilio
from property_agent.services.conversation import ConversationService, build_conversation_service


def create_app(service: Optional[ConversationService] = None) -> FastAPI:
    app = FastAPI(title="Property Agent", version="0.1.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_log_middleware(app)

    app.state.conversation = service or build_conversation_service()

    app.include_router(health.router, prefix="/health", tags=["health"])
    app.include_router(chat.router, tags=["conversation"])
    app.include_router(twilio.router, prefix="/twilio", tags=["twilio"])

    return app


app = create_app()
