from fastapi import Request

from property_agent.services.conversation import ConversationService


def get_conversation(request: Request) -> ConversationService:
    return request.app.state.conversation
