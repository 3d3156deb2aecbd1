from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/")
def healthcheck(request: Request) -> dict[str, str]:
    store = type(request.app.state.conversation.store).__name__
    return {"status": "ok", "sessionStore": store}
