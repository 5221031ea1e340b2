from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

router = APIRouter()

LIVENESS_MESSAGE = "Servidor funcionando correctamente"


@router.get('/', response_class=PlainTextResponse)
def root():
    return LIVENESS_MESSAGE


@router.get('/healthz')
def healthz():
    return {"status": "ok"}
