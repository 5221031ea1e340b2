"""
Route collaborators, one router per domain area.

Domains without a router of their own are mounted with an empty one so the
prefix table stays complete; deployments pass the real routers to
`create_app(routers=...)`.
"""
from typing import Dict, Mapping, Optional

from fastapi import APIRouter, FastAPI

from liga.api import notifications

DOMAIN_PREFIXES: Dict[str, str] = {
    "usuarios": "/api/usuarios",
    "auth": "/api/auth",
    "equipos": "/api/equipos",
    "mercado": "/api/mercado",
    "transferencias": "/api/transferencias",
    "jugadores": "/api/jugadores",
    "ligas": "/api/ligas",
    "partidos": "/api/partidos",
    "notificaciones": "/api/notificaciones",
    "noticias": "/api/noticias",
    "admin": "/api/admin",
    "reportes": "/api/reportes",
    "stats": "/api/stats",
    "logs": "/api/logs",
}


def build_domain_routers(overrides: Optional[Mapping[str, APIRouter]] = None) -> Dict[str, APIRouter]:
    routers = {name: APIRouter() for name in DOMAIN_PREFIXES}
    routers["notificaciones"] = notifications.router

    for name, router in (overrides or {}).items():
        if name not in DOMAIN_PREFIXES:
            raise ValueError(f"Unknown domain {name!r}; expected one of {', '.join(DOMAIN_PREFIXES)}")
        routers[name] = router
    return routers


def include_domain_routers(app: FastAPI, routers: Mapping[str, APIRouter]) -> None:
    for name, prefix in DOMAIN_PREFIXES.items():
        app.include_router(routers[name], prefix=prefix, tags=[name.capitalize()])
