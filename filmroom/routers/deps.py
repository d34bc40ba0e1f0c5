"""Request-scoped access to the application's service container"""

from fastapi import Request

from ..services.container import FilmRoomServices


def get_services(request: Request) -> FilmRoomServices:
    return request.app.state.services
