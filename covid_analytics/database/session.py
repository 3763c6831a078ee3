from typing import Annotated
from fastapi import Depends, Request

from .repository import CovidRepository


def get_repository(request: Request) -> CovidRepository:
    return request.app.state.repository


RepositoryDep = Annotated[CovidRepository, Depends(get_repository)]
