from uuid import UUID

from fastapi import Header, Request

from prospector.main.container import Container


def get_container():
    def _get_container(request: Request) -> Container:
        return request.app.state.container

    return _get_container


async def get_organisation_id(x_organisation_id: UUID = Header()) -> UUID:
    """Organisation of the caller, set by the authenticating gateway."""
    return x_organisation_id
