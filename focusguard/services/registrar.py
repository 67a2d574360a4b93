"""Client for the remote system of record.

Every "ensure"/"create" call returns the id of the remote record. The backend
answers 409 when the record already exists; that is only accepted when the
response still carries the id. Close calls only need a 2xx answer.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from focusguard.utils import utc_now_iso

logger = logging.getLogger(__name__)

HTTP_CONFLICT = 409


class RegistrationError(Exception):
    """A remote record could not be created or its id was not returned."""


class CloseError(Exception):
    """A remote visit could not be closed."""


class CreatedRecord(BaseModel):
    """Response body of a create call."""

    model_config = ConfigDict(extra="ignore")

    id: int | None = None
    id_categorias_web: int | None = None


class Registrar(Protocol):
    """Operations the reconciler needs from the backend."""

    async def ensure_website(self, domain: str) -> int: ...

    async def ensure_website_user(
        self, user_id: int, website_id: int, category_id: int
    ) -> tuple[int, int]: ...

    async def start_visit(self, user_id: int, website_user_id: int) -> int: ...

    async def end_visit(self, visit_id: int) -> None: ...

    async def ensure_content(self, title: str, description: str) -> int: ...

    async def create_content_link(self, website_user_id: int, content_id: int) -> int: ...

    async def start_content_visit(self, content_user_id: int) -> int: ...

    async def end_content_visit(self, content_visit_id: int) -> None: ...


class RemoteRegistrar:
    """JSON-over-HTTP implementation of :class:`Registrar`."""

    def __init__(self, client: httpx.AsyncClient, base_url: str, origin: str = "default") -> None:
        """Initialize the registrar.

        Args:
            client: Shared async HTTP client; its lifetime is owned by the caller.
            base_url: Backend API root, e.g. ``http://127.0.0.1:8000/api/v1``.
            origin: Value sent as the origin of website-user links.
        """
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.origin = origin

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path}"

    async def _create(
        self,
        path: str,
        payload: dict[str, Any],
        what: str,
        *,
        allow_conflict: bool = True,
    ) -> CreatedRecord:
        """POST a record and return the parsed body.

        Raises:
            RegistrationError: On transport failure, unexpected status, or a
                body without an id.
        """
        try:
            response = await self.client.post(self._url(f"{path}/"), json=payload)
        except httpx.HTTPError as err:
            raise RegistrationError(f"Could not register {what}: {err}") from err

        conflict = allow_conflict and response.status_code == HTTP_CONFLICT
        if not response.is_success and not conflict:
            raise RegistrationError(
                f"Could not register {what} ({response.status_code})"
            )

        record = _parse_record(response)
        if record.id is None:
            raise RegistrationError(f"Backend did not return the id of the {what}")
        if conflict:
            logger.debug("%s already existed remotely with id %s", what, record.id)
        return record

    async def _close(self, path: str, record_id: int, what: str) -> None:
        try:
            response = await self.client.patch(
                self._url(f"{path}/{record_id}"),
                json={"fecha_hora_salida": utc_now_iso()},
            )
        except httpx.HTTPError as err:
            raise CloseError(f"Could not close {what} {record_id}: {err}") from err
        if not response.is_success:
            raise CloseError(f"Could not close {what} {record_id} ({response.status_code})")

    async def ensure_website(self, domain: str) -> int:
        record = await self._create("websites", {"dominio": domain}, "website")
        return record.id

    async def ensure_website_user(
        self, user_id: int, website_id: int, category_id: int
    ) -> tuple[int, int]:
        """Link a user to a website.

        Returns:
            The link id and the category the backend holds for the link, which
            may differ from the suggested ``category_id``.
        """
        record = await self._create(
            "website-users",
            {
                "id_usuarios": user_id,
                "id_sitios_web": website_id,
                "id_categorias_web": category_id,
                "origen": self.origin,
            },
            "website-user link",
        )
        return record.id, record.id_categorias_web or category_id

    async def start_visit(self, user_id: int, website_user_id: int) -> int:
        record = await self._create(
            "website-visited",
            {
                "id_usuarios": user_id,
                "id_sitios_web_usuario": website_user_id,
                "fecha_hora_ingreso": utc_now_iso(),
                "fecha_hora_salida": None,
            },
            "website visit",
            allow_conflict=False,
        )
        return record.id

    async def end_visit(self, visit_id: int) -> None:
        await self._close("website-visited", visit_id, "website visit")

    async def ensure_content(self, title: str, description: str) -> int:
        record = await self._create(
            "contents", {"titulo": title, "descripcion": description}, "content"
        )
        return record.id

    async def create_content_link(self, website_user_id: int, content_id: int) -> int:
        record = await self._create(
            "content-users",
            {"id_sitios_web_usuario": website_user_id, "id_contenidos": content_id},
            "content-user link",
        )
        return record.id

    async def start_content_visit(self, content_user_id: int) -> int:
        record = await self._create(
            "content-visited",
            {
                "id_contenidos_usuario": content_user_id,
                "fecha_hora_ingreso": utc_now_iso(),
                "fecha_hora_salida": None,
            },
            "content visit",
            allow_conflict=False,
        )
        return record.id

    async def end_content_visit(self, content_visit_id: int) -> None:
        await self._close("content-visited", content_visit_id, "content visit")


def _parse_record(response: httpx.Response) -> CreatedRecord:
    """Parse a create response, treating unreadable bodies as empty."""
    try:
        data = response.json()
    except ValueError:
        return CreatedRecord()
    if not isinstance(data, dict):
        return CreatedRecord()
    try:
        return CreatedRecord.model_validate(data)
    except ValidationError:
        return CreatedRecord()
