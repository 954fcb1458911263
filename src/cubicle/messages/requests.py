"""Closed set of requests the UI collaborator may send.

Every inbound message is tagged by ``message_type``; ``container_action``
and ``request_page`` carry a second tag (``action`` / ``view``).  Parsing
goes through :func:`parse_message`, so anything outside these shapes is
rejected before it reaches a handler.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator

from cubicle.containers.migrate import MigrateType
from cubicle.core.errors import MalformedRequest
from cubicle.core.types import IdentityDetails

_HTTP_SCHEMES = ("http://", "https://")

# ---------------------------------------------------------------------------
# container_action
# ---------------------------------------------------------------------------


class SubmitIdentityDetails(BaseModel, frozen=True):
    """Create (``cookie_store_id=None``) or restyle a container."""

    action: Literal["submit_identity_details"] = "submit_identity_details"
    cookie_store_id: str | None = None
    details: IdentityDetails
    should_record: bool = False


class UpdateSuffix(BaseModel, frozen=True):
    """Replace ``old_suffix`` by ``new_suffix``; an empty side means none."""

    action: Literal["update_suffix"] = "update_suffix"
    cookie_store_id: str
    old_suffix: str = ""
    new_suffix: str = ""


class DeleteContainer(BaseModel, frozen=True):
    action: Literal["delete_container"] = "delete_container"
    cookie_store_id: str


class ConfirmRecording(BaseModel, frozen=True):
    action: Literal["confirm_recording"] = "confirm_recording"
    cookie_store_id: str


class CancelRecording(BaseModel, frozen=True):
    action: Literal["cancel_recording"] = "cancel_recording"
    cookie_store_id: str


class MigrateContainer(BaseModel, frozen=True):
    """Bulk import; ``items`` is only read for the ``export`` source."""

    action: Literal["migrate_container"] = "migrate_container"
    migrate_type: MigrateType = MigrateType.NATIVE
    detect_temp: bool = False
    items: list[dict[str, Any]] = Field(default_factory=list)


ContainerAction = Annotated[
    SubmitIdentityDetails
    | UpdateSuffix
    | DeleteContainer
    | ConfirmRecording
    | CancelRecording
    | MigrateContainer,
    Field(discriminator="action"),
]

# ---------------------------------------------------------------------------
# request_page views
# ---------------------------------------------------------------------------


class NewContainerView(BaseModel, frozen=True):
    view: Literal["new_container"] = "new_container"


class WelcomeView(BaseModel, frozen=True):
    view: Literal["welcome"] = "welcome"


class ImportView(BaseModel, frozen=True):
    view: Literal["import"] = "import"


class FetchAllContainersView(BaseModel, frozen=True):
    view: Literal["fetch_all_containers"] = "fetch_all_containers"
    selected: str | None = None


class DeletePromptView(BaseModel, frozen=True):
    view: Literal["delete_prompt"] = "delete_prompt"
    cookie_store_id: str


class UpdateContainerView(BaseModel, frozen=True):
    view: Literal["update_container"] = "update_container"
    cookie_store_id: str


class ContainerDetailView(BaseModel, frozen=True):
    view: Literal["container_detail"] = "container_detail"
    cookie_store_id: str


class OptionsBodyView(BaseModel, frozen=True):
    view: Literal["options_body"] = "options_body"


PageView = Annotated[
    NewContainerView
    | WelcomeView
    | ImportView
    | FetchAllContainersView
    | DeletePromptView
    | UpdateContainerView
    | ContainerDetailView
    | OptionsBodyView,
    Field(discriminator="view"),
]

# ---------------------------------------------------------------------------
# Top-level messages
# ---------------------------------------------------------------------------


class RequestPage(BaseModel, frozen=True):
    message_type: Literal["request_page"] = "request_page"
    view: PageView


class ContainerActionRequest(BaseModel, frozen=True):
    message_type: Literal["container_action"] = "container_action"
    action: ContainerAction


class MigrateContainerRequest(BaseModel, frozen=True):
    message_type: Literal["migrate_container"] = "migrate_container"
    migrate_type: MigrateType = MigrateType.NATIVE
    detect_temp: bool = False
    items: list[dict[str, Any]] = Field(default_factory=list)


class PslUpdate(BaseModel, frozen=True):
    """Refresh the suffix list from ``url`` (``None`` = bundled snapshot).

    Only ``http(s)`` URLs are accepted here; local files are a CLI-only
    source.
    """

    message_type: Literal["psl_update"] = "psl_update"
    url: str | None = None

    @field_validator("url")
    @classmethod
    def _http_only(cls, v: str | None) -> str | None:
        if v is not None and not v.lower().startswith(_HTTP_SCHEMES):
            raise ValueError("only http:// and https:// URLs are accepted")
        return v


class ApplyPreferences(BaseModel, frozen=True):
    message_type: Literal["apply_preferences"] = "apply_preferences"
    preferences: dict[str, Any] = Field(default_factory=dict)


Message = Annotated[
    RequestPage | ContainerActionRequest | MigrateContainerRequest | PslUpdate | ApplyPreferences,
    Field(discriminator="message_type"),
]

_MESSAGE_ADAPTER: TypeAdapter[Message] = TypeAdapter(Message)


def parse_message(payload: Any) -> Message:
    """Validate a raw JSON payload into one of the known requests.

    Raises:
        MalformedRequest: If the payload matches no request shape.
    """
    try:
        return _MESSAGE_ADAPTER.validate_python(payload)
    except ValidationError as exc:
        err = exc.errors()[0]
        location = ".".join(str(part) for part in err["loc"])
        raise MalformedRequest(
            f"malformed request at {location or '<root>'}: {err['msg']}",
        ) from exc
