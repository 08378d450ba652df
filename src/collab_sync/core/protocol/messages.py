import json
from typing import Any, List, Literal, Union

from pydantic import BaseModel, Field

from collab_sync.core.collab.state import Sendable
from collab_sync.core.transform.steps import ReplaceStep


class StepModel(BaseModel):
    step_type: Literal["replace"] = Field(default="replace", alias="stepType")
    from_: int = Field(alias="from", ge=0)
    to: int = Field(ge=0)
    text: str = ""

    model_config = {"populate_by_name": True}

    def to_step(self) -> ReplaceStep:
        return ReplaceStep(self.from_, self.to, self.text)

    @classmethod
    def from_step(cls, step: ReplaceStep) -> "StepModel":
        return cls.model_validate(step.to_json())


class ClientHello(BaseModel):
    type: Literal["hello"]
    doc_id: str = Field(min_length=1)
    client_id: int = Field(gt=0)
    last_seen_version: int = Field(default=0, ge=0)


class ClientSteps(BaseModel):
    type: Literal["steps"] = "steps"
    doc_id: str = Field(min_length=1)
    client_id: int = Field(gt=0)
    version: int = Field(ge=0)
    steps: List[StepModel] = Field(min_length=1)


ClientMessage = Union[ClientHello, ClientSteps]


class ServerHelloAck(BaseModel):
    type: Literal["hello_ack"] = "hello_ack"
    doc_id: str
    version: int


class ServerResync(BaseModel):
    type: Literal["resync"] = "resync"
    doc_id: str
    version: int
    doc: str


class ServerSteps(BaseModel):
    """A batch of authoritative steps extending `version`."""

    type: Literal["steps"] = "steps"
    doc_id: str
    version: int
    steps: List[StepModel]
    client_ids: List[int]


class ServerReject(BaseModel):
    type: Literal["reject"] = "reject"
    doc_id: str
    version: int


ServerMessage = Union[ServerHelloAck, ServerResync, ServerSteps, ServerReject]


def parse_client_message(raw_text: str) -> ClientMessage:
    data: Any = json.loads(raw_text)
    if not isinstance(data, dict):
        raise ValueError("message must be a JSON object")
    t = data.get("type")
    if t == "hello":
        return ClientHello.model_validate(data)
    if t == "steps":
        return ClientSteps.model_validate(data)
    raise ValueError(f"unknown message type: {t!r}")


def parse_server_message(raw_text: str) -> ServerMessage:
    data: Any = json.loads(raw_text)
    if not isinstance(data, dict):
        raise ValueError("message must be a JSON object")
    t = data.get("type")
    if t == "hello_ack":
        return ServerHelloAck.model_validate(data)
    if t == "resync":
        return ServerResync.model_validate(data)
    if t == "steps":
        return ServerSteps.model_validate(data)
    if t == "reject":
        return ServerReject.model_validate(data)
    raise ValueError(f"unknown message type: {t!r}")


def sendable_to_message(doc_id: str, sendable: Sendable) -> ClientSteps:
    return ClientSteps(
        doc_id=doc_id,
        client_id=sendable.client_id,
        version=sendable.version,
        steps=[StepModel.model_validate(step.to_json()) for step in sendable.steps],
    )


def message_to_batch(message: ServerSteps) -> tuple[list[ReplaceStep], list[int], int]:
    """Unpack a broadcast into (steps, client_ids, base_version)."""
    return [s.to_step() for s in message.steps], list(message.client_ids), message.version


def dump(message: BaseModel) -> dict[str, Any]:
    return message.model_dump(by_alias=True)
