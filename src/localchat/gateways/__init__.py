from typing import Iterable, Protocol, runtime_checkable

from localchat.errors import Result
from localchat.gateways.auth import AuthGateway
from localchat.gateways.ollama import OllamaGateway
from localchat.models import Message, ModelDescriptor


@runtime_checkable
class ModelGateway(Protocol):
    def list_models(self) -> Result[list[ModelDescriptor]]: ...

    def complete(self, model: str, messages: Iterable[Message | dict]) -> Result[str]:
        """Run one non-streaming completion and return the assistant content."""
        ...


__all__ = ["AuthGateway", "ModelGateway", "OllamaGateway"]
