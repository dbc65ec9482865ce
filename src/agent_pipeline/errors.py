"""Error taxonomy shared by the state store, gateway, workers, and orchestrator."""

from __future__ import annotations

from enum import StrEnum


class AgentPipelineError(Exception):
    """Base class for every error raised by the engine."""


class NotFoundError(AgentPipelineError, LookupError):
    """Unknown task, agent, tool, checkpoint, artifact, or template id."""

    def __init__(self, kind: str, identifier: str) -> None:
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind.capitalize()} not found: {identifier}")


class ToolValidationError(AgentPipelineError, ValueError):
    """Tool parameters did not match the declared schema."""

    def __init__(self, tool_name: str, problems: list[str]) -> None:
        self.tool_name = tool_name
        self.problems = problems
        super().__init__("; ".join(problems) or f"Invalid parameters for {tool_name}")


class WorkerFailure(AgentPipelineError):
    """A role's execute() failed. Severity depends on the execution mode."""

    def __init__(self, role: str, message: str) -> None:
        self.role = role
        self.message = message
        super().__init__(f"{str(role).capitalize()} execution failed: {message}")


class TransportFailureKind(StrEnum):
    NETWORK = "network"
    AUTH = "auth"
    RATE_LIMIT = "rate_limit"
    SERVER = "server"
    INVALID_RESPONSE = "invalid_response"


class TransportError(AgentPipelineError):
    """Model client failure with a distinguishable kind."""

    def __init__(
        self,
        kind: TransportFailureKind,
        message: str,
        *,
        status_code: int | None = None,
    ) -> None:
        self.kind = kind
        self.status_code = status_code
        super().__init__(f"[{kind}] {message}")

    @property
    def retryable(self) -> bool:
        return self.kind in {
            TransportFailureKind.NETWORK,
            TransportFailureKind.RATE_LIMIT,
            TransportFailureKind.SERVER,
        }


class ExecutionCancelled(AgentPipelineError):
    """Raised at a suspension point once the run's cancellation token is set."""


class CheckpointVersionError(AgentPipelineError):
    """Checkpoint was written by an incompatible engine revision."""

    def __init__(self, checkpoint_id: str, found: int, expected: int) -> None:
        self.checkpoint_id = checkpoint_id
        self.found = found
        self.expected = expected
        super().__init__(
            f"Checkpoint {checkpoint_id} has schema_version={found}, expected {expected}"
        )


class OrchestratorError(AgentPipelineError):
    """Invalid use of the orchestrator (e.g. checkpoint without an active run)."""


class PromptRenderError(AgentPipelineError, ValueError):
    """A prompt template was rendered without all of its variables."""
