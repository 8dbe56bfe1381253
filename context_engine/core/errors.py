"""Exception types raised by the context generation pipeline."""


class ContextEngineError(Exception):
    """Base class for pipeline errors."""


class DatastoreError(ContextEngineError):
    """A Supabase read or write failed or returned no rows where rows were required."""

    def __init__(self, operation: str, message: str):
        self.operation = operation
        super().__init__(f"{operation} failed: {message}")


class BlueprintGenerationError(ContextEngineError):
    """The blueprint LLM call failed or returned unusable output on the final attempt."""


class BlueprintNotApprovedError(ContextEngineError):
    """A regeneration was requested for a blueprint that has not been approved."""

    def __init__(self, blueprint_id: str, status: str):
        self.blueprint_id = blueprint_id
        self.status = status
        super().__init__(
            f"Blueprint {blueprint_id} must be approved before regeneration (status: {status})"
        )


class ResearchSchemaValidationError(ContextEngineError):
    """Exa rejected a deep research output schema.

    Exa terminates the task when the schema is invalid, so resubmitting the
    same schema cannot succeed.
    """

    def __init__(self, task_id: str | None, message: str):
        self.task_id = task_id
        super().__init__(f"Deep research schema rejected (task {task_id}): {message}")


class ProviderCreditsExhaustedError(ContextEngineError):
    """The provider account has no remaining credits or quota."""

    def __init__(self, provider: str, message: str = ""):
        self.provider = provider
        super().__init__(f"{provider} credits exhausted: {message}".rstrip(": "))
