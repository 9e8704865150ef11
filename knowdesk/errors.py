"""Exception hierarchy shared by the ingestion pipeline and the query engine."""


class KnowdeskError(Exception):
    """Base class for all errors raised by knowdesk services."""


class ExtractionError(KnowdeskError):
    """A file could not be turned into text (corrupt file, tool failure)."""


class UnsupportedFileType(ExtractionError):
    def __init__(self, declared_type: str):
        self.declared_type = declared_type
        super().__init__(f"Unsupported file type: {declared_type}")


class EmbeddingProviderError(KnowdeskError):
    """The embedding model failed to produce vectors."""


class ModelProviderError(KnowdeskError):
    """The language model provider failed or timed out."""


class VectorStoreError(KnowdeskError):
    """An upsert, query or delete against the vector store failed."""


class StorageError(KnowdeskError):
    """Object storage could not store, return or delete a file."""


class IllegalTransition(KnowdeskError):
    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Illegal document transition: {current} -> {target}")


class InsufficientBalance(KnowdeskError):
    def __init__(self, tenant_id: str, required: int, balance: int):
        self.tenant_id = tenant_id
        self.required = required
        self.balance = balance
        super().__init__(
            f"Insufficient token balance for tenant {tenant_id}: "
            f"required {required}, available {balance}"
        )


class QueryError(KnowdeskError):
    """A question could not be answered; surfaced to the caller."""


class AgentNotFound(QueryError):
    def __init__(self, agent_id: str):
        self.agent_id = agent_id
        super().__init__(f"Agent {agent_id} not found")


class AgentInactive(QueryError):
    def __init__(self, agent_id: str):
        self.agent_id = agent_id
        super().__init__(f"Agent {agent_id} is not active")


class ConversationNotFound(KnowdeskError):
    def __init__(self, conversation_id: str):
        self.conversation_id = conversation_id
        super().__init__(f"Conversation {conversation_id} not found")
