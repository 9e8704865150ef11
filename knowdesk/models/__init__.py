"""Exports all models for easy access."""

from .agent import Agent, agent_knowledge_bases
from .base import Base, BaseModel
from .chunk import DocumentChunk
from .conversation import Conversation, ConversationStatus
from .document import Document, DocumentStatus, FileType
from .knowledge_base import KnowledgeBase
from .message import Message, SenderType
from .tenant import Tenant
from .usage import TransactionType, UsageTransaction
from .user import User, UserRole
from .vector import ChunkVector

__all__ = [
    "Base",
    "BaseModel",
    "Tenant",
    "User",
    "UserRole",
    "KnowledgeBase",
    "Document",
    "DocumentStatus",
    "FileType",
    "DocumentChunk",
    "ChunkVector",
    "Agent",
    "agent_knowledge_bases",
    "UsageTransaction",
    "TransactionType",
    "Conversation",
    "ConversationStatus",
    "Message",
    "SenderType",
]
