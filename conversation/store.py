"""
Conversation Store
==================

Persistence boundary for sessions, messages and generated documents. The
generation core only depends on the abstract interface; the in-memory
implementation backs the API and the tests.
"""

import asyncio
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from core.errors import NotFound
from core.schemas import GeneratedDocument, GenerationMetadata, Message, Session


class ConversationStore(ABC):
    """Ordered message retrieval plus all-or-nothing document replacement."""

    @abstractmethod
    async def create_session(self, name: Optional[str] = None) -> Session:
        pass

    @abstractmethod
    async def get_session(self, session_id: str) -> Session:
        pass

    @abstractmethod
    async def rename_session(self, session_id: str, name: str) -> Session:
        pass

    @abstractmethod
    async def get_messages(self, session_id: str) -> List[Message]:
        """Messages in insertion order."""

    @abstractmethod
    async def save_message(
        self,
        session_id: str,
        role: str,
        content: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Message:
        pass

    @abstractmethod
    async def delete_last_assistant_message(self, session_id: str) -> bool:
        pass

    @abstractmethod
    async def replace_documents(
        self,
        session_id: str,
        documents: Sequence[Tuple[str, str]],
    ) -> List[GeneratedDocument]:
        """Swap the whole document set atomically; readers never see a partial batch."""

    @abstractmethod
    async def get_documents(self, session_id: str) -> List[GeneratedDocument]:
        pass

    @abstractmethod
    async def upsert_generation_metadata(self, metadata: GenerationMetadata) -> None:
        """Keep the quality and confidence reports of the latest batch."""

    @abstractmethod
    async def get_generation_metadata(self, session_id: str) -> Optional[GenerationMetadata]:
        pass


class InMemoryConversationStore(ConversationStore):
    """
    Process-local store guarded by an asyncio.Lock.

    Each successful replace_documents bumps the session's document version.
    """

    def __init__(self):
        self._sessions: Dict[str, Session] = {}
        self._messages: Dict[str, List[Message]] = {}
        self._documents: Dict[str, List[GeneratedDocument]] = {}
        self._versions: Dict[str, int] = {}
        self._metadata: Dict[str, GenerationMetadata] = {}
        self._lock = asyncio.Lock()

    def _require(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise NotFound(f"Session not found: {session_id}")
        return session

    async def create_session(self, name: Optional[str] = None) -> Session:
        async with self._lock:
            session = Session(id=str(uuid.uuid4()), name=name or "New Project")
            self._sessions[session.id] = session
            self._messages[session.id] = []
            self._documents[session.id] = []
            self._versions[session.id] = 0
            return session

    async def get_session(self, session_id: str) -> Session:
        async with self._lock:
            return self._require(session_id)

    async def rename_session(self, session_id: str, name: str) -> Session:
        async with self._lock:
            session = self._require(session_id).model_copy(
                update={"name": name, "updated_at": datetime.now()}
            )
            self._sessions[session_id] = session
            return session

    async def get_messages(self, session_id: str) -> List[Message]:
        async with self._lock:
            self._require(session_id)
            return list(self._messages[session_id])

    async def save_message(self, session_id, role, content, metadata=None) -> Message:
        async with self._lock:
            session = self._require(session_id)
            message = Message(
                id=str(uuid.uuid4()),
                session_id=session_id,
                role=role,
                content=content,
                metadata=metadata,
            )
            self._messages[session_id].append(message)
            self._sessions[session_id] = session.model_copy(update={"updated_at": datetime.now()})
            return message

    async def delete_last_assistant_message(self, session_id: str) -> bool:
        async with self._lock:
            self._require(session_id)
            messages = self._messages[session_id]
            for i in range(len(messages) - 1, -1, -1):
                if messages[i].role == "assistant":
                    del messages[i]
                    return True
            return False

    async def replace_documents(self, session_id, documents) -> List[GeneratedDocument]:
        async with self._lock:
            self._require(session_id)
            now = datetime.now()
            batch = [
                GeneratedDocument(
                    id=str(uuid.uuid4()),
                    session_id=session_id,
                    filename=filename,
                    content=content,
                    created_at=now,
                )
                for filename, content in documents
            ]
            # single assignment: the old set stays visible until the new one is complete
            self._documents[session_id] = batch
            self._versions[session_id] += 1
            return list(batch)

    async def get_documents(self, session_id: str) -> List[GeneratedDocument]:
        async with self._lock:
            self._require(session_id)
            return list(self._documents[session_id])

    async def upsert_generation_metadata(self, metadata: GenerationMetadata) -> None:
        async with self._lock:
            self._require(metadata.session_id)
            self._metadata[metadata.session_id] = metadata

    async def get_generation_metadata(self, session_id: str) -> Optional[GenerationMetadata]:
        async with self._lock:
            self._require(session_id)
            return self._metadata.get(session_id)

    def document_version(self, session_id: str) -> int:
        return self._versions.get(session_id, 0)
