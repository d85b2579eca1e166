"""Knowledge store client: retrieve-and-generate queries and ingestion jobs.

Production uses Amazon Bedrock Knowledge Bases through boto3. A stub
implementation answers deterministically when no knowledge base is
configured (local development, tests).
"""

import asyncio
import logging
import uuid
from typing import Any, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import ValidationError as PydanticValidationError

from backend.app.config import Settings
from backend.app.errors import UpstreamError
from backend.app.models.sessions import Citation, RagAnswer

logger = logging.getLogger(__name__)


class KnowledgeBase(Protocol):
    """Protocol for the managed retrieval-and-generation capability."""

    async def ask(
        self, knowledge_base_id: str, question: str, session_id: str | None = None
    ) -> RagAnswer:
        """Answer a question against a knowledge base.

        Args:
            knowledge_base_id: Target knowledge base
            question: User question
            session_id: Conversation id so the service can keep its own context

        Returns:
            RagAnswer with answer text and flattened citations

        Raises:
            UpstreamError: If the service call fails
        """
        ...

    async def start_ingestion(self, knowledge_base_id: str, source_id: str) -> str:
        """Trigger (re)synchronization of a data source. Does not wait for completion.

        Returns:
            Ingestion job id

        Raises:
            UpstreamError: If the job could not be started
        """
        ...


def foundation_model_arn(region: str, model_id: str) -> str:
    return f"arn:aws:bedrock:{region}::foundation-model/{model_id}"


class BedrockKnowledgeBase:
    """Bedrock Knowledge Bases client."""

    def __init__(
        self,
        runtime_client: Any,
        agent_client: Any,
        model_arn: str,
        number_of_results: int = 5,
    ) -> None:
        """Initialize client.

        Args:
            runtime_client: boto3 "bedrock-agent-runtime" client
            agent_client: boto3 "bedrock-agent" client
            model_arn: Generation model ARN
            number_of_results: Chunks retrieved per query
        """
        self._runtime = runtime_client
        self._agent = agent_client
        self._model_arn = model_arn
        self._number_of_results = number_of_results

    def build_request(
        self, knowledge_base_id: str, question: str, session_id: str | None
    ) -> dict[str, Any]:
        request: dict[str, Any] = {
            "input": {"text": question},
            "retrieveAndGenerateConfiguration": {
                "type": "KNOWLEDGE_BASE",
                "knowledgeBaseConfiguration": {
                    "knowledgeBaseId": knowledge_base_id,
                    "modelArn": self._model_arn,
                    "retrievalConfiguration": {
                        "vectorSearchConfiguration": {
                            "numberOfResults": self._number_of_results,
                        },
                    },
                },
            },
        }
        if session_id:
            request["sessionId"] = session_id
        return request

    async def ask(
        self, knowledge_base_id: str, question: str, session_id: str | None = None
    ) -> RagAnswer:
        """Call RetrieveAndGenerate and validate the response shape."""
        request = self.build_request(knowledge_base_id, question, session_id)
        try:
            response = await asyncio.to_thread(self._runtime.retrieve_and_generate, **request)
        except (ClientError, BotoCoreError) as e:
            raise UpstreamError(f"RetrieveAndGenerate failed: {e}") from e

        try:
            return RagAnswer.from_bedrock_response(response)
        except (PydanticValidationError, AttributeError, TypeError) as e:
            raise UpstreamError(f"Unexpected RetrieveAndGenerate response shape: {e}") from e

    async def start_ingestion(self, knowledge_base_id: str, source_id: str) -> str:
        """Call StartIngestionJob and return the job id."""
        try:
            response = await asyncio.to_thread(
                self._agent.start_ingestion_job,
                knowledgeBaseId=knowledge_base_id,
                dataSourceId=source_id,
            )
        except (ClientError, BotoCoreError) as e:
            raise UpstreamError(f"StartIngestionJob failed: {e}") from e

        job_id = (response.get("ingestionJob") or {}).get("ingestionJobId")
        if not job_id:
            raise UpstreamError("StartIngestionJob returned no job id")
        return str(job_id)


class StubKnowledgeBase:
    """Deterministic stub knowledge base (no AWS access required)."""

    def __init__(self) -> None:
        self.questions: list[tuple[str, str, str | None]] = []
        self.ingestions: list[tuple[str, str]] = []

    async def ask(
        self, knowledge_base_id: str, question: str, session_id: str | None = None
    ) -> RagAnswer:
        """Echo the question back with a placeholder citation."""
        self.questions.append((knowledge_base_id, question, session_id))
        return RagAnswer(
            answer=(
                f"No knowledge base is configured, so this question was not answered: {question}"
            ),
            citations=[Citation(text="(stub) no source material available")],
        )

    async def start_ingestion(self, knowledge_base_id: str, source_id: str) -> str:
        """Record the trigger and return a synthetic job id."""
        self.ingestions.append((knowledge_base_id, source_id))
        return f"stub-{uuid.uuid4().hex[:12]}"


def create_knowledge_base(settings: Settings) -> KnowledgeBase:
    """Factory: Bedrock client if a knowledge base is configured, stub otherwise."""
    if settings.knowledge_base_id:
        logger.info(f"Using Bedrock knowledge base {settings.knowledge_base_id}")
        return BedrockKnowledgeBase(
            runtime_client=boto3.client("bedrock-agent-runtime", region_name=settings.aws_region),
            agent_client=boto3.client("bedrock-agent", region_name=settings.aws_region),
            model_arn=foundation_model_arn(settings.aws_region, settings.generation_model_id),
            number_of_results=settings.retrieval_results,
        )

    logger.warning("No knowledge base configured, using deterministic stub knowledge base")
    return StubKnowledgeBase()
