"""Vector index provisioner for the knowledge store collection.

The collection's data access policy can take tens of seconds to propagate
after it is created, so index creation is attempted with:
- An initial grace period before the first attempt
- Existence check (HEAD) before every creation attempt (PUT)
- Bounded retries with a fixed delay between attempts
- ProvisioningError once the attempt budget is exhausted
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import httpx

from backend.app.config import Settings
from backend.app.errors import ProvisioningError
from backend.app.utils.metrics import PipelineMetrics

logger = logging.getLogger(__name__)

VECTOR_FIELD = "bedrock-knowledge-base-default-vector"
TEXT_FIELD = "AMAZON_BEDROCK_TEXT_CHUNK"
METADATA_FIELD = "AMAZON_BEDROCK_METADATA"


def build_index_schema(dimension: int = 1024) -> dict[str, Any]:
    """Index body: one HNSW vector field plus chunk text and metadata fields."""
    return {
        "settings": {
            "index": {
                "knn": True,
                "knn.algo_param.ef_search": 512,
            },
        },
        "mappings": {
            "properties": {
                VECTOR_FIELD: {
                    "type": "knn_vector",
                    "dimension": dimension,
                    "method": {
                        "name": "hnsw",
                        "engine": "faiss",
                        "space_type": "l2",
                        "parameters": {},
                    },
                },
                TEXT_FIELD: {"type": "text", "index": True},
                METADATA_FIELD: {"type": "text", "index": False},
            },
        },
    }


@dataclass(frozen=True)
class ProvisionConfig:
    """Retry budget for index provisioning."""

    index_name: str = "bedrock-knowledge-base-default-index"
    dimension: int = 1024
    grace_period_seconds: float = 30.0
    max_attempts: int = 12
    retry_delay_seconds: float = 15.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProvisionConfig":
        return cls(
            index_name=settings.index_name,
            dimension=settings.vector_dimension,
            grace_period_seconds=settings.index_grace_period_seconds,
            max_attempts=settings.index_max_attempts,
            retry_delay_seconds=settings.index_retry_delay_seconds,
        )

    @property
    def worst_case_seconds(self) -> float:
        """Upper bound on time spent sleeping."""
        return self.grace_period_seconds + (self.max_attempts - 1) * self.retry_delay_seconds


@dataclass(frozen=True)
class ProvisionResult:
    """Outcome of a successful provisioning run."""

    index_name: str
    created: bool
    attempts: int


class IndexProvisioner:
    """Idempotently ensures the vector index exists on a collection endpoint."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        collection_endpoint: str,
        config: ProvisionConfig | None = None,
        metrics: PipelineMetrics | None = None,
        sleep_fn: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        """Initialize provisioner.

        Args:
            client: HTTP client; request signing is configured on it by the caller
            collection_endpoint: Base URL of the search collection
            config: Retry budget and index shape
            metrics: Metrics recorder (optional, defaults to no-op)
            sleep_fn: Injectable sleep function (default: asyncio.sleep)
        """
        if not collection_endpoint:
            raise ProvisioningError("Collection endpoint is not configured")

        self._client = client
        self._config = config or ProvisionConfig()
        self._index_url = f"{collection_endpoint.rstrip('/')}/{self._config.index_name}"
        self._metrics = metrics or PipelineMetrics()
        self._sleep = sleep_fn or asyncio.sleep

    @property
    def index_url(self) -> str:
        return self._index_url

    async def ensure_index(self) -> ProvisionResult:
        """Create the index unless it already exists.

        Returns:
            ProvisionResult describing whether the index was created

        Raises:
            ProvisioningError: If every attempt failed
        """
        config = self._config
        start_time = time.monotonic()

        logger.info(
            f"Waiting {config.grace_period_seconds}s for access policy propagation "
            f"before provisioning {config.index_name}"
        )
        await self._sleep(config.grace_period_seconds)

        last_error: Exception | None = None
        for attempt in range(1, config.max_attempts + 1):
            try:
                outcome = await self._attempt(attempt)
            except httpx.HTTPError as e:
                last_error = e
                logger.warning(
                    f"Attempt {attempt}/{config.max_attempts}: transport error: "
                    f"{type(e).__name__}: {e}"
                )
                self._metrics.inc_provision_attempt("transport_error")
            else:
                if isinstance(outcome, ProvisionResult):
                    elapsed = time.monotonic() - start_time
                    logger.info(
                        f"Index {config.index_name} ready after {attempt} attempt(s)",
                        extra={
                            "structured": {
                                "index": config.index_name,
                                "created": outcome.created,
                                "attempts": attempt,
                                "elapsed_s": round(elapsed, 2),
                            }
                        },
                    )
                    return outcome
                last_error = outcome

            if attempt < config.max_attempts:
                await self._sleep(config.retry_delay_seconds)

        raise ProvisioningError(
            f"Failed to create index {config.index_name} after "
            f"{config.max_attempts} attempts ({last_error})"
        ) from last_error

    async def _attempt(self, attempt: int) -> ProvisionResult | httpx.HTTPStatusError:
        """Run one existence check + create. Returns a result or the failure as an error."""
        max_attempts = self._config.max_attempts
        logger.info(f"Attempt {attempt}/{max_attempts}: checking if index exists")

        head = await self._client.head(self._index_url)
        if head.status_code == 200:
            self._metrics.inc_provision_attempt("exists")
            return ProvisionResult(
                index_name=self._config.index_name, created=False, attempts=attempt
            )

        put = await self._client.put(
            self._index_url, json=build_index_schema(self._config.dimension)
        )
        if 200 <= put.status_code < 300:
            self._metrics.inc_provision_attempt("created")
            return ProvisionResult(
                index_name=self._config.index_name, created=True, attempts=attempt
            )

        if put.status_code == 400 and "resource_already_exists_exception" in put.text:
            # Another provisioner won the race between our HEAD and PUT
            self._metrics.inc_provision_attempt("exists")
            return ProvisionResult(
                index_name=self._config.index_name, created=False, attempts=attempt
            )

        if put.status_code == 403:
            self._metrics.inc_provision_attempt("forbidden")
            reason = "403 - data access policy still propagating"
        else:
            self._metrics.inc_provision_attempt("unexpected_status")
            reason = f"unexpected status {put.status_code}: {put.text[:300]}"

        logger.warning(
            f"Attempt {attempt}/{max_attempts}: {reason}; "
            f"waiting {self._config.retry_delay_seconds}s"
        )
        return httpx.HTTPStatusError(reason, request=put.request, response=put)
