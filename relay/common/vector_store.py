"""
Vector Store Client

Thin synchronous wrapper over the Qdrant REST API.
One collection per agent ("agent_<id>"), cosine distance.
Holds a single pooled httpx.Client reused across requests.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional

import httpx

from .errors import VectorStoreError, VectorStoreUnavailableError

logger = logging.getLogger("relay.common.vector_store")

COLLECTION_PREFIX = "agent_"


@dataclass
class VectorPoint:
    """A vector with its id and payload, ready for upsert"""
    id: str
    vector: List[float]
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass
class VectorHit:
    """A single similarity-search hit"""
    id: str
    score: float
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def text(self) -> str:
        return self.payload.get("text", "")


@dataclass
class CollectionInfo:
    """Existence and size of an agent's collection"""
    exists: bool
    points_count: int = 0


@dataclass
class HealthStatus:
    """Vector store reachability"""
    connected: bool
    error: Optional[str] = None


def collection_name(agent_id: str) -> str:
    """Collection that holds one agent's chunks."""
    return f"{COLLECTION_PREFIX}{agent_id}"


def _match_filter(conditions: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "must": [
            {"key": key, "match": {"value": value}}
            for key, value in conditions.items()
        ]
    }


def _document_filter(document_id: str) -> Dict[str, Any]:
    return _match_filter({"documentId": document_id})


class VectorStoreClient:
    """
    Client for a Qdrant server.

    Transport failures, timeouts and 5xx responses raise
    VectorStoreUnavailableError so callers can degrade to empty context.
    Other rejected requests raise VectorStoreError.
    """

    def __init__(
        self,
        url: str = "http://localhost:6333",
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Initialize vector store client.

        Args:
            url: Qdrant base URL
            api_key: Optional Qdrant API key
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests pass a MockTransport)
        """
        self._url = url.rstrip("/")
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["api-key"] = api_key
        self._http = httpx.Client(
            base_url=self._url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    @property
    def url(self) -> str:
        return self._url

    def close(self) -> None:
        self._http.close()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        allow_404: bool = False,
    ) -> Optional[Dict[str, Any]]:
        """Send a request; returns parsed JSON, or None for an allowed 404."""
        try:
            response = self._http.request(method, path, json=json, params=params)
        except httpx.TimeoutException as e:
            raise VectorStoreUnavailableError(f"Vector store timeout on {method} {path}") from e
        except httpx.TransportError as e:
            raise VectorStoreUnavailableError(
                f"Vector store unreachable at {self._url}: {e}"
            ) from e
        except httpx.HTTPError as e:
            raise VectorStoreUnavailableError(f"Vector store request {method} {path} failed: {e}") from e

        if response.status_code == 404 and allow_404:
            return None

        if response.status_code >= 500:
            raise VectorStoreUnavailableError(
                f"Vector store error {response.status_code} on {method} {path}: {response.text[:200]}"
            )
        if response.status_code >= 400:
            raise VectorStoreError(
                f"Vector store rejected {method} {path} ({response.status_code}): {response.text[:200]}"
            )

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise VectorStoreUnavailableError(
                f"Vector store returned a non-JSON body on {method} {path}: {response.text[:200]}"
            ) from e

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    def collection_info(self, agent_id: str) -> CollectionInfo:
        """Get existence and point count of the agent's collection."""
        data = self._request("GET", f"/collections/{collection_name(agent_id)}", allow_404=True)
        if data is None:
            return CollectionInfo(exists=False)

        result = data.get("result") or {}
        return CollectionInfo(exists=True, points_count=int(result.get("points_count") or 0))

    def ensure_collection(self, agent_id: str, vector_size: int, distance: str = "Cosine") -> bool:
        """
        Create the agent's collection if it does not exist.

        Returns:
            True if the collection was created, False if it already existed
        """
        name = collection_name(agent_id)
        if self.collection_info(agent_id).exists:
            return False

        logger.info("Creating collection %s (size=%d, distance=%s)", name, vector_size, distance)
        self._request(
            "PUT",
            f"/collections/{name}",
            json={
                "vectors": {"size": vector_size, "distance": distance},
                "optimizers_config": {"default_segment_number": 2},
                "replication_factor": 1,
            },
        )
        return True

    def delete_collection(self, agent_id: str) -> bool:
        """Delete the agent's collection. Returns False if it did not exist."""
        data = self._request("DELETE", f"/collections/{collection_name(agent_id)}", allow_404=True)
        return data is not None

    # ------------------------------------------------------------------
    # Points
    # ------------------------------------------------------------------

    def upsert(self, agent_id: str, chunk_id: str, vector: List[float], metadata: Dict[str, Any]) -> None:
        """Insert or replace a single point."""
        self.upsert_many(agent_id, [VectorPoint(id=chunk_id, vector=vector, payload=metadata)])

    def upsert_many(self, agent_id: str, points: List[VectorPoint]) -> None:
        """Insert or replace a batch of points."""
        if not points:
            return

        self._request(
            "PUT",
            f"/collections/{collection_name(agent_id)}/points",
            params={"wait": "true"},
            json={
                "points": [
                    {"id": p.id, "vector": p.vector, "payload": p.payload}
                    for p in points
                ]
            },
        )

    def search(
        self,
        agent_id: str,
        vector: List[float],
        limit: int = 5,
        score_threshold: Optional[float] = None,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[VectorHit]:
        """
        Cosine nearest-neighbour search within the agent's collection.

        Args:
            filters: Optional exact-match payload conditions, e.g. {"type": "url"}

        Returns:
            Hits ordered by descending score; empty if the collection does not exist
        """
        body: Dict[str, Any] = {
            "vector": vector,
            "limit": limit,
            "with_payload": True,
        }
        if score_threshold is not None:
            body["score_threshold"] = score_threshold
        if filters:
            body["filter"] = _match_filter(filters)

        data = self._request(
            "POST",
            f"/collections/{collection_name(agent_id)}/points/search",
            json=body,
            allow_404=True,
        )
        if data is None:
            return []

        hits = [
            VectorHit(
                id=str(item.get("id")),
                score=float(item.get("score", 0.0)),
                payload=item.get("payload") or {},
            )
            for item in data.get("result") or []
        ]

        # Filter again in case the server ignores score_threshold
        if score_threshold is not None:
            hits = [h for h in hits if h.score >= score_threshold]

        hits.sort(key=lambda h: h.score, reverse=True)
        return hits[:limit]

    def delete_by_document(self, agent_id: str, document_id: str) -> None:
        """Delete every point of one document. No-op when the collection is missing."""
        self._request(
            "POST",
            f"/collections/{collection_name(agent_id)}/points/delete",
            params={"wait": "true"},
            json={"filter": _document_filter(document_id)},
            allow_404=True,
        )

    def count_by_document(self, agent_id: str, document_id: str) -> int:
        """Number of points stored for one document (0 when the collection is missing)."""
        data = self._request(
            "POST",
            f"/collections/{collection_name(agent_id)}/points/count",
            json={"filter": _document_filter(document_id), "exact": True},
            allow_404=True,
        )
        if data is None:
            return 0
        return int((data.get("result") or {}).get("count") or 0)

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def health(self) -> HealthStatus:
        """Check whether the vector store answers."""
        try:
            self._request("GET", "/")
            return HealthStatus(connected=True)
        except (VectorStoreUnavailableError, VectorStoreError) as e:
            return HealthStatus(connected=False, error=str(e))
