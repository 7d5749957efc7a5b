"""
Registry

In-process store of inboxes, agents and AI connection settings.
Stands in for the management API that owns these records; the pipeline
only reads from it.

The registry is persisted to ~/.relay/registry.json when a path is given.
"""

import json
import logging
import threading
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import ValidationError

from ..common.errors import AssignmentError
from ..common.schemas import Agent, AISettings, Inbox

logger = logging.getLogger("relay.pipeline.registry")


class Registry:
    """
    Inboxes, agents and AI settings keyed by id.

    Every mutation is written through to disk when the registry has a path.
    """

    def __init__(self, path: Optional[Path] = None):
        """
        Initialize registry.

        Args:
            path: JSON file to load from and save to (None keeps it in memory)
        """
        self._path = Path(path) if path else None
        self._inboxes: Dict[str, Inbox] = {}
        self._agents: Dict[str, Agent] = {}
        self._ai_settings = AISettings()
        self._lock = threading.RLock()
        if self._path:
            self.load()

    @property
    def path(self) -> Optional[Path]:
        return self._path

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> None:
        """Load registry from disk. A missing or unreadable file leaves it empty."""
        if not self._path or not self._path.exists():
            return

        try:
            with open(self._path) as f:
                data = json.load(f)

            inboxes = {i["id"]: Inbox.model_validate(i) for i in data.get("inboxes", [])}
            agents = {a["id"]: Agent.model_validate(a) for a in data.get("agents", [])}
            ai_settings = AISettings.model_validate(data.get("ai_settings", {}))
        except (json.JSONDecodeError, IOError, KeyError, ValidationError) as e:
            logger.warning("Failed to load registry %s: %s", self._path, e)
            return

        with self._lock:
            self._inboxes = inboxes
            self._agents = agents
            self._ai_settings = ai_settings
        logger.info("Loaded registry: %d inboxes, %d agents", len(inboxes), len(agents))

    def save(self) -> None:
        """Save registry to disk"""
        if not self._path:
            return

        with self._lock:
            data = {
                "inboxes": [i.model_dump(mode="json") for i in self._inboxes.values()],
                "agents": [a.model_dump(mode="json") for a in self._agents.values()],
                "ai_settings": self._ai_settings.model_dump(mode="json"),
            }

        self._path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._path, "w") as f:
            json.dump(data, f, indent=2)

        # Holds completion API keys
        self._path.chmod(0o600)

    # ------------------------------------------------------------------
    # Inboxes
    # ------------------------------------------------------------------

    def get_inbox(self, inbox_id: str) -> Optional[Inbox]:
        return self._inboxes.get(inbox_id)

    def list_inboxes(self) -> List[Inbox]:
        return list(self._inboxes.values())

    def put_inbox(self, inbox: Inbox) -> None:
        with self._lock:
            self._inboxes[inbox.id] = inbox
        self.save()

    def delete_inbox(self, inbox_id: str) -> bool:
        with self._lock:
            removed = self._inboxes.pop(inbox_id, None) is not None
        if removed:
            self.save()
        return removed

    # ------------------------------------------------------------------
    # Agents
    # ------------------------------------------------------------------

    def get_agent(self, agent_id: str) -> Optional[Agent]:
        return self._agents.get(agent_id)

    def list_agents(self) -> List[Agent]:
        return list(self._agents.values())

    def put_agent(self, agent: Agent) -> None:
        with self._lock:
            self._agents[agent.id] = agent
        self.save()

    def inboxes_referencing(self, agent_id: str) -> List[Inbox]:
        return [i for i in self._inboxes.values() if i.references(agent_id)]

    def delete_agent(self, agent_id: str) -> bool:
        """
        Delete an agent.

        Raises:
            AssignmentError: an inbox still references the agent
        """
        referencing = self.inboxes_referencing(agent_id)
        if referencing:
            names = ", ".join(i.id for i in referencing)
            raise AssignmentError(f"Agent {agent_id} is still assigned to inboxes: {names}")

        with self._lock:
            removed = self._agents.pop(agent_id, None) is not None
        if removed:
            self.save()
        return removed

    # ------------------------------------------------------------------
    # AI settings
    # ------------------------------------------------------------------

    @property
    def ai_settings(self) -> AISettings:
        return self._ai_settings

    def set_ai_settings(self, ai_settings: AISettings) -> None:
        with self._lock:
            self._ai_settings = ai_settings
        self.save()
