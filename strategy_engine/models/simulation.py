"""
Boundary to the external simulation engine.

The Monte Carlo / deterministic engine is a separately versioned component.
Strategies talk to it only through the SimulationEngine protocol using the
request/response records defined here. Engine faults are always returned as
data (``success=False``), never raised into strategy code.
"""

import logging
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

import requests
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .events import FinancialEvent

logger = logging.getLogger(__name__)


class EngineModel(BaseModel):
    """Base for wire records: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BlockedOutput(EngineModel):
    """An output the engine refused to compute, and how to unlock it."""

    output_name: str = Field(..., description="Name of the blocked output")
    reason: str = Field(..., description="Why the output is blocked")
    unlock_path: List[str] = Field(
        default_factory=list, description="Steps that would unlock the output"
    )


class EngineMeta(EngineModel):
    """Version stamp of the engine that produced a response."""

    version: str = Field(..., description="Engine version")
    schema_version: str = Field(..., description="Request schema version")
    inputs_hash: str = Field(..., description="Hash of the normalised inputs")


class SimulationRequest(EngineModel):
    """Input to a simulation run."""

    seed: int = Field(..., description="Random seed for reproducibility")
    months_to_run: int = Field(..., ge=1, description="Number of months to simulate")
    initial_state: Dict[str, Any] = Field(
        default_factory=dict, description="Starting balances and account state"
    )
    events: List[FinancialEvent] = Field(
        default_factory=list, description="Event timeline to simulate"
    )
    stochastic_config: Dict[str, Any] = Field(
        default_factory=dict, description="Return and volatility assumptions"
    )
    mc_paths: Optional[int] = Field(
        default=None, ge=1, description="Monte Carlo path count"
    )


class SimulationResponse(EngineModel):
    """Output of a simulation run."""

    success: bool = Field(..., description="Whether the run completed")
    error: Optional[str] = Field(default=None, description="Failure message")
    mc: Optional[Dict[str, Any]] = Field(default=None, description="Monte Carlo results")
    deterministic: Optional[Dict[str, Any]] = Field(
        default=None, description="Deterministic projection results"
    )
    blocked_outputs: List[BlockedOutput] = Field(
        default_factory=list, description="Outputs the engine could not produce"
    )
    engine_meta: Optional[EngineMeta] = Field(
        default=None, description="Engine version stamp"
    )

    @classmethod
    def failure(cls, message: str) -> "SimulationResponse":
        return cls(success=False, error=message)

    def warnings(self) -> List[str]:
        """Human-readable warnings describing failures and blocked outputs."""
        messages = []
        if not self.success:
            messages.append(f"Simulation engine failed: {self.error or 'unknown error'}")
        for blocked in self.blocked_outputs:
            message = f"{blocked.output_name} unavailable: {blocked.reason}"
            if blocked.unlock_path:
                message += f" (unlock: {', '.join(blocked.unlock_path)})"
            messages.append(message)
        return messages


@runtime_checkable
class SimulationEngine(Protocol):
    """
    External projection engine.

    Implementations must turn every failure into a ``success=False``
    response instead of raising.
    """

    def run_monte_carlo(self, request: SimulationRequest) -> SimulationResponse:
        """Run a Monte Carlo simulation."""
        ...

    def run_deterministic(self, request: SimulationRequest) -> SimulationResponse:
        """Run a single deterministic projection."""
        ...

    def is_ready(self) -> bool:
        """Whether the engine can accept requests."""
        ...


class HttpSimulationEngine:
    """SimulationEngine backed by an HTTP service."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or self._create_session()

    def _create_session(self) -> requests.Session:
        """Create a requests session with retry strategy."""
        session = requests.Session()

        retry_strategy = Retry(
            total=3,
            backoff_factor=1,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET", "POST"],
        )

        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)

        return session

    def _post(self, path: str, request: SimulationRequest) -> SimulationResponse:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.post(
                url,
                json=request.model_dump(mode="json", by_alias=True),
                timeout=self.timeout,
            )
            response.raise_for_status()
            return SimulationResponse.model_validate(response.json())
        except requests.RequestException as e:
            logger.error(f"Simulation engine request to {url} failed: {e}")
            return SimulationResponse.failure(str(e))
        except ValueError as e:
            logger.error(f"Simulation engine returned an invalid response from {url}: {e}")
            return SimulationResponse.failure(f"Invalid engine response: {e}")

    def run_monte_carlo(self, request: SimulationRequest) -> SimulationResponse:
        return self._post("/simulate/monte-carlo", request)

    def run_deterministic(self, request: SimulationRequest) -> SimulationResponse:
        return self._post("/simulate/deterministic", request)

    def is_ready(self) -> bool:
        try:
            response = self.session.get(f"{self.base_url}/health", timeout=self.timeout)
            return response.status_code == 200
        except requests.RequestException as e:
            logger.warning(f"Simulation engine at {self.base_url} is not reachable: {e}")
            return False
