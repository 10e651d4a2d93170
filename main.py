"""Self-healing support agent: HTTP entry point.

This file handles three concerns:

1. Agent lifecycle. create_app() wires one Agent over an in-memory store.
   Its lifespan starts background polling when AGENT_POLL_INTERVAL_SECONDS
   is above 0 and stops it on shutdown.

2. Loop control. POST /agent/run triggers one cycle; GET /agent/run reports
   status.

3. Approval workflow. GET /agent/actions lists persisted actions by approval
   status; POST /agent/actions approves, rejects or rolls one back.

POST /agent/mock-data seeds, clears or stresses the store for demos.

Flow of a manual run:
    POST /agent/run
        → Agent.run_once()
            → observe → reason → decide → act
        → 200 {success, data: counts, observation, reasoning, decisions, executions}
        → 409 if a cycle is already processing
        → 500 {success: false, error} if the cycle raised

Run locally:
    uv run uvicorn main:app --reload
"""

import logging
import logging.handlers
import os
import pathlib
import random
from contextlib import asynccontextmanager
from typing import Literal

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

load_dotenv()

from core.config import AgentConfig, load_config
from core.context import AgentContext
from core.runtime import Agent, AgentBusyError
from demo.mock_data import MockDataGenerator
from reasoning.llm_classifier import classifier_from_config
from schemas.action import ApprovalStatus
from store.base import AGENT_ACTIONS, INCIDENTS, MERCHANTS, eq
from store.memory import InMemoryDataStore

ACTIONS_PAGE_SIZE = 50
CRISIS_MERCHANT_LOOKUP = 5

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

CONFIG = load_config()

LOG_FILE = pathlib.Path(CONFIG.log_file)
if not LOG_FILE.is_absolute():
    LOG_FILE = pathlib.Path(__file__).parent / LOG_FILE
LOG_FORMAT = "%(asctime)s  %(levelname)-8s  %(name)s  %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_file_handler = logging.handlers.RotatingFileHandler(
    LOG_FILE, maxBytes=1_000_000, backupCount=3, encoding="utf-8",
)
_file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))

_root_logger = logging.getLogger()
_root_logger.setLevel(logging.INFO)
_root_logger.addHandler(_file_handler)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------


class ActionDecision(BaseModel):
    """Body of POST /agent/actions."""

    action_id: str
    decision: Literal["approve", "reject", "rollback"]
    approved_by: str | None = None
    rejected_by: str | None = None
    rejection_reason: str | None = None


class MockDataRequest(BaseModel):
    """Body of POST /agent/mock-data. Every field is optional."""

    action: Literal["generate", "clear", "crisis"] = "generate"
    merchants: int = 8
    tickets: int = 15
    api_errors: int = 20
    webhook_failures: int = 10
    checkout_failures: int = 12
    seed: int | None = None


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def build_agent(config: AgentConfig) -> Agent:
    """Wire an Agent over a fresh in-memory store."""
    context = AgentContext.create(InMemoryDataStore(), config)
    return Agent(context, classifier=classifier_from_config(config.reasoner))


def create_app(agent: Agent | None = None, config: AgentConfig | None = None) -> FastAPI:
    """Build the FastAPI app.

    Args:
        agent: Agent to serve. Built from config when None.
        config: Used for wiring and the poll interval. Defaults to the
            environment configuration loaded at import time.
    """
    config = config or CONFIG
    agent = agent or build_agent(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if config.poll_interval_seconds > 0:
            agent.start(config.poll_interval_seconds)
        yield
        await agent.stop()

    app = FastAPI(title="Self-Healing Support Agent", lifespan=lifespan)
    app.state.agent = agent

    # Allow the admin UI to call these endpoints from a different origin.
    # ALLOWED_ORIGINS env var overrides the default for production deployments.
    origins = os.environ.get("ALLOWED_ORIGINS", "http://localhost:3000").split(",")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def bad_request(request: Request, exc: RequestValidationError):
        # Malformed bodies are client errors, reported as 400 rather than 422.
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "Invalid request body.", "detail": jsonable_encoder(exc.errors())},
        )

    _register_routes(app)
    return app


def _agent(request: Request) -> Agent:
    return request.app.state.agent


def _register_routes(app: FastAPI) -> None:

    # -----------------------------------------------------------------------
    # Health check
    # -----------------------------------------------------------------------

    @app.get("/health")
    def health():
        return {"status": "ok"}

    # -----------------------------------------------------------------------
    # Loop control
    # -----------------------------------------------------------------------

    @app.post("/agent/run")
    async def run_agent(request: Request):
        """Run one agent cycle and return everything it produced."""
        agent = _agent(request)
        try:
            result = await agent.run_once()
        except AgentBusyError as exc:
            return JSONResponse(status_code=409, content={"success": False, "error": str(exc)})
        except Exception as exc:
            logger.error("Agent run failed: %s", exc)
            return JSONResponse(status_code=500, content={"success": False, "error": str(exc)})

        return jsonable_encoder({
            "success": True,
            "data": result.summary(),
            "observation": result.observation,
            "reasoning": result.reasoning_results,
            "decisions": result.decisions,
            "executions": result.execution_results,
        })

    @app.get("/agent/run")
    def agent_status(request: Request):
        return {"status": jsonable_encoder(_agent(request).get_status())}

    # -----------------------------------------------------------------------
    # Approval workflow
    # -----------------------------------------------------------------------

    @app.get("/agent/actions")
    async def list_actions(request: Request, status: str = ApprovalStatus.PENDING.value):
        """List persisted actions with the given approval status, newest first.

        Each action carries an `incidents` entry with the title, severity and
        type of the incident it belongs to, or None.
        """
        try:
            ApprovalStatus(status)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Unknown approval status '{status}'.")

        store = _agent(request).context.store
        actions = await store.select(
            AGENT_ACTIONS,
            [eq("approval_status", status)],
            order_by="created_at",
            descending=True,
            limit=ACTIONS_PAGE_SIZE,
        )
        for action in actions:
            incident = await store.get(INCIDENTS, action["incident_id"]) if action.get("incident_id") else None
            action["incidents"] = (
                {key: incident.get(key) for key in ("title", "severity", "type")}
                if incident is not None else None
            )
        return {"actions": jsonable_encoder(actions)}

    @app.post("/agent/actions")
    async def decide_action(body: ActionDecision, request: Request):
        """Approve, reject or roll back one action."""
        actor = _agent(request).actor

        if body.decision == "approve":
            result = await actor.approve_action(body.action_id, body.approved_by or "admin")
            return {
                "success": result.success,
                "message": "Action approved and executed" if result.success else result.error,
                "result": jsonable_encoder(result),
            }

        if body.decision == "reject":
            await actor.reject_action(
                body.action_id,
                body.rejected_by or "admin",
                body.rejection_reason or "Rejected by admin",
            )
            return {"success": True, "message": "Action rejected"}

        result = await actor.rollback_action(body.action_id)
        return {
            "success": result.success,
            "message": "Action rolled back" if result.success else result.error,
            "result": jsonable_encoder(result),
        }

    # -----------------------------------------------------------------------
    # Demo data
    # -----------------------------------------------------------------------

    @app.post("/agent/mock-data")
    async def mock_data(request: Request, body: MockDataRequest | None = None):
        body = body or MockDataRequest()
        store = _agent(request).context.store
        generator = MockDataGenerator(store, random.Random(body.seed))

        if body.action == "clear":
            await generator.clear()
            state = _agent(request).context.state
            if not state.is_processing:
                state.reset()
            return {"success": True, "message": "Mock data cleared"}

        if body.action == "crisis":
            merchants = await store.select(MERCHANTS, limit=CRISIS_MERCHANT_LOOKUP)
            if not merchants:
                raise HTTPException(status_code=400, detail="No merchants found. Generate mock data first.")
            affected = await generator.simulate_migration_crisis([m["id"] for m in merchants])
            return {
                "success": True,
                "message": "Migration crisis simulated",
                "affected_merchants": len(affected),
            }

        counts = await generator.generate(
            merchants=body.merchants,
            tickets=body.tickets,
            api_errors=body.api_errors,
            webhook_failures=body.webhook_failures,
            checkout_failures=body.checkout_failures,
        )
        return {
            "success": True,
            "message": "Mock data generated",
            "merchants": counts.merchants,
            "tickets": counts.tickets,
            "api_errors": counts.api_errors,
            "webhook_failures": counts.webhook_failures,
            "checkout_failures": counts.checkout_failures,
        }


app = create_app()
