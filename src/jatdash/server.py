"""REST API for terminal sessions and hook previews.

Every handler is stateless: session state comes from tmux on each call and
hook configuration arrives in the request body. The only in-process state
is the hook engine's in-flight key map.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from aiohttp import web

from jatdash import __version__
from jatdash.config import DashboardConfig
from jatdash.hook_engine import DEFAULT_CALLER, HookEngine
from jatdash.hook_events import ToolCallEvent, event_from_payload, sample_event
from jatdash.hook_matcher import match
from jatdash.hook_validation import (
    parse_hook_entries,
    validate_hook_command,
    validate_hooks_config,
)
from jatdash.sessions import SessionRegistry

logger = logging.getLogger(__name__)


async def _read_json(request: web.Request, default: Any = None) -> Any:
    """Request body as JSON; a missing or malformed body yields default."""
    if not request.can_read_body:
        return default
    try:
        return await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return default


def _event_from_body(body: dict) -> ToolCallEvent:
    """Event from {"event": {...}} or, failing that, a sample for {"eventType", "toolName"}."""
    event = body.get("event")
    if isinstance(event, dict):
        return event_from_payload(event, body.get("eventType"))
    if body.get("eventType"):
        return sample_event(body["eventType"], body.get("toolName"))
    raise ValueError("Missing event")


class DashboardAPI:
    """HTTP handlers over a SessionRegistry and a HookEngine."""

    def __init__(
        self,
        registry: SessionRegistry,
        engine: HookEngine,
    ):
        self._registry = registry
        self._engine = engine

    def create_app(self) -> web.Application:
        app = web.Application()

        app.router.add_get("/api/health", self.handle_health)

        # Terminal sessions
        app.router.add_get("/api/terminal", self.handle_list_terminals)
        app.router.add_post("/api/terminal", self.handle_create_terminal)
        app.router.add_delete("/api/terminal", self.handle_kill_terminal)

        # Hooks
        app.router.add_post("/api/hooks/execute", self.handle_execute_hook)
        app.router.add_post("/api/hooks/match", self.handle_match_hooks)
        app.router.add_post("/api/hooks/test", self.handle_test_hooks)
        app.router.add_post("/api/hooks/validate", self.handle_validate_command)
        app.router.add_post("/api/hooks/validate-config", self.handle_validate_config)
        app.router.add_get("/api/hooks/running", self.handle_running_hooks)

        return app

    async def handle_health(self, request: web.Request) -> web.Response:
        return web.json_response({"status": "healthy", "version": __version__})

    # --- Terminal sessions ---

    async def handle_list_terminals(self, request: web.Request) -> web.Response:
        try:
            sessions = await self._registry.list()
        except Exception as e:
            logger.exception("Error listing terminal sessions")
            return web.json_response({
                "success": False,
                "error": "Failed to list terminal sessions",
                "message": str(e),
            }, status=500)

        return web.json_response({
            "success": True,
            "sessions": [s.to_dict() for s in sessions],
            "count": len(sessions),
        })

    async def handle_create_terminal(self, request: web.Request) -> web.Response:
        body = await _read_json(request, {})
        if not isinstance(body, dict):
            body = {}
        name = body.get("name") or None
        path = body.get("path") or None
        if path is not None and not isinstance(path, str):
            return web.json_response({
                "success": False,
                "error": "Invalid path",
                "message": "Path must be a string",
            }, status=400)

        try:
            result = await self._registry.create(name, path)
        except ValueError as e:
            return web.json_response({
                "success": False,
                "error": "Invalid session name",
                "message": str(e),
            }, status=400)
        except Exception as e:
            logger.exception("Error spawning terminal session")
            return web.json_response({
                "success": False,
                "error": "Failed to spawn terminal session",
                "message": str(e),
            }, status=500)

        session = result.session
        response = {
            "success": True,
            "sessionName": session.full_name,
            "displayName": session.display_name,
            "created": result.created,
        }
        if result.created:
            response["workingDir"] = str(result.working_dir)
            response["message"] = f"Created terminal session '{session.display_name}'"
        else:
            response["message"] = f"Terminal session '{session.display_name}' already exists"
        return web.json_response(response)

    async def handle_kill_terminal(self, request: web.Request) -> web.Response:
        name = request.query.get("name", "")
        if not name:
            return web.json_response({
                "success": False,
                "error": "Missing session name",
                "message": "Session name is required",
            }, status=400)

        try:
            killed = await self._registry.kill(name)
        except PermissionError as e:
            return web.json_response({
                "success": False,
                "error": "Invalid session",
                "message": str(e),
            }, status=403)
        except ValueError as e:
            return web.json_response({
                "success": False,
                "error": "Invalid session",
                "message": str(e),
            }, status=400)
        except Exception as e:
            logger.exception("Error killing terminal session")
            return web.json_response({
                "success": False,
                "error": "Failed to kill terminal session",
                "message": str(e),
            }, status=500)

        if not killed:
            return web.json_response({"success": True, "message": "Session already terminated"})
        return web.json_response({
            "success": True,
            "sessionName": name,
            "message": f"Killed terminal session '{name}'",
        })

    # --- Hooks ---

    async def handle_execute_hook(self, request: web.Request) -> web.Response:
        """Run one hook command with the given input on stdin."""
        body = await _read_json(request)
        if not isinstance(body, dict):
            return web.json_response({"error": "Invalid JSON body"}, status=400)

        command = body.get("command")
        if not command or not isinstance(command, str):
            return web.json_response({"error": "Missing or invalid command"}, status=400)
        if body.get("input") is None:
            return web.json_response({"error": "Missing input object"}, status=400)

        try:
            event = event_from_payload(body["input"], body.get("eventType"))
            timeout = body.get("timeout")
            timeout_ms = int(timeout) if timeout is not None else None
        except (TypeError, ValueError) as e:
            return web.json_response({"error": str(e)}, status=400)

        try:
            result = await self._engine.execute(
                command,
                event,
                timeout_ms,
                caller=str(body.get("caller") or DEFAULT_CALLER),
                key=body.get("key") or None,
            )
        except Exception as e:
            logger.exception("Error executing hook")
            return web.json_response({
                "error": "Failed to execute hook",
                "details": str(e),
            }, status=500)

        return web.json_response(result.to_dict())

    async def handle_match_hooks(self, request: web.Request) -> web.Response:
        """Which entries apply to an event. Body: {entries, event | eventType+toolName}."""
        body = await _read_json(request)
        if not isinstance(body, dict):
            return web.json_response({"error": "Invalid JSON body"}, status=400)
        try:
            entries = parse_hook_entries(body.get("entries"))
            event = _event_from_body(body)
        except ValueError as e:
            return web.json_response({"error": str(e)}, status=400)

        results = match(entries, event)
        return web.json_response({
            "eventType": event.event_type,
            "toolName": event.tool_name,
            "results": [r.to_dict() for r in results],
        })

    async def handle_test_hooks(self, request: web.Request) -> web.Response:
        """Match entries against an event and run every matched hook."""
        body = await _read_json(request)
        if not isinstance(body, dict):
            return web.json_response({"error": "Invalid JSON body"}, status=400)
        try:
            entries = parse_hook_entries(body.get("entries"))
            event = _event_from_body(body)
            timeout = body.get("timeout")
            timeout_ms = int(timeout) if timeout is not None else None
        except (TypeError, ValueError) as e:
            return web.json_response({"error": str(e)}, status=400)

        try:
            results = await self._engine.dispatch(
                entries,
                event,
                timeout_ms,
                caller=str(body.get("caller") or DEFAULT_CALLER),
            )
        except Exception as e:
            logger.exception("Error testing hooks")
            return web.json_response({"error": "Failed to test hooks", "details": str(e)}, status=500)

        return web.json_response({
            "eventType": event.event_type,
            "toolName": event.tool_name,
            "results": [r.to_dict() for r in results],
        })

    async def handle_validate_command(self, request: web.Request) -> web.Response:
        body = await _read_json(request)
        command = body.get("command") if isinstance(body, dict) else None
        if not isinstance(command, str):
            return web.json_response(
                {"error": "Missing or invalid command in request body"}, status=400
            )
        check = validate_hook_command(command, self._engine.project_root)
        return web.json_response(check.to_dict())

    async def handle_validate_config(self, request: web.Request) -> web.Response:
        body = await _read_json(request)
        if not isinstance(body, dict) or "hooks" not in body:
            return web.json_response({"error": "Missing hooks in request body"}, status=400)
        issues = validate_hooks_config(body["hooks"])
        errors = [i for i in issues if i.severity == "error"]
        return web.json_response({
            "isValid": not errors,
            "errorCount": len(errors),
            "warningCount": len(issues) - len(errors),
            "issues": [i.to_dict() for i in issues],
        })

    async def handle_running_hooks(self, request: web.Request) -> web.Response:
        caller = request.query.get("caller", DEFAULT_CALLER)
        return web.json_response({
            "caller": caller,
            "running": sorted(self._engine.running(caller)),
        })


def create_app(
    config: DashboardConfig | None = None,
    registry: SessionRegistry | None = None,
    engine: HookEngine | None = None,
) -> web.Application:
    """Build the aiohttp application, wiring defaults from config."""
    config = config or DashboardConfig.load()
    registry = registry or SessionRegistry(config=config.terminal)
    engine = engine or HookEngine(config=config.hooks)
    return DashboardAPI(registry, engine).create_app()


def run_server(config: DashboardConfig | None = None) -> None:
    """Serve the API until interrupted."""
    config = config or DashboardConfig.load()
    logger.info(f"Dashboard API listening on {config.server.host}:{config.server.port}")
    web.run_app(
        create_app(config),
        host=config.server.host,
        port=config.server.port,
        print=None,
    )
