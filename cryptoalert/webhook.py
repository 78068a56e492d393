# -*- coding: utf-8 -*-
"""
HTTP server for the Telegram webhook and health endpoints.
Each webhook update is answered inline with one bot API method call.
"""
import asyncio
import hmac
from datetime import datetime, timezone
from typing import Optional
from aiohttp import web
from loguru import logger

from cryptoalert.conversation.engine import ConversationEngine, UnrecognizedUpdateError
from cryptoalert.rules.engine import AlertEvaluator


class WebhookServer:
    """aiohttp server: POST {path}/{secret} for updates, GET /health and /status."""

    def __init__(
        self,
        engine: ConversationEngine,
        secret: str,
        evaluator: Optional[AlertEvaluator] = None,
        host: str = "0.0.0.0",
        port: int = 8080,
        path: str = "/webhook",
        max_concurrent_requests: int = 3
    ):
        self.engine = engine
        self.secret = secret
        self.evaluator = evaluator
        self.host = host
        self.port = port
        self.app = web.Application()
        self.runner: Optional[web.AppRunner] = None
        self.site: Optional[web.TCPSite] = None

        # Bounded number of updates handled at once
        self._slots = asyncio.Semaphore(max_concurrent_requests)

        # Bot status tracking
        self.start_time = datetime.now(timezone.utc)
        self.updates_handled = 0

        # Setup routes
        self.app.router.add_post(f"{path.rstrip('/')}/{{secret}}", self.webhook_handler)
        self.app.router.add_get('/health', self.health_handler)
        self.app.router.add_get('/status', self.status_handler)

    def _authorized(self, secret: str) -> bool:
        return bool(self.secret) and hmac.compare_digest(secret.encode(), self.secret.encode())

    async def webhook_handler(self, request: web.Request) -> web.Response:
        """
        Handle one Telegram update.

        Responses: 403 bad secret, 400 unrecognized payload, 200 empty when
        there is nothing to answer, 200 JSON bot method call otherwise,
        500 {"error"} on internal failure.
        """
        if not self._authorized(request.match_info.get("secret", "")):
            logger.warning(f"Unauthorized access from {request.remote}")
            return web.Response(status=403)

        try:
            update = await request.json()
        except ValueError:
            logger.warning("Webhook body is not JSON")
            return web.Response(status=400)

        if not isinstance(update, dict):
            return web.Response(status=400)

        try:
            async with self._slots:
                reply = await self.engine.handle_update(update)
        except UnrecognizedUpdateError as e:
            logger.warning(str(e))
            return web.Response(status=400)
        except Exception as e:
            logger.exception(f"Error handling update {update.get('update_id')}: {e}")
            return web.json_response({"error": str(e)}, status=500)

        self.updates_handled += 1
        if reply is None:
            return web.Response(status=200)
        return web.json_response(reply.to_payload())

    async def health_handler(self, request: web.Request) -> web.Response:
        """
        Simple health check endpoint.
        Returns 200 OK if bot is running.
        """
        return web.json_response({
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat()
        })

    async def status_handler(self, request: web.Request) -> web.Response:
        """
        Detailed status endpoint with bot metrics.
        """
        now = datetime.now(timezone.utc)
        uptime_seconds = (now - self.start_time).total_seconds()

        # Format uptime
        days = int(uptime_seconds // 86400)
        hours = int((uptime_seconds % 86400) // 3600)
        minutes = int((uptime_seconds % 3600) // 60)

        status = {
            "status": "running",
            "uptime": f"{days}d {hours}h {minutes}m",
            "uptime_seconds": int(uptime_seconds),
            "start_time": self.start_time.isoformat(),
            "updates_handled": self.updates_handled,
            "timestamp": now.isoformat()
        }

        if self.evaluator is not None:
            last_run = self.evaluator.last_run_time
            status.update({
                "evaluator_runs": self.evaluator.runs,
                "alerts_triggered": self.evaluator.alerts_triggered,
                "last_evaluation": last_run.isoformat() if last_run else None
            })

        return web.json_response(status)

    async def start(self):
        """Start the HTTP server."""
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        self.site = web.TCPSite(self.runner, self.host, self.port)
        await self.site.start()
        logger.info(f"Webhook server started on http://{self.host}:{self.port}")

    async def stop(self):
        """Stop the HTTP server."""
        if self.site:
            await self.site.stop()
        if self.runner:
            await self.runner.cleanup()
        logger.info("Webhook server stopped")

    async def run(self):
        """Run the server (keeps running until cancelled)."""
        await self.start()
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            await self.stop()
            raise


# Global instance
_server_instance: Optional[WebhookServer] = None


def get_webhook_server() -> WebhookServer:
    """Get global webhook server instance (singleton)."""
    global _server_instance

    if _server_instance is None:
        from cryptoalert.config import WEBHOOK_SECRET, get_webhook_config
        from cryptoalert.conversation.engine import get_conversation_engine
        from cryptoalert.rules.engine import get_alert_evaluator

        webhook_config = get_webhook_config()
        _server_instance = WebhookServer(
            engine=get_conversation_engine(),
            secret=WEBHOOK_SECRET,
            evaluator=get_alert_evaluator(),
            host=webhook_config['host'],
            port=int(webhook_config['port']),
            path=webhook_config['path'],
            max_concurrent_requests=webhook_config['max_concurrent_requests']
        )

    return _server_instance
