"""Sentry error tracking.

Enabled only when SENTRY_DSN is set. Provider API keys are scrubbed from
events before they leave the process.
"""

import logging

from app.core.config import settings

logger = logging.getLogger(__name__)

_SECRET_KEYS = ("openai_api_key", "anthropic_api_key", "authorization", "x-api-key", "jwt_secret_key")


def _scrub(value):
    if isinstance(value, dict):
        return {k: "[Filtered]" if str(k).lower() in _SECRET_KEYS else _scrub(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_scrub(v) for v in value]
    return value


def _before_send(event, hint):
    secrets = [s for s in (settings.openai_api_key, settings.anthropic_api_key) if s]
    event = _scrub(event)
    if not secrets:
        return event

    def _mask(value):
        if isinstance(value, str):
            for secret in secrets:
                value = value.replace(secret, "[Filtered]")
            return value
        if isinstance(value, dict):
            return {k: _mask(v) for k, v in value.items()}
        if isinstance(value, list):
            return [_mask(v) for v in value]
        return value

    return _mask(event)


def init_sentry() -> None:
    if not settings.sentry_dsn:
        logger.debug("Sentry disabled (SENTRY_DSN empty)")
        return

    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.httpx import HttpxIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.app_env,
        traces_sample_rate=0.1 if settings.app_env == "production" else 1.0,
        send_default_pii=False,
        before_send=_before_send,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
            HttpxIntegration(),
        ],
    )
    sentry_sdk.set_tag("ai_provider", settings.ai_provider)
    logger.info("Sentry initialized (env=%s, ai_provider=%s)", settings.app_env, settings.ai_provider)
