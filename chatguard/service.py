"""
Composition root.

PreflightService builds the counter store, abuse mitigator, LLM and
moderation clients, check registry, tracer and orchestrator from
GuardSettings, and exposes the calls a chat backend needs:

    service = PreflightService.from_settings(GuardSettings())
    info = extract_client_info(request.headers, request.cookies)
    outcome = await service.guarded_completion(
        info.user_id, messages, model="gpt-4o-mini", ip=info.ip, user_agent=info.user_agent
    )
    if not outcome.passed:
        return JSONResponse(outcome.error, status_code=400)
"""

import logging
import time
import uuid
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, Mapping, Optional

from chatguard.abuse.mitigation import AbuseMitigation, AbuseMitigator
from chatguard.config.settings import GuardSettings, PreflightConfig
from chatguard.llm.client import LLMClient
from chatguard.llm.moderation import ModerationClient
from chatguard.preflight.checks import build_default_checks
from chatguard.preflight.display import ErrorDisplayMapper
from chatguard.preflight.orchestrator import PreflightOrchestrator
from chatguard.preflight.registry import CheckRegistry
from chatguard.preflight.types import (
    ChatInput,
    CheckResult,
    Message,
    PreflightOptions,
    PreflightResult,
    Severity,
)
from chatguard.store import create_store
from chatguard.store.base import CounterStore
from chatguard.tracing.otel_tracer import PreflightTracer

logger = logging.getLogger(__name__)

USER_ID_COOKIE = "ai_user_id"
DEFAULT_IP = "127.0.0.1"


@dataclass
class ClientInfo:
    user_id: str
    ip: str
    user_agent: str
    new_user: bool = False  # True when user_id was generated and should be set as a cookie


def extract_client_info(
    headers: Mapping[str, str], cookies: Optional[Mapping[str, str]] = None
) -> ClientInfo:
    """
    Derive the caller's identity from request headers and cookies.

    The IP is the first hop of X-Forwarded-For, then X-Real-IP, then
    CF-Connecting-IP, falling back to 127.0.0.1.
    """
    lowered = {k.lower(): v for k, v in headers.items()}

    ip = (
        lowered.get("x-forwarded-for")
        or lowered.get("x-real-ip")
        or lowered.get("cf-connecting-ip")
        or DEFAULT_IP
    )
    if "," in ip:
        ip = ip.split(",")[0].strip() or DEFAULT_IP

    user_id = (cookies or {}).get(USER_ID_COOKIE)
    new_user = not user_id
    if new_user:
        user_id = uuid.uuid4().hex

    return ClientInfo(
        user_id=user_id,
        ip=ip.strip(),
        user_agent=lowered.get("user-agent", ""),
        new_user=new_user,
    )


@dataclass
class GuardedCompletion:
    """Outcome of guarded_completion."""

    passed: bool
    preflight: PreflightResult
    error: Optional[Dict[str, Any]] = None  # display payload when blocked
    response: Any = None  # litellm ModelResponse when passed


class PreflightService:
    """
    Preflight pipeline wired from settings.

    Every collaborator can be injected, which is how tests swap in fakes.
    """

    def __init__(
        self,
        settings: GuardSettings,
        store: Optional[CounterStore] = None,
        mitigation: Optional[AbuseMitigation] = None,
        llm_client: Optional[LLMClient] = None,
        moderation_client: Optional[ModerationClient] = None,
        registry: Optional[CheckRegistry] = None,
        tracer: Optional[PreflightTracer] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings
        self.store = store or create_store(settings.store.backend, settings.store.url)
        self.mitigation = mitigation or AbuseMitigator(self.store, settings.abuse, clock=clock)
        self.llm_client = llm_client or LLMClient(
            model=settings.llm.analysis_model,
            temperature=settings.llm.temperature,
            max_tokens=settings.llm.max_tokens,
            timeout=settings.llm.timeout,
        )
        self.moderation_client = moderation_client or ModerationClient(
            model=settings.llm.moderation_model,
            timeout=settings.llm.timeout,
        )
        self.registry = registry or CheckRegistry(
            build_default_checks(
                self.store,
                self.mitigation,
                self.llm_client,
                self.moderation_client,
                clock=clock,
            )
        )

        defaults = self._preflight_defaults()
        self.registry.validate_config(defaults.check_config)

        self.tracer = tracer or PreflightTracer(settings.otel)
        self.orchestrator = PreflightOrchestrator(
            self.registry,
            mitigation=self.mitigation,
            defaults=defaults,
            tracer=self.tracer,
        )
        self.display = ErrorDisplayMapper.from_settings(settings.display)

    @classmethod
    def from_settings(cls, settings: Optional[GuardSettings] = None) -> "PreflightService":
        """
        Build a service from settings, validating them first.

        Raises:
            ValueError: If the settings or per-check options are invalid
        """
        settings = settings or GuardSettings()
        settings.validate()
        return cls(settings)

    def _preflight_defaults(self) -> PreflightConfig:
        """Settings preflight section with the abuse IP limits seeded under ip_rate_limit."""
        preflight = self.settings.preflight
        check_config = {name: dict(options) for name, options in preflight.check_config.items()}

        if "ip_rate_limit" in self.registry:
            seeded = {
                "limit": self.settings.abuse.ip_limit,
                "window": self.settings.abuse.ip_window,
            }
            seeded.update(check_config.get("ip_rate_limit", {}))
            check_config["ip_rate_limit"] = seeded

        return preflight.model_copy(update={"check_config": check_config})

    async def check_deny_list(self, ip: Optional[str]) -> Optional[PreflightResult]:
        """Return an ``ip_denied`` failure if ip is on the deny list, else None."""
        if not ip or not await self.mitigation.is_ip_denied(ip):
            return None

        logger.warning(f"Request from denied IP {ip}")
        return PreflightResult(
            passed=False,
            failed_check="ip_denied",
            result=CheckResult(
                passed=False,
                code="ip_denied",
                message="Access denied",
                severity=Severity.ERROR,
            ),
        )

    async def run_preflight_checks(
        self,
        user_id: str,
        chat_input: ChatInput,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
        options: Optional[PreflightOptions] = None,
    ) -> PreflightResult:
        """Run preflight checks, gated by the deny list when enforce_deny_list is set."""
        with self.tracer.trace_block("preflight", user_id, {"chatguard.ip": ip or "unknown"}):
            if self.settings.abuse.enforce_deny_list:
                denied = await self.check_deny_list(ip)
                if denied is not None:
                    self.tracer.log_preflight_result(user_id, ip, denied)
                    return denied

            return await self.orchestrator.run_preflight_checks(
                user_id, chat_input, ip=ip, user_agent=user_agent, options=options
            )

    async def guarded_completion(
        self,
        user_id: str,
        messages: ChatInput,
        model: str,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
        options: Optional[PreflightOptions] = None,
        **completion_kwargs: Any,
    ) -> GuardedCompletion:
        """
        Run preflight, then call the completion model only if it passed.

        Blocked requests return the display payload instead of calling the model.
        """
        result = await self.run_preflight_checks(
            user_id, messages, ip=ip, user_agent=user_agent, options=options
        )
        if not result.passed:
            return GuardedCompletion(
                passed=False,
                preflight=result,
                error=self.display.handle_preflight_error(result.result),
            )

        import litellm

        if isinstance(messages, str):
            payload = [{"role": "user", "content": messages}]
        else:
            payload = [asdict(m) if isinstance(m, Message) else dict(m) for m in messages]

        response = await litellm.acompletion(model=model, messages=payload, **completion_kwargs)
        return GuardedCompletion(passed=True, preflight=result, response=response)

    async def close(self) -> None:
        """Close the store connection and flush traces."""
        await self.store.close()
        self.tracer.shutdown()
