"""Natural-language scoring backed by an external LLM chat endpoint."""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional

import httpx
from pydantic import BaseModel

from insight_hub.core.config import DEFAULT_LLM_ENDPOINT, HubConfig
from insight_hub.domain.exceptions import ScoringUnavailableError
from insight_hub.domain.models import AIInsight, AnalyticsSnapshot, InsightType, LeadScore

DISABLED_NOTICE = "AI features disabled. Set ENABLE_AI=true to enable"
HEALTH_TIMEOUT_SECONDS = 5.0

_JSON_OBJECT = re.compile(r"\{[^}]+\}")
_NUMBER = re.compile(r"\d+")


class AIEngine:
    """Thin client for the LLM collaborator plus prompt/response helpers."""

    def __init__(
        self,
        endpoint: str = DEFAULT_LLM_ENDPOINT,
        *,
        enabled: bool = False,
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.endpoint = endpoint
        self.enabled = enabled
        self.timeout = timeout
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient()
        self.logger = logger or logging.getLogger(__name__)

    @classmethod
    def from_config(
        cls, config: HubConfig, *, http_client: Optional[httpx.AsyncClient] = None
    ) -> "AIEngine":
        return cls(
            config.llm_endpoint,
            enabled=config.enable_ai,
            timeout=config.llm_timeout_seconds,
            http_client=http_client,
        )

    async def query_llm(self, prompt: str, context: Any = None) -> str:
        if not self.enabled:
            return DISABLED_NOTICE
        payload = {
            "message": prompt,
            "context": _dump_context(context),
            "temperature": 0.7,
            "max_tokens": 500,
        }
        try:
            response = await self._http.post(
                self.endpoint, json=payload, timeout=self.timeout
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            self.logger.error("llm_query_failed", extra={"error": str(exc)})
            raise ScoringUnavailableError(
                f"AI service unavailable: {exc}", context={"endpoint": self.endpoint}
            ) from exc
        if not isinstance(data, Mapping):
            return ""
        return str(data.get("response") or data.get("message") or "")

    async def score_contact(self, contact: Mapping[str, Any]) -> LeadScore:
        tags = ", ".join(contact.get("tags") or []) or "None"
        prompt = (
            "Analyze this CRM contact and provide a lead quality score from 0-100.\n\n"
            "Contact Data:\n"
            f"- Name: {contact.get('firstName', '')} {contact.get('lastName', '')}\n"
            f"- Email: {contact.get('email', 'N/A')}\n"
            f"- Phone: {contact.get('phone') or 'N/A'}\n"
            f"- Tags: {tags}\n"
            f"- Source: {contact.get('source') or 'Unknown'}\n"
            f"- Date Added: {contact.get('dateAdded', 'Unknown')}\n"
            f"- Last Contacted: {contact.get('lastContacted') or 'Never'}\n\n"
            'Format as JSON: {"score": number, "confidence": number, '
            '"factors": ["factor1"], "recommendation": "string"}'
        )
        contact_id = contact.get("id")
        reply = await self.query_llm(prompt, contact)
        parsed = _first_json_object(reply)
        if parsed is not None:
            try:
                return LeadScore(
                    contact_id=contact_id,
                    score=_clamp(parsed.get("score") or 50),
                    confidence=_clamp(parsed.get("confidence") or 50),
                    factors=[str(f) for f in parsed.get("factors") or []],
                    recommendation=parsed.get("recommendation")
                    or "Review contact manually",
                )
            except (TypeError, ValueError):
                self.logger.warning("lead_score_unparseable", extra={"reply": reply})
        return LeadScore(
            contact_id=contact_id,
            score=50,
            confidence=30,
            factors=["Unable to analyze"],
            recommendation="Manual review needed",
        )

    async def predict_opportunity_win(self, opportunity: Mapping[str, Any]) -> int:
        prompt = (
            "Analyze this CRM opportunity and predict the win probability (0-100%).\n\n"
            f"- Name: {opportunity.get('name', 'Unknown')}\n"
            f"- Value: ${opportunity.get('monetaryValue') or 0}\n"
            f"- Pipeline: {opportunity.get('pipelineName', 'Unknown')}\n"
            f"- Stage: {opportunity.get('pipelineStage', 'Unknown')}\n\n"
            "Provide win probability as a number between 0-100."
        )
        reply = await self.query_llm(prompt, opportunity)
        match = _NUMBER.search(reply)
        if match:
            return _clamp(int(match.group(0)))
        return 50

    async def detect_anomalies(self, snapshot: AnalyticsSnapshot) -> List[AIInsight]:
        totals = snapshot.requests
        lines = [
            "Analyze these CRM API usage patterns and identify anomalies or concerns.",
            f"- Total Requests: {totals.total}",
            f"- Success Rate: {_percent(totals.success, totals.total)}%",
            f"- Error Rate: {_percent(totals.errors, totals.total)}%",
            f"- Average Response Time: {totals.average_duration_millis}ms",
            "Top Endpoints:",
        ]
        for key, stat in list(snapshot.endpoints.items())[:5]:
            lines.append(
                f"- {key}: {stat.count} calls, {stat.error_count} errors, "
                f"{round(stat.average_duration_millis)}ms avg"
            )
        reply = await self.query_llm("\n".join(lines), snapshot)

        insights: List[AIInsight] = []
        for line in filter(None, (raw.strip() for raw in reply.splitlines())):
            lowered = line.lower()
            if any(word in lowered for word in ("anomaly", "unusual", "concern")):
                insights.append(
                    AIInsight(
                        type=InsightType.ANOMALY,
                        title="Anomaly Detected",
                        description=line,
                        confidence=75,
                    )
                )
            elif "recommend" in lowered or "suggest" in lowered:
                insights.append(
                    AIInsight(
                        type=InsightType.RECOMMENDATION,
                        title="AI Recommendation",
                        description=line,
                        confidence=80,
                    )
                )
        return insights

    async def generate_insights(self, data: Any, data_type: str) -> str:
        prompt = (
            f"Analyze this CRM {data_type} data and provide actionable insights.\n\n"
            f"Data Summary:\n{_dump_context(data)}\n\n"
            "Provide:\n"
            "1. Key trends\n"
            "2. Notable patterns\n"
            "3. Actionable recommendations\n"
            "4. Potential risks or opportunities\n\n"
            "Be specific and actionable."
        )
        return await self.query_llm(prompt, data)

    async def suggest_workflow_optimizations(
        self, workflow: Mapping[str, Any]
    ) -> List[AIInsight]:
        steps = workflow.get("steps") or []
        prompt = (
            "Analyze this CRM workflow and suggest optimizations.\n\n"
            f"Workflow: {workflow.get('name', 'Unknown')}\n"
            f"Steps: {len(steps)}\n"
            f"Active: {workflow.get('status') == 'active'}\n\n"
            "Suggest specific improvements to:\n"
            "1. Increase conversion rates\n"
            "2. Reduce friction\n"
            "3. Improve timing\n"
            "4. Enhance personalization"
        )
        reply = await self.query_llm(prompt, workflow)
        return [
            AIInsight(
                type=InsightType.RECOMMENDATION,
                title="Workflow Optimization Suggestions",
                description=reply,
                confidence=70,
                data=dict(workflow),
            )
        ]

    async def answer_question(self, question: str, context: Any) -> str:
        prompt = (
            "You are an assistant specialized in CRM data analysis.\n\n"
            f"User Question: {question}\n\n"
            f"Available Data Context:\n{_dump_context(context)}\n\n"
            "Answer from the data. If the data is insufficient, say so."
        )
        return await self.query_llm(prompt, context)

    async def health_check(self) -> bool:
        if not self.enabled:
            return False
        url = f"{self.endpoint.replace('/api/chat', '')}/health"
        try:
            response = await self._http.get(url, timeout=HEALTH_TIMEOUT_SECONDS)
            response.raise_for_status()
        except httpx.HTTPError:
            return False
        return True

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()


def _dump_context(context: Any) -> Optional[str]:
    if context is None:
        return None
    if isinstance(context, BaseModel):
        context = context.model_dump(mode="json", by_alias=True)
    return json.dumps(context, indent=2, default=_json_default)


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.astimezone(timezone.utc).isoformat()
    return str(value)


def _first_json_object(text: str) -> Optional[Mapping[str, Any]]:
    match = _JSON_OBJECT.search(text)
    if not match:
        return None
    try:
        parsed = json.loads(match.group(0))
    except ValueError:
        return None
    return parsed if isinstance(parsed, Mapping) else None


def _clamp(value: Any) -> int:
    return min(100, max(0, int(value)))


def _percent(part: int, total: int) -> str:
    if not total:
        return "0.0"
    return f"{part / total * 100:.1f}"
