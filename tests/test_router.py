import asyncio
import json

import pytest

from tiered_router.errors import BackendTimeoutError
from tiered_router.intent.llm import CLASSIFICATION_PROMPT
from tiered_router.intent.types import Intent, Tier
from tiered_router.telemetry.recorder import RoutingEventQueue
from tiered_router.utils.jsonl import read_jsonl


def _reply(intent: str, confidence: float, **params: str) -> str:
    return json.dumps({"intent": intent, "confidence": confidence, "params": params})


def _route(router, text: str):
    return asyncio.run(router.route(text))


def test_time_question_takes_fast_path(make_router, fake_backend_cls) -> None:
    backend = fake_backend_cls()
    router = make_router(backend)

    decision = _route(router, "qué hora es")

    assert decision.tier == Tier.DETERMINISTIC
    assert decision.intent == Intent.TIME
    assert decision.source == "fast_path"
    assert backend.prompts == []
    assert backend.health_calls == 0


def test_translate_goes_local_with_model(make_router) -> None:
    decision = _route(make_router(), "traduce esto al inglés: buenos días")

    assert decision.tier == Tier.LOCAL
    assert decision.intent == Intent.TRANSLATE
    assert decision.params == {"targetLang": "en"}
    assert decision.model == "qwen2.5:3b-instruct"


def test_mass_action_is_escalated_even_on_keyword_hit(make_router, fake_backend_cls) -> None:
    backend = fake_backend_cls(reply=_reply("cancel_reminder", 0.95))
    router = make_router(backend)

    decision = _route(router, "elimina todos mis recordatorios")

    assert decision.tier == Tier.API
    assert decision.intent == Intent.CANCEL_REMINDER
    assert "mass_action" in decision.reason
    assert router.stats()["fast_path_vetoes"] == 1
    assert backend.prompts == [CLASSIFICATION_PROMPT + "elimina todos mis recordatorios"]


@pytest.mark.parametrize(
    "message",
    [
        "cancelar todos mis recordatorios",
        "borrar todas las alarmas",
        "eliminar todos los recordatorios",
        "cancelá todos mis recordatorios",
        "borrá todas las alarmas",
    ],
)
def test_bulk_cancel_is_never_executed_directly(make_router, fake_backend_cls, message) -> None:
    router = make_router(fake_backend_cls(reply=_reply("cancel_reminder", 0.95)))

    decision = _route(router, message)

    assert decision.tier == Tier.API
    assert decision.intent == Intent.CANCEL_REMINDER
    assert decision.reason == "Validation override: mass_action"


@pytest.mark.parametrize(
    "message", ["necesito un poco de ayuda", "para ti", "hola buenos días"]
)
def test_short_words_do_not_trigger_tools(make_router, fake_backend_cls, message) -> None:
    backend = fake_backend_cls(reply=_reply("conversation", 0.9))
    router = make_router(backend)

    decision = _route(router, message)

    assert decision.source == "classifier"
    assert decision.tier == Tier.API
    assert len(backend.prompts) == 1


def test_single_unknown_word_is_ambiguous(make_router, fake_backend_cls) -> None:
    router = make_router(fake_backend_cls(reply=_reply("conversation", 0.9)))

    decision = _route(router, "pastas")

    assert decision.tier == Tier.API
    assert decision.intent == Intent.AMBIGUOUS


def test_negation_dominates_confident_classification(make_router, fake_backend_cls) -> None:
    router = make_router(fake_backend_cls(reply=_reply("time", 0.99)))

    decision = _route(router, "no quiero saber la hora")

    assert decision.tier == Tier.API
    assert decision.intent == Intent.CONVERSATION


def test_keyword_reminder_without_params_never_skips_agent(make_router, fake_backend_cls) -> None:
    router = make_router(fake_backend_cls(reply=_reply("reminder", 0.95)))

    decision = _route(router, "recordame en 10 minutos")

    assert decision.tier == Tier.API
    assert decision.intent == Intent.AMBIGUOUS


def test_complete_reminder_from_classifier(make_router, fake_backend_cls) -> None:
    reply = _reply("reminder", 0.9, time="en 10 minutos", message="llamar a mamá")
    router = make_router(fake_backend_cls(reply=reply))

    decision = _route(router, "recordame en 10 minutos de llamar a mamá")

    assert decision.tier == Tier.DETERMINISTIC
    assert decision.intent == Intent.REMINDER
    assert decision.params == {"time": "en 10 minutos", "message": "llamar a mamá"}
    assert decision.source == "classifier"


def test_backend_down_fails_safe_to_api(make_router, fake_backend_cls) -> None:
    backend = fake_backend_cls(available=False)
    router = make_router(backend)

    decision = _route(router, "necesito paraguas?")

    assert decision.tier == Tier.API
    assert decision.intent == Intent.UNKNOWN
    assert decision.confidence == 0.0
    assert decision.source == "unavailable"
    assert backend.prompts == []


def test_connection_error_skips_backend_until_recheck(make_router, fake_backend_cls) -> None:
    backend = fake_backend_cls(error=ConnectionError("refused"))
    router = make_router(backend)

    async def _run():
        return [await router.route("necesito paraguas?") for _ in range(2)]

    first, second = asyncio.run(_run())

    assert len(backend.prompts) == 1
    assert backend.health_calls == 1
    assert first.source == "classifier"
    assert second.source == "unavailable"
    assert second.tier == Tier.API
    assert router.stats()["availability"]["available"] is False


def test_confident_classification_routes_to_tool(make_router, fake_backend_cls) -> None:
    router = make_router(fake_backend_cls(reply=_reply("weather", 0.8, location="Rosario")))

    decision = _route(router, "necesito paraguas?")

    assert decision.tier == Tier.DETERMINISTIC
    assert decision.intent == Intent.WEATHER
    assert decision.params == {"location": "Rosario"}


def test_low_confidence_goes_to_api(make_router, fake_backend_cls) -> None:
    router = make_router(fake_backend_cls(reply=_reply("weather", 0.6)))

    decision = _route(router, "necesito paraguas?")

    assert decision.tier == Tier.API
    assert decision.intent == Intent.WEATHER
    assert "below threshold" in decision.reason


def test_malformed_reply_goes_to_api(make_router, fake_backend_cls) -> None:
    router = make_router(fake_backend_cls(reply="sorry, I can't help with that"))

    decision = _route(router, "necesito paraguas?")

    assert decision.tier == Tier.API
    assert decision.intent == Intent.UNKNOWN


def test_short_text_is_not_summarized_locally(make_router, fake_backend_cls) -> None:
    router = make_router(fake_backend_cls(reply=_reply("summarize", 0.9)))

    decision = _route(router, "resumilo porfa")

    assert decision.tier == Tier.API
    assert decision.intent == Intent.SUMMARIZE


def test_backoff_after_consecutive_failures(make_router, fake_backend_cls) -> None:
    backend = fake_backend_cls(error=BackendTimeoutError("timed out"))
    router = make_router(backend, BACKOFF_FAILURES_TO_TRIGGER=3)

    async def _run():
        return [await router.route("necesito paraguas?") for _ in range(5)]

    decisions = asyncio.run(_run())

    assert [d.source for d in decisions] == ["classifier"] * 3 + ["backoff"] * 2
    assert all(d.tier == Tier.API for d in decisions)
    assert len(backend.prompts) == 3
    assert router.stats()["backoff"]["in_backoff"] is True


def test_slow_classification_counts_as_failure(make_router, fake_backend_cls) -> None:
    router = make_router(
        fake_backend_cls(reply=_reply("weather", 0.9), delay=0.02),
        MAX_CLASSIFY_LATENCY_MS=1,
        BACKOFF_FAILURES_TO_TRIGGER=1,
    )

    decision = _route(router, "necesito paraguas?")

    assert decision.intent == Intent.WEATHER
    assert router.backoff.in_backoff() is True


def test_router_disabled(make_router, fake_backend_cls) -> None:
    backend = fake_backend_cls()
    router = make_router(backend, ROUTER_ENABLED=False)

    decision = _route(router, "qué hora es")

    assert decision.tier == Tier.API
    assert decision.source == "disabled"


def test_empty_message(make_router) -> None:
    decision = _route(make_router(), "   ")
    assert decision.tier == Tier.API
    assert decision.intent == Intent.UNKNOWN


def test_direct_tools_disabled(make_settings, fake_backend_cls) -> None:
    from tiered_router.router import TieredRouter

    router = TieredRouter(
        backend=fake_backend_cls(), settings=make_settings(), direct_tools_enabled=False
    )

    decision = _route(router, "qué hora es")

    assert decision.tier == Tier.API
    assert decision.intent == Intent.TIME


def test_routing_is_deterministic(make_router) -> None:
    router = make_router()
    first = _route(router, "clima en Buenos Aires").to_dict()
    second = _route(router, "clima en Buenos Aires").to_dict()
    first.pop("latency_ms")
    second.pop("latency_ms")
    assert first == second


def test_stats_and_fallbacks(make_router, fake_backend_cls) -> None:
    router = make_router(fake_backend_cls(reply=_reply("weather", 0.9)))

    fast = _route(router, "qué hora es")
    _route(router, "necesito paraguas?")
    router.record_fallback(fast, "clock tool crashed")
    stats = router.stats()

    assert stats["total_requests"] == 2
    assert stats["fast_path_hits"] == 1
    assert stats["classifier_calls"] == 1
    assert stats["fallbacks"] == 1
    assert stats["by_tier"]["deterministic"] == 2
    assert stats["classifier_latency_ms"]["count"] == 1

    router.reset_stats()
    assert router.stats()["total_requests"] == 0


@pytest.mark.parametrize("available, expected", [(True, True), (False, False)])
def test_warmup(make_router, fake_backend_cls, available: bool, expected: bool) -> None:
    backend = fake_backend_cls(available=available)
    router = make_router(backend)

    assert asyncio.run(router.warmup()) is expected
    assert len(backend.prompts) == (1 if available else 0)


def test_warmup_failure_is_not_raised(make_router, fake_backend_cls) -> None:
    router = make_router(fake_backend_cls(error=BackendTimeoutError("timed out")))
    assert asyncio.run(router.warmup()) is False


def test_decisions_are_published_as_events(make_settings, fake_backend_cls, tmp_path) -> None:
    from tiered_router.router import TieredRouter

    settings = make_settings(RECORD_EVENTS=True)
    events = RoutingEventQueue(settings, path=tmp_path / "events.jsonl")
    router = TieredRouter(backend=fake_backend_cls(), settings=settings, events=events)

    _route(router, "qué hora es")
    assert events.pending() == 1

    assert events.flush() == 1
    rows = read_jsonl(tmp_path / "events.jsonl")
    assert rows[0]["intent"] == "time"
    assert rows[0]["tier"] == "deterministic"
    assert rows[0]["input_chars"] == len("qué hora es")
