import pytest

from tiered_router.intent.rules import RULES, apply_overrides
from tiered_router.intent.types import Intent, Tier

FULL_REMINDER = {"time": "en 10 minutos", "message": "llamar a mamá"}


def test_rules_are_evaluated_in_fixed_order() -> None:
    assert [name for name, _ in RULES] == [
        "negation",
        "mass_action",
        "incomplete_reminder",
        "fact_memory",
        "suggestion",
        "single_word",
    ]


@pytest.mark.parametrize(
    "message",
    ["no me recuerdes nada", "No quiero saber la hora", "no necesito paraguas", "no te olvides"],
)
def test_negation_becomes_conversation(message: str) -> None:
    override = apply_overrides(message, Intent.REMINDER, FULL_REMINDER)
    assert override is not None
    assert override.rule == "negation"
    assert override.intent == Intent.CONVERSATION
    assert override.tier == Tier.API


def test_no_me_dejes_olvidar_is_a_real_reminder() -> None:
    assert apply_overrides("no me dejes olvidar llamar a mamá", Intent.REMINDER, FULL_REMINDER) is None


def test_negation_wins_over_mass_action() -> None:
    override = apply_overrides("no me importa, borra todos", Intent.CANCEL_REMINDER, {})
    assert override is not None
    assert override.rule == "negation"


@pytest.mark.parametrize(
    "message",
    [
        "elimina todos mis recordatorios",
        "borra todas las alarmas",
        "delete todos",
        "cancelar todos mis recordatorios",
        "eliminar todas las alarmas",
        "cancelá todos",
        "quitá todas las alarmas",
        "remove todas",
    ],
)
def test_mass_action_keeps_intent_and_escalates(message: str) -> None:
    override = apply_overrides(message, Intent.CANCEL_REMINDER, {})
    assert override is not None
    assert override.rule == "mass_action"
    assert override.intent is None
    assert override.tier == Tier.API


@pytest.mark.parametrize(
    "params",
    [{}, {"time": "en 10 minutos"}, {"message": "comprar pan"}, {"time": "  ", "message": "x"}],
)
def test_incomplete_reminder_is_ambiguous(params: dict) -> None:
    override = apply_overrides("recordame algo", Intent.REMINDER, params)
    assert override is not None
    assert override.rule == "incomplete_reminder"
    assert override.intent == Intent.AMBIGUOUS


def test_datetime_and_task_count_as_complete() -> None:
    params = {"datetime": "2026-10-19T09:00", "task": "pagar la luz"}
    assert apply_overrides("recordame mañana pagar la luz", Intent.REMINDER, params) is None


def test_fact_memory_when_reminder_is_complete() -> None:
    override = apply_overrides("Recordame que soy alérgico al maní", Intent.REMINDER, FULL_REMINDER)
    assert override is not None
    assert override.rule == "fact_memory"
    assert override.intent == Intent.FACT_MEMORY


def test_incomplete_reminder_checked_before_fact_memory() -> None:
    override = apply_overrides("recordame que trabajo en Globant", Intent.REMINDER, {})
    assert override is not None
    assert override.rule == "incomplete_reminder"


def test_fact_pattern_ignored_for_other_intents() -> None:
    assert apply_overrides("recordame que tengo dos gatos", Intent.QUESTION, {}) is None


@pytest.mark.parametrize(
    "message",
    [
        "deberías recordarme comprar pan",
        "deberias recordarme comprar pan",
        "podrias avisarme",
        "quizas mañana",
        "tal vez mañana",
        "capaz que llueve",
    ],
)
def test_suggestion_becomes_conversation(message: str) -> None:
    override = apply_overrides(message, Intent.QUESTION, {})
    assert override is not None
    assert override.rule == "suggestion"
    assert override.intent == Intent.CONVERSATION


def test_unknown_single_word_is_ambiguous() -> None:
    override = apply_overrides("pastas", Intent.CONVERSATION, {})
    assert override is not None
    assert override.rule == "single_word"
    assert override.intent == Intent.AMBIGUOUS


@pytest.mark.parametrize("message", ["hora", "¿clima?", "Weather", "recordatorios"])
def test_known_single_words_pass(message: str) -> None:
    assert apply_overrides(message, Intent.TIME, {}) is None


def test_plain_request_has_no_override() -> None:
    assert apply_overrides("qué hora es", Intent.TIME, {}) is None
