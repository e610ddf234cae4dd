"""Unit tests for prompt construction."""

from __future__ import annotations

from services.ai.models import GenerationRequest
from services.ai.prompts import (
    BRIEFING_CAVEAT,
    FREE_INSTRUCTION_PREAMBLE,
    REFUSAL_SENTENCE,
    SYSTEM_PROMPT,
    build_prompt,
    build_system_prompt,
    interpolate_template,
    is_refusal,
)


def test_generate_mode_when_no_description():
    pair = build_prompt(GenerationRequest(title="Fix login bug"))

    assert pair.user.startswith("Generate a description for this card:")
    assert "Title: Fix login bug" in pair.user
    assert "Priority: medium" in pair.user
    assert "Current description" not in pair.user


def test_improve_mode_when_description_present():
    pair = build_prompt(GenerationRequest(title="Fix login bug", current_text="it's broken"))

    assert pair.user.startswith("Improve this card description.")
    assert "Current description:\nit's broken" in pair.user


def test_explicit_generate_mode_ignores_existing_description():
    request = GenerationRequest(
        title="Fix login bug", current_text="it's broken", legacy_mode="generate"
    )
    pair = build_prompt(request)

    assert "Generate a description" in pair.user
    assert "it's broken" not in pair.user


def test_whitespace_only_description_derives_generate():
    request = GenerationRequest(title="Fix login bug", current_text="   \n ")
    assert request.effective_mode == "generate"


def test_legacy_prompt_lists_priority_and_tags():
    request = GenerationRequest(
        title="Ship v2", priority="urgent", tags=("frontend", "auth")
    )
    user = build_prompt(request).user

    assert "Priority: urgent" in user
    assert "Tags: frontend, auth" in user


def test_skill_template_interpolated():
    request = GenerationRequest(title="Ship v2", priority="high", skill_id="summarize")
    pair = build_prompt(request, "Summarize: {title} ({priority})")

    assert pair.user == "Summarize: Ship v2 (high)"


def test_skill_template_defaults_priority_and_blanks_unknown():
    request = GenerationRequest(
        title="Ship v2", tags=("a", "b"), skill_id="t", current_text=" body "
    )
    pair = build_prompt(request, "{title}|{priority}|{tags}|{description}|{nope}")

    assert pair.user == "Ship v2|medium|a, b|body|"


def test_skill_takes_precedence_over_free_instruction():
    request = GenerationRequest(
        title="Ship v2", skill_id="summarize", free_instruction="Write a poem"
    )
    pair = build_prompt(request, "Summarize {title}")

    assert pair.user == "Summarize Ship v2"


def test_skill_without_resolved_template_falls_back():
    request = GenerationRequest(title="Ship v2", skill_id="missing")
    assert build_prompt(request).user.startswith("Generate a description")


def test_free_instruction_prompt():
    request = GenerationRequest(
        title="Ship v2",
        current_text="Old text",
        tags=("release",),
        free_instruction="  Add a rollback plan  ",
    )
    user = build_prompt(request).user

    assert user.startswith(f"{FREE_INSTRUCTION_PREAMBLE}\nAdd a rollback plan\n")
    assert "Card context:\nTitle: Ship v2" in user
    assert "Tags: release" in user
    assert "Current description:\nOld text" in user
    # Priority is only listed when supplied.
    assert "Priority" not in user


def test_blank_free_instruction_uses_legacy_mode():
    request = GenerationRequest(title="Ship v2", free_instruction="   ")
    assert build_prompt(request).user.startswith("Generate a description")


def test_interpolation_is_single_pass():
    result = interpolate_template(
        "{title} / {description}", {"title": "{description}", "description": "x"}
    )
    assert result == "{description} / x"


def test_interpolation_substitutes_repeated_placeholders():
    assert interpolate_template("{a}{a}{b}", {"a": "1"}) == "11"


def test_system_prompt_without_briefing():
    assert build_system_prompt("") == SYSTEM_PROMPT
    assert REFUSAL_SENTENCE in SYSTEM_PROMPT


def test_system_prompt_frames_briefing_as_context():
    prompt = build_system_prompt("Run `make dev` first. Product: invoicing.")

    assert prompt.startswith(SYSTEM_PROMPT)
    assert "Project context:\nRun `make dev` first. Product: invoicing." in prompt
    assert prompt.endswith(BRIEFING_CAVEAT)


def test_prompt_pair_as_messages_order():
    messages = build_prompt(
        GenerationRequest(title="t", project_briefing="brief")
    ).as_messages()

    assert [m.role for m in messages] == ["system", "user"]
    assert "brief" in messages[0].content


def test_is_refusal_case_insensitive_and_trimmed():
    assert is_refusal(f"  {REFUSAL_SENTENCE.upper()}  ")
    assert is_refusal("Sorry. Please provide a prompt related to the card.")
    assert not is_refusal("## Steps to reproduce\n1. Open login")


def test_prompt_source_labels():
    assert GenerationRequest(title="t").prompt_source == "[mode:auto]"
    assert (
        GenerationRequest(title="t", legacy_mode="improve").prompt_source
        == "[mode:improve]"
    )
    assert GenerationRequest(title="t", skill_id="s1").prompt_source == "[skill:s1]"
    assert (
        GenerationRequest(title="t", skill_id="s1", free_instruction=" why? ").prompt_source
        == "why?"
    )
