import pytest

from coachflow.prompts.loader import fill, load_prompts, render_prompts


@pytest.mark.parametrize("component", ["extract_insights", "action_plan"])
def test_v1_prompts_have_system_and_user(component):
    prompts = load_prompts(component, "v1")
    assert prompts["system"]
    assert prompts["user"]


def test_render_fills_every_placeholder():
    system, user = render_prompts(
        "extract_insights",
        "v1",
        meeting_type="mentor_session",
        participants="Sarah, John",
        duration="12",
        transcript="Sarah: protect your mornings.",
    )
    assert "<<" not in system + user
    assert "Sarah: protect your mornings." in user

    system, user = render_prompts("action_plan", "v1", insights='{"advice_given": []}', user_context="{}")
    assert "<<" not in system + user


def test_fill_leaves_unknown_placeholders():
    assert fill("Hello <<NAME>> <<OTHER>>", name="Sarah") == "Hello Sarah <<OTHER>>"


def test_unknown_version_raises():
    with pytest.raises(FileNotFoundError):
        load_prompts("extract_insights", "v999")
