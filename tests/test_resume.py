from __future__ import annotations

from unittest.mock import patch

from applyflow.resume import TextResumeGenerator, _relevant_skills

from conftest import make_posting, make_profile


def test_relevant_skills_reorders_without_adding():
    profile = make_profile(skills=["Go", "Python", "Kubernetes"])
    posting = make_posting(description="Python on Kubernetes").snapshot()

    assert _relevant_skills(profile, posting) == ["Python", "Kubernetes", "Go"]


def test_template_summary_without_api_key():
    profile = make_profile(skills=["Python"])
    posting = make_posting(title="Data Engineer").snapshot()

    text = TextResumeGenerator(api_key="").generate(profile, posting).decode("utf-8")

    assert text.splitlines()[0] == "Jane Doe"
    assert "jane@example.com" in text
    assert "Data Engineer role at Acme" in text
    assert "SKILLS\nPython" in text


def test_llm_summary_is_used_when_available():
    profile = make_profile(skills=["Python"])
    posting = make_posting().snapshot()

    with patch("applyflow.resume._call_groq", return_value="Ships reliable Python services.") as call:
        text = TextResumeGenerator(api_key="k", model="m").generate(profile, posting).decode("utf-8")

    assert call.call_args.args[:2] == ("k", "m")
    assert "Ships reliable Python services." in text


def test_llm_failure_falls_back_to_template():
    profile = make_profile()
    posting = make_posting().snapshot()

    with patch("applyflow.resume._call_groq", side_effect=RuntimeError("rate limited")):
        text = TextResumeGenerator(api_key="k").generate(profile, posting).decode("utf-8")

    assert "Backend Engineer role at Acme" in text
