from __future__ import annotations

from tiangong_lca_upstream.core.config import Settings, _load_settings_overrides, _sanitize_api_key, limits_for


def test_limits_follow_the_recursion_mode():
    settings = Settings(max_depth=4, max_iterations=12)

    tree = limits_for(settings)
    queue = limits_for(settings, "queue")

    assert (tree.max_depth, tree.max_iterations) == (4, None)
    assert (queue.max_depth, queue.max_iterations) == (None, 12)


def test_profiles_shape_concurrency_and_sampling():
    assert Settings(workflow_profile="debug").profile.concurrency == 1
    assert Settings(workflow_profile="debug").profile.grading_samples == 1
    batch = Settings(workflow_profile="batch", max_retries=3, concurrency_limit=8).profile
    assert (batch.concurrency, batch.retry_attempts) == (8, 5)
    assert Settings(grading_samples=0).profile.grading_samples == 1


def test_secrets_file_overrides(tmp_path):
    secrets = tmp_path / "secrets.toml"
    secrets.write_text(
        "\n".join(
            [
                "[openai]",
                'api_key = "Bearer sk-test"',
                'model = "gpt-4.1-mini"',
                'timeout = "45"',
                "",
                "[lca]",
                'recursion_mode = "queue"',
                "max_iterations = 7",
                "unknown_field = 1",
            ]
        ),
        encoding="utf-8",
    )

    overrides = _load_settings_overrides(secrets)

    assert overrides == {
        "openai_api_key": "sk-test",
        "openai_model": "gpt-4.1-mini",
        "request_timeout": "45",
        "recursion_mode": "queue",
        "max_iterations": 7,
    }
    resolved = Settings(**overrides)
    assert (resolved.recursion_mode, resolved.request_timeout) == ("queue", 45.0)


def test_missing_secrets_file_gives_no_overrides(tmp_path):
    assert _load_settings_overrides(tmp_path / "absent.toml") == {}


def test_sanitize_api_key():
    assert _sanitize_api_key("  Bearer abc ") == "abc"
    assert _sanitize_api_key("abc") == "abc"
    assert _sanitize_api_key("") is None
    assert _sanitize_api_key(None) is None
