import logfire
import pytest

from scheduling_assistant.config import Config, get_config, get_env, get_env_list


@pytest.fixture
def fresh_config(monkeypatch, tmp_path):
    """Config singleton rebuilt from a controlled environment."""
    monkeypatch.setenv("LOG_FILE", str(tmp_path / "scheduling.log"))
    monkeypatch.setenv("DATABASE_URL", "sqlite:///:memory:")
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    Config.reset()
    yield
    Config.reset()


def test_get_env_strips_comments(monkeypatch):
    monkeypatch.setenv("SCHEDULER_TIMEZONE", "Europe/Berlin  # office zone")
    monkeypatch.setenv("EMPTY_VALUE", "# nothing here")

    assert get_env("SCHEDULER_TIMEZONE") == "Europe/Berlin"
    assert get_env("EMPTY_VALUE", "fallback") == "fallback"
    assert get_env("NOT_SET_ANYWHERE") is None


def test_get_env_list(monkeypatch):
    monkeypatch.setenv("PREFERRED_HOURS", "9, 11,15,")

    assert get_env_list("PREFERRED_HOURS", [10]) == [9, 11, 15]
    assert get_env_list("NOT_SET_ANYWHERE", [10]) == [10]


def test_defaults(fresh_config, monkeypatch):
    for key in (
        "SCHEDULER_TIMEZONE",
        "BUSINESS_START_HOUR",
        "BUSINESS_END_HOUR",
        "SEARCH_HORIZON_DAYS",
        "PREFERRED_HOURS",
        "SEARCH_TIMEOUT_SECONDS",
        "PROVIDER_CONCURRENCY",
    ):
        monkeypatch.delenv(key, raising=False)

    config = get_config()
    policy = config.search_policy()

    assert config.is_using_real_llm is False
    assert config.db.db_url == "sqlite:///:memory:"
    assert policy.timezone == "UTC"
    assert (policy.business_start_hour, policy.business_end_hour) == (9, 18)
    assert policy.horizon_days == 7
    assert policy.preferred_hours == [10, 14, 16]
    assert policy.search_timeout is None
    assert config.provider_concurrency is None


def test_search_policy_from_environment(fresh_config, monkeypatch):
    monkeypatch.setenv("SCHEDULER_TIMEZONE", "America/New_York")
    monkeypatch.setenv("BUSINESS_START_HOUR", "8")
    monkeypatch.setenv("BUSINESS_END_HOUR", "17")
    monkeypatch.setenv("SEARCH_HORIZON_DAYS", "14")
    monkeypatch.setenv("PREFERRED_HOURS", "9,13")
    monkeypatch.setenv("SEARCH_TIMEOUT_SECONDS", "2.5")
    monkeypatch.setenv("PROVIDER_CONCURRENCY", "4")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")

    config = get_config()
    policy = config.search_policy()

    assert config.is_using_real_llm is True
    assert config.provider_concurrency == 4
    assert policy.timezone == "America/New_York"
    assert (policy.business_start_hour, policy.business_end_hour) == (8, 17)
    assert policy.horizon_days == 14
    assert policy.preferred_hours == [9, 13]
    assert policy.search_timeout == 2.5


def test_config_is_a_singleton(fresh_config):
    assert get_config() is get_config()


def test_logfire_spans_work_during_tests():
    with logfire.span("test span", value=1):
        logfire.info("test_message_from_pytest", test_value="This is a test")
