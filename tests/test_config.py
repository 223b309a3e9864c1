import pytest

from tgbus.config import (
    BotIdentity,
    BotRegistry,
    discover_bots,
    load_settings,
    normalize_bot_name,
)
from tgbus.errors import ConfigError


class TestDiscoverBots:
    def test_collects_and_lowercases_names(self) -> None:
        env = {
            "BOT_SUPPORT": "111:aaa",
            "BOT_Alerts": "222:bbb",
            "NATS_URL": "nats://x:4222",
        }

        bots = discover_bots(env)

        assert bots == (
            BotIdentity(name="alerts", token="222:bbb"),
            BotIdentity(name="support", token="111:aaa"),
        )

    def test_skips_empty_tokens(self) -> None:
        bots = discover_bots({"BOT_A": "111:aaa", "BOT_B": "  "})
        assert [bot.name for bot in bots] == ["a"]

    def test_no_bots_raises(self) -> None:
        with pytest.raises(ConfigError, match="No bots configured"):
            discover_bots({"NATS_URL": "nats://x"})

    def test_colliding_keys_are_rejected(self) -> None:
        with pytest.raises(ConfigError, match="configured twice"):
            discover_bots({"BOT_Foo": "111:aaa", "BOT_FOO": "222:bbb"})

    def test_name_must_be_subject_token(self) -> None:
        with pytest.raises(ConfigError, match="Invalid bot name"):
            discover_bots({"BOT_my.bot": "111:aaa"})

    def test_empty_name_is_rejected(self) -> None:
        with pytest.raises(ConfigError, match="Invalid bot name"):
            discover_bots({"BOT_": "111:aaa"})


@pytest.mark.parametrize("raw", ["Support", "SUPPORT", " support ", "my_Bot-2"])
def test_normalize_bot_name_is_idempotent(raw: str) -> None:
    once = normalize_bot_name(raw)
    assert normalize_bot_name(once) == once
    assert once == once.lower()


def test_identity_repr_hides_token() -> None:
    bot = BotIdentity(name="support", token="123456:SECRETsecretSECRET")
    assert "SECRET" not in repr(bot)


class TestBotRegistry:
    def test_lookup_and_order(self) -> None:
        registry = BotRegistry.from_env({"BOT_B": "2:b", "BOT_A": "1:a"})

        assert registry.names == ("a", "b")
        assert len(registry) == 2
        assert "a" in registry
        assert registry.get("b") == BotIdentity(name="b", token="2:b")
        assert registry.get("missing") is None
        assert [bot.name for bot in registry] == ["a", "b"]

    def test_duplicate_identities_rejected(self) -> None:
        with pytest.raises(ConfigError):
            BotRegistry([BotIdentity("a", "1:a"), BotIdentity("a", "2:a")])

    def test_repr_lists_names_only(self) -> None:
        registry = BotRegistry([BotIdentity("a", "1:topsecret")])
        assert "topsecret" not in repr(registry)


class TestLoadSettings:
    def test_defaults_to_poll(self) -> None:
        settings = load_settings({})

        assert settings.mode == "poll"
        assert settings.nats_url == "nats://localhost:4222"
        assert settings.port == 8080
        assert settings.subject_prefix == "telegram"
        assert settings.poll_timeout_s == 30
        assert settings.poll_backoff_s == 3.0
        assert settings.webhook_secret is None

    def test_base_url_selects_webhook_and_is_trimmed(self) -> None:
        settings = load_settings({"WEBHOOK_BASE_URL": "https://example.com/tg/"})

        assert settings.mode == "webhook"
        assert settings.webhook_base_url == "https://example.com/tg"

    def test_webhook_mode_requires_base_url(self) -> None:
        with pytest.raises(ConfigError, match="WEBHOOK_BASE_URL"):
            load_settings({"GATEWAY_MODE": "webhook"})

    def test_mode_override_wins(self) -> None:
        settings = load_settings(
            {"WEBHOOK_BASE_URL": "https://example.com", "GATEWAY_MODE": "webhook"},
            mode="poll",
        )
        assert settings.mode == "poll"

    def test_unknown_mode_rejected(self) -> None:
        with pytest.raises(ConfigError, match="GATEWAY_MODE"):
            load_settings({"GATEWAY_MODE": "push"})

    def test_numbers_are_parsed(self) -> None:
        settings = load_settings(
            {"PORT": "9090", "POLL_TIMEOUT": "50", "POLL_BACKOFF": "1.5"}
        )
        assert settings.port == 9090
        assert settings.poll_timeout_s == 50
        assert settings.poll_backoff_s == 1.5

    def test_invalid_port_names_variable(self) -> None:
        with pytest.raises(ConfigError, match="PORT"):
            load_settings({"PORT": "http"})

    def test_prefix_with_wildcard_rejected(self) -> None:
        with pytest.raises(ConfigError, match="SUBJECT_PREFIX"):
            load_settings({"SUBJECT_PREFIX": "tg.*"})

    def test_blank_secret_is_none(self) -> None:
        settings = load_settings({"WEBHOOK_SECRET": "   "})
        assert settings.webhook_secret is None
