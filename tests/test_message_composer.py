# tests/test_message_composer.py
import pytest

from app.schemas.ai import ChatMessage
from app.services.openrouter import MessageComposer, OpenRouterValidationError


class TestNormalizeMessages:

    def test_empty_list_rejected(self):
        with pytest.raises(OpenRouterValidationError):
            MessageComposer.normalize_messages([])

    def test_accepts_models_and_mappings(self):
        messages = MessageComposer.normalize_messages([
            ChatMessage(role="system", content="Be brief"),
            {"role": "user", "content": "Hi", "name": "alice", "extra": "dropped"},
        ])

        assert [m.role for m in messages] == ["system", "user"]
        assert messages[1].name == "alice"
        assert messages[1].model_dump(exclude_none=True) == {"role": "user", "content": "Hi", "name": "alice"}

    @pytest.mark.parametrize("message", [
        {"content": "no role"},
        {"role": "user"},
        {"role": "user", "content": ""},
    ])
    def test_missing_fields_rejected(self, message):
        with pytest.raises(OpenRouterValidationError) as exc_info:
            MessageComposer.normalize_messages([message])
        assert exc_info.value.context["index"] == 0

    def test_unknown_role_rejected(self):
        with pytest.raises(OpenRouterValidationError):
            MessageComposer.normalize_messages([{"role": "robot", "content": "beep"}])

    def test_invalid_utf8_rejected(self):
        with pytest.raises(OpenRouterValidationError):
            MessageComposer.normalize_messages([{"role": "user", "content": "broken \ud800 text"}])

    def test_unicode_content_preserved(self):
        messages = MessageComposer.normalize_messages([{"role": "user", "content": "你好 ¿qué tal? 👋"}])
        assert messages[0].content == "你好 ¿qué tal? 👋"


class TestComposeWithSystem:

    def test_prepends_system_message(self):
        messages = MessageComposer.compose_with_system(
            [{"role": "user", "content": "Hi"}], system_message="You are helpful"
        )
        assert [m.role for m in messages] == ["system", "user"]
        assert messages[0].content == "You are helpful"

    def test_without_system_message(self):
        messages = MessageComposer.compose_with_system([{"role": "user", "content": "Hi"}])
        assert [m.role for m in messages] == ["user"]


class TestTokenEstimate:

    def test_empty_list_is_zero(self):
        assert MessageComposer.estimate_token_count([]) == 0

    def test_rounds_up(self):
        # (1 + 40) / 4 -> 11
        assert MessageComposer.estimate_token_count([MessageComposer.create_user_message("a")]) == 11

    def test_monotonic_in_content_length(self):
        previous = 0
        for length in range(0, 200, 7):
            message = ChatMessage(role="user", content="x" * max(length, 1))
            estimate = MessageComposer.estimate_token_count([message])
            assert estimate >= previous
            previous = estimate

    def test_monotonic_in_message_count(self):
        messages = [MessageComposer.create_user_message("hello") for _ in range(5)]
        estimates = [MessageComposer.estimate_token_count(messages[:n]) for n in range(6)]
        assert estimates == sorted(estimates)


class TestTruncate:

    def _conversation(self):
        return [
            MessageComposer.create_system_message("rules"),
            MessageComposer.create_user_message("first " * 40),
            MessageComposer.create_assistant_message("second " * 40),
            MessageComposer.create_user_message("latest"),
        ]

    def test_keeps_everything_when_under_limit(self):
        messages = self._conversation()
        assert MessageComposer.truncate_to_token_limit(messages, 10_000) == messages

    def test_drops_oldest_non_system_first(self):
        messages = self._conversation()
        limit = MessageComposer.estimate_token_count([messages[0], messages[3]]) + 5

        truncated = MessageComposer.truncate_to_token_limit(messages, limit)

        assert [m.content for m in truncated] == ["rules", "latest"]

    def test_system_messages_always_kept(self):
        messages = self._conversation()
        truncated = MessageComposer.truncate_to_token_limit(messages, 0)
        assert [m.role for m in truncated] == ["system"]

    def test_stops_at_first_message_that_does_not_fit(self):
        messages = [
            MessageComposer.create_user_message("old"),
            MessageComposer.create_user_message("huge " * 200),
            MessageComposer.create_user_message("new"),
        ]
        limit = MessageComposer.estimate_token_count([messages[0], messages[2]])

        truncated = MessageComposer.truncate_to_token_limit(messages, limit)

        assert [m.content for m in truncated] == ["new"]


def test_factory_helpers():
    assert MessageComposer.create_user_message("u").role == "user"
    assert MessageComposer.create_system_message("s").role == "system"
    assert MessageComposer.create_assistant_message("a").role == "assistant"
