from uuid import uuid4

import pytest

from chat_core.domain.exceptions import ValidationError
from chat_core.domain.models import ChatMessage, ConversationCursor, PromptTurn, is_valid_uuid4


def test_models_exist():
    msg = ChatMessage(role="user", text="hi")
    assert msg.role == "user"
    assert is_valid_uuid4(msg.id)
    assert msg.parent_message_id is None


def test_message_dict_roundtrip_skips_empty_fields():
    msg = ChatMessage(role="assistant", text="ok", id="m1", parent_message_id="m0")
    data = msg.to_dict()
    assert data == {"role": "assistant", "text": "ok", "id": "m1", "parent_message_id": "m0"}
    assert ChatMessage.from_dict(data) == msg


def test_prompt_turn_payload():
    assert PromptTurn(role="user", content="x").to_payload() == {"role": "user", "content": "x"}
    assert PromptTurn(role="user", content="x", name="bob").to_payload()["name"] == "bob"


def test_uuid4_check():
    assert is_valid_uuid4(str(uuid4()))
    assert not is_valid_uuid4("6ba7b810-9dad-11d1-80b4-00c04fd430c8")  # v1
    assert not is_valid_uuid4("")
    assert not is_valid_uuid4(None)


def test_cursor_requires_both_or_neither():
    ConversationCursor().validate()
    ConversationCursor(str(uuid4()), str(uuid4())).validate()
    with pytest.raises(ValidationError) as exc_info:
        ConversationCursor(conversation_id=str(uuid4())).validate()
    assert exc_info.value.code == "INVALID_CURSOR"
