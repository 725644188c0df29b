from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from openai import APIConnectionError

from synthesis.agent.content_schema import FEAT
from synthesis.agent.errors import GenerativeServiceError
from synthesis.agent.llm_client import CallOptions, LLMClient, get_message_text


def _mock_client(create: AsyncMock) -> AsyncMock:
    mock_completions = MagicMock()
    mock_completions.create = create

    mock_chat = MagicMock()
    mock_chat.completions = mock_completions

    mock_client_instance = AsyncMock()
    mock_client_instance.chat = mock_chat
    return mock_client_instance


@pytest.mark.asyncio
async def test_call_forwards_tool_contract_and_returns_dict():
    # Mock response object mapping the OpenAI SDK's pydantic response
    mock_response = MagicMock()
    mock_response.choices = [MagicMock()]
    mock_response.model_dump.return_value = {"choices": [{"message": {"content": "hi"}}]}
    create = AsyncMock(return_value=mock_response)

    with patch("synthesis.agent.llm_client.AsyncOpenAI", return_value=_mock_client(create)):
        client = LLMClient(model_name="test-model", api_key="dummy_key")

        result = await client.call(
            [{"role": "user", "content": "Make a feat"}],
            CallOptions(tool=FEAT.tool_definition(), tool_choice=FEAT.tool_choice(), temperature=0.5),
        )

    assert result == {"choices": [{"message": {"content": "hi"}}]}
    kwargs = create.call_args.kwargs
    assert kwargs["model"] == "test-model"
    assert kwargs["tools"][0]["function"]["name"] == "generate_feat"
    assert kwargs["tool_choice"] == {"type": "function", "function": {"name": "generate_feat"}}
    assert kwargs["temperature"] == 0.5


@pytest.mark.asyncio
async def test_call_uses_per_stage_model_and_skips_temperature_for_gpt5():
    mock_response = MagicMock()
    mock_response.choices = []
    mock_response.model_dump.return_value = {"choices": []}
    create = AsyncMock(return_value=mock_response)

    with patch("synthesis.agent.llm_client.AsyncOpenAI", return_value=_mock_client(create)):
        client = LLMClient(model_name="test-model", api_key="dummy_key")
        await client.call([{"role": "user", "content": "x"}], CallOptions(model="gpt-5-mini", temperature=0.9))

    kwargs = create.call_args.kwargs
    assert kwargs["model"] == "gpt-5-mini"
    assert "temperature" not in kwargs
    assert "tools" not in kwargs


@pytest.mark.asyncio
async def test_call_wraps_provider_errors():
    create = AsyncMock(side_effect=APIConnectionError(request=MagicMock()))

    with patch("synthesis.agent.llm_client.AsyncOpenAI", return_value=_mock_client(create)):
        client = LLMClient(model_name="test-model", api_key="dummy_key")
        with pytest.raises(GenerativeServiceError):
            await client.call([{"role": "user", "content": "x"}])


def test_get_message_text_handles_common_shapes():
    assert get_message_text({"choices": [{"message": {"content": "plain"}}]}) == "plain"
    assert get_message_text(
        {"choices": [{"message": {"content": [{"type": "text", "text": "a"}, {"type": "text", "text": "b"}]}}]}
    ) == "ab"
    assert get_message_text({"choices": []}) == ""
    assert get_message_text("raw") == "raw"
