"""Error hierarchy — envelopes and classification."""

from agentcore.core.domain_types import ErrorKind
from agentcore.core.errors import (
    AgentCoreError,
    CancellationRequested,
    ErrorContext,
    ErrorSeverity,
    FatalProviderError,
    PermissionDeniedError,
    ToolValidationError,
    TransientProviderError,
)
from agentcore.core.tool_types import ToolResult


def test_rest_envelope_carries_code_and_context():
    err = FatalProviderError(
        "invalid key", ErrorKind.AUTH, ErrorContext(session_id="s1", provider="anthropic"),
    )
    body = err.to_response()["error"]

    assert body["code"] == "PROVIDER_FATAL_ERROR"
    assert body["category"] == "external_api"
    assert body["severity"] == "critical"
    assert body["context"]["session_id"] == "s1"
    assert body["context"]["provider"] == "anthropic"
    assert "invalid key" in body["message"]


def test_sse_envelope_prefers_user_message():
    err = ToolValidationError(
        "bad field", context=ErrorContext(user_message="Please fix the input"),
    )
    event = err.to_sse_event()

    assert event["type"] == "error"
    assert event["data"]["message"] == "Please fix the input"
    assert event["data"]["recoverable"] is True


def test_transient_error_keeps_retry_after():
    err = TransientProviderError("slow down", ErrorKind.RATE_LIMIT, retry_after_ms=2500)
    assert err.retry_after_ms == 2500
    assert err.context.retry_after_ms == 2500
    assert err.severity == ErrorSeverity.WARNING


def test_tool_error_becomes_failed_tool_result():
    result = ToolResult.from_error(PermissionDeniedError("delete_file"))

    assert result.is_error
    assert result.error_code == "PERMISSION_DENIED"
    assert result.content["status"] == "error"
    assert "delete_file" in result.content_text()


def test_cancellation_is_not_an_agentcore_error():
    assert not issubclass(CancellationRequested, AgentCoreError)
