"""Tests for the Gemini analysis client and response parsing."""

import json
from unittest.mock import Mock, patch

import pytest
import requests

from magic_notes.config import GeminiConfig, UploadConfig
from magic_notes.errors import (
    ContentBlocked, EmptyResponse, InvalidMediaInput, MalformedResponse,
    NetworkUnavailable, ProcessingFailed, RemoteCallFailed, UploadFailed,
)
from magic_notes.gemini_client import (
    GeminiClient, extract_response_text, parse_analysis_response,
)
from magic_notes.models import MediaInput

ANALYSIS_JSON = {
    "summary": {
        "key_points": [{"point": "Orçamento aprovado", "timestamp": "00:01:00"}],
        "action_items": [
            {"action": "Enviar proposta", "responsible": "Ana", "timestamp": "00:05:00"}
        ],
    },
    "transcript": [
        {"speaker": "Locutor A", "text": "Bom dia", "timestamp": "00:00:01"}
    ],
}


def create_reply(text, block_reason=None):
    data = {"candidates": [{"content": {"parts": [{"text": text}]}}]}
    if block_reason:
        data["promptFeedback"] = {"blockReason": block_reason}
    return data


def create_response(status_code=200, json_data=None, text="", headers=None):
    response = Mock()
    response.status_code = status_code
    response.text = text or json.dumps(json_data or {})
    response.headers = headers or {}
    if json_data is None:
        response.json.side_effect = ValueError("No JSON")
    else:
        response.json.return_value = json_data
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.exceptions.HTTPError(f"{status_code} error")
    return response


class TestParseAnalysisResponse:
    """Test turning reply text into a FullAnalysis."""

    def test_plain_json(self):
        analysis = parse_analysis_response(json.dumps(ANALYSIS_JSON))

        assert analysis.summary.key_points[0].point == "Orçamento aprovado"
        assert analysis.summary.action_items[0].responsible == "Ana"
        assert analysis.transcript[0].speaker == "Locutor A"

    def test_fenced_json(self):
        text = "```json\n" + json.dumps(ANALYSIS_JSON) + "\n```"

        analysis = parse_analysis_response(text)

        assert analysis.summary.key_points[0].timestamp == "00:01:00"

    def test_fenced_and_plain_parse_identically(self):
        raw = json.dumps(ANALYSIS_JSON)

        assert parse_analysis_response(f"```json {raw} ```") == parse_analysis_response(raw)

    def test_empty_text(self):
        with pytest.raises(EmptyResponse):
            parse_analysis_response("")

    def test_whitespace_only_text(self):
        with pytest.raises(EmptyResponse):
            parse_analysis_response("   \n ")

    def test_empty_text_with_block_reason(self):
        with pytest.raises(ContentBlocked) as exc_info:
            parse_analysis_response("", block_reason="SAFETY")

        assert exc_info.value.reason == "SAFETY"
        assert "SAFETY" in exc_info.value.user_message

    def test_not_json_keeps_raw_text(self):
        with pytest.raises(MalformedResponse) as exc_info:
            parse_analysis_response("not json")

        assert exc_info.value.raw_text == "not json"
        assert exc_info.value.technical_details == "not json"

    def test_missing_required_fields(self):
        raw = json.dumps({"summary": {"key_points": []}})

        with pytest.raises(MalformedResponse) as exc_info:
            parse_analysis_response(raw)

        assert exc_info.value.raw_text == raw


class TestExtractResponseText:

    def test_joins_parts_and_skips_thoughts(self):
        data = {
            "candidates": [{
                "content": {"parts": [
                    {"text": "thinking...", "thought": True},
                    {"text": "{\"a\":"},
                    {"text": " 1}"},
                ]}
            }]
        }

        text, block_reason = extract_response_text(data)

        assert text == "{\"a\": 1}"
        assert block_reason is None

    def test_blocked_prompt_has_no_candidates(self):
        text, block_reason = extract_response_text({"promptFeedback": {"blockReason": "OTHER"}})

        assert text == ""
        assert block_reason == "OTHER"


class TestGeminiClient:
    """Test REST calls made by the client."""

    @pytest.fixture
    def client(self):
        config = GeminiConfig(api_key="test-key", base_url="https://gemini.test")
        upload_config = UploadConfig(poll_interval=0.0, max_poll_attempts=3)
        return GeminiClient(config, upload_config, is_online=lambda: True)

    @pytest.fixture
    def offline_client(self):
        return GeminiClient(GeminiConfig(api_key="test-key"), is_online=lambda: False)

    def test_generation_config_profiles(self, client):
        fast = client.generation_config(deep=False)
        deep = client.generation_config(deep=True)

        assert fast["responseMimeType"] == "application/json"
        assert "thinkingConfig" not in fast
        assert deep["thinkingConfig"] == {"thinkingBudget": 32768}
        assert client.model_for(False) == "gemini-2.5-flash"
        assert client.model_for(True) == "gemini-2.5-pro"

    @patch("magic_notes.gemini_client.requests.post")
    def test_analyze_inline_media(self, mock_post, client):
        mock_post.return_value = create_response(json_data=create_reply(json.dumps(ANALYSIS_JSON)))

        analysis = client.analyze(MediaInput(mime_type="audio/wav", data="AAAA"))

        assert analysis.summary.key_points[0].point == "Orçamento aprovado"
        args, kwargs = mock_post.call_args
        assert args[0] == "https://gemini.test/v1beta/models/gemini-2.5-flash:generateContent"
        assert kwargs["params"] == {"key": "test-key"}
        parts = kwargs["json"]["contents"][0]["parts"]
        assert parts[0] == {"inline_data": {"mime_type": "audio/wav", "data": "AAAA"}}

    @patch("magic_notes.gemini_client.requests.post")
    def test_analyze_prefers_uri(self, mock_post, client):
        mock_post.return_value = create_response(json_data=create_reply(json.dumps(ANALYSIS_JSON)))

        client.analyze(
            MediaInput(mime_type="video/mp4", data="AAAA", uri="https://files/abc"), deep=True
        )

        args, kwargs = mock_post.call_args
        assert "gemini-2.5-pro" in args[0]
        parts = kwargs["json"]["contents"][0]["parts"]
        assert parts[0] == {"file_data": {"mime_type": "video/mp4", "file_uri": "https://files/abc"}}
        assert "thinkingConfig" in kwargs["json"]["generationConfig"]

    @patch("magic_notes.gemini_client.requests.post")
    def test_analyze_without_media(self, mock_post, client):
        with pytest.raises(InvalidMediaInput):
            client.analyze(MediaInput(mime_type="audio/wav"))

        mock_post.assert_not_called()

    @patch("magic_notes.gemini_client.requests.post")
    def test_offline_fails_fast(self, mock_post, offline_client):
        with pytest.raises(NetworkUnavailable):
            offline_client.analyze(MediaInput(mime_type="audio/wav", data="AAAA"))

        mock_post.assert_not_called()

    @patch("magic_notes.gemini_client.requests.post")
    def test_blocked_reply(self, mock_post, client):
        mock_post.return_value = create_response(json_data=create_reply("", block_reason="SAFETY"))

        with pytest.raises(ContentBlocked):
            client.analyze(MediaInput(mime_type="audio/wav", data="AAAA"))

    @patch("magic_notes.gemini_client.requests.post")
    def test_http_error(self, mock_post, client):
        mock_post.return_value = create_response(
            status_code=400, json_data={"error": {"message": "API key not valid"}}
        )

        with pytest.raises(RemoteCallFailed) as exc_info:
            client.analyze(MediaInput(mime_type="audio/wav", data="AAAA"))

        assert "API key not valid" in exc_info.value.user_message

    @patch("magic_notes.gemini_client.requests.post")
    def test_connection_error(self, mock_post, client):
        mock_post.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(RemoteCallFailed):
            client.analyze(MediaInput(mime_type="audio/wav", data="AAAA"))

    @patch("magic_notes.gemini_client.requests.post")
    def test_timeout(self, mock_post, client):
        mock_post.side_effect = requests.exceptions.Timeout()

        with pytest.raises(RemoteCallFailed):
            client.analyze(MediaInput(mime_type="audio/wav", data="AAAA"))

    @patch("magic_notes.gemini_client.requests.post")
    def test_analyze_transcript(self, mock_post, client):
        mock_post.return_value = create_response(json_data=create_reply(json.dumps(ANALYSIS_JSON)))

        analysis = client.analyze_transcript("Ana: vamos aprovar o orçamento")

        assert analysis.transcript[0].text == "Bom dia"
        prompt = mock_post.call_args[1]["json"]["contents"][0]["parts"][0]["text"]
        assert "Ana: vamos aprovar o orçamento" in prompt

    @patch("magic_notes.gemini_client.requests.post")
    def test_analyze_empty_transcript(self, mock_post, client):
        with pytest.raises(InvalidMediaInput):
            client.analyze_transcript("  ")

        mock_post.assert_not_called()

    @patch("magic_notes.gemini_client.requests.get")
    def test_get_file(self, mock_get, client):
        mock_get.return_value = create_response(json_data={
            "name": "files/abc", "uri": "https://files/abc", "mimeType": "video/mp4",
            "state": "ACTIVE", "sizeBytes": "2048",
        })

        remote_file = client.get_file("files/abc")

        assert remote_file.is_active
        assert remote_file.size_bytes == 2048
        assert mock_get.call_args[0][0] == "https://gemini.test/v1beta/files/abc"

    @patch("magic_notes.gemini_client.requests.delete")
    def test_delete_file_swallows_errors(self, mock_delete, client):
        mock_delete.side_effect = requests.exceptions.ConnectionError("gone")

        client.delete_file("files/abc")

        mock_delete.assert_called_once()


class TestUpload:
    """Test the resumable upload flow."""

    @pytest.fixture
    def client(self):
        config = GeminiConfig(api_key="test-key", base_url="https://gemini.test")
        upload_config = UploadConfig(poll_interval=0.0, max_poll_attempts=3)
        return GeminiClient(config, upload_config, is_online=lambda: True)

    @pytest.fixture
    def media_file(self, tmp_path):
        path = tmp_path / "meeting.mp4"
        path.write_bytes(b"\x00" * 64)
        return str(path)

    @patch("magic_notes.gemini_client.requests.get")
    @patch("magic_notes.gemini_client.requests.post")
    def test_upload_and_wait(self, mock_post, mock_get, client, media_file):
        mock_post.side_effect = [
            create_response(json_data={}, headers={"X-Goog-Upload-URL": "https://upload.test/session"}),
            create_response(json_data={"file": {
                "name": "files/abc", "uri": "https://files/abc", "state": "PROCESSING",
            }}),
        ]
        mock_get.return_value = create_response(json_data={
            "name": "files/abc", "uri": "https://files/abc", "state": "ACTIVE",
        })

        remote_file = client.upload_file(media_file, "video/mp4")

        assert remote_file.is_active
        start_headers = mock_post.call_args_list[0][1]["headers"]
        assert start_headers["X-Goog-Upload-Command"] == "start"
        assert start_headers["X-Goog-Upload-Header-Content-Length"] == "64"
        assert mock_post.call_args_list[1][0][0] == "https://upload.test/session"

    @patch("magic_notes.gemini_client.requests.post")
    def test_missing_session_url(self, mock_post, client, media_file):
        mock_post.return_value = create_response(json_data={})

        with pytest.raises(UploadFailed):
            client.upload_file(media_file, "video/mp4")

    @patch("magic_notes.gemini_client.requests.post")
    def test_upload_http_error(self, mock_post, client, media_file):
        mock_post.return_value = create_response(status_code=500, json_data={})

        with pytest.raises(UploadFailed):
            client.upload_file(media_file, "video/mp4")

    @patch("magic_notes.gemini_client.requests.delete")
    @patch("magic_notes.gemini_client.requests.get")
    @patch("magic_notes.gemini_client.requests.post")
    def test_failed_processing_deletes_remote_file(self, mock_post, mock_get, mock_delete, client, media_file):
        mock_post.side_effect = [
            create_response(json_data={}, headers={"X-Goog-Upload-URL": "https://upload.test/session"}),
            create_response(json_data={"file": {"name": "files/abc", "state": "PROCESSING"}}),
        ]
        mock_get.return_value = create_response(json_data={"name": "files/abc", "state": "FAILED"})
        mock_delete.return_value = create_response(json_data={})

        with pytest.raises(ProcessingFailed):
            client.upload_file(media_file, "video/mp4")

        assert mock_delete.call_args[0][0] == "https://gemini.test/v1beta/files/abc"

    def test_upload_offline(self, media_file):
        client = GeminiClient(GeminiConfig(api_key="k"), is_online=lambda: False)

        with pytest.raises(NetworkUnavailable) as exc_info:
            client.upload_file(media_file, "video/mp4")

        assert "envio de arquivos" in exc_info.value.user_message
