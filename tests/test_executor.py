"""
Unit tests for src/api_client/executor.py and the vendor endpoint wrappers.

Covers request construction (headers, api-version, body serialization),
ApiResult shaping for 2xx / non-2xx / transport exhaustion, and the
vendor error-body parsing rules:
  {"error": {"code": "X", "message": "Y"}} → "X: Y"
  {"message": "Y"}                         → "Y"
  anything else                            → raw text
"""

from __future__ import annotations

import json
from unittest.mock import patch

import pytest
import requests

from src.api_client.errors import ExhaustedRetries, PermanentApiError
from src.api_client.executor import (
    ApiResult,
    build_endpoint_url,
    build_request,
    build_request_headers,
    invoke_api,
)
from src.api_client.translations import (
    IterationRequest,
    TranslationRequest,
    create_iteration,
    create_translation,
    delete_translation,
    get_operation,
    list_iterations,
    list_translations,
)

from .conftest import TEST_KEY, make_response


# ---------------------------------------------------------------------------
# Class: request construction
# ---------------------------------------------------------------------------

class TestBuildRequest:

    def test_headers_carry_key_and_content_type(self, service_config):
        headers = build_request_headers(service_config)
        assert headers == {
            "Ocp-Apim-Subscription-Key": TEST_KEY,
            "Content-Type": "application/json",
        }

    def test_operation_id_header_only_when_given(self, service_config):
        headers = build_request_headers(service_config, operation_id="op-42")
        assert headers["Operation-Id"] == "op-42"

    def test_relative_path_joined_to_base_url(self, service_config):
        url = build_endpoint_url(service_config, "/translations/t1")
        assert url == "https://eastus.api.cognitive.microsoft.com/videotranslation/translations/t1"

    def test_absolute_url_unchanged(self, service_config):
        link = "https://other.example/videotranslation/translations?skip=10"
        assert build_endpoint_url(service_config, link) == link

    def test_api_version_always_in_query(self, service_config):
        request = build_request(service_config, "get", "translations")
        assert request.method == "GET"
        assert request.params == {"api-version": "2024-05-20-preview"}

    def test_none_params_dropped_and_values_stringified(self, service_config):
        request = build_request(
            service_config, "GET", "translations", params={"top": 5, "skip": None}
        )
        assert request.params == {"api-version": "2024-05-20-preview", "top": "5"}

    def test_next_link_keeps_its_own_query(self, service_config):
        link = "https://eastus.api.cognitive.microsoft.com/videotranslation/translations?api-version=x&skip=2"
        request = build_request(service_config, "GET", link)
        assert request.params == {}

    def test_body_serialized_as_json_text(self, service_config):
        request = build_request(service_config, "PUT", "translations/t1", body={"input": {"a": 1}})
        assert json.loads(request.body) == {"input": {"a": 1}}

    def test_no_body_for_get(self, service_config):
        assert build_request(service_config, "GET", "translations/t1").body is None


# ---------------------------------------------------------------------------
# Class: result shaping
# ---------------------------------------------------------------------------

class TestInvokeApi:

    def _invoke(self, config, response_or_effect, **kwargs):
        target = "src.api_client.retry.requests.request"
        if isinstance(response_or_effect, requests.Response):
            with patch(target, return_value=response_or_effect) as mock_request:
                return invoke_api(config, "GET", "translations/t1", **kwargs), mock_request
        with patch(target, side_effect=response_or_effect) as mock_request:
            return invoke_api(config, "GET", "translations/t1", sleep=lambda s: None, **kwargs), mock_request

    def test_success_returns_payload(self, service_config):
        result, _ = self._invoke(service_config, make_response(200, {"id": "t1", "status": "Succeeded"}))
        assert result.ok
        assert result.status_code == 200
        assert result.payload == {"id": "t1", "status": "Succeeded"}
        assert result.error is None

    def test_empty_success_body_is_empty_payload(self, service_config):
        result, _ = self._invoke(service_config, make_response(204))
        assert result.ok
        assert result.payload == {}

    def test_structured_vendor_error(self, service_config):
        body = {"error": {"code": "X", "message": "Y"}}
        result, _ = self._invoke(service_config, make_response(400, body))
        assert not result.ok
        assert result.error == "X: Y"
        assert result.error_code == "X"
        assert result.status_code == 400

    def test_flat_message_error(self, service_config):
        result, _ = self._invoke(service_config, make_response(404, {"message": "Y"}))
        assert result.error == "Y"
        assert result.error_code is None

    def test_unparseable_error_body_returned_verbatim(self, service_config):
        raw = "<html>Bad Gateway from proxy</html>"
        result, _ = self._invoke(service_config, make_response(403, text=raw))
        assert result.error == raw

    def test_json_without_known_fields_returned_verbatim(self, service_config):
        raw = '{"detail": "nope"}'
        result, _ = self._invoke(service_config, make_response(409, text=raw))
        assert result.error == raw

    def test_empty_error_body_falls_back_to_status(self, service_config):
        result, _ = self._invoke(service_config, make_response(401))
        assert result.error == "HTTP 401"

    def test_invalid_json_on_success_is_failure(self, service_config):
        result, _ = self._invoke(service_config, make_response(200, text="not json"))
        assert not result.ok
        assert "Invalid JSON" in result.error

    def test_exhausted_retries_become_failure(self, retrying_config):
        responses = [make_response(503) for _ in range(4)]
        result, mock_request = self._invoke(retrying_config, responses)

        assert not result.ok
        assert result.status_code == 503
        assert "Gave up after 4 attempts" in result.error
        assert mock_request.call_count == 4

    def test_exhausted_result_keeps_error_type(self, service_config):
        result, _ = self._invoke(service_config, [make_response(429)])

        error = result.to_error()
        assert isinstance(error, ExhaustedRetries)
        assert error.attempts == 1
        assert error.status_code == 429
        assert error.message == result.error

    def test_unsendable_request_keeps_error_type(self, service_config):
        result, _ = self._invoke(service_config, [requests.exceptions.InvalidURL("bad url")])

        assert isinstance(result.to_error(), PermanentApiError)
        assert "bad url" in result.error

    def test_connection_failure_never_raises(self, service_config):
        result, _ = self._invoke(service_config, [requests.ConnectionError("refused")])
        assert not result.ok
        assert result.status_code is None
        assert "refused" in result.error

    def test_subscription_key_sent(self, service_config):
        _, mock_request = self._invoke(service_config, make_response(200, {}))
        assert mock_request.call_args.kwargs["headers"]["Ocp-Apim-Subscription-Key"] == TEST_KEY


class TestApiResult:

    def test_failure_to_error(self):
        error = ApiResult.failure("X: Y", 400, "X").to_error()
        assert isinstance(error, PermanentApiError)
        assert error.message == "X: Y"
        assert error.status_code == 400
        assert error.error_code == "X"

    def test_results_are_immutable(self):
        result = ApiResult.success({"a": 1}, 200)
        with pytest.raises(AttributeError):
            result.ok = False


# ---------------------------------------------------------------------------
# Class: endpoint wrappers
# ---------------------------------------------------------------------------

class TestSubmissions:

    def test_translation_body_and_handle(self, service_config):
        request = TranslationRequest(
            video_file_url="https://storage.example/in.mp4",
            source_locale="en-US",
            target_locale="es-ES",
            speaker_count=2,
            display_name="demo",
        )
        with patch("src.api_client.retry.requests.request", return_value=make_response(201, {"id": "t1"})) as mock_request:
            result, handle = create_translation(service_config, "t1", request, operation_id="op-1")

        assert result.ok
        assert handle.operation_id == "op-1"
        assert handle.config is service_config

        kwargs = mock_request.call_args.kwargs
        assert kwargs["headers"]["Operation-Id"] == "op-1"
        body = json.loads(kwargs["data"])
        assert body == {
            "displayName": "demo",
            "input": {
                "sourceLocale": "en-US",
                "targetLocale": "es-ES",
                "voiceKind": "PlatformVoice",
                "videoFileUrl": "https://storage.example/in.mp4",
                "speakerCount": 2,
            },
        }

    def test_failed_submission_has_no_handle(self, service_config):
        body = {"error": {"code": "InvalidArgument", "message": "Bad locale"}}
        with patch("src.api_client.retry.requests.request", return_value=make_response(400, body)):
            result, handle = create_translation(
                service_config, "t1",
                TranslationRequest("https://v", "xx-XX", "es-ES"),
            )

        assert not result.ok
        assert handle is None
        assert result.error == "InvalidArgument: Bad locale"

    def test_operation_id_generated_when_omitted(self, service_config):
        with patch("src.api_client.retry.requests.request", return_value=make_response(201, {})) as mock_request:
            _, handle = create_iteration(service_config, "t1", "i1", IterationRequest())

        assert handle.operation_id
        assert mock_request.call_args.kwargs["headers"]["Operation-Id"] == handle.operation_id
        assert mock_request.call_args.args[1].endswith("/translations/t1/iterations/i1")

    def test_iteration_webvtt_body(self):
        body = IterationRequest(
            webvtt_file_url="https://storage.example/edited.vtt",
            webvtt_file_kind="SourceLocaleSubtitle",
            subtitle_max_char_count_per_segment=40,
        ).to_body()
        assert body == {
            "input": {
                "subtitleMaxCharCountPerSegment": 40,
                "webvttFile": {
                    "url": "https://storage.example/edited.vtt",
                    "kind": "SourceLocaleSubtitle",
                },
            },
        }

    def test_invalid_voice_kind_rejected(self):
        with pytest.raises(ValueError, match="voice_kind"):
            TranslationRequest("https://v", "en-US", "es-ES", voice_kind="RobotVoice")

    def test_invalid_webvtt_kind_rejected(self):
        with pytest.raises(ValueError, match="webvtt_file_kind"):
            IterationRequest(webvtt_file_kind="Subtitles")

    def test_ids_are_url_encoded(self, service_config):
        with patch("src.api_client.retry.requests.request", return_value=make_response(201, {})) as mock_request:
            create_iteration(service_config, "my job", "it/1", IterationRequest())
        assert mock_request.call_args.args[1].endswith("/translations/my%20job/iterations/it%2F1")


class TestListTranslations:

    def test_follows_next_link(self, service_config):
        pages = [
            make_response(200, {"value": [{"id": "a"}], "nextLink": "https://eastus.api.cognitive.microsoft.com/videotranslation/translations?api-version=v&skip=1"}),
            make_response(200, {"value": [{"id": "b"}]}),
        ]
        with patch("src.api_client.retry.requests.request", side_effect=pages) as mock_request:
            result = list_translations(service_config, top=5)

        assert result.ok
        assert [t["id"] for t in result.payload["value"]] == ["a", "b"]
        first_params = mock_request.call_args_list[0].kwargs["params"]
        assert first_params["top"] == "5"
        assert mock_request.call_args_list[1].kwargs["params"] is None

    def test_single_page_when_not_following(self, service_config):
        page = make_response(200, {"value": [{"id": "a"}], "nextLink": "https://x/videotranslation/translations?skip=1"})
        with patch("src.api_client.retry.requests.request", return_value=page) as mock_request:
            result = list_translations(service_config, follow_next_link=False)

        assert [t["id"] for t in result.payload["value"]] == ["a"]
        assert mock_request.call_count == 1

    def test_failing_page_fails_listing(self, service_config):
        pages = [
            make_response(200, {"value": [{"id": "a"}], "nextLink": "https://x/videotranslation/translations?skip=1"}),
            make_response(403, {"message": "Forbidden"}),
        ]
        with patch("src.api_client.retry.requests.request", side_effect=pages):
            result = list_translations(service_config)

        assert not result.ok
        assert result.error == "Forbidden"


class TestOtherEndpoints:

    def test_delete_translation(self, service_config):
        with patch("src.api_client.retry.requests.request", return_value=make_response(204)) as mock_request:
            result = delete_translation(service_config, "t1")

        assert result.ok
        assert result.payload == {}
        assert mock_request.call_args.args == ("DELETE", f"{service_config.base_url}/translations/t1")

    def test_list_iterations(self, service_config):
        page = make_response(200, {"value": [{"id": "i1"}, {"id": "i2"}]})
        with patch("src.api_client.retry.requests.request", return_value=page) as mock_request:
            result = list_iterations(service_config, "t1")

        assert [i["id"] for i in result.payload["value"]] == ["i1", "i2"]
        assert mock_request.call_args.args[1].endswith("/translations/t1/iterations")

    def test_get_operation(self, service_config):
        with patch("src.api_client.retry.requests.request", return_value=make_response(200, {"status": "Running"})) as mock_request:
            result = get_operation(service_config, "op-1")

        assert result.payload["status"] == "Running"
        assert mock_request.call_args.args[1].endswith("/operations/op-1")
