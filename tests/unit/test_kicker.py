"""
Unit tests for the HTTP kicker (httpx MockTransport, no network).
"""

import json

import httpx
import pytest
from washpipe.pipeline.kicker import HttpKicker


def make_kicker(config, error_logger, handler):
    return HttpKicker(config, error_logger, transport=httpx.MockTransport(handler))


class TestKickPoll:
    """Tests for HttpKicker.kick_poll."""

    def test_posts_continuation(self, config, error_logger):
        config.pipeline_self_url = "https://pipe.example.com"
        seen = []

        def handler(request):
            seen.append((request.method, str(request.url), json.loads(request.content)))
            return httpx.Response(202, json={"ok": True})

        assert make_kicker(config, error_logger, handler).kick_poll("job-1", "cursor-2") is True
        assert seen == [(
            "POST",
            "https://pipe.example.com/poll",
            {"job_id": "job-1", "next_cursor": "cursor-2", "auto_continue": True},
        )]

    def test_unconfigured(self, config, error_logger):
        def handler(request):
            raise AssertionError("no request expected")

        assert make_kicker(config, error_logger, handler).kick_poll("job-1") is False

    def test_error_status(self, config, error_logger):
        config.pipeline_self_url = "https://pipe.example.com"
        kicker = make_kicker(config, error_logger, lambda r: httpx.Response(500))
        assert kicker.kick_poll("job-1") is False

    def test_timeout_counts_as_landed(self, config, error_logger):
        config.pipeline_self_url = "https://pipe.example.com"

        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        assert make_kicker(config, error_logger, handler).kick_poll("job-1") is True

    def test_connection_error_logged(self, config, error_logger, fake_supabase):
        config.pipeline_self_url = "https://pipe.example.com"

        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        assert make_kicker(config, error_logger, handler).kick_poll("job-1") is False
        assert fake_supabase.rows("error_logs")[-1]["stage"] == "kick"


class TestKickTaskJob:
    """Tests for HttpKicker.kick_task_job."""

    def test_posts_process_batch(self, config, error_logger):
        config.task_processor_base_url = "https://fn.example.com/functions/v1"
        seen = []

        def handler(request):
            seen.append((str(request.url), json.loads(request.content)))
            return httpx.Response(200)

        kicker = make_kicker(config, error_logger, handler)
        assert kicker.kick_task_job("photo_enrich", "photo-enrich", 42) is True
        assert seen == [(
            "https://fn.example.com/functions/v1/photo-enrich",
            {"action": "process_batch", "job_id": 42},
        )]

    def test_unconfigured(self, config, error_logger):
        kicker = make_kicker(config, error_logger, lambda r: httpx.Response(200))
        assert kicker.kick_task_job("photo_enrich", "photo-enrich", 42) is False
