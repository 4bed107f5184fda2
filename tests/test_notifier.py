"""
Tests for the notifier backends
"""
import json
from datetime import timedelta
from urllib.parse import parse_qs

import httpx
import pytest

from deadswitch.services.notifier import LogNotifier, MailgunNotifier, build_notifier, check_in_link

from conftest import make_settings


def _mailgun(handler):
    return MailgunNotifier(
        api_key="key-123",
        domain="mg.example.com",
        sender="noreply@example.com",
        check_in_base_url="https://app.example.com/",
        transport=httpx.MockTransport(handler),
    )


def _form(request: httpx.Request):
    return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


def test_check_in_link():
    assert check_in_link("https://app.example.com/", "tok") == "https://app.example.com?confirmation=tok"


@pytest.mark.asyncio
async def test_prompt_uses_template_and_variables():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"id": "<1@mg>", "message": "Queued"})

    ok = await _mailgun(handler).send_prompt(["owner@example.com"], "tok-1", timedelta(hours=24))

    assert ok is True
    request = seen[0]
    assert str(request.url) == "https://api.mailgun.net/v3/mg.example.com/messages"
    assert request.headers["authorization"].startswith("Basic ")
    form = _form(request)
    assert form["to"] == "owner@example.com"
    assert form["template"] == "check-in request"
    assert "cc" not in form
    assert json.loads(form["h:X-Mailgun-Variables"]) == {
        "CHECK_IN_LINK": "https://app.example.com?confirmation=tok-1",
        "TIME_TO_RESPOND": "1d",
    }


@pytest.mark.asyncio
async def test_content_goes_to_first_recipient_and_cc():
    seen = []

    def handler(request):
        seen.append(_form(request))
        return httpx.Response(200, json={})

    ok = await _mailgun(handler).send_content(["a@example.com", "b@example.com", "c@example.com"], "Bye", "<p>x</p>")

    assert ok is True
    assert seen[0]["to"] == "a@example.com"
    assert seen[0]["cc"] == "b@example.com,c@example.com"
    assert seen[0]["subject"] == "Bye"
    assert seen[0]["html"] == "<p>x</p>"


@pytest.mark.asyncio
async def test_rejected_send_returns_false():
    notifier = _mailgun(lambda request: httpx.Response(401, text="Forbidden"))
    assert await notifier.send_content(["a@example.com"], "s", "c") is False


@pytest.mark.asyncio
async def test_transport_error_returns_false():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    assert await _mailgun(handler).send_prompt(["a@example.com"], "t", timedelta(minutes=5)) is False


@pytest.mark.asyncio
async def test_log_notifier_always_succeeds():
    notifier = LogNotifier()
    assert await notifier.send_prompt(["a@example.com"], "t", timedelta(hours=1)) is True
    assert await notifier.send_content(["a@example.com"], "s", "c") is True


def test_build_notifier():
    assert isinstance(build_notifier(make_settings(notifier_backend="log")), LogNotifier)
    assert isinstance(build_notifier(make_settings(notifier_backend="carrier-pigeon")), LogNotifier)
    mailgun = build_notifier(
        make_settings(
            notifier_backend="mailgun",
            mailgun_api_key="k",
            mailgun_domain="mg.example.com",
            mailgun_sender="s@example.com",
        )
    )
    assert isinstance(mailgun, MailgunNotifier)
    with pytest.raises(RuntimeError):
        build_notifier(make_settings(notifier_backend="mailgun", mailgun_api_key=None))
