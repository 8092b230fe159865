"""
Tests for the applicant directory lookup and its reply formatting.
"""

import httpx
import pytest

from wabot import config
from wabot.bot_config import EMPTY_DIRECTORY_REPLY
from wabot.directory_service import capitalize, fetch_applicants, format_applicants, is_configured
from wabot.errors import CollaboratorError


@pytest.fixture
def directory_url(monkeypatch):
    monkeypatch.setattr(config, "DIRECTORY_URL", "http://directory.test/applicants")


def test_capitalize():
    assert capitalize("budi santoso") == "Budi Santoso"
    assert capitalize("McDonald o'neil") == "McDonald O'neil"


def test_format_applicants():
    assert format_applicants(["budi", "siti aminah"]) == "Applicants\n\n1. Budi\n2. Siti Aminah"
    assert format_applicants([]) == EMPTY_DIRECTORY_REPLY


def test_is_configured(monkeypatch):
    monkeypatch.setattr(config, "DIRECTORY_URL", "")
    assert is_configured() is False


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [
    ["budi", "siti"],
    {"applicants": [{"name": "budi"}, {"name": "siti"}]},
    [{"name": "budi"}, {"id": 3}, "  ", "siti"],
])
async def test_fetch_accepts_list_shapes(directory_url, body):
    transport = httpx.MockTransport(lambda r: httpx.Response(200, json=body))

    assert await fetch_applicants(transport=transport) == ["budi", "siti"]


@pytest.mark.asyncio
@pytest.mark.parametrize("response", [
    httpx.Response(503),
    httpx.Response(200, text="<html>"),
    httpx.Response(200, json={"unexpected": True}),
])
async def test_fetch_failures_raise(directory_url, response):
    with pytest.raises(CollaboratorError):
        await fetch_applicants(transport=httpx.MockTransport(lambda r: response))


@pytest.mark.asyncio
async def test_fetch_without_url(monkeypatch):
    monkeypatch.setattr(config, "DIRECTORY_URL", "")
    with pytest.raises(CollaboratorError):
        await fetch_applicants()
