from __future__ import annotations

import json
from pathlib import Path

import pytest

from agent_bridge.core.attachments import build_content_blocks, load_attachments


def test_load_attachments_from_payload() -> None:
    items = [{"fileName": "a.png", "mediaType": "image/png", "data": "AAA"}]
    assert load_attachments(items) == items
    assert load_attachments({"attachments": items, "message": "hi"}) == items


def test_load_attachments_from_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = tmp_path / "attachments.json"
    path.write_text(json.dumps([{"fileName": "notes.txt"}]), encoding="utf-8")
    monkeypatch.setenv("CLAUDE_ATTACHMENTS_FILE", str(path))

    assert load_attachments(None) == [{"fileName": "notes.txt"}]


def test_load_attachments_bad_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = tmp_path / "broken.json"
    path.write_text("{", encoding="utf-8")
    monkeypatch.setenv("CLAUDE_ATTACHMENTS_FILE", str(path))
    assert load_attachments({}) == []


def test_build_content_blocks_images_and_files() -> None:
    blocks = build_content_blocks(
        [
            {"fileName": "shot.png", "mediaType": "image/png", "data": "iVBOR"},
            {"fileName": "report.pdf", "mediaType": "application/pdf", "data": "JVBER"},
        ],
        "what is this?",
    )
    assert blocks == [
        {
            "type": "image",
            "source": {"type": "base64", "media_type": "image/png", "data": "iVBOR"},
        },
        {"type": "text", "text": "[Attachment: report.pdf]"},
        {"type": "text", "text": "what is this?"},
    ]


def test_build_content_blocks_placeholder_text() -> None:
    image = {"mediaType": "image/jpeg", "data": "x"}
    assert build_content_blocks([image, image], "")[-1]["text"] == "[Uploaded 2 image(s)]"
    assert build_content_blocks([{"fileName": "a.txt"}], "  ")[-1]["text"] == "[Uploaded attachment(s)]"
    assert build_content_blocks([], None) == [{"type": "text", "text": "[Empty message]"}]
    assert build_content_blocks([{}], "")[0] == {"type": "text", "text": "[Attachment: Attachment]"}
