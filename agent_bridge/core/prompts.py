"""System prompt addenda built from the host IDE's context."""

from __future__ import annotations

import os
from textwrap import dedent
from typing import Any, Dict, List, Optional

from agent_bridge.utils.log import get_logger

logger = get_logger()


def _agent_section(agent_prompt: str) -> str:
    return (
        "\n\n## Agent Role and Instructions\n\n"
        "You are acting as a specialized agent with the following role and instructions:\n\n"
        f"{agent_prompt.strip()}"
        "\n\n**IMPORTANT**: Follow the above role and instructions throughout this conversation.\n"
        "\n---\n"
    )


def _windows_path_section() -> str:
    return dedent(
        """

        ## CRITICAL: File Path Format Requirement

        **IMPORTANT**: File edits are only reliable with complete absolute Windows paths that include the drive letter and backslashes. Use that form for ALL file operations from now on.

        **Examples**:
        - Correct: `C:\\Users\\username\\project\\src\\file.js`
        - Wrong: `/c/Users/username/project/src/file.js`
        - Wrong: `./src/file.js` (relative paths)

        ---

        """
    )


def _selection_section(selection: Dict[str, Any]) -> str:
    return (
        f"**User has selected lines {selection.get('startLine')}-{selection.get('endLine')}** "
        "in this file. This selected code is what the user is specifically asking about:\n\n"
        f"```\n{selection.get('selectedText')}\n```\n\n"
        "**CRITICAL**: The selected code above is the PRIMARY FOCUS of the user's question.\n"
        '- When the user asks vague questions like "what\'s wrong with this", "explain this", '
        '"how to improve" -> They are referring to THIS SELECTED CODE\n'
        "- Your answer should directly address this specific code section\n"
        "- If you need to reference other parts of the file or other files, do so as supporting "
        "context, but keep the selected code as your main focus\n\n"
    )


NO_SELECTION_SECTION = (
    "**No code is currently selected.** The user is viewing this file, so their question likely "
    "relates to:\n"
    "- The overall file content and structure\n"
    "- A specific class, function, or component in this file (infer from the question)\n"
    "- Code patterns or issues within this file\n\n"
    "When answering, assume the user's question is about THIS FILE unless they explicitly "
    "mention another file.\n\n"
)

CONTEXT_HEADER = (
    "\n\n## User's Current IDE Context\n\n"
    "The user is working in an IDE. Below is their current workspace context, which provides "
    "critical information about what they are looking at and asking about:\n\n"
    "**Context Priority Rules**:\n"
    "1. If code is selected -> That specific code is the PRIMARY SUBJECT of the question\n"
    "2. If no code is selected -> The currently active file is the PRIMARY SUBJECT\n"
    "3. Other open files -> Secondary context that MAY be relevant to the question\n\n"
    "**File Path Format**: Paths may include line references: `#LX-Y` (lines X to Y) or `#LX` "
    "(single line X)\n\n"
    "---\n\n"
)

USAGE_GUIDE = (
    "---\n\n"
    "**How to use this context**:\n"
    '- If the user asks a vague question (e.g., "what does this do?", "is this correct?"), apply '
    "it to the PRIMARY FOCUS (selected code or active file)\n"
    '- If the user mentions "this file", "this code", "here" -> They mean the active file or '
    "selected code\n"
    "- If the user asks about relationships or dependencies -> Consider the other open files as "
    "potential references\n"
    "- Always prioritize the selected code > active file > other files when determining what the "
    "user is asking about\n\n"
)


def _others_section(others: List[Any]) -> str:
    lines = [
        "### Other Open Files (Secondary context)\n\n",
        "The user also has these files open in their IDE. These files:\n",
        "- MAY be related to the current question (e.g., dependencies, related modules, test files)\n",
        "- Should be considered as supporting context, NOT the primary subject\n",
        "- Can be referenced if they help answer the question about the active file/selected code\n\n",
    ]
    lines.extend(f"- `{path}`\n" for path in others)
    lines.append(
        "\n**Note**: Only reference these files if they are directly relevant to answering the "
        "user's question about the active file or selected code.\n\n"
    )
    return "".join(lines)


def build_ide_context_prompt(
    opened_files: Optional[Dict[str, Any]],
    agent_prompt: Optional[str] = None,
    windows: Optional[bool] = None,
) -> str:
    """Describe the agent role and the user's IDE state for ``systemPrompt.append``.

    ``opened_files`` carries ``active`` (path, optionally with ``#LX-Y``),
    ``selection`` (``startLine``/``endLine``/``selectedText``) and ``others``.
    The result may be an empty string.
    """
    prompt = ""
    if isinstance(agent_prompt, str) and agent_prompt.strip():
        logger.debug("[prompts] Adding agent prompt", extra={"chars": len(agent_prompt)})
        prompt += _agent_section(agent_prompt)

    if windows if windows is not None else os.name == "nt":
        prompt += _windows_path_section()

    if not isinstance(opened_files, dict):
        return prompt

    active = opened_files.get("active")
    selection = opened_files.get("selection")
    others = opened_files.get("others")
    has_active = isinstance(active, str) and bool(active.strip())
    has_selection = isinstance(selection, dict) and bool(selection.get("selectedText"))
    has_others = isinstance(others, list) and len(others) > 0
    if not has_active and not has_others:
        return prompt

    prompt += CONTEXT_HEADER
    if has_active:
        prompt += "### Currently Active File (User is viewing/editing this file)\n\n"
        prompt += f"**File**: `{active}`\n\n"
        prompt += _selection_section(selection) if has_selection else NO_SELECTION_SECTION
    if has_others:
        prompt += _others_section(others)
    prompt += USAGE_GUIDE
    return prompt


def build_quick_fix_prompt(opened_files: Dict[str, Any], message: str) -> str:
    """Narrow prompt for an inline quick fix on the current selection."""
    active = opened_files.get("active") or "(unknown file)"
    selection = opened_files.get("selection") or {}
    prompt = (
        "\n\n## Quick Fix Request\n\n"
        "The user triggered a quick fix from the editor. Apply a minimal, focused change that "
        "addresses the request below and do not modify unrelated code.\n\n"
        f"**File**: `{active}`\n"
    )
    selected = selection.get("selectedText") if isinstance(selection, dict) else None
    if selected:
        prompt += (
            f"**Lines**: {selection.get('startLine')}-{selection.get('endLine')}\n\n"
            f"```\n{selected}\n```\n"
        )
    prompt += f"\n**Request**: {message.strip()}\n"
    return prompt


__all__ = ["build_ide_context_prompt", "build_quick_fix_prompt"]
