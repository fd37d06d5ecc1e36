"""
Synthetic Documents
===================

Documents built straight from stored data rather than by the model:
CONVERSATION.md (the transcript) and MODEL_HANDOFF.md (target-specific
instructions). They are never validated or retried.
"""

from typing import Dict, Sequence

from core.schemas import ForgeTarget, Message, QualityReport, Session

ROLE_LABELS = {"user": "User", "assistant": "PlanForge"}

TARGET_NAMES: Dict[str, str] = {
    ForgeTarget.CLAUDE.value: "Claude Code",
    ForgeTarget.CODEX.value: "OpenAI Codex",
    ForgeTarget.CURSOR.value: "Cursor Agent",
    ForgeTarget.GEMINI.value: "Gemini CLI/Agent",
    ForgeTarget.GENERIC.value: "Any Coding Model",
}

TARGET_HEADERS: Dict[str, str] = {
    ForgeTarget.CLAUDE.value:
        "Use `PROMPTS.md` phases directly in Claude Code, keeping checks after each phase.",
    ForgeTarget.CODEX.value:
        "Ask Codex to execute one phase at a time from `PROMPTS.md`, always running "
        "verification commands before moving to the next phase.",
    ForgeTarget.CURSOR.value:
        "Use Cursor Agent with one phase at a time, then apply and verify before continuing.",
    ForgeTarget.GEMINI.value:
        "Use Gemini with explicit phase boundaries and require command output summaries after each phase.",
    ForgeTarget.GENERIC.value:
        "Use any coding model by enforcing phase-by-phase execution from `PROMPTS.md` "
        "with validation gates between phases.",
}


def format_conversation_for_prompt(messages: Sequence[Message]) -> str:
    """Transcript as ``Label: content`` blocks; system messages are dropped."""
    parts = []
    for message in messages:
        if message.role == "system":
            continue
        label = ROLE_LABELS.get(message.role, "Unknown")
        parts.append(f"{label}: {message.content}\n\n")
    return "".join(parts)


def generate_conversation_md(session: Session, messages: Sequence[Message]) -> str:
    lines = [
        f"# {session.name} - Planning Conversation\n\n"
        "This is the complete planning conversation that generated these documents.\n"
        "Kept for reference, so you can revisit why decisions were made.\n\n"
        "---\n\n"
        f"**Session started**: {session.created_at}\n\n"
        "---\n\n"
    ]
    for message in messages:
        if message.role == "system":
            continue
        label = ROLE_LABELS.get(message.role, "Unknown")
        lines.append(f"**{label}**: {message.content}\n\n")

        query = (message.metadata or {}).get("search_query")
        if isinstance(query, str) and query:
            lines.append(f"*[Searched: {query}]*\n\n")

    lines.append(f"---\n\n**Session ended**: {session.updated_at}\n")
    return "".join(lines)


def generate_model_handoff_doc(session: Session, target: ForgeTarget, quality: QualityReport) -> str:
    target = ForgeTarget(target)
    lines = [
        f"# Model Handoff ({target.value})\n\n"
        f"This execution pack was forged for **{TARGET_NAMES[target.value]}** "
        "and can be adapted for other coding agents.\n\n"
        "## Session\n\n"
        f"- Project: **{session.name}**\n"
        f"- Created: {session.updated_at}\n"
        f"- Planning score: **{quality.score}/100**\n\n"
        "## Use This Order\n\n"
        "1. Read `START_HERE.md`\n"
        "2. Read `SPEC.md`\n"
        "3. Read `PROMPTS.md`\n"
        "4. Read `CLAUDE.md` for repo conventions (applies broadly even for non-Claude targets)\n\n"
    ]

    for title, items in (
        ("Missing Must-Haves", quality.missing_must_haves),
        ("Missing Should-Haves", quality.missing_should_haves),
    ):
        if items:
            lines.append(f"## {title}\n\n")
            lines.extend(f"- {item}\n" for item in items)
            lines.append("\n")

    lines.append("## Target-Specific Prompt Header\n\n")
    lines.append(TARGET_HEADERS[target.value] + "\n")
    lines.append(
        "\n## Reliability Rules\n\n"
        "- Do not skip tests/checks listed in this plan.\n"
        "- Do not rewrite architecture unless required by a failing constraint.\n"
        "- Keep commits small and scoped to one logical fix/change.\n"
    )
    return "".join(lines)
