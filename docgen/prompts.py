"""
Document Prompts
================

Templates for the generated planning pack. Each template receives
``{conversation_history}``, ``{previously_generated_docs}`` and
``{current_date}``.
"""

import re
from typing import List, Tuple

DOCGEN_SYSTEM_PROMPT = """You are a document generator for PlanForge. You turn planning conversations into specific, actionable documentation for AI coding tools.

## Rules

### Always
1. Use ONLY information explicitly discussed or decided in the conversation
2. Use exact names, versions and details from the conversation
3. Mark anything undiscussed as "[TBD - not discussed during planning]"
4. Use today's date: {current_date}
5. Write data models in the project's real language, never pseudocode JSON
6. Cross-reference previously generated documents when provided

### Never
1. Invent features, requirements or technologies that were not discussed
2. State performance numbers the user did not give
3. List file paths or directory layouts that were not agreed on
4. Give verification commands that do not match the tech stack
5. Fabricate example data, API keys or configuration values

When extracting information, sort it into:
- **Decided**: the user chose it; include it
- **Implied**: a reasonable inference; include it and note the assumption
- **Unknown**: not discussed; mark it [TBD] and recommend discussing it

Output only Markdown, starting with a single # heading."""

_CONTEXT_BLOCK = """
## Previously Generated Documents

{previously_generated_docs}

## Planning Conversation

{conversation_history}
"""

SPEC_PROMPT = """Generate SPEC.md based on the planning conversation.

Use these sections, in order:

# <Project Name> - Specification
## 1. Overview (name, one-line description, who it is for, the problem it solves)
## 2. Goals (only goals stated or clearly implied)
## 3. Non-Goals (things ruled out or deferred; [TBD] if scope was never discussed)
## 4. User Stories ("As a <user>, I want to <action> so that <benefit>")
## 5. Technical Architecture (tech stack table with rationale, interface contract, data models in the project's language)
## 6. Features (description, acceptance criteria, edge cases that were discussed)
## 7. Error Handling
## 8. Security Considerations
## 9. Open Questions
""" + _CONTEXT_BLOCK

CLAUDE_PROMPT = """Generate CLAUDE.md, the file a coding agent reads on every interaction to understand the project.

Use these sections:

# <Project Name>
## Project Overview (two or three sentences, linking to SPEC.md)
## Tech Stack (exactly as decided in SPEC.md)
## Commands (install, dev, build, test, lint; only commands that exist for this stack)
## Code Conventions (naming, structure and patterns agreed in the conversation)
## Do Not (anti-patterns the conversation ruled out)
""" + _CONTEXT_BLOCK

PROMPTS_PROMPT = """Generate PROMPTS.md, the step-by-step implementation guide.

Split the work into phases. For every phase write:

## Phase N: <Name>
- Goal
- A ready-to-paste prompt for the coding agent, referencing SPEC.md and CLAUDE.md
### Verification Checklist
- Concrete checks that prove the phase is done, using commands from CLAUDE.md

Start the document with a # heading naming the project.
""" + _CONTEXT_BLOCK

README_PROMPT = """Generate README.md, a planning-stage orientation document.

# <Project Name>
One paragraph describing the project.
## What's In This Pack (one line per generated document and when to read it)
## Key Decisions (the most important decisions from the conversation)
## Open Questions (everything still [TBD])

Generated by PlanForge on {current_date}.
""" + _CONTEXT_BLOCK

START_HERE_PROMPT = """Generate START_HERE.md, the bridge document for users who are new to AI coding tools.

# Start Here: <Project Name>
## What You're Building (plain language)
## What You Need (tools and accounts for this stack only)
## Step-by-Step Setup (numbered steps from an empty folder to the first phase in PROMPTS.md)
## When Things Go Wrong (how to recover with the coding agent)
""" + _CONTEXT_BLOCK

RETRY_SUFFIX = "\n\nIMPORTANT: Start with a # heading. Output only valid Markdown."

NO_DOCUMENTS_YET = "No documents generated yet."

# Generation order matters: later documents cross-reference earlier ones.
DOCUMENT_PLAN: List[Tuple[str, str]] = [
    ("SPEC.md", SPEC_PROMPT),
    ("CLAUDE.md", CLAUDE_PROMPT),
    ("PROMPTS.md", PROMPTS_PROMPT),
    ("README.md", README_PROMPT),
    ("START_HERE.md", START_HERE_PROMPT),
]

CONVERSATION_FILENAME = "CONVERSATION.md"
HANDOFF_FILENAME = "MODEL_HANDOFF.md"


_PLACEHOLDER = re.compile(r"\{(conversation_history|previously_generated_docs|current_date)\}")


def render_prompt(template: str, conversation: str, previous_docs: str, current_date: str) -> str:
    """Fill placeholders in one pass; inserted text is never re-scanned."""
    values = {
        "conversation_history": conversation,
        "previously_generated_docs": previous_docs,
        "current_date": current_date,
    }
    return _PLACEHOLDER.sub(lambda m: values[m.group(1)], template)
