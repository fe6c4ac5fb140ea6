# review_pipeline/llm/prompts.py
"""Chat messages for a code review request."""

from collections.abc import Sequence
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from review_pipeline.budget.schemas import ReviewFile

DEFAULT_CRITERIA = [
    "Security vulnerabilities and potential exploits",
    "Logical flaws and unhandled edge cases",
    "Coding standards violations",
    "Performance implications",
    "Maintainability and readability",
]

RESPONSE_FORMAT = """{
  "summary": {
    "overall_status": "PASS|FAIL|WARNING",
    "total_issues": number,
    "high_severity": number,
    "medium_severity": number,
    "low_severity": number
  },
  "issues": [
    {
      "file": "file_path",
      "line": number,
      "severity": "HIGH|MEDIUM|LOW",
      "category": "SECURITY|LOGIC|PERFORMANCE|STANDARDS|MAINTAINABILITY",
      "title": "Brief issue title",
      "description": "Detailed description of the issue",
      "recommendation": "Specific fix recommendation",
      "code_snippet": "Relevant code snippet (if applicable)"
    }
  ],
  "recommendations": {
    "immediate_actions": ["..."],
    "long_term_improvements": ["..."]
  }
}"""


class ReviewContext(BaseModel):
    """What the caller knows about the change under review."""

    model_config = ConfigDict(extra="ignore")

    repository: str | None = Field(default=None, description="owner/name of the repository")
    target_branch: str = Field(default="main", description="Branch the change targets")
    severity_threshold: Literal["LOW", "MEDIUM", "HIGH"] = Field(
        default="LOW", description="Lowest severity worth reporting"
    )
    review_criteria: list[str] = Field(default_factory=lambda: list(DEFAULT_CRITERIA))
    extra_instructions: str | None = Field(default=None)


def environment_for_branch(branch: str) -> str:
    """Deployment environment implied by a branch name."""
    name = branch.lower()
    if name in ("main", "master", "production"):
        return "production"
    if name in ("staging", "uat"):
        return "staging"
    return "development"


def build_system_prompt(context: ReviewContext) -> str:
    criteria = "\n".join(f"- {item}" for item in context.review_criteria)
    environment = environment_for_branch(context.target_branch)
    prompt = (
        "You are an expert code reviewer performing automated code review "
        f"for changes targeting the {context.target_branch} branch "
        f"({environment} environment).\n\n"
        f"REVIEW OBJECTIVES:\n{criteria}\n\n"
        "SEVERITY LEVELS:\n"
        "- HIGH: Critical security issues, major logic flaws, severe performance problems\n"
        "- MEDIUM: Moderate security concerns, standards violations, performance optimizations\n"
        "- LOW: Minor issues, style inconsistencies, documentation improvements\n\n"
        "RESPONSE FORMAT:\n"
        "Respond with a single valid JSON object in exactly this structure:\n"
        f"{RESPONSE_FORMAT}\n\n"
        f"Only report issues at or above severity {context.severity_threshold}. "
        "Be specific and actionable; focus on real issues, not style preferences "
        "unless they affect maintainability."
    )
    if context.extra_instructions:
        prompt += f"\n\n{context.extra_instructions}"
    return prompt


def build_messages(files: Sequence[ReviewFile], context: ReviewContext) -> list[dict]:
    """
    System prompt, one overview message, then one message per file.

    File content is sent verbatim.
    """
    where = f" in {context.repository}" if context.repository else ""
    listing = "\n".join(
        f"- {f.path}" + (" (truncated)" if f.truncated else "") for f in files
    )
    messages = [
        {"role": "system", "content": build_system_prompt(context)},
        {
            "role": "user",
            "content": (
                f"Please review the following files{where} for branch "
                f"{context.target_branch}.\n\nFiles to review:\n{listing}"
            ),
        },
    ]
    for file in files:
        messages.append(
            {"role": "user", "content": f"File: {file.path}\n\n{file.content or ''}"}
        )
    return messages
