"""Translate technical errors to user-friendly messages."""

import re
from dataclasses import dataclass
from typing import List, Optional


@dataclass
class UserFriendlyError:
    """User-friendly error representation."""
    original_error: Exception
    title: str
    explanation: str
    actions: List[str]
    documentation: Optional[str] = None
    show_technical: bool = False


class ErrorTranslator:
    """Translate technical errors to user-friendly messages."""

    ERROR_PATTERNS = {
        # GitHub auth errors
        r"\b401\b|Bad credentials": {
            "title": "GitHub authentication failed",
            "explanation": "Your GitHub personal access token is invalid or lacks required permissions.",
            "actions": [
                "Generate new token: https://github.com/settings/tokens (needs 'repo' and 'project' scopes)",
                "Set GITHUB_TOKEN or update token in config/github.yaml",
                "Check token hasn't expired"
            ],
            "documentation": "config/github.yaml.example"
        },

        # Rate limiting
        r"rate.*limit|429|too many requests": {
            "title": "API rate limit exceeded",
            "explanation": "Too many requests were made to GitHub. Rate limits reset periodically.",
            "actions": [
                "Wait 15-60 minutes for rate limit to reset",
                "Retry only the failed sub-steps of the last transition",
            ]
        },

        # GitHub binding not set up
        r"No GitHub tracker configured": {
            "title": "GitHub is not configured",
            "explanation": "This command changes GitHub state but no GitHub binding is configured.",
            "actions": [
                "Copy config/github.yaml.example to config/github.yaml",
                "Fill in owner, repo and token (or set GITHUB_TOKEN)",
            ],
            "documentation": "config/github.yaml.example"
        },

        # Missing references on a task or epic
        r"PreconditionError": {
            "title": "Task is not linked to GitHub",
            "explanation": "The task has no GitHub issue, so its status cannot be reconciled.",
            "actions": [
                "Recreate the epic so every task gets an issue",
                "Or refresh the epic from GitHub: agent-epics refresh <epic>"
            ]
        },

        # Board misconfiguration
        r"status field.*not found|option .* not found": {
            "title": "Project board is missing a status column",
            "explanation": "The project board does not have the Status field or option this transition needs.",
            "actions": [
                "Add the missing option to the board's Status field",
                "Or adjust status.board_options in agent-epics.yaml",
            ],
            "documentation": "config/agent-epics.yaml.example"
        },

        # Lookup misuse
        r"Epic not found|Task .* not found in epic": {
            "title": "Unknown epic or task",
            "explanation": "No local snapshot matches the requested id.",
            "actions": [
                "List known epics: agent-epics list",
                "Check the id for typos",
            ]
        },

        # Network errors
        r"connection.*refused|connection.*timeout|network.*unreachable|timed out": {
            "title": "Cannot connect to GitHub",
            "explanation": "Unable to reach GitHub. This could be a network issue or service outage.",
            "actions": [
                "Check your internet connection",
                "Verify github.api_url in configuration",
                "Try again in a few minutes"
            ]
        },

        # Config errors
        r"config.*not.*found|no such file.*config": {
            "title": "Configuration missing",
            "explanation": "Required configuration files were not found.",
            "actions": [
                "Create config/github.yaml with owner, repo and token",
            ],
            "documentation": "config/github.yaml.example"
        }
    }

    def translate(self, error: Exception) -> UserFriendlyError:
        """Convert exception to user-friendly format."""
        error_str = str(error)
        error_type = type(error).__name__
        full_error = f"{error_type}: {error_str}"

        for pattern, translation in self.ERROR_PATTERNS.items():
            if re.search(pattern, full_error, re.IGNORECASE):
                return UserFriendlyError(
                    original_error=error,
                    title=translation["title"],
                    explanation=translation["explanation"],
                    actions=translation["actions"],
                    documentation=translation.get("documentation"),
                    show_technical=False
                )

        # Fallback for unknown errors
        return UserFriendlyError(
            original_error=error,
            title="Unexpected error",
            explanation=str(error),
            actions=[
                "Check logs/agent-epics.log for details",
                "Re-run with --log-level DEBUG",
            ],
            show_technical=True
        )

    def format_for_cli(self, friendly_error: UserFriendlyError) -> str:
        """Format error for CLI display."""
        output = f"[bold red]{friendly_error.title}[/]\n\n"
        output += f"{friendly_error.explanation}\n\n"

        output += "[bold]How to fix:[/]\n"
        for i, action in enumerate(friendly_error.actions, 1):
            output += f"  {i}. {action}\n"

        if friendly_error.documentation:
            output += f"\n[dim]Learn more: {friendly_error.documentation}[/]"

        if friendly_error.show_technical:
            output += f"\n\n[dim]Technical details:[/]\n[dim]{friendly_error.original_error}[/]"

        return output
