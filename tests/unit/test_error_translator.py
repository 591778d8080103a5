"""Tests for ErrorTranslator: verifies user-friendly error messages."""

from agent_epics.errors.exceptions import (
    DataInconsistency,
    EpicNotFoundError,
    ExternalCallFailure,
    PreconditionError,
    TaskNotFoundError,
)
from agent_epics.errors.translator import ErrorTranslator, UserFriendlyError


class TestGitHubErrorTranslation:

    def test_bad_credentials(self):
        translator = ErrorTranslator()
        error = ExternalCallFailure("create issue", "Bad credentials", status_code=401)

        result = translator.translate(error)

        assert isinstance(result, UserFriendlyError)
        assert result.title == "GitHub authentication failed"
        assert len(result.actions) > 0

    def test_issue_number_containing_401_is_not_auth_error(self):
        result = ErrorTranslator().translate(Exception("Issue #4015 is locked"))

        assert result.title != "GitHub authentication failed"

    def test_rate_limit(self):
        result = ErrorTranslator().translate(ExternalCallFailure("add label", "API rate limit exceeded", 403))

        assert result.title == "API rate limit exceeded"

    def test_network_timeout(self):
        result = ErrorTranslator().translate(ExternalCallFailure("graphql", "Read timed out"))

        assert result.title == "Cannot connect to GitHub"


class TestDomainErrorTranslation:

    def test_precondition(self):
        result = ErrorTranslator().translate(PreconditionError("Task task-1 has no issue reference"))

        assert result.title == "Task is not linked to GitHub"

    def test_missing_board_option(self):
        error = DataInconsistency("Status option 'Review' not found in field 'Status'")

        result = ErrorTranslator().translate(error)

        assert result.title == "Project board is missing a status column"

    def test_unknown_epic_and_task(self):
        translator = ErrorTranslator()

        assert translator.translate(EpicNotFoundError("epic-1")).title == "Unknown epic or task"
        assert translator.translate(TaskNotFoundError("epic-1", "task-9")).title == "Unknown epic or task"

    def test_unknown_error_shows_technical_details(self):
        result = ErrorTranslator().translate(ZeroDivisionError("division by zero"))

        assert result.title == "Unexpected error"
        assert result.show_technical


class TestFormatForCli:

    def test_includes_numbered_actions(self):
        translator = ErrorTranslator()
        friendly = translator.translate(EpicNotFoundError("epic-1"))

        output = translator.format_for_cli(friendly)

        assert "Unknown epic or task" in output
        assert "  1. List known epics: agent-epics list" in output
        assert "Technical details" not in output

    def test_technical_details_for_unknown_errors(self):
        translator = ErrorTranslator()

        output = translator.format_for_cli(translator.translate(ValueError("weird")))

        assert "Technical details" in output
        assert "weird" in output
