"""GitHub issue tracker: PyGithub for issues/labels, GraphQL for Projects v2."""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import requests
from github import Auth, Github, GithubException
from github.Issue import Issue
from github.Repository import Repository

from ...core.config import GitHubConfig
from ...core.task import IssueRef, ProjectRef
from ...core.tracker import FieldOption, IssueState, IssueTracker, ProjectField
from ...errors.exceptions import ExternalCallFailure
from ...utils.error_handling import handle_network_errors

logger = logging.getLogger(__name__)


def _to_failure(operation: str, error: Exception) -> ExternalCallFailure:
    status = getattr(error, "status", None)
    if isinstance(error, GithubException) and isinstance(error.data, dict):
        message = error.data.get("message") or str(error)
    else:
        message = str(error)
    return ExternalCallFailure(operation, message, status_code=status)


def _github_call(operation: str):
    return handle_network_errors(
        operation,
        wrap=_to_failure,
        passthrough=(ExternalCallFailure,),
        logger_instance=logger,
    )


OWNER_ID_QUERY = """
query($login: String!) {
  %s(login: $login) { id }
}
"""

PROJECT_ID_QUERY = """
query($login: String!, $number: Int!) {
  %s(login: $login) { projectV2(number: $number) { id number url } }
}
"""

CREATE_PROJECT_MUTATION = """
mutation($ownerId: ID!, $title: String!) {
  createProjectV2(input: {ownerId: $ownerId, title: $title}) {
    projectV2 { id number url }
  }
}
"""

ADD_ITEM_MUTATION = """
mutation($projectId: ID!, $contentId: ID!) {
  addProjectV2ItemById(input: {projectId: $projectId, contentId: $contentId}) {
    item { id }
  }
}
"""

FIELD_QUERY = """
query($projectId: ID!, $name: String!) {
  node(id: $projectId) {
    ... on ProjectV2 {
      field(name: $name) {
        ... on ProjectV2SingleSelectField { id name options { id name } }
      }
    }
  }
}
"""

SET_FIELD_MUTATION = """
mutation($projectId: ID!, $itemId: ID!, $fieldId: ID!, $optionId: String!) {
  updateProjectV2ItemFieldValue(input: {
    projectId: $projectId, itemId: $itemId, fieldId: $fieldId,
    value: {singleSelectOptionId: $optionId}
  }) {
    projectV2Item { id }
  }
}
"""

ITEM_FIELD_VALUE_QUERY = """
query($itemId: ID!, $name: String!) {
  node(id: $itemId) {
    ... on ProjectV2Item {
      fieldValueByName(name: $name) {
        ... on ProjectV2ItemFieldSingleSelectValue { name }
      }
    }
  }
}
"""


class GitHubClient:
    """Blocking GitHub API client.

    Every public method raises ``ExternalCallFailure`` on any API or network
    error.
    """

    def __init__(self, config: GitHubConfig):
        self.config = config
        self.gh = Github(
            auth=Auth.Token(config.token) if config.token else None,
            base_url=config.api_url,
            timeout=config.timeout,
        )
        self._repo: Optional[Repository] = None
        # project number -> GraphQL node id
        self._project_ids: Dict[int, str] = {}
        self._owner_id: Optional[str] = None

    @property
    def repo(self) -> Repository:
        if self._repo is None:
            self._repo = self.gh.get_repo(self.config.full_name)
        return self._repo

    @property
    def _owner_field(self) -> str:
        return "organization" if self.config.owner_type == "org" else "user"

    def _issue(self, issue: IssueRef) -> Issue:
        return self.repo.get_issue(issue.number)

    def graphql(self, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        """Run a GraphQL query and return its ``data``."""
        headers = {
            "Authorization": f"Bearer {self.config.token}",
            "Accept": "application/vnd.github+json",
        }
        response = requests.post(
            f"{self.config.api_url}/graphql",
            json={"query": query, "variables": variables},
            headers=headers,
            timeout=self.config.timeout,
        )
        if response.status_code != 200:
            raise ExternalCallFailure(
                "graphql",
                f"HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        payload = response.json()
        errors = payload.get("errors")
        if errors:
            raise ExternalCallFailure("graphql", "; ".join(e.get("message", str(e)) for e in errors))
        return payload.get("data") or {}

    # --- issues ---

    @_github_call("create issue")
    def create_issue(self, title: str, body: str, labels: List[str]) -> IssueRef:
        issue = self.repo.create_issue(title=title, body=body, labels=labels)
        logger.debug(f"Created issue #{issue.number} in {self.config.full_name}")
        return IssueRef(number=issue.number, url=issue.html_url, node_id=issue.node_id)

    @_github_call("update issue body")
    def update_issue_body(self, issue: IssueRef, body: str) -> None:
        self._issue(issue).edit(body=body)

    @_github_call("get issue state")
    def get_issue_state(self, issue: IssueRef) -> IssueState:
        return IssueState(self._issue(issue).state)

    @_github_call("set issue state")
    def set_issue_state(self, issue: IssueRef, state: IssueState, comment: Optional[str] = None) -> None:
        gh_issue = self._issue(issue)
        if comment:
            gh_issue.create_comment(comment)
        gh_issue.edit(state=state.value)

    @_github_call("get issue labels")
    def get_issue_labels(self, issue: IssueRef) -> List[str]:
        return [label.name for label in self._issue(issue).labels]

    @_github_call("add label")
    def add_label(self, issue: IssueRef, label: str) -> None:
        self._issue(issue).add_to_labels(label)

    @_github_call("remove label")
    def remove_label(self, issue: IssueRef, label: str) -> None:
        try:
            self._issue(issue).remove_from_labels(label)
        except GithubException as e:
            if e.status == 404:
                logger.debug(f"Label {label} not on {issue}, nothing to remove")
                return
            raise

    def issue_node_id(self, issue: IssueRef) -> str:
        if issue.node_id:
            return issue.node_id
        return self._issue(issue).node_id

    # --- projects ---

    def owner_id(self) -> str:
        if self._owner_id is None:
            data = self.graphql(OWNER_ID_QUERY % self._owner_field, {"login": self.config.owner})
            owner = data.get(self._owner_field) or {}
            if not owner.get("id"):
                raise ExternalCallFailure("resolve owner", f"Owner {self.config.owner} not found")
            self._owner_id = owner["id"]
        return self._owner_id

    def project_id(self, project: ProjectRef) -> str:
        if project.node_id:
            return project.node_id
        cached = self._project_ids.get(project.number)
        if cached:
            return cached
        data = self.graphql(
            PROJECT_ID_QUERY % self._owner_field,
            {"login": self.config.owner, "number": project.number},
        )
        node = (data.get(self._owner_field) or {}).get("projectV2")
        if not node:
            raise ExternalCallFailure("resolve project", f"Project #{project.number} not found", status_code=404)
        self._project_ids[project.number] = node["id"]
        return node["id"]

    @_github_call("create project")
    def create_project(self, title: str) -> ProjectRef:
        data = self.graphql(CREATE_PROJECT_MUTATION, {"ownerId": self.owner_id(), "title": title})
        node = data["createProjectV2"]["projectV2"]
        self._project_ids[node["number"]] = node["id"]
        return ProjectRef(number=node["number"], node_id=node["id"], url=node.get("url", ""))

    @_github_call("add issue to project")
    def add_issue_to_project(self, project: ProjectRef, issue: IssueRef) -> str:
        data = self.graphql(
            ADD_ITEM_MUTATION,
            {"projectId": self.project_id(project), "contentId": self.issue_node_id(issue)},
        )
        return data["addProjectV2ItemById"]["item"]["id"]

    @_github_call("get project field")
    def get_project_field(self, project: ProjectRef, field_name: str) -> Optional[ProjectField]:
        data = self.graphql(FIELD_QUERY, {"projectId": self.project_id(project), "name": field_name})
        node = (data.get("node") or {}).get("field") or {}
        if not node.get("id"):
            return None
        options = [FieldOption(id=o["id"], name=o["name"]) for o in node.get("options", [])]
        return ProjectField(id=node["id"], name=node.get("name", field_name), options=options)

    @_github_call("set project item field")
    def set_project_item_field(self, project: ProjectRef, item_id: str, field_id: str, option_id: str) -> None:
        self.graphql(
            SET_FIELD_MUTATION,
            {
                "projectId": self.project_id(project),
                "itemId": item_id,
                "fieldId": field_id,
                "optionId": option_id,
            },
        )

    @_github_call("get project item field value")
    def get_project_item_field_value(self, item_id: str, field_name: str) -> Optional[str]:
        data = self.graphql(ITEM_FIELD_VALUE_QUERY, {"itemId": item_id, "name": field_name})
        value = (data.get("node") or {}).get("fieldValueByName") or {}
        return value.get("name")


class GitHubTracker(IssueTracker):
    """``IssueTracker`` running the blocking ``GitHubClient`` in worker threads."""

    def __init__(self, config: GitHubConfig, client: Optional[GitHubClient] = None):
        self.config = config
        self.client = client or GitHubClient(config)

    async def create_issue(self, title: str, body: str, labels: List[str]) -> IssueRef:
        return await asyncio.to_thread(self.client.create_issue, title, body, labels)

    async def update_issue_body(self, issue: IssueRef, body: str) -> None:
        await asyncio.to_thread(self.client.update_issue_body, issue, body)

    async def get_issue_state(self, issue: IssueRef) -> IssueState:
        return await asyncio.to_thread(self.client.get_issue_state, issue)

    async def set_issue_state(self, issue: IssueRef, state: IssueState, comment: Optional[str] = None) -> None:
        await asyncio.to_thread(self.client.set_issue_state, issue, state, comment)

    async def get_issue_labels(self, issue: IssueRef) -> List[str]:
        return await asyncio.to_thread(self.client.get_issue_labels, issue)

    async def add_label(self, issue: IssueRef, label: str) -> None:
        await asyncio.to_thread(self.client.add_label, issue, label)

    async def remove_label(self, issue: IssueRef, label: str) -> None:
        await asyncio.to_thread(self.client.remove_label, issue, label)

    async def create_project(self, title: str) -> ProjectRef:
        return await asyncio.to_thread(self.client.create_project, title)

    async def add_issue_to_project(self, project: ProjectRef, issue: IssueRef) -> str:
        return await asyncio.to_thread(self.client.add_issue_to_project, project, issue)

    async def get_project_field(self, project: ProjectRef, field_name: str) -> Optional[ProjectField]:
        return await asyncio.to_thread(self.client.get_project_field, project, field_name)

    async def set_project_item_field(self, project: ProjectRef, item_id: str, field_id: str, option_id: str) -> None:
        await asyncio.to_thread(self.client.set_project_item_field, project, item_id, field_id, option_id)

    async def get_project_item_field_value(
        self,
        project: ProjectRef,
        item_id: str,
        field_name: str,
    ) -> Optional[str]:
        return await asyncio.to_thread(self.client.get_project_item_field_value, item_id, field_name)
