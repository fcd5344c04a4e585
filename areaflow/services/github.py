"""
GitHub service - repository activity triggers and issue creation

Uses GitHub REST API v3 with the connection's OAuth access token.
Required OAuth scopes: repo, user, notifications
"""

import logging
from typing import Any, Dict, Optional

from ..engine.models import CheckResult, EvaluationContext
from ..errors import ExternalServiceError
from .base import Parameter, Reaction, Service, Trigger, advance_cursor, split_csv
from .http import fetch_json, post_json

logger = logging.getLogger(__name__)

SERVICE_NAME = "github"
API_BASE = "https://api.github.com"

_REPO_PARAMS = {
    "owner": Parameter(
        type="string",
        label="Repository Owner",
        description="GitHub username or organization name",
    ),
    "repo": Parameter(
        type="string",
        label="Repository Name",
        description="Name of the repository to monitor",
    ),
}


def _headers(token: str) -> Dict[str, str]:
    return {
        "Authorization": f"Bearer {token}",
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": "2022-11-28",
    }


def _login(user: Any) -> str:
    return user.get("login", "") if isinstance(user, dict) else ""


def _repo_path(params: Dict[str, Any]) -> str:
    return f"{params.get('owner')}/{params.get('repo')}"


async def _latest_issue(token: str, repo_path: str) -> Optional[Dict[str, Any]]:
    """Newest open issue, ignoring pull requests (the issues endpoint returns both)."""
    issues = await fetch_json(
        f"{API_BASE}/repos/{repo_path}/issues",
        service=SERVICE_NAME,
        headers=_headers(token),
        params={"state": "open", "sort": "created", "direction": "desc", "per_page": 10},
    )
    if not isinstance(issues, list):
        return None
    for issue in issues:
        if isinstance(issue, dict) and "pull_request" not in issue:
            return issue
    return None


# ── Triggers ──


async def check_new_issue(params: Dict[str, Any], context: EvaluationContext) -> CheckResult:
    token = context.require_access_token(SERVICE_NAME)
    repo_path = _repo_path(params)
    try:
        issue = await _latest_issue(token, repo_path)
    except ExternalServiceError as e:
        logger.warning(f"GitHub new_issue check failed for {repo_path}: {e}")
        return CheckResult.idle()

    if not issue or issue.get("id") is None:
        return CheckResult.idle()

    return advance_cursor(
        context.metadata,
        "lastIssueId",
        issue["id"],
        lambda: {
            "issueNumber": issue.get("number"),
            "title": issue.get("title") or "",
            "body": issue.get("body") or "",
            "url": issue.get("html_url") or "",
            "author": _login(issue.get("user")),
            "createdAt": issue.get("created_at") or "",
        },
    )


async def setup_new_issue(params: Dict[str, Any], context: EvaluationContext) -> Optional[Dict[str, Any]]:
    """Check the repository is reachable and record the newest issue as baseline."""
    token = context.require_access_token(SERVICE_NAME)
    repo_path = _repo_path(params)
    await fetch_json(f"{API_BASE}/repos/{repo_path}", service=SERVICE_NAME, headers=_headers(token))
    issue = await _latest_issue(token, repo_path)
    if issue and issue.get("id") is not None:
        return {"lastIssueId": issue["id"]}
    return None


async def check_new_star(params: Dict[str, Any], context: EvaluationContext) -> CheckResult:
    token = context.require_access_token(SERVICE_NAME)
    repo_path = _repo_path(params)
    try:
        repo = await fetch_json(f"{API_BASE}/repos/{repo_path}", service=SERVICE_NAME, headers=_headers(token))
    except ExternalServiceError as e:
        logger.warning(f"GitHub new_star check failed for {repo_path}: {e}")
        return CheckResult.idle()

    current = repo.get("stargazers_count") if isinstance(repo, dict) else None
    if not isinstance(current, int) or isinstance(current, bool):
        return CheckResult.idle()

    previous = context.metadata.get("starCount")
    if previous is None:
        return CheckResult(fired=False, metadata={"starCount": current})
    if current > previous:
        return CheckResult(
            fired=True,
            data={
                "previousCount": previous,
                "currentCount": current,
                "newStars": current - previous,
                "repoName": repo.get("full_name", repo_path),
                "repoUrl": repo.get("html_url", ""),
            },
            metadata={"starCount": current},
        )
    if current < previous:
        # Unstars lower the baseline so re-stars are noticed
        return CheckResult(fired=False, metadata={"starCount": current})
    return CheckResult.idle()


async def setup_new_star(params: Dict[str, Any], context: EvaluationContext) -> Optional[Dict[str, Any]]:
    token = context.require_access_token(SERVICE_NAME)
    repo = await fetch_json(
        f"{API_BASE}/repos/{_repo_path(params)}", service=SERVICE_NAME, headers=_headers(token)
    )
    if isinstance(repo, dict) and "stargazers_count" in repo:
        return {"starCount": repo["stargazers_count"]}
    return None


async def check_new_release(params: Dict[str, Any], context: EvaluationContext) -> CheckResult:
    token = context.require_access_token(SERVICE_NAME)
    repo_path = _repo_path(params)
    try:
        release = await fetch_json(
            f"{API_BASE}/repos/{repo_path}/releases/latest",
            service=SERVICE_NAME,
            headers=_headers(token),
        )
    except ExternalServiceError as e:
        # 404 here just means the repository has no release yet
        logger.debug(f"GitHub new_release check failed for {repo_path}: {e}")
        return CheckResult.idle()

    if not isinstance(release, dict) or release.get("id") is None:
        return CheckResult.idle()

    return advance_cursor(
        context.metadata,
        "lastReleaseId",
        release["id"],
        lambda: {
            "tagName": release.get("tag_name", ""),
            "releaseName": release.get("name") or release.get("tag_name", ""),
            "url": release.get("html_url", ""),
            "author": _login(release.get("author")),
        },
    )


# ── Reactions ──


async def create_issue(params: Dict[str, Any], context: EvaluationContext) -> None:
    """Create an issue. Params arrive already interpolated."""
    token = context.require_access_token(SERVICE_NAME)
    repo_path = _repo_path(params)

    body: Dict[str, Any] = {
        "title": params.get("title", ""),
        "body": params.get("body") or "",
    }
    labels = split_csv(params.get("labels"))
    if labels:
        body["labels"] = labels
    assignees = split_csv(params.get("assignees"))
    if assignees:
        body["assignees"] = assignees

    created = await post_json(
        f"{API_BASE}/repos/{repo_path}/issues",
        body,
        service=SERVICE_NAME,
        headers=_headers(token),
    )
    logger.info(f"GitHub issue created: {(created or {}).get('html_url', repo_path)}")


github_service = Service(
    name=SERVICE_NAME,
    description="GitHub repository management and notifications",
    auth_type="oauth2",
    triggers=(
        Trigger(
            name="new_issue",
            description="Triggered when a new issue is created in a repository",
            check=check_new_issue,
            setup=setup_new_issue,
            params=dict(_REPO_PARAMS),
            variables={
                "issueNumber": "Issue number",
                "title": "Issue title",
                "body": "Issue body",
                "url": "Link to the issue",
                "author": "Login of the issue author",
                "createdAt": "Creation timestamp",
            },
        ),
        Trigger(
            name="new_star",
            description="Triggered when a repository receives a new star",
            check=check_new_star,
            setup=setup_new_star,
            params=dict(_REPO_PARAMS),
            variables={
                "previousCount": "Star count before trigger",
                "currentCount": "Current star count",
                "newStars": "Number of new stars gained",
                "repoName": "Full repository name",
                "repoUrl": "Link to the repository",
            },
        ),
        Trigger(
            name="new_release",
            description="Triggered when a new release is published in a repository",
            check=check_new_release,
            params=dict(_REPO_PARAMS),
            variables={
                "tagName": "Release tag (e.g. v1.0.0)",
                "releaseName": "Release title",
                "url": "Link to the release",
                "author": "Login of the release author",
            },
        ),
    ),
    reactions=(
        Reaction(
            name="create_issue",
            description="Creates a new issue in a GitHub repository",
            execute=create_issue,
            params={
                **_REPO_PARAMS,
                "title": Parameter(type="string", label="Issue Title"),
                "body": Parameter(type="string", label="Issue Body", required=False),
                "labels": Parameter(
                    type="string",
                    label="Labels",
                    required=False,
                    description="Comma-separated list of labels (e.g., bug,enhancement)",
                ),
                "assignees": Parameter(
                    type="string",
                    label="Assignees",
                    required=False,
                    description="Comma-separated list of GitHub usernames to assign",
                ),
            },
        ),
    ),
)
